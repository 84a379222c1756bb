from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

from orderdesk.core.config import settings
from orderdesk.schemas.order import Order, OrderStatus, PaymentStatus, can_transition
from orderdesk.services.api_client import ApiClientError, OrderApiClient
from orderdesk.services.notifier import Notifier
from orderdesk.services.order_store import OrderStore

logger = logging.getLogger(__name__)


class MutationError(RuntimeError):
    """서버가 변경을 거부해 롤백된 경우. 메시지는 화면 표시용."""


async def with_optimistic_update(
    store: OrderStore,
    order_id: str,
    mutator: Callable[[Order], Order],
    network_call: Callable[[], Awaitable[Order]],
    *,
    to_front: bool = False,
) -> Order | None:
    """낙관적 변경 공통 절차.

    1. 현재 주문 객체를 그대로 스냅샷 (롤백용)
    2. mutator 결과를 스토어에 즉시 반영
    3. 네트워크 호출
    4. 성공: 서버 응답으로 교체 (서버가 authoritative)
    5. 실패: 1의 스냅샷 객체로 복원 후 MutationError

    스토어에 없는 id면 아무것도 하지 않고 None.
    응답 도착 시점에 주문이 사라졌으면 결과는 버린다.
    """
    snapshot = store.get(order_id)
    if snapshot is None:
        logger.info(f"[낙관적변경] 스토어에 없는 주문 무시: {order_id}")
        return None

    store.put(mutator(snapshot), to_front=to_front)

    try:
        server_order = await network_call()
    except ApiClientError as e:
        if order_id in store:
            store.put(snapshot)
        logger.warning(f"[낙관적변경] 롤백 order={order_id}: {e.message}")
        raise MutationError(e.message) from e

    if order_id in store:
        store.put(server_order)
    return server_order


class OrderActions:
    """주문 상태/결제 변경 (대시보드 버튼 핸들러).

    실패는 여기서 알림 1회로 끝내고 밖으로 던지지 않는다.
    """
    def __init__(
        self,
        store: OrderStore,
        client: OrderApiClient,
        notifier: Notifier,
        *,
        recently_paid_clear_s: float | None = None,
    ) -> None:
        self.store = store
        self.client = client
        self.notifier = notifier
        self.recently_paid_clear_s = (
            settings.RECENTLY_PAID_CLEAR_S if recently_paid_clear_s is None else recently_paid_clear_s
        )
        self.recently_paid_id: str | None = None
        self._recently_paid_timer: asyncio.TimerHandle | None = None

    async def update_status(self, order_id: str, new_status: OrderStatus | str) -> Order | None:
        new_status = OrderStatus(new_status)
        current = self.store.get(order_id)
        if current is None:
            return None
        if current.status == new_status:
            return current
        if not can_transition(current.status, new_status):
            self.notifier.warning(
                f"Cannot change order #{current.order_number} from {current.status.value} to {new_status.value}"
            )
            return None

        try:
            order = await with_optimistic_update(
                self.store,
                order_id,
                lambda o: o.model_copy(update={"status": new_status}),
                lambda: self.client.update_status(order_id, new_status),
            )
        except MutationError as e:
            self.notifier.error(f"Failed to update order: {e}")
            return None

        if order is not None:
            self.notifier.success(f"Order updated to {new_status.value}")
        return order

    def _payment_locked(self, order: Order) -> bool:
        # refunded는 서버 전용 상태, 결제/미결제 전환 대상 아님
        if order.payment_status == PaymentStatus.REFUNDED:
            self.notifier.warning(f"Cannot change payment of refunded order #{order.order_number}")
            return True
        return False

    async def mark_as_paid(self, order_id: str) -> Order | None:
        current = self.store.get(order_id)
        if current is None or self._payment_locked(current):
            return None

        self._flag_recently_paid(order_id)
        try:
            # 결제 완료 탭 맨 앞으로 이동
            order = await with_optimistic_update(
                self.store,
                order_id,
                lambda o: o.model_copy(update={"payment_status": PaymentStatus.PAID}),
                lambda: self.client.mark_paid(order_id),
                to_front=True,
            )
        except MutationError as e:
            if self.recently_paid_id == order_id:
                self.close()
            self.notifier.error(f"Failed to mark as paid: {e}")
            return None

        if order is not None:
            self.notifier.success("Order marked as paid!")
        return order

    async def mark_as_unpaid(self, order_id: str) -> Order | None:
        current = self.store.get(order_id)
        if current is None or self._payment_locked(current):
            return None
        try:
            order = await with_optimistic_update(
                self.store,
                order_id,
                lambda o: o.model_copy(update={"payment_status": PaymentStatus.PENDING}),
                lambda: self.client.mark_unpaid(order_id),
            )
        except MutationError as e:
            self.notifier.error(f"Failed to mark as unpaid: {e}")
            return None

        if order is not None:
            self.notifier.success("Order marked as unpaid")
        return order

    def _flag_recently_paid(self, order_id: str) -> None:
        """'방금 결제됨' 표시. 일정 시간 후 자동 해제 (변경 흐름은 막지 않음)."""
        if self._recently_paid_timer is not None:
            self._recently_paid_timer.cancel()
        self.recently_paid_id = order_id
        loop = asyncio.get_running_loop()
        self._recently_paid_timer = loop.call_later(self.recently_paid_clear_s, self._clear_recently_paid)

    def _clear_recently_paid(self) -> None:
        self.recently_paid_id = None
        self._recently_paid_timer = None

    def close(self) -> None:
        if self._recently_paid_timer is not None:
            self._recently_paid_timer.cancel()
        self._clear_recently_paid()
