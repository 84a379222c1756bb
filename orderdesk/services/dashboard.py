from __future__ import annotations

import asyncio
import contextlib
import logging
from datetime import datetime
from typing import Any

from orderdesk.core.session import SessionContext
from orderdesk.schemas.events import ConnectedEvent, NewOrderEvent, OrderPaidEvent, OrderUpdatedEvent
from orderdesk.schemas.order import Order
from orderdesk.schemas.stats import PaymentTabCounts, StatsSnapshot
from orderdesk.services.analytics import (
    DateRange, OrderFilter, TimeRange, build_stats, count_by_payment_tab, filter_orders, paid_revenue,
)
from orderdesk.services.api_client import ApiClientError, OrderApiClient
from orderdesk.services.live_channel import ConnectionState, LiveUpdateChannel
from orderdesk.services.mutations import OrderActions
from orderdesk.services.notifier import LoggingNotifier, Notifier
from orderdesk.services.order_store import OrderStore

logger = logging.getLogger(__name__)


class DashboardSession:
    """매장 대시보드 한 화면의 수명 단위.

    async with DashboardSession(session) as d:
        - 주문 목록 로드
        - 실시간 채널 오픈 (이벤트 -> 스토어)
        - d.actions 로 상태/결제 변경
    블록을 벗어나면 채널과 타이머를 정리.
    """
    def __init__(
        self,
        session: SessionContext,
        *,
        client: OrderApiClient | None = None,
        notifier: Notifier | None = None,
        channel_kwargs: dict[str, Any] | None = None,
    ) -> None:
        self.session = session
        self.client = client or OrderApiClient(session)
        self.notifier = notifier or LoggingNotifier()
        self.store = OrderStore(self.client)
        self.actions = OrderActions(self.store, self.client, self.notifier)
        self.channel = LiveUpdateChannel(
            session,
            self._on_event,
            on_state_change=self._on_state_change,
            **(channel_kwargs or {}),
        )
        self.pending_count = 0
        self._pending_task: asyncio.Task | None = None

    @property
    def connection_state(self) -> ConnectionState:
        return self.channel.state

    async def start(self) -> None:
        try:
            await self.store.load(self.session.restaurant_id)
        except ApiClientError as e:
            self.notifier.error(f"Failed to load orders: {e.message}")
        await self.refresh_pending_count()
        self.channel.open()

    async def stop(self) -> None:
        await self.channel.close()
        task, self._pending_task = self._pending_task, None
        if task is not None and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self.actions.close()

    async def __aenter__(self) -> DashboardSession:
        await self.start()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.stop()

    async def reload(self) -> None:
        try:
            await self.store.load(self.session.restaurant_id)
        except ApiClientError as e:
            self.notifier.error(f"Failed to load orders: {e.message}")

    async def refresh_pending_count(self) -> int:
        try:
            self.pending_count = await self.client.count_pending_orders()
        except ApiClientError as e:
            logger.warning(f"[대시보드] 대기 주문 수 조회 실패: {e.message}")
            self.pending_count = 0
        return self.pending_count

    async def _on_event(self, event: Any) -> None:
        if isinstance(event, ConnectedEvent):
            logger.info("[대시보드] 실시간 연결 확인")
            return
        if isinstance(event, NewOrderEvent):
            logger.info(f"[대시보드] 새 주문: #{event.order.order_number}")
        elif isinstance(event, OrderPaidEvent):
            logger.info(f"[대시보드] 결제 완료: #{event.order.order_number}")
        elif isinstance(event, OrderUpdatedEvent):
            logger.info(f"[대시보드] 주문 변경: #{event.order.order_number}")
        self.store.apply_event(event)
        self._schedule_pending_refresh()

    def _schedule_pending_refresh(self) -> None:
        """대기 주문 수 갱신은 백그라운드로. 이벤트 수신 루프를 막지 않음.

        진행 중인 갱신이 있으면 취소하고 최신 요청 하나만 유지.
        """
        if self._pending_task is not None and not self._pending_task.done():
            self._pending_task.cancel()
        self._pending_task = asyncio.get_running_loop().create_task(self.refresh_pending_count())
        self._pending_task.add_done_callback(self._pending_refresh_done)

    def _pending_refresh_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"[대시보드] 대기 주문 수 갱신 실패: {exc!r}")

    def _on_state_change(self, state: ConnectionState) -> None:
        if state == ConnectionState.DISCONNECTED:
            logger.warning(f"[대시보드] 실시간 연결 끊김 (restaurant={self.session.restaurant_id})")

    # -----------------------
    # Views
    # -----------------------
    def orders(self, spec: OrderFilter | None = None) -> list[Order]:
        return filter_orders(self.store.snapshot(), spec or OrderFilter())

    def tab_counts(self) -> PaymentTabCounts:
        return count_by_payment_tab(self.store.snapshot())

    def total_revenue(self) -> float:
        return paid_revenue(self.store.snapshot())

    def stats(
        self,
        time_range: TimeRange | str | DateRange = TimeRange.TODAY,
        *,
        now: datetime | None = None,
        custom_range: DateRange | None = None,
    ) -> StatsSnapshot:
        return build_stats(self.store.snapshot(), time_range, now=now, custom_range=custom_range)
