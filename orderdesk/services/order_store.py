from __future__ import annotations

import logging
from typing import Callable

from orderdesk.schemas.events import OrderEvent
from orderdesk.schemas.order import Order
from orderdesk.services.api_client import OrderApiClient

logger = logging.getLogger(__name__)

ChangeListener = Callable[[list[Order]], None]


class OrderStore:
    """현재 매장의 주문 목록 (메모리).

    쓰기는 load / apply_event / 낙관적 변경(mutations)으로만 한다.
    모든 쓰기는 id 기준 last-write-wins upsert (부분 필드 병합 없음).
    """
    def __init__(self, client: OrderApiClient | None = None) -> None:
        self.client = client
        self.restaurant_id: str | None = None
        self._orders: list[Order] = []
        self._listeners: list[ChangeListener] = []

    def __len__(self) -> int:
        return len(self._orders)

    def __contains__(self, order_id: object) -> bool:
        return self._index(order_id) is not None

    def subscribe(self, listener: ChangeListener) -> Callable[[], None]:
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener)

    def _notify(self) -> None:
        snap = self.snapshot()
        for listener in list(self._listeners):
            listener(snap)

    def _index(self, order_id: object) -> int | None:
        for i, o in enumerate(self._orders):
            if o.id == order_id:
                return i
        return None

    def _owned(self, order: Order) -> bool:
        # restaurant 정보가 없는 주문은 현재 매장 것으로 간주
        rid = order.restaurant_id
        return self.restaurant_id is None or rid is None or rid == self.restaurant_id

    # -----------------------
    # Read
    # -----------------------
    def snapshot(self) -> list[Order]:
        return list(self._orders)

    def get(self, order_id: str) -> Order | None:
        i = self._index(order_id)
        return self._orders[i] if i is not None else None

    # -----------------------
    # Write
    # -----------------------
    async def load(self, restaurant_id: str) -> list[Order]:
        """GET /orders?status=all 로 전체 교체."""
        if self.client is None:
            raise RuntimeError("OrderStore.load requires an api client")
        orders = await self.client.list_orders(status="all")
        self.replace_all(restaurant_id, orders)
        logger.info(f"[주문목록] {len(self._orders)}건 로드 (restaurant={restaurant_id})")
        return self.snapshot()

    def replace_all(self, restaurant_id: str, orders: list[Order]) -> None:
        self.restaurant_id = restaurant_id
        self._orders = [o for o in orders if self._owned(o)]
        self._notify()

    def apply_event(self, event: OrderEvent) -> None:
        order = event.order
        if not self._owned(order):
            logger.debug(f"[주문목록] 다른 매장 주문 무시: {order.order_number}")
            return
        i = self._index(order.id)
        if i is None:
            # new_order든 update든 모르는 id면 맨 앞에 추가
            self._orders.insert(0, order)
        else:
            self._orders[i] = order
        self._notify()

    def put(self, order: Order, *, to_front: bool = False) -> bool:
        """기존 주문 교체. 없는 id면 아무것도 하지 않고 False."""
        i = self._index(order.id)
        if i is None:
            return False
        if to_front:
            del self._orders[i]
            self._orders.insert(0, order)
        else:
            self._orders[i] = order
        self._notify()
        return True
