from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Mapping

from orderdesk.schemas.menu import CatalogItem
from orderdesk.schemas.order import OrderLinePayload, OrderPayload, OrderType

logger = logging.getLogger(__name__)

Catalog = Mapping[str, CatalogItem]
# 매장/포장 선택 창. True=포장, False=매장, None=취소
TakeawayPrompt = Callable[[CatalogItem], "bool | None"]


class CartError(ValueError):
    pass


class CartValidationError(CartError):
    """네트워크 호출 전에 걸러지는 입력 오류 (화면에 경고로 표시)."""


class TakeawayChoiceRequired(CartError):
    """포장 가능한 메뉴를 처음 담을 때 매장/포장 선택이 필요함."""

    def __init__(self, item_id: str) -> None:
        super().__init__(f"Choose dine-in or takeaway for item {item_id}")
        self.item_id = item_id


@dataclass
class CartLine:
    item_id: str
    quantity: int
    is_takeaway: bool   # 처음 담을 때 고정


class CartData:
    def __init__(self, restaurant_id: str | None = None):
        self.restaurant_id = restaurant_id
        self.lines: dict[str, CartLine] = {}  # item_id -> CartLine (메뉴당 1줄)

    def add_line(
        self,
        item: CatalogItem,
        is_takeaway: bool | None = None,
        *,
        prompt: TakeawayPrompt | None = None,
    ) -> CartLine | None:
        """장바구니 담기.

        - 포장 불가 메뉴에 포장 요청 -> CartValidationError (상태 변경 없음)
        - 이미 담긴 메뉴 -> 수량 +1, 처음 고른 매장/포장 유지
        - 포장 가능 메뉴를 처음 담을 때 선택이 없으면 prompt로 물어봄
          (prompt 없으면 TakeawayChoiceRequired, 취소하면 None)
        """
        if is_takeaway and not item.takeaway_eligible:
            raise CartValidationError("This item is not available for takeaway")

        existing = self.lines.get(item.id)
        if existing:
            existing.quantity += 1
            return existing

        if is_takeaway is None:
            if item.takeaway_eligible:
                if prompt is None:
                    raise TakeawayChoiceRequired(item.id)
                is_takeaway = prompt(item)
                if is_takeaway is None:
                    return None
            else:
                is_takeaway = False

        line = CartLine(item_id=item.id, quantity=1, is_takeaway=bool(is_takeaway))
        self.lines[item.id] = line
        logger.info(f"[장바구니] 추가: {item.name} (takeaway={line.is_takeaway})")
        return line

    def remove_line(self, item_id: str) -> CartLine | None:
        """수량 -1, 0이 되면 줄 삭제. 없는 메뉴면 무시."""
        line = self.lines.get(item_id)
        if line is None:
            return None
        if line.quantity > 1:
            line.quantity -= 1
            return line
        del self.lines[item_id]
        return None

    def quantity_of(self, item_id: str) -> int:
        line = self.lines.get(item_id)
        return line.quantity if line else 0

    def get_item_count(self) -> int:
        return sum(line.quantity for line in self.lines.values())

    def is_empty(self) -> bool:
        return not self.lines

    def line_price(self, line: CartLine, catalog: Catalog) -> float:
        item = catalog.get(line.item_id)
        if item is None:
            logger.warning(f"[장바구니] 메뉴 정보 없음: {line.item_id}")
            return 0
        return item.unit_price(line.is_takeaway)

    def compute_total(self, catalog: Catalog) -> float:
        return sum(self.line_price(line, catalog) * line.quantity for line in self.lines.values())

    def build_order_payload(
        self,
        catalog: Catalog,
        customer_name: str,
        table_id: str | None = None,
    ) -> OrderPayload:
        name = (customer_name or "").strip()
        if not name:
            raise CartValidationError("Please enter your name")
        if self.is_empty():
            raise CartValidationError("Your cart is empty")
        if not self.restaurant_id:
            raise CartValidationError("Restaurant is not set")

        items = []
        for line in self.lines.values():
            items.append(OrderLinePayload(
                menu_item=line.item_id,
                quantity=line.quantity,
                price=self.line_price(line, catalog),
                special_instructions="Takeaway" if line.is_takeaway else "",
            ))

        return OrderPayload(
            restaurant=self.restaurant_id,
            customer_name=name,
            table=table_id,
            items=items,
            total_amount=sum(i.price * i.quantity for i in items),
            order_type=OrderType.DINE_IN if table_id else OrderType.TAKEAWAY,
        )

    def clear(self):
        """주문 완료 후 장바구니 초기화"""
        self.lines = {}
