from __future__ import annotations

import enum
from datetime import datetime
from typing import Any

from pydantic import Field, field_validator

from orderdesk.schemas.common import APIModel


class OrderStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PREPARING = "preparing"
    READY = "ready"
    SERVED = "served"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    PAID = "paid"
    REFUNDED = "refunded"     # 서버 전용


class OrderType(str, enum.Enum):
    DINE_IN = "dine-in"
    TAKEAWAY = "takeaway"
    DELIVERY = "delivery"


# 정상 진행 순서 (cancelled는 비종료 상태 어디서든 가능)
STATUS_FLOW: tuple[OrderStatus, ...] = (
    OrderStatus.PENDING,
    OrderStatus.CONFIRMED,
    OrderStatus.PREPARING,
    OrderStatus.READY,
    OrderStatus.SERVED,
    OrderStatus.COMPLETED,
)
TERMINAL_STATUSES = frozenset({OrderStatus.COMPLETED, OrderStatus.CANCELLED})


def can_transition(current: OrderStatus, new: OrderStatus) -> bool:
    if current in TERMINAL_STATUSES:
        return False
    if new == OrderStatus.CANCELLED:
        return True
    return STATUS_FLOW.index(new) > STATUS_FLOW.index(current)


class MenuItemRef(APIModel):
    id: str = Field(alias="_id")
    name: str | None = None
    price: float | None = None


class TableRef(APIModel):
    id: str | None = Field(default=None, alias="_id")
    table_number: str

    @field_validator("table_number", mode="before")
    @classmethod
    def _number_as_str(cls, v: Any) -> Any:
        # 서버가 숫자로 내려주는 경우가 있음
        return str(v) if isinstance(v, (int, float)) else v


class OrderItem(APIModel):
    # 대시보드 응답은 populate된 객체, 고객 응답은 id 문자열
    menu_item: MenuItemRef | str | None = None
    name: str | None = None
    quantity: int = Field(ge=1)
    price: float = Field(ge=0)
    is_takeaway: bool = False
    special_instructions: str | None = None

    @property
    def item_name(self) -> str:
        if isinstance(self.menu_item, MenuItemRef) and self.menu_item.name:
            return self.menu_item.name
        return self.name or "Unknown Item"

    @property
    def line_total(self) -> float:
        return self.price * self.quantity


class Order(APIModel):
    id: str = Field(alias="_id")
    order_number: str
    restaurant: str | dict[str, Any] | None = None
    table: TableRef | None = None
    customer_name: str = ""
    customer_phone: str | None = None
    items: list[OrderItem] = Field(default_factory=list)
    total_amount: float = 0
    status: OrderStatus = OrderStatus.PENDING
    payment_status: PaymentStatus = PaymentStatus.PENDING
    order_type: OrderType = OrderType.DINE_IN
    customer_notes: str | None = None
    preparation_time: int | None = None
    served_at: datetime | None = None
    completed_at: datetime | None = None
    paid_at: datetime | None = None
    created_at: datetime
    updated_at: datetime | None = None

    @field_validator("order_number", mode="before")
    @classmethod
    def _order_number_as_str(cls, v: Any) -> Any:
        return str(v) if isinstance(v, int) else v

    @property
    def restaurant_id(self) -> str | None:
        if isinstance(self.restaurant, dict):
            rid = self.restaurant.get("_id") or self.restaurant.get("id")
            return str(rid) if rid else None
        return self.restaurant

    @property
    def table_number(self) -> str | None:
        return self.table.table_number if self.table else None


class OrderLinePayload(APIModel):
    menu_item: str
    quantity: int = Field(ge=1)
    price: float = Field(ge=0)
    special_instructions: str = ""


class OrderPayload(APIModel):
    """POST /orders body. totalAmount = sum(price * quantity)."""
    restaurant: str
    customer_name: str
    table: str | None = None
    items: list[OrderLinePayload]
    total_amount: float
    order_type: OrderType

    def to_wire(self) -> dict:
        # table은 null이어도 키를 보냄
        return self.model_dump(mode="json", by_alias=True)
