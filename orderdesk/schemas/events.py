from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from orderdesk.schemas.order import Order


class _Event(BaseModel):
    model_config = ConfigDict(extra="allow", frozen=True)


class NewOrderEvent(_Event):
    type: Literal["new_order"]
    order: Order


class OrderUpdatedEvent(_Event):
    type: Literal["order_updated"]
    order: Order


class OrderPaidEvent(_Event):
    type: Literal["order_paid"]
    order: Order


class HeartbeatEvent(_Event):
    type: Literal["heartbeat"]


class ConnectedEvent(_Event):
    # WebSocket 서버는 connection_established 로 인사함
    type: Literal["connected", "connection_established"]


LiveEvent = Annotated[
    Union[NewOrderEvent, OrderUpdatedEvent, OrderPaidEvent, HeartbeatEvent, ConnectedEvent],
    Field(discriminator="type"),
]
OrderEvent = Union[NewOrderEvent, OrderUpdatedEvent, OrderPaidEvent]

KNOWN_EVENT_TYPES = frozenset({
    "new_order", "order_updated", "order_paid", "heartbeat", "connected", "connection_established",
})

_adapter: TypeAdapter[Any] = TypeAdapter(LiveEvent)


def parse_event(data: dict[str, Any]):
    """{type, order} dict -> 이벤트 모델. 알 수 없는 type이면 None."""
    if not isinstance(data, dict) or data.get("type") not in KNOWN_EVENT_TYPES:
        return None
    return _adapter.validate_python(data)
