from __future__ import annotations

import os
from datetime import datetime, timezone
from typing import Any, Dict, List

import pytest

os.environ.setdefault("API_BASE_URL", "http://testserver/api")

from orderdesk.core.session import SessionContext  # noqa: E402
from orderdesk.schemas.order import Order  # noqa: E402
from orderdesk.services.notifier import Notifier  # noqa: E402


class RecordingNotifier(Notifier):
    """
    Collects every toast the core would have shown.
    """

    def __init__(self) -> None:
        self.messages: List[tuple[str, str]] = []

    def success(self, message: str) -> None:
        self.messages.append(("success", message))

    def error(self, message: str) -> None:
        self.messages.append(("error", message))

    def warning(self, message: str) -> None:
        self.messages.append(("warning", message))

    def info(self, message: str) -> None:
        self.messages.append(("info", message))

    def of(self, kind: str) -> List[str]:
        return [m for k, m in self.messages if k == kind]


def order_dict(
    order_id: str = "o1",
    *,
    number: str = "ORD-001",
    status: str = "pending",
    payment: str = "pending",
    customer: str = "Awa",
    items: List[Dict[str, Any]] | None = None,
    total: float | None = None,
    table: str | None = None,
    restaurant: str = "r1",
    created_at: datetime | None = None,
    **extra: Any,
) -> Dict[str, Any]:
    """
    Backend-shaped (camelCase) order document.
    """
    if items is None:
        items = [{"menuItem": {"_id": "m1", "name": "Attieke"}, "quantity": 1, "price": 1000}]
    if total is None:
        total = sum(i["quantity"] * i["price"] for i in items)
    created = created_at or datetime(2026, 10, 18, 11, 0, tzinfo=timezone.utc)
    data: Dict[str, Any] = {
        "_id": order_id,
        "orderNumber": number,
        "restaurant": restaurant,
        "customerName": customer,
        "items": items,
        "totalAmount": total,
        "status": status,
        "paymentStatus": payment,
        "orderType": "dine-in" if table else "takeaway",
        "createdAt": created.isoformat().replace("+00:00", "Z"),
        "updatedAt": created.isoformat().replace("+00:00", "Z"),
    }
    if table is not None:
        data["table"] = {"_id": f"t-{table}", "tableNumber": table}
    data.update(extra)
    return data


@pytest.fixture()
def make_order():
    def _make(order_id: str = "o1", **kwargs: Any) -> Order:
        return Order.model_validate(order_dict(order_id, **kwargs))

    return _make


@pytest.fixture()
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture()
def dashboard_session() -> SessionContext:
    return SessionContext(restaurant_id="r1", token="tok-123")


@pytest.fixture()
def customer_session() -> SessionContext:
    return SessionContext(restaurant_id="r1", customer_id="customer_1_abc")
