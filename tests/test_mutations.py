from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import httpx
import pytest

from orderdesk.schemas.order import Order, OrderStatus, PaymentStatus
from orderdesk.services.analytics import OrderFilter, PaymentTab, filter_orders
from orderdesk.services.api_client import ApiClientError, OrderApiClient
from orderdesk.services.mutations import MutationError, OrderActions, with_optimistic_update
from orderdesk.services.order_store import OrderStore


class _GatedClient:
    """
    Fake backend: every call waits on `gate` and then either fails
    with `error` or returns the stored order with `update` applied.
    """

    def __init__(self, store: OrderStore) -> None:
        self.store = store
        self.gate = asyncio.Event()
        self.error: ApiClientError | None = None
        self.calls: list[tuple[str, str]] = []

    async def _finish(self, name: str, order_id: str, **update) -> Order:
        self.calls.append((name, order_id))
        await self.gate.wait()
        if self.error is not None:
            raise self.error
        base = self.store.get(order_id)
        return base.model_copy(update=update)

    async def update_status(self, order_id: str, status: OrderStatus) -> Order:
        return await self._finish("status", order_id, status=status)

    async def mark_paid(self, order_id: str) -> Order:
        return await self._finish(
            "pay",
            order_id,
            payment_status=PaymentStatus.PAID,
            paid_at=datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc),
        )

    async def mark_unpaid(self, order_id: str) -> Order:
        return await self._finish("unpay", order_id, payment_status=PaymentStatus.PENDING, paid_at=None)


def _setup(make_order, *orders):
    store = OrderStore()
    store.replace_all("r1", list(orders) or [make_order("o1")])
    client = _GatedClient(store)
    return store, client


def test_mark_as_paid_failure_rolls_back_end_to_end(make_order, notifier):
    async def scenario():
        store, client = _setup(make_order, make_order("o0"), make_order("o1"))
        actions = OrderActions(store, client, notifier, recently_paid_clear_s=60)
        before = store.get("o1")

        task = asyncio.create_task(actions.mark_as_paid("o1"))
        await asyncio.sleep(0)

        # optimistic window: already paid and at the front of the paid tab
        assert store.get("o1").payment_status == PaymentStatus.PAID
        assert [o.id for o in filter_orders(store.snapshot(), OrderFilter(payment_tab=PaymentTab.PAID))] == ["o1"]
        assert store.snapshot()[0].id == "o1"
        assert actions.recently_paid_id == "o1"

        client.error = ApiClientError("Payment service unavailable", status_code=503)
        client.gate.set()
        result = await task

        assert result is None
        assert store.get("o1") is before
        assert store.get("o1").model_dump() == before.model_dump()
        unpaid = filter_orders(store.snapshot(), OrderFilter(payment_tab=PaymentTab.UNPAID))
        assert "o1" in [o.id for o in unpaid]
        assert notifier.of("error") == ["Failed to mark as paid: Payment service unavailable"]
        actions.close()

    asyncio.run(scenario())


def test_mark_as_paid_success_takes_server_copy(make_order, notifier):
    async def scenario():
        store, client = _setup(make_order)
        actions = OrderActions(store, client, notifier, recently_paid_clear_s=60)
        client.gate.set()

        result = await actions.mark_as_paid("o1")

        assert result is not None
        assert store.get("o1") is result
        assert store.get("o1").paid_at == datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)
        assert notifier.of("success") == ["Order marked as paid!"]
        actions.close()

    asyncio.run(scenario())


def test_status_failure_restores_exact_snapshot(make_order, notifier):
    async def scenario():
        store, client = _setup(make_order, make_order("o1", status="preparing", customer_notes="no onions"))
        actions = OrderActions(store, client, notifier)
        before = store.get("o1")
        client.error = ApiClientError("Order is locked", status_code=409)
        client.gate.set()

        result = await actions.update_status("o1", "ready")

        assert result is None
        assert store.get("o1") is before
        assert store.get("o1").customer_notes == "no onions"
        assert notifier.of("error") == ["Failed to update order: Order is locked"]

    asyncio.run(scenario())


def test_status_success(make_order, notifier):
    async def scenario():
        store, client = _setup(make_order)
        actions = OrderActions(store, client, notifier)
        client.gate.set()

        order = await actions.update_status("o1", OrderStatus.CONFIRMED)

        assert order.status == OrderStatus.CONFIRMED
        assert store.get("o1").status == OrderStatus.CONFIRMED
        assert client.calls == [("status", "o1")]
        assert notifier.of("success") == ["Order updated to confirmed"]

    asyncio.run(scenario())


def test_mark_as_unpaid_failure_reverts_to_paid(make_order, notifier):
    async def scenario():
        store, client = _setup(make_order, make_order("o1", payment="paid"))
        actions = OrderActions(store, client, notifier)
        client.error = ApiClientError("HTTP 500", status_code=500)
        client.gate.set()

        await actions.mark_as_unpaid("o1")

        assert store.get("o1").payment_status == PaymentStatus.PAID
        assert notifier.of("error") == ["Failed to mark as unpaid: HTTP 500"]

    asyncio.run(scenario())


def test_second_mutation_snapshots_after_first_apply(make_order):
    async def scenario():
        store = OrderStore()
        store.replace_all("r1", [make_order("o1")])
        first_gate, second_gate = asyncio.Event(), asyncio.Event()

        async def first_call():
            await first_gate.wait()
            return store.get("o1")

        async def second_call():
            await second_gate.wait()
            raise ApiClientError("rejected")

        first = asyncio.create_task(with_optimistic_update(
            store, "o1", lambda o: o.model_copy(update={"status": OrderStatus.CONFIRMED}), first_call,
        ))
        await asyncio.sleep(0)
        second = asyncio.create_task(with_optimistic_update(
            store, "o1", lambda o: o.model_copy(update={"status": OrderStatus.PREPARING}), second_call,
        ))
        await asyncio.sleep(0)

        second_gate.set()
        with pytest.raises(MutationError):
            await second

        # rollback keeps the first mutation's optimistic state
        assert store.get("o1").status == OrderStatus.CONFIRMED

        first_gate.set()
        await first

    asyncio.run(scenario())


def test_mutation_on_missing_order_is_noop(make_order, notifier):
    async def scenario():
        store, client = _setup(make_order)
        actions = OrderActions(store, client, notifier)

        assert await actions.mark_as_paid("nope") is None
        assert await actions.update_status("nope", "ready") is None
        assert await actions.mark_as_unpaid("nope") is None
        assert client.calls == []
        assert notifier.messages == []
        assert actions.recently_paid_id is None

    asyncio.run(scenario())


def test_response_for_order_removed_meanwhile_is_discarded(make_order):
    async def scenario():
        store = OrderStore()
        store.replace_all("r1", [make_order("o1")])
        gate = asyncio.Event()

        async def call():
            await gate.wait()
            return make_order("o1", status="confirmed")

        task = asyncio.create_task(with_optimistic_update(
            store, "o1", lambda o: o.model_copy(update={"status": OrderStatus.CONFIRMED}), call,
        ))
        await asyncio.sleep(0)
        store.replace_all("r1", [])
        gate.set()
        await task

        assert len(store) == 0

    asyncio.run(scenario())


def test_backward_transition_rejected_before_network(make_order, notifier):
    async def scenario():
        store, client = _setup(make_order, make_order("o1", status="ready"))
        actions = OrderActions(store, client, notifier)

        assert await actions.update_status("o1", "pending") is None
        assert await actions.update_status("o1", "ready") is store.get("o1")

        assert client.calls == []
        assert store.get("o1").status == OrderStatus.READY
        assert notifier.of("warning") == ["Cannot change order #ORD-001 from ready to pending"]

    asyncio.run(scenario())


def test_cancel_allowed_until_terminal(make_order, notifier):
    async def scenario():
        store, client = _setup(make_order, make_order("o1", status="served"), make_order("o2", status="completed"))
        actions = OrderActions(store, client, notifier)
        client.gate.set()

        assert (await actions.update_status("o1", "cancelled")).status == OrderStatus.CANCELLED
        assert await actions.update_status("o2", "cancelled") is None
        assert client.calls == [("status", "o1")]

    asyncio.run(scenario())


def test_recently_paid_flag_clears_itself(make_order, notifier):
    async def scenario():
        store, client = _setup(make_order)
        actions = OrderActions(store, client, notifier, recently_paid_clear_s=0.01)
        client.gate.set()

        await actions.mark_as_paid("o1")
        assert actions.recently_paid_id == "o1"
        await asyncio.sleep(0.05)
        assert actions.recently_paid_id is None

    asyncio.run(scenario())


def test_malformed_success_response_rolls_back(make_order, notifier, dashboard_session):
    def handler(request: httpx.Request) -> httpx.Response:
        # 200이지만 orderNumber / createdAt 누락
        return httpx.Response(200, json={"order": {"_id": "o1"}})

    async def scenario():
        store = OrderStore()
        store.replace_all("r1", [make_order("o1")])
        client = OrderApiClient(
            dashboard_session, base_url="http://testserver/api", transport=httpx.MockTransport(handler),
        )
        actions = OrderActions(store, client, notifier, recently_paid_clear_s=60)
        before = store.get("o1")

        result = await actions.mark_as_paid("o1")

        assert result is None
        assert store.get("o1") is before
        assert store.get("o1").payment_status == PaymentStatus.PENDING
        assert actions.recently_paid_id is None
        actions.close()

    asyncio.run(scenario())

    assert notifier.of("error") == ["Failed to mark as paid: Invalid order in server response"]


def test_failed_payment_clears_recently_paid_flag(make_order, notifier):
    async def scenario():
        store, client = _setup(make_order)
        actions = OrderActions(store, client, notifier, recently_paid_clear_s=60)
        client.error = ApiClientError("HTTP 502", status_code=502)
        client.gate.set()

        await actions.mark_as_paid("o1")

        assert actions.recently_paid_id is None
        assert store.get("o1").payment_status == PaymentStatus.PENDING

    asyncio.run(scenario())


def test_refunded_order_payment_is_locked(make_order, notifier):
    async def scenario():
        store, client = _setup(make_order, make_order("o1", payment="refunded"))
        actions = OrderActions(store, client, notifier)
        client.gate.set()
        before = store.get("o1")

        assert await actions.mark_as_paid("o1") is None
        assert await actions.mark_as_unpaid("o1") is None

        assert store.get("o1") is before
        assert client.calls == []
        assert actions.recently_paid_id is None

    asyncio.run(scenario())

    assert notifier.of("warning") == ["Cannot change payment of refunded order #ORD-001"] * 2
    assert notifier.of("error") == []
