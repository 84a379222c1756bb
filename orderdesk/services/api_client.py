from __future__ import annotations

from typing import Any

import httpx
from pydantic import ValidationError

from orderdesk.core.config import settings
from orderdesk.core.session import SessionContext
from orderdesk.schemas.order import Order, OrderPayload, OrderStatus


class ApiClientError(RuntimeError):
    """REST 호출 실패. message는 화면에 그대로 띄울 수 있는 문장."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


def _error_message(r: httpx.Response) -> str:
    # 응답 body의 에러 문구 우선, 없으면 HTTP 코드
    try:
        body = r.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        for key in ("details", "error", "detail", "message"):
            v = body.get(key)
            if isinstance(v, str) and v.strip():
                return v.strip()
    return f"HTTP {r.status_code}"


class OrderApiClient:
    """주문 백엔드 REST 클라이언트.

    - 대시보드 요청은 Bearer 토큰으로 보호
    - 고객용(public) 요청은 토큰 없이 호출
    - 응답의 {"order": {...}} / {"orders": [...]} 래핑을 벗겨서 Order로 반환
    """
    def __init__(
        self,
        session: SessionContext,
        *,
        base_url: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.session = session
        self.base = (base_url or settings.API_BASE_URL).rstrip("/")
        # 테스트에서 MockTransport 주입
        self._transport = transport

    def _client(self, timeout_s: float) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=timeout_s, transport=self._transport)

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
        timeout_s: float | None = None,
        auth: bool = True,
    ) -> httpx.Response:
        timeout_s = timeout_s or settings.REQUEST_TIMEOUT_S
        headers = self.session.auth_headers() if auth else {"Content-Type": "application/json"}
        url = f"{self.base}{path}"
        try:
            async with self._client(timeout_s) as c:
                r = await c.request(method, url, headers=headers, json=json, params=params)
        except httpx.TimeoutException as e:
            raise ApiClientError(f"Request timed out after {timeout_s:g}s") from e
        except httpx.HTTPError as e:
            raise ApiClientError(f"Network error: {e}") from e
        return r

    @staticmethod
    def _json(r: httpx.Response) -> Any:
        if not 200 <= r.status_code < 300:
            raise ApiClientError(_error_message(r), status_code=r.status_code)
        try:
            return r.json()
        except ValueError as e:
            raise ApiClientError("Invalid JSON in server response", status_code=r.status_code) from e

    @staticmethod
    def _validate_order(raw: Any, r: httpx.Response) -> Order:
        # 2xx라도 주문 형식이 깨졌으면 실패로 취급
        try:
            return Order.model_validate(raw)
        except ValidationError as e:
            raise ApiClientError("Invalid order in server response", status_code=r.status_code) from e

    def _order(self, r: httpx.Response) -> Order:
        data = self._json(r)
        raw = data.get("order") if isinstance(data, dict) and "order" in data else data
        if not isinstance(raw, dict):
            raise ApiClientError("order missing in server response", status_code=r.status_code)
        return self._validate_order(raw, r)

    # -----------------------
    # Dashboard
    # -----------------------
    async def list_orders(self, status: str = "all", timeout_s: float | None = None) -> list[Order]:
        r = await self._request(
            "GET", "/orders", params={"status": status},
            timeout_s=timeout_s or settings.FETCH_TIMEOUT_S,
        )
        data = self._json(r)
        rows = data.get("orders") if isinstance(data, dict) else data
        return [self._validate_order(o, r) for o in rows or []]

    async def count_pending_orders(self) -> int:
        return len(await self.list_orders(status=OrderStatus.PENDING.value))

    async def update_status(self, order_id: str, status: OrderStatus) -> Order:
        r = await self._request("PUT", f"/orders/{order_id}/status", json={"status": status.value})
        return self._order(r)

    async def mark_paid(self, order_id: str) -> Order:
        r = await self._request("PUT", f"/orders/{order_id}/pay")
        return self._order(r)

    async def mark_unpaid(self, order_id: str) -> Order:
        r = await self._request("PUT", f"/orders/{order_id}/unpay")
        return self._order(r)

    # -----------------------
    # Customer (public)
    # -----------------------
    async def create_order(self, payload: OrderPayload) -> Order:
        r = await self._request("POST", "/orders", json=payload.to_wire(), auth=False)
        return self._order(r)

    async def find_table(self, restaurant_id: str, table_number: str) -> str | None:
        r = await self._request(
            "GET", "/tables",
            params={"restaurant": restaurant_id, "tableNumber": table_number},
            auth=False,
        )
        data = self._json(r)
        tables = data.get("tables") if isinstance(data, dict) else None
        if not tables:
            return None
        return tables[0].get("_id")

    async def create_table(self, restaurant_id: str, table_number: str, capacity: int = 4) -> str:
        body: dict[str, Any] = {
            "restaurant": restaurant_id,
            "tableNumber": int(table_number) if table_number.isdigit() else table_number,
            "capacity": capacity,
            "status": "occupied",
        }
        r = await self._request("POST", "/tables", json=body, auth=False)
        data = self._json(r)
        table = data.get("table") if isinstance(data, dict) else None
        if not isinstance(table, dict) or not table.get("_id"):
            raise ApiClientError("table missing in server response", status_code=r.status_code)
        return table["_id"]

    async def get_public_order(self, order_id: str) -> Order | None:
        r = await self._request("GET", f"/public/orders/{order_id}", auth=False)
        if r.status_code == 404:
            return None
        return self._order(r)

    async def get_public_order_by_number(self, order_number: str) -> Order | None:
        r = await self._request("GET", f"/public/orders/by-number/{order_number}", auth=False)
        if r.status_code == 404:
            return None
        return self._order(r)
