from __future__ import annotations

import logging

from orderdesk.core.session import SessionContext
from orderdesk.model.cart_data import Catalog, CartData, CartValidationError
from orderdesk.schemas.order import Order
from orderdesk.services.api_client import ApiClientError, OrderApiClient
from orderdesk.services.history import CustomerOrderHistory
from orderdesk.services.notifier import Notifier

logger = logging.getLogger(__name__)


class CheckoutService:
    """고객 주문 제출.

    입력 검증 -> 테이블 id 확보 -> 주문 payload -> POST /orders -> 내역 저장, 장바구니 비우기.
    실패는 알림으로만 전달하고 None 반환.
    """
    def __init__(
        self,
        session: SessionContext,
        client: OrderApiClient,
        notifier: Notifier,
        *,
        history: CustomerOrderHistory | None = None,
    ) -> None:
        self.session = session
        self.client = client
        self.notifier = notifier
        self.history = history
        self._submitting = False

    @property
    def submitting(self) -> bool:
        return self._submitting

    async def resolve_table_id(self, table_number: str | None) -> str | None:
        """테이블 번호 -> id. 없으면 생성, 조회 실패 시 테이블 없이 진행."""
        if not table_number:
            return None
        rid = self.session.restaurant_id
        try:
            table_id = await self.client.find_table(rid, table_number)
            if table_id is None:
                table_id = await self.client.create_table(rid, table_number)
                logger.info(f"[주문제출] 테이블 생성: {table_number} -> {table_id}")
            return table_id
        except ApiClientError as e:
            logger.warning(f"[주문제출] 테이블 조회 실패 ({table_number}): {e.message}")
            return None

    async def submit(
        self,
        cart: CartData,
        catalog: Catalog,
        customer_name: str,
        table_number: str | None = None,
    ) -> Order | None:
        if self._submitting:
            self.notifier.warning("Your order is already being placed")
            return None

        if cart.restaurant_id is None:
            cart.restaurant_id = self.session.restaurant_id
        try:
            # 네트워크 호출 전에 검증
            cart.build_order_payload(catalog, customer_name)
        except CartValidationError as e:
            self.notifier.warning(str(e))
            return None

        self._submitting = True
        try:
            table_id = await self.resolve_table_id(table_number)
            payload = cart.build_order_payload(catalog, customer_name, table_id)
            logger.info(f"[주문제출] 주문 데이터: {payload.to_wire()}")
            order = await self.client.create_order(payload)
        except ApiClientError as e:
            logger.error(f"[주문제출] 주문 저장 실패: {e.message}")
            self.notifier.error(f"Failed to place order: {e.message}")
            return None
        finally:
            self._submitting = False

        logger.info(f"[주문제출] 주문 저장 성공: #{order.order_number}")
        if self.history is not None:
            try:
                self.history.record(order)
            except OSError as e:
                # 주문은 이미 접수됨. 내역 저장 실패는 로그만
                logger.error(f"[주문내역] 저장 실패: {e}")
        cart.clear()

        table_info = f" for Table {table_number}" if table_number else ""
        self.notifier.success(f"Order placed successfully!{table_info}")
        return order
