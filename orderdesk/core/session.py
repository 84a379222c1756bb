from __future__ import annotations

import random
import string
import time
from dataclasses import dataclass


def new_customer_id() -> str:
    """customer_<ms>_<9자리 랜덤> 형식의 고객 식별자 생성."""
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=9))
    return f"customer_{int(time.time() * 1000)}_{suffix}"


@dataclass(frozen=True)
class SessionContext:
    """시작 시 한 번 결정되어 모든 호출에 명시적으로 전달되는 세션 값.

    - restaurant_id: 현재 매장(대시보드) 또는 주문 대상 매장(고객)
    - token: 대시보드 인증 토큰(고객 화면은 None)
    - customer_id: 고객 주문 내역 키(대시보드는 None)
    """
    restaurant_id: str
    token: str | None = None
    customer_id: str | None = None

    def auth_headers(self) -> dict[str, str]:
        h = {"Content-Type": "application/json"}
        if self.token:
            h["Authorization"] = f"Bearer {self.token}"
        return h

    def for_customer(self, customer_id: str | None = None) -> SessionContext:
        return SessionContext(
            restaurant_id=self.restaurant_id,
            token=self.token,
            customer_id=customer_id or self.customer_id or new_customer_id(),
        )
