from __future__ import annotations

import json
import logging
import random
import string
import time
from datetime import datetime, timezone
from pathlib import Path

from pydantic import ValidationError

from orderdesk.core.config import settings
from orderdesk.core.session import SessionContext
from orderdesk.schemas.common import APIModel
from orderdesk.schemas.order import Order, OrderStatus
from orderdesk.services.analytics import TimeRange, filter_history
from orderdesk.services.api_client import ApiClientError, OrderApiClient

logger = logging.getLogger(__name__)


class HistoryEntry(APIModel):
    local_id: str
    backend_id: str | None = None
    order: Order
    saved_at: datetime


def _local_id() -> str:
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=9))
    return f"order_{int(time.time() * 1000)}_{suffix}"


class CustomerOrderHistory:
    """고객별 주문 내역 (로컬 JSON 파일).

    - 파일: {HISTORY_DIR}/customer_orders_{customer_id}.json
    - 최신순 정렬
    - refresh: 서버 id로 조회, 없으면 주문번호로 조회
    """
    def __init__(
        self,
        session: SessionContext,
        client: OrderApiClient | None = None,
        *,
        directory: str | Path | None = None,
    ) -> None:
        if not session.customer_id:
            raise ValueError("customer_id is required for order history")
        self.session = session
        self.client = client
        self.directory = Path(directory or settings.HISTORY_DIR)

    @property
    def path(self) -> Path:
        return self.directory / f"customer_orders_{self.session.customer_id}.json"

    def load(self) -> list[HistoryEntry]:
        if not self.path.exists():
            return []
        try:
            rows = json.loads(self.path.read_text(encoding="utf-8"))
            entries = [HistoryEntry.model_validate(r) for r in rows]
        except (ValueError, ValidationError) as e:
            logger.error(f"[주문내역] 불러오기 실패 {self.path}: {e}")
            return []
        return sorted(entries, key=lambda e: e.order.created_at, reverse=True)

    def _save(self, entries: list[HistoryEntry]) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        rows = [e.model_dump(mode="json", by_alias=True) for e in entries]
        self.path.write_text(json.dumps(rows, ensure_ascii=False, indent=2), encoding="utf-8")

    def record(self, order: Order) -> HistoryEntry:
        entry = HistoryEntry(
            local_id=_local_id(),
            backend_id=order.id,
            order=order,
            saved_at=datetime.now(timezone.utc),
        )
        entries = self.load()
        entries.insert(0, entry)
        self._save(entries)
        logger.info(f"[주문내역] 저장: #{order.order_number}")
        return entry

    async def refresh(self, local_id: str) -> HistoryEntry | None:
        """서버에서 최신 상태를 받아 갱신. 내역에 없는 id면 None."""
        if self.client is None:
            raise RuntimeError("CustomerOrderHistory.refresh requires an api client")
        entries = self.load()
        idx = next((i for i, e in enumerate(entries) if e.local_id == local_id), None)
        if idx is None:
            return None

        entry = entries[idx]
        if entry.backend_id:
            fresh = await self.client.get_public_order(entry.backend_id)
        else:
            fresh = await self.client.get_public_order_by_number(entry.order.order_number)
        if fresh is None:
            raise ApiClientError("Order not found on server. It may have been deleted.", status_code=404)

        updated = entry.model_copy(update={"order": fresh, "backend_id": fresh.id or entry.backend_id})
        entries[idx] = updated
        self._save(entries)
        return updated

    def orders(
        self,
        *,
        status: OrderStatus | str = "all",
        date_range: TimeRange | str = TimeRange.ALL,
        now: datetime | None = None,
    ) -> list[Order]:
        return filter_history([e.order for e in self.load()], status=status, date_range=date_range, now=now)
