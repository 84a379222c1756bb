from __future__ import annotations

import calendar
import enum
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Iterable

from orderdesk.schemas.order import Order, OrderStatus, PaymentStatus
from orderdesk.schemas.stats import BestSellerRow, PaymentTabCounts, StatsSnapshot, TopCustomerRow


class PaymentTab(str, enum.Enum):
    UNPAID = "unpaid"
    PAID = "paid"


class TimeRange(str, enum.Enum):
    SIX_HOURS = "6hours"
    TODAY = "today"
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"
    CUSTOM = "custom"
    ALL = "all"


DateRange = tuple[date, date]


@dataclass(frozen=True)
class OrderFilter:
    payment_tab: PaymentTab = PaymentTab.UNPAID
    status: OrderStatus | str = "all"
    table_query: str = ""


# -----------------------
# 결제 탭 / 목록 필터
# -----------------------
def matches_payment_tab(order: Order, tab: PaymentTab | str) -> bool:
    # refunded는 어느 탭에도 속하지 않음
    if PaymentTab(tab) == PaymentTab.PAID:
        return order.payment_status == PaymentStatus.PAID
    return order.payment_status == PaymentStatus.PENDING


def matches_status(order: Order, status: OrderStatus | str) -> bool:
    return status == "all" or order.status == OrderStatus(status)


def matches_table(order: Order, query: str) -> bool:
    if not query:
        return True
    if not order.table_number:
        return False
    return query.lower() in order.table_number.lower()


def filter_orders(orders: Iterable[Order], spec: OrderFilter) -> list[Order]:
    return [
        o for o in orders
        if matches_payment_tab(o, spec.payment_tab)
        and matches_status(o, spec.status)
        and matches_table(o, spec.table_query)
    ]


def count_by_payment_tab(orders: Iterable[Order]) -> PaymentTabCounts:
    orders = list(orders)
    return PaymentTabCounts(
        unpaid=sum(1 for o in orders if matches_payment_tab(o, PaymentTab.UNPAID)),
        paid=sum(1 for o in orders if matches_payment_tab(o, PaymentTab.PAID)),
    )


def paid_revenue(orders: Iterable[Order]) -> float:
    return sum(o.total_amount for o in orders if o.payment_status == PaymentStatus.PAID)


# -----------------------
# 기간 필터
# -----------------------
def _aware(dt: datetime) -> datetime:
    # tz 없는 값은 로컬 시간으로 해석
    return dt if dt.tzinfo is not None else dt.astimezone()


def _months_back(d: date, months: int) -> date:
    """달력 기준 n개월 전 같은 날. 말일이 없으면 그 달 말일로."""
    y, m = divmod(d.year * 12 + (d.month - 1) - months, 12)
    m += 1
    return date(y, m, min(d.day, calendar.monthrange(y, m)[1]))


def time_range_bounds(
    time_range: TimeRange | str,
    *,
    now: datetime | None = None,
    custom_range: DateRange | None = None,
) -> tuple[datetime | None, datetime | None]:
    """(start, end) 반환. None은 해당 방향 제한 없음."""
    now = _aware(now or datetime.now())
    tz = now.tzinfo
    today = now.date()

    def _midnight(d: date) -> datetime:
        return datetime.combine(d, time.min, tzinfo=tz)

    tr = TimeRange(time_range)
    if tr == TimeRange.SIX_HOURS:
        return now - timedelta(hours=6), None
    if tr == TimeRange.TODAY:
        return _midnight(today), None
    if tr == TimeRange.WEEK:
        return now - timedelta(days=7), None
    if tr == TimeRange.MONTH:
        return _midnight(_months_back(today, 1)), None
    if tr == TimeRange.YEAR:
        return _midnight(_months_back(today, 12)), None
    if tr == TimeRange.CUSTOM:
        if custom_range is None:
            raise ValueError("custom time range requires a (start, end) date pair")
        start, end = custom_range
        # 종료일은 23:59:59.999 까지 포함
        return _midnight(start), _midnight(end) + timedelta(days=1) - timedelta(milliseconds=1)
    return None, None


def filter_by_time_range(
    orders: Iterable[Order],
    time_range: TimeRange | str | DateRange,
    *,
    now: datetime | None = None,
    custom_range: DateRange | None = None,
) -> list[Order]:
    if isinstance(time_range, tuple):
        custom_range, time_range = time_range, TimeRange.CUSTOM
    start, end = time_range_bounds(time_range, now=now, custom_range=custom_range)
    out = []
    for o in orders:
        created = _aware(o.created_at)
        if start is not None and created < start:
            continue
        if end is not None and created > end:
            continue
        out.append(o)
    return out


# -----------------------
# 통계
# -----------------------
def compute_stats(orders: Iterable[Order]) -> StatsSnapshot:
    """결제 완료 주문 기준 통계.

    동률은 입력 순서상 먼저 나온 값이 이김 (dict 삽입 순서 + max는 첫 최대값 반환).
    빈 입력이면 best_seller / highest_paying_customer / most_expensive_order 는 None.
    """
    orders = list(orders)
    paid = [o for o in orders if o.payment_status == PaymentStatus.PAID]

    item_counts: dict[str, dict] = {}
    customer_spending: dict[str, dict] = {}
    for o in paid:
        for it in o.items:
            row = item_counts.setdefault(it.item_name, {"name": it.item_name, "count": 0, "revenue": 0})
            row["count"] += it.quantity
            row["revenue"] += it.quantity * it.price

        name = o.customer_name or "Anonymous"
        row = customer_spending.setdefault(name, {"name": name, "total": 0, "orders": 0})
        row["total"] += o.total_amount
        row["orders"] += 1

    best = max(item_counts.values(), key=lambda r: r["count"], default=None)
    top = max(customer_spending.values(), key=lambda r: r["total"], default=None)
    priciest = max(paid, key=lambda o: o.total_amount, default=None)

    return StatsSnapshot(
        total_revenue=sum(o.total_amount for o in paid),
        total_orders=len(paid),
        time_range_orders=len(orders),
        best_seller=BestSellerRow(**best) if best else None,
        highest_paying_customer=TopCustomerRow(**top) if top else None,
        most_expensive_order=priciest,
    )


def build_stats(
    orders: Iterable[Order],
    time_range: TimeRange | str | DateRange = TimeRange.TODAY,
    *,
    now: datetime | None = None,
    custom_range: DateRange | None = None,
) -> StatsSnapshot:
    """기간 필터 -> 결제 완료 통계 (대시보드 통계 모달)."""
    in_range = filter_by_time_range(orders, time_range, now=now, custom_range=custom_range)
    return compute_stats(in_range)


# -----------------------
# 고객 주문 내역
# -----------------------
def filter_history(
    orders: Iterable[Order],
    *,
    status: OrderStatus | str = "all",
    date_range: TimeRange | str = TimeRange.ALL,
    now: datetime | None = None,
) -> list[Order]:
    out = [o for o in orders if matches_status(o, status)]
    if TimeRange(date_range) != TimeRange.ALL:
        out = filter_by_time_range(out, date_range, now=now)
    return out


def group_by_day(orders: Iterable[Order]) -> dict[date, list[Order]]:
    groups: dict[date, list[Order]] = {}
    for o in orders:
        groups.setdefault(_aware(o.created_at).astimezone().date(), []).append(o)
    return groups
