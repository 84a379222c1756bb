from pydantic import BaseModel

from orderdesk.schemas.order import Order


class BestSellerRow(BaseModel):
    name: str
    count: int
    revenue: float


class TopCustomerRow(BaseModel):
    name: str
    total: float
    orders: int


class StatsSnapshot(BaseModel):
    total_revenue: float = 0
    total_orders: int = 0
    time_range_orders: int = 0
    best_seller: BestSellerRow | None = None
    highest_paying_customer: TopCustomerRow | None = None
    most_expensive_order: Order | None = None


class PaymentTabCounts(BaseModel):
    unpaid: int
    paid: int
