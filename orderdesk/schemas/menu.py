from __future__ import annotations

from pydantic import Field

from orderdesk.schemas.common import APIModel


class TakeawayInfo(APIModel):
    is_takeaway_available: bool = False
    takeaway_price: float = 0
    packaging_fee: float = 0
    takeaway_orders_count: int = 0


class CatalogItem(APIModel):
    """고객 메뉴에 노출되는 메뉴 아이템 (장바구니 가격 계산용)."""
    id: str = Field(alias="_id")
    name: str
    price: float = Field(ge=0)
    is_available: bool = True
    takeaway: TakeawayInfo | None = None
    # 구버전 응답: 최상위 플래그
    is_takeaway_available: bool = False

    @property
    def takeaway_eligible(self) -> bool:
        return bool((self.takeaway and self.takeaway.is_takeaway_available) or self.is_takeaway_available)

    def unit_price(self, is_takeaway: bool) -> float:
        if not (is_takeaway and self.takeaway_eligible):
            return self.price
        info = self.takeaway or TakeawayInfo()
        # takeawayPrice 미설정(0) -> 기본가
        return (info.takeaway_price or self.price) + (info.packaging_fee or 0)
