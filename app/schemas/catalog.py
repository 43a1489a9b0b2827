from datetime import date
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field, model_validator

from app.models.catalog_item import CatalogItem
from app.services.pricing import PriceQuote


class CatalogItemIn(BaseModel):
    kind: str = "tour"
    title: str = Field(min_length=1, max_length=200)
    slug: Optional[str] = None
    description: str = ""
    destination: str = ""
    basePrice: Decimal = Field(gt=0)
    currency: str = Field(default="USD", min_length=3, max_length=3)
    capacityPerSlot: int = Field(ge=1)
    durationDays: int = Field(default=1, ge=1)
    status: str = "draft"

    def to_fields(self) -> dict:
        return {
            "kind": self.kind,
            "title": self.title,
            "slug": self.slug,
            "description": self.description,
            "destination": self.destination,
            "base_price": self.basePrice,
            "currency": self.currency,
            "capacity_per_slot": self.capacityPerSlot,
            "duration_days": self.durationDays,
            "status": self.status,
        }


class CatalogItemPatch(BaseModel):
    kind: Optional[str] = None
    title: Optional[str] = None
    slug: Optional[str] = None
    description: Optional[str] = None
    destination: Optional[str] = None
    basePrice: Optional[Decimal] = None
    currency: Optional[str] = None
    capacityPerSlot: Optional[int] = None
    durationDays: Optional[int] = None
    status: Optional[str] = None

    def to_fields(self) -> dict:
        return {
            "kind": self.kind,
            "title": self.title,
            "slug": self.slug,
            "description": self.description,
            "destination": self.destination,
            "base_price": self.basePrice,
            "currency": self.currency,
            "capacity_per_slot": self.capacityPerSlot,
            "duration_days": self.durationDays,
            "status": self.status,
        }


class DateRangeIn(BaseModel):
    startDate: date
    endDate: date

    @model_validator(mode="after")
    def _ordered(self):
        if self.endDate < self.startDate:
            raise ValueError("endDate must not be before startDate")
        return self


class SlotIn(DateRangeIn):
    pass


class SeasonalPriceIn(DateRangeIn):
    season: str = ""
    multiplier: Decimal = Field(gt=0)


class GroupDiscountIn(BaseModel):
    minPeople: int = Field(ge=1)
    discountPercent: Decimal = Field(ge=0, le=100)


class SlotOut(BaseModel):
    id: str
    startDate: date
    endDate: date
    bookedCount: int
    remaining: int


class SeasonalPriceOut(BaseModel):
    id: str
    season: str
    startDate: date
    endDate: date
    multiplier: Decimal


class GroupDiscountOut(BaseModel):
    id: str
    minPeople: int
    discountPercent: Decimal


class CatalogItemOut(BaseModel):
    id: str
    kind: str
    title: str
    slug: str
    description: str
    destination: str
    basePrice: Decimal
    currency: str
    capacityPerSlot: int
    durationDays: int
    status: str
    slots: List[SlotOut] = []
    seasonalPrices: List[SeasonalPriceOut] = []
    groupDiscounts: List[GroupDiscountOut] = []

    @classmethod
    def from_item(cls, item: CatalogItem) -> "CatalogItemOut":
        return cls(
            id=item.id,
            kind=item.kind,
            title=item.title,
            slug=item.slug,
            description=item.description or "",
            destination=item.destination or "",
            basePrice=item.base_price,
            currency=item.currency,
            capacityPerSlot=item.capacity_per_slot,
            durationDays=item.duration_days,
            status=item.status,
            slots=[
                SlotOut(id=s.id, startDate=s.start_date, endDate=s.end_date, bookedCount=s.booked_count,
                        remaining=max(item.capacity_per_slot - s.booked_count, 0))
                for s in item.slots
            ],
            seasonalPrices=[
                SeasonalPriceOut(id=t.id, season=t.season, startDate=t.start_date, endDate=t.end_date,
                                 multiplier=t.multiplier)
                for t in item.seasonal_prices
            ],
            groupDiscounts=[
                GroupDiscountOut(id=d.id, minPeople=d.min_people, discountPercent=d.discount_percent)
                for d in item.group_discounts
            ],
        )


class PaginationOut(BaseModel):
    currentPage: int
    totalPages: int
    totalItems: int
    hasNext: bool
    hasPrev: bool


class CatalogPageOut(BaseModel):
    items: List[CatalogItemOut]
    pagination: PaginationOut

    @classmethod
    def from_page(cls, page) -> "CatalogPageOut":
        return cls(
            items=[CatalogItemOut.from_item(i) for i in page.items],
            pagination=PaginationOut(
                currentPage=page.page,
                totalPages=page.total_pages,
                totalItems=page.total,
                hasNext=page.page < page.total_pages,
                hasPrev=page.page > 1,
            ),
        )


class QuoteOut(BaseModel):
    basePrice: Decimal
    subtotal: Decimal
    taxes: Decimal
    total: Decimal
    currency: str
    partySize: int
    season: Optional[str] = None
    groupDiscountPercent: Optional[Decimal] = None

    @classmethod
    def from_quote(cls, q: PriceQuote) -> "QuoteOut":
        return cls(
            basePrice=q.base_price,
            subtotal=q.subtotal,
            taxes=q.taxes,
            total=q.total,
            currency=q.currency,
            partySize=q.party_size,
            season=q.season,
            groupDiscountPercent=q.group_discount_percent,
        )


class AvailabilityOut(BaseModel):
    available: bool
    reason: Optional[str] = None
    remaining: int = 0
    currency: str
    price: Optional[QuoteOut] = None
