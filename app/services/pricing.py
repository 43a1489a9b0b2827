from dataclasses import dataclass
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from app.models.catalog_item import CatalogItem
from app.models.pricing_rule import GroupDiscount, SeasonalPrice
from app.services.availability import validate_request

TAX_RATE = Decimal("0.10")
CENT = Decimal("0.01")


def money(value) -> Decimal:
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class PriceQuote:
    base_price: Decimal  # per person, after seasonal and group adjustments
    subtotal: Decimal
    taxes: Decimal
    total: Decimal
    currency: str
    party_size: int
    season: Optional[str] = None
    group_discount_percent: Optional[Decimal] = None


def seasonal_tier(item: CatalogItem, on_date: date) -> Optional[SeasonalPrice]:
    for tier in sorted(item.seasonal_prices, key=lambda t: t.start_date):
        if tier.covers(on_date):
            return tier
    return None


def group_discount(item: CatalogItem, party_size: int) -> Optional[GroupDiscount]:
    eligible = [d for d in item.group_discounts if d.min_people <= party_size]
    if not eligible:
        return None
    return max(eligible, key=lambda d: d.min_people)


def compute_price(item: CatalogItem, on_date: date, party_size: int) -> PriceQuote:
    """Price a party of party_size travelers on on_date. Pure; reads only the item."""
    validate_request(on_date, party_size)

    unit = Decimal(item.base_price)
    tier = seasonal_tier(item, on_date)
    if tier is not None:
        unit = unit * Decimal(tier.multiplier)
    discount = group_discount(item, party_size)
    if discount is not None:
        unit = unit * (Decimal(100) - Decimal(discount.discount_percent)) / Decimal(100)
    unit = money(unit)

    subtotal = unit * party_size
    taxes = money(subtotal * TAX_RATE)
    return PriceQuote(
        base_price=unit,
        subtotal=subtotal,
        taxes=taxes,
        total=subtotal + taxes,
        currency=item.currency,
        party_size=party_size,
        season=tier.season if tier is not None else None,
        group_discount_percent=Decimal(discount.discount_percent) if discount is not None else None,
    )
