from datetime import date
from decimal import Decimal

import pytest

from app.core.errors import ValidationError
from app.models.catalog_item import CatalogItem
from app.models.pricing_rule import GroupDiscount, SeasonalPrice
from app.services.pricing import TAX_RATE, compute_price, money


def item(base="50.00", seasons=(), discounts=(), currency="USD"):
    return CatalogItem(
        id="item-1", title="Walking tour", slug="walking-tour", base_price=Decimal(base), currency=currency,
        capacity_per_slot=20, duration_days=1, status="published",
        seasonal_prices=[
            SeasonalPrice(season=name, start_date=s, end_date=e, multiplier=Decimal(m)) for name, s, e, m in seasons
        ],
        group_discounts=[GroupDiscount(min_people=n, discount_percent=Decimal(p)) for n, p in discounts],
    )


def test_two_adults_one_child_at_fifty():
    q = compute_price(item("50.00"), date(2026, 7, 1), 3)
    assert q.base_price == Decimal("50.00")
    assert q.subtotal == Decimal("150.00")
    assert q.taxes == Decimal("15.00")
    assert q.total == Decimal("165.00")
    assert q.currency == "USD"


def test_quote_invariants_hold_with_awkward_prices():
    for base in ("19.99", "0.05", "1234.56", "33.33"):
        for party in (1, 2, 3, 7):
            q = compute_price(item(base, discounts=[(3, "12.5")]), date(2026, 7, 1), party)
            assert q.subtotal == q.base_price * party
            assert q.taxes == money(q.subtotal * TAX_RATE)
            assert q.total == q.subtotal + q.taxes
            assert q.taxes.as_tuple().exponent == -2


def test_taxes_round_half_up():
    # 0.05 * 1 * 0.10 = 0.005 -> 0.01
    q = compute_price(item("0.05"), date(2026, 7, 1), 1)
    assert q.taxes == Decimal("0.01")


def test_seasonal_multiplier_applies_inside_inclusive_range():
    peak = [("Peak", date(2026, 12, 20), date(2027, 1, 5), "1.5")]
    it = item("100.00", seasons=peak)
    assert compute_price(it, date(2026, 12, 19), 1).base_price == Decimal("100.00")
    assert compute_price(it, date(2026, 12, 20), 1).base_price == Decimal("150.00")
    assert compute_price(it, date(2027, 1, 5), 1).base_price == Decimal("150.00")
    q = compute_price(it, date(2027, 1, 1), 2)
    assert q.season == "Peak"
    assert q.subtotal == Decimal("300.00")


def test_first_season_by_start_date_wins_when_tiers_overlap():
    seasons = [
        ("Holiday", date(2026, 12, 24), date(2026, 12, 26), "2.0"),
        ("Winter", date(2026, 12, 1), date(2027, 2, 28), "1.2"),
    ]
    q = compute_price(item("100.00", seasons=seasons), date(2026, 12, 25), 1)
    assert q.season == "Winter"
    assert q.base_price == Decimal("120.00")


def test_largest_eligible_group_discount_applies():
    it = item("100.00", discounts=[(4, "5"), (8, "10")])
    assert compute_price(it, date(2026, 7, 1), 3).group_discount_percent is None
    assert compute_price(it, date(2026, 7, 1), 5).base_price == Decimal("95.00")
    q = compute_price(it, date(2026, 7, 1), 8)
    assert q.group_discount_percent == Decimal("10")
    assert q.base_price == Decimal("90.00")
    assert q.total == Decimal("792.00")


@pytest.mark.parametrize("party", [0, -1, 1.5, "2", True])
def test_party_size_must_be_positive_int(party):
    with pytest.raises(ValidationError):
        compute_price(item(), date(2026, 7, 1), party)


def test_date_must_be_calendar_date():
    from datetime import datetime
    with pytest.raises(ValidationError):
        compute_price(item(), datetime(2026, 7, 1, 9, 0), 1)
