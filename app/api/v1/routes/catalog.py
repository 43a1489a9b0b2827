from datetime import date
from decimal import Decimal

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.core.errors import ValidationError
from app.schemas.catalog import AvailabilityOut, CatalogItemOut, CatalogPageOut, QuoteOut
from app.services import catalog_service
from app.services.availability import check_availability, find_slot, remaining_capacity, validate_request
from app.services.pricing import compute_price

router = APIRouter(tags=["catalog"])


@router.get("/catalog/items", response_model=CatalogPageOut)
def list_items(search: str | None = None, kind: str | None = None, destination: str | None = None,
               minPrice: Decimal | None = None, maxPrice: Decimal | None = None, duration: int | None = None,
               sortBy: str = "createdAt", sortOrder: str = "desc", page: int = 1, limit: int = 12,
               db: Session = Depends(get_db)):
    """Published tours and services, newest first by default."""
    result = catalog_service.browse_items(
        db, search=search, kind=kind, destination=destination, min_price=minPrice, max_price=maxPrice,
        duration=duration, sort_by=sortBy, sort_order=sortOrder, page=page, limit=limit,
    )
    return CatalogPageOut.from_page(result)


@router.get("/catalog/items/by-slug/{slug}", response_model=CatalogItemOut)
def get_item_by_slug(slug: str, db: Session = Depends(get_db)):
    return CatalogItemOut.from_item(catalog_service.get_item_by_slug(db, slug))


@router.get("/catalog/items/{item_id}", response_model=CatalogItemOut)
def get_item(item_id: str, db: Session = Depends(get_db)):
    return CatalogItemOut.from_item(catalog_service.get_item(db, item_id, published_only=True))


@router.get("/catalog/items/{item_id}/availability", response_model=AvailabilityOut)
def availability(item_id: str, on_date: date = Query(alias="date"), partySize: int = 1,
                 db: Session = Depends(get_db)):
    """Whether a party fits on a date, with the price it would pay."""
    item = catalog_service.get_item(db, item_id, published_only=True)
    validate_request(on_date, partySize)
    slot = find_slot(item, on_date)
    if slot is None:
        return AvailabilityOut(available=False, reason="no_slot", remaining=0, currency=item.currency)
    if not check_availability(item, on_date, partySize):
        return AvailabilityOut(available=False, reason="insufficient_capacity",
                               remaining=remaining_capacity(item, slot), currency=item.currency)
    return AvailabilityOut(
        available=True,
        remaining=remaining_capacity(item, slot),
        currency=item.currency,
        price=QuoteOut.from_quote(compute_price(item, on_date, partySize)),
    )


@router.get("/catalog/items/{item_id}/quote", response_model=QuoteOut)
def quote(item_id: str, on_date: date = Query(alias="date"), partySize: int = 1, db: Session = Depends(get_db)):
    item = catalog_service.get_item(db, item_id, published_only=True)
    if partySize < 1:
        raise ValidationError("partySize must be at least 1")
    return QuoteOut.from_quote(compute_price(item, on_date, partySize))
