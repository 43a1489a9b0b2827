"""Administrative edits to catalog items and their inventory."""
import logging
import re
import uuid
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session, selectinload

from app.core.errors import InvalidStateError, NotFoundError, ValidationError
from app.models.availability_slot import AvailabilitySlot
from app.models.booking import Booking, OPEN_STATUSES
from app.models.catalog_item import CatalogItem, ITEM_STATUSES, ITEM_KINDS
from app.models.pricing_rule import GroupDiscount, SeasonalPrice
from app.models.user import User
from app.services.audit_service import record_admin_action

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = (
    "kind", "title", "slug", "description", "destination", "base_price",
    "currency", "capacity_per_slot", "duration_days", "status",
)


def slugify(text: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", (text or "").lower()).strip("-")


def _ranges_overlap(a_start: date, a_end: date, b_start: date, b_end: date) -> bool:
    return a_start <= b_end and b_start <= a_end


def get_item(db: Session, item_id: str, published_only: bool = False) -> CatalogItem:
    item = db.execute(
        select(CatalogItem)
        .where(CatalogItem.id == item_id)
        .options(
            selectinload(CatalogItem.slots),
            selectinload(CatalogItem.seasonal_prices),
            selectinload(CatalogItem.group_discounts),
        )
    ).scalar_one_or_none()
    if item is None or (published_only and item.status != "published"):
        raise NotFoundError("catalog item not found")
    return item


def list_items(db: Session, published_only: bool = True, kind: str | None = None) -> list[CatalogItem]:
    q = select(CatalogItem).options(selectinload(CatalogItem.slots))
    if published_only:
        q = q.where(CatalogItem.status == "published")
    else:
        q = q.where(CatalogItem.status != "archived")
    if kind:
        q = q.where(CatalogItem.kind == kind)
    return list(db.execute(q.order_by(CatalogItem.title)).scalars())


SORT_FIELDS = {
    "createdAt": CatalogItem.created_at,
    "title": CatalogItem.title,
    "basePrice": CatalogItem.base_price,
    "durationDays": CatalogItem.duration_days,
}
MAX_PAGE_SIZE = 100


@dataclass
class CatalogPage:
    items: list[CatalogItem]
    total: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        return -(-self.total // self.limit)


def browse_items(
    db: Session,
    search: str | None = None,
    kind: str | None = None,
    destination: str | None = None,
    min_price: Decimal | None = None,
    max_price: Decimal | None = None,
    duration: int | None = None,
    sort_by: str = "createdAt",
    sort_order: str = "desc",
    page: int = 1,
    limit: int = 12,
) -> CatalogPage:
    """Published items filtered, sorted and paged for the public catalog."""
    if sort_by not in SORT_FIELDS:
        raise ValidationError(f"sortBy must be one of {', '.join(SORT_FIELDS)}")
    if sort_order not in ("asc", "desc"):
        raise ValidationError("sortOrder must be asc or desc")
    if page < 1 or not 1 <= limit <= MAX_PAGE_SIZE:
        raise ValidationError(f"page must be >= 1 and limit between 1 and {MAX_PAGE_SIZE}")
    if min_price is not None and max_price is not None and min_price > max_price:
        raise ValidationError("minPrice must not exceed maxPrice")

    filters = [CatalogItem.status == "published"]
    if kind:
        filters.append(CatalogItem.kind == kind)
    if destination:
        filters.append(CatalogItem.destination.icontains(destination, autoescape=True))
    if min_price is not None:
        filters.append(CatalogItem.base_price >= min_price)
    if max_price is not None:
        filters.append(CatalogItem.base_price <= max_price)
    if duration is not None:
        filters.append(CatalogItem.duration_days == duration)
    if search:
        filters.append(or_(
            CatalogItem.title.icontains(search, autoescape=True),
            CatalogItem.description.icontains(search, autoescape=True),
            CatalogItem.destination.icontains(search, autoescape=True),
        ))

    total = db.execute(select(func.count(CatalogItem.id)).where(*filters)).scalar_one()
    column = SORT_FIELDS[sort_by]
    q = (
        select(CatalogItem)
        .where(*filters)
        .options(selectinload(CatalogItem.slots))
        .order_by(column.desc() if sort_order == "desc" else column.asc(), CatalogItem.id)
        .offset((page - 1) * limit)
        .limit(limit)
    )
    return CatalogPage(items=list(db.execute(q).scalars()), total=total, page=page, limit=limit)


def get_item_by_slug(db: Session, slug: str) -> CatalogItem:
    item = db.execute(select(CatalogItem.id).where(CatalogItem.slug == slug)).first()
    if item is None:
        raise NotFoundError("catalog item not found")
    return get_item(db, item[0], published_only=True)


def _validate_fields(values: dict) -> None:
    if "kind" in values and values["kind"] not in ITEM_KINDS:
        raise ValidationError(f"kind must be one of {', '.join(ITEM_KINDS)}")
    if "status" in values and values["status"] not in ITEM_STATUSES:
        raise ValidationError(f"status must be one of {', '.join(ITEM_STATUSES)}")
    if "base_price" in values and Decimal(values["base_price"]) <= 0:
        raise ValidationError("base price must be positive")
    if "capacity_per_slot" in values and values["capacity_per_slot"] < 1:
        raise ValidationError("capacity per slot must be at least 1")
    if "duration_days" in values and values["duration_days"] < 1:
        raise ValidationError("duration must be at least 1 day")
    if "currency" in values:
        values["currency"] = (values["currency"] or "").upper()
        if len(values["currency"]) != 3:
            raise ValidationError("currency must be an ISO 4217 code")


def _ensure_unique_slug(db: Session, slug: str, item_id: str | None = None) -> None:
    q = select(CatalogItem.id).where(CatalogItem.slug == slug)
    if item_id:
        q = q.where(CatalogItem.id != item_id)
    if db.execute(q).first():
        raise ValidationError(f"slug '{slug}' is already in use")


def create_item(db: Session, actor: User, **values) -> CatalogItem:
    values = {k: v for k, v in values.items() if k in EDITABLE_FIELDS and v is not None}
    if not values.get("title"):
        raise ValidationError("title is required")
    values["slug"] = slugify(values.get("slug") or values["title"])
    _validate_fields(values)
    _ensure_unique_slug(db, values["slug"])
    item = CatalogItem(id=str(uuid.uuid4()), **values)
    db.add(item)
    record_admin_action(db, actor.id, "catalog.create", "catalog_item", item.id, title=item.title)
    db.commit()
    logger.info("catalog item %s (%s) created by %s", item.id, item.slug, actor.id)
    return get_item(db, item.id)


def update_item(db: Session, item_id: str, actor: User, **values) -> CatalogItem:
    item = get_item(db, item_id)
    values = {k: v for k, v in values.items() if k in EDITABLE_FIELDS and v is not None}
    if "slug" in values:
        values["slug"] = slugify(values["slug"])
        _ensure_unique_slug(db, values["slug"], item.id)
    _validate_fields(values)
    if "capacity_per_slot" in values:
        busiest = max((s.booked_count for s in item.slots), default=0)
        if values["capacity_per_slot"] < busiest:
            raise ValidationError(f"capacity cannot be lower than {busiest} seats already booked on a slot")
    for key, value in values.items():
        setattr(item, key, value)
    record_admin_action(db, actor.id, "catalog.update", "catalog_item", item.id, fields=sorted(values))
    db.commit()
    return get_item(db, item.id)


def archive_item(db: Session, item_id: str, actor: User) -> CatalogItem:
    """Soft delete: archived items keep their bookings but leave the catalog."""
    item = get_item(db, item_id)
    open_count = db.execute(
        select(func.count(Booking.id)).where(Booking.catalog_item_id == item.id, Booking.status.in_(OPEN_STATUSES))
    ).scalar_one()
    if open_count:
        raise InvalidStateError(f"item has {open_count} open bookings")
    item.status = "archived"
    record_admin_action(db, actor.id, "catalog.archive", "catalog_item", item.id)
    db.commit()
    logger.info("catalog item %s archived by %s", item.id, actor.id)
    return item


# -------------------------
# slots
# -------------------------
def add_slot(db: Session, item_id: str, actor: User, start_date: date, end_date: date) -> AvailabilitySlot:
    item = get_item(db, item_id)
    if end_date < start_date:
        raise ValidationError("slot end date is before its start date")
    for s in item.slots:
        if _ranges_overlap(start_date, end_date, s.start_date, s.end_date):
            raise ValidationError(f"slot overlaps existing slot {s.start_date} - {s.end_date}")
    slot = AvailabilitySlot(id=str(uuid.uuid4()), catalog_item_id=item.id, start_date=start_date,
                            end_date=end_date, booked_count=0)
    db.add(slot)
    record_admin_action(db, actor.id, "catalog.slot.create", "catalog_item", item.id,
                        slot_id=slot.id, start_date=start_date, end_date=end_date)
    db.commit()
    return slot


def delete_slot(db: Session, item_id: str, slot_id: str, actor: User) -> None:
    slot = db.get(AvailabilitySlot, slot_id)
    if slot is None or slot.catalog_item_id != item_id:
        raise NotFoundError("slot not found")
    if slot.booked_count > 0:
        raise InvalidStateError("slot has bookings and cannot be deleted")
    db.delete(slot)
    record_admin_action(db, actor.id, "catalog.slot.delete", "catalog_item", item_id, slot_id=slot_id)
    db.commit()


# -------------------------
# pricing rules
# -------------------------
def add_seasonal_price(db: Session, item_id: str, actor: User, season: str, start_date: date,
                       end_date: date, multiplier: Decimal) -> SeasonalPrice:
    item = get_item(db, item_id)
    if end_date < start_date:
        raise ValidationError("season end date is before its start date")
    if Decimal(multiplier) <= 0:
        raise ValidationError("multiplier must be positive")
    tier = SeasonalPrice(id=str(uuid.uuid4()), catalog_item_id=item.id, season=season,
                         start_date=start_date, end_date=end_date, multiplier=multiplier)
    db.add(tier)
    record_admin_action(db, actor.id, "catalog.season.create", "catalog_item", item.id,
                        season=season, multiplier=multiplier)
    db.commit()
    return tier


def delete_seasonal_price(db: Session, item_id: str, tier_id: str, actor: User) -> None:
    tier = db.get(SeasonalPrice, tier_id)
    if tier is None or tier.catalog_item_id != item_id:
        raise NotFoundError("seasonal price not found")
    db.delete(tier)
    record_admin_action(db, actor.id, "catalog.season.delete", "catalog_item", item_id, season_id=tier_id)
    db.commit()


def add_group_discount(db: Session, item_id: str, actor: User, min_people: int,
                       discount_percent: Decimal) -> GroupDiscount:
    item = get_item(db, item_id)
    if min_people < 1:
        raise ValidationError("min people must be at least 1")
    if not Decimal(0) <= Decimal(discount_percent) <= Decimal(100):
        raise ValidationError("discount percent must be between 0 and 100")
    if any(d.min_people == min_people for d in item.group_discounts):
        raise ValidationError(f"a discount for {min_people} people already exists")
    discount = GroupDiscount(id=str(uuid.uuid4()), catalog_item_id=item.id, min_people=min_people,
                             discount_percent=discount_percent)
    db.add(discount)
    record_admin_action(db, actor.id, "catalog.discount.create", "catalog_item", item.id,
                        min_people=min_people, discount_percent=discount_percent)
    db.commit()
    return discount


def delete_group_discount(db: Session, item_id: str, discount_id: str, actor: User) -> None:
    discount = db.get(GroupDiscount, discount_id)
    if discount is None or discount.catalog_item_id != item_id:
        raise NotFoundError("group discount not found")
    db.delete(discount)
    record_admin_action(db, actor.id, "catalog.discount.delete", "catalog_item", item_id, discount_id=discount_id)
    db.commit()
