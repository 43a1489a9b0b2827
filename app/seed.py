import logging
import uuid
from datetime import date, timedelta
from decimal import Decimal

from sqlalchemy.orm import Session
from sqlalchemy import text
from sqlalchemy.exc import OperationalError, ProgrammingError

from app.db.session import SessionLocal
from app.core.security import hash_password
from app.models.user import User, ROLE_ADMIN, ROLE_CUSTOMER
from app.models.catalog_item import CatalogItem
from app.models.availability_slot import AvailabilitySlot
from app.models.pricing_rule import GroupDiscount, SeasonalPrice

logger = logging.getLogger(__name__)

SAMPLE_SLUG = "ha-long-bay-cruise"


def ensure_user(db: Session, email: str, password: str, role: str, name: str):
    u = db.query(User).filter(User.email == email).first()
    if u:
        return u
    u = User(
        id=str(uuid.uuid4()),
        email=email,
        full_name=name,
        role=role,
        password_hash=hash_password(password),
        is_active=True,
    )
    db.add(u)
    db.commit()
    return u


def ensure_sample_tour(db: Session, today: date | None = None) -> CatalogItem:
    """A published three-day tour with weekly departures for the next eight weeks."""
    item = db.query(CatalogItem).filter(CatalogItem.slug == SAMPLE_SLUG).first()
    if item:
        return item
    today = today or date.today()
    item = CatalogItem(
        id=str(uuid.uuid4()),
        kind="tour",
        title="Ha Long Bay Cruise",
        slug=SAMPLE_SLUG,
        description="Three days on the bay with kayaking and cave visits.",
        destination="Ha Long",
        base_price=Decimal("250.00"),
        currency="USD",
        capacity_per_slot=12,
        duration_days=3,
        status="published",
    )
    db.add(item)
    first = today + timedelta(days=(7 - today.weekday()) % 7 or 7)
    for week in range(8):
        start = first + timedelta(weeks=week)
        db.add(AvailabilitySlot(id=str(uuid.uuid4()), catalog_item_id=item.id, start_date=start,
                                end_date=start, booked_count=0))
    db.add(SeasonalPrice(id=str(uuid.uuid4()), catalog_item_id=item.id, season="Peak",
                         start_date=date(today.year, 12, 20), end_date=date(today.year + 1, 1, 5),
                         multiplier=Decimal("1.25")))
    db.add(GroupDiscount(id=str(uuid.uuid4()), catalog_item_id=item.id, min_people=6,
                         discount_percent=Decimal("10")))
    db.commit()
    return item


def run(db=None):
    if db is None:
        db = SessionLocal()
    try:
        # If migrations haven't been applied yet, seeding must not crash the API.
        try:
            db.execute(text("SELECT 1 FROM users LIMIT 1"))
        except (ProgrammingError, OperationalError):
            db.rollback()
            logger.warning("users table not found yet; skipping seed (run alembic upgrade head)")
            return

        ensure_user(db, "admin@tourbook.local", "admin12345", ROLE_ADMIN, "Admin")
        ensure_user(db, "customer@tourbook.local", "customer12345", ROLE_CUSTOMER, "Demo Customer")
        ensure_sample_tour(db)
    finally:
        db.close()


if __name__ == "__main__":
    run()
