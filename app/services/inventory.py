"""Single-statement capacity updates on availability slots.

Reservation is one conditional UPDATE so the capacity check and the increment
happen atomically in the database; a zero row count means the slot is full.
"""
from datetime import datetime, timezone

from sqlalchemy import case, select, text, update
from sqlalchemy.orm import Session

from app.core.config import settings
from app.models.availability_slot import AvailabilitySlot
from app.models.catalog_item import CatalogItem


def apply_transaction_timeout(db: Session, timeout_ms: int | None = None) -> None:
    """Bound lock waits inside the current transaction (PostgreSQL only)."""
    if db.get_bind().dialect.name != "postgresql":
        return
    ms = int(timeout_ms if timeout_ms is not None else settings.BOOKING_TXN_TIMEOUT_MS)
    db.execute(text(f"SET LOCAL lock_timeout = {ms}"))
    db.execute(text(f"SET LOCAL statement_timeout = {ms}"))


def reserve_capacity(db: Session, slot_id: str, seats: int) -> bool:
    capacity = (
        select(CatalogItem.capacity_per_slot)
        .where(CatalogItem.id == AvailabilitySlot.catalog_item_id)
        .correlate(AvailabilitySlot)
        .scalar_subquery()
    )
    stmt = (
        update(AvailabilitySlot)
        .where(
            AvailabilitySlot.id == slot_id,
            AvailabilitySlot.booked_count + seats <= capacity,
        )
        .values(booked_count=AvailabilitySlot.booked_count + seats, updated_at=datetime.now(timezone.utc))
        .execution_options(synchronize_session=False)
    )
    return db.execute(stmt).rowcount == 1


def release_capacity(db: Session, slot_id: str, seats: int) -> bool:
    """Give seats back, clamping booked_count at zero."""
    stmt = (
        update(AvailabilitySlot)
        .where(AvailabilitySlot.id == slot_id)
        .values(
            booked_count=case(
                (AvailabilitySlot.booked_count >= seats, AvailabilitySlot.booked_count - seats),
                else_=0,
            ),
            updated_at=datetime.now(timezone.utc),
        )
        .execution_options(synchronize_session=False)
    )
    return db.execute(stmt).rowcount == 1
