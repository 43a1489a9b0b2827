import logging
import random
import uuid
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Callable, Optional
from zoneinfo import ZoneInfo

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session, selectinload
from sqlalchemy.orm.exc import StaleDataError

from app.core.config import settings
from app.core.errors import (
    CapacityError,
    ConflictError,
    InvalidStateError,
    NotFoundError,
    PolicyError,
    RetryableError,
    ValidationError,
)
from app.models.booking import (
    Booking,
    BOOKING_PENDING,
    BOOKING_CONFIRMED,
    BOOKING_IN_PROGRESS,
    BOOKING_COMPLETED,
    BOOKING_CANCELLED,
    PAYMENT_PENDING,
)
from app.models.booking_note import BookingNote
from app.models.catalog_item import CatalogItem
from app.models.traveler import Traveler, TRAVELER_TYPES
from app.models.user import User
from app.services.audit_service import record_admin_action
from app.services.availability import check_availability, find_slot
from app.services.inventory import apply_transaction_timeout, release_capacity, reserve_capacity
from app.services.notifier import Notifier, DisabledNotifier
from app.services.pricing import compute_price

logger = logging.getLogger(__name__)

CANCELLATION_WINDOW = timedelta(hours=24)

# Manual transitions an admin may drive; cancellation goes through cancel_booking.
ADMIN_TRANSITIONS = {
    BOOKING_PENDING: {BOOKING_CONFIRMED},
    BOOKING_CONFIRMED: {BOOKING_IN_PROGRESS},
    BOOKING_IN_PROGRESS: {BOOKING_COMPLETED},
}
CANCELLABLE = (BOOKING_PENDING, BOOKING_CONFIRMED)


@dataclass
class TravelerInput:
    name: str
    type: str = "adult"
    age: Optional[int] = None
    passport_number: str = ""
    nationality: str = ""
    dietary_requirements: str = ""


@dataclass
class EmergencyContact:
    name: str
    phone: str = ""
    relationship: str = ""


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def make_booking_number(now: datetime) -> str:
    stamp = str(int(now.timestamp() * 1000))[-6:]
    return f"TRV{stamp}{random.randint(0, 999):03d}"


def validate_travelers(travelers: list[TravelerInput]) -> None:
    if not travelers:
        raise ValidationError("at least one traveler is required")
    for i, t in enumerate(travelers):
        if not (t.name or "").strip():
            raise ValidationError(f"traveler {i + 1}: name is required")
        if t.type not in TRAVELER_TYPES:
            raise ValidationError(f"traveler {i + 1}: type must be one of {', '.join(TRAVELER_TYPES)}")
        if t.age is not None and not 0 <= t.age <= 120:
            raise ValidationError(f"traveler {i + 1}: age must be between 0 and 120")
    if not any(t.type == "adult" for t in travelers):
        raise ValidationError("at least one adult traveler is required")


class BookingService:
    """Creates, cancels and mutates bookings while keeping slot capacity in step."""

    def __init__(self, db: Session, notifier: Notifier | None = None, clock: Callable[[], datetime] = utcnow):
        self.db = db
        self.notifier = notifier or DisabledNotifier()
        self.clock = clock
        self.tz = ZoneInfo(settings.BUSINESS_TIMEZONE)

    # -------------------------
    # lookups
    # -------------------------
    def _load_item(self, item_id: str) -> CatalogItem:
        item = self.db.execute(
            select(CatalogItem)
            .where(CatalogItem.id == item_id)
            .options(
                selectinload(CatalogItem.slots),
                selectinload(CatalogItem.seasonal_prices),
                selectinload(CatalogItem.group_discounts),
            )
        ).scalar_one_or_none()
        if item is None or item.status != "published":
            raise NotFoundError("catalog item not found")
        return item

    def get_booking(self, booking_id: str, requester: User) -> Booking:
        """Owner or admin only; anyone else gets NotFoundError so ids do not leak."""
        booking = self.db.execute(
            select(Booking)
            .where(Booking.id == booking_id)
            .options(selectinload(Booking.travelers), selectinload(Booking.notes))
        ).scalar_one_or_none()
        if booking is None or (booking.customer_id != requester.id and not requester.is_admin):
            raise NotFoundError("booking not found")
        return booking

    def list_bookings(self, customer_id: str | None = None, status: str | None = None,
                      payment_status: str | None = None, limit: int = 200) -> list[Booking]:
        q = select(Booking).options(selectinload(Booking.travelers), selectinload(Booking.notes))
        if customer_id:
            q = q.where(Booking.customer_id == customer_id)
        if status:
            q = q.where(Booking.status == status)
        if payment_status:
            q = q.where(Booking.payment_status == payment_status)
        q = q.order_by(Booking.created_at.desc()).limit(min(max(limit, 1), 1000))
        return list(self.db.execute(q).scalars())

    def _allocate_booking_number(self) -> str:
        for _ in range(10):
            number = make_booking_number(self.clock())
            exists = self.db.execute(select(Booking.id).where(Booking.booking_number == number)).first()
            if not exists:
                return number
        raise ConflictError("could not allocate booking number")

    def _note(self, booking: Booking, content: str, author: str) -> BookingNote:
        note = BookingNote(id=str(uuid.uuid4()), booking_id=booking.id, content=content, author=author,
                           created_at=self.clock())
        booking.notes.append(note)
        return note

    def start_at(self, booking: Booking) -> datetime:
        return datetime.combine(booking.start_date, time.min, tzinfo=self.tz)

    # -------------------------
    # create
    # -------------------------
    def create_booking(
        self,
        customer_id: str,
        item_id: str,
        on_date: date,
        travelers: list[TravelerInput],
        emergency_contact: EmergencyContact | None = None,
        special_requests: str | None = None,
    ) -> Booking:
        item = self._load_item(item_id)
        customer = self.db.get(User, customer_id)
        if customer is None or not customer.is_active:
            raise NotFoundError("customer not found")

        validate_travelers(travelers)
        party_size = len(travelers)
        if not isinstance(on_date, date) or isinstance(on_date, datetime):
            raise ValidationError("start date must be a calendar date")
        if on_date < self.clock().astimezone(self.tz).date():
            raise ValidationError("start date is in the past")

        slot = find_slot(item, on_date)
        if slot is None:
            raise CapacityError("no availability defined for this date", reason="no_slot")
        if not check_availability(item, on_date, party_size):
            raise CapacityError("not enough capacity for this party size")

        # price is snapshotted now and never follows later catalog edits
        quote = compute_price(item, on_date, party_size)

        try:
            apply_transaction_timeout(self.db)
            if not reserve_capacity(self.db, slot.id, party_size):
                self.db.rollback()
                raise CapacityError("not enough capacity for this party size")

            booking = Booking(
                id=str(uuid.uuid4()),
                booking_number=self._allocate_booking_number(),
                customer_id=customer.id,
                catalog_item_id=item.id,
                slot_id=slot.id,
                start_date=on_date,
                end_date=on_date + timedelta(days=item.duration_days - 1),
                total_travelers=party_size,
                base_price=quote.base_price,
                subtotal=quote.subtotal,
                taxes=quote.taxes,
                total_amount=quote.total,
                currency=quote.currency,
                payment_status=PAYMENT_PENDING,
                status=BOOKING_PENDING,
                special_requests=special_requests or None,
                emergency_contact_name=emergency_contact.name if emergency_contact else None,
                emergency_contact_phone=emergency_contact.phone if emergency_contact else None,
                emergency_contact_relationship=emergency_contact.relationship if emergency_contact else None,
            )
            for position, t in enumerate(travelers):
                booking.travelers.append(Traveler(
                    id=str(uuid.uuid4()),
                    booking_id=booking.id,
                    position=position,
                    name=t.name.strip(),
                    type=t.type,
                    age=t.age,
                    passport_number=t.passport_number or "",
                    nationality=t.nationality or "",
                    dietary_requirements=t.dietary_requirements or "",
                ))
            self.db.add(booking)
            self.db.commit()
        except OperationalError as e:
            self.db.rollback()
            logger.warning("booking transaction for item %s timed out or was locked: %s", item.id, e)
            raise RetryableError("booking system busy, please retry") from e
        except IntegrityError as e:
            self.db.rollback()
            raise ConflictError("concurrent booking number allocation, please retry") from e

        logger.info("booking %s created for item %s (%s travelers, total %s %s)",
                    booking.booking_number, item.id, party_size, booking.total_amount, booking.currency)
        self.notifier.notify_booking_created(booking, customer, item)
        return booking

    # -------------------------
    # cancel
    # -------------------------
    def cancel_booking(self, booking_id: str, requester: User, reason: str = "") -> Booking:
        booking = self.get_booking(booking_id, requester)
        if booking.status == BOOKING_CANCELLED:
            raise InvalidStateError("booking is already cancelled")
        if booking.status not in CANCELLABLE:
            raise InvalidStateError(f"a {booking.status} booking cannot be cancelled")
        if self.start_at(booking) - self.clock() < CANCELLATION_WINDOW:
            raise PolicyError("bookings can only be cancelled at least 24 hours before the start date")

        try:
            apply_transaction_timeout(self.db)
            booking.status = BOOKING_CANCELLED
            who = "admin" if requester.is_admin and requester.id != booking.customer_id else "customer"
            self._note(booking, f"Cancelled by {who}" + (f": {reason}" if reason else ""), requester.id)
            self.db.flush()
            if booking.slot_id:
                release_capacity(self.db, booking.slot_id, booking.total_travelers)
            self.db.commit()
        except StaleDataError as e:
            self.db.rollback()
            raise ConflictError("booking was modified concurrently, reload and retry") from e
        except OperationalError as e:
            self.db.rollback()
            raise RetryableError("booking system busy, please retry") from e

        logger.info("booking %s cancelled by %s", booking.booking_number, requester.id)
        item = self.db.get(CatalogItem, booking.catalog_item_id)
        customer = self.db.get(User, booking.customer_id)
        if item is not None and customer is not None:
            self.notifier.notify_booking_cancelled(booking, customer, item)
        return booking

    # -------------------------
    # admin
    # -------------------------
    def add_note(self, booking_id: str, author: User, content: str) -> BookingNote:
        content = (content or "").strip()
        if not content:
            raise ValidationError("note content is required")
        booking = self.get_booking(booking_id, author)
        note = self._note(booking, content, author.id)
        self.db.commit()
        return note

    def update_status(self, booking_id: str, new_status: str, actor: User) -> Booking:
        booking = self.get_booking(booking_id, actor)
        if new_status == BOOKING_CANCELLED:
            raise InvalidStateError("use the cancel operation to cancel a booking")
        current = booking.status
        if new_status not in ADMIN_TRANSITIONS.get(current, set()):
            raise InvalidStateError(f"cannot move a booking from {current} to {new_status}")
        try:
            booking.status = new_status
            self._note(booking, f"Status changed from {current} to {new_status}", actor.id)
            record_admin_action(self.db, actor.id, "booking.status", "booking", booking.id,
                                previous=current, status=new_status)
            self.db.commit()
        except StaleDataError as e:
            self.db.rollback()
            raise ConflictError("booking was modified concurrently, reload and retry") from e
        logger.info("booking %s moved %s -> %s by %s", booking.booking_number, current, new_status, actor.id)
        return booking
