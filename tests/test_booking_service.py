from datetime import datetime, time, timedelta, timezone
from decimal import Decimal

import pytest
from sqlalchemy import select

from app.core.errors import (
    CapacityError,
    ConflictError,
    InvalidStateError,
    NotFoundError,
    PolicyError,
    ValidationError,
)
from app.models.availability_slot import AvailabilitySlot
from app.models.booking import Booking
from app.models.audit_log import AuditLog
from app.services.booking_service import BookingService, EmergencyContact, TravelerInput, make_booking_number

from conftest import NOW, FakeNotifier, adults, fixed_clock, make_item


def slot_of(db, item):
    db.expire_all()
    return db.execute(select(AvailabilitySlot).where(AvailabilitySlot.catalog_item_id == item.id)).scalar_one()


def test_capacity_two_allows_two_single_bookings_then_rejects(db, service, customer):
    item = make_item(db, base_price="100.00", capacity=2)
    day = NOW.date() + timedelta(days=10)

    service.create_booking(customer.id, item.id, day, adults(1))
    service.create_booking(customer.id, item.id, day, adults(1))
    with pytest.raises(CapacityError) as exc:
        service.create_booking(customer.id, item.id, day, adults(1))

    assert exc.value.reason == "insufficient_capacity"
    assert slot_of(db, item).booked_count == 2
    assert db.query(Booking).count() == 2


def test_created_booking_snapshots_price_and_dates(db, service, notifier, customer):
    item = make_item(db, base_price="50.00", capacity=10, duration_days=3)
    day = NOW.date() + timedelta(days=10)
    travelers = [TravelerInput("Ann"), TravelerInput("Ben"), TravelerInput("Cy", type="child", age=7)]

    b = service.create_booking(customer.id, item.id, day, travelers,
                               emergency_contact=EmergencyContact("Dee", "+84 90", "sister"),
                               special_requests="window seat")

    assert b.status == "pending"
    assert b.payment_status == "pending"
    assert b.total_travelers == 3
    assert (b.subtotal, b.taxes, b.total_amount) == (Decimal("150.00"), Decimal("15.00"), Decimal("165.00"))
    assert b.end_date == day + timedelta(days=2)
    assert b.booking_number.startswith("TRV") and len(b.booking_number) == 12
    assert [t.name for t in b.travelers] == ["Ann", "Ben", "Cy"]
    assert b.emergency_contact_relationship == "sister"
    assert slot_of(db, item).booked_count == 3
    assert notifier.kinds() == ["created"]


def test_price_snapshot_ignores_later_catalog_edits(db, service, customer):
    item = make_item(db, base_price="50.00", capacity=10)
    b = service.create_booking(customer.id, item.id, NOW.date() + timedelta(days=10), adults(2))
    item.base_price = Decimal("80.00")
    db.commit()
    db.refresh(b)
    assert b.total_amount == Decimal("110.00")


def test_date_without_slot_reports_no_slot(db, service, customer):
    item = make_item(db, capacity=5)
    with pytest.raises(CapacityError) as exc:
        service.create_booking(customer.id, item.id, NOW.date() + timedelta(days=30), adults(1))
    assert exc.value.reason == "no_slot"


@pytest.mark.parametrize("travelers", [
    [],
    [TravelerInput("Kid", type="child")],
    [TravelerInput("   ")],
    [TravelerInput("Ann", type="pet")],
    [TravelerInput("Ann", age=130)],
])
def test_invalid_travelers_rejected_without_touching_capacity(db, service, customer, travelers):
    item = make_item(db, capacity=5)
    with pytest.raises(ValidationError):
        service.create_booking(customer.id, item.id, NOW.date() + timedelta(days=10), travelers)
    assert slot_of(db, item).booked_count == 0


def test_past_date_rejected(db, service, customer):
    item = make_item(db, capacity=5, start=NOW.date() - timedelta(days=1))
    with pytest.raises(ValidationError):
        service.create_booking(customer.id, item.id, NOW.date() - timedelta(days=1), adults(1))


def test_unpublished_item_is_not_found(db, service, customer):
    item = make_item(db, status="draft")
    with pytest.raises(NotFoundError):
        service.create_booking(customer.id, item.id, NOW.date() + timedelta(days=10), adults(1))


def test_notifier_failure_does_not_fail_booking(db, customer):
    item = make_item(db, capacity=5)
    svc = BookingService(db, FakeNotifier(fail=True), fixed_clock)
    b = svc.create_booking(customer.id, item.id, NOW.date() + timedelta(days=10), adults(1))
    assert db.get(Booking, b.id) is not None
    assert slot_of(db, item).booked_count == 1


# -------------------------
# cancellation
# -------------------------
def booking_on(db, customer, days_ahead=10, party=2):
    start = NOW.date() + timedelta(days=days_ahead)
    item = make_item(db, capacity=5, start=start)
    b = BookingService(db, FakeNotifier(), fixed_clock).create_booking(customer.id, item.id, start, adults(party))
    return item, b


def service_at(db, booking, hours_before_start, notifier=None):
    start_at = datetime.combine(booking.start_date, time.min, tzinfo=timezone.utc)
    return BookingService(db, notifier or FakeNotifier(), lambda: start_at - timedelta(hours=hours_before_start))


def test_cancel_48_hours_before_start_releases_capacity(db, customer):
    item, b = booking_on(db, customer, party=2)
    assert slot_of(db, item).booked_count == 2
    notifier = FakeNotifier()

    cancelled = service_at(db, b, 48, notifier).cancel_booking(b.id, customer, reason="change of plans")

    assert cancelled.status == "cancelled"
    assert slot_of(db, item).booked_count == 0
    assert [n.content for n in db.get(Booking, b.id).notes] == ["Cancelled by customer: change of plans"]
    assert notifier.kinds() == ["cancelled"]


def test_cancel_10_hours_before_start_is_rejected(db, customer):
    item, b = booking_on(db, customer, party=2)

    with pytest.raises(PolicyError):
        service_at(db, b, 10).cancel_booking(b.id, customer)

    db.expire_all()
    assert db.get(Booking, b.id).status == "pending"
    assert db.get(Booking, b.id).notes == []
    assert slot_of(db, item).booked_count == 2


def test_cancel_exactly_24_hours_before_start_is_allowed(db, customer):
    item, b = booking_on(db, customer)
    assert service_at(db, b, 24).cancel_booking(b.id, customer).status == "cancelled"


def test_cancel_just_inside_24_hours_is_rejected(db, customer):
    item, b = booking_on(db, customer)
    with pytest.raises(PolicyError):
        service_at(db, b, 23.99).cancel_booking(b.id, customer)


def test_cancel_twice_is_invalid_state(db, service, customer):
    item, b = booking_on(db, customer)
    service.cancel_booking(b.id, customer)
    with pytest.raises(InvalidStateError):
        service.cancel_booking(b.id, customer)
    assert slot_of(db, item).booked_count == 0


def test_other_customer_cannot_see_or_cancel(db, service, customer, other_customer):
    item, b = booking_on(db, customer)
    with pytest.raises(NotFoundError):
        service.get_booking(b.id, other_customer)
    with pytest.raises(NotFoundError):
        service.cancel_booking(b.id, other_customer)
    assert slot_of(db, item).booked_count == 2


def test_admin_can_cancel_any_booking(db, service, customer, admin):
    item, b = booking_on(db, customer)
    service.cancel_booking(b.id, admin, reason="weather")
    assert [n.content for n in db.get(Booking, b.id).notes] == ["Cancelled by admin: weather"]


def test_admin_cancellation_still_honours_window(db, customer, admin):
    item, b = booking_on(db, customer)
    with pytest.raises(PolicyError):
        service_at(db, b, 5).cancel_booking(b.id, admin)


def test_in_progress_booking_cannot_be_cancelled(db, service, customer, admin):
    item, b = booking_on(db, customer)
    service.update_status(b.id, "confirmed", admin)
    service.update_status(b.id, "in_progress", admin)
    with pytest.raises(InvalidStateError):
        service.cancel_booking(b.id, customer)


def test_slot_count_stays_within_bounds_across_bookings_and_cancellations(db, service, customer):
    item = make_item(db, capacity=3)
    day = NOW.date() + timedelta(days=10)
    made = []
    for party in (1, 2, 1, 1):
        try:
            made.append(service.create_booking(customer.id, item.id, day, adults(party)))
        except CapacityError:
            pass
        assert 0 <= slot_of(db, item).booked_count <= 3
    for b in made:
        service.cancel_booking(b.id, customer)
        assert 0 <= slot_of(db, item).booked_count <= 3
    assert slot_of(db, item).booked_count == 0


def test_stale_writer_gets_conflict(session_factory, db, customer, admin):
    item, b = booking_on(db, customer)
    s1, s2 = session_factory(), session_factory()
    try:
        stale_svc = BookingService(s2, FakeNotifier(), fixed_clock)
        stale_svc.get_booking(b.id, admin)  # version 1 now held by s2
        BookingService(s1, FakeNotifier(), fixed_clock).cancel_booking(b.id, customer)
        with pytest.raises(ConflictError):
            stale_svc.update_status(b.id, "confirmed", admin)
    finally:
        s1.close()
        s2.close()
    db.expire_all()
    assert db.get(Booking, b.id).status == "cancelled"

def test_version_increments_on_each_update(db, service, customer, admin):
    item, b = booking_on(db, customer)
    assert b.version == 1
    service.update_status(b.id, "confirmed", admin)
    assert db.get(Booking, b.id).version == 2


# -------------------------
# admin operations
# -------------------------
def test_status_transitions_follow_lifecycle(db, service, customer, admin):
    item, b = booking_on(db, customer)
    with pytest.raises(InvalidStateError):
        service.update_status(b.id, "completed", admin)
    with pytest.raises(InvalidStateError):
        service.update_status(b.id, "cancelled", admin)
    service.update_status(b.id, "confirmed", admin)
    service.update_status(b.id, "in_progress", admin)
    done = service.update_status(b.id, "completed", admin)
    assert done.status == "completed"
    with pytest.raises(InvalidStateError):
        service.update_status(b.id, "in_progress", admin)
    assert db.query(AuditLog).filter(AuditLog.action == "booking.status").count() == 3


def test_notes_are_appended_in_order(db, customer, admin):
    item, b = booking_on(db, customer)
    ticks = iter(range(1, 100))
    service = BookingService(db, FakeNotifier(), lambda: NOW + timedelta(minutes=next(ticks)))
    service.add_note(b.id, admin, "called customer")
    service.add_note(b.id, admin, "pickup at hotel")
    with pytest.raises(ValidationError):
        service.add_note(b.id, admin, "   ")
    assert [n.content for n in db.get(Booking, b.id).notes] == ["called customer", "pickup at hotel"]


def test_list_bookings_filters(db, service, customer, other_customer):
    item = make_item(db, capacity=10)
    day = NOW.date() + timedelta(days=10)
    mine = service.create_booking(customer.id, item.id, day, adults(1))
    service.create_booking(other_customer.id, item.id, day, adults(1))
    assert [b.id for b in service.list_bookings(customer_id=customer.id)] == [mine.id]
    assert len(service.list_bookings()) == 2
    assert service.list_bookings(status="cancelled") == []


def test_booking_number_format():
    n = make_booking_number(NOW)
    assert n.startswith("TRV")
    assert n[3:].isdigit() and len(n) == 12
