import threading
from datetime import timedelta

import pytest
from sqlalchemy import create_engine, func, select
from sqlalchemy.orm import sessionmaker

from app.core.errors import CapacityError
from app.db.session import Base, enable_sqlite_immediate_begin
from app.models.availability_slot import AvailabilitySlot
from app.models.booking import Booking
from app.services.booking_service import BookingService

from conftest import NOW, FakeNotifier, adults, fixed_clock, make_item, make_user


@pytest.fixture
def locking_factory(tmp_path):
    eng = create_engine(
        f"sqlite:///{tmp_path / 'concurrency.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    enable_sqlite_immediate_begin(eng)
    Base.metadata.create_all(eng)
    yield sessionmaker(autocommit=False, autoflush=False, bind=eng)
    eng.dispose()


@pytest.mark.parametrize("threads,capacity", [(8, 3), (4, 6), (6, 6)])
def test_parallel_bookings_never_oversell(locking_factory, threads, capacity):
    seed = locking_factory()
    customer = make_user(seed, "racer@example.com")
    item = make_item(seed, capacity=capacity)
    customer_id, item_id = customer.id, item.id
    day = NOW.date() + timedelta(days=10)
    seed.close()

    start = threading.Barrier(threads)
    results, errors = [], []
    lock = threading.Lock()

    def book():
        s = locking_factory()
        try:
            start.wait()
            BookingService(s, FakeNotifier(), fixed_clock).create_booking(customer_id, item_id, day, adults(1))
            outcome = "ok"
        except CapacityError:
            outcome = "full"
        except Exception as e:  # surfaced below
            with lock:
                errors.append(e)
            return
        finally:
            s.close()
        with lock:
            results.append(outcome)

    workers = [threading.Thread(target=book) for _ in range(threads)]
    for w in workers:
        w.start()
    for w in workers:
        w.join(timeout=60)

    assert errors == []
    assert results.count("ok") == min(threads, capacity)
    assert results.count("full") == threads - min(threads, capacity)

    check = locking_factory()
    try:
        booked = check.execute(select(AvailabilitySlot.booked_count).where(AvailabilitySlot.catalog_item_id == item_id)).scalar_one()
        rows = check.execute(select(func.count(Booking.id))).scalar_one()
    finally:
        check.close()
    assert booked == min(threads, capacity)
    assert rows == min(threads, capacity)
