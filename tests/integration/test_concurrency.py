import threading
from datetime import date

from sqlalchemy import func, select

from src.application.booking_service import BookingService
from src.application.notification_service import NotificationService
from src.application.slot_service import SlotService
from src.domain.exceptions import SlotUnavailableError
from src.infrastructure.db.models import Booking, Slot


def _run_together(count, target):
    barrier = threading.Barrier(count)
    results = [None] * count

    def worker(index):
        barrier.wait()
        try:
            results[index] = target()
        except Exception as exc:
            results[index] = exc

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(count)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=60)
    return results


def test_racing_bookings_take_one_unit(session_factory, settings, sms, future_date):
    slot_date = date.fromisoformat(future_date)
    with session_factory() as db:
        SlotService(db, settings).get_or_create_slots(slot_date)
    notifier = NotificationService(sms, settings)

    def book():
        with session_factory() as db:
            booking = BookingService(db, settings, notifier).create_booking(
                date=future_date,
                time_slot="10:00 - 11:00",
                parent_name="Rahim",
                parent_phone="01712345678",
            )
            return booking.id

    results = _run_together(6, book)

    booked = [r for r in results if isinstance(r, str)]
    rejected = [r for r in results if isinstance(r, SlotUnavailableError)]
    assert len(booked) == 1
    assert len(rejected) == 5

    with session_factory() as db:
        slot = db.execute(
            select(Slot)
            .where(Slot.slot_date == slot_date)
            .where(Slot.time_slot == "10:00 - 11:00")
        ).scalar_one()
        assert slot.booked_count == 1
        assert slot.status == "booked"
        assert db.execute(select(func.count()).select_from(Booking)).scalar_one() == 1


def test_racing_first_reads_generate_one_calendar(session_factory, settings, future_date):
    slot_date = date.fromisoformat(future_date)

    def load():
        with session_factory() as db:
            return [slot.id for slot in SlotService(db, settings).get_or_create_slots(slot_date)]

    results = _run_together(4, load)

    assert all(isinstance(r, list) for r in results), results
    assert all(len(r) == 11 for r in results)
    assert len({tuple(r) for r in results}) == 1
    with session_factory() as db:
        assert db.execute(select(func.count()).select_from(Slot)).scalar_one() == 11
