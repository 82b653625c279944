from datetime import timedelta

from sqlalchemy import func, select

from scripts import seed_demo_data, send_booking_reminders
from src.application.booking_service import BookingService
from src.application.notification_service import NotificationService
from src.application.payment_service import PaymentService
from src.infrastructure.db.models import Slot, Ticket


def test_seed_is_idempotent(session_factory, settings, monkeypatch):
    monkeypatch.setattr(seed_demo_data, "engine", session_factory.kw["bind"])
    monkeypatch.setattr(seed_demo_data, "SessionLocal", session_factory)
    monkeypatch.setattr(seed_demo_data, "get_settings", lambda: settings)

    seed_demo_data.main()
    seed_demo_data.main()

    with session_factory() as db:
        assert db.execute(select(func.count()).select_from(Slot)).scalar_one() == 77
        ticket = db.execute(select(Ticket)).scalar_one()
        assert ticket.source == "counter"
        assert ticket.guardian_name == "Demo Guardian"
        assert ticket.child_count == 2
        assert ticket.ticket_number.startswith("TK")


def test_reminder_script_reports_failures(session_factory, settings, sms, gateway, venue_today, monkeypatch):
    tomorrow = (venue_today + timedelta(days=1)).isoformat()
    notifier = NotificationService(sms, settings)
    with session_factory() as db:
        booking = BookingService(db, settings, notifier).create_booking(
            date=tomorrow,
            time_slot="12:00 - 13:00",
            parent_name="Rahim",
            parent_phone="01712345678",
        )
        PaymentService(db, settings, gateway, notifier).collect_cash_payment(booking.id, 500)

    monkeypatch.setattr(send_booking_reminders, "SessionLocal", session_factory)
    monkeypatch.setattr(send_booking_reminders, "get_settings", lambda: settings)
    monkeypatch.setattr(send_booking_reminders, "SmsClient", lambda _settings: sms)

    assert send_booking_reminders.main([]) == 0
    assert "Reminder" in sms.sent[-1][1]

    def unreachable(phone, message):
        raise ConnectionError("SMS gateway unreachable")

    monkeypatch.setattr(sms, "send", unreachable)
    assert send_booking_reminders.main([tomorrow]) == 1
