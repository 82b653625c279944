import logging
from dataclasses import dataclass
from datetime import date as Date, datetime, timedelta
from typing import Callable

from sqlalchemy.orm import Session

from src.application.notification_service import NotificationService
from src.application.slot_service import SlotService
from src.application.ticket_service import TicketService, utc_now
from src.application.transaction import storage_guard
from src.config.settings import Settings
from src.domain.exceptions import (
    BookingNotFoundError,
    SlotNotFoundError,
    SlotUnavailableError,
    ValidationError,
)
from src.domain.state_machine import BookingStateMachine, BookingStatus
from src.domain.ticket_rules import venue_today
from src.domain.validators import (
    clean_name,
    clean_notes,
    clean_phone,
    parse_date,
    require_positive,
)
from src.infrastructure.db.models import Booking
from src.infrastructure.repositories.booking_repository import BookingRepository
from src.infrastructure.repositories.slot_repository import SlotRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReminderSummary:
    date: Date
    total: int
    sent: int
    failed: int


class BookingService:
    """Application service coordinating booking workflow."""

    def __init__(
        self,
        db: Session,
        settings: Settings,
        notifier: NotificationService,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.db = db
        self.settings = settings
        self.notifier = notifier
        self.clock = clock
        self.booking_repository = BookingRepository(db)
        self.slot_repository = SlotRepository(db)
        self.ticket_service = TicketService(db, settings)
        self.slot_service = SlotService(db, settings)

    def create_booking(
        self,
        date: str,
        time_slot: str,
        parent_name: str,
        parent_phone: str,
        child_count: int | None = 1,
        notes: str | None = None,
    ) -> Booking:
        slot_date = parse_date(date)
        if not time_slot or not time_slot.strip():
            raise ValidationError("time_slot is required", code="MISSING_FIELD")
        name = clean_name(parent_name)
        phone = clean_phone(parent_phone)
        children = require_positive(1 if child_count is None else child_count, "child_count")
        clean_note = clean_notes(notes)

        slots = self.slot_service.get_or_create_slots(slot_date)
        slot = next((s for s in slots if s.time_slot == time_slot.strip()), None)
        if slot is None:
            raise SlotNotFoundError(
                "The requested time slot does not exist for this date"
            )

        # Slot claim and booking insert commit together or not at all.
        with storage_guard(self.db, "booking creation"):
            if not self.slot_repository.reserve_unit(slot.id):
                self.db.rollback()
                logger.info(
                    "Slot unavailable. slot_id=%s date=%s time_slot=%s",
                    slot.id,
                    slot_date,
                    slot.time_slot,
                )
                raise SlotUnavailableError(
                    "This slot has already been booked. Please select another time."
                )

            booking = self.booking_repository.create_booking(
                slot=slot,
                parent_name=name,
                parent_phone=phone,
                child_count=children,
                notes=clean_note,
            )
            self.db.commit()

        logger.info("Booking created. booking_id=%s slot_id=%s", booking.id, slot.id)
        self.notifier.booking_confirmed(booking)
        return booking

    def get_booking(self, booking_id: str) -> Booking:
        with storage_guard(self.db, "booking lookup"):
            booking = self.booking_repository.get_by_id(booking_id)
        if not booking:
            raise BookingNotFoundError("Booking not found")
        return booking

    def cancel_booking(self, booking_id: str, reason: str | None = None) -> Booking:
        """
        Cancel a booking and hand its capacity unit back to the slot.
        Cancelling twice is a no-op.
        """
        booking = self.get_booking(booking_id)
        if BookingStatus(booking.status) is BookingStatus.CANCELLED:
            return booking

        BookingStateMachine.validate_transition(
            BookingStatus(booking.status),
            BookingStatus.CANCELLED,
        )

        with storage_guard(self.db, "booking cancellation"):
            cancelled = self.booking_repository.cancel(
                booking_id,
                reason or "No reason provided",
            )
            if not cancelled:
                # A concurrent request cancelled it first.
                self.db.rollback()
                return self.get_booking(booking_id)

            self.slot_repository.release_unit(booking.slot_id)
            self.ticket_service.cancel_booking_ticket(booking_id)
            self.db.commit()

        logger.info("Booking cancelled. booking_id=%s", booking_id)
        booking = self.get_booking(booking_id)
        self.notifier.booking_cancelled(booking)
        return booking

    def send_reminders(self, date: str | None = None) -> ReminderSummary:
        """
        SMS every confirmed booking on ``date`` (tomorrow in the venue's
        timezone when omitted). Meant to run once a day from a scheduler.
        """
        if date:
            slot_date = parse_date(date)
        else:
            slot_date = venue_today(self.clock(), self.settings.venue_tz) + timedelta(days=1)

        with storage_guard(self.db, "reminder lookup"):
            bookings = self.booking_repository.list_confirmed_for_date(slot_date)

        sent = sum(1 for booking in bookings if self.notifier.booking_reminder(booking))
        summary = ReminderSummary(
            date=slot_date,
            total=len(bookings),
            sent=sent,
            failed=len(bookings) - sent,
        )
        logger.info(
            "Booking reminders processed. date=%s total=%s sent=%s failed=%s",
            slot_date,
            summary.total,
            summary.sent,
            summary.failed,
        )
        return summary
