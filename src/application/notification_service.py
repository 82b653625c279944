import logging

from src.config.settings import Settings
from src.infrastructure.db.models import Booking, Payment

logger = logging.getLogger(__name__)


class NotificationService:
    """
    Best-effort SMS dispatch for booking and payment outcomes.
    Nothing raised here ever reaches the caller.
    """

    def __init__(self, sms_client, settings: Settings):
        self.sms_client = sms_client
        self.settings = settings

    def booking_confirmed(self, booking: Booking) -> bool:
        message = (
            f"{self.settings.venue_name} booking received!\n"
            f"Date: {booking.slot_date.isoformat()}\n"
            f"Slot: {booking.time_slot}\n"
            f"Thank you {booking.parent_name}!"
        )
        return self._dispatch(booking.parent_phone, message, "booking_confirmed", booking.id)

    def payment_completed(self, booking: Booking, payment: Payment) -> bool:
        message = (
            f"{self.settings.venue_name} payment successful!\n"
            f"Amount: {payment.currency} {payment.amount}\n"
            f"Date: {booking.slot_date.isoformat()}\n"
            f"Slot: {booking.time_slot}\n"
            f"Thank you {booking.parent_name}!"
        )
        return self._dispatch(booking.parent_phone, message, "payment_completed", booking.id)

    def booking_reminder(self, booking: Booking) -> bool:
        message = (
            f"Dear {booking.parent_name},\n"
            f"Reminder: your {self.settings.venue_name} booking is coming up!\n"
            f"Date: {booking.slot_date.isoformat()}\n"
            f"Slot: {booking.time_slot}\n"
            f"We look forward to seeing you."
        )
        return self._dispatch(booking.parent_phone, message, "booking_reminder", booking.id)

    def booking_cancelled(self, booking: Booking) -> bool:
        message = (
            f"{self.settings.venue_name} booking cancelled.\n"
            f"Date: {booking.slot_date.isoformat()}\n"
            f"Slot: {booking.time_slot}"
        )
        return self._dispatch(booking.parent_phone, message, "booking_cancelled", booking.id)

    def _dispatch(self, phone: str, message: str, kind: str, reference_id: str) -> bool:
        try:
            result = self.sms_client.send(phone, message)
        except Exception:
            logger.exception(
                "Notification failed. kind=%s reference_id=%s",
                kind,
                reference_id,
            )
            return False

        if not result.success:
            logger.warning(
                "Notification not delivered. kind=%s reference_id=%s error=%s",
                kind,
                reference_id,
                result.error,
            )
        return result.success
