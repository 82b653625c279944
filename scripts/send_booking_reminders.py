"""
Day-before SMS reminders for confirmed bookings.

Run once a day from cron; pass a YYYY-MM-DD date to target another day.
"""

import logging
import sys

from src.application.booking_service import BookingService
from src.application.notification_service import NotificationService
from src.config.settings import get_settings
from src.infrastructure.db.session import SessionLocal
from src.infrastructure.gateways.sms_client import SmsClient

logger = logging.getLogger(__name__)


def main(argv: list[str] | None = None) -> int:
    args = sys.argv[1:] if argv is None else argv
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    notifier = NotificationService(SmsClient(settings), settings)
    with SessionLocal() as db:
        summary = BookingService(db, settings, notifier).send_reminders(
            args[0] if args else None
        )

    print(
        f"Reminders for {summary.date.isoformat()}: "
        f"{summary.sent} sent, {summary.failed} failed of {summary.total}."
    )
    return 0 if summary.failed == 0 else 1


if __name__ == "__main__":
    sys.exit(main())
