import logging
from datetime import date

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from src.application.transaction import storage_guard
from src.config.settings import Settings
from src.domain.slot_template import DAILY_TEMPLATE
from src.infrastructure.db.models import Slot
from src.infrastructure.repositories.slot_repository import SlotRepository

logger = logging.getLogger(__name__)


class SlotService:
    """Owns the per-date slot calendar."""

    def __init__(self, db: Session, settings: Settings):
        self.db = db
        self.settings = settings
        self.slot_repository = SlotRepository(db)

    def get_or_create_slots(self, slot_date: date) -> list[Slot]:
        """
        Return the date's slots ordered by start time, generating the
        daily template on first access. A unique-constraint conflict means
        a concurrent caller generated them first, so re-read.
        """
        with storage_guard(self.db, "slot lookup"):
            slots = self.slot_repository.list_for_date(slot_date)
        if slots:
            return slots

        try:
            with storage_guard(self.db, "slot generation"):
                self.slot_repository.add_template(
                    slot_date,
                    DAILY_TEMPLATE,
                    capacity=self.settings.slot_capacity,
                )
                self.db.commit()
            logger.info("Generated %s slots for %s", len(DAILY_TEMPLATE), slot_date)
        except IntegrityError:
            logger.info("Slots for %s already generated concurrently; re-reading", slot_date)

        with storage_guard(self.db, "slot lookup"):
            return self.slot_repository.list_for_date(slot_date)
