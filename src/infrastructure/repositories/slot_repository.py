# src/infrastructure/repositories/slot_repository.py

from datetime import date
from typing import Iterable

from sqlalchemy.orm import Session
from sqlalchemy import select, update

from src.domain.slot_template import SlotWindow
from src.domain.state_machine import SlotStatus
from src.infrastructure.db.models import Slot


class SlotRepository:

    def __init__(self, db: Session):
        self.db = db

    def list_for_date(self, slot_date: date) -> list[Slot]:
        stmt = (
            select(Slot)
            .where(Slot.slot_date == slot_date)
            .order_by(Slot.start_time)
        )
        return list(self.db.execute(stmt).scalars().all())

    def get_by_id(self, slot_id: str) -> Slot | None:
        stmt = select(Slot).where(Slot.id == slot_id)
        return self.db.execute(stmt).scalar_one_or_none()

    def add_template(
        self,
        slot_date: date,
        windows: Iterable[SlotWindow],
        capacity: int,
    ) -> None:
        self.db.add_all(
            [
                Slot(
                    slot_date=slot_date,
                    time_slot=window.time_slot,
                    start_time=window.start_time,
                    end_time=window.end_time,
                    status=SlotStatus.AVAILABLE.value,
                    capacity=capacity,
                    booked_count=0,
                )
                for window in windows
            ]
        )

    def reserve_unit(self, slot_id: str) -> bool:
        """
        Conditional UPDATE; takes one capacity unit only while the slot
        is available and below capacity. Returns False when another
        request got there first.
        """
        taken = self.db.execute(
            update(Slot)
            .where(Slot.id == slot_id)
            .where(Slot.status == SlotStatus.AVAILABLE.value)
            .where(Slot.booked_count < Slot.capacity)
            .values(booked_count=Slot.booked_count + 1)
            .execution_options(synchronize_session=False)
        )
        if taken.rowcount != 1:
            return False

        self.db.execute(
            update(Slot)
            .where(Slot.id == slot_id)
            .where(Slot.status == SlotStatus.AVAILABLE.value)
            .where(Slot.booked_count >= Slot.capacity)
            .values(status=SlotStatus.BOOKED.value)
            .execution_options(synchronize_session=False)
        )
        return True

    def release_unit(self, slot_id: str) -> bool:
        released = self.db.execute(
            update(Slot)
            .where(Slot.id == slot_id)
            .where(Slot.booked_count > 0)
            .values(booked_count=Slot.booked_count - 1)
            .execution_options(synchronize_session=False)
        )
        if released.rowcount != 1:
            return False

        # A blocked slot stays blocked.
        self.db.execute(
            update(Slot)
            .where(Slot.id == slot_id)
            .where(Slot.status == SlotStatus.BOOKED.value)
            .where(Slot.booked_count < Slot.capacity)
            .values(status=SlotStatus.AVAILABLE.value)
            .execution_options(synchronize_session=False)
        )
        return True
