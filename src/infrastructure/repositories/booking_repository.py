# src/infrastructure/repositories/booking_repository.py

from datetime import date

from sqlalchemy.orm import Session
from sqlalchemy import select, update

from src.domain.state_machine import BookingPaymentStatus, BookingStatus
from src.infrastructure.db.models import Booking, Slot


class BookingRepository:

    def __init__(self, db: Session):
        self.db = db

    def get_by_id(
        self,
        booking_id: str,
    ) -> Booking | None:

        stmt = select(Booking).where(Booking.id == booking_id)
        return self.db.execute(stmt).scalar_one_or_none()

    def list_confirmed_for_date(self, slot_date: date) -> list[Booking]:
        stmt = (
            select(Booking)
            .where(Booking.slot_date == slot_date)
            .where(Booking.status == BookingStatus.CONFIRMED.value)
            .order_by(Booking.time_slot, Booking.created_at)
        )
        return list(self.db.execute(stmt).scalars())

    def create_booking(
        self,
        slot: Slot,
        parent_name: str,
        parent_phone: str,
        child_count: int,
        notes: str | None,
    ) -> Booking:

        booking = Booking(
            slot_id=slot.id,
            slot_date=slot.slot_date,
            time_slot=slot.time_slot,
            parent_name=parent_name,
            parent_phone=parent_phone,
            child_count=child_count,
            notes=notes,
            status=BookingStatus.PENDING.value,
            payment_status=BookingPaymentStatus.PENDING.value,
        )

        self.db.add(booking)
        return booking

    def cancel(self, booking_id: str, reason: str | None) -> bool:
        result = self.db.execute(
            update(Booking)
            .where(Booking.id == booking_id)
            .where(Booking.status != BookingStatus.CANCELLED.value)
            .values(
                status=BookingStatus.CANCELLED.value,
                cancellation_reason=reason,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def confirm(self, booking_id: str) -> bool:
        result = self.db.execute(
            update(Booking)
            .where(Booking.id == booking_id)
            .where(Booking.status == BookingStatus.PENDING.value)
            .values(status=BookingStatus.CONFIRMED.value)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def start_payment(self, booking_id: str, invoice_id: str) -> None:
        self.db.execute(
            update(Booking)
            .where(Booking.id == booking_id)
            .values(
                payment_status=BookingPaymentStatus.PENDING.value,
                latest_invoice_id=invoice_id,
            )
            .execution_options(synchronize_session=False)
        )

    def apply_payment_status(
        self,
        booking_id: str,
        invoice_id: str,
        payment_status: BookingPaymentStatus,
    ) -> bool:
        """
        Only the booking's most recent invoice may move its payment_status.
        """
        result = self.db.execute(
            update(Booking)
            .where(Booking.id == booking_id)
            .where(Booking.latest_invoice_id == invoice_id)
            .values(payment_status=payment_status.value)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1
