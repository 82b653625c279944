# src/infrastructure/db/models.py

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    Time,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column
from datetime import date, datetime, time
from decimal import Decimal
from uuid import uuid4

from src.infrastructure.db.session import Base
from src.domain.state_machine import (
    BookingPaymentStatus,
    BookingStatus,
    GateEntryType,
    PaymentStatus,
    SlotStatus,
    TicketStatus,
)


def _uuid() -> str:
    return str(uuid4())


class Slot(Base):
    """
    One bookable window on one date.
    The (slot_date, time_slot) constraint is what makes lazy
    generation of a day's template safe under concurrent first access.
    """

    __tablename__ = "slots"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    slot_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    time_slot: Mapped[str] = mapped_column(String(32), nullable=False)
    start_time: Mapped[time] = mapped_column(Time, nullable=False)
    end_time: Mapped[time] = mapped_column(Time, nullable=False)
    status: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        default=SlotStatus.AVAILABLE.value,
    )
    capacity: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    booked_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    __table_args__ = (
        UniqueConstraint("slot_date", "time_slot", name="uq_slot_date_time_slot"),
        CheckConstraint("capacity > 0", name="ck_slot_capacity_positive"),
        CheckConstraint("booked_count >= 0", name="ck_slot_booked_nonnegative"),
        CheckConstraint("booked_count <= capacity", name="ck_slot_booked_lte_capacity"),
    )


class Booking(Base):
    """
    Booking table reflecting domain state.
    Domain controls transitions.
    DB stores current state safely.
    """

    __tablename__ = "bookings"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    slot_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("slots.id"),
        nullable=False,
        index=True,
    )
    slot_date: Mapped[date] = mapped_column(Date, nullable=False)
    time_slot: Mapped[str] = mapped_column(String(32), nullable=False)
    parent_name: Mapped[str] = mapped_column(String(100), nullable=False)
    parent_phone: Mapped[str] = mapped_column(String(20), nullable=False)
    child_count: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        default=BookingStatus.PENDING.value,
    )
    payment_status: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        default=BookingPaymentStatus.PENDING.value,
    )
    latest_invoice_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    cancellation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    __table_args__ = (
        CheckConstraint("child_count > 0", name="ck_booking_child_count_positive"),
    )


class Payment(Base):
    __tablename__ = "payments"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    booking_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("bookings.id"),
        nullable=False,
        index=True,
    )
    invoice_id: Mapped[str] = mapped_column(String(64), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(8), nullable=False, default="BDT")
    status: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        default=PaymentStatus.PENDING.value,
    )
    payment_method: Mapped[str | None] = mapped_column(String(32), nullable=True)
    sender_number: Mapped[str | None] = mapped_column(String(32), nullable=True)
    transaction_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    fee: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    # "metadata" is reserved on declarative classes.
    provider_metadata: Mapped[dict] = mapped_column(
        "metadata",
        JSON,
        nullable=False,
        default=dict,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    __table_args__ = (
        UniqueConstraint("invoice_id", name="uq_payment_invoice_id"),
        CheckConstraint("amount > 0", name="ck_payment_amount_positive"),
    )


class Ticket(Base):
    __tablename__ = "tickets"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    ticket_number: Mapped[str] = mapped_column(String(32), nullable=False)
    booking_id: Mapped[str | None] = mapped_column(
        String(36),
        ForeignKey("bookings.id"),
        nullable=True,
    )
    slot_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    guardian_name: Mapped[str] = mapped_column(String(100), nullable=False)
    guardian_phone: Mapped[str] = mapped_column(String(20), nullable=False)
    child_count: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    source: Mapped[str] = mapped_column(String(16), nullable=False, default="counter")
    in_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    out_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    status: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        default=TicketStatus.ACTIVE.value,
    )
    inside_venue: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    used_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    __table_args__ = (
        UniqueConstraint("ticket_number", name="uq_ticket_number"),
        UniqueConstraint("booking_id", name="uq_ticket_booking_id"),
    )


class GateLog(Base):
    """One scan at a gate. Rows are only ever inserted."""

    __tablename__ = "gate_logs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    ticket_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("tickets.id"),
        nullable=False,
        index=True,
    )
    entry_type: Mapped[str] = mapped_column(
        String(8),
        nullable=False,
        default=GateEntryType.ENTRY.value,
    )
    gate_id: Mapped[str] = mapped_column(String(32), nullable=False, default="main_gate")
    scanned_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    scanned_by_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )
