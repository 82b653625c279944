# src/infrastructure/repositories/ticket_repository.py

from datetime import date, datetime

from sqlalchemy.orm import Session
from sqlalchemy import select, update

from src.domain.state_machine import TicketStatus
from src.infrastructure.db.models import Ticket


class TicketRepository:

    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, ticket_id: str) -> Ticket | None:
        stmt = select(Ticket).where(Ticket.id == ticket_id)
        return self.db.execute(stmt).scalar_one_or_none()

    def get_by_number(self, ticket_number: str) -> Ticket | None:
        stmt = select(Ticket).where(Ticket.ticket_number == ticket_number)
        return self.db.execute(stmt).scalar_one_or_none()

    def get_by_booking_id(self, booking_id: str) -> Ticket | None:
        stmt = select(Ticket).where(Ticket.booking_id == booking_id)
        return self.db.execute(stmt).scalar_one_or_none()

    def find(self, ticket_id: str | None, ticket_number: str | None) -> Ticket | None:
        if ticket_id:
            return self.get_by_id(ticket_id)
        return self.get_by_number(ticket_number)

    def create_ticket(
        self,
        ticket_number: str,
        slot_date: date,
        guardian_name: str,
        guardian_phone: str,
        child_count: int,
        source: str,
        in_time: datetime | None,
        out_time: datetime | None,
        booking_id: str | None = None,
    ) -> Ticket:
        ticket = Ticket(
            ticket_number=ticket_number,
            booking_id=booking_id,
            slot_date=slot_date,
            guardian_name=guardian_name,
            guardian_phone=guardian_phone,
            child_count=child_count,
            source=source,
            in_time=in_time,
            out_time=out_time,
            status=TicketStatus.ACTIVE.value,
            inside_venue=False,
        )
        self.db.add(ticket)
        return ticket

    def _transition(self, ticket_id: str, from_status: TicketStatus, **values) -> bool:
        result = self.db.execute(
            update(Ticket)
            .where(Ticket.id == ticket_id)
            .where(Ticket.status == from_status.value)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def expire(self, ticket_id: str) -> bool:
        return self._transition(
            ticket_id,
            TicketStatus.ACTIVE,
            status=TicketStatus.EXPIRED.value,
        )

    def admit(self, ticket_id: str, at: datetime) -> bool:
        return self._transition(
            ticket_id,
            TicketStatus.ACTIVE,
            status=TicketStatus.USED.value,
            inside_venue=True,
            used_at=at,
        )

    def leave_venue(self, ticket_id: str) -> bool:
        result = self.db.execute(
            update(Ticket)
            .where(Ticket.id == ticket_id)
            .where(Ticket.inside_venue.is_(True))
            .values(inside_venue=False)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def cancel_for_booking(self, booking_id: str) -> bool:
        result = self.db.execute(
            update(Ticket)
            .where(Ticket.booking_id == booking_id)
            .where(Ticket.status == TicketStatus.ACTIVE.value)
            .values(status=TicketStatus.CANCELLED.value)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1
