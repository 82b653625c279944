import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable

from sqlalchemy.orm import Session

from src.application.transaction import storage_guard
from src.config.settings import Settings
from src.domain.exceptions import (
    TicketAlreadyUsedError,
    TicketCompletedError,
    TicketNotFoundError,
    TicketNotInsideError,
    ValidationError,
)
from src.domain.identifiers import generate_ticket_number
from src.domain.state_machine import GateEntryType, TicketStateMachine, TicketStatus
from src.domain.ticket_rules import VALID, TicketDecision, evaluate_ticket, venue_today
from src.domain.validators import clean_name, clean_phone, parse_date, require_positive
from src.infrastructure.db.models import Booking, GateLog, Slot, Ticket
from src.infrastructure.repositories.gate_log_repository import GateLogRepository
from src.infrastructure.repositories.ticket_repository import TicketRepository

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class TicketValidation:
    decision: TicketDecision
    ticket: Ticket | None


@dataclass(frozen=True)
class GateScan:
    decision: TicketDecision
    ticket: Ticket | None
    log: GateLog | None = None


class TicketService:
    """
    Ticket issuance, door validation and gate entry/exit.

    ``validate`` is the state machine's transition function for lazy
    expiry: when an active ticket's out_time has elapsed it persists
    active -> expired before answering. Nothing else ever sweeps tickets.
    """

    def __init__(
        self,
        db: Session,
        settings: Settings,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.db = db
        self.settings = settings
        self.clock = clock
        self.ticket_repository = TicketRepository(db)
        self.gate_log_repository = GateLogRepository(db)

    # ---------------------
    # Issuance
    # ---------------------

    def issue_walk_in_ticket(
        self,
        date: str,
        guardian_phone: str,
        guardian_name: str | None = None,
        child_count: int | None = 1,
    ) -> Ticket:
        slot_date = parse_date(date)
        now = self.clock()
        if slot_date < venue_today(now, self.settings.venue_tz):
            raise ValidationError(
                "Cannot create ticket for past date",
                code="DATE_PASSED",
            )
        phone = clean_phone(guardian_phone, field="guardian_phone")
        name = clean_name(guardian_name or "Walk-in Customer", field="guardian_name")
        children = require_positive(1 if child_count is None else child_count, "child_count")

        with storage_guard(self.db, "ticket issuance"):
            ticket = self.ticket_repository.create_ticket(
                ticket_number=generate_ticket_number(),
                slot_date=slot_date,
                guardian_name=name,
                guardian_phone=phone,
                child_count=children,
                source="counter",
                in_time=now,
                out_time=now + timedelta(minutes=self.settings.walk_in_session_minutes),
            )
            self.db.commit()

        logger.info("Walk-in ticket issued. ticket_number=%s", ticket.ticket_number)
        return ticket

    def add_booking_ticket(self, booking: Booking, slot: Slot) -> Ticket:
        """
        Stage the ticket for a paid booking; the caller commits it with
        the payment. The unique booking_id column keeps it one per booking.
        """
        existing = self.ticket_repository.get_by_booking_id(booking.id)
        if existing:
            return existing

        tz = self.settings.venue_tz
        in_time = datetime.combine(slot.slot_date, slot.start_time, tzinfo=tz)
        out_time = datetime.combine(slot.slot_date, slot.end_time, tzinfo=tz)
        return self.ticket_repository.create_ticket(
            ticket_number=generate_ticket_number(),
            slot_date=slot.slot_date,
            guardian_name=booking.parent_name,
            guardian_phone=booking.parent_phone,
            child_count=booking.child_count,
            source="online",
            in_time=in_time.astimezone(timezone.utc),
            out_time=out_time.astimezone(timezone.utc),
            booking_id=booking.id,
        )

    def cancel_booking_ticket(self, booking_id: str) -> bool:
        """
        Stage active -> cancelled for a booking's ticket; the caller commits
        it with the booking. Tickets already past active are left alone.
        """
        ticket = self.ticket_repository.get_by_booking_id(booking_id)
        if ticket is None or TicketStateMachine.is_terminal(TicketStatus(ticket.status)):
            return False

        TicketStateMachine.validate_transition(
            TicketStatus(ticket.status),
            TicketStatus.CANCELLED,
        )
        return self.ticket_repository.cancel_for_booking(booking_id)

    # ---------------------
    # Door checks
    # ---------------------

    def _find(self, ticket_id: str | None, ticket_number: str | None) -> Ticket | None:
        if not ticket_id and not ticket_number:
            raise ValidationError(
                "ticket_id or ticket_number is required",
                code="MISSING_FIELD",
            )
        with storage_guard(self.db, "ticket lookup"):
            return self.ticket_repository.find(ticket_id, ticket_number)

    def _check(self, ticket: Ticket | None) -> TicketValidation:
        now = self.clock()
        decision = evaluate_ticket(ticket, now, self.settings.venue_tz)

        if decision.expire:
            TicketStateMachine.validate_transition(
                TicketStatus(ticket.status),
                TicketStatus.EXPIRED,
            )
            with storage_guard(self.db, "ticket expiry"):
                expired = self.ticket_repository.expire(ticket.id)
                self.db.commit()
            if expired:
                logger.info("Ticket expired on validation. ticket_id=%s", ticket.id)
            else:
                # Someone else moved it out of active; answer from the new state.
                decision = evaluate_ticket(ticket, now, self.settings.venue_tz)

        return TicketValidation(decision=decision, ticket=ticket)

    def validate(
        self,
        ticket_id: str | None = None,
        ticket_number: str | None = None,
    ) -> TicketValidation:
        return self._check(self._find(ticket_id, ticket_number))

    def record_entry(
        self,
        ticket_id: str | None = None,
        ticket_number: str | None = None,
        gate_id: str | None = None,
        staff_id: str | None = None,
        staff_name: str | None = None,
    ) -> GateScan:
        """
        Admit the holder: validate, then compare-and-set active -> used and
        write the entry log in the same commit. A failed validation is
        returned as-is without any write.
        """
        ticket = self._find(ticket_id, ticket_number)
        if ticket is not None:
            with storage_guard(self.db, "gate log lookup"):
                completed = self.gate_log_repository.has_completed_visit(ticket.id)
            if completed:
                raise TicketCompletedError(
                    "Ticket already used (entry and exit completed)"
                )

        result = self._check(ticket)
        if not result.decision.valid:
            return GateScan(decision=result.decision, ticket=ticket)

        TicketStateMachine.validate_transition(
            TicketStatus(ticket.status),
            TicketStatus.USED,
        )
        now = self.clock()
        with storage_guard(self.db, "gate entry"):
            if not self.ticket_repository.admit(ticket.id, now):
                self.db.rollback()
                raise TicketAlreadyUsedError("Ticket has already been used")
            log = self.gate_log_repository.add(
                ticket.id,
                GateEntryType.ENTRY,
                now,
                gate_id=gate_id,
                scanned_by=staff_id,
                scanned_by_name=staff_name,
            )
            self.db.commit()

        logger.info("Gate entry. ticket_id=%s gate_id=%s", ticket.id, log.gate_id)
        return GateScan(decision=result.decision, ticket=ticket, log=log)

    def record_exit(
        self,
        ticket_id: str | None = None,
        ticket_number: str | None = None,
        gate_id: str | None = None,
        staff_id: str | None = None,
        staff_name: str | None = None,
    ) -> GateScan:
        ticket = self._find(ticket_id, ticket_number)
        if ticket is None:
            raise TicketNotFoundError("Ticket not found")

        with storage_guard(self.db, "gate exit"):
            if not self.ticket_repository.leave_venue(ticket.id):
                self.db.rollback()
                raise TicketNotInsideError(
                    "Guest is not inside venue (no entry recorded)"
                )
            log = self.gate_log_repository.add(
                ticket.id,
                GateEntryType.EXIT,
                self.clock(),
                gate_id=gate_id,
                scanned_by=staff_id,
                scanned_by_name=staff_name,
            )
            self.db.commit()

        logger.info("Gate exit. ticket_id=%s gate_id=%s", ticket.id, log.gate_id)
        return GateScan(decision=VALID, ticket=ticket, log=log)

    def list_gate_logs(self, ticket_id: str) -> list[GateLog]:
        with storage_guard(self.db, "gate log lookup"):
            ticket = self.ticket_repository.get_by_id(ticket_id)
            if ticket is None:
                raise TicketNotFoundError("Ticket not found")
            return self.gate_log_repository.list_for_ticket(ticket_id)
