# src/domain/ticket_rules.py

from dataclasses import dataclass
from datetime import date, datetime, timezone, tzinfo
from enum import Enum
from typing import Protocol

from src.domain.state_machine import TicketStatus


class TicketCheckCode(str, Enum):
    NOT_FOUND = "NOT_FOUND"
    DATE_PASSED = "DATE_PASSED"
    FUTURE_DATE = "FUTURE_DATE"
    CANCELLED = "CANCELLED"
    EXPIRED = "EXPIRED"
    ALREADY_USED = "ALREADY_USED"
    TIME_EXPIRED = "TIME_EXPIRED"


class TicketLike(Protocol):
    slot_date: date
    status: str
    out_time: datetime | None


@dataclass(frozen=True)
class TicketDecision:
    """
    Outcome of a ticket check.

    ``expire`` is set when the ticket is active but its out_time has
    elapsed; the caller is expected to persist active -> expired before
    reporting the result.
    """

    valid: bool
    code: TicketCheckCode | None = None
    reason: str | None = None
    expire: bool = False


VALID = TicketDecision(valid=True)


def as_utc(value: datetime) -> datetime:
    # SQLite hands timestamps back naive; they are stored in UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def venue_today(now: datetime, venue_tz: tzinfo) -> date:
    return as_utc(now).astimezone(venue_tz).date()


def _reject(code: TicketCheckCode, reason: str, expire: bool = False) -> TicketDecision:
    return TicketDecision(valid=False, code=code, reason=reason, expire=expire)


def evaluate_ticket(
    ticket: TicketLike | None,
    now: datetime,
    venue_tz: tzinfo,
) -> TicketDecision:
    """
    Decide whether a ticket admits its holder right now.

    Checks run in a fixed order and the first failing one wins:
    not found, date, cancelled, expired, used, out_time elapsed.
    """
    if ticket is None:
        return _reject(TicketCheckCode.NOT_FOUND, "Ticket not found")

    today = venue_today(now, venue_tz)
    if ticket.slot_date < today:
        return _reject(TicketCheckCode.DATE_PASSED, "Ticket date has passed")
    if ticket.slot_date > today:
        return _reject(TicketCheckCode.FUTURE_DATE, "Ticket is for a future date")

    status = TicketStatus(ticket.status)
    if status is TicketStatus.CANCELLED:
        return _reject(TicketCheckCode.CANCELLED, "Ticket has been cancelled")
    if status is TicketStatus.EXPIRED:
        return _reject(TicketCheckCode.EXPIRED, "Ticket has expired")
    if status is TicketStatus.USED:
        return _reject(TicketCheckCode.ALREADY_USED, "Ticket has already been used")

    if ticket.out_time is not None and as_utc(now) > as_utc(ticket.out_time):
        return _reject(
            TicketCheckCode.TIME_EXPIRED,
            "Ticket time has expired",
            expire=True,
        )

    return VALID
