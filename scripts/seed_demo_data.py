from datetime import datetime, timedelta

from sqlalchemy import select

from src.application.slot_service import SlotService
from src.application.ticket_service import TicketService
from src.config.settings import get_settings
from src.infrastructure.db.models import Base, Ticket
from src.infrastructure.db.session import SessionLocal, engine, wait_for_database

DAYS_AHEAD = 7
DEMO_GUARDIAN_PHONE = "01712345678"


def seed_slots(db, settings) -> int:
    service = SlotService(db, settings)
    today = datetime.now(settings.venue_tz).date()
    total = 0
    for offset in range(DAYS_AHEAD):
        total += len(service.get_or_create_slots(today + timedelta(days=offset)))
    return total


def seed_walk_in_ticket(db, settings) -> Ticket:
    today = datetime.now(settings.venue_tz).date()
    existing = db.execute(
        select(Ticket)
        .where(Ticket.guardian_phone == DEMO_GUARDIAN_PHONE)
        .where(Ticket.slot_date == today)
    ).scalar_one_or_none()
    if existing:
        return existing

    return TicketService(db, settings).issue_walk_in_ticket(
        date=today.isoformat(),
        guardian_phone=DEMO_GUARDIAN_PHONE,
        guardian_name="Demo Guardian",
        child_count=2,
    )


def main() -> None:
    settings = get_settings()
    wait_for_database(engine, settings)
    Base.metadata.create_all(bind=engine)

    with SessionLocal() as db:
        slot_count = seed_slots(db, settings)
        ticket = seed_walk_in_ticket(db, settings)
    print(
        f"Seed complete: {slot_count} slots over {DAYS_AHEAD} days, "
        f"walk-in ticket {ticket.ticket_number} for today."
    )


if __name__ == "__main__":
    main()
