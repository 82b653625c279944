# src/infrastructure/repositories/gate_log_repository.py

from datetime import datetime

from sqlalchemy.orm import Session
from sqlalchemy import select

from src.domain.state_machine import GateEntryType
from src.infrastructure.db.models import GateLog


class GateLogRepository:

    def __init__(self, db: Session):
        self.db = db

    def add(
        self,
        ticket_id: str,
        entry_type: GateEntryType,
        at: datetime,
        gate_id: str | None = None,
        scanned_by: str | None = None,
        scanned_by_name: str | None = None,
    ) -> GateLog:
        log = GateLog(
            ticket_id=ticket_id,
            entry_type=entry_type.value,
            gate_id=gate_id or "main_gate",
            scanned_by=scanned_by,
            scanned_by_name=scanned_by_name,
            created_at=at,
        )
        self.db.add(log)
        return log

    def list_for_ticket(self, ticket_id: str) -> list[GateLog]:
        stmt = (
            select(GateLog)
            .where(GateLog.ticket_id == ticket_id)
            .order_by(GateLog.created_at, GateLog.id)
        )
        return list(self.db.execute(stmt).scalars())

    def has_completed_visit(self, ticket_id: str) -> bool:
        """True once the ticket has both an entry and an exit scan."""
        stmt = select(GateLog.entry_type).where(GateLog.ticket_id == ticket_id).distinct()
        seen = set(self.db.execute(stmt).scalars())
        return {GateEntryType.ENTRY.value, GateEntryType.EXIT.value} <= seen
