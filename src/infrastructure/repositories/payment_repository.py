# src/infrastructure/repositories/payment_repository.py

from datetime import datetime
from decimal import Decimal

from sqlalchemy.orm import Session
from sqlalchemy import select, update

from src.domain.state_machine import PaymentStatus
from src.infrastructure.db.models import Payment


class PaymentRepository:

    def __init__(self, db: Session):
        self.db = db

    def get_by_invoice_id(self, invoice_id: str) -> Payment | None:
        stmt = select(Payment).where(Payment.invoice_id == invoice_id)
        return self.db.execute(stmt).scalar_one_or_none()

    def create_payment(
        self,
        booking_id: str,
        invoice_id: str,
        amount: Decimal,
        currency: str,
        metadata: dict,
        status: PaymentStatus = PaymentStatus.PENDING,
        payment_method: str | None = None,
        completed_at: datetime | None = None,
    ) -> Payment:
        payment = Payment(
            booking_id=booking_id,
            invoice_id=invoice_id,
            amount=amount,
            currency=currency,
            status=status.value,
            payment_method=payment_method,
            provider_metadata=metadata,
            completed_at=completed_at,
        )
        self.db.add(payment)
        return payment

    def settle(
        self,
        payment_id: str,
        status: PaymentStatus,
        metadata: dict,
        completed_at: datetime,
        payment_method: str | None = None,
        sender_number: str | None = None,
        transaction_id: str | None = None,
        fee: Decimal | None = None,
    ) -> bool:
        """
        Compare-and-set pending -> terminal. The WHERE clause is the
        idempotency guard: a redelivered webhook or a verify racing the
        webhook matches zero rows and changes nothing.
        """
        result = self.db.execute(
            update(Payment)
            .where(Payment.id == payment_id)
            .where(Payment.status == PaymentStatus.PENDING.value)
            .values(
                status=status.value,
                payment_method=payment_method,
                sender_number=sender_number,
                transaction_id=transaction_id,
                fee=fee if fee is not None else Decimal("0"),
                provider_metadata=metadata,
                completed_at=completed_at,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1
