import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from src.application.notification_service import NotificationService
from src.application.ticket_service import TicketService
from src.application.transaction import storage_guard
from src.config.settings import Settings
from src.domain.exceptions import (
    BookingNotFoundError,
    BookingNotPayableError,
    BookingTicketConflictError,
    DuplicateInvoiceError,
    PaymentNotFoundError,
    PlaygroundBookingError,
    ValidationError,
)
from src.domain.identifiers import generate_invoice_id
from src.domain.payment_outcome import ProviderReport, ProviderStatus, resolve_outcome
from src.domain.state_machine import (
    BookingPaymentStatus,
    BookingStatus,
    PaymentStateMachine,
    PaymentStatus,
)
from src.domain.validators import clean_name, clean_phone
from src.infrastructure.db.models import Booking, Payment
from src.infrastructure.gateways.uddoktapay_client import CheckoutRequest
from src.infrastructure.repositories.booking_repository import BookingRepository
from src.infrastructure.repositories.payment_repository import PaymentRepository
from src.infrastructure.repositories.slot_repository import SlotRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InitiatedPayment:
    payment_url: str
    invoice_id: str


@dataclass(frozen=True)
class ReconcileResult:
    payment: Payment
    changed: bool


@dataclass(frozen=True)
class VerifiedPayment:
    payment: Payment
    verification: dict


class PaymentService:
    """
    Payment gateway adapter.

    Webhook push and client verify pull both end in ``reconcile``; the
    pending -> terminal compare-and-set inside it is the only guard
    against redelivery and against the two paths racing each other.
    """

    def __init__(
        self,
        db: Session,
        settings: Settings,
        gateway,
        notifier: NotificationService,
    ):
        self.db = db
        self.settings = settings
        self.gateway = gateway
        self.notifier = notifier
        self.booking_repository = BookingRepository(db)
        self.payment_repository = PaymentRepository(db)
        self.slot_repository = SlotRepository(db)
        self.ticket_service = TicketService(db, settings)

    def _get_booking(self, booking_id: str) -> Booking:
        with storage_guard(self.db, "booking lookup"):
            booking = self.booking_repository.get_by_id(booking_id)
        if not booking:
            raise BookingNotFoundError("Booking not found")
        return booking

    def _get_payment(self, invoice_id: str) -> Payment:
        with storage_guard(self.db, "payment lookup"):
            payment = self.payment_repository.get_by_invoice_id(invoice_id)
        if not payment:
            raise PaymentNotFoundError("Payment not found")
        return payment

    def _ensure_payable(self, booking: Booking) -> None:
        if BookingStatus(booking.status) is BookingStatus.CANCELLED:
            raise BookingNotPayableError("Booking has been cancelled")
        if BookingPaymentStatus(booking.payment_status) is BookingPaymentStatus.PAID:
            raise BookingNotPayableError("Booking is already paid")

    @staticmethod
    def _ensure_amount(amount: Decimal) -> Decimal:
        if amount is None or amount <= 0:
            raise ValidationError("amount must be greater than zero", code="INVALID_AMOUNT")
        return amount

    def _flush_or_raise(self, error: PlaygroundBookingError) -> None:
        # Surfaces unique-constraint conflicts before commit as a business error.
        try:
            self.db.flush()
        except IntegrityError as exc:
            self.db.rollback()
            logger.warning("%s (%s)", error.message, exc.orig)
            raise error from exc

    # ---------------------
    # Initiation
    # ---------------------

    def initiate_payment(
        self,
        booking_id: str,
        amount: Decimal,
        customer_name: str,
        customer_phone: str,
        redirect_url: str,
        cancel_url: str,
        customer_email: str | None = None,
    ) -> InitiatedPayment:
        if not booking_id:
            raise ValidationError("booking_id is required", code="MISSING_FIELD")
        amount = self._ensure_amount(amount)
        name = clean_name(customer_name, field="customer_name")
        phone = clean_phone(customer_phone, field="customer_phone")

        booking = self._get_booking(booking_id)
        self._ensure_payable(booking)

        invoice_id = generate_invoice_id()
        # No local row exists until the provider has accepted the checkout.
        checkout = self.gateway.create_checkout(
            CheckoutRequest(
                booking_id=booking.id,
                invoice_id=invoice_id,
                amount=amount,
                customer_name=name,
                customer_email=customer_email,
                customer_phone=phone,
                redirect_url=redirect_url,
                cancel_url=cancel_url,
                webhook_url=self.settings.webhook_url,
            )
        )

        try:
            with storage_guard(self.db, "payment creation"):
                self.payment_repository.create_payment(
                    booking_id=booking.id,
                    invoice_id=invoice_id,
                    amount=amount,
                    currency=self.settings.payment_currency,
                    metadata={
                        "provider_response": checkout.raw,
                        "customer_phone": phone,
                    },
                )
                self.booking_repository.start_payment(booking.id, invoice_id)
                self.db.commit()
        except IntegrityError as exc:
            logger.error("Invoice id collision. invoice_id=%s", invoice_id)
            raise DuplicateInvoiceError("Duplicate invoice id, please retry") from exc

        logger.info(
            "Payment initiated. booking_id=%s invoice_id=%s amount=%s",
            booking.id,
            invoice_id,
            amount,
        )
        return InitiatedPayment(payment_url=checkout.payment_url, invoice_id=invoice_id)

    # ---------------------
    # Reconciliation
    # ---------------------

    def reconcile(self, invoice_id: str, report: ProviderReport, source: str) -> ReconcileResult:
        payment = self._get_payment(invoice_id)

        if PaymentStateMachine.is_terminal(PaymentStatus(payment.status)):
            logger.info(
                "Payment already %s; ignoring %s report. invoice_id=%s",
                payment.status,
                source,
                invoice_id,
            )
            return ReconcileResult(payment=payment, changed=False)

        outcome = resolve_outcome(report.status)
        if outcome is None:
            if report.status is ProviderStatus.UNKNOWN:
                logger.warning(
                    "Unknown provider status %r from %s; payment left pending for manual review. invoice_id=%s",
                    report.raw_status,
                    source,
                    invoice_id,
                )
            return ReconcileResult(payment=payment, changed=False)

        metadata = dict(payment.provider_metadata or {})
        metadata[f"{source}_data"] = report.payload
        if report.paid_at:
            metadata["completed_at"] = report.paid_at

        with storage_guard(self.db, "payment reconciliation"):
            settled = self.payment_repository.settle(
                payment_id=payment.id,
                status=outcome.payment_status,
                metadata=metadata,
                completed_at=datetime.now(timezone.utc),
                payment_method=report.payment_method,
                sender_number=report.sender_number,
                transaction_id=report.transaction_id,
                fee=report.fee,
            )
            if not settled:
                self.db.rollback()
                logger.info(
                    "Lost reconciliation race; payment already terminal. invoice_id=%s source=%s",
                    invoice_id,
                    source,
                )
                return ReconcileResult(payment=self._get_payment(invoice_id), changed=False)

            booking = self.booking_repository.get_by_id(payment.booking_id)
            confirmed = self._apply_to_booking(booking, payment, outcome.booking_payment_status)
            self._flush_or_raise(
                BookingTicketConflictError("Ticket for this booking is being issued, please retry")
            )
            self.db.commit()

        logger.info(
            "Payment %s updated to %s via %s",
            invoice_id,
            outcome.payment_status.value,
            source,
        )
        if confirmed:
            self.notifier.payment_completed(booking, payment)
        return ReconcileResult(payment=payment, changed=True)

    def _apply_to_booking(
        self,
        booking: Booking | None,
        payment: Payment,
        booking_payment_status: BookingPaymentStatus,
    ) -> bool:
        """
        Stage the settled outcome onto the booking. Returns True only when
        the booking is now paid and still active, i.e. it got a ticket.
        """
        if booking is None:
            logger.warning(
                "Payment has no booking. invoice_id=%s booking_id=%s",
                payment.invoice_id,
                payment.booking_id,
            )
            return False

        if not self.booking_repository.apply_payment_status(
            booking.id,
            payment.invoice_id,
            booking_payment_status,
        ):
            logger.warning(
                "Superseded invoice settled; booking payment_status untouched. booking_id=%s invoice_id=%s",
                booking.id,
                payment.invoice_id,
            )
            return False

        if booking_payment_status is not BookingPaymentStatus.PAID:
            return False

        if BookingStatus(booking.status) is BookingStatus.CANCELLED:
            logger.warning(
                "Payment completed for cancelled booking; manual refund needed. booking_id=%s invoice_id=%s",
                booking.id,
                payment.invoice_id,
            )
            return False

        self.booking_repository.confirm(booking.id)
        slot = self.slot_repository.get_by_id(booking.slot_id)
        if slot is not None:
            self.ticket_service.add_booking_ticket(booking, slot)
        return True

    def handle_webhook(self, payload: dict) -> bool:
        """
        Returns False when the invoice is unknown. That case is logged and
        still acknowledged so the provider does not keep redelivering.
        """
        report = ProviderReport.from_payload(payload)
        if not report.invoice_id:
            logger.error("Webhook without invoice_id. payload=%s", payload)
            raise ValidationError("Missing invoice_id", code="MISSING_FIELD")

        try:
            self.reconcile(report.invoice_id, report, source="webhook")
        except PaymentNotFoundError:
            logger.warning(
                "Webhook for unknown invoice acknowledged. invoice_id=%s payload=%s",
                report.invoice_id,
                payload,
            )
            return False
        return True

    def verify_payment(self, invoice_id: str) -> VerifiedPayment:
        if not invoice_id:
            raise ValidationError("Missing invoice_id", code="MISSING_FIELD")

        self._get_payment(invoice_id)
        verification = self.gateway.verify_payment(invoice_id)
        report = ProviderReport.from_payload(verification, invoice_id=invoice_id)
        result = self.reconcile(invoice_id, report, source="verify")
        return VerifiedPayment(payment=result.payment, verification=verification)

    # ---------------------
    # Counter payments
    # ---------------------

    def collect_cash_payment(self, booking_id: str, amount: Decimal) -> Payment:
        amount = self._ensure_amount(amount)
        booking = self._get_booking(booking_id)
        self._ensure_payable(booking)

        invoice_id = generate_invoice_id()
        with storage_guard(self.db, "cash payment"):
            payment = self.payment_repository.create_payment(
                booking_id=booking.id,
                invoice_id=invoice_id,
                amount=amount,
                currency=self.settings.payment_currency,
                metadata={"collected_at": "counter"},
                status=PaymentStatus.COMPLETED,
                payment_method="cash",
                completed_at=datetime.now(timezone.utc),
            )
            self.booking_repository.start_payment(booking.id, invoice_id)
            self._flush_or_raise(DuplicateInvoiceError("Duplicate invoice id, please retry"))
            confirmed = self._apply_to_booking(booking, payment, BookingPaymentStatus.PAID)
            self._flush_or_raise(
                BookingTicketConflictError("Ticket for this booking is being issued, please retry")
            )
            self.db.commit()

        logger.info("Cash payment recorded. booking_id=%s invoice_id=%s", booking.id, invoice_id)
        if confirmed:
            self.notifier.payment_completed(booking, payment)
        return payment
