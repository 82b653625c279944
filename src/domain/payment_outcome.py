# src/domain/payment_outcome.py

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any

from src.domain.state_machine import BookingPaymentStatus, PaymentStatus


class ProviderStatus(str, Enum):
    """
    Status strings the payment provider is known to report.
    Anything else parses to UNKNOWN.
    """

    COMPLETED = "COMPLETED"
    PENDING = "PENDING"
    CANCELLED = "CANCELLED"
    FAILED = "FAILED"
    UNKNOWN = "UNKNOWN"

    @classmethod
    def parse(cls, raw: Any) -> "ProviderStatus":
        if not isinstance(raw, str):
            return cls.UNKNOWN
        try:
            return cls(raw.strip().upper())
        except ValueError:
            return cls.UNKNOWN


@dataclass(frozen=True)
class PaymentOutcome:
    payment_status: PaymentStatus
    booking_payment_status: BookingPaymentStatus


_OUTCOMES = {
    ProviderStatus.COMPLETED: PaymentOutcome(
        PaymentStatus.COMPLETED, BookingPaymentStatus.PAID
    ),
    ProviderStatus.CANCELLED: PaymentOutcome(
        PaymentStatus.FAILED, BookingPaymentStatus.FAILED
    ),
    ProviderStatus.FAILED: PaymentOutcome(
        PaymentStatus.FAILED, BookingPaymentStatus.FAILED
    ),
}


def resolve_outcome(status: ProviderStatus) -> PaymentOutcome | None:
    """
    Map a provider status to the terminal local statuses.
    Returns None when the payment has to stay pending.
    """
    return _OUTCOMES.get(status)


def parse_fee(raw: Any) -> Decimal | None:
    if raw is None or raw == "":
        return None
    try:
        fee = Decimal(str(raw))
    except (InvalidOperation, ValueError):
        return None
    if not fee.is_finite():
        return None
    return fee


def _optional_str(raw: Any) -> str | None:
    if raw is None or raw == "":
        return None
    return str(raw)


@dataclass(frozen=True)
class ProviderReport:
    """Normalised view of a webhook body or a verify response."""

    invoice_id: str | None
    status: ProviderStatus
    raw_status: Any = None
    payment_method: str | None = None
    sender_number: str | None = None
    transaction_id: str | None = None
    fee: Decimal | None = None
    paid_at: str | None = None
    payload: dict = field(default_factory=dict)

    @classmethod
    def from_payload(
        cls,
        payload: dict,
        invoice_id: str | None = None,
    ) -> "ProviderReport":
        # The invoice id we minted travels in metadata; the top-level one is a fallback.
        metadata = payload.get("metadata")
        if not isinstance(metadata, dict):
            metadata = {}
        resolved_invoice = (
            invoice_id
            or _optional_str(metadata.get("invoice_id"))
            or _optional_str(payload.get("invoice_id"))
        )
        raw_status = payload.get("status")
        return cls(
            invoice_id=resolved_invoice,
            status=ProviderStatus.parse(raw_status),
            raw_status=raw_status,
            payment_method=_optional_str(payload.get("payment_method")),
            sender_number=_optional_str(payload.get("sender_number")),
            transaction_id=_optional_str(payload.get("transaction_id")),
            fee=parse_fee(payload.get("fee")),
            paid_at=_optional_str(payload.get("date")),
            payload=payload,
        )
