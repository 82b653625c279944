import hmac
import logging
from typing import Any

from fastapi import APIRouter, Body, Depends, Header, HTTPException, status
from fastapi.responses import JSONResponse

from src.api.dependencies import (
    get_booking_service,
    get_payment_service,
    get_slot_service,
    get_sms_client,
    get_ticket_service,
)
from src.api.schemas.schemas import (
    BookingDetailResponse,
    BookingRequest,
    BookingResponse,
    CancelBookingRequest,
    CashPaymentRequest,
    GateLogView,
    GateLogsResponse,
    GateScanResponse,
    InitiatePaymentRequest,
    InitiatePaymentResponse,
    IssueTicketRequest,
    PaymentResponse,
    PaymentView,
    ReminderRequest,
    ReminderResponse,
    SlotResponse,
    SlotsRequest,
    SlotsResponse,
    SmsRequest,
    SmsResponse,
    TicketRef,
    TicketValidationResponse,
    TicketView,
    VerifyPaymentRequest,
    WebhookAck,
)
from src.application.booking_service import BookingService
from src.application.payment_service import PaymentService
from src.application.slot_service import SlotService
from src.application.ticket_service import TicketService
from src.config.settings import Settings, get_settings
from src.domain.exceptions import (
    AuthenticationError,
    PlaygroundBookingError,
    StorageError,
    UpstreamError,
    ValidationError,
)
from src.domain.ticket_rules import TicketCheckCode
from src.domain.validators import parse_date
from src.infrastructure.db.models import Booking, GateLog, Payment, Slot, Ticket
from src.infrastructure.gateways.sms_client import SmsClient
from src.infrastructure.gateways.uddoktapay_client import API_KEY_HEADER


router = APIRouter()
logger = logging.getLogger(__name__)


def _http_error(exc: PlaygroundBookingError) -> HTTPException:
    # Upstream and storage details stay in the logs.
    if isinstance(exc, (UpstreamError, StorageError)):
        message = "An unexpected error occurred. Please try again later."
    else:
        message = exc.message
    return HTTPException(
        status_code=exc.status_code,
        detail={"error": message, "code": exc.code},
    )


def _slot_view(slot: Slot) -> SlotResponse:
    return SlotResponse(
        id=slot.id,
        time_slot=slot.time_slot,
        start_time=slot.start_time.isoformat(),
        end_time=slot.end_time.isoformat(),
        status=slot.status,
    )


def _booking_view(booking: Booking) -> BookingResponse:
    return BookingResponse(
        id=booking.id,
        date=booking.slot_date.isoformat(),
        time_slot=booking.time_slot,
        parent_name=booking.parent_name,
        status=booking.status,
        created_at=booking.created_at,
    )


def _booking_detail(booking: Booking) -> BookingDetailResponse:
    return BookingDetailResponse(
        id=booking.id,
        date=booking.slot_date.isoformat(),
        time_slot=booking.time_slot,
        parent_name=booking.parent_name,
        status=booking.status,
        created_at=booking.created_at,
        slot_id=booking.slot_id,
        parent_phone=booking.parent_phone,
        child_count=booking.child_count,
        notes=booking.notes,
        payment_status=booking.payment_status,
        latest_invoice_id=booking.latest_invoice_id,
        cancellation_reason=booking.cancellation_reason,
    )


def _payment_view(payment: Payment, verification: dict | None = None) -> PaymentView:
    return PaymentView(
        id=payment.id,
        booking_id=payment.booking_id,
        invoice_id=payment.invoice_id,
        amount=float(payment.amount),
        currency=payment.currency,
        status=payment.status,
        payment_method=payment.payment_method,
        sender_number=payment.sender_number,
        transaction_id=payment.transaction_id,
        fee=float(payment.fee) if payment.fee is not None else None,
        created_at=payment.created_at,
        completed_at=payment.completed_at,
        verification=verification,
    )


def _ticket_view(ticket: Ticket) -> TicketView:
    return TicketView(
        id=ticket.id,
        ticket_number=ticket.ticket_number,
        booking_id=ticket.booking_id,
        guardian_name=ticket.guardian_name,
        guardian_phone=ticket.guardian_phone,
        child_count=ticket.child_count,
        slot_date=ticket.slot_date.isoformat(),
        in_time=ticket.in_time,
        out_time=ticket.out_time,
        status=ticket.status,
        inside_venue=ticket.inside_venue,
    )


def _gate_log_view(log: GateLog) -> GateLogView:
    return GateLogView(
        id=log.id,
        ticket_id=log.ticket_id,
        entry_type=log.entry_type,
        gate_id=log.gate_id,
        scanned_by=log.scanned_by,
        scanned_by_name=log.scanned_by_name,
        created_at=log.created_at,
    )


@router.get("/health")
def health():
    return {"message": "Playground booking engine is running"}


# ---------------------
# Slots & bookings
# ---------------------

@router.post("/slots", response_model=SlotsResponse)
def get_or_create_slots(
    request: SlotsRequest,
    service: SlotService = Depends(get_slot_service),
):
    try:
        slot_date = parse_date(request.selected_date, field="selected_date")
        slots = service.get_or_create_slots(slot_date)
    except PlaygroundBookingError as exc:
        raise _http_error(exc) from exc

    return SlotsResponse(
        date=slot_date.isoformat(),
        slots=[_slot_view(slot) for slot in slots],
    )


@router.post("/bookings", response_model=BookingResponse)
def create_booking(
    request: BookingRequest,
    service: BookingService = Depends(get_booking_service),
):
    try:
        booking = service.create_booking(
            date=request.date,
            time_slot=request.time_slot,
            parent_name=request.parent_name,
            parent_phone=request.parent_phone,
            child_count=request.child_count,
            notes=request.notes,
        )
    except PlaygroundBookingError as exc:
        raise _http_error(exc) from exc

    return _booking_view(booking)


@router.post("/bookings/reminders", response_model=ReminderResponse)
def send_booking_reminders(
    request: ReminderRequest | None = None,
    service: BookingService = Depends(get_booking_service),
):
    try:
        summary = service.send_reminders(request.date if request else None)
    except PlaygroundBookingError as exc:
        raise _http_error(exc) from exc

    return ReminderResponse(
        date=summary.date.isoformat(),
        total=summary.total,
        sent=summary.sent,
        failed=summary.failed,
    )


@router.get("/bookings/{booking_id}", response_model=BookingDetailResponse)
def get_booking(
    booking_id: str,
    service: BookingService = Depends(get_booking_service),
):
    try:
        booking = service.get_booking(booking_id)
    except PlaygroundBookingError as exc:
        raise _http_error(exc) from exc

    return _booking_detail(booking)


@router.post("/bookings/{booking_id}/cancel", response_model=BookingDetailResponse)
def cancel_booking(
    booking_id: str,
    request: CancelBookingRequest | None = None,
    service: BookingService = Depends(get_booking_service),
):
    reason = request.reason if request else None
    try:
        booking = service.cancel_booking(booking_id, reason)
    except PlaygroundBookingError as exc:
        raise _http_error(exc) from exc

    return _booking_detail(booking)


# ---------------------
# Payments
# ---------------------

@router.post("/payments/initiate", response_model=InitiatePaymentResponse)
def initiate_payment(
    request: InitiatePaymentRequest,
    service: PaymentService = Depends(get_payment_service),
):
    try:
        initiated = service.initiate_payment(
            booking_id=request.booking_id,
            amount=request.amount,
            customer_name=request.customer_name,
            customer_email=request.customer_email,
            customer_phone=request.customer_phone,
            redirect_url=request.redirect_url,
            cancel_url=request.cancel_url,
        )
    except UpstreamError as exc:
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "error": "Payment initiation failed"},
        )
    except PlaygroundBookingError as exc:
        raise _http_error(exc) from exc

    return InitiatePaymentResponse(
        success=True,
        payment_url=initiated.payment_url,
        invoice_id=initiated.invoice_id,
    )


def _authenticate_webhook(api_key: str | None, settings: Settings) -> None:
    expected = settings.uddoktapay_api_key
    if not expected:
        logger.error("Webhook received but payment gateway is not configured")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "Payment gateway not configured", "code": "NOT_CONFIGURED"},
        )
    if not api_key or not hmac.compare_digest(api_key, expected):
        logger.warning("Webhook rejected: invalid %s header", API_KEY_HEADER)
        raise _http_error(AuthenticationError("Invalid webhook credentials"))


@router.post("/payments/webhook", response_model=WebhookAck)
def payment_webhook(
    payload: dict[str, Any] = Body(...),
    api_key: str | None = Header(default=None, alias=API_KEY_HEADER),
    settings: Settings = Depends(get_settings),
    service: PaymentService = Depends(get_payment_service),
):
    _authenticate_webhook(api_key, settings)
    logger.info("Payment webhook received. status=%s", payload.get("status"))

    try:
        service.handle_webhook(payload)
    except StorageError as exc:
        # Transient: let the provider retry.
        raise _http_error(exc) from exc
    except PlaygroundBookingError as exc:
        raise _http_error(exc) from exc

    return WebhookAck(success=True)


@router.post("/payments/verify", response_model=PaymentResponse)
def verify_payment(
    request: VerifyPaymentRequest,
    service: PaymentService = Depends(get_payment_service),
):
    try:
        verified = service.verify_payment(request.invoice_id)
    except PlaygroundBookingError as exc:
        raise _http_error(exc) from exc

    return PaymentResponse(
        success=True,
        payment=_payment_view(verified.payment, verified.verification),
    )


@router.post("/payments/cash", response_model=PaymentResponse)
def collect_cash_payment(
    request: CashPaymentRequest,
    service: PaymentService = Depends(get_payment_service),
):
    try:
        payment = service.collect_cash_payment(request.booking_id, request.amount)
    except PlaygroundBookingError as exc:
        raise _http_error(exc) from exc

    return PaymentResponse(success=True, payment=_payment_view(payment))


# ---------------------
# Tickets
# ---------------------

@router.post("/tickets", response_model=TicketView)
def issue_ticket(
    request: IssueTicketRequest,
    service: TicketService = Depends(get_ticket_service),
):
    try:
        ticket = service.issue_walk_in_ticket(
            date=request.date,
            guardian_phone=request.guardian_phone,
            guardian_name=request.guardian_name,
            child_count=request.child_count,
        )
    except PlaygroundBookingError as exc:
        raise _http_error(exc) from exc

    return _ticket_view(ticket)


@router.post("/tickets/validate", response_model=TicketValidationResponse)
def validate_ticket_time(
    request: TicketRef,
    service: TicketService = Depends(get_ticket_service),
):
    try:
        result = service.validate(request.ticket_id, request.ticket_number)
    except PlaygroundBookingError as exc:
        raise _http_error(exc) from exc

    decision = result.decision
    if not decision.valid:
        return TicketValidationResponse(
            valid=False,
            reason=decision.reason,
            code=decision.code.value,
        )
    return TicketValidationResponse(valid=True, ticket=_ticket_view(result.ticket))


@router.post("/tickets/entry", response_model=GateScanResponse)
def record_entry(
    request: TicketRef,
    service: TicketService = Depends(get_ticket_service),
):
    try:
        scan = service.record_entry(
            request.ticket_id,
            request.ticket_number,
            gate_id=request.gate_id,
            staff_id=request.staff_id,
            staff_name=request.staff_name,
        )
    except PlaygroundBookingError as exc:
        raise _http_error(exc) from exc

    decision = scan.decision
    if not decision.valid:
        code = (
            status.HTTP_404_NOT_FOUND
            if decision.code is TicketCheckCode.NOT_FOUND
            else status.HTTP_409_CONFLICT
        )
        raise HTTPException(
            status_code=code,
            detail={"error": decision.reason, "code": decision.code.value},
        )
    return GateScanResponse(
        success=True,
        action="entry",
        ticket=_ticket_view(scan.ticket),
        log=_gate_log_view(scan.log),
    )


@router.post("/tickets/exit", response_model=GateScanResponse)
def record_exit(
    request: TicketRef,
    service: TicketService = Depends(get_ticket_service),
):
    try:
        scan = service.record_exit(
            request.ticket_id,
            request.ticket_number,
            gate_id=request.gate_id,
            staff_id=request.staff_id,
            staff_name=request.staff_name,
        )
    except PlaygroundBookingError as exc:
        raise _http_error(exc) from exc

    return GateScanResponse(
        success=True,
        action="exit",
        ticket=_ticket_view(scan.ticket),
        log=_gate_log_view(scan.log),
    )


@router.get("/tickets/{ticket_id}/gate-logs", response_model=GateLogsResponse)
def list_gate_logs(
    ticket_id: str,
    service: TicketService = Depends(get_ticket_service),
):
    try:
        logs = service.list_gate_logs(ticket_id)
    except PlaygroundBookingError as exc:
        raise _http_error(exc) from exc

    return GateLogsResponse(
        ticket_id=ticket_id,
        logs=[_gate_log_view(log) for log in logs],
    )


# ---------------------
# SMS collaborator
# ---------------------

@router.post("/sms/send", response_model=SmsResponse)
def send_sms(
    request: SmsRequest,
    sms_client: SmsClient = Depends(get_sms_client),
):
    if not request.phone or not request.message:
        raise _http_error(
            ValidationError("Phone and message are required", code="MISSING_FIELD")
        )

    result = sms_client.send(request.phone, request.message)
    if not result.success:
        return JSONResponse(
            status_code=status.HTTP_502_BAD_GATEWAY,
            content={"success": False, "error": result.error},
        )
    return SmsResponse(success=True, message=result.message)
