from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field


class SlotsRequest(BaseModel):
    selected_date: str | None = None


class SlotResponse(BaseModel):
    id: str
    time_slot: str
    start_time: str
    end_time: str
    status: str


class SlotsResponse(BaseModel):
    success: bool = True
    date: str
    slots: list[SlotResponse]


class BookingRequest(BaseModel):
    date: str | None = None
    time_slot: str | None = None
    parent_name: str | None = None
    parent_phone: str | None = None
    child_count: int | None = 1
    notes: str | None = None


class BookingResponse(BaseModel):
    id: str
    date: str
    time_slot: str
    parent_name: str
    status: str
    created_at: datetime


class BookingDetailResponse(BookingResponse):
    slot_id: str
    parent_phone: str
    child_count: int
    notes: str | None = None
    payment_status: str
    latest_invoice_id: str | None = None
    cancellation_reason: str | None = None


class CancelBookingRequest(BaseModel):
    reason: str | None = Field(default=None, max_length=500)


class ReminderRequest(BaseModel):
    date: str | None = None


class ReminderResponse(BaseModel):
    success: bool = True
    date: str
    total: int
    sent: int
    failed: int


class InitiatePaymentRequest(BaseModel):
    booking_id: str | None = None
    amount: Decimal | None = None
    customer_name: str | None = None
    customer_email: str | None = None
    customer_phone: str | None = None
    redirect_url: str
    cancel_url: str


class InitiatePaymentResponse(BaseModel):
    success: bool
    payment_url: str | None = None
    invoice_id: str | None = None
    error: str | None = None


class VerifyPaymentRequest(BaseModel):
    invoice_id: str | None = None


class CashPaymentRequest(BaseModel):
    booking_id: str
    amount: Decimal


class PaymentView(BaseModel):
    id: str
    booking_id: str
    invoice_id: str
    amount: float
    currency: str
    status: str
    payment_method: str | None = None
    sender_number: str | None = None
    transaction_id: str | None = None
    fee: float | None = None
    created_at: datetime
    completed_at: datetime | None = None
    verification: dict | None = None


class PaymentResponse(BaseModel):
    success: bool
    payment: PaymentView


class WebhookAck(BaseModel):
    success: bool = True


class TicketRef(BaseModel):
    ticket_id: str | None = None
    ticket_number: str | None = None
    gate_id: str | None = None
    staff_id: str | None = None
    staff_name: str | None = None


class IssueTicketRequest(BaseModel):
    date: str | None = None
    guardian_phone: str | None = None
    guardian_name: str | None = None
    child_count: int | None = 1


class TicketView(BaseModel):
    id: str
    ticket_number: str
    booking_id: str | None = None
    guardian_name: str
    guardian_phone: str
    child_count: int
    slot_date: str
    in_time: datetime | None = None
    out_time: datetime | None = None
    status: str
    inside_venue: bool


class TicketValidationResponse(BaseModel):
    valid: bool
    reason: str | None = None
    code: str | None = None
    ticket: TicketView | None = None


class GateLogView(BaseModel):
    id: str
    ticket_id: str
    entry_type: str
    gate_id: str
    scanned_by: str | None = None
    scanned_by_name: str | None = None
    created_at: datetime


class GateScanResponse(BaseModel):
    success: bool
    action: str
    ticket: TicketView
    log: GateLogView


class GateLogsResponse(BaseModel):
    ticket_id: str
    logs: list[GateLogView]


class SmsRequest(BaseModel):
    phone: str | None = None
    message: str | None = None


class SmsResponse(BaseModel):
    success: bool
    message: str | None = None
    error: str | None = None
