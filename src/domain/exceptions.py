

class PlaygroundBookingError(Exception):
    """
    Base exception for all domain-level errors
    inside the playground booking engine.

    Every subclass carries a stable machine-readable ``code`` and the
    HTTP status the API layer answers with.
    """

    code = "INTERNAL_ERROR"
    status_code = 500

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code


# ---------------------
# 400
# ---------------------

class ValidationError(PlaygroundBookingError):
    """Raised when input is missing or malformed."""

    code = "VALIDATION_ERROR"
    status_code = 400


class AuthenticationError(PlaygroundBookingError):
    """Raised when a webhook caller cannot prove who it is."""

    code = "UNAUTHORIZED"
    status_code = 401


# ---------------------
# 404
# ---------------------

class NotFoundError(PlaygroundBookingError):
    code = "NOT_FOUND"
    status_code = 404


class SlotNotFoundError(NotFoundError):
    code = "SLOT_NOT_FOUND"


class BookingNotFoundError(NotFoundError):
    code = "BOOKING_NOT_FOUND"


class PaymentNotFoundError(NotFoundError):
    code = "PAYMENT_NOT_FOUND"


class TicketNotFoundError(NotFoundError):
    code = "TICKET_NOT_FOUND"


# ---------------------
# 409
# ---------------------

class ConflictError(PlaygroundBookingError):
    code = "CONFLICT"
    status_code = 409


class SlotUnavailableError(ConflictError):
    """Raised when a slot is booked, blocked or at capacity."""

    code = "SLOT_UNAVAILABLE"


class DuplicateInvoiceError(ConflictError):
    code = "DUPLICATE_INVOICE"


class BookingNotPayableError(ConflictError):
    """Raised when a payment is started for a cancelled or settled booking."""

    code = "BOOKING_NOT_PAYABLE"


class TicketAlreadyUsedError(ConflictError):
    code = "ALREADY_USED"


class TicketNotInsideError(ConflictError):
    code = "NOT_INSIDE"


class TicketCompletedError(ConflictError):
    """Raised on re-entry after the holder has already entered and left."""

    code = "TICKET_COMPLETED"


class BookingTicketConflictError(ConflictError):
    """Raised when two writers issue the ticket for one booking at once."""

    code = "TICKET_CONFLICT"


class InvalidStateTransitionError(ConflictError):
    """
    Raised when an illegal state transition is attempted.
    """

    code = "INVALID_TRANSITION"

    def __init__(self, from_state: str, to_state: str):
        self.from_state = from_state
        self.to_state = to_state

        message = (
            f"Illegal state transition attempted: "
            f"{from_state} -> {to_state}"
        )
        super().__init__(message)


# ---------------------
# 5xx
# ---------------------

class UpstreamError(PlaygroundBookingError):
    """Raised when a third-party service fails or answers garbage."""

    code = "UPSTREAM_ERROR"
    status_code = 502


class PaymentProviderError(UpstreamError):
    code = "PAYMENT_PROVIDER_ERROR"

    def __init__(self, message: str, payload: dict | None = None):
        super().__init__(message)
        self.payload = payload or {}


class StorageError(PlaygroundBookingError):
    """Raised when the database rejects or fails an operation."""

    code = "STORAGE_ERROR"
    status_code = 500
