import secrets
import string
import time

_ALPHABET = string.ascii_uppercase + string.digits
_BASE36 = string.digits + string.ascii_uppercase


def _random_suffix(length: int) -> str:
    return "".join(secrets.choice(_ALPHABET) for _ in range(length))


def _base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def _epoch_ms() -> int:
    return time.time_ns() // 1_000_000


def generate_invoice_id(prefix: str = "BW") -> str:
    """Timestamp plus random suffix; the unique index on invoice_id is the real guard."""
    return f"{prefix}-{_epoch_ms()}-{_random_suffix(6)}"


def generate_ticket_number(prefix: str = "TK") -> str:
    return f"{prefix}{_base36(_epoch_ms())}{_random_suffix(3)}"
