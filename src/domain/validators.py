"""Input validation shared by the booking, ticket and payment services."""

import re
from datetime import date

from src.domain.exceptions import ValidationError

_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_TAG_RE = re.compile(r"<[^>]*>")
_PHONE_NOISE_RE = re.compile(r"[\s\-+]")

NAME_MIN_LENGTH = 2
NAME_MAX_LENGTH = 100
PHONE_MIN_DIGITS = 10
PHONE_MAX_DIGITS = 15
NOTES_MAX_LENGTH = 500


def parse_date(value: str | None, field: str = "date") -> date:
    """Parse a strict ``YYYY-MM-DD`` string."""
    if not value:
        raise ValidationError(f"{field} is required", code="MISSING_FIELD")
    if not isinstance(value, str) or not _DATE_RE.match(value):
        raise ValidationError(
            "Invalid date format. Use YYYY-MM-DD",
            code="INVALID_DATE",
        )
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise ValidationError(
            "Invalid date format. Use YYYY-MM-DD",
            code="INVALID_DATE",
        ) from exc


def sanitize_text(value: str) -> str:
    return _TAG_RE.sub("", value.strip())


def clean_name(value: str | None, field: str = "parent_name") -> str:
    if not value or not value.strip():
        raise ValidationError(f"{field} is required", code="MISSING_FIELD")
    name = sanitize_text(value)
    if not NAME_MIN_LENGTH <= len(name) <= NAME_MAX_LENGTH:
        raise ValidationError(
            f"Invalid name. Must be {NAME_MIN_LENGTH}-{NAME_MAX_LENGTH} characters.",
            code="INVALID_NAME",
        )
    return name


def clean_phone(value: str | None, field: str = "parent_phone") -> str:
    if not value or not value.strip():
        raise ValidationError(f"{field} is required", code="MISSING_FIELD")
    phone = _PHONE_NOISE_RE.sub("", value)
    digits = re.sub(r"\D", "", phone)
    if digits != phone or not PHONE_MIN_DIGITS <= len(digits) <= PHONE_MAX_DIGITS:
        raise ValidationError(
            "Invalid phone number. Use Bangladesh format (01XXXXXXXXX)",
            code="INVALID_PHONE",
        )
    return phone


def clean_notes(value: str | None) -> str | None:
    if not value:
        return None
    notes = sanitize_text(value[:NOTES_MAX_LENGTH])
    return notes or None


def require_positive(value: int | None, field: str) -> int:
    if value is None or value < 1:
        raise ValidationError(f"{field} must be at least 1", code="INVALID_COUNT")
    return value
