import re

DEFAULT_COUNTRY_CODE = "88"


def normalize_phone(phone: str, country_code: str = DEFAULT_COUNTRY_CODE) -> str:
    """
    Format a local phone number for the SMS gateway.

    Non-digits are stripped, a leading ``0`` gets the country code in front
    of it and any other number without the country code is prefixed.
    """
    digits = re.sub(r"\D", "", phone)
    if digits.startswith("0"):
        return country_code + digits
    if not digits.startswith(country_code):
        return country_code + digits
    return digits
