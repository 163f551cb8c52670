"""Phone number normalization helpers."""

import re

from core.exceptions import InvalidPhoneNumber

E164_PATTERN = re.compile(r"^\+[1-9]\d{7,14}$")


def normalize_phone_e164(phone: str, default_country_code: str = "1") -> str:
    """Normalize a user-entered phone number to E.164.

    Numbers without an international prefix are treated as national numbers
    of the default country; a single leading trunk zero is dropped.

    Raises:
        InvalidPhoneNumber: If the result is not a plausible E.164 number
    """
    if not phone or not phone.strip():
        raise InvalidPhoneNumber("Phone number is required")

    raw = re.sub(r"[^\d+]", "", phone.strip())
    if raw.startswith("+"):
        normalized = "+" + raw[1:].replace("+", "")
    elif raw.startswith("00"):
        normalized = "+" + raw[2:]
    elif raw.startswith("0"):
        normalized = f"+{default_country_code}{raw[1:]}"
    elif len(raw) <= 10:
        normalized = f"+{default_country_code}{raw}"
    else:
        normalized = "+" + raw

    if not E164_PATTERN.match(normalized):
        raise InvalidPhoneNumber(f"Cannot normalize phone number: {phone!r}")
    return normalized
