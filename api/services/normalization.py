from __future__ import annotations

import re
from typing import Optional

UNKNOWN_PHONE = "Unknown"

_EMAIL_PATTERN = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")
_NON_DIGITS = re.compile(r"\D+")


def is_known_phone(phone: Optional[str]) -> bool:
    return bool(phone and phone.strip() and phone.strip() != UNKNOWN_PHONE)


def phone_digits(phone: Optional[str]) -> str:
    """Digits only, as used for hashing and chat deep links."""
    if not phone:
        return ""
    return _NON_DIGITS.sub("", phone)


def canonical_phone(phone: Optional[str]) -> Optional[str]:
    """
    Canonical "+"-prefixed phone used for CRM lookups and writes.

    "15125550123", "+1 512-555-0123" and "+15125550123" all map to "+15125550123".
    The "Unknown" sentinel and inputs without digits map to None.
    """
    if not is_known_phone(phone):
        return None
    digits = phone_digits(phone)
    if not digits:
        return None
    return f"+{digits}"


def normalize_email(email: Optional[str]) -> Optional[str]:
    if not email:
        return None

    normalized = email.strip().lower()
    if not _EMAIL_PATTERN.match(normalized):
        return None

    return normalized
