import pytest

from api.services.call_context import CallContext
from api.services.normalization import (
    canonical_phone,
    is_known_phone,
    normalize_email,
    phone_digits,
)


def test_normalize_email():
    assert normalize_email("test@example.com") == "test@example.com"
    assert normalize_email("  Test@Example.COM  ") == "test@example.com"

    assert normalize_email(None) is None
    assert normalize_email("") is None
    assert normalize_email("invalid") is None  # No @
    assert normalize_email("invalid@") is None  # No domain


@pytest.mark.parametrize("raw", ["15125550123", "+1 512-555-0123", "+15125550123", " (1) 512.555.0123 "])
def test_canonical_phone_forms_agree(raw):
    assert canonical_phone(raw) == "+15125550123"


def test_canonical_phone_unknown():
    assert canonical_phone("Unknown") is None
    assert canonical_phone(None) is None
    assert canonical_phone("") is None
    assert canonical_phone("n/a") is None  # No digits


def test_phone_digits_and_known():
    assert phone_digits("+1 (512) 555-0123") == "15125550123"
    assert phone_digits(None) == ""
    assert is_known_phone("+15125550123")
    assert not is_known_phone("Unknown")
    assert not is_known_phone("   ")


def test_call_context_defaults_and_clamping():
    ctx = CallContext(call_id="", customer_phone="", duration=-5, transcript=None)
    assert ctx.call_id == "unknown"
    assert ctx.customer_phone == "Unknown"
    assert ctx.duration == 0
    assert ctx.transcript == ""
