from __future__ import annotations

import re

_NON_DIGIT_RE = re.compile(r"\D")
DISPLAY_PLACEHOLDER = "—"


class InvalidPhoneNumberError(ValueError):
    """Raised when a phone number cannot be canonicalised for storage."""


def format_for_input(raw: str | None) -> str:
    """Progressively format a US number as the user types it."""
    digits = _digits(raw)
    if digits.startswith("1"):
        digits = digits[1:]
    digits = digits[:10]
    if not digits:
        return ""
    if len(digits) <= 3:
        return f"({digits}"
    if len(digits) <= 6:
        return f"({digits[:3]}) {digits[3:]}"
    return f"({digits[:3]}) {digits[3:6]}-{digits[6:]}"


def format_for_submission(raw: str | None) -> str | None:
    """Return the E.164 form of a US number, or None when the field is empty.

    Raises InvalidPhoneNumberError for anything that is neither 10 digits nor
    11 digits with a leading country code of 1.
    """
    if raw is None or not raw.strip():
        return None
    digits = _digits(raw)
    if len(digits) == 10:
        return f"+1{digits}"
    if len(digits) == 11 and digits.startswith("1"):
        return f"+{digits}"
    raise InvalidPhoneNumberError("enter a valid 10-digit US phone number")


def format_for_display(raw: str | None) -> str:
    if raw is None or not raw.strip():
        return DISPLAY_PLACEHOLDER
    digits = _digits(raw)
    if len(digits) == 11 and digits.startswith("1"):
        digits = digits[1:]
    if len(digits) != 10:
        return raw
    return f"+1 ({digits[:3]}) {digits[3:6]}-{digits[6:]}"


def _digits(raw: str | None) -> str:
    if not raw:
        return ""
    return _NON_DIGIT_RE.sub("", raw)
