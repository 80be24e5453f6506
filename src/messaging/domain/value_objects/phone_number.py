# src/messaging/domain/value_objects/phone_number.py
"""
Phone Number Normalization
WhatsApp addresses numbers as digits only: country code + national number, no "+".
"""
from __future__ import annotations

import re
from typing import Optional

_NON_DIGITS = re.compile(r"\D")

# (prefix, min length, max length) of numbers that already carry a country code
_INTERNATIONAL = (
    ("91", 12, 12),  # India
    ("44", 12, 13),  # UK
    ("1", 11, 11),   # US/Canada
    ("86", 13, 13),  # China
    ("61", 11, 11),  # Australia
    ("49", 11, 13),  # Germany
    ("33", 12, 12),  # France
)

_DOUBLE_PREFIX_CODES = ("91", "44", "1", "86", "61")


def digits_only(raw: str) -> str:
    return _NON_DIGITS.sub("", raw or "")


def is_international(digits: str) -> bool:
    """True when `digits` already starts with a known country code of plausible length."""
    return any(
        digits.startswith(prefix) and low <= len(digits) <= high
        for prefix, low, high in _INTERNATIONAL
    )


def fix_double_country_code(digits: str) -> str:
    """
    Repair numbers that were prefixed twice.

    Examples:
        44919763083516 → 919763083516
        91449876543210 → 449876543210
    """
    if len(digits) >= 14 and digits.startswith("4491"):
        return "91" + digits[4:]
    if len(digits) >= 14 and digits.startswith("9144"):
        return "44" + digits[4:]
    if len(digits) >= 15:
        for first in _DOUBLE_PREFIX_CODES:
            for second in _DOUBLE_PREFIX_CODES:
                if first != second and digits.startswith(first + second):
                    return digits[len(first):]
    return digits


def normalize_phone(raw: str, country_code: Optional[str] = None) -> str:
    """
    Normalize a phone number for storage, matching and the provider API.

    Strips formatting and leading zeros, repairs doubled country prefixes,
    keeps numbers that are already international, otherwise prefixes the
    team's country code. Returns "" when nothing usable remains.

    Args:
        raw: Phone as typed or as received (may contain "+", spaces, dashes)
        country_code: Team country code (digits, e.g. "44")
    """
    digits = digits_only(raw).lstrip("0")
    if not digits:
        return ""
    digits = fix_double_country_code(digits)

    if is_international(digits):
        return digits
    if country_code:
        if digits.startswith(country_code):
            return digits
        return country_code + digits
    return digits


def extract_phone_from_wa_id(wa_id: str) -> str:
    """Drop a JID suffix ("919876543210@c.us" → "919876543210")."""
    if not wa_id:
        return ""
    local, sep, _ = wa_id.partition("@")
    return local if sep and local else wa_id
