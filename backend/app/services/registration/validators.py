"""Chilean RUT, mobile phone and email format checks.

These helpers are shared by the kiosk screens (to block a step before it is
stored in the draft) and by the API schema (the authoritative check before
anything is persisted). They are pure functions with no Flask dependency.
"""
from __future__ import annotations

import re

RUT_SEPARATORS_RE = re.compile(r"[.-]")
PHONE_NOISE_RE = re.compile(r"[\s\-()]")
CHILEAN_MOBILE_RE = re.compile(r"(\+?56)?9\d{8}")
EMAIL_RE = re.compile(r"[^@\s]+@[^@\s]+\.[^@\s]+")


def clean_rut(rut: str) -> str:
    """Remove the `.` and `-` separators from a RUT."""
    return RUT_SEPARATORS_RE.sub('', rut)


def compute_check_digit(body: str) -> str:
    """Return the modulo-11 check character for a digit body.

    Digits are weighted from the least significant one with the cycle
    2, 3, 4, 5, 6, 7, 2, 3, ...
    """
    total = 0
    multiplier = 2
    for digit in reversed(body):
        total += int(digit) * multiplier
        multiplier = 2 if multiplier == 7 else multiplier + 1

    expected = 11 - (total % 11)
    if expected == 11:
        return '0'
    if expected == 10:
        return 'K'
    return str(expected)


def validate_rut(rut: str) -> bool:
    """Return True when `rut` carries a correct check digit.

    Accepts dotted (12.345.678-5) and bare (123456785) forms; the check
    character is compared case-insensitively.
    """
    if not isinstance(rut, str):
        return False
    cleaned = clean_rut(rut)
    if len(cleaned) < 2:
        return False

    body, check = cleaned[:-1], cleaned[-1].upper()
    # str.isdigit() also accepts superscripts and other unicode digits
    if not re.fullmatch(r"[0-9]+", body):
        return False
    return check == compute_check_digit(body)


def format_rut(rut: str) -> str:
    """Format a RUT as 12.345.678-5.

    The check character keeps the case it was typed in. Input shorter than
    two characters once stripped is returned unchanged.
    """
    cleaned = clean_rut(rut)
    if len(cleaned) < 2:
        return rut

    body, check = cleaned[:-1], cleaned[-1]
    grouped = re.sub(r"\B(?=(\d{3})+(?!\d))", '.', body)
    return f"{grouped}-{check}"


def validate_phone(phone: str) -> bool:
    """Chilean mobile number: optional (+)56 prefix, a 9, then 8 digits."""
    if not isinstance(phone, str):
        return False
    return bool(CHILEAN_MOBILE_RE.fullmatch(PHONE_NOISE_RE.sub('', phone)))


def validate_email(email: str) -> bool:
    if not isinstance(email, str):
        return False
    return bool(EMAIL_RE.fullmatch(email))
