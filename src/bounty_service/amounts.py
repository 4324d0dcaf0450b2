"""Fixed-point amount handling.

Amounts are ``Decimal`` values with at most nine fractional digits, the
smallest unit the settlement network transfers.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation

from bounty_service.core.exceptions import ServiceError

AMOUNT_PLACES = 9
AMOUNT_QUANTUM = Decimal(1).scaleb(-AMOUNT_PLACES)
ZERO = Decimal(0).quantize(AMOUNT_QUANTUM)
# Largest power of ten an amount may reach while staying exact at nine places
MAX_AMOUNT_EXPONENT = 18


def quantize(value: Decimal) -> Decimal:
    """Normalize a decimal to the fixed amount scale."""
    return value.quantize(AMOUNT_QUANTUM)


def to_amount(value: object) -> Decimal | None:
    """
    Convert a JSON-ish value to a fixed-point amount.

    Returns None for anything that is not a finite number representable at
    the amount scale (bools, NaN, infinities, more than nine decimals, values
    of 10**19 or more).
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        candidate = value
    elif isinstance(value, (int, float, str)):
        try:
            candidate = Decimal(str(value).strip())
        except InvalidOperation:
            return None
    else:
        return None

    if not candidate.is_finite() or candidate.adjusted() > MAX_AMOUNT_EXPONENT:
        return None
    try:
        quantized = quantize(candidate)
    except InvalidOperation:
        return None
    if quantized != candidate:
        return None
    return quantized


def parse_amount(value: object, field_name: str) -> Decimal:
    """Parse a strictly positive amount or raise INVALID_AMOUNT (400)."""
    amount = to_amount(value)
    if amount is None or amount <= 0:
        raise ServiceError(
            "INVALID_AMOUNT",
            f"{field_name} must be a positive number with at most {AMOUNT_PLACES} decimals",
            400,
            {"field": field_name},
        )
    return amount


def amount_from_db(value: str | None) -> Decimal:
    """Read an amount stored as TEXT."""
    if value is None:
        return ZERO
    return quantize(Decimal(value))


def amount_to_db(value: Decimal) -> str:
    """Render an amount for TEXT storage."""
    return str(quantize(value))


def format_amount(value: Decimal) -> str:
    """Render an amount as a plain decimal string without trailing zeros."""
    return f"{quantize(value).normalize():f}"
