"""
Money helpers -- Decimal coercion and two-place rounding.

All monetary arithmetic in the kernel goes through ``to_decimal`` and
``round2``.  Floats are converted through ``str`` so that binary noise
(0.1 + 0.2) never reaches a stored amount.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

ZERO = Decimal("0.00")
HUNDRED = Decimal("100")
_CENT = Decimal("0.01")


def to_decimal(value: Decimal | int | float | str) -> Decimal:
    """
    Convert a numeric input to Decimal.

    Raises:
        ValueError: value is not a finite number.
    """
    if isinstance(value, bool):
        raise ValueError(f"Not a number: {value!r}")
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value))
        except InvalidOperation:
            raise ValueError(f"Not a number: {value!r}") from None
    if not result.is_finite():
        raise ValueError(f"Not a finite number: {value!r}")
    return result


def round2(value: Decimal | int | float | str) -> Decimal:
    """Round half-up to two decimal places."""
    return to_decimal(value).quantize(_CENT, rounding=ROUND_HALF_UP)


def clamp(value: Decimal, low: Decimal, high: Decimal) -> Decimal:
    return max(low, min(value, high))
