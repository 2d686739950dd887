"""
Money and rounding primitives.

All monetary values are Decimal. Rounding to cents is half away from zero
(ROUND_HALF_UP in the decimal module rounds magnitudes, so -0.005 becomes
-0.01). Upward rounding to an increment uses ROUND_CEILING.
"""

from decimal import ROUND_CEILING, ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Union

from quoteflow.errors import InvalidInput

Number = Union[Decimal, int, float, str]

CENT = Decimal("0.01")
TENTH = Decimal("0.1")
ZERO = Decimal("0.00")
PRICE_INCREMENT = Decimal("2.50")


def to_decimal(value: Number, field: str = "value") -> Decimal:
    """Convert to Decimal, rejecting NaN, infinity and unparsable input."""
    if isinstance(value, bool):
        raise InvalidInput(f"{field} must be numeric", field=field, value=value)
    try:
        result = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        raise InvalidInput(f"{field} is not a valid amount", field=field, value=value)
    if not result.is_finite():
        raise InvalidInput(f"{field} must be finite", field=field, value=value)
    return result


def round_cents(value: Number) -> Decimal:
    """Round to 2 decimal places, half away from zero."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def round_up_to_increment(value: Number, increment: Decimal = PRICE_INCREMENT) -> Decimal:
    """
    Round up to the next multiple of increment.

    >>> round_up_to_increment(Decimal("67.60"))
    Decimal('70.00')
    """
    value = to_decimal(value)
    steps = (value / increment).to_integral_value(rounding=ROUND_CEILING)
    return round_cents(steps * increment)


def ceil_to_tenth(value: Number) -> Decimal:
    """Round up to the nearest 0.1."""
    return to_decimal(value).quantize(TENTH, rounding=ROUND_CEILING)


def format_money(value: Number) -> str:
    return f"${round_cents(value):,.2f}"
