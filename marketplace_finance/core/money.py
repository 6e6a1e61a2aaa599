"""
Money arithmetic helpers.

All monetary values are exact decimals rounded half-up to the cent.
"""

from decimal import Decimal, ROUND_CEILING, ROUND_HALF_UP
from typing import Union

CENT = Decimal("0.01")
ZERO = Decimal("0.00")

Numeric = Union[Decimal, int, float, str]


def to_decimal(value: Numeric) -> Decimal:
    """Convert a numeric value to Decimal without binary float artifacts.

    Floats are routed through ``str`` so that ``0.1`` becomes ``Decimal("0.1")``
    rather than its binary expansion.
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise TypeError("bool is not a monetary value")
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


def to_finite_decimal(value: Numeric) -> Decimal:
    """Convert to Decimal, rejecting non-numeric, NaN and infinite input.

    Raises:
        ValueError: With a message naming the rejected value
    """
    try:
        amount = to_decimal(value)
    except (TypeError, ArithmeticError, ValueError):
        raise ValueError(f"not a number: {value!r}")
    if not amount.is_finite():
        raise ValueError(f"must be finite, got {value!r}")
    return amount


def has_sub_cent_digits(value: Decimal) -> bool:
    """True if ``value`` cannot be represented exactly in whole cents."""
    cents = value * 100
    return cents != cents.to_integral_value()


def round_money(value: Numeric) -> Decimal:
    """Round to 2 decimal places, half-up."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def round_up_to_step(value: Numeric, step: Numeric) -> Decimal:
    """Round up to the next multiple of ``step`` (e.g. 46.5 -> 50 for step 5)."""
    amount = to_decimal(value)
    increment = to_decimal(step)
    if increment <= 0:
        raise ValueError("step must be > 0")
    multiples = (amount / increment).to_integral_value(rounding=ROUND_CEILING)
    return round_money(multiples * increment)
