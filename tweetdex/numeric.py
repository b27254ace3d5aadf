"""Decimal helpers shared by the pricing engine and the portfolio ledger.

All reserve and position arithmetic runs on ``decimal.Decimal`` under
``ENGINE_CONTEXT`` so long sequences of trades do not drift the
constant product the way binary floats do.
"""

import math
from decimal import Context, Decimal, InvalidOperation, ROUND_HALF_EVEN, localcontext
from typing import Union

from .errors import InvalidAmount

Number = Union[int, float, str, Decimal]

ENGINE_CONTEXT = Context(prec=40, rounding=ROUND_HALF_EVEN)

ZERO = Decimal(0)
ONE = Decimal(1)
HUNDRED = Decimal(100)
BPS_DENOMINATOR = Decimal(10_000)

# Absolute tolerance for balance comparisons (token and base units)
BALANCE_TOLERANCE = Decimal("1e-18")


def to_decimal(value: Number, name: str = "amount") -> Decimal:
    """Convert ``value`` to a finite Decimal or raise InvalidAmount.

    Floats go through ``str`` so ``0.1`` becomes ``Decimal("0.1")``
    rather than its binary expansion.
    """
    if isinstance(value, bool):
        raise InvalidAmount(f"{name} must be numeric, got bool")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, float):
        if not math.isfinite(value):
            raise InvalidAmount(f"{name} must be finite, got {value}")
        result = Decimal(str(value))
    elif isinstance(value, (int, str)):
        try:
            result = Decimal(value)
        except InvalidOperation:
            raise InvalidAmount(f"{name} is not a number: {value!r}") from None
    else:
        # numpy scalars and similar
        try:
            result = Decimal(str(float(value)))
        except (TypeError, ValueError, InvalidOperation):
            raise InvalidAmount(f"{name} is not a number: {value!r}") from None

    if not result.is_finite():
        raise InvalidAmount(f"{name} must be finite, got {value}")
    return result


def require_positive(value: Number, name: str = "amount") -> Decimal:
    """Coerce ``value`` with ``to_decimal`` and require it to be above zero."""
    result = to_decimal(value, name)
    if result <= ZERO:
        raise InvalidAmount(f"{name} must be positive, got {result}")
    return result


def require_non_negative(value: Number, name: str = "amount") -> Decimal:
    """Coerce ``value`` with ``to_decimal`` and reject negatives."""
    result = to_decimal(value, name)
    if result < ZERO:
        raise InvalidAmount(f"{name} must be non-negative, got {result}")
    return result


def pct_change(new: Decimal, old: Decimal) -> Decimal:
    """Percentage change from ``old`` to ``new``."""
    with localcontext(ENGINE_CONTEXT):
        return (new - old) / old * HUNDRED


def relative_error(actual: Decimal, expected: Decimal) -> Decimal:
    """|actual - expected| / |expected|, or |actual| when ``expected`` is zero."""
    with localcontext(ENGINE_CONTEXT):
        if expected == ZERO:
            return abs(actual)
        return abs((actual - expected) / expected)
