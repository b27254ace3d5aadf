"""Utility helpers for lightweight test execution without pytest.

Provides assertion helpers that accept both floats and Decimals so engine
values can be compared without converting at every call site."""

import math
from decimal import Decimal, localcontext


def _as_decimal(value) -> Decimal:
    if isinstance(value, float):
        return Decimal(repr(value))
    return Decimal(value)


def assert_close(actual, expected, rel: float = 1e-9, msg: str = ""):
    """Assert that two numeric values are approximately equal.

    Decimal operands are compared in Decimal arithmetic so tolerances far
    below float epsilon stay meaningful.
    """
    suffix = f" ({msg})" if msg else ""
    if isinstance(actual, Decimal) or isinstance(expected, Decimal):
        with localcontext() as ctx:
            ctx.prec = 60
            a, b = _as_decimal(actual), _as_decimal(expected)
            tolerance = max(_as_decimal(rel) * max(abs(a), abs(b)), Decimal("1e-12"))
            if abs(a - b) > tolerance:
                raise AssertionError(f"Expected {expected} ± {rel}, got {actual}{suffix}")
        return

    if not math.isclose(actual, expected, rel_tol=rel, abs_tol=1e-12):
        raise AssertionError(f"Expected {expected} ± {rel}, got {actual}{suffix}")


def expect_raises(exception, func, *args, **kwargs):
    """Assert that a function raises a specific exception and return it."""
    try:
        func(*args, **kwargs)
    except exception as exc:
        return exc
    raise AssertionError(f"Expected {exception.__name__} to be raised")


def d(value) -> Decimal:
    """Shorthand for building exact Decimal literals in tests."""
    return Decimal(str(value))
