"""Error types raised by the pricing engine, ledger and market registry."""

from decimal import Decimal
from typing import Optional


class TweetDexError(Exception):
    """Base class for all engine errors."""


class InvalidAmount(TweetDexError, ValueError):
    """Amount is non-positive, non-finite or not a number."""


class InsufficientBalance(TweetDexError):
    """Trade exceeds the tokens or settlement currency available."""

    def __init__(self, message: str, requested: Optional[Decimal] = None, available: Optional[Decimal] = None):
        super().__init__(message)
        self.requested = requested
        self.available = available


class PoolDivisionByZero(TweetDexError, ZeroDivisionError):
    """Pool has an empty reserve and cannot be priced."""


class PrecisionLoss(TweetDexError, ArithmeticError):
    """Result would drain a reserve or fall outside the representable range."""


class UnknownMarket(TweetDexError, KeyError):
    """No market is registered under the requested instrument id."""
