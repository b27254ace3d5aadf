"""Constant-product (x * y = k) pricing engine for tweet markets.

Buys solve ``(x - dx) * (y + dy_net) = k`` for the tokens paid out, with the
fee taken from the settlement-currency input. Sells solve
``(x + dx) * (y - dy) = k`` for the settlement currency released, with the
fee taken from the output. The fee never enters the pool in either
direction, so ``k`` is preserved by every trade up to decimal rounding.

Every function is pure: pools are immutable and each execution returns a
new pool for the caller to commit.
"""

from decimal import Decimal, localcontext
from typing import Tuple

from .errors import InvalidAmount, PoolDivisionByZero, PrecisionLoss
from .numeric import (
    BPS_DENOMINATOR,
    ENGINE_CONTEXT,
    HUNDRED,
    ONE,
    ZERO,
    Number,
    pct_change,
    require_positive,
    to_decimal,
)
from .state import LiquidityPool, TradeQuote, TradeSide

TRADING_FEE_BPS = 30
TRADING_FEE_RATE = Decimal(TRADING_FEE_BPS) / BPS_DENOMINATOR  # 0.3%, as on Uniswap V2
FIXED_SUPPLY = Decimal(1_000_000)
HIGH_PRICE_IMPACT_PCT = Decimal(5)


def fee_rate_from_bps(fee_bps: Number) -> Decimal:
    """Convert a fee in basis points to a fractional rate."""
    return _check_fee_rate(to_decimal(fee_bps, "fee_bps") / BPS_DENOMINATOR)


def _check_fee_rate(fee_rate: Number) -> Decimal:
    rate = to_decimal(fee_rate, "fee_rate")
    if rate < ZERO or rate >= ONE:
        raise InvalidAmount(f"fee_rate must be in [0, 1), got {rate}")
    return rate


def create_pool(reserve_instrument: Number, reserve_base: Number) -> LiquidityPool:
    """Create a pool with strictly positive reserves."""
    return LiquidityPool(
        reserve_instrument=require_positive(reserve_instrument, "reserve_instrument"),
        reserve_base=require_positive(reserve_base, "reserve_base"),
    )


def current_price(pool: LiquidityPool) -> Decimal:
    """Spot price of one token in settlement currency (reserve_base / reserve_instrument)."""
    if pool.reserve_instrument == ZERO:
        raise PoolDivisionByZero("Pool has no instrument reserve; price is undefined")
    with localcontext(ENGINE_CONTEXT):
        return pool.reserve_base / pool.reserve_instrument


def market_cap(pool: LiquidityPool, fixed_supply: Number = FIXED_SUPPLY) -> Decimal:
    """Spot price times the fixed token supply."""
    supply = require_positive(fixed_supply, "fixed_supply")
    with localcontext(ENGINE_CONTEXT):
        return current_price(pool) * supply


def _require_live_pool(pool: LiquidityPool) -> Decimal:
    """Return the pre-trade price, rejecting pools with an empty reserve."""
    price = current_price(pool)
    if pool.reserve_base == ZERO:
        raise PoolDivisionByZero("Pool has no base reserve; price impact is undefined")
    return price


def _price_buy(pool: LiquidityPool, base_amount_in: Number, fee_rate: Number) -> Tuple[TradeQuote, LiquidityPool]:
    """Shared buy pricing: fee off the input, tokens out along the curve."""
    base_in = require_positive(base_amount_in, "base_amount_in")
    rate = _check_fee_rate(fee_rate)
    old_price = _require_live_pool(pool)

    with localcontext(ENGINE_CONTEXT):
        fee = base_in * rate
        net_in = base_in - fee  # fee + net_in == base_in exactly

        tokens_out = (pool.reserve_instrument * net_in) / (pool.reserve_base + net_in)
        if tokens_out >= pool.reserve_instrument:
            raise PrecisionLoss(f"Buy of {base_in} would drain the instrument reserve")
        if tokens_out <= ZERO:
            raise PrecisionLoss(f"Buy of {base_in} is too small to yield any tokens")

        new_pool = LiquidityPool(
            reserve_instrument=pool.reserve_instrument - tokens_out,
            reserve_base=pool.reserve_base + net_in,
        )
        new_price = new_pool.reserve_base / new_pool.reserve_instrument
        average_price = base_in / tokens_out

    quote = TradeQuote(
        side=TradeSide.BUY,
        input_amount=base_in,
        output_amount=tokens_out,
        price_impact_pct=pct_change(new_price, old_price),
        slippage_pct=pct_change(average_price, old_price),
        new_price=new_price,
        fee=fee,
    )
    return quote, new_pool


def _price_sell(pool: LiquidityPool, token_amount_in: Number, fee_rate: Number) -> Tuple[TradeQuote, LiquidityPool]:
    """Shared sell pricing: base out along the curve, fee off the output."""
    tokens_in = require_positive(token_amount_in, "token_amount_in")
    rate = _check_fee_rate(fee_rate)
    old_price = _require_live_pool(pool)

    with localcontext(ENGINE_CONTEXT):
        base_out = (pool.reserve_base * tokens_in) / (pool.reserve_instrument + tokens_in)
        if base_out >= pool.reserve_base:
            raise PrecisionLoss(f"Sell of {tokens_in} would drain the base reserve")
        if base_out <= ZERO:
            raise PrecisionLoss(f"Sell of {tokens_in} is too small to release any base")

        # Fee is taken from the output on sells
        fee = base_out * rate
        net_out = base_out - fee

        new_pool = LiquidityPool(
            reserve_instrument=pool.reserve_instrument + tokens_in,
            reserve_base=pool.reserve_base - base_out,
        )
        new_price = new_pool.reserve_base / new_pool.reserve_instrument
        average_price = net_out / tokens_in

        # Reported as the adverse move, positive when the price falls
        price_impact = (old_price - new_price) / old_price * HUNDRED
        slippage = (old_price - average_price) / old_price * HUNDRED

    quote = TradeQuote(
        side=TradeSide.SELL,
        input_amount=tokens_in,
        output_amount=net_out,
        price_impact_pct=price_impact,
        slippage_pct=slippage,
        new_price=new_price,
        fee=fee,
    )
    return quote, new_pool


def quote_buy(pool: LiquidityPool, base_amount_in: Number, fee_rate: Number = TRADING_FEE_RATE) -> TradeQuote:
    """Price a buy of tokens paid for with ``base_amount_in`` settlement currency.

    Raises InvalidAmount for non-positive or non-finite input.
    """
    quote, _ = _price_buy(pool, base_amount_in, fee_rate)
    return quote


def quote_sell(pool: LiquidityPool, token_amount_in: Number, fee_rate: Number = TRADING_FEE_RATE) -> TradeQuote:
    """Price a sale of ``token_amount_in`` tokens back into the pool."""
    quote, _ = _price_sell(pool, token_amount_in, fee_rate)
    return quote


def execute_buy(
    pool: LiquidityPool, base_amount_in: Number, fee_rate: Number = TRADING_FEE_RATE
) -> Tuple[TradeQuote, LiquidityPool]:
    """Price a buy and return it with the post-trade pool.

    The input pool is untouched; the caller commits the returned pool.
    """
    return _price_buy(pool, base_amount_in, fee_rate)


def execute_sell(
    pool: LiquidityPool, token_amount_in: Number, fee_rate: Number = TRADING_FEE_RATE
) -> Tuple[TradeQuote, LiquidityPool]:
    """Price a sell and return it with the post-trade pool."""
    return _price_sell(pool, token_amount_in, fee_rate)


def is_high_impact(quote: TradeQuote, threshold_pct: Number = HIGH_PRICE_IMPACT_PCT) -> bool:
    """Whether a quote moves the price by more than ``threshold_pct`` percent."""
    return abs(quote.price_impact_pct) > to_decimal(threshold_pct, "threshold_pct")
