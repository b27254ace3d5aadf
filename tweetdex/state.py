"""Core data structures for pools, quotes, positions, trades and virality.

Every record is a frozen dataclass. Updates are produced as new values by the
pricing and portfolio functions; callers replace the old value in their own
store.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional, Tuple

from .config import SimulationConfig
from .numeric import ENGINE_CONTEXT, ZERO, require_non_negative


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class TradeSide(str, Enum):
    BUY = "buy"
    SELL = "sell"


class Trend(str, Enum):
    RISING = "rising"
    FALLING = "falling"
    STABLE = "stable"


@dataclass(frozen=True)
class LiquidityPool:
    """Constant-product AMM state for one instrument.

    ``invariant_product`` is always derived from the reserves at construction
    time, so a pool value can never carry a stale product.
    """
    reserve_instrument: Decimal                                   # Instrument tokens held by the pool
    reserve_base: Decimal                                         # Settlement currency held by the pool
    invariant_product: Decimal = field(init=False, compare=False)  # reserve_instrument * reserve_base

    def __post_init__(self):
        reserve_instrument = require_non_negative(self.reserve_instrument, "reserve_instrument")
        reserve_base = require_non_negative(self.reserve_base, "reserve_base")
        object.__setattr__(self, "reserve_instrument", reserve_instrument)
        object.__setattr__(self, "reserve_base", reserve_base)
        object.__setattr__(self, "invariant_product", ENGINE_CONTEXT.multiply(reserve_instrument, reserve_base))


@dataclass(frozen=True)
class TradeQuote:
    """Outcome of pricing a trade against a pool snapshot."""
    side: TradeSide
    input_amount: Decimal        # Base in for buys, tokens in for sells
    output_amount: Decimal       # Tokens out for buys, net base out for sells
    price_impact_pct: Decimal    # Move of the spot price caused by the trade
    slippage_pct: Decimal        # Realized average price vs. pre-trade spot price
    new_price: Decimal           # Spot price implied by post-trade reserves
    fee: Decimal                 # Fee charged in settlement currency


@dataclass(frozen=True)
class Position:
    """Holdings of one instrument with cost basis and mark-to-market fields."""
    instrument_id: str
    token_balance: Decimal
    average_cost: Decimal                   # Volume-weighted cost per token
    total_invested: Decimal                 # Remaining cost basis in settlement currency
    current_value: Decimal = ZERO           # Filled in by mark_to_market
    unrealized_pnl: Decimal = ZERO
    unrealized_pnl_pct: Decimal = ZERO


@dataclass(frozen=True)
class Trade:
    """Immutable record of an executed trade."""
    id: str
    instrument_id: str
    side: TradeSide
    token_amount: Decimal
    base_amount: Decimal         # Base paid for buys, net base received for sells
    execution_price: Decimal     # base_amount / token_amount
    timestamp: datetime
    slippage_pct: Decimal


@dataclass(frozen=True)
class PortfolioStats:
    total_value: Decimal
    total_invested: Decimal
    total_pnl: Decimal
    total_pnl_pct: Decimal
    best_performer: Optional[Position]
    worst_performer: Optional[Position]


@dataclass(frozen=True)
class EngagementMetrics:
    """Snapshot of a tweet's engagement counters."""
    likes: int
    retweets: int
    replies: int
    timestamp: datetime = field(default_factory=utc_now)


@dataclass(frozen=True)
class ViralityScore:
    score: float
    momentum_pct: float
    trend: Trend
    multiplier: float            # Never below 1.0


@dataclass(frozen=True)
class PricePoint:
    timestamp: datetime
    price: float
    volume: float


@dataclass(frozen=True)
class TweetMarket:
    """One tradable tweet as held by the market registry."""
    id: str
    tweet_url: str
    tweet_text: str
    author_handle: str
    author_name: str
    pool: LiquidityPool
    metrics: EngagementMetrics
    volume_total: Decimal = ZERO          # Cumulative settlement volume since listing
    price_change_24h: float = 0.0
    holders: int = 0
    created_at: datetime = field(default_factory=utc_now)


@dataclass
class MarketSnapshot:
    """Per-market state captured at one simulation step."""
    step: int                             # Simulation step (0-based)
    instrument_id: str
    price: float                          # Spot price after the step's trades
    reserve_instrument: float
    reserve_base: float
    volume: float = 0.0                   # Settlement volume traded this step
    buys: int = 0
    sells: int = 0
    engagement_score: float = 0.0
    momentum_pct: float = 0.0
    trend: str = Trend.STABLE.value
    multiplier: float = 1.0


@dataclass
class SimulationResults:
    """Results from a complete demo market run."""
    snapshots: List[MarketSnapshot]             # One entry per market per step
    trades: List[Trade]                         # All executed trades in order
    final_markets: Dict[str, TweetMarket]       # Registry contents after the last step
    trader_summaries: List[Dict[str, float]]    # Per-trader ledger summary
    config: SimulationConfig
    rejected_trades: int = 0
    price_range: Dict[str, Tuple[float, float]] = field(default_factory=dict)
