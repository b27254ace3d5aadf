"""Tweet Market AMM Engine

Pricing and portfolio engine for markets where each tradable instrument is a
single tweet:
- Constant-product bonding curve pricing with a 0.3% trading fee
- Per-user portfolio ledger with volume-weighted cost basis and P&L
- Engagement-based virality scoring for biasing external order flow
- In-process market registry serializing trades per instrument
- Agent-based demo market and polars reporting
"""

__version__ = "0.1.0"

from .config import EngineConfig, SimulationConfig
from .errors import (
    InsufficientBalance,
    InvalidAmount,
    PoolDivisionByZero,
    PrecisionLoss,
    TweetDexError,
    UnknownMarket,
)
from .state import (
    EngagementMetrics,
    LiquidityPool,
    MarketSnapshot,
    PortfolioStats,
    Position,
    PricePoint,
    SimulationResults,
    Trade,
    TradeQuote,
    TradeSide,
    Trend,
    TweetMarket,
    ViralityScore,
)

# Pricing engine
from .pricing import (
    FIXED_SUPPLY,
    TRADING_FEE_RATE,
    create_pool,
    current_price,
    execute_buy,
    execute_sell,
    fee_rate_from_bps,
    is_high_impact,
    market_cap,
    quote_buy,
    quote_sell,
)

# Portfolio ledger
from .portfolio import (
    DUST_THRESHOLD,
    PortfolioLedger,
    aggregate_portfolio,
    cost_removed,
    mark_to_market,
    open_or_increase_position,
    realized_pnl,
    reduce_position,
)

# Virality scoring
from .virality import (
    analyze_virality,
    classify_trend,
    engagement_score,
    momentum_pct,
    predict_virality_probability,
    virality_multiplier,
)

from .market import MarketRegistry, initialize_market
from .mockdata import generate_price_history, generate_trending_markets, simulate_metrics_growth
from .metrics import (
    calculate_key_metrics,
    export_metrics_to_file,
    positions_to_dataframe,
    price_history_to_dataframe,
    snapshots_to_dataframe,
    summarize_trades,
    trades_to_dataframe,
)
from .analysis import analyze_results
from .simulation import MarketSimulation, TweetMarketModel

__all__ = [
    # Configuration
    "EngineConfig",
    "SimulationConfig",

    # Errors
    "TweetDexError",
    "InvalidAmount",
    "InsufficientBalance",
    "PoolDivisionByZero",
    "PrecisionLoss",
    "UnknownMarket",

    # State
    "LiquidityPool",
    "TradeQuote",
    "Position",
    "Trade",
    "TradeSide",
    "PortfolioStats",
    "EngagementMetrics",
    "ViralityScore",
    "Trend",
    "PricePoint",
    "TweetMarket",
    "MarketSnapshot",
    "SimulationResults",

    # Pricing engine
    "FIXED_SUPPLY",
    "TRADING_FEE_RATE",
    "create_pool",
    "current_price",
    "market_cap",
    "quote_buy",
    "quote_sell",
    "execute_buy",
    "execute_sell",
    "fee_rate_from_bps",
    "is_high_impact",

    # Portfolio ledger
    "DUST_THRESHOLD",
    "PortfolioLedger",
    "open_or_increase_position",
    "reduce_position",
    "mark_to_market",
    "aggregate_portfolio",
    "cost_removed",
    "realized_pnl",

    # Virality
    "engagement_score",
    "momentum_pct",
    "classify_trend",
    "virality_multiplier",
    "analyze_virality",
    "predict_virality_probability",

    # Markets and demo data
    "MarketRegistry",
    "initialize_market",
    "generate_trending_markets",
    "generate_price_history",
    "simulate_metrics_growth",

    # Reporting and simulation
    "trades_to_dataframe",
    "positions_to_dataframe",
    "price_history_to_dataframe",
    "snapshots_to_dataframe",
    "summarize_trades",
    "calculate_key_metrics",
    "export_metrics_to_file",
    "analyze_results",
    "MarketSimulation",
    "TweetMarketModel",
]
