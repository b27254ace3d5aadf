"""Configuration for the tweetdex engine and demo simulation."""

import json
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Optional


@dataclass
class EngineConfig:
    """Parameters shared by the pricing engine, ledger and market registry.

    Defaults mirror a freshly listed tweet market: 1M tokens against 1,000
    units of settlement currency with a Uniswap V2 style 0.3% fee.
    """

    # Swap fee - charged on input for buys and on output for sells
    trading_fee_bps: int = 30  # 30 bps = 0.30%

    # Token economics
    fixed_supply: float = 1_000_000  # Supply used for market cap
    initial_reserve_instrument: float = 1_000_000.0  # Tokens seeded into each new pool
    initial_reserve_base: float = 1_000.0  # Settlement currency seeded into each new pool

    # Ledger behaviour
    dust_threshold: float = 0.0001  # Positions at or below this balance are pruned
    starting_balance: float = 10_000.0  # Settlement currency credited to a new ledger

    # Signal thresholds
    high_impact_pct: float = 5.0  # Quotes moving price more than this are flagged
    trend_threshold_pct: float = 5.0  # Momentum beyond +/- this is rising/falling

    @property
    def fee_rate(self) -> float:
        return self.trading_fee_bps / 10_000.0

    def validate(self) -> None:
        """Validate configuration against engine invariants."""
        assert 0 <= self.trading_fee_bps < 10_000, "Trading fee must be between 0 and 10000 bps"
        assert self.fixed_supply > 0, "Fixed supply must be positive"
        assert self.initial_reserve_instrument > 0, "Initial instrument reserve must be positive"
        assert self.initial_reserve_base > 0, "Initial base reserve must be positive"
        assert self.dust_threshold >= 0, "Dust threshold cannot be negative"
        assert self.starting_balance >= 0, "Starting balance cannot be negative"
        assert self.high_impact_pct >= 0
        assert self.trend_threshold_pct >= 0

    @classmethod
    def from_file(cls, file_path: str, overrides: Optional[dict] = None) -> "EngineConfig":
        """Load configuration from a JSON file with an ``engine_config`` section."""
        path = Path(file_path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {file_path}")

        with path.open("r", encoding="utf-8") as handle:
            data = json.load(handle)

        engine_config = data.get("engine_config", {})
        engine_config.update(overrides or {})
        return cls(**engine_config)


@dataclass
class SimulationConfig:
    """Configuration bundle for a single demo market run.

    Controls how many traders act, how large their orders are and how
    quickly engagement on each tweet grows between steps.
    """

    # Population
    trader_count: int = 25  # Traders, each owning one ledger
    markets_count: int = 5  # Trending markets listed at start (max 5 built-in tweets)

    # Order flow
    trade_probability: float = 0.3  # Chance a trader acts in a step
    sell_probability: float = 0.35  # Chance an acting trader sells rather than buys
    buy_size_mean: float = 25.0  # Mean settlement currency per buy (log-normal)
    buy_size_sigma: float = 0.8  # Log-normal shape of buy sizes
    sell_fraction_max: float = 0.6  # Largest fraction of a holding sold at once

    # Engagement growth
    metrics_volatility: float = 0.1  # Passed to simulate_metrics_growth

    # Simulation controls
    random_seed: int = 42  # Seed forwarded to the model and numpy

    engine: EngineConfig = field(default_factory=EngineConfig)

    def __post_init__(self):
        if self.engine is None:
            self.engine = EngineConfig()

    def validate(self) -> None:
        assert self.trader_count > 0, "Need at least one trader"
        assert 1 <= self.markets_count <= 5, "Between 1 and 5 markets are available"
        assert 0 <= self.trade_probability <= 1
        assert 0 <= self.sell_probability <= 1
        assert self.buy_size_mean > 0, "Buy size must be positive"
        assert self.buy_size_sigma >= 0
        assert 0 < self.sell_fraction_max <= 1
        assert self.metrics_volatility >= 0
        self.engine.validate()

    def to_agentpy_params(self) -> dict:
        """Convert configuration to agentpy-friendly parameter dictionary."""
        params = asdict(self)
        params.pop("engine")
        params["seed"] = self.random_seed
        params["engine_config"] = self.engine
        params["simulation_config"] = self
        return params
