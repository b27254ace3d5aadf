"""Agent-based demo market built on AgentPy.

Traders each own a PortfolioLedger and trade the built-in trending tweets
through a shared MarketRegistry. Engagement on every tweet grows between
steps and the resulting virality multiplier scales buy sizes, which is how
the scorer is meant to bias order flow from outside the pricing engine.
"""

import logging
import math
from typing import Dict, List, Optional

import agentpy as ap
import numpy as np

from .config import SimulationConfig
from .errors import InsufficientBalance, InvalidAmount, PrecisionLoss
from .market import MarketRegistry
from .mockdata import generate_trending_markets, simulate_metrics_growth
from .portfolio import PortfolioLedger
from .state import EngagementMetrics, MarketSnapshot, SimulationResults, Trade, TradeSide, ViralityScore
from .virality import analyze_virality

logger = logging.getLogger(__name__)

# Buys smaller than this are skipped rather than sent to the pool
MIN_ORDER_SIZE = 0.01


class TraderAgent(ap.Agent):
    """Retail trader owning one ledger."""

    def setup(self) -> None:
        engine = self.model.engine_config
        self.ledger = PortfolioLedger(
            owner=f"trader-{self.id}",
            starting_balance=engine.starting_balance,
            dust_threshold=engine.dust_threshold,
        )

    def act(self, rng: np.random.RandomState, virality: Dict[str, ViralityScore]) -> Optional[Trade]:
        """Maybe place one order; returns the executed trade or None."""
        config: SimulationConfig = self.model.simulation_config
        if rng.random_sample() >= config.trade_probability:
            return None

        registry: MarketRegistry = self.model.registry
        held = [p.instrument_id for p in self.ledger.positions()]

        if held and rng.random_sample() < config.sell_probability:
            instrument_id = held[rng.randint(len(held))]
            fraction = rng.uniform(0.05, config.sell_fraction_max)
            amount = float(self.ledger.token_balance(instrument_id)) * fraction
            trade, _ = registry.sell(instrument_id, amount, self.ledger)
            return trade

        # Pick a market in proportion to its virality multiplier
        market_ids = registry.market_ids()
        weights = np.array([virality[m].multiplier for m in market_ids], dtype=float)
        instrument_id = market_ids[rng.choice(len(market_ids), p=weights / weights.sum())]

        size = rng.lognormal(math.log(config.buy_size_mean), config.buy_size_sigma)
        size = min(size * virality[instrument_id].multiplier, float(self.ledger.balance))
        if size < MIN_ORDER_SIZE:
            return None
        trade, _ = registry.buy(instrument_id, round(size, 6), self.ledger)
        return trade


class TweetMarketModel(ap.Model):
    """AgentPy model of a handful of tweet markets and their traders."""

    def setup(self) -> None:
        self.simulation_config: SimulationConfig = self.p.get('simulation_config')
        if self.simulation_config is None:
            self.simulation_config = SimulationConfig()
            for key, value in self.p.items():
                if hasattr(self.simulation_config, key):
                    setattr(self.simulation_config, key, value)
        self.engine_config = self.simulation_config.engine

        seed = self.p.get('seed', self.simulation_config.random_seed)
        self.rng = np.random.RandomState(seed)

        self.registry = MarketRegistry(self.engine_config)
        for market in generate_trending_markets(self.rng, self.engine_config, self.simulation_config.markets_count):
            self.registry.add_market(market)

        self.metrics_history: Dict[str, List[EngagementMetrics]] = {
            market.id: [market.metrics] for market in self.registry.markets()
        }
        self.virality: Dict[str, ViralityScore] = {
            market_id: analyze_virality(history[-1], history[:-1], self.engine_config.trend_threshold_pct)
            for market_id, history in self.metrics_history.items()
        }

        self.traders = ap.AgentList(self, self.simulation_config.trader_count, TraderAgent)

        self.current_step: int = 0
        self.snapshots: List[MarketSnapshot] = []
        self.trades: List[Trade] = []
        self.rejected_trades: int = 0

    def step(self) -> None:
        """Grow engagement, let traders act, then snapshot every market."""
        self._update_virality()

        step_trades: List[Trade] = []
        for index in self.rng.permutation(len(self.traders)):
            trader = self.traders[int(index)]
            try:
                trade = trader.act(self.rng, self.virality)
            except (InsufficientBalance, InvalidAmount, PrecisionLoss) as exc:
                self.rejected_trades += 1
                logger.debug("Rejected order from %s: %s", trader.ledger.owner, exc)
                continue
            if trade is not None:
                step_trades.append(trade)

        self.trades.extend(step_trades)
        self._record_snapshots(step_trades)
        self.current_step += 1

    def _update_virality(self) -> None:
        volatility = self.simulation_config.metrics_volatility
        for market_id, history in self.metrics_history.items():
            grown = simulate_metrics_growth(history[-1], volatility, self.rng)
            self.virality[market_id] = analyze_virality(grown, history, self.engine_config.trend_threshold_pct)
            history.append(grown)
            self.registry.update_metrics(market_id, grown)

    def _record_snapshots(self, step_trades: List[Trade]) -> None:
        for market in self.registry.markets():
            trades = [t for t in step_trades if t.instrument_id == market.id]
            score = self.virality[market.id]
            self.snapshots.append(MarketSnapshot(
                step=self.current_step,
                instrument_id=market.id,
                price=float(self.registry.current_price(market.id)),
                reserve_instrument=float(market.pool.reserve_instrument),
                reserve_base=float(market.pool.reserve_base),
                volume=float(sum(t.base_amount for t in trades)),
                buys=sum(1 for t in trades if t.side is TradeSide.BUY),
                sells=sum(1 for t in trades if t.side is TradeSide.SELL),
                engagement_score=score.score,
                momentum_pct=score.momentum_pct,
                trend=score.trend.value,
                multiplier=score.multiplier,
            ))

    def trader_summaries(self) -> List[Dict[str, float]]:
        prices = self.registry.prices()
        summaries = []
        for trader in self.traders:
            stats = trader.ledger.stats(prices)
            summaries.append({
                "owner": trader.ledger.owner,
                "balance": float(trader.ledger.balance),
                "positions": len(trader.ledger.positions()),
                "trades": len(trader.ledger.trades()),
                "total_value": float(stats.total_value),
                "total_invested": float(stats.total_invested),
                "unrealized_pnl": float(stats.total_pnl),
                "realized_pnl": float(trader.ledger.realized_pnl),
                "equity": float(trader.ledger.balance + stats.total_value),
            })
        return summaries


class MarketSimulation:
    """High-level interface: build the model, step it, collect results."""

    def __init__(self, config: Optional[SimulationConfig] = None):
        self.config = config or SimulationConfig()
        self.config.validate()
        self._last_results: Optional[SimulationResults] = None

    def run(self, steps: int) -> SimulationResults:
        model = TweetMarketModel(self.config.to_agentpy_params())
        model.setup()

        for _ in range(steps):
            model.step()

        price_range = {}
        for market_id in model.registry.market_ids():
            prices = [s.price for s in model.snapshots if s.instrument_id == market_id]
            if prices:
                price_range[market_id] = (min(prices), max(prices))

        logger.info(
            "Simulation finished: %d steps, %d trades, %d rejected",
            steps, len(model.trades), model.rejected_trades,
        )
        self._last_results = SimulationResults(
            snapshots=model.snapshots,
            trades=model.trades,
            final_markets={m.id: m for m in model.registry.markets()},
            trader_summaries=model.trader_summaries(),
            config=self.config,
            rejected_trades=model.rejected_trades,
            price_range=price_range,
        )
        return self._last_results

    def get_dataframe(self):
        """Polars DataFrame of the last run's snapshots, or None before any run."""
        from .metrics import snapshots_to_dataframe

        if self._last_results is None:
            return None
        return snapshots_to_dataframe(self._last_results.snapshots)
