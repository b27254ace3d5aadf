"""In-process market registry: pool snapshots keyed by instrument id.

Single-market reads (prices, quotes) work on immutable snapshots and take
no lock. Listing-wide reads copy the market map under the registry lock
first, so a concurrent listing cannot change it mid-iteration. Each trade
runs its read-quote-commit cycle under the instrument's own lock, so
two trades on the same tweet cannot both price against the same pool.
"""

import logging
import threading
from dataclasses import replace
from decimal import Decimal, localcontext
from typing import Dict, List, Optional, Tuple

from .config import EngineConfig
from .errors import UnknownMarket
from .numeric import ENGINE_CONTEXT, Number
from .portfolio import PortfolioLedger
from .pricing import (
    create_pool,
    current_price,
    execute_buy,
    execute_sell,
    fee_rate_from_bps,
    market_cap,
    quote_buy,
    quote_sell,
)
from .state import EngagementMetrics, TradeQuote, Trade, TweetMarket

logger = logging.getLogger(__name__)


def initialize_market(
    tweet_id: str,
    tweet_url: str,
    tweet_text: str,
    author_handle: str,
    author_name: str,
    initial_metrics: EngagementMetrics,
    config: Optional[EngineConfig] = None,
) -> TweetMarket:
    """Create a market with the configured virtual liquidity."""
    config = config or EngineConfig()
    pool = create_pool(config.initial_reserve_instrument, config.initial_reserve_base)
    return TweetMarket(
        id=tweet_id,
        tweet_url=tweet_url,
        tweet_text=tweet_text,
        author_handle=author_handle,
        author_name=author_name,
        pool=pool,
        metrics=initial_metrics,
    )


class MarketRegistry:
    """Owns every listed market and serializes trades per instrument."""

    def __init__(self, config: Optional[EngineConfig] = None) -> None:
        self.config = config or EngineConfig()
        self.config.validate()
        self.fee_rate = fee_rate_from_bps(self.config.trading_fee_bps)
        self._markets: Dict[str, TweetMarket] = {}
        self._locks: Dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    def __contains__(self, instrument_id: str) -> bool:
        return instrument_id in self._markets

    def __len__(self) -> int:
        return len(self._markets)

    def add_market(self, market: TweetMarket) -> TweetMarket:
        with self._registry_lock:
            if market.id in self._markets:
                raise ValueError(f"Market {market.id} is already listed")
            self._markets[market.id] = market
            self._locks[market.id] = threading.Lock()
        logger.info("Listed market %s (@%s)", market.id, market.author_handle)
        return market

    def list_market(
        self,
        tweet_id: str,
        tweet_url: str,
        tweet_text: str,
        author_handle: str,
        author_name: str,
        initial_metrics: EngagementMetrics,
    ) -> TweetMarket:
        market = initialize_market(
            tweet_id, tweet_url, tweet_text, author_handle, author_name, initial_metrics, self.config
        )
        return self.add_market(market)

    def _snapshot(self) -> Dict[str, TweetMarket]:
        with self._registry_lock:
            return dict(self._markets)

    def market_ids(self) -> List[str]:
        return list(self._snapshot())

    def markets(self) -> List[TweetMarket]:
        """Current snapshot of every listed market, in listing order."""
        return list(self._snapshot().values())

    def get(self, instrument_id: str) -> TweetMarket:
        """Latest snapshot of one market; raises UnknownMarket if it is not listed."""
        try:
            return self._markets[instrument_id]
        except KeyError:
            raise UnknownMarket(instrument_id) from None

    def current_price(self, instrument_id: str) -> Decimal:
        """Spot price of one market, read without taking its lock."""
        return current_price(self.get(instrument_id).pool)

    def market_cap(self, instrument_id: str) -> Decimal:
        """Spot price times the configured fixed supply."""
        return market_cap(self.get(instrument_id).pool, self.config.fixed_supply)

    def prices(self) -> Dict[str, Decimal]:
        """Spot price of every listed market, keyed by instrument id."""
        return {market_id: current_price(market.pool) for market_id, market in self._snapshot().items()}

    def quote_buy(self, instrument_id: str, base_amount_in: Number) -> TradeQuote:
        """Preview a buy. Not atomic with a later ``buy``; the pool may move in between."""
        return quote_buy(self.get(instrument_id).pool, base_amount_in, self.fee_rate)

    def quote_sell(self, instrument_id: str, token_amount_in: Number) -> TradeQuote:
        """Preview a sell; same caveat as ``quote_buy``."""
        return quote_sell(self.get(instrument_id).pool, token_amount_in, self.fee_rate)

    def update_metrics(self, instrument_id: str, metrics: EngagementMetrics) -> TweetMarket:
        """Replace a market's engagement snapshot; the pool is untouched."""
        with self._lock_for(instrument_id):
            market = replace(self.get(instrument_id), metrics=metrics)
            self._markets[instrument_id] = market
        return market

    def buy(self, instrument_id: str, base_amount_in: Number, ledger: PortfolioLedger) -> Tuple[Trade, TradeQuote]:
        """Execute a buy for ``ledger`` and commit the new pool."""
        with self._lock_for(instrument_id):
            market = self.get(instrument_id)
            ledger.check_buy(base_amount_in)
            quote, new_pool = execute_buy(market.pool, base_amount_in, self.fee_rate)
            holder_before = ledger.position(instrument_id) is not None
            trade = ledger.record_buy(instrument_id, quote)
            self._commit(market, new_pool, quote.input_amount, holders_delta=0 if holder_before else 1)
        logger.debug("%s buy %s: %s base -> %s tokens", ledger.owner, instrument_id, quote.input_amount, quote.output_amount)
        return trade, quote

    def sell(self, instrument_id: str, token_amount_in: Number, ledger: PortfolioLedger) -> Tuple[Trade, TradeQuote]:
        """Execute a sell for ``ledger`` and commit the new pool."""
        with self._lock_for(instrument_id):
            market = self.get(instrument_id)
            tokens = ledger.check_sell(instrument_id, token_amount_in)
            quote, new_pool = execute_sell(market.pool, tokens, self.fee_rate)
            trade = ledger.record_sell(instrument_id, quote)
            holders_delta = 0 if ledger.position(instrument_id) is not None else -1
            self._commit(market, new_pool, quote.output_amount, holders_delta=holders_delta)
        logger.debug("%s sell %s: %s tokens -> %s base", ledger.owner, instrument_id, quote.input_amount, quote.output_amount)
        return trade, quote

    def _lock_for(self, instrument_id: str) -> threading.Lock:
        try:
            return self._locks[instrument_id]
        except KeyError:
            raise UnknownMarket(instrument_id) from None

    def _commit(self, market: TweetMarket, new_pool, volume: Decimal, holders_delta: int) -> None:
        with localcontext(ENGINE_CONTEXT):
            new_volume = market.volume_total + volume
        self._markets[market.id] = replace(
            market,
            pool=new_pool,
            volume_total=new_volume,
            holders=max(0, market.holders + holders_delta),
        )
