"""Position accounting and the per-user portfolio ledger.

The module-level functions are pure: they take a Position and return a new
one. ``PortfolioLedger`` is the single owner of one user's positions, trade
history and settlement balance, and is the only place those values change.
"""

import logging
import uuid
from decimal import Decimal, localcontext
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from .errors import InsufficientBalance, InvalidAmount
from .numeric import (
    BALANCE_TOLERANCE,
    ENGINE_CONTEXT,
    HUNDRED,
    ZERO,
    Number,
    require_non_negative,
    require_positive,
    to_decimal,
)
from .state import PortfolioStats, Position, Trade, TradeQuote, TradeSide, utc_now

logger = logging.getLogger(__name__)

DUST_THRESHOLD = Decimal("0.0001")
STARTING_BALANCE = Decimal(10_000)


def open_or_increase_position(
    existing: Optional[Position],
    tokens_acquired: Number,
    base_cost: Number,
    execution_price: Number,
    instrument_id: Optional[str] = None,
) -> Position:
    """Add a buy fill to a position, blending the average cost.

    A new position starts with ``average_cost = execution_price``. An existing
    one gets the volume-weighted average of all cost paid so far, whatever
    the price of the new fill.
    """
    tokens = require_positive(tokens_acquired, "tokens_acquired")
    cost = require_positive(base_cost, "base_cost")
    price = require_positive(execution_price, "execution_price")

    if existing is None:
        if instrument_id is None:
            raise ValueError("instrument_id is required to open a new position")
        return Position(
            instrument_id=instrument_id,
            token_balance=tokens,
            average_cost=price,
            total_invested=cost,
        )

    with localcontext(ENGINE_CONTEXT):
        new_total_invested = existing.total_invested + cost
        new_balance = existing.token_balance + tokens
        new_average_cost = new_total_invested / new_balance

    return Position(
        instrument_id=existing.instrument_id,
        token_balance=new_balance,
        average_cost=new_average_cost,
        total_invested=new_total_invested,
    )


def cost_removed(position: Position, tokens_sold: Number) -> Decimal:
    """Cost basis released by selling ``tokens_sold`` out of ``position``."""
    sold = _check_sell_size(position, tokens_sold)
    with localcontext(ENGINE_CONTEXT):
        return position.total_invested * (sold / position.token_balance)


def realized_pnl(position: Position, tokens_sold: Number, base_received: Number) -> Decimal:
    """Proceeds of a sell minus the cost basis it releases."""
    received = require_non_negative(base_received, "base_received")
    with localcontext(ENGINE_CONTEXT):
        return received - cost_removed(position, tokens_sold)


def _check_sell_size(position: Position, tokens_sold: Number) -> Decimal:
    """Validate a sell size and clamp it to the held balance.

    Sizes up to BALANCE_TOLERANCE above the balance are treated as the whole
    balance; anything larger raises InsufficientBalance.
    """
    sold = require_positive(tokens_sold, "tokens_sold")
    with localcontext(ENGINE_CONTEXT):
        limit = position.token_balance + BALANCE_TOLERANCE
    if sold > limit:
        raise InsufficientBalance(
            f"Cannot sell {sold} of {position.instrument_id}: only {position.token_balance} held",
            requested=sold,
            available=position.token_balance,
        )
    return min(sold, position.token_balance)


def reduce_position(position: Position, tokens_sold: Number, base_received: Number) -> Position:
    """Remove a sell fill from a position.

    Cost basis is released in proportion to the fraction of tokens sold, so
    the average cost of what remains is unchanged. ``base_received`` only
    matters for realized P&L, see ``realized_pnl``.
    """
    sold = _check_sell_size(position, tokens_sold)
    require_non_negative(base_received, "base_received")

    with localcontext(ENGINE_CONTEXT):
        sold_fraction = sold / position.token_balance
        removed = position.total_invested * sold_fraction
        new_balance = position.token_balance - sold
        new_total_invested = position.total_invested - removed
        if new_balance == ZERO:
            new_total_invested = ZERO

    return Position(
        instrument_id=position.instrument_id,
        token_balance=new_balance,
        average_cost=position.average_cost,
        total_invested=new_total_invested,
    )


def mark_to_market(position: Position, current_price: Number) -> Position:
    """Recompute current value and unrealized P&L at ``current_price``."""
    price = require_non_negative(current_price, "current_price")
    with localcontext(ENGINE_CONTEXT):
        current_value = position.token_balance * price
        unrealized = current_value - position.total_invested
        if position.total_invested > ZERO:
            unrealized_pct = unrealized / position.total_invested * HUNDRED
        else:
            unrealized_pct = ZERO

    return Position(
        instrument_id=position.instrument_id,
        token_balance=position.token_balance,
        average_cost=position.average_cost,
        total_invested=position.total_invested,
        current_value=current_value,
        unrealized_pnl=unrealized,
        unrealized_pnl_pct=unrealized_pct,
    )


def aggregate_portfolio(positions: Iterable[Position]) -> PortfolioStats:
    """Totals across marked positions plus best and worst performer.

    Ranking is by unrealized P&L percentage, descending; ``sorted`` is
    stable so ties keep insertion order.
    """
    positions = list(positions)
    if not positions:
        return PortfolioStats(
            total_value=ZERO,
            total_invested=ZERO,
            total_pnl=ZERO,
            total_pnl_pct=ZERO,
            best_performer=None,
            worst_performer=None,
        )

    with localcontext(ENGINE_CONTEXT):
        total_value = sum((p.current_value for p in positions), ZERO)
        total_invested = sum((p.total_invested for p in positions), ZERO)
        total_pnl = total_value - total_invested
        total_pnl_pct = total_pnl / total_invested * HUNDRED if total_invested > ZERO else ZERO

    ranked = sorted(positions, key=lambda p: p.unrealized_pnl_pct, reverse=True)
    return PortfolioStats(
        total_value=total_value,
        total_invested=total_invested,
        total_pnl=total_pnl,
        total_pnl_pct=total_pnl_pct,
        best_performer=ranked[0],
        worst_performer=ranked[-1],
    )


def is_dust(position: Position, threshold: Number = DUST_THRESHOLD) -> bool:
    """Whether a balance is small enough to be pruned from a ledger."""
    return position.token_balance <= to_decimal(threshold, "threshold")


class PortfolioLedger:
    """Exclusive owner of one user's positions, trades and cash balance.

    Positions handed out are immutable snapshots; the only way to change
    them is through ``record_buy`` and ``record_sell``. Each of those
    validates and computes every new value before committing any of them.
    """

    def __init__(
        self,
        owner: str = "user",
        starting_balance: Number = STARTING_BALANCE,
        dust_threshold: Number = DUST_THRESHOLD,
    ) -> None:
        self.owner = owner
        self._balance = require_non_negative(starting_balance, "starting_balance")
        self._dust_threshold = require_non_negative(dust_threshold, "dust_threshold")
        self._positions: Dict[str, Position] = {}
        self._trades: List[Trade] = []
        self._realized_pnl = ZERO

    @property
    def balance(self) -> Decimal:
        """Settlement currency available for buys."""
        return self._balance

    @property
    def realized_pnl(self) -> Decimal:
        """Cumulative P&L booked by sells."""
        return self._realized_pnl

    @property
    def dust_threshold(self) -> Decimal:
        return self._dust_threshold

    def position(self, instrument_id: str) -> Optional[Position]:
        return self._positions.get(instrument_id)

    def positions(self) -> Tuple[Position, ...]:
        return tuple(self._positions.values())

    def trades(self) -> Tuple[Trade, ...]:
        return tuple(self._trades)

    def token_balance(self, instrument_id: str) -> Decimal:
        position = self._positions.get(instrument_id)
        return position.token_balance if position else ZERO

    def check_buy(self, base_amount: Number) -> Decimal:
        """Raise InsufficientBalance if ``base_amount`` exceeds the cash balance."""
        amount = require_positive(base_amount, "base_amount")
        if amount > self._balance:
            raise InsufficientBalance(
                f"{self.owner} cannot spend {amount}: balance is {self._balance}",
                requested=amount,
                available=self._balance,
            )
        return amount

    def check_sell(self, instrument_id: str, token_amount: Number) -> Decimal:
        """Return the sellable amount, clamped to the holding, or raise.

        Callers should send the returned amount to the pool so the pool and
        the ledger move by the same number of tokens.
        """
        amount = require_positive(token_amount, "token_amount")
        position = self._positions.get(instrument_id)
        if position is None:
            raise InsufficientBalance(
                f"{self.owner} holds no {instrument_id}",
                requested=amount,
                available=ZERO,
            )
        return _check_sell_size(position, amount)

    def record_buy(self, instrument_id: str, quote: TradeQuote) -> Trade:
        """Apply an executed buy quote: debit cash, grow the position, log the trade."""
        if quote.side is not TradeSide.BUY:
            raise InvalidAmount(f"Expected a buy quote, got {quote.side.value}")
        base_spent = self.check_buy(quote.input_amount)
        tokens = quote.output_amount

        with localcontext(ENGINE_CONTEXT):
            execution_price = base_spent / tokens
            new_balance = self._balance - base_spent

        new_position = open_or_increase_position(
            self._positions.get(instrument_id),
            tokens,
            base_spent,
            execution_price,
            instrument_id=instrument_id,
        )
        trade = self._make_trade(instrument_id, TradeSide.BUY, tokens, base_spent, execution_price, quote)

        self._positions[instrument_id] = new_position
        self._balance = new_balance
        self._trades.append(trade)
        logger.debug("%s bought %s %s for %s", self.owner, tokens, instrument_id, base_spent)
        return trade

    def record_sell(self, instrument_id: str, quote: TradeQuote) -> Trade:
        """Apply an executed sell quote: shrink the position, credit cash, log the trade."""
        if quote.side is not TradeSide.SELL:
            raise InvalidAmount(f"Expected a sell quote, got {quote.side.value}")
        tokens = self.check_sell(instrument_id, quote.input_amount)
        position = self._positions[instrument_id]
        base_received = quote.output_amount

        new_position = reduce_position(position, tokens, base_received)
        gain = realized_pnl(position, tokens, base_received)
        with localcontext(ENGINE_CONTEXT):
            execution_price = base_received / tokens
            new_balance = self._balance + base_received
            new_realized = self._realized_pnl + gain
        trade = self._make_trade(instrument_id, TradeSide.SELL, tokens, base_received, execution_price, quote)

        if is_dust(new_position, self._dust_threshold):
            del self._positions[instrument_id]
            logger.debug("%s pruned dust position in %s (%s left)", self.owner, instrument_id, new_position.token_balance)
        else:
            self._positions[instrument_id] = new_position
        self._balance = new_balance
        self._realized_pnl = new_realized
        self._trades.append(trade)
        logger.debug("%s sold %s %s for %s", self.owner, tokens, instrument_id, base_received)
        return trade

    def mark(self, prices: Mapping[str, Number]) -> List[Position]:
        """Positions marked at ``prices``.

        Positions with no entry in ``prices`` are left out, so every returned
        position carries a consistent current value and P&L.
        """
        marked = []
        for instrument_id, position in self._positions.items():
            price = prices.get(instrument_id)
            if price is None:
                logger.debug("%s has no price for %s; leaving it out", self.owner, instrument_id)
                continue
            marked.append(mark_to_market(position, price))
        return marked

    def stats(self, prices: Mapping[str, Number]) -> PortfolioStats:
        """Aggregate stats over the positions that ``prices`` covers."""
        return aggregate_portfolio(self.mark(prices))

    def _make_trade(
        self,
        instrument_id: str,
        side: TradeSide,
        tokens: Decimal,
        base_amount: Decimal,
        execution_price: Decimal,
        quote: TradeQuote,
    ) -> Trade:
        return Trade(
            id=f"trade-{uuid.uuid4().hex[:12]}",
            instrument_id=instrument_id,
            side=side,
            token_amount=tokens,
            base_amount=base_amount,
            execution_price=execution_price,
            timestamp=utc_now(),
            slippage_pct=quote.slippage_pct,
        )
