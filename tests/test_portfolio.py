"""Portfolio ledger tests.

Validates cost-basis blending on buys, proportional cost removal on sells,
mark-to-market P&L, portfolio aggregation, dust pruning and the ledger's
all-or-nothing updates."""

from decimal import Decimal, localcontext

from tweetdex.errors import InsufficientBalance, InvalidAmount
from tweetdex.numeric import ENGINE_CONTEXT
from tweetdex.portfolio import (
    PortfolioLedger,
    aggregate_portfolio,
    cost_removed,
    mark_to_market,
    open_or_increase_position,
    realized_pnl,
    reduce_position,
)
from tweetdex.pricing import create_pool, current_price, execute_buy, execute_sell
from tweetdex.state import Position, TradeSide
from tests.utils import assert_close, d, expect_raises


def make_position(instrument_id: str, balance, invested) -> Position:
    balance, invested = d(balance), d(invested)
    with localcontext(ENGINE_CONTEXT):
        return Position(
            instrument_id=instrument_id,
            token_balance=balance,
            average_cost=invested / balance,
            total_invested=invested,
        )


def test_open_new_position_uses_execution_price():
    position = open_or_increase_position(None, 1_000, 2, d("0.002"), instrument_id="tweet-0")

    assert position.instrument_id == "tweet-0"
    assert position.token_balance == 1_000
    assert position.total_invested == 2
    assert position.average_cost == d("0.002")


def test_open_requires_instrument_id():
    expect_raises(ValueError, open_or_increase_position, None, 1_000, 2, d("0.002"))


def test_average_cost_blends_rather_than_resets():
    """Second buy at a higher price moves the average between the two prices."""
    first = open_or_increase_position(None, 1_000, 1, d("0.001"), instrument_id="t")
    second = open_or_increase_position(first, 500, 2, d("0.004"))

    assert second.token_balance == 1_500
    assert second.total_invested == 3
    assert_close(second.average_cost, 3 / 1_500)
    assert d("0.001") < second.average_cost < d("0.004")


def test_average_cost_invariant_after_many_buys():
    pool = create_pool(1_000_000, 1_000)
    position = None
    for amount in (10, 25, d("3.7"), 100, 42, d("0.5"), 250):
        quote, pool = execute_buy(pool, amount)
        with localcontext(ENGINE_CONTEXT):
            price = quote.input_amount / quote.output_amount
        position = open_or_increase_position(
            position, quote.output_amount, quote.input_amount, price, instrument_id="t"
        )
        with localcontext(ENGINE_CONTEXT):
            implied = position.token_balance * position.average_cost
        assert_close(implied, position.total_invested, rel=1e-25)

    assert position.total_invested == d("431.2")


def test_reduce_removes_cost_proportionally():
    position = make_position("t", 1_000, 10)
    reduced = reduce_position(position, 250, 4)

    assert reduced.token_balance == 750
    assert reduced.total_invested == d("7.5")
    assert reduced.average_cost == position.average_cost
    assert cost_removed(position, 250) == d("2.5")
    assert realized_pnl(position, 250, 4) == d("1.5")


def test_reduce_whole_balance_zeroes_cost():
    position = make_position("t", 1_000, 10)
    reduced = reduce_position(position, 1_000, 9)

    assert reduced.token_balance == 0
    assert reduced.total_invested == 0


def test_reduce_beyond_balance_raises():
    position = make_position("t", 100, 1)
    exc = expect_raises(InsufficientBalance, reduce_position, position, d("100.5"), 1)
    assert exc.requested == d("100.5")
    assert exc.available == 100
    expect_raises(InvalidAmount, reduce_position, position, 0, 1)
    expect_raises(InvalidAmount, reduce_position, position, 10, -1)


def test_mark_to_market():
    position = make_position("t", 1_000, 1)
    marked = mark_to_market(position, d("0.0015"))

    assert marked.current_value == d("1.5")
    assert marked.unrealized_pnl == d("0.5")
    assert marked.unrealized_pnl_pct == 50
    # Marking leaves the cost basis alone
    assert marked.total_invested == position.total_invested


def test_mark_to_market_with_zero_invested():
    position = Position(instrument_id="t", token_balance=d(10), average_cost=d(1), total_invested=d(0))
    marked = mark_to_market(position, 2)
    assert marked.unrealized_pnl_pct == 0
    assert marked.unrealized_pnl == 20


def test_aggregate_empty_portfolio():
    stats = aggregate_portfolio([])

    assert stats.total_value == 0
    assert stats.total_invested == 0
    assert stats.total_pnl == 0
    assert stats.total_pnl_pct == 0
    assert stats.best_performer is None
    assert stats.worst_performer is None


def test_aggregate_totals_and_ranking():
    winner = mark_to_market(make_position("a", 1_000, 1), d("0.002"))   # +100%
    loser = mark_to_market(make_position("b", 1_000, 2), d("0.001"))    # -50%
    flat = mark_to_market(make_position("c", 1_000, 1), d("0.001"))     # 0%

    stats = aggregate_portfolio([flat, loser, winner])

    assert stats.total_value == 4
    assert stats.total_invested == 4
    assert stats.total_pnl == 0
    assert stats.total_pnl_pct == 0
    assert stats.best_performer.instrument_id == "a"
    assert stats.worst_performer.instrument_id == "b"


def test_aggregate_ties_keep_insertion_order():
    first = mark_to_market(make_position("first", 100, 1), d("0.02"))
    second = mark_to_market(make_position("second", 100, 1), d("0.02"))

    stats = aggregate_portfolio([first, second])
    assert stats.best_performer.instrument_id == "first"
    assert stats.worst_performer.instrument_id == "second"


def test_ledger_buy_debits_balance_and_records_trade():
    pool = create_pool(1_000_000, 1_000)
    ledger = PortfolioLedger("alice", starting_balance=1_000)
    quote, _ = execute_buy(pool, 100)

    trade = ledger.record_buy("tweet-0", quote)

    assert ledger.balance == 900
    assert trade.side is TradeSide.BUY
    assert trade.base_amount == 100
    assert trade.token_amount == quote.output_amount
    assert trade.slippage_pct == quote.slippage_pct
    position = ledger.position("tweet-0")
    assert position.total_invested == 100
    assert_close(position.average_cost, trade.execution_price, rel=1e-30)
    assert ledger.trades() == (trade,)


def test_ledger_rejects_buy_beyond_balance_without_changes():
    pool = create_pool(1_000_000, 1_000)
    ledger = PortfolioLedger("bob", starting_balance=50)
    quote, _ = execute_buy(pool, 100)

    expect_raises(InsufficientBalance, ledger.record_buy, "tweet-0", quote)
    assert ledger.balance == 50
    assert ledger.positions() == ()
    assert ledger.trades() == ()


def test_ledger_round_trip_prunes_position():
    """Selling everything just bought empties the position and realizes the fee loss."""
    pool = create_pool(1_000_000, 1_000)
    ledger = PortfolioLedger("carol", starting_balance=1_000)

    buy, pool = execute_buy(pool, 100)
    ledger.record_buy("tweet-0", buy)
    sell, pool = execute_sell(pool, buy.output_amount)
    ledger.record_sell("tweet-0", sell)

    assert ledger.position("tweet-0") is None
    assert ledger.positions() == ()
    assert ledger.realized_pnl < 0
    assert_close(ledger.balance, Decimal(900) + sell.output_amount, rel=1e-30)
    assert [t.side for t in ledger.trades()] == [TradeSide.BUY, TradeSide.SELL]


def test_ledger_prunes_dust_after_sell():
    pool = create_pool(1_000_000, 1_000)
    ledger = PortfolioLedger("dave", starting_balance=1_000, dust_threshold=d("0.0001"))

    buy, pool = execute_buy(pool, 10)
    ledger.record_buy("tweet-0", buy)
    with localcontext(ENGINE_CONTEXT):
        almost_all = buy.output_amount - d("0.00005")
    sell, pool = execute_sell(pool, almost_all)
    ledger.record_sell("tweet-0", sell)

    assert ledger.position("tweet-0") is None


def test_ledger_partial_sell_keeps_average_cost():
    pool = create_pool(1_000_000, 1_000)
    ledger = PortfolioLedger("erin")

    buy, pool = execute_buy(pool, 100)
    ledger.record_buy("tweet-0", buy)
    before = ledger.position("tweet-0")
    sell, pool = execute_sell(pool, before.token_balance / 2)
    ledger.record_sell("tweet-0", sell)
    after = ledger.position("tweet-0")

    assert after.average_cost == before.average_cost
    assert_close(after.total_invested, 50, rel=1e-25)


def test_ledger_rejects_sell_of_unheld_or_excess_tokens():
    pool = create_pool(1_000_000, 1_000)
    ledger = PortfolioLedger("frank")
    sell, _ = execute_sell(pool, 10)

    expect_raises(InsufficientBalance, ledger.record_sell, "tweet-0", sell)

    buy, pool = execute_buy(pool, 1)
    ledger.record_buy("tweet-0", buy)
    too_many, _ = execute_sell(pool, buy.output_amount * 2)
    expect_raises(InsufficientBalance, ledger.record_sell, "tweet-0", too_many)
    assert ledger.position("tweet-0").token_balance == buy.output_amount
    assert len(ledger.trades()) == 1


def test_ledger_rejects_wrong_quote_side():
    pool = create_pool(1_000_000, 1_000)
    ledger = PortfolioLedger("gina")
    buy, _ = execute_buy(pool, 10)
    expect_raises(InvalidAmount, ledger.record_sell, "tweet-0", buy)


def test_ledger_stats_marks_positions():
    pool = create_pool(1_000_000, 1_000)
    ledger = PortfolioLedger("hank")
    buy, pool = execute_buy(pool, 100)
    ledger.record_buy("tweet-0", buy)

    stats = ledger.stats({"tweet-0": d("0.001")})
    # Bought above the old spot price, so marking there shows a loss
    assert stats.total_pnl < 0
    assert stats.best_performer.instrument_id == "tweet-0"
    assert stats.total_invested == 100


def test_ledger_stats_leave_out_unpriced_positions():
    """A position missing from the price map counts in neither total."""
    ledger = PortfolioLedger("ivy")
    pool_a = create_pool(1_000_000, 1_000)
    pool_b = create_pool(1_000_000, 1_000)
    buy_a, pool_a = execute_buy(pool_a, 100)
    ledger.record_buy("a", buy_a)
    buy_b, pool_b = execute_buy(pool_b, 100)
    ledger.record_buy("b", buy_b)

    prices = {"a": current_price(pool_a)}
    stats = ledger.stats(prices)
    only_a = aggregate_portfolio([mark_to_market(ledger.position("a"), prices["a"])])

    assert [p.instrument_id for p in ledger.mark(prices)] == ["a"]
    assert stats == only_a
    assert stats.total_invested == 100
    assert stats.total_pnl > 0  # marked after its own buy lifted the price
    assert stats.worst_performer.instrument_id == "a"
    assert ledger.stats({}).best_performer is None
