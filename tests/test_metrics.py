"""Polars reporting tests.

Builds trades and snapshots by hand so totals, per-market aggregates and
exports can be checked against known values."""

import json
import tempfile
from datetime import datetime, timezone
from pathlib import Path

import polars as pl

from tweetdex.metrics import (
    calculate_key_metrics,
    export_metrics_to_file,
    positions_to_dataframe,
    price_history_to_dataframe,
    snapshots_to_dataframe,
    summarize_trades,
    trades_to_dataframe,
)
from tweetdex.state import MarketSnapshot, Position, PricePoint, Trade, TradeSide
from tests.utils import assert_close, d


def make_trade(n: int, instrument_id: str, side: TradeSide, tokens, base, slippage="1") -> Trade:
    return Trade(
        id=f"trade-{n}",
        instrument_id=instrument_id,
        side=side,
        token_amount=d(tokens),
        base_amount=d(base),
        execution_price=d(base) / d(tokens),
        timestamp=datetime(2024, 1, 1, 0, n, tzinfo=timezone.utc),
        slippage_pct=d(slippage),
    )


def sample_trades():
    return [
        make_trade(0, "tweet-0", TradeSide.BUY, 10_000, 10, slippage="1"),
        make_trade(1, "tweet-0", TradeSide.SELL, 5_000, 6, slippage="3"),
        make_trade(2, "tweet-1", TradeSide.BUY, 2_000, 4, slippage="2"),
    ]


def make_snapshot(step: int, instrument_id: str, price: float, multiplier: float = 1.0) -> MarketSnapshot:
    return MarketSnapshot(
        step=step,
        instrument_id=instrument_id,
        price=price,
        reserve_instrument=1_000_000.0,
        reserve_base=price * 1_000_000.0,
        multiplier=multiplier,
    )


def test_empty_inputs_give_empty_frames():
    assert trades_to_dataframe([]).is_empty()
    assert positions_to_dataframe([]).is_empty()
    assert price_history_to_dataframe([]).is_empty()
    assert snapshots_to_dataframe([]).is_empty()
    assert summarize_trades([]).is_empty()


def test_trades_dataframe_columns():
    df = trades_to_dataframe(sample_trades())

    assert df.height == 3
    assert df["side"].to_list() == ["buy", "sell", "buy"]
    assert df["base_amount"].dtype == pl.Float64
    assert_close(df["execution_price"][1], 6 / 5_000)


def test_positions_dataframe():
    position = Position(instrument_id="tweet-0", token_balance=d(100), average_cost=d("0.5"), total_invested=d(50))
    df = positions_to_dataframe([position])
    assert df.row(0, named=True)["total_invested"] == 50.0
    assert df.row(0, named=True)["unrealized_pnl"] == 0.0


def test_price_history_dataframe_adds_change_and_average():
    base = datetime(2024, 1, 1, tzinfo=timezone.utc)
    points = [PricePoint(timestamp=base, price=p, volume=100.0) for p in (1.0, 2.0, 1.0, 4.0)]
    df = price_history_to_dataframe(points)

    changes = df["price_change"].to_list()
    assert changes[0] is None
    assert_close(changes[1], 1.0)
    assert_close(changes[2], -0.5)
    # Fewer than ten points: the window covers the whole series
    assert_close(df["price_sma"][-1], 2.0)


def test_summarize_trades_per_market():
    summary = summarize_trades(sample_trades())
    rows = {row["instrument_id"]: row for row in summary.to_dicts()}

    assert summary["instrument_id"].to_list() == ["tweet-0", "tweet-1"]  # sorted by volume
    assert_close(rows["tweet-0"]["volume"], 16.0)
    assert rows["tweet-0"]["buys"] == 1
    assert rows["tweet-0"]["sells"] == 1
    assert_close(rows["tweet-0"]["vwap"], 16 / 15_000)
    assert_close(rows["tweet-0"]["avg_slippage_pct"], 2.0)
    assert_close(rows["tweet-0"]["max_slippage_pct"], 3.0)
    assert rows["tweet-1"]["sells"] == 0


def test_key_metrics_without_trades():
    metrics = calculate_key_metrics([])
    assert metrics == {"total_trades": 0, "total_volume": 0.0, "buy_volume": 0.0, "sell_volume": 0.0}


def test_key_metrics_totals():
    metrics = calculate_key_metrics(sample_trades())

    assert metrics["total_trades"] == 3
    assert_close(metrics["total_volume"], 20.0)
    assert_close(metrics["buy_volume"], 14.0)
    assert_close(metrics["sell_volume"], 6.0)
    assert_close(metrics["avg_slippage_pct"], 2.0)
    assert metrics["markets_traded"] == 2
    assert "price_change_pct" not in metrics


def test_key_metrics_with_snapshots():
    snapshots = [
        make_snapshot(1, "tweet-0", 0.0015),
        make_snapshot(0, "tweet-0", 0.001),   # out of order on purpose
        make_snapshot(0, "tweet-1", 0.002),
        make_snapshot(1, "tweet-1", 0.001),
    ]
    metrics = calculate_key_metrics(sample_trades(), snapshots)

    assert metrics["steps"] == 2
    assert_close(metrics["price_change_pct"]["tweet-0"], 50.0)
    assert_close(metrics["price_change_pct"]["tweet-1"], -50.0)


def test_snapshots_dataframe_sorted_with_derived_columns():
    snapshots = [make_snapshot(1, "b", 0.002), make_snapshot(0, "b", 0.001), make_snapshot(0, "a", 0.001)]
    df = snapshots_to_dataframe(snapshots)

    assert df["instrument_id"].to_list() == ["a", "b", "b"]
    assert df["step"].to_list() == [0, 0, 1]
    assert df["price_change"][0] is None
    assert_close(df["price_change"][2], 1.0)
    assert_close(df["invariant_product"][2], 1_000_000.0 * 2_000.0)


def test_export_metrics_to_file():
    metrics = calculate_key_metrics(sample_trades())
    with tempfile.TemporaryDirectory() as tmp:
        path = export_metrics_to_file(metrics, str(Path(tmp) / "nested" / "metrics.json"))
        assert path.exists()
        loaded = json.loads(path.read_text())

    assert loaded["total_trades"] == 3
    assert_close(loaded["total_volume"], 20.0)
