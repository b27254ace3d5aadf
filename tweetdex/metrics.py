"""Polars-based reporting over trades, positions, price history and snapshots.

Decimal engine values are converted to floats at this boundary; reports
are for display and export, never fed back into the engine.
"""

import json
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

import polars as pl

from .state import MarketSnapshot, Position, PricePoint, Trade


def trades_to_dataframe(trades: Iterable[Trade]) -> pl.DataFrame:
    """Convert Trade records to a polars DataFrame, one row per trade."""
    trades = list(trades)
    if not trades:
        return pl.DataFrame()

    data = {
        "id": [t.id for t in trades],
        "instrument_id": [t.instrument_id for t in trades],
        "side": [t.side.value for t in trades],
        "token_amount": [float(t.token_amount) for t in trades],
        "base_amount": [float(t.base_amount) for t in trades],
        "execution_price": [float(t.execution_price) for t in trades],
        "timestamp": [t.timestamp for t in trades],
        "slippage_pct": [float(t.slippage_pct) for t in trades],
    }
    return pl.DataFrame(data)


def positions_to_dataframe(positions: Iterable[Position]) -> pl.DataFrame:
    positions = list(positions)
    if not positions:
        return pl.DataFrame()

    return pl.DataFrame({
        "instrument_id": [p.instrument_id for p in positions],
        "token_balance": [float(p.token_balance) for p in positions],
        "average_cost": [float(p.average_cost) for p in positions],
        "total_invested": [float(p.total_invested) for p in positions],
        "current_value": [float(p.current_value) for p in positions],
        "unrealized_pnl": [float(p.unrealized_pnl) for p in positions],
        "unrealized_pnl_pct": [float(p.unrealized_pnl_pct) for p in positions],
    })


def price_history_to_dataframe(points: Iterable[PricePoint]) -> pl.DataFrame:
    """Price history with percent change and a 10-point rolling mean."""
    points = list(points)
    if not points:
        return pl.DataFrame()

    df = pl.DataFrame({
        "timestamp": [p.timestamp for p in points],
        "price": [p.price for p in points],
        "volume": [p.volume for p in points],
    })
    return df.with_columns([
        pl.col("price").pct_change().alias("price_change"),
        pl.col("price").rolling_mean(window_size=min(10, len(points))).alias("price_sma"),
    ])


def snapshots_to_dataframe(snapshots: List[MarketSnapshot]) -> pl.DataFrame:
    """Convert MarketSnapshot records to a DataFrame with per-market price changes."""
    if not snapshots:
        return pl.DataFrame()

    data = {
        "step": [s.step for s in snapshots],
        "instrument_id": [s.instrument_id for s in snapshots],
        "price": [s.price for s in snapshots],
        "reserve_instrument": [s.reserve_instrument for s in snapshots],
        "reserve_base": [s.reserve_base for s in snapshots],
        "volume": [s.volume for s in snapshots],
        "buys": [s.buys for s in snapshots],
        "sells": [s.sells for s in snapshots],
        "engagement_score": [s.engagement_score for s in snapshots],
        "momentum_pct": [s.momentum_pct for s in snapshots],
        "trend": [s.trend for s in snapshots],
        "multiplier": [s.multiplier for s in snapshots],
    }
    df = pl.DataFrame(data).sort(["instrument_id", "step"])

    return df.with_columns([
        pl.col("price").pct_change().over("instrument_id").alias("price_change"),
        (pl.col("reserve_instrument") * pl.col("reserve_base")).alias("invariant_product"),
    ])


def summarize_trades(trades: Iterable[Trade]) -> pl.DataFrame:
    """Per-instrument volume, trade counts, VWAP and mean slippage."""
    df = trades_to_dataframe(trades)
    if df.is_empty():
        return pl.DataFrame()

    return (
        df.group_by("instrument_id")
        .agg([
            pl.col("base_amount").sum().alias("volume"),
            pl.col("token_amount").sum().alias("tokens_traded"),
            (pl.col("side") == "buy").sum().alias("buys"),
            (pl.col("side") == "sell").sum().alias("sells"),
            (pl.col("base_amount").sum() / pl.col("token_amount").sum()).alias("vwap"),
            pl.col("slippage_pct").mean().alias("avg_slippage_pct"),
            pl.col("slippage_pct").max().alias("max_slippage_pct"),
        ])
        .sort("volume", descending=True)
    )


def calculate_key_metrics(trades: Iterable[Trade], snapshots: Optional[List[MarketSnapshot]] = None) -> Dict[str, Any]:
    """Headline metrics for a trading session.

    Args:
        trades: Executed trades in order
        snapshots: Optional per-step market snapshots for price metrics

    Returns:
        Dictionary of totals, and per-market price moves when snapshots are given
    """
    df = trades_to_dataframe(trades)
    metrics: Dict[str, Any] = {}

    if df.is_empty():
        metrics.update({"total_trades": 0, "total_volume": 0.0, "buy_volume": 0.0, "sell_volume": 0.0})
    else:
        aggregates = df.select([
            pl.len().alias("total_trades"),
            pl.col("base_amount").sum().alias("total_volume"),
            pl.col("base_amount").filter(pl.col("side") == "buy").sum().alias("buy_volume"),
            pl.col("base_amount").filter(pl.col("side") == "sell").sum().alias("sell_volume"),
            pl.col("slippage_pct").mean().alias("avg_slippage_pct"),
            pl.col("instrument_id").n_unique().alias("markets_traded"),
        ]).to_dicts()[0]
        metrics.update(aggregates)

    if snapshots:
        snap_df = snapshots_to_dataframe(snapshots)
        price_moves = (
            snap_df.group_by("instrument_id")
            .agg([
                pl.col("price").first().alias("first_price"),
                pl.col("price").last().alias("last_price"),
            ])
            .with_columns(
                ((pl.col("last_price") / pl.col("first_price") - 1.0) * 100.0).alias("price_change_pct")
            )
            .sort("instrument_id")
        )
        metrics["price_change_pct"] = {
            row["instrument_id"]: row["price_change_pct"] for row in price_moves.to_dicts()
        }
        metrics["steps"] = int(snap_df.select(pl.col("step").max()).item()) + 1

    return metrics


def export_metrics_to_file(metrics: Dict[str, Any], file_path: Optional[str] = None) -> Path:
    """Write metrics as JSON and return the path written."""
    path = Path(file_path) if file_path else Path("results") / "metrics.json"
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as handle:
        json.dump(metrics, handle, indent=2, default=str)
    return path
