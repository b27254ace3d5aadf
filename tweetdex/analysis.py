"""Analysis of demo market runs.

Summarizes how traders fared and how virality related to price moves,
on top of the trade metrics from ``metrics``.
"""

from typing import Any, Dict, List

import numpy as np

from .metrics import calculate_key_metrics
from .state import SimulationResults


def _reduce(values, reducer, *args) -> float:
    """Apply a numpy reducer, reading empty input as 0.0."""
    if len(values) == 0:
        return 0.0
    return float(reducer(values, *args))


def analyze_results(results: SimulationResults) -> Dict[str, Any]:
    """Headline metrics for a completed run.

    Args:
        results: Simulation results with trades, snapshots and trader summaries

    Returns:
        Trade metrics merged with trader return and virality statistics
    """
    if not results.snapshots:
        return {}

    analysis = calculate_key_metrics(results.trades, results.snapshots)
    analysis.update(calculate_trader_return_stats(results))
    analysis["virality_price_correlation"] = calculate_virality_price_correlation(results)
    analysis["rejected_trades"] = results.rejected_trades
    return analysis


def calculate_trader_return_stats(results: SimulationResults) -> Dict[str, float]:
    """Distribution of trader equity returns against the starting balance."""
    starting = results.config.engine.starting_balance
    if starting <= 0:
        return {}

    returns: List[float] = [
        (summary["equity"] / starting - 1.0) * 100.0 for summary in results.trader_summaries
    ]
    return {
        "trader_return_mean_pct": _reduce(returns, np.mean),
        "trader_return_median_pct": _reduce(returns, np.median),
        "trader_return_std_pct": _reduce(returns, np.std),
        "trader_return_p10_pct": _reduce(returns, np.percentile, 10),
        "trader_return_p90_pct": _reduce(returns, np.percentile, 90),
        "profitable_traders": sum(1 for r in returns if r > 0),
    }


def calculate_virality_price_correlation(results: SimulationResults) -> float:
    """Correlation between mean virality multiplier and price change per market.

    Returns 0.0 when there are fewer than two markets or no variation.
    """
    by_market: Dict[str, List] = {}
    for snapshot in results.snapshots:
        by_market.setdefault(snapshot.instrument_id, []).append(snapshot)

    multipliers = []
    price_changes = []
    for snapshots in by_market.values():
        snapshots.sort(key=lambda s: s.step)
        first, last = snapshots[0].price, snapshots[-1].price
        multipliers.append(_reduce([s.multiplier for s in snapshots], np.mean))
        price_changes.append((last / first - 1.0) if first > 0 else 0.0)

    if len(multipliers) < 2 or _reduce(multipliers, np.std) == 0 or _reduce(price_changes, np.std) == 0:
        return 0.0
    return float(np.corrcoef(multipliers, price_changes)[0, 1])
