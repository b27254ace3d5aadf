"""Command-line interface for quoting trades and running the demo market."""

import argparse
import logging
from datetime import datetime
from pathlib import Path
from typing import List, Optional

import numpy as np

from .analysis import analyze_results
from .config import EngineConfig, SimulationConfig
from .metrics import export_metrics_to_file, snapshots_to_dataframe, summarize_trades, trades_to_dataframe
from .mockdata import generate_trending_markets
from .pricing import create_pool, current_price, fee_rate_from_bps, is_high_impact, market_cap, quote_buy, quote_sell
from .simulation import MarketSimulation
from .virality import analyze_virality, predict_virality_probability


def run_quote(side: str, amount: float, config: EngineConfig) -> None:
    """Quote a single trade against a freshly listed pool."""
    pool = create_pool(config.initial_reserve_instrument, config.initial_reserve_base)
    fee_rate = fee_rate_from_bps(config.trading_fee_bps)
    quote = quote_buy(pool, amount, fee_rate) if side == "buy" else quote_sell(pool, amount, fee_rate)
    unit_out = "tokens" if side == "buy" else "base"

    print(f"Pool: {pool.reserve_instrument} tokens / {pool.reserve_base} base")
    print(f"   • Spot price: {current_price(pool):.8f}")
    print(f"   • Market cap: {market_cap(pool, config.fixed_supply):,.2f}")
    print(f"\n{side.capitalize()} {amount}:")
    print(f"   • Output: {quote.output_amount:,.6f} {unit_out}")
    print(f"   • Fee: {quote.fee:.6f}")
    print(f"   • Price impact: {quote.price_impact_pct:.4f}%")
    print(f"   • Slippage: {quote.slippage_pct:.4f}%")
    print(f"   • New price: {quote.new_price:.8f}")
    if is_high_impact(quote, config.high_impact_pct):
        print("High price impact! Consider trading a smaller amount.")


def run_trending(seed: int, config: EngineConfig) -> None:
    """Print the built-in trending markets with their virality outlook."""
    for market in generate_trending_markets(np.random.RandomState(seed), config):
        score = analyze_virality(market.metrics)
        probability = predict_virality_probability(market.metrics, age_in_hours=24)
        print(f"{market.id}  @{market.author_handle}")
        print(f"   • {market.tweet_text}")
        print(f"   • Engagement score: {score.score:,.0f}  (viral chance {probability:.0%})")
        print(f"   • Price: {current_price(market.pool):.6f}  24h: {market.price_change_24h:+.2f}%")
        print()


def run_simulation(
    steps: int,
    traders: int,
    seed: int,
    output_dir: Optional[str],
    config: EngineConfig,
) -> None:
    """Run the agent-based demo market and print a summary."""
    print(f"Running demo market: {traders} traders, {steps} steps")

    sim_config = SimulationConfig(trader_count=traders, random_seed=seed, engine=config)
    results = MarketSimulation(sim_config).run(steps)
    analysis = analyze_results(results)

    if output_dir:
        path = Path(output_dir)
        path.mkdir(parents=True, exist_ok=True)
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")

        snapshots_df = snapshots_to_dataframe(results.snapshots)
        if not snapshots_df.is_empty():
            parquet_file = path / f"snapshots_{timestamp}.parquet"
            snapshots_df.write_parquet(parquet_file)
            print(f"Snapshots saved: {parquet_file}")

        trades_df = trades_to_dataframe(results.trades)
        if not trades_df.is_empty():
            csv_file = path / f"trades_{timestamp}.csv"
            trades_df.write_csv(csv_file)
            print(f"Trades saved: {csv_file}")

        metrics_file = export_metrics_to_file(analysis, str(path / f"metrics_{timestamp}.json"))
        print(f"Metrics saved: {metrics_file}")

    print("\nFinal Results:")
    print(f"   • Trades: {analysis.get('total_trades', 0)} ({results.rejected_trades} rejected)")
    print(f"   • Volume: {analysis.get('total_volume', 0.0):,.2f}")
    print(f"   • Mean trader return: {analysis.get('trader_return_mean_pct', 0.0):+.2f}%")
    for market_id, change in sorted(analysis.get("price_change_pct", {}).items()):
        print(f"   • {market_id}: {change:+.2f}%")

    summary = summarize_trades(results.trades)
    if not summary.is_empty():
        print("\nBy market:")
        print(summary)


def main(argv: Optional[List[str]] = None) -> None:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(description="Tweet market AMM engine CLI")
    parser.add_argument('--config', help='JSON file with an engine_config section')
    parser.add_argument('--fee-bps', type=int, help='Override trading fee in basis points')
    parser.add_argument('-v', '--verbose', action='store_true', help='Enable debug logging')
    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    quote_parser = subparsers.add_parser('quote', help='Quote a trade against a new pool')
    quote_parser.add_argument('side', choices=['buy', 'sell'])
    quote_parser.add_argument('amount', type=float, help='Base in for buys, tokens in for sells')

    trending_parser = subparsers.add_parser('trending', help='List the built-in trending markets')
    trending_parser.add_argument('--seed', type=int, default=42, help='Random seed')

    sim_parser = subparsers.add_parser('simulate', help='Run the agent-based demo market')
    sim_parser.add_argument('--steps', type=int, default=200, help='Number of steps')
    sim_parser.add_argument('--traders', type=int, default=25, help='Number of traders')
    sim_parser.add_argument('--seed', type=int, default=42, help='Random seed')
    sim_parser.add_argument('--output-dir', default=None, help='Write snapshots, trades and metrics here')

    args = parser.parse_args(argv)

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(asctime)s %(name)s %(levelname)s %(message)s")

    config = EngineConfig.from_file(args.config) if args.config else EngineConfig()
    if args.fee_bps is not None:
        config.trading_fee_bps = args.fee_bps
    config.validate()

    if args.command == 'quote':
        run_quote(args.side, args.amount, config)
    elif args.command == 'trending':
        run_trending(args.seed, config)
    elif args.command == 'simulate':
        run_simulation(args.steps, args.traders, args.seed, args.output_dir, config)
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
