#!/usr/bin/env python3
"""
DEX price and arbitrage analytics CLI.

Loads a pool/token snapshot, scans it for arbitrage and prints the
results, or keeps scanning on an interval.

Usage:
    python3 run_scanner.py --config config/analytics.example.yaml --once
    python3 run_scanner.py --snapshot config/snapshot.example.yaml --token WETH
    python3 run_scanner.py --config config/analytics.example.yaml
"""

import argparse
import asyncio
import sys
from typing import List

from dotenv import load_dotenv
from tabulate import tabulate

import logging_config
from dex.config import ConfigError, load_config, parse_config
from dex.runner import AnalyticsEngine, create_engine
from dex.types import ArbitrageOpportunity
from dex_analytics.config_schema import AppConfig
from dex_analytics.constants import resolve_quote_address
from dex_analytics.events import LoggingEventPublisher
from dex_analytics.exceptions import DataError
from dex_analytics.metrics import get_metrics
from dex_analytics.repositories import load_snapshot
from dex_analytics.utils import format_usd, get_logger, normalize_address
from dex_analytics.version import get_version


def parse_args() -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="DEX price and arbitrage analytics scanner",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Single scan (for testing/CI)
  python3 run_scanner.py --config config/analytics.example.yaml --once

  # Liquidity report for a token
  python3 run_scanner.py --snapshot config/snapshot.example.yaml --token WETH

  # Continuous scanning
  python3 run_scanner.py --config config/analytics.example.yaml
        """,
    )

    parser.add_argument("--config", help="Path to config YAML file (defaults apply if omitted)")
    parser.add_argument("--snapshot", help="Path to pool/token snapshot YAML (overrides config)")
    parser.add_argument(
        "--once", action="store_true", help="Run a single scan cycle and exit"
    )
    parser.add_argument(
        "--token", help="Print price and liquidity report for a token (symbol or address)"
    )
    parser.add_argument("--debug", action="store_true", help="Verbose logging")
    parser.add_argument(
        "--quiet", action="store_true", help="Only log warnings and errors"
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {get_version()}"
    )

    return parser.parse_args()


def print_opportunities(opportunities: List[ArbitrageOpportunity]) -> None:
    if not opportunities:
        print("No opportunities above threshold.")
        return

    rows = []
    for opp in opportunities:
        rows.append(
            [
                opp.token_symbol,
                opp.kind.value,
                " -> ".join(leg.venue_name for leg in opp.path),
                f"{opp.spread_percent:.3f}%",
                format_usd(opp.expected_profit_usd),
                format_usd(opp.estimated_gas_cost_usd),
                format_usd(opp.net_profit_usd),
                f"{opp.roi_percent:.2f}%",
                opp.confidence_score,
            ]
        )
    print(
        tabulate(
            rows,
            headers=["Token", "Kind", "Route", "Spread", "Gross", "Gas", "Net", "ROI", "Conf"],
            tablefmt="grid",
        )
    )


async def print_token_report(engine: AnalyticsEngine, token: str) -> None:
    address = resolve_quote_address(token) or normalize_address(token)

    price = await engine.price_oracle.get_price(address, "USD")
    if price.is_failure:
        print(f"Price: unavailable ({price.error})")
    else:
        print(f"Price: {price.value.price} (USD {format_usd(price.value.price_usd)})")

    twap = await engine.price_oracle.get_twap(
        address, "USD", engine.config.analytics.twap_period_sec
    )
    if twap.is_success:
        print(
            f"TWAP: {twap.value.twap_price:.6f} over {twap.value.data_points} samples, "
            f"deviation {twap.value.deviation_percent:.2f}%"
        )

    summary = await engine.liquidity.token_liquidity_summary(address)
    if summary.is_failure:
        print(f"Liquidity: unavailable ({summary.error})")
        return
    print(
        f"Liquidity: {format_usd(summary.value.total_liquidity_usd)} across "
        f"{summary.value.pool_count} pools"
    )
    print(
        tabulate(
            [
                [p.pool_address, p.paired_token_symbol, format_usd(p.liquidity_usd), f"{p.share_percent:.1f}%"]
                for p in summary.value.top_pools
            ],
            headers=["Pool", "Paired", "Liquidity", "Share"],
            tablefmt="grid",
        )
    )

    concentration = (await engine.liquidity.liquidity_concentration(address)).unwrap()
    print(f"Concentration: {concentration.level} (HHI {concentration.hhi:.4f})")


async def run(engine: AnalyticsEngine, once: bool, token: str) -> None:
    if token:
        await print_token_report(engine, token)
        return

    if once:
        report = await engine.scanner.run_cycle()
        print_opportunities(report.opportunities)
        print(
            f"\nPublished {report.published}, suppressed {report.suppressed}, "
            f"large alerts {report.large_alerts}"
        )
        return

    await engine.scanner.run()


def main() -> int:
    """
    Main entry point.

    Returns:
        Exit code (0 for success, 1 for error)
    """
    load_dotenv()
    args = parse_args()

    if args.debug:
        logging_config.setup_debug()
    elif args.quiet:
        logging_config.setup_minimal()
    else:
        logging_config.setup()
    logger = get_logger("run_scanner")

    try:
        config: AppConfig = load_config(args.config) if args.config else parse_config({})
    except ConfigError as e:
        print(f"Config error: {e}", file=sys.stderr)
        return 1

    snapshot_path = args.snapshot or config.snapshot_path
    if not snapshot_path:
        print("No snapshot given (--snapshot or snapshot_path in config)", file=sys.stderr)
        return 1

    try:
        snapshot = load_snapshot(snapshot_path)
    except DataError as e:
        print(f"Snapshot error: {e}", file=sys.stderr)
        return 1

    if config.metrics.enabled:
        get_metrics().start_server(config.metrics.port, config.metrics.host)

    logger.info(
        f"dex-analytics {get_version()}: chain {config.chain_id}, "
        f"{len(snapshot.pools)} pools from {snapshot_path}"
    )
    publisher = LoggingEventPublisher()
    engine = create_engine(config, snapshot, publisher=publisher)

    try:
        asyncio.run(run(engine, args.once, args.token))
    except KeyboardInterrupt:
        print("\n\nStopped by user")
        return 0

    return 0


if __name__ == "__main__":
    sys.exit(main())
