"""Command-line interface for the lending risk engine."""
from __future__ import annotations

import argparse
import asyncio
import sys
from dataclasses import replace

from .config import load_config
from .errors import LendingRiskError
from .logging_setup import configure_logging
from .models import Action, LendingProtocol, PortfolioStats
from .risk.health import (
    classify_tier,
    format_health_factor,
    health_factor,
    price_drop_to_liquidation,
    simulate_health_factor,
)
from .services import LendingEngine


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse CLI parser."""
    parser = argparse.ArgumentParser(
        prog="lendrisk",
        description="Lending risk & aggregation engine",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to config.yaml (default: config.yaml in project root)",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )

    sub = parser.add_subparsers(dest="command")

    stats_parser = sub.add_parser("stats", help="Portfolio statistics for an owner")
    stats_parser.add_argument("owner", help="Owner address or configured label")
    stats_parser.add_argument(
        "--partial",
        action="store_true",
        help="Report figures even if some protocols failed to refresh",
    )

    markets_parser = sub.add_parser("markets", help="List markets with net APYs")
    markets_parser.add_argument(
        "--protocol",
        choices=[p.value for p in LendingProtocol],
        default=None,
        help="Only this protocol",
    )

    rec_parser = sub.add_parser("recommend", help="Rank venues for a supply or borrow")
    rec_parser.add_argument("asset", help="Asset symbol or address")
    rec_parser.add_argument("action", choices=["supply", "borrow"])
    rec_parser.add_argument(
        "--amount",
        type=int,
        default=0,
        help="Desired amount in asset base units (default: 0)",
    )

    sim_parser = sub.add_parser("simulate", help="Project a health factor after an action")
    sim_parser.add_argument("supply_usd", type=float)
    sim_parser.add_argument("borrow_usd", type=float)
    sim_parser.add_argument("liquidation_threshold", type=float, help="Fraction, e.g. 0.8")
    sim_parser.add_argument("action", choices=[a.value for a in Action])
    sim_parser.add_argument("amount_usd", type=float)

    monitor_parser = sub.add_parser("monitor", help="Continuous liquidation monitoring loop")
    monitor_parser.add_argument(
        "--interval",
        type=float,
        default=None,
        help="Poll interval in seconds (overrides config)",
    )

    return parser


# ---------------------------------------------------------------------------
# Output helpers
# ---------------------------------------------------------------------------


def _print_stats(owner: str, stats: PortfolioStats) -> None:
    print(f"Portfolio — {owner}")
    print(f"  Total supplied:     ${stats.total_supply_usd:,.2f}")
    print(f"  Total borrowed:     ${stats.total_borrow_usd:,.2f}")
    print(f"  Net worth:          ${stats.net_worth_usd:,.2f}")
    print(f"  Avg supply APY:     {stats.weighted_avg_supply_apy * 100:.2f}%")
    print(f"  Avg borrow APY:     {stats.weighted_avg_borrow_apy * 100:.2f}%")
    print(
        f"  Lowest HF:          {format_health_factor(stats.lowest_health_factor)}"
        f" ({classify_tier(stats.lowest_health_factor).label})"
    )
    if stats.riskiest_position:
        _, protocol, market_id = stats.riskiest_position
        print(f"  Riskiest position:  {protocol.display_name} {market_id}")
    print(f"  Positions:          {stats.position_count}")
    if stats.skipped_positions:
        print(f"  Skipped (no price): {stats.skipped_positions}")
    if stats.unknown_health_factors:
        print(f"  Unknown HF:         {stats.unknown_health_factors}")


def _simulate(args: argparse.Namespace) -> None:
    current = health_factor(args.supply_usd, args.borrow_usd, args.liquidation_threshold)
    projected = simulate_health_factor(
        args.supply_usd,
        args.borrow_usd,
        args.liquidation_threshold,
        args.action,
        args.amount_usd,
    )
    projected_tier = classify_tier(projected)
    print(f"Current HF:   {format_health_factor(current)} ({classify_tier(current).label})")
    print(f"Projected HF: {format_health_factor(projected)} ({projected_tier.label})")
    print(f"Price drop to liquidation: {price_drop_to_liquidation(projected):.1f}%")
    if projected < 1.0:
        print("⚠️ Projected position is LIQUIDATABLE")


async def _run(args: argparse.Namespace) -> None:
    """Execute the selected command."""
    config = load_config(args.config)
    if args.command == "monitor" and args.interval is not None:
        config = replace(
            config, monitor=replace(config.monitor, poll_interval_seconds=args.interval)
        )
    engine = LendingEngine(config)

    if args.command == "stats":
        stats = await engine.get_portfolio_stats(args.owner, allow_partial=args.partial)
        _print_stats(args.owner, stats)
    elif args.command == "markets":
        protocols = [LendingProtocol.parse(args.protocol)] if args.protocol else None
        markets = await engine.get_markets(protocols)
        for m in sorted(markets, key=lambda m: (m.protocol.value, m.asset.symbol, m.market_id)):
            print(
                f"{m.protocol.display_name:<13} {m.asset.symbol:<8} "
                f"supply {m.net_supply_apy * 100:6.2f}%  borrow {m.net_borrow_apy * 100:6.2f}%  "
                f"LT {m.liquidation_threshold:.2f}  liquidity {m.available_liquidity}  {m.market_id}"
            )
    elif args.command == "recommend":
        options = await engine.get_routing_options(args.asset, args.action, args.amount)
        if not options:
            print(f"No {args.action} market available for {args.asset}")
            return
        for i, opt in enumerate(options, 1):
            marker = "★" if opt.is_recommended else " "
            print(
                f"{marker} {i}. {opt.protocol.display_name} {opt.market_id} — "
                f"{opt.apy * 100:.2f}% APY, liquidity {opt.available_liquidity} ({opt.reason})"
            )
    elif args.command == "monitor":
        await engine.build_monitor().run()
    else:
        build_parser().print_help()
        sys.exit(1)


def main() -> None:
    """Entry point."""
    parser = build_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    configure_logging(args.log_level)

    try:
        if args.command == "simulate":
            _simulate(args)
        else:
            asyncio.run(_run(args))
    except LendingRiskError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)
    except KeyboardInterrupt:
        pass
