"""Command-line interface for the screener runtime."""

from __future__ import annotations

import argparse
import sys

from screener.config import DATA_SOURCES, STORE_BACKENDS, Settings
from screener.domain.models import AlertCondition
from screener.runtime import (
    DEFAULT_OWNER,
    add_alert,
    analyze,
    check_alerts,
    reactivate,
    run,
    screen,
    show_priorities,
    unwatch,
    watch,
)
from screener.screening import StockFilter

ACTION_FLAGS = (
    "analyze",
    "screen",
    "watch",
    "unwatch",
    "reactivate",
    "priorities",
    "alert",
    "check_alerts",
)


def build_parser() -> argparse.ArgumentParser:
    """Build CLI parser."""
    parser = argparse.ArgumentParser(
        description="Stock screener with priority-tiered refresh scheduling"
    )
    parser.add_argument("--tick-seconds", type=float, help="Seconds between scheduler ticks")
    parser.add_argument("--max-ticks", type=int, help="Stop after a fixed number of ticks")
    parser.add_argument("--data-source", choices=sorted(DATA_SOURCES), help="Market data source")
    parser.add_argument("--historical-dir", type=str, help="CSV historical data directory")
    parser.add_argument("--state-db", type=str, help="SQLite result store path")
    parser.add_argument("--events-dir", type=str, help="Session outputs directory")
    parser.add_argument("--store", choices=sorted(STORE_BACKENDS), help="Result store backend")
    parser.add_argument("--log-level", type=str, help="Logging level")

    parser.add_argument("--analyze", metavar="SYMBOL", help="Print indicators and signals, then exit")
    parser.add_argument("--screen", action="store_true", help="Filter the ticker universe, then exit")
    parser.add_argument("--watch", metavar="SYMBOL", help="Add a symbol to a watchlist")
    parser.add_argument("--unwatch", metavar="SYMBOL", help="Remove a symbol from a watchlist")
    parser.add_argument("--owner", type=str, default=DEFAULT_OWNER, help="Watchlist owner")
    parser.add_argument("--reactivate", metavar="SYMBOL", help="Clear a delisting flag")
    parser.add_argument(
        "--priorities",
        action="store_true",
        help="List tracked and due symbol counts per tier, then exit",
    )
    parser.add_argument(
        "--alert",
        metavar="SYMBOL",
        help="Add a one-shot alert (needs --condition and --value)",
    )
    parser.add_argument(
        "--condition",
        choices=[condition.value for condition in AlertCondition],
        help="Alert: condition to watch",
    )
    parser.add_argument("--value", type=float, help="Alert: price or RSI threshold")
    parser.add_argument(
        "--check-alerts",
        action="store_true",
        help="Evaluate active alerts against stored bars, then exit",
    )

    parser.add_argument("--min-price", type=float, help="Screen: minimum last sale")
    parser.add_argument("--max-price", type=float, help="Screen: maximum last sale")
    parser.add_argument("--min-market-cap", type=float, help="Screen: minimum market cap in USD")
    parser.add_argument("--min-volume", type=int, help="Screen: minimum volume")
    parser.add_argument("--min-rsi", type=float, help="Screen: minimum RSI(14)")
    parser.add_argument("--max-rsi", type=float, help="Screen: maximum RSI(14)")
    parser.add_argument(
        "--sector",
        action="append",
        default=[],
        help="Screen: sector substring (repeatable)",
    )
    parser.add_argument("--limit", type=int, default=20, help="Screen: rows to print")
    return parser


def apply_cli_overrides(settings: Settings, args: argparse.Namespace) -> Settings:
    """Apply CLI values onto environment-derived settings."""
    chosen = [name for name in ACTION_FLAGS if getattr(args, name)]
    if len(chosen) > 1:
        flags = ", ".join(f"--{name}" for name in chosen)
        raise ValueError(f"Use only one action flag, got: {flags}")
    if args.limit is not None and args.limit <= 0:
        raise ValueError("--limit must be positive")
    if args.alert and (args.condition is None or args.value is None):
        raise ValueError("--alert needs --condition and --value")
    if args.min_rsi is not None and args.max_rsi is not None and args.min_rsi > args.max_rsi:
        raise ValueError("--min-rsi must not exceed --max-rsi")

    overrides: dict[str, object] = {}
    if args.tick_seconds is not None:
        overrides["tick_seconds"] = args.tick_seconds
    if args.max_ticks is not None:
        overrides["max_ticks"] = args.max_ticks
    if args.data_source:
        overrides["data_source"] = args.data_source
    if args.historical_dir:
        overrides["historical_data_dir"] = args.historical_dir
    if args.state_db:
        overrides["state_db_path"] = args.state_db
    if args.events_dir:
        overrides["events_dir"] = args.events_dir
    if args.store:
        overrides["store_backend"] = args.store
    if args.log_level:
        overrides["log_level"] = args.log_level.strip().upper()
    return settings.with_overrides(**overrides)


def build_stock_filter(args: argparse.Namespace) -> StockFilter:
    return StockFilter(
        min_price=args.min_price,
        max_price=args.max_price,
        min_market_cap=args.min_market_cap,
        min_volume=args.min_volume,
        min_rsi=args.min_rsi,
        max_rsi=args.max_rsi,
        sectors=tuple(args.sector),
    )


def main(argv: list[str] | None = None) -> int:
    """CLI entrypoint."""
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        settings = apply_cli_overrides(Settings.from_env(), args)
    except ValueError as exc:
        print(f"Configuration error: {exc}")
        return 2
    if args.analyze:
        return analyze(settings, _symbol(args.analyze))
    if args.screen:
        return screen(settings, build_stock_filter(args), limit=args.limit)
    if args.watch:
        return watch(settings, _symbol(args.watch), owner=args.owner)
    if args.unwatch:
        return unwatch(settings, _symbol(args.unwatch), owner=args.owner)
    if args.reactivate:
        return reactivate(settings, _symbol(args.reactivate))
    if args.priorities:
        return show_priorities(settings)
    if args.alert:
        return add_alert(
            settings,
            _symbol(args.alert),
            AlertCondition(args.condition),
            args.value,
            owner=args.owner,
        )
    if args.check_alerts:
        return check_alerts(settings)
    return run(settings)


def _symbol(value: str) -> str:
    return value.strip().upper()


if __name__ == "__main__":
    sys.exit(main())
