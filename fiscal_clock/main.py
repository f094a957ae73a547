#!/usr/bin/env python3
"""
Fiscal Clock - Live U.S. debt, deficit and fiscal ratios in the terminal.

Usage:
    python -m fiscal_clock.main                 # terminal dashboard
    python -m fiscal_clock.main gui             # desktop window
    python -m fiscal_clock.main once            # resolve once, print a table
    python -m fiscal_clock.main crawl           # rebuild the debt history file
    python -m fiscal_clock.main proxy --port 8000

Controls:
    q - Quit
    r - Force refresh (drop cached responses, re-resolve everything)
"""

from __future__ import annotations

import argparse
import asyncio
import dataclasses
import logging
import sys
from typing import TYPE_CHECKING, NamedTuple, Sequence

from .config import Settings, get_settings
from .errors import FiscalClockError

if TYPE_CHECKING:
    from .datafeed.fetch_client import FetchClient
    from .engine.registry import MetricRegistry
    from .engine.resolver import Resolver
    from .engine.scheduler import RefreshScheduler
    from .engine.sink import RenderSink
    from .engine.ticker import LiveTicker

logger = logging.getLogger(__name__)

COMMANDS = ("tui", "gui", "once", "crawl", "proxy")
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


class Engine(NamedTuple):
    """Everything a frontend needs, wired together."""
    client: FetchClient
    registry: MetricRegistry
    resolver: Resolver
    scheduler: RefreshScheduler
    ticker: LiveTicker


def build_engine(settings: Settings, sink: RenderSink) -> Engine:
    """Create the fetch client, register the catalog and wire the engine to `sink`."""
    # Import here to avoid slow startup for --help
    from .datafeed.fetch_client import FetchClient
    from .engine.registry import MetricRegistry
    from .engine.resolver import Resolver
    from .engine.scheduler import RefreshScheduler
    from .engine.ticker import LiveTicker
    from .metrics import build_catalog

    client = FetchClient.from_settings(settings)
    registry = MetricRegistry()
    registry.register_all(build_catalog(client))
    resolver = Resolver(registry, sink)
    scheduler = RefreshScheduler(
        resolver,
        client,
        refresh_interval=settings.refresh_interval,
        staleness_window=settings.cache_timeout,
    )
    ticker = LiveTicker(registry, sink, fps=settings.fps)
    return Engine(client, registry, resolver, scheduler, ticker)


def setup_logging(settings: Settings, to_file: bool) -> None:
    """
    Configure root logging.

    Screen-owning frontends log to the log file (or nowhere) so records do not
    corrupt the display.
    """
    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    if to_file:
        if settings.log_file:
            logging.basicConfig(level=level, format=LOG_FORMAT, filename=settings.log_file)
        else:
            logging.basicConfig(level=level, handlers=[logging.NullHandler()])
    else:
        logging.basicConfig(level=level, format=LOG_FORMAT)


async def main(settings: Settings) -> None:
    """Terminal dashboard - runs scheduler, ticker and UI concurrently."""

    from .engine.sink import QueueSink
    from .history import load_series
    from .ui.dashboard_view import run_ui

    history = load_series(settings.history_file)
    if history is None:
        logger.warning("No debt history at %s; chart disabled", settings.history_file)

    sink = QueueSink()
    engine = build_engine(settings, sink)

    engine.scheduler.start()
    ticker_task = asyncio.create_task(engine.ticker.run(), name="fiscal-clock-ticker")

    try:
        # Run UI (blocks until quit)
        await run_ui(sink, engine.scheduler, history)
    finally:
        engine.ticker.stop()
        ticker_task.cancel()
        try:
            await ticker_task
        except asyncio.CancelledError:
            pass
        await engine.scheduler.stop()
        await engine.client.close()
        engine.registry.teardown()


async def run_once(settings: Settings) -> int:
    """Resolve every metric once and print a table. Returns the exit code."""
    from rich.console import Console
    from rich.table import Table

    from .engine.sink import NullSink

    engine = build_engine(settings, NullSink())
    try:
        report = await engine.scheduler.refresh()
    finally:
        await engine.client.close()

    table = Table(title=f"U.S. Fiscal Clock ({engine.scheduler.status.value})")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right", style="bold")
    table.add_column("Source")
    table.add_column("Status")

    for name in engine.registry.names:
        definition = engine.registry.definition(name)
        state = engine.registry.state(name)
        if state.snapshot is None:
            message = state.last_error.message if state.last_error else "missing dependencies"
            table.add_row(definition.title, "—", "", f"[red]{message}[/red]")
            continue
        value = definition.render(engine.resolver.get_live_value(name))
        table.add_row(definition.title, value, state.snapshot.label, state.status.value)

    Console().print(table)
    engine.registry.teardown()
    return 0 if report.resolved else 1


async def run_crawl(settings: Settings, start_year: int) -> int:
    """Rebuild the yearly debt history file."""
    from .datafeed.fetch_client import FetchClient
    from .formatting import format_compact_usd
    from .history import crawl_historical_debt, save_series

    async with FetchClient.from_settings(settings) as client:
        series = await crawl_historical_debt(client, start_year)

    path = save_series(settings.history_file, series)
    first, last = series.points[0], series.points[-1]
    print(f"Saved {len(series.points)} years to {path}")
    print(f"  {first.year}: {format_compact_usd(first.debt)}")
    print(f"  {last.year}: {format_compact_usd(last.debt)}")
    return 0


def apply_overrides(settings: Settings, args: argparse.Namespace) -> Settings:
    """CLI flags win over environment and .env values."""
    overrides = {
        "refresh_interval": args.refresh_interval,
        "cache_timeout": args.cache_timeout,
        "fps": args.fps,
        "proxy_base": args.proxy_base,
        "history_file": args.history_file,
        "log_level": args.log_level,
    }
    changes = {key: value for key, value in overrides.items() if value is not None}
    return dataclasses.replace(settings, **changes) if changes else settings


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="fiscal-clock",
        description="Fiscal Clock - Live U.S. fiscal dashboard (Treasury + World Bank data)",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    fiscal-clock
    fiscal-clock gui --fps 30
    fiscal-clock once --proxy-base http://localhost:8000
    fiscal-clock crawl --start-year 2000
    fiscal-clock proxy --port 8000
        """
    )

    parser.add_argument(
        "command",
        nargs="?",
        default="tui",
        choices=COMMANDS,
        help="What to run (default: tui)"
    )

    parser.add_argument(
        "--refresh-interval",
        type=float,
        help="Seconds between full resolution passes (default: 300)"
    )

    parser.add_argument(
        "--cache-timeout",
        type=float,
        help="Seconds a cached API response stays fresh (default: 120)"
    )

    parser.add_argument(
        "--fps",
        type=float,
        help="Live value frames per second (default: 20)"
    )

    parser.add_argument(
        "--proxy-base",
        help="Route Treasury requests through a fiscal-clock proxy at this URL"
    )

    parser.add_argument(
        "--history-file",
        help="Yearly debt history JSON (default: data/historical-debt.json)"
    )

    parser.add_argument(
        "--log-level",
        type=str.upper,
        choices=("DEBUG", "INFO", "WARNING", "ERROR"),
        help="Log level (default: INFO)"
    )

    parser.add_argument(
        "--port",
        type=int,
        default=8000,
        help="Proxy listen port (default: 8000)"
    )

    parser.add_argument(
        "--start-year",
        type=int,
        default=2005,
        help="First year to crawl (default: 2005)"
    )

    return parser


def cli(argv: Sequence[str] | None = None) -> None:
    """CLI entry point."""
    args = build_parser().parse_args(argv)

    try:
        settings = apply_overrides(get_settings(), args)
        setup_logging(settings, to_file=args.command == "tui")

        if args.command == "tui":
            print("Starting Fiscal Clock...")
            print(f"  Refresh interval: {settings.refresh_interval:.0f}s")
            print(f"  Proxy: {settings.proxy_base or 'direct'}")
            print()
            asyncio.run(main(settings))
        elif args.command == "gui":
            from .gui import main as gui_main
            gui_main(settings)
        elif args.command == "once":
            sys.exit(asyncio.run(run_once(settings)))
        elif args.command == "crawl":
            sys.exit(asyncio.run(run_crawl(settings, args.start_year)))
        elif args.command == "proxy":
            from .proxy import run_proxy
            print(f"Fiscal Clock proxy on http://localhost:{args.port}/api/<debt|mts|dts>")
            run_proxy(args.port, settings.fiscal_base)
    except FiscalClockError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    except KeyboardInterrupt:
        print("\nShutdown requested.")
        sys.exit(0)


if __name__ == "__main__":
    cli()
