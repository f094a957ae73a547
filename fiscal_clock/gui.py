#!/usr/bin/env python3
"""
Fiscal Clock GUI - Standalone window version.

Usage:
    python -m fiscal_clock.gui --fps 30
"""

from __future__ import annotations

import asyncio
import logging
import sys
import threading
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .config import Settings
    from .main import Engine

logger = logging.getLogger(__name__)

SHUTDOWN_TIMEOUT = 5.0


async def run_feed(engine: Engine) -> None:
    """Refresh scheduler and ticker until the ticker is stopped."""
    engine.scheduler.start()
    try:
        await engine.ticker.run()
    finally:
        await engine.scheduler.stop()
        await engine.client.close()


def run_async_feed(engine: Engine, loop: asyncio.AbstractEventLoop) -> None:
    """Run the async data feed in a separate thread."""
    try:
        logger.info("Starting async feed thread")
        asyncio.set_event_loop(loop)
        loop.run_until_complete(run_feed(engine))
    except Exception:
        logger.exception("Feed thread failed")
    finally:
        loop.close()


def main(settings: Settings) -> None:
    """Main entry point - runs data feed in background, GUI in main thread."""

    from .engine.sink import QueueSink
    from .history import load_series
    from .main import build_engine
    from .ui.dashboard_window import run_gui

    print("Starting Fiscal Clock GUI...")
    print(f"  Refresh interval: {settings.refresh_interval:.0f}s")
    print(f"  Proxy: {settings.proxy_base or 'direct'}")
    print()

    history = load_series(settings.history_file)

    # Engine writes into the sink from the feed thread, Qt drains it
    sink = QueueSink()
    engine = build_engine(settings, sink)

    # Create event loop for async operations
    loop = asyncio.new_event_loop()

    # Start data feed in background thread
    feed_thread = threading.Thread(
        target=run_async_feed,
        args=(engine, loop),
        daemon=True
    )
    feed_thread.start()

    # Run GUI in main thread (required by Qt)
    try:
        run_gui(sink, engine.scheduler, loop, history)
    finally:
        if feed_thread.is_alive():
            loop.call_soon_threadsafe(engine.ticker.stop)
            feed_thread.join(SHUTDOWN_TIMEOUT)
        engine.registry.teardown()


def cli() -> None:
    """CLI entry point (same flags as fiscal-clock)."""
    from .main import cli as main_cli
    main_cli(["gui", *sys.argv[1:]])


if __name__ == "__main__":
    cli()
