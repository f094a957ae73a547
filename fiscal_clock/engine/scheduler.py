"""
Refresh scheduling and cache policy.

Owns the staleness window for the fetch cache, the periodic resolution task,
the manual force refresh, and the aggregate dashboard status.
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import logging
from typing import TYPE_CHECKING

from ..types import MetricStatus, SystemStatus
from .resolver import ResolutionReport, Resolver

if TYPE_CHECKING:
    from ..datafeed.fetch_client import FetchClient

logger = logging.getLogger(__name__)

STATUS_MESSAGES = {
    SystemStatus.INITIALIZING: "initializing…",
    SystemStatus.SYNCING: "connecting to treasury apis…",
    SystemStatus.LIVE: "live data • all sources",
    SystemStatus.DEGRADED: "partial data • some sources failing, showing last good values",
    SystemStatus.ERROR: "error • no source reachable, press r to retry",
}


class RefreshScheduler:
    """
    Periodic resolve_all trigger plus force refresh.

    Usage:
        scheduler = RefreshScheduler(resolver, client, refresh_interval=300)
        scheduler.start()
        ...
        await scheduler.force_refresh()
        await scheduler.stop()
    """

    def __init__(
        self,
        resolver: Resolver,
        client: FetchClient | None = None,
        refresh_interval: float = 300.0,
        staleness_window: float = 120.0,
    ) -> None:
        self.resolver = resolver
        self.client = client
        self.refresh_interval = refresh_interval
        self.staleness_window = staleness_window
        if client is not None:
            client.cache.timeout = staleness_window

        self.last_report: ResolutionReport | None = None
        self._task: asyncio.Task[None] | None = None
        self._status = SystemStatus.INITIALIZING

    @property
    def status(self) -> SystemStatus:
        return self._status

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def compute_status(self) -> SystemStatus:
        """Aggregate status from every leaf's latest attempt."""
        if self.last_report is None:
            return SystemStatus.SYNCING if self.resolver.is_resolving() else SystemStatus.INITIALIZING

        registry = self.resolver.registry
        leaves = [registry.state(name) for name in registry.leaves()]
        if not leaves:
            return SystemStatus.LIVE

        failing = [s for s in leaves if s.status is MetricStatus.FAILED]
        resolved_any = any(s.snapshot is not None for s in leaves)

        if not resolved_any:
            return SystemStatus.ERROR if failing else SystemStatus.SYNCING
        if failing or (self.client is not None and self.client.degraded):
            return SystemStatus.DEGRADED
        return SystemStatus.LIVE

    def _publish_status(self) -> None:
        status = self.compute_status()
        if status is not self._status:
            logger.info("Dashboard status: %s -> %s", self._status.value, status.value)
        self._status = status
        self.resolver.sink.set_status(status, STATUS_MESSAGES[status])

    async def refresh(self) -> ResolutionReport:
        """One resolution pass, with status updates before and after."""
        if self.last_report is None:
            self._status = SystemStatus.SYNCING
            self.resolver.sink.set_status(SystemStatus.SYNCING, STATUS_MESSAGES[SystemStatus.SYNCING])
        report = await self.resolver.resolve_all()
        self.last_report = report
        self._publish_status()
        return report

    async def force_refresh(self) -> ResolutionReport:
        """
        Drop cached responses and the degraded flag, then resolve now.

        Stored snapshots are kept so last-good values stay on screen.
        """
        logger.info("Force refresh requested")
        if self.client is not None:
            self.client.clear_cache()
            self.client.clear_degraded()
        return await self.refresh()

    def submit_force_refresh(self, loop: asyncio.AbstractEventLoop) -> concurrent.futures.Future[ResolutionReport]:
        """Schedule force_refresh on `loop` from another thread; failures are logged."""
        future = asyncio.run_coroutine_threadsafe(self.force_refresh(), loop)
        future.add_done_callback(log_refresh_failure)
        return future

    async def _run(self) -> None:
        while True:
            try:
                await self.refresh()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Refresh pass failed")
            await asyncio.sleep(self.refresh_interval)

    def start(self) -> asyncio.Task[None]:
        """Start the periodic task (first pass runs immediately)."""
        if self._task is not None and not self._task.done():
            return self._task
        self._task = asyncio.create_task(self._run(), name="fiscal-clock-refresh")
        return self._task

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None


def log_refresh_failure(future: concurrent.futures.Future[ResolutionReport]) -> None:
    if future.cancelled():
        return
    exc = future.exception()
    if exc is not None:
        logger.error("Force refresh failed: %s", exc, exc_info=exc)
