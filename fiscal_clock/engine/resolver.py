"""
Dependency-ordered metric resolution.

resolve_all() walks the registry's topological generations. Metrics within a
generation have no dependency on each other and resolve concurrently; a
generation starts only after every attempt in the previous one finished, so a
derived metric always sees its dependencies' outcome for the current pass.

Per metric: IDLE -> LOADING -> {READY, FAILED}; FAILED and READY re-enter
LOADING on the next pass. At most one resolution per metric is in flight.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Iterable

from ..errors import ConfigurationError, FiscalClockError
from ..types import ErrorRecord, MetricKind, MetricSnapshot, MetricStatus, TileState
from .projector import project
from .registry import MetricRegistry
from .sink import NullSink, RenderSink

logger = logging.getLogger(__name__)


@dataclass
class ResolutionReport:
    """Outcome of one resolve_all pass."""
    resolved: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)   # Missing dependency snapshot
    busy: list[str] = field(default_factory=list)      # Already in flight
    started_at: float = 0.0
    finished_at: float = 0.0

    @property
    def ok(self) -> bool:
        return not self.failed


class Resolver:
    """
    Resolves registered metrics into snapshots and reports to a RenderSink.

    Usage:
        resolver = Resolver(registry, sink=QueueSink())
        report = await resolver.resolve_all()
        value = resolver.get_live_value("debt", time.time())
    """

    def __init__(
        self,
        registry: MetricRegistry,
        sink: RenderSink | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.registry = registry
        self.sink: RenderSink = sink if sink is not None else NullSink()
        self._clock = clock
        self._in_flight: set[str] = set()
        self.passes: int = 0

    # Outward API ---------------------------------------------------------

    def get_snapshot(self, name: str) -> MetricSnapshot | None:
        if name not in self.registry:
            return None
        return self.registry.state(name).snapshot

    def get_live_value(self, name: str, now: float | None = None) -> float | None:
        return project(self.get_snapshot(name), self._clock() if now is None else now)

    def is_resolving(self, name: str | None = None) -> bool:
        if name is None:
            return bool(self._in_flight)
        return name in self._in_flight

    # Resolution ----------------------------------------------------------

    async def resolve_all(self, names: Iterable[str] | None = None) -> ResolutionReport:
        """
        Resolve every metric (or only `names`) in dependency order.

        Never raises for metric failures; they land in TileState.last_error
        and in the returned report.
        """
        if not self.registry.is_registered:
            raise ConfigurationError("No metrics registered; call register_all() first")

        wanted: set[str] | None = None
        if names is not None:
            wanted = set(names)
            unknown = [n for n in wanted if n not in self.registry]
            if unknown:
                raise ConfigurationError(f"Unknown metrics: {sorted(unknown)}")

        report = ResolutionReport(started_at=self._clock())
        self.passes += 1

        for generation in self.registry.generations:
            batch = [n for n in generation if wanted is None or n in wanted]
            if batch:
                await asyncio.gather(*(self._resolve_one(name, report) for name in batch))

        report.finished_at = self._clock()
        logger.info(
            "Resolution pass %d: %d resolved, %d failed, %d skipped, %d busy",
            self.passes, len(report.resolved), len(report.failed),
            len(report.skipped), len(report.busy),
        )
        return report

    async def resolve_one(self, name: str) -> ResolutionReport:
        """Retry affordance for a single tile (dependencies are not re-fetched)."""
        return await self.resolve_all([name])

    async def _resolve_one(self, name: str, report: ResolutionReport) -> None:
        if name in self._in_flight:
            report.busy.append(name)
            return

        definition = self.registry.definition(name)
        state = self.registry.state(name)

        deps: dict[str, MetricSnapshot] = {}
        if definition.kind is MetricKind.DERIVED:
            for dep in definition.dependencies:
                snapshot = self.registry.state(dep).snapshot
                if snapshot is None:
                    # Never resolved upstream: leave this metric as it is
                    report.skipped.append(name)
                    return
                deps[dep] = snapshot

        self._in_flight.add(name)
        previous_status = state.status
        state.status = MetricStatus.LOADING
        state.attempts += 1
        self.sink.set_loading(name)

        try:
            result = definition.resolve(deps)
            if inspect.isawaitable(result):
                result = await result
            snapshot = result
        except FiscalClockError as exc:
            self._record_failure(state, ErrorRecord(exc.kind, str(exc), self._clock()))
            report.failed.append(name)
        except Exception as exc:
            logger.exception("Unexpected error resolving %s", name)
            self._record_failure(state, ErrorRecord("unexpected", f"{type(exc).__name__}: {exc}", self._clock()))
            report.failed.append(name)
        else:
            if not isinstance(snapshot, MetricSnapshot):
                self._record_failure(
                    state,
                    ErrorRecord("unexpected", f"resolver returned {type(snapshot).__name__}", self._clock()),
                )
                report.failed.append(name)
            else:
                state.mark_success(snapshot, self._clock())
                report.resolved.append(name)
                logger.debug("Resolved %s: %s", name, snapshot)
        finally:
            self._in_flight.discard(name)
            if state.status is MetricStatus.LOADING:
                state.status = previous_status
            # Force the ticker to push the value again, which clears the
            # loading indicator on the tile
            state.last_rendered_text = ""

    def _record_failure(self, state: TileState, error: ErrorRecord) -> None:
        state.mark_failure(error)
        if state.snapshot is None:
            logger.error("Metric %s failed (%s): %s", state.name, error.kind, error.message)
            self.sink.set_error(state.name, error.message)
        else:
            # Stale-but-valid snapshot keeps being projected
            logger.warning(
                "Metric %s refresh failed, keeping snapshot from %s (%s): %s",
                state.name, state.snapshot.label or "previous pass", error.kind, error.message,
            )
