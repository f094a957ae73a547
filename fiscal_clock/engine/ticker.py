"""
Projector tick loop.

Runs as its own task, independent of the refresh scheduler. Each frame
projects every resolved snapshot to "now", formats it with the metric's
renderer, and pushes it to the sink only when the text changed.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable

from .projector import project
from .registry import MetricRegistry
from .sink import RenderSink

logger = logging.getLogger(__name__)


class LiveTicker:
    """
    Continuous live-value renderer.

    Thread-safety: NOT thread-safe. Runs on the same loop as the resolver and
    only reads TileState.snapshot references.
    """

    def __init__(
        self,
        registry: MetricRegistry,
        sink: RenderSink,
        fps: float = 20.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.registry = registry
        self.sink = sink
        self.interval = 1.0 / fps
        self._clock = clock
        self._running = False

        # Performance tracking
        self.frames: int = 0
        self.pushes: int = 0

    def tick(self, now: float | None = None) -> int:
        """
        Render one frame. Returns the number of tiles pushed to the sink.

        HOT PATH - called `fps` times per second.
        """
        now = self._clock() if now is None else now
        pushed = 0
        for state in self.registry.states():
            snapshot = state.snapshot
            if snapshot is None:
                continue
            definition = self.registry.definition(state.name)
            try:
                text = definition.render(project(snapshot, now))
            except Exception:
                # One broken renderer must not blank the tiles after it
                logger.exception("Render failed for %s", state.name)
                continue
            if text == state.last_rendered_text:
                continue
            state.last_rendered_text = text
            label = snapshot.label
            if state.last_error is not None:
                label = f"{label} • stale" if label else "stale"
            self.sink.set_value(state.name, text, label)
            pushed += 1
        self.frames += 1
        self.pushes += pushed
        return pushed

    async def run(self) -> None:
        """Tick until stop() is called or the task is cancelled."""
        self._running = True
        while self._running:
            try:
                self.tick()
            except Exception:
                logger.exception("Ticker frame failed")
            await asyncio.sleep(self.interval)

    def stop(self) -> None:
        """Signal the loop to stop."""
        self._running = False
