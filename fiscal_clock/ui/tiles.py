"""
Display-side tile state shared by the terminal and desktop frontends.

Both frontends drain SinkEvents from a QueueSink on their own timer and fold
them into these views; widgets only read from them.
"""

from __future__ import annotations

from typing import Iterable

from ..engine.sink import SinkEvent
from ..types import MetricDefinition, SystemStatus

PLACEHOLDER = "—"


class TileView:
    """What one tile currently shows."""

    __slots__ = ('name', 'title', 'badge', 'value', 'meta', 'error', 'loading')

    def __init__(self, name: str, title: str, badge: str = "") -> None:
        self.name = name
        self.title = title or name
        self.badge = badge
        self.value: str = PLACEHOLDER
        self.meta: str = ""
        self.error: str | None = None
        self.loading: bool = True  # Until the first value or error arrives

    @property
    def has_value(self) -> bool:
        return self.value != PLACEHOLDER

    def apply(self, event: SinkEvent) -> None:
        if event.kind == "loading":
            self.loading = True
            self.error = None
        elif event.kind == "error":
            self.loading = False
            # Only tiles that never showed a value get the error/retry affordance
            if not self.has_value:
                self.error = event.text
        elif event.kind == "value":
            self.loading = False
            self.error = None
            self.value = event.text
            self.meta = event.label


class StatusView:
    __slots__ = ('status', 'message')

    def __init__(self) -> None:
        self.status = SystemStatus.INITIALIZING
        self.message = "initializing…"

    def apply(self, event: SinkEvent) -> None:
        self.status = SystemStatus(event.label)
        self.message = event.text


def build_views(definitions: Iterable[MetricDefinition]) -> dict[str, TileView]:
    return {d.name: TileView(d.name, d.title, d.badge) for d in definitions}


def apply_events(
    views: dict[str, TileView],
    status: StatusView,
    events: Iterable[SinkEvent],
) -> set[str]:
    """Fold events into views. Returns the names of tiles that changed ("" for status)."""
    changed: set[str] = set()
    for event in events:
        if event.kind == "status":
            status.apply(event)
            changed.add("")
            continue
        view = views.get(event.name)
        if view is None:
            continue
        view.apply(event)
        changed.add(event.name)
    return changed
