"""
Render sink contract.

The engine only ever talks to a RenderSink; it knows nothing about widgets.
QueueSink bridges the event loop to a UI that runs its own timer (possibly in
another thread), like the snapshot queue between the feed and the window.
"""

from __future__ import annotations

import queue
from typing import NamedTuple, Protocol

from ..types import SystemStatus


class RenderSink(Protocol):
    def set_loading(self, name: str) -> None: ...

    def set_error(self, name: str, message: str) -> None: ...

    def set_value(self, name: str, text: str, label: str) -> None: ...

    def set_status(self, status: SystemStatus, message: str) -> None: ...


class NullSink:
    """Discards everything."""

    def set_loading(self, name: str) -> None:
        pass

    def set_error(self, name: str, message: str) -> None:
        pass

    def set_value(self, name: str, text: str, label: str) -> None:
        pass

    def set_status(self, status: SystemStatus, message: str) -> None:
        pass


class SinkEvent(NamedTuple):
    kind: str      # "loading" | "error" | "value" | "status"
    name: str      # Metric name; empty for status events
    text: str      # Rendered value, error message or status message
    label: str = ""


class QueueSink:
    """
    Posts SinkEvents to a thread-safe queue.

    Consumers drain with drain() on their own timer and apply events in order.
    """

    def __init__(self, maxsize: int = 0) -> None:
        self.events: queue.Queue[SinkEvent] = queue.Queue(maxsize=maxsize)

    def _put(self, event: SinkEvent) -> None:
        try:
            self.events.put_nowait(event)
        except queue.Full:
            # Drop oldest, put newest
            try:
                self.events.get_nowait()
            except queue.Empty:
                pass
            self.events.put_nowait(event)

    def set_loading(self, name: str) -> None:
        self._put(SinkEvent("loading", name, ""))

    def set_error(self, name: str, message: str) -> None:
        self._put(SinkEvent("error", name, message))

    def set_value(self, name: str, text: str, label: str) -> None:
        self._put(SinkEvent("value", name, text, label))

    def set_status(self, status: SystemStatus, message: str) -> None:
        self._put(SinkEvent("status", "", message, status.value))

    def drain(self, limit: int | None = None) -> list[SinkEvent]:
        """Pop everything currently queued (at most `limit` events)."""
        drained: list[SinkEvent] = []
        while limit is None or len(drained) < limit:
            try:
                drained.append(self.events.get_nowait())
            except queue.Empty:
                break
        return drained
