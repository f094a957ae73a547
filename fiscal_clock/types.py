"""
Data types for Fiscal Clock.

Notes:
- Using NamedTuple for immutable values (snapshots, definitions, errors)
- TileState is the only mutable record; the snapshot inside it is replaced
  wholesale on every successful resolution, never patched field by field
"""

from __future__ import annotations

import time
from enum import Enum
from typing import Any, Awaitable, Callable, Mapping, NamedTuple, Union


class MetricKind(str, Enum):
    LEAF = "leaf"
    DERIVED = "derived"


class MetricStatus(str, Enum):
    """Per-metric resolution state."""
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    FAILED = "failed"


class SystemStatus(str, Enum):
    """Whole-dashboard status derived from every leaf's latest attempt."""
    INITIALIZING = "initializing"
    SYNCING = "syncing"
    LIVE = "live"
    DEGRADED = "degraded"
    ERROR = "error"


class MetricSnapshot(NamedTuple):
    """Last known real value of a metric plus its extrapolation rate."""
    base_value: float | None
    base_timestamp: float | None   # Seconds since epoch
    rate_per_second: float | None  # Value units per second after base_timestamp
    label: str = ""                # Provenance note, display only


class ErrorRecord(NamedTuple):
    kind: str           # FiscalClockError.kind, or "unexpected"
    message: str
    occurred_at: float  # Seconds since epoch


Snapshots = Mapping[str, MetricSnapshot]

# Leaves: async fetch + normalize. Derived: pure combinator.
Resolver = Callable[[Snapshots], Union[Awaitable[MetricSnapshot], MetricSnapshot]]
Renderer = Callable[[Union[float, None]], str]


class MetricDefinition(NamedTuple):
    """Static registration record for one dashboard tile."""
    name: str
    kind: MetricKind
    dependencies: tuple[str, ...]
    resolve: Resolver
    render: Renderer
    title: str = ""
    badge: str = ""


class TileState:
    """
    Mutable per-metric state owned by the registry.

    Thread-safety: NOT thread-safe. Mutated only from the event loop; readers
    in other threads only ever see a whole snapshot reference.
    """

    __slots__ = (
        'name', 'snapshot', 'status', 'last_rendered_text', 'last_error',
        'last_success_at', 'attempts',
    )

    def __init__(self, name: str) -> None:
        self.name = name
        self.snapshot: MetricSnapshot | None = None
        self.status: MetricStatus = MetricStatus.IDLE
        self.last_rendered_text: str = ""
        self.last_error: ErrorRecord | None = None
        self.last_success_at: float | None = None
        self.attempts: int = 0

    def mark_success(self, snapshot: MetricSnapshot, now: float | None = None) -> None:
        self.snapshot = snapshot
        self.status = MetricStatus.READY
        self.last_error = None
        self.last_success_at = time.time() if now is None else now

    def mark_failure(self, error: ErrorRecord) -> None:
        # Previous snapshot stays for continued display
        self.status = MetricStatus.FAILED
        self.last_error = error

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "status": self.status.value,
            "snapshot": self.snapshot._asdict() if self.snapshot else None,
            "last_error": self.last_error._asdict() if self.last_error else None,
            "last_success_at": self.last_success_at,
            "attempts": self.attempts,
        }
