"""
Live projection of a snapshot to the present moment.

HOT PATH: project() runs on every ticker frame for every tile. Pure; the
result for a given wall-clock instant does not depend on the tick cadence.
"""

from __future__ import annotations

from ..types import MetricSnapshot


def project(snapshot: MetricSnapshot | None, now: float) -> float | None:
    """base + rate * (now - base_ts); static base when rate or timestamp is missing."""
    if snapshot is None or snapshot.base_value is None:
        return None
    if snapshot.rate_per_second is None or snapshot.base_timestamp is None:
        return snapshot.base_value
    return snapshot.base_value + snapshot.rate_per_second * (now - snapshot.base_timestamp)
