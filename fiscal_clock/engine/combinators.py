"""
Derived-metric combinators.

Pure functions of dependency snapshots, no I/O. A missing rate is treated as
zero. Division by a zero or missing denominator degrades to a zero snapshot
instead of raising; the dependencies carry their own error state.
"""

from __future__ import annotations

from ..types import MetricSnapshot


def _rate(snapshot: MetricSnapshot) -> float:
    return snapshot.rate_per_second or 0.0


def _min_timestamp(a: MetricSnapshot, b: MetricSnapshot) -> float | None:
    stamps = [ts for ts in (a.base_timestamp, b.base_timestamp) if ts is not None]
    return min(stamps) if stamps else None


def _denominator(b: MetricSnapshot | None) -> float | None:
    if b is None or not b.base_value:
        return None
    return b.base_value


def subtract(a: MetricSnapshot, b: MetricSnapshot, label: str = "") -> MetricSnapshot:
    """a - b, e.g. deficit = outlays - receipts."""
    return MetricSnapshot(
        base_value=(a.base_value or 0.0) - (b.base_value or 0.0),
        base_timestamp=_min_timestamp(a, b),
        rate_per_second=_rate(a) - _rate(b),
        label=label,
    )


def ratio(a: MetricSnapshot, b: MetricSnapshot | None, label: str = "") -> MetricSnapshot:
    """
    a / b holding b constant, e.g. debt per citizen.

    The denominator's own growth is a second-order term and is ignored.
    """
    denominator = _denominator(b)
    if denominator is None:
        return MetricSnapshot(0.0, a.base_timestamp, 0.0, label)
    return MetricSnapshot(
        base_value=(a.base_value or 0.0) / denominator,
        base_timestamp=a.base_timestamp,
        rate_per_second=_rate(a) / denominator,
        label=label,
    )


def quotient(a: MetricSnapshot, b: MetricSnapshot | None, label: str = "") -> MetricSnapshot:
    """
    a / b with both varying (quotient rule), e.g. debt-to-GDP.

    rate = (a' * b - a * b') / b^2
    """
    b_base = _denominator(b)
    if b is None or b_base is None:
        return MetricSnapshot(0.0, a.base_timestamp, 0.0, label)
    a_base = a.base_value or 0.0
    return MetricSnapshot(
        base_value=a_base / b_base,
        base_timestamp=_min_timestamp(a, b),
        rate_per_second=(_rate(a) * b_base - a_base * _rate(b)) / (b_base * b_base),
        label=label,
    )
