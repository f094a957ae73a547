"""
Raw records -> MetricSnapshot.

Two shapes:
- Discrete series (debt, receipts, outlays, cash): daily/monthly filings,
  linear extrapolation between the two most recent records.
- Annual growth (population, GDP): yearly observations, continuous
  compounding at the most recent annual growth rate.

Field names are declared per leaf as ordered alias tuples; the first alias
present in a record wins.
"""

from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Any, Mapping, NamedTuple, Sequence

from ..errors import ApiError, InsufficientDataError
from ..types import MetricSnapshot

SECONDS_PER_YEAR = 365 * 24 * 3600


class FieldSpec(NamedTuple):
    """Accepted field aliases for one leaf, in priority order."""
    value: tuple[str, ...]
    date: tuple[str, ...] = ("record_date",)


def first_match(record: Mapping[str, Any], aliases: Sequence[str]) -> Any:
    """Return the value of the first alias present in `record`."""
    for alias in aliases:
        if alias in record:
            return record[alias]
    raise ApiError(f"Record has none of the fields {list(aliases)}: keys={sorted(record)}")


def to_number(value: Any) -> float:
    """Parse API numbers, which arrive as numbers or strings like "1,234.5"."""
    if isinstance(value, bool):
        raise ApiError(f"Not a number: {value!r}")
    if isinstance(value, (int, float)):
        return float(value)
    if value is None:
        raise ApiError("Missing numeric value")
    text = str(value).replace(",", "").strip()
    try:
        number = float(text)
    except ValueError:
        raise ApiError(f"Not a number: {value!r}") from None
    if math.isnan(number):
        raise ApiError(f"Not a number: {value!r}")
    return number


def parse_record_date(value: Any) -> float:
    """Record date "YYYY-MM-DD" -> end of that day, UTC, in epoch seconds."""
    try:
        day = datetime.strptime(str(value)[:10], "%Y-%m-%d")
    except ValueError:
        raise ApiError(f"Bad record date: {value!r}") from None
    return day.replace(hour=23, minute=59, second=59, tzinfo=timezone.utc).timestamp()


def parse_year_start(value: Any) -> float:
    """Year "2024" -> Jan 1 00:00 UTC of that year, in epoch seconds."""
    try:
        year = int(str(value)[:4])
    except ValueError:
        raise ApiError(f"Bad year: {value!r}") from None
    return datetime(year, 1, 1, tzinfo=timezone.utc).timestamp()


def rate_per_second(current: float, previous: float, current_ts: float, previous_ts: float) -> float:
    return (current - previous) / max(1.0, current_ts - previous_ts)


def normalize_discrete(
    records: Sequence[Mapping[str, Any]],
    fields: FieldSpec,
    label_prefix: str = "As of",
) -> MetricSnapshot:
    """
    Most recent record is the base; the prior record (if any) sets the rate.

    Records must be ordered newest first.
    """
    if not records:
        raise InsufficientDataError("No records returned")

    current = records[0]
    current_value = to_number(first_match(current, fields.value))
    current_date = first_match(current, fields.date)
    current_ts = parse_record_date(current_date)

    rate = 0.0
    if len(records) > 1:
        previous = records[1]
        previous_value = to_number(first_match(previous, fields.value))
        previous_ts = parse_record_date(first_match(previous, fields.date))
        rate = rate_per_second(current_value, previous_value, current_ts, previous_ts)

    return MetricSnapshot(
        base_value=current_value,
        base_timestamp=current_ts,
        rate_per_second=rate,
        label=f"{label_prefix} {str(current_date)[:10]}",
    )


def normalize_annual_growth(
    records: Sequence[Mapping[str, Any]],
    fields: FieldSpec = FieldSpec(value=("value",), date=("date",)),
    label_prefix: str = "WB year",
) -> MetricSnapshot:
    """
    Continuous compounding at the latest observed annual growth rate.

    rate = ln(1 + g) / SECONDS_PER_YEAR * current, with g the fractional
    growth between the two most recent years.
    """
    if len(records) < 2:
        raise InsufficientDataError(f"Need at least 2 annual records, got {len(records)}")

    current, previous = records[0], records[1]
    current_value = to_number(first_match(current, fields.value))
    previous_value = to_number(first_match(previous, fields.value))
    if previous_value == 0:
        raise InsufficientDataError("Previous annual value is zero; growth undefined")

    growth = (current_value - previous_value) / previous_value
    if growth <= -1:
        raise ApiError(f"Annual growth {growth:.3f} has no continuous equivalent")
    rate = math.log(1 + growth) / SECONDS_PER_YEAR * current_value

    year = first_match(current, fields.date)
    return MetricSnapshot(
        base_value=current_value,
        base_timestamp=parse_year_start(year),
        rate_per_second=rate,
        label=f"{label_prefix} {str(year)[:4]}",
    )
