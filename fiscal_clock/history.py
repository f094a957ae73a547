"""
Historical debt series for the chart panel.

crawl_historical_debt() pulls Debt to the Penny since a start year and keeps
the latest record of every calendar year; the result is saved to a JSON file
that the dashboard loads once at startup. The loaded series is immutable.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any, NamedTuple, Sequence

import numpy as np
import orjson

from .datafeed.endpoints import extract_fiscal_records
from .engine.normalizer import FieldSpec, first_match, to_number
from .errors import ApiError, InsufficientDataError

if TYPE_CHECKING:
    from .datafeed.fetch_client import FetchClient

logger = logging.getLogger(__name__)

DEBT_FIELDS = FieldSpec(value=("tot_pub_debt_out_amt", "debt_outstanding_amt"))
DATA_SOURCE = "Treasury API - Debt to the Penny"
MAX_PAGES = 20
PAGE_SIZE = 10000
STALE_AFTER_HOURS = 24.0


class YearPoint(NamedTuple):
    """End-of-year debt (latest record within the calendar year)."""
    year: int
    debt: float
    record_date: str
    annual_increase: float | None = None
    percentage_increase: float | None = None


class HistoricalSeries(NamedTuple):
    last_updated: str   # ISO-8601 UTC
    data_source: str
    points: list[YearPoint]

    @property
    def years(self) -> list[int]:
        return [p.year for p in self.points]

    @property
    def values(self) -> list[float]:
        return [p.debt for p in self.points]


class DataAge(NamedTuple):
    hours: float
    is_stale: bool
    last_updated: str


def bucket_by_year(records: Sequence[dict], fields: FieldSpec = DEBT_FIELDS) -> list[YearPoint]:
    """
    Keep the latest record per calendar year, ascending by year, with
    year-over-year increase and percentage increase.
    """
    latest: dict[int, tuple[str, float]] = {}
    for record in records:
        try:
            record_date = str(first_match(record, fields.date))[:10]
            debt = to_number(first_match(record, fields.value))
        except ApiError:
            continue
        year = int(record_date[:4])
        if year not in latest or record_date > latest[year][0]:
            latest[year] = (record_date, debt)

    years = sorted(latest)
    if not years:
        return []

    debts = np.array([latest[y][1] for y in years], dtype=np.float64)
    increases = np.diff(debts)
    with np.errstate(divide="ignore", invalid="ignore"):
        percentages = np.where(debts[:-1] != 0, increases / debts[:-1] * 100.0, np.nan)

    points = [YearPoint(years[0], float(debts[0]), latest[years[0]][0])]
    for i, year in enumerate(years[1:]):
        pct = float(percentages[i])
        points.append(YearPoint(
            year=year,
            debt=float(debts[i + 1]),
            record_date=latest[year][0],
            annual_increase=float(increases[i]),
            percentage_increase=None if np.isnan(pct) else round(pct, 2),
        ))
    return points


async def crawl_historical_debt(client: FetchClient, start_year: int = 2005) -> HistoricalSeries:
    """Fetch every Debt to the Penny record since `start_year` (paginated)."""
    records: list[dict] = []
    page = 1
    total_pages = 1
    while page <= total_pages and page <= MAX_PAGES:
        body = await client.fetch("debt", {
            "fields": f"record_date,{DEBT_FIELDS.value[0]}",
            "filter": f"record_date:gte:{start_year}-01-01",
            "sort": "-record_date",
            "page[size]": PAGE_SIZE,
            "page[number]": page,
            "format": "json",
        })
        records.extend(extract_fiscal_records(body))
        meta = body.get("meta") or {}
        total_pages = int(meta.get("total-pages") or 1)
        logger.info("Fetched history page %d/%d (%d records so far)", page, total_pages, len(records))
        page += 1

    points = bucket_by_year(records)
    if not points:
        raise InsufficientDataError(f"No debt records since {start_year}")

    return HistoricalSeries(
        last_updated=datetime.now(timezone.utc).isoformat(),
        data_source=DATA_SOURCE,
        points=points,
    )


def series_to_dict(series: HistoricalSeries) -> dict[str, Any]:
    return {
        "last_updated": series.last_updated,
        "data_source": series.data_source,
        "records_count": len(series.points),
        "data": [p._asdict() for p in series.points],
    }


def save_series(path: str | Path, series: HistoricalSeries) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(orjson.dumps(series_to_dict(series), option=orjson.OPT_INDENT_2))
    logger.info("Saved %d years of history to %s", len(series.points), path)
    return path


def load_series(path: str | Path) -> HistoricalSeries | None:
    """Load a saved series; None when the file is missing or unreadable."""
    path = Path(path)
    if not path.exists():
        logger.info("No history file at %s", path)
        return None
    try:
        raw = orjson.loads(path.read_bytes())
        points = [
            YearPoint(
                year=int(item["year"]),
                debt=float(item["debt"]),
                record_date=str(item.get("record_date", "")),
                annual_increase=item.get("annual_increase"),
                percentage_increase=item.get("percentage_increase"),
            )
            for item in raw["data"]
        ]
    except (OSError, orjson.JSONDecodeError, KeyError, TypeError, ValueError) as exc:
        logger.warning("Ignoring unreadable history file %s: %s", path, exc)
        return None
    return HistoricalSeries(
        last_updated=str(raw.get("last_updated", "")),
        data_source=str(raw.get("data_source", "")),
        points=sorted(points, key=lambda p: p.year),
    )


def data_age(series: HistoricalSeries, now: datetime | None = None) -> DataAge | None:
    try:
        updated = datetime.fromisoformat(series.last_updated)
    except ValueError:
        return None
    if updated.tzinfo is None:
        updated = updated.replace(tzinfo=timezone.utc)
    now = now or datetime.now(timezone.utc)
    hours = (now - updated).total_seconds() / 3600.0
    return DataAge(round(hours, 1), hours > STALE_AFTER_HOURS, series.last_updated)


def chart_points(
    series: HistoricalSeries | None,
    live_debt: float | None = None,
    now: datetime | None = None,
) -> list[tuple[int, float]]:
    """
    (year, debt) pairs for the chart; the live debt value replaces or extends
    the current year.
    """
    points = [(p.year, p.debt) for p in series.points] if series else []
    if live_debt is None:
        return points
    year = (now or datetime.now(timezone.utc)).year
    if points and points[-1][0] == year:
        points[-1] = (year, live_debt)
    elif not points or points[-1][0] < year:
        points.append((year, live_debt))
    return points
