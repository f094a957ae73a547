"""
Default dashboard metrics.

Leaves fetch from the Treasury Fiscal Data API or the World Bank API and
normalize to snapshots; derived metrics combine leaf snapshots.

Registration order is display order, and is kept among peers when resolving.
"""

from __future__ import annotations

from datetime import date
from typing import TYPE_CHECKING, Any, Callable, Mapping, Sequence

from .datafeed.endpoints import extract_fiscal_records, extract_world_bank_records, world_bank_key
from .engine import combinators
from .engine.normalizer import FieldSpec, first_match, normalize_annual_growth, normalize_discrete
from .errors import ApiError
from .formatting import format_number, format_percent, format_rate, format_usd
from .types import MetricDefinition, MetricKind, MetricSnapshot, Renderer, Snapshots

if TYPE_CHECKING:
    from .datafeed.fetch_client import FetchClient

WORLD_BANK_PER_PAGE = 8

POPULATION_INDICATOR = "SP.POP.TOTL"
GDP_INDICATOR = "NY.GDP.MKTP.CD"

DTS_CLOSING_BALANCE = "Treasury General Account (TGA) Closing Balance"


def render_usd(value: float | None) -> str:
    return format_usd(value or 0, 0)


def render_count(value: float | None) -> str:
    return format_number(value or 0)


def render_percent(value: float | None) -> str:
    return format_percent(value or 0, 2)


def fiscal_year_of(day: date) -> int:
    """U.S. federal fiscal year: October through September."""
    return day.year + 1 if day.month >= 10 else day.year


def _record_day(record: Mapping[str, Any], date_fields: Sequence[str]) -> date:
    value = first_match(record, date_fields)
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        raise ApiError(f"Bad record date: {value!r}") from None


def same_fiscal_year(records: Sequence[Mapping[str, Any]], date_fields: Sequence[str]) -> list[Mapping[str, Any]]:
    """
    Keep the leading records that share the newest record's fiscal year.

    Fiscal-year-to-date totals reset every October; a rate across the reset
    would be a large negative jump.
    """
    if not records:
        return []
    newest = _record_day(records[0], date_fields)
    year = fiscal_year_of(newest)
    kept: list[Mapping[str, Any]] = []
    for record in records:
        day = _record_day(record, date_fields)
        if fiscal_year_of(day) != year:
            break
        kept.append(record)
    return kept


def fiscal_leaf(
    client: FetchClient,
    name: str,
    title: str,
    endpoint: str,
    fields: FieldSpec,
    *,
    record_filter: str | None = None,
    page_size: int = 2,
    fiscal_year_only: bool = False,
    badge: str = "LIVE",
    render: Renderer = render_usd,
) -> MetricDefinition:
    """Discrete-series leaf backed by a Fiscal Data endpoint."""
    params: dict[str, Any] = {
        # Only the primary alias is requested; the API rejects unknown fields
        "fields": ",".join((fields.date[0], fields.value[0])),
        "sort": "-" + fields.date[0],
        "page[size]": page_size,
        "format": "json",
    }
    if record_filter:
        params["filter"] = record_filter

    async def resolve(_deps: Snapshots) -> MetricSnapshot:
        body = await client.fetch(endpoint, params)
        records = extract_fiscal_records(body)
        if fiscal_year_only:
            records = same_fiscal_year(records, fields.date)
        snapshot = normalize_discrete(records, fields)
        return snapshot._replace(label=f"{snapshot.label} • {format_rate(snapshot.rate_per_second)}")

    return MetricDefinition(name, MetricKind.LEAF, (), resolve, render, title, badge)


def world_bank_leaf(
    client: FetchClient,
    name: str,
    title: str,
    indicator: str,
    *,
    badge: str = "EST.",
    render: Renderer = render_usd,
) -> MetricDefinition:
    """Annual-growth leaf backed by a World Bank indicator."""
    endpoint = world_bank_key(indicator)
    params = {"format": "json", "per_page": WORLD_BANK_PER_PAGE}

    async def resolve(_deps: Snapshots) -> MetricSnapshot:
        body = await client.fetch(endpoint, params)
        return normalize_annual_growth(extract_world_bank_records(body))

    return MetricDefinition(name, MetricKind.LEAF, (), resolve, render, title, badge)


def derived(
    name: str,
    title: str,
    dependencies: tuple[str, str],
    combine: Callable[..., MetricSnapshot],
    label: str,
    *,
    badge: str = "DERIVED",
    render: Renderer = render_usd,
) -> MetricDefinition:
    """Derived metric from a two-argument combinator."""
    first, second = dependencies

    def resolve(deps: Snapshots) -> MetricSnapshot:
        return combine(deps[first], deps[second], label)

    return MetricDefinition(name, MetricKind.DERIVED, dependencies, resolve, render, title, badge)


def build_catalog(client: FetchClient) -> list[MetricDefinition]:
    """The ten dashboard tiles."""
    return [
        fiscal_leaf(
            client, "debt", "US National Debt", "debt",
            FieldSpec(value=("tot_pub_debt_out_amt", "debt_outstanding_amt")),
        ),
        fiscal_leaf(
            client, "receipts", "Federal Receipts (FYTD)", "mts",
            FieldSpec(value=("current_fytd_rcpt_amt", "current_fytd_gross_rcpt_amt", "fytd_gross_rcpt_amt")),
            record_filter="classification_desc:eq:Year-to-Date",
            page_size=2,
            fiscal_year_only=True,
        ),
        fiscal_leaf(
            client, "outlays", "Federal Outlays (FYTD)", "mts",
            FieldSpec(value=("current_fytd_net_outly_amt", "current_fytd_gross_outly_amt", "fytd_gross_outly_amt")),
            record_filter="classification_desc:eq:Year-to-Date",
            page_size=2,
            fiscal_year_only=True,
        ),
        derived(
            "deficit", "Deficit (FYTD)", ("outlays", "receipts"),
            combinators.subtract, "Outlays − Receipts", badge="LIVE",
        ),
        fiscal_leaf(
            client, "cash", "Operating Cash Balance", "dts",
            # Post-2022 DTS reports the closing balance in open_today_bal
            FieldSpec(value=("open_today_bal", "close_today_bal", "open_mkt_opr_cash_bal_amt")),
            record_filter=f"account_type:eq:{DTS_CLOSING_BALANCE}",
            badge="DAILY",
        ),
        world_bank_leaf(client, "pop", "US Population (est.)", POPULATION_INDICATOR, render=render_count),
        world_bank_leaf(client, "gdp", "US GDP (nominal, est.)", GDP_INDICATOR),
        derived("debt_per", "Debt per Citizen", ("debt", "pop"), combinators.ratio, "Debt ÷ Population"),
        derived(
            "rcpt_per", "Receipts per Citizen (FYTD)", ("receipts", "pop"),
            combinators.ratio, "Receipts ÷ Population",
        ),
        derived(
            "debt_gdp", "Debt-to-GDP Ratio", ("debt", "gdp"),
            combinators.quotient, "Debt ÷ GDP (nominal)", render=render_percent,
        ),
    ]
