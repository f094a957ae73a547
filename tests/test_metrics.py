# tests/test_metrics.py
"""Tests for the metric catalog against canned API bodies."""

from datetime import date

import pytest

from conftest import CannedClient, RecordingSink
from fiscal_clock.datafeed.endpoints import world_bank_key
from fiscal_clock.engine.normalizer import parse_record_date
from fiscal_clock.engine.registry import MetricRegistry
from fiscal_clock.engine.resolver import Resolver
from fiscal_clock.metrics import (
    GDP_INDICATOR,
    POPULATION_INDICATOR,
    build_catalog,
    fiscal_year_of,
    render_percent,
    render_usd,
    same_fiscal_year,
)

DEBT_BODY = {"data": [
    {"record_date": "2025-09-24", "tot_pub_debt_out_amt": "37454537246248.71"},
    {"record_date": "2025-09-23", "tot_pub_debt_out_amt": "37450000000000.00"},
]}
MTS_BODY = {"data": [
    {"record_date": "2025-08-31", "current_fytd_rcpt_amt": "4900000000000",
     "current_fytd_net_outly_amt": "6800000000000"},
    {"record_date": "2025-07-31", "current_fytd_rcpt_amt": "4500000000000",
     "current_fytd_net_outly_amt": "6200000000000"},
]}
DTS_BODY = {"data": [
    {"record_date": "2025-09-24", "open_today_bal": "800000"},
    {"record_date": "2025-09-23", "open_today_bal": "810000"},
]}
POP_BODY = [{"page": 1}, [
    {"date": "2025", "value": None},
    {"date": "2024", "value": 340_000_000},
    {"date": "2023", "value": 335_000_000},
]]
GDP_BODY = [{"page": 1}, [
    {"date": "2024", "value": 29_000_000_000_000},
    {"date": "2023", "value": 27_700_000_000_000},
]]


def canned() -> CannedClient:
    return CannedClient({
        "debt": DEBT_BODY,
        "mts": MTS_BODY,
        "dts": DTS_BODY,
        world_bank_key(POPULATION_INDICATOR): POP_BODY,
        world_bank_key(GDP_INDICATOR): GDP_BODY,
    })


class TestFiscalYear:
    @pytest.mark.parametrize(("day", "year"), [
        (date(2025, 9, 30), 2025),
        (date(2025, 10, 1), 2026),
        (date(2025, 1, 15), 2025),
    ])
    def test_fiscal_year_starts_in_october(self, day: date, year: int) -> None:
        assert fiscal_year_of(day) == year

    def test_records_across_october_reset_are_dropped(self) -> None:
        records = [
            {"record_date": "2025-10-31", "v": 1},
            {"record_date": "2025-09-30", "v": 9},
        ]

        assert same_fiscal_year(records, ("record_date",)) == records[:1]

    def test_same_year_records_kept(self) -> None:
        records = [{"record_date": "2025-08-31"}, {"record_date": "2025-07-31"}]

        assert same_fiscal_year(records, ("record_date",)) == records


class TestRenderers:
    def test_usd_and_percent(self) -> None:
        assert render_usd(37454537246248.71) == "$37,454,537,246,249"
        assert render_usd(-5) == "-$5"
        assert render_percent(1.2345) == "123.45%"


class TestCatalog:
    def test_ten_tiles_with_valid_graph(self) -> None:
        registry = MetricRegistry()
        registry.register_all(build_catalog(canned()))

        assert registry.names == [
            "debt", "receipts", "outlays", "deficit", "cash",
            "pop", "gdp", "debt_per", "rcpt_per", "debt_gdp",
        ]
        assert set(registry.leaves()) == {"debt", "receipts", "outlays", "cash", "pop", "gdp"}

    async def test_full_resolution(self) -> None:
        client = canned()
        registry = MetricRegistry()
        registry.register_all(build_catalog(client))
        resolver = Resolver(registry, RecordingSink())

        report = await resolver.resolve_all()

        assert report.ok
        assert report.skipped == []
        debt = resolver.get_snapshot("debt")
        assert debt.base_value == 37454537246248.71
        assert debt.base_timestamp == parse_record_date("2025-09-24")
        assert debt.label.startswith("As of 2025-09-24 • $")

        deficit = resolver.get_snapshot("deficit")
        assert deficit.base_value == 1_900_000_000_000

        pop = resolver.get_snapshot("pop")
        assert pop.base_value == 340_000_000
        assert pop.label == "WB year 2024"

        assert resolver.get_snapshot("debt_per").base_value == pytest.approx(37454537246248.71 / 340_000_000)
        assert resolver.get_snapshot("debt_gdp").base_value == pytest.approx(37454537246248.71 / 29e12)
        assert resolver.get_snapshot("cash").base_value == 800000

    async def test_request_parameters(self) -> None:
        client = canned()
        registry = MetricRegistry()
        registry.register_all(build_catalog(client))

        await Resolver(registry).resolve_all()

        calls = dict((key, params) for key, params in client.calls)
        assert calls["debt"]["fields"] == "record_date,tot_pub_debt_out_amt"
        assert calls["debt"]["sort"] == "-record_date"
        assert calls["debt"]["page[size]"] == 2
        assert calls["mts"]["filter"] == "classification_desc:eq:Year-to-Date"
        assert calls["dts"]["filter"].startswith("account_type:eq:")
        assert calls[world_bank_key(POPULATION_INDICATOR)]["format"] == "json"

    async def test_missing_world_bank_leaves_dependents_unresolved(self) -> None:
        client = canned()
        del client.bodies[world_bank_key(POPULATION_INDICATOR)]
        registry = MetricRegistry()
        registry.register_all(build_catalog(client))
        resolver = Resolver(registry)

        report = await resolver.resolve_all()

        assert "pop" in report.failed
        assert set(report.skipped) == {"debt_per", "rcpt_per"}
        assert resolver.get_snapshot("debt_per") is None
        assert resolver.get_snapshot("debt_gdp") is not None

    async def test_fiscal_year_reset_gives_flat_rate(self) -> None:
        client = canned()
        client.bodies["mts"] = {"data": [
            {"record_date": "2025-10-31", "current_fytd_rcpt_amt": "400",
             "current_fytd_net_outly_amt": "600"},
            {"record_date": "2025-09-30", "current_fytd_rcpt_amt": "5000",
             "current_fytd_net_outly_amt": "7000"},
        ]}
        registry = MetricRegistry()
        registry.register_all(build_catalog(client))
        resolver = Resolver(registry)

        await resolver.resolve_all()

        receipts = resolver.get_snapshot("receipts")
        assert receipts.base_value == 400
        assert receipts.rate_per_second == 0
