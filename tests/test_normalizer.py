# tests/test_normalizer.py
"""Tests for the discrete-series and annual-growth normalizers."""

import math
from datetime import datetime, timezone

import pytest

from fiscal_clock.engine.normalizer import (
    SECONDS_PER_YEAR,
    FieldSpec,
    first_match,
    normalize_annual_growth,
    normalize_discrete,
    parse_record_date,
    parse_year_start,
    to_number,
)
from fiscal_clock.errors import ApiError, InsufficientDataError

DEBT = FieldSpec(value=("value",), date=("date",))


class TestFieldHelpers:
    def test_first_alias_present_wins(self) -> None:
        record = {"close_today_bal": "2", "open_today_bal": "1"}
        assert first_match(record, ("open_today_bal", "close_today_bal")) == "1"

    def test_later_alias_used_when_first_missing(self) -> None:
        assert first_match({"b": 5}, ("a", "b")) == 5

    def test_no_alias_raises_api_error(self) -> None:
        with pytest.raises(ApiError):
            first_match({"x": 1}, ("a", "b"))

    def test_to_number_accepts_strings_with_commas(self) -> None:
        assert to_number("1,234.50") == 1234.5
        assert to_number(7) == 7.0

    @pytest.mark.parametrize("bad", [None, "null", "abc", True, "nan"])
    def test_to_number_rejects_non_numbers(self, bad: object) -> None:
        with pytest.raises(ApiError):
            to_number(bad)

    def test_record_date_is_end_of_day_utc(self) -> None:
        expected = datetime(2025, 9, 24, 23, 59, 59, tzinfo=timezone.utc).timestamp()
        assert parse_record_date("2025-09-24") == expected

    def test_year_start_is_january_first_utc(self) -> None:
        expected = datetime(2024, 1, 1, tzinfo=timezone.utc).timestamp()
        assert parse_year_start("2024") == expected


class TestDiscreteNormalizer:
    def test_two_records(self) -> None:
        records = [
            {"date": "2025-09-24", "value": 37454537246248.71},
            {"date": "2025-08-24", "value": 37400000000000},
        ]

        snapshot = normalize_discrete(records, DEBT)

        seconds = parse_record_date("2025-09-24") - parse_record_date("2025-08-24")
        assert snapshot.base_value == 37454537246248.71
        assert snapshot.base_timestamp == parse_record_date("2025-09-24")
        assert snapshot.rate_per_second == pytest.approx((37454537246248.71 - 37400000000000) / seconds)
        assert snapshot.label == "As of 2025-09-24"

    def test_one_record_has_zero_rate(self) -> None:
        snapshot = normalize_discrete([{"date": "2025-09-24", "value": "123"}], DEBT)

        assert snapshot.base_value == 123.0
        assert snapshot.rate_per_second == 0

    def test_zero_records_raise(self) -> None:
        with pytest.raises(InsufficientDataError):
            normalize_discrete([], DEBT)

    def test_same_day_records_do_not_divide_by_zero(self) -> None:
        records = [{"date": "2025-09-24", "value": 10}, {"date": "2025-09-24", "value": 4}]

        snapshot = normalize_discrete(records, DEBT)

        assert snapshot.rate_per_second == 6.0

    def test_negative_rate_is_kept(self) -> None:
        records = [{"date": "2025-09-25", "value": 0}, {"date": "2025-09-24", "value": 86400}]

        snapshot = normalize_discrete(records, DEBT)

        assert snapshot.rate_per_second == pytest.approx(-1.0)

    def test_missing_value_field_is_api_error(self) -> None:
        with pytest.raises(ApiError):
            normalize_discrete([{"date": "2025-09-24", "amount": 1}], DEBT)


class TestAnnualGrowthNormalizer:
    def test_continuous_compounding_rate(self) -> None:
        records = [{"date": "2025", "value": 341000000}, {"date": "2024", "value": 335000000}]

        snapshot = normalize_annual_growth(records)

        growth = (341000000 - 335000000) / 335000000
        expected = math.log(1 + growth) / (365 * 24 * 3600) * 341000000
        assert snapshot.rate_per_second == pytest.approx(expected)
        assert snapshot.rate_per_second > 0
        assert math.isfinite(snapshot.rate_per_second)
        assert snapshot.base_value == 341000000
        assert snapshot.base_timestamp == parse_year_start("2025")
        assert snapshot.label == "WB year 2025"

    def test_shrinking_series_has_negative_rate(self) -> None:
        records = [{"date": "2025", "value": 90}, {"date": "2024", "value": 100}]

        snapshot = normalize_annual_growth(records)

        assert snapshot.rate_per_second == pytest.approx(math.log(0.9) / SECONDS_PER_YEAR * 90)

    def test_single_record_raises(self) -> None:
        with pytest.raises(InsufficientDataError):
            normalize_annual_growth([{"date": "2025", "value": 1}])

    def test_zero_previous_value_raises(self) -> None:
        with pytest.raises(InsufficientDataError):
            normalize_annual_growth([{"date": "2025", "value": 1}, {"date": "2024", "value": 0}])

    def test_total_collapse_is_rejected(self) -> None:
        with pytest.raises(ApiError):
            normalize_annual_growth([{"date": "2025", "value": 0}, {"date": "2024", "value": 10}])
