"""Tests for export rendering."""

from decimal import Decimal

import pytest

from ifta_core import compute_quarterly_summary
from ifta_core.config import PresentationConfig
from ifta_core.report import TOTAL_ROW_LABEL, round_decimal, summary_to_rows


class TestRoundDecimal:
    @pytest.mark.parametrize(
        "value,places,expected",
        [
            (Decimal("2.345"), 2, Decimal("2.35")),
            (Decimal("2.5"), 0, Decimal("3")),
            (Decimal("-2.5"), 0, Decimal("-3")),
            (Decimal("62.5"), 3, Decimal("62.500")),
            (Decimal("800") / Decimal("65"), 2, Decimal("12.31")),
        ],
    )
    def test_half_up(self, value, places, expected):
        rounded = round_decimal(value, places)
        assert rounded == expected
        assert str(rounded) == str(expected)

    def test_none(self):
        assert round_decimal(None, 2) is None


class TestSummaryToRows:
    """Test suite for summary_to_rows."""

    def test_worked_scenario(self, worked_trips, worked_fuel, config):
        summary = compute_quarterly_summary(worked_trips, worked_fuel, "2025-Q1", config=config)
        rows = summary_to_rows(summary, PresentationConfig())

        assert [r["jurisdiction"] for r in rows] == ["OK", "TX", TOTAL_ROW_LABEL]

        ok = rows[0]
        assert ok["quarter"] == "2025-Q1"
        assert str(ok["miles"]) == "300"
        assert str(ok["gallons"]) == "40.000"
        assert str(ok["taxable_gallons"]) == "37.500"
        assert str(ok["net_taxable_gallons"]) == "-2.500"
        assert str(ok["mpg"]) == "8.00"
        assert str(ok["fuel_cost"]) == "136.00"

        total = rows[-1]
        assert str(total["miles"]) == "800"
        assert str(total["gallons"]) == "100.000"
        assert str(total["net_taxable_gallons"]) == "0.000"
        assert total["low_confidence"] is False

    def test_summary_keeps_full_precision(self, worked_trips, short_fuel, config):
        summary = compute_quarterly_summary(worked_trips, short_fuel, "2025-Q1", config=config)
        rows = summary_to_rows(summary, PresentationConfig(mpg_places=1))

        assert str(rows[0]["mpg"]) == "12.3"
        assert summary.fleet_mpg == Decimal("800") / Decimal("65")

    def test_undeterminable_values_stay_none(self, worked_trips, config):
        summary = compute_quarterly_summary(worked_trips, [], "2025-Q1", config=config)
        rows = summary_to_rows(summary, PresentationConfig())

        assert all(r["taxable_gallons"] is None for r in rows)
        assert all(r["mpg"] is None for r in rows)
        assert rows[-1]["low_confidence"] is True
