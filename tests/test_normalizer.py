"""Tests for record validation and normalization."""

from datetime import date
from decimal import Decimal

import pytest

from ifta_core.config import NormalizationConfig
from ifta_core.exceptions import RecordRejected
from ifta_core.jurisdictions import UNKNOWN_JURISDICTION
from ifta_core.models import (
    FuelRecord,
    FuelType,
    RecordType,
    RejectionReason,
    TripRecord,
    TripSegment,
    TripSource,
)
from ifta_core.normalizer import RecordNormalizer, coerce_decimal, parse_date
from ifta_core.quarters import Quarter


@pytest.fixture
def normalizer() -> RecordNormalizer:
    return RecordNormalizer(NormalizationConfig())


def _trip(**overrides) -> dict:
    row = {
        "id": "t1",
        "vehicle_id": "V1",
        "quarter": "2025-Q1",
        "segments": [
            {"jurisdiction": "TX", "miles": "320"},
            {"jurisdiction": "OK", "miles": "180"},
        ],
    }
    row.update(overrides)
    return row


def _fuel(**overrides) -> dict:
    row = {
        "id": "f1",
        "vehicle_id": "V1",
        "quarter": "2025-Q1",
        "jurisdiction": "TX",
        "gallons": "60",
        "fuel_type": "diesel",
        "cost": "215.40",
    }
    row.update(overrides)
    return row


class TestCoerceDecimal:
    """Tests for numeric field coercion."""

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("500", Decimal("500")),
            (500, Decimal("500")),
            (12.5, Decimal("12.5")),
            (Decimal("0.1"), Decimal("0.1")),
            ("$1,234.50", Decimal("1234.50")),
            (" 7 ", Decimal("7")),
        ],
    )
    def test_accepts_numbers(self, value, expected):
        assert coerce_decimal(value, "miles") == expected

    @pytest.mark.parametrize(
        "value,reason",
        [
            (None, RejectionReason.MISSING_FIELD),
            ("", RejectionReason.MISSING_FIELD),
            ("abc", RejectionReason.NON_NUMERIC),
            ("NaN", RejectionReason.NON_NUMERIC),
            (float("inf"), RejectionReason.NON_NUMERIC),
            (True, RejectionReason.NON_NUMERIC),
            ([1], RejectionReason.NON_NUMERIC),
            ("-5", RejectionReason.NEGATIVE_VALUE),
        ],
    )
    def test_rejects(self, value, reason):
        with pytest.raises(RecordRejected) as exc_info:
            coerce_decimal(value, "miles")
        assert exc_info.value.reason == reason.value
        assert exc_info.value.field == "miles"


class TestParseDate:
    """Tests for date parsing."""

    @pytest.mark.parametrize(
        "value",
        ["2025-02-10", "02/10/2025", "2025/02/10", "2025-02-10T14:30:00Z", date(2025, 2, 10)],
    )
    def test_formats(self, value):
        assert parse_date(value) == date(2025, 2, 10)

    def test_blank_is_none(self):
        assert parse_date(None) is None
        assert parse_date("  ") is None

    def test_invalid(self):
        with pytest.raises(RecordRejected) as exc_info:
            parse_date("next tuesday")
        assert exc_info.value.reason == RejectionReason.INVALID_DATE.value


class TestTripNormalization:
    """Tests for trip rows."""

    def test_segmented_trip(self, normalizer: RecordNormalizer):
        result = normalizer.normalize([_trip()], [])

        assert not result.has_rejections
        trip = result.trips[0]
        assert isinstance(trip, TripRecord)
        assert trip.total_miles == Decimal("500")
        assert trip.jurisdictions == ["TX", "OK"]
        assert trip.quarter == Quarter.parse("2025-Q1")
        assert trip.source == TripSource.MANUAL

    def test_stated_total_within_tolerance(self, normalizer: RecordNormalizer):
        result = normalizer.normalize([_trip(total_miles="500.005")], [])

        assert not result.has_rejections
        # Canonical total is the exact segment sum
        assert result.trips[0].total_miles == Decimal("500")

    def test_stated_total_mismatch_rejected(self, normalizer: RecordNormalizer):
        result = normalizer.normalize([_trip(total_miles="650")], [])

        assert result.trips == ()
        assert result.rejected[0].reason == RejectionReason.SEGMENT_TOTAL_MISMATCH
        assert result.rejected[0].field == "total_miles"

    def test_legacy_pair_attributed_to_end(self, normalizer: RecordNormalizer):
        row = _trip(segments=None, start_jurisdiction="TX", end_jurisdiction="OK", total_miles=420)
        result = normalizer.normalize([row], [])

        trip = result.trips[0]
        assert trip.segments == (TripSegment(jurisdiction="OK", miles=Decimal("420")),)
        assert trip.total_miles == Decimal("420")
        assert [w.code for w in result.warnings] == ["legacy_end_attribution"]

    def test_legacy_same_jurisdiction_no_warning(self, normalizer: RecordNormalizer):
        row = _trip(segments=None, start_jurisdiction="TX", end_jurisdiction="TX", total_miles=100)
        result = normalizer.normalize([row], [])

        assert result.trips[0].segments[0].jurisdiction == "TX"
        assert result.warnings == ()

    def test_legacy_camel_case_aliases(self, normalizer: RecordNormalizer):
        row = {
            "id": "t9",
            "vehicleId": "V2",
            "startJurisdiction": "TX",
            "endJurisdiction": "TX",
            "totalMiles": "75",
            "startDate": "2025-03-02",
        }
        result = normalizer.normalize([row], [])

        trip = result.trips[0]
        assert trip.vehicle_id == "V2"
        assert trip.date == date(2025, 3, 2)
        assert trip.quarter == Quarter.parse("2025-Q1")

    def test_no_segments_no_total_rejected(self, normalizer: RecordNormalizer):
        result = normalizer.normalize([_trip(segments=[])], [])
        assert result.rejected[0].reason == RejectionReason.MISSING_SEGMENTS

    def test_negative_segment_rejected(self, normalizer: RecordNormalizer):
        row = _trip(segments=[{"jurisdiction": "TX", "miles": "-10"}])
        result = normalizer.normalize([row], [])

        rejected = result.rejected[0]
        assert rejected.reason == RejectionReason.NEGATIVE_VALUE
        assert rejected.field == "segments[0].miles"
        assert rejected.record_id == "t1"
        assert rejected.record_type == RecordType.TRIP

    def test_unknown_jurisdiction_kept_with_warning(self, normalizer: RecordNormalizer):
        row = _trip(segments=[
            {"jurisdiction": "ZZ", "miles": "100"},
            {"jurisdiction": "", "miles": "50"},
        ])
        result = normalizer.normalize([row], [])

        trip = result.trips[0]
        assert [s.jurisdiction for s in trip.segments] == [UNKNOWN_JURISDICTION] * 2
        assert trip.total_miles == Decimal("150")
        # One warning per record
        assert [w.code for w in result.warnings] == ["unknown_jurisdiction"]

    def test_state_alias_and_lowercase(self, normalizer: RecordNormalizer):
        row = _trip(segments=[{"state": "nm", "miles": 10}])
        result = normalizer.normalize([row], [])
        assert result.trips[0].segments[0].jurisdiction == "NM"

    def test_quarter_derived_from_date(self, normalizer: RecordNormalizer):
        row = _trip(quarter=None, date="2025-05-20")
        result = normalizer.normalize([row], [])
        assert result.trips[0].quarter == Quarter.parse("2025-Q2")

    def test_missing_quarter_and_date_rejected(self, normalizer: RecordNormalizer):
        result = normalizer.normalize([_trip(quarter=None)], [])
        assert result.rejected[0].reason == RejectionReason.MISSING_FIELD
        assert result.rejected[0].field == "quarter"

    def test_invalid_quarter_rejected(self, normalizer: RecordNormalizer):
        result = normalizer.normalize([_trip(quarter="2025-Q5")], [])
        assert result.rejected[0].reason == RejectionReason.INVALID_QUARTER

    def test_date_outside_quarter_rejected(self, normalizer: RecordNormalizer):
        result = normalizer.normalize([_trip(date="2025-05-01")], [])
        assert result.rejected[0].reason == RejectionReason.DATE_OUTSIDE_QUARTER

    def test_invalid_date_rejected(self, normalizer: RecordNormalizer):
        result = normalizer.normalize([_trip(date="yesterday")], [])
        assert result.rejected[0].reason == RejectionReason.INVALID_DATE

    def test_other_quarter_rejected_when_reporting(self, normalizer: RecordNormalizer):
        result = normalizer.normalize([_trip(quarter="2025-Q2")], [], quarter="2025-Q1")
        assert result.rejected[0].reason == RejectionReason.QUARTER_MISMATCH

    def test_other_quarter_kept_when_configured(self):
        normalizer = RecordNormalizer(NormalizationConfig(reject_other_quarters=False))
        result = normalizer.normalize([_trip(quarter="2025-Q2")], [], quarter="2025-Q1")
        assert len(result.trips) == 1

    def test_missing_id_rejected(self, normalizer: RecordNormalizer):
        result = normalizer.normalize([_trip(id="  ")], [])
        assert result.rejected[0].reason == RejectionReason.MISSING_FIELD
        assert result.rejected[0].field == "id"

    def test_non_mapping_rejected(self, normalizer: RecordNormalizer):
        result = normalizer.normalize(["not a trip"], [])
        assert result.rejected[0].reason == RejectionReason.MALFORMED_RECORD

    def test_malformed_segments_rejected(self, normalizer: RecordNormalizer):
        result = normalizer.normalize([_trip(segments="TX:500")], [])
        assert result.rejected[0].reason == RejectionReason.MALFORMED_RECORD

    def test_source_parsed(self, normalizer: RecordNormalizer):
        result = normalizer.normalize([_trip(source="ELD"), _trip(id="t2", source="fax")], [])
        assert [t.source for t in result.trips] == [TripSource.ELD, TripSource.MANUAL]

    def test_trip_record_instance_passes_through(self, normalizer: RecordNormalizer):
        record = TripRecord(
            id="t5",
            quarter="2025-Q1",
            segments=(TripSegment(jurisdiction="TX", miles=Decimal("100.004")),),
            total_miles=Decimal("100"),
        )
        result = normalizer.normalize([record], [], quarter="2025-Q1")

        assert result.trips[0].id == "t5"
        assert result.trips[0].total_miles == Decimal("100.004")

    def test_trip_record_instance_other_quarter(self, normalizer: RecordNormalizer):
        record = TripRecord(
            id="t6",
            quarter="2024-Q4",
            segments=(TripSegment(jurisdiction="TX", miles=Decimal("10")),),
            total_miles=Decimal("10"),
        )
        result = normalizer.normalize([record], [], quarter="2025-Q1")
        assert result.rejected[0].record_id == "t6"
        assert result.rejected[0].reason == RejectionReason.QUARTER_MISMATCH

    def test_trip_record_instance_date_outside_quarter(self, normalizer: RecordNormalizer):
        record = TripRecord(
            id="t7",
            quarter="2025-Q1",
            segments=(TripSegment(jurisdiction="TX", miles=Decimal("10")),),
            total_miles=Decimal("10"),
            date=date(2025, 8, 1),
        )
        result = normalizer.normalize([record], [], quarter="2025-Q1")

        assert result.trips == ()
        assert result.rejected[0].record_id == "t7"
        assert result.rejected[0].reason == RejectionReason.DATE_OUTSIDE_QUARTER

    def test_trip_segment_codes_normalized(self, normalizer: RecordNormalizer):
        record = TripRecord(
            id="t8",
            quarter="2025-Q1",
            segments=(
                TripSegment(jurisdiction="tx", miles=Decimal("10")),
                TripSegment(jurisdiction=" ", miles=Decimal("5")),
            ),
            total_miles=Decimal("15"),
        )
        result = normalizer.normalize([record], [])

        assert result.trips[0].jurisdictions == ["TX", UNKNOWN_JURISDICTION]
        assert [w.code for w in result.warnings] == ["unknown_jurisdiction"]
        assert result.warnings[0].record_id == "t8"

    def test_bad_row_does_not_stop_others(self, normalizer: RecordNormalizer):
        rows = [_trip(id="a"), _trip(id="b", segments=[{"jurisdiction": "TX", "miles": "x"}]), _trip(id="c")]
        result = normalizer.normalize(rows, [])

        assert [t.id for t in result.trips] == ["a", "c"]
        assert result.rejected[0].index == 1
        assert result.rejected[0].record_id == "b"


class TestFuelNormalization:
    """Tests for fuel purchase rows."""

    def test_valid_purchase(self, normalizer: RecordNormalizer):
        result = normalizer.normalize([], [_fuel()])

        purchase = result.fuel[0]
        assert isinstance(purchase, FuelRecord)
        assert purchase.gallons == Decimal("60")
        assert purchase.cost == Decimal("215.40")
        assert purchase.fuel_type == FuelType.DIESEL

    def test_aliases(self, normalizer: RecordNormalizer):
        row = {
            "id": 7,
            "vehicle": "V3",
            "state": "texas",
            "gallons": 12,
            "fuelType": "Gasoline",
            "totalAmount": "$40.00",
            "date": "01/20/2025",
        }
        result = normalizer.normalize([], [row])

        purchase = result.fuel[0]
        assert purchase.id == "7"
        assert purchase.vehicle_id == "V3"
        assert purchase.jurisdiction == "TX"
        assert purchase.fuel_type == FuelType.GASOLINE
        assert purchase.cost == Decimal("40.00")
        assert purchase.quarter == Quarter.parse("2025-Q1")

    def test_missing_cost_is_zero(self, normalizer: RecordNormalizer):
        result = normalizer.normalize([], [_fuel(cost=None)])
        assert result.fuel[0].cost == Decimal("0")

    def test_missing_fuel_type_defaults_to_diesel(self, normalizer: RecordNormalizer):
        result = normalizer.normalize([], [_fuel(fuel_type=None)])

        assert result.fuel[0].fuel_type == FuelType.DIESEL
        assert [w.code for w in result.warnings] == ["fuel_type_defaulted"]

    @pytest.mark.parametrize("fuel_type", ["propane", "def", "kerosene"])
    def test_ineligible_fuel_type_rejected(self, normalizer: RecordNormalizer, fuel_type):
        result = normalizer.normalize([], [_fuel(fuel_type=fuel_type)])

        assert result.fuel == ()
        assert result.rejected[0].reason == RejectionReason.INELIGIBLE_FUEL_TYPE
        assert result.rejected[0].record_type == RecordType.FUEL

    def test_eligible_fuel_types_configurable(self):
        normalizer = RecordNormalizer(NormalizationConfig(eligible_fuel_types=["diesel", "propane"]))
        result = normalizer.normalize([], [_fuel(fuel_type="propane")])
        assert result.fuel[0].fuel_type == FuelType.PROPANE

    @pytest.mark.parametrize(
        "gallons,reason",
        [
            (None, RejectionReason.MISSING_FIELD),
            ("lots", RejectionReason.NON_NUMERIC),
            ("-3", RejectionReason.NEGATIVE_VALUE),
        ],
    )
    def test_bad_gallons_rejected(self, normalizer: RecordNormalizer, gallons, reason):
        result = normalizer.normalize([], [_fuel(gallons=gallons)])
        assert result.rejected[0].reason == reason
        assert result.rejected[0].field == "gallons"

    def test_negative_cost_rejected(self, normalizer: RecordNormalizer):
        result = normalizer.normalize([], [_fuel(cost="-1")])
        assert result.rejected[0].reason == RejectionReason.NEGATIVE_VALUE

    def test_unknown_jurisdiction_kept(self, normalizer: RecordNormalizer):
        result = normalizer.normalize([], [_fuel(jurisdiction=None)])

        assert result.fuel[0].jurisdiction == UNKNOWN_JURISDICTION
        assert result.warnings[0].code == "unknown_jurisdiction"
        assert result.warnings[0].record_type == RecordType.FUEL

    def test_fuel_record_instance_code_normalized(self, normalizer: RecordNormalizer):
        record = FuelRecord(id="f7", quarter="2025-Q1", jurisdiction="texas", gallons=Decimal("60"))
        result = normalizer.normalize([], [record], quarter="2025-Q1")

        assert result.fuel[0].jurisdiction == "TX"
        assert result.warnings == ()

    def test_fuel_record_instance_blank_code_warned(self, normalizer: RecordNormalizer):
        record = FuelRecord(id="f8", quarter="2025-Q1", jurisdiction="", gallons=Decimal("6"))
        result = normalizer.normalize([], [record])

        assert result.fuel[0].jurisdiction == UNKNOWN_JURISDICTION
        assert result.warnings[0].code == "unknown_jurisdiction"

    def test_fuel_record_instance_date_outside_quarter(self, normalizer: RecordNormalizer):
        record = FuelRecord(
            id="f9",
            quarter="2025-Q1",
            jurisdiction="TX",
            gallons=Decimal("6"),
            date=date(2025, 4, 2),
        )
        result = normalizer.normalize([], [record])

        assert result.fuel == ()
        assert result.rejected[0].reason == RejectionReason.DATE_OUTSIDE_QUARTER
