"""Validation and normalization of raw trip and fuel rows.

The normalizer turns persistence rows (mappings) into canonical TripRecord
and FuelRecord snapshots. A row that cannot be normalized is quarantined
into the ``rejected`` list with a reason code; it never aborts the
computation for the other rows.

Legacy trips that only carry a (start_jurisdiction, end_jurisdiction,
total_miles) triple are given a single segment attributed to the end
jurisdiction.
"""

from collections.abc import Mapping
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Optional, Sequence

import structlog
from pydantic import ValidationError as PydanticValidationError

from .config import NormalizationConfig
from .exceptions import RecordRejected, ValidationError
from .jurisdictions import UNKNOWN_JURISDICTION, normalize_jurisdiction
from .models import (
    DataQualityWarning,
    FuelInput,
    FuelRecord,
    FuelType,
    NormalizedRecords,
    RecordType,
    RejectedRecord,
    RejectionReason,
    TripInput,
    TripRecord,
    TripSegment,
    TripSource,
)
from .quarters import Quarter, QuarterLike, coerce_quarter

logger = structlog.get_logger()

DATE_FORMATS = ("%Y-%m-%d", "%m/%d/%Y", "%Y/%m/%d")


# =============================================================================
# FIELD COERCION
# =============================================================================


def coerce_decimal(value: Any, field: str) -> Decimal:
    """Coerce a numeric input to a non-negative Decimal.

    Accepts int, float, Decimal and numeric strings (``$`` and ``,`` are
    stripped).

    Raises:
        RecordRejected: missing_field, non_numeric or negative_value
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        raise RecordRejected(
            f"{field} is required",
            reason=RejectionReason.MISSING_FIELD.value,
            field=field,
        )

    if isinstance(value, bool):
        number = None
    elif isinstance(value, Decimal):
        number = value
    elif isinstance(value, (int, float)):
        number = Decimal(str(value))
    elif isinstance(value, str):
        cleaned = value.replace("$", "").replace(",", "").strip()
        try:
            number = Decimal(cleaned)
        except InvalidOperation:
            number = None
    else:
        number = None

    if number is None or not number.is_finite():
        raise RecordRejected(
            f"{field} is not a number: {value!r}",
            reason=RejectionReason.NON_NUMERIC.value,
            field=field,
        )
    if number < 0:
        raise RecordRejected(
            f"{field} must not be negative: {number}",
            reason=RejectionReason.NEGATIVE_VALUE.value,
            field=field,
        )
    return number


def parse_date(value: Any, field: str = "date") -> Optional[date]:
    """Parse a date from a date, datetime or string; blank means None."""
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        # ISO timestamps: keep the calendar date
        if len(text) > 10 and text[4] == "-" and text[10] in "T ":
            text = text[:10]
        for fmt in DATE_FORMATS:
            try:
                return datetime.strptime(text, fmt).date()
            except ValueError:
                continue
    raise RecordRejected(
        f"{field} is not a valid date: {value!r}",
        reason=RejectionReason.INVALID_DATE.value,
        field=field,
    )


def _clean_id(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


class RecordNormalizer:
    """
    Validate raw trip and fuel rows and convert them to canonical records.

    Pure function of its inputs: the only output is the NormalizedRecords
    value (trips, fuel, rejected, warnings).
    """

    def __init__(self, config: Optional[NormalizationConfig] = None):
        self.config = config or NormalizationConfig()

    def normalize(
        self,
        trips: Sequence[Any],
        fuel_entries: Sequence[Any],
        *,
        quarter: Optional[QuarterLike] = None,
    ) -> NormalizedRecords:
        """
        Normalize trip and fuel inputs.

        Args:
            trips: Trip rows (mappings) or TripRecord instances
            fuel_entries: Fuel rows (mappings) or FuelRecord instances
            quarter: Reporting quarter; rows of other quarters are rejected
                when configured to do so

        Returns:
            NormalizedRecords with valid records, quarantined rows and warnings
        """
        reporting_quarter = coerce_quarter(quarter) if quarter is not None else None

        trip_records: list[TripRecord] = []
        fuel_records: list[FuelRecord] = []
        rejected: list[RejectedRecord] = []
        warnings: list[DataQualityWarning] = []

        for index, raw in enumerate(trips):
            try:
                record, record_warnings = self._normalize_trip(raw, reporting_quarter)
            except RecordRejected as exc:
                rejected.append(self._reject(RecordType.TRIP, index, raw, exc))
                continue
            trip_records.append(record)
            warnings.extend(record_warnings)

        for index, raw in enumerate(fuel_entries):
            try:
                record, record_warnings = self._normalize_fuel(raw, reporting_quarter)
            except RecordRejected as exc:
                rejected.append(self._reject(RecordType.FUEL, index, raw, exc))
                continue
            fuel_records.append(record)
            warnings.extend(record_warnings)

        logger.info(
            "records_normalized",
            trips=len(trip_records),
            fuel=len(fuel_records),
            rejected=len(rejected),
            warnings=len(warnings),
        )

        return NormalizedRecords(
            trips=tuple(trip_records),
            fuel=tuple(fuel_records),
            rejected=tuple(rejected),
            warnings=tuple(warnings),
        )

    def _reject(
        self,
        record_type: RecordType,
        index: int,
        raw: Any,
        exc: RecordRejected,
    ) -> RejectedRecord:
        """Convert a RecordRejected into a quarantined entry."""
        record_id = None
        if isinstance(raw, (TripRecord, FuelRecord)):
            record_id = raw.id
        elif isinstance(raw, Mapping):
            record_id = _clean_id(raw.get("id"))

        logger.warning(
            "record_rejected",
            record_type=record_type.value,
            index=index,
            record_id=record_id,
            reason=exc.reason,
            field=exc.field,
        )
        return RejectedRecord(
            record_type=record_type,
            index=index,
            record_id=record_id,
            reason=RejectionReason(exc.reason),
            field=exc.field,
            message=exc.message,
        )

    # -------------------------------------------------------------------------
    # Shared helpers
    # -------------------------------------------------------------------------

    def _require_id(self, value: Any) -> str:
        record_id = _clean_id(value)
        if record_id is None:
            raise RecordRejected(
                "Record id is required",
                reason=RejectionReason.MISSING_FIELD.value,
                field="id",
            )
        return record_id

    def _resolve_quarter(
        self,
        raw_quarter: Optional[str],
        record_date: Optional[date],
        reporting_quarter: Optional[Quarter],
    ) -> Quarter:
        """Pick the record's quarter from its quarter field or its date."""
        if raw_quarter is not None and raw_quarter.strip():
            try:
                record_quarter = Quarter.parse(raw_quarter)
            except ValidationError as exc:
                raise RecordRejected(
                    exc.message,
                    reason=RejectionReason.INVALID_QUARTER.value,
                    field="quarter",
                ) from exc
            self._check_date_in_quarter(record_date, record_quarter)
        elif record_date is not None:
            record_quarter = Quarter.from_date(record_date)
        else:
            raise RecordRejected(
                "Record needs a quarter or a date",
                reason=RejectionReason.MISSING_FIELD.value,
                field="quarter",
            )

        self._check_reporting_quarter(record_quarter, reporting_quarter)
        return record_quarter

    @staticmethod
    def _check_date_in_quarter(record_date: Optional[date], record_quarter: Quarter) -> None:
        if record_date is not None and not record_quarter.contains(record_date):
            raise RecordRejected(
                f"Date {record_date.isoformat()} is outside quarter {record_quarter}",
                reason=RejectionReason.DATE_OUTSIDE_QUARTER.value,
                field="date",
            )

    def _check_reporting_quarter(
        self, record_quarter: Quarter, reporting_quarter: Optional[Quarter]
    ) -> None:
        if (
            reporting_quarter is not None
            and self.config.reject_other_quarters
            and record_quarter != reporting_quarter
        ):
            raise RecordRejected(
                f"Record belongs to {record_quarter}, not {reporting_quarter}",
                reason=RejectionReason.QUARTER_MISMATCH.value,
                field="quarter",
            )

    def _jurisdiction(
        self,
        raw: Optional[str],
        record_type: RecordType,
        record_id: str,
        warnings: list[DataQualityWarning],
    ) -> str:
        """Normalize a jurisdiction, warning once per record when unknown."""
        code = normalize_jurisdiction(raw)
        if code == UNKNOWN_JURISDICTION and not any(
            w.code == "unknown_jurisdiction" for w in warnings
        ):
            warnings.append(DataQualityWarning(
                code="unknown_jurisdiction",
                message=f"Unrecognized jurisdiction {raw!r} counted under {UNKNOWN_JURISDICTION}",
                record_type=record_type,
                record_id=record_id,
            ))
        return code

    def _parse_input(self, model, raw: Any, label: str):
        if not isinstance(raw, Mapping):
            raise RecordRejected(
                f"{label} row must be a mapping, got {type(raw).__name__}",
                reason=RejectionReason.MALFORMED_RECORD.value,
            )
        try:
            return model.model_validate(dict(raw))
        except PydanticValidationError as exc:
            raise RecordRejected(
                f"Malformed {label.lower()} row: {exc.error_count()} invalid field(s)",
                reason=RejectionReason.MALFORMED_RECORD.value,
                details={"errors": [e["loc"] for e in exc.errors()]},
            ) from exc

    # -------------------------------------------------------------------------
    # Trips
    # -------------------------------------------------------------------------

    def _normalize_trip(
        self, raw: Any, reporting_quarter: Optional[Quarter]
    ) -> tuple[TripRecord, list[DataQualityWarning]]:
        if isinstance(raw, TripRecord):
            self._check_date_in_quarter(raw.date, raw.quarter)
            self._check_reporting_quarter(raw.quarter, reporting_quarter)
            record_warnings: list[DataQualityWarning] = []
            for segment in raw.segments:
                self._jurisdiction(segment.jurisdiction, RecordType.TRIP, raw.id, record_warnings)
            segment_sum = sum((s.miles for s in raw.segments), Decimal("0"))
            if segment_sum != raw.total_miles:
                # Canonical total is the exact segment sum
                raw = raw.model_copy(update={"total_miles": segment_sum})
            return raw, record_warnings

        data: TripInput = self._parse_input(TripInput, raw, "Trip")
        record_id = self._require_id(data.id)
        trip_date = parse_date(data.date)
        trip_quarter = self._resolve_quarter(data.quarter, trip_date, reporting_quarter)
        warnings: list[DataQualityWarning] = []

        if data.segments:
            segments = []
            for i, segment in enumerate(data.segments):
                miles = coerce_decimal(segment.miles, f"segments[{i}].miles")
                code = self._jurisdiction(segment.jurisdiction, RecordType.TRIP, record_id, warnings)
                segments.append(TripSegment(jurisdiction=code, miles=miles))
            segment_sum = sum((s.miles for s in segments), Decimal("0"))

            if data.total_miles is not None and str(data.total_miles).strip():
                stated = coerce_decimal(data.total_miles, "total_miles")
                if abs(stated - segment_sum) > self.config.segment_tolerance:
                    raise RecordRejected(
                        f"Segment miles ({segment_sum}) do not match total_miles ({stated})",
                        reason=RejectionReason.SEGMENT_TOTAL_MISMATCH.value,
                        field="total_miles",
                    )
        else:
            if data.total_miles is None or not str(data.total_miles).strip():
                raise RecordRejected(
                    "Trip has neither segments nor total_miles",
                    reason=RejectionReason.MISSING_SEGMENTS.value,
                    field="segments",
                )
            segment_sum = coerce_decimal(data.total_miles, "total_miles")
            end = self._jurisdiction(data.end_jurisdiction, RecordType.TRIP, record_id, warnings)
            start = normalize_jurisdiction(data.start_jurisdiction)
            if data.start_jurisdiction and start != end:
                warnings.append(DataQualityWarning(
                    code="legacy_end_attribution",
                    message=(
                        f"Trip {start} -> {end} has no segment breakdown; "
                        f"all {segment_sum} miles attributed to {end}"
                    ),
                    record_type=RecordType.TRIP,
                    record_id=record_id,
                ))
            segments = [TripSegment(jurisdiction=end, miles=segment_sum)]

        return TripRecord(
            id=record_id,
            vehicle_id=_clean_id(data.vehicle_id),
            quarter=trip_quarter,
            segments=tuple(segments),
            total_miles=segment_sum,
            source=self._trip_source(data.source),
            date=trip_date,
        ), warnings

    @staticmethod
    def _trip_source(value: Optional[str]) -> TripSource:
        if value:
            try:
                return TripSource(value.strip().lower())
            except ValueError:
                pass
        return TripSource.MANUAL

    # -------------------------------------------------------------------------
    # Fuel
    # -------------------------------------------------------------------------

    def _normalize_fuel(
        self, raw: Any, reporting_quarter: Optional[Quarter]
    ) -> tuple[FuelRecord, list[DataQualityWarning]]:
        if isinstance(raw, FuelRecord):
            self._check_fuel_type(raw.fuel_type)
            self._check_date_in_quarter(raw.date, raw.quarter)
            self._check_reporting_quarter(raw.quarter, reporting_quarter)
            record_warnings: list[DataQualityWarning] = []
            self._jurisdiction(raw.jurisdiction, RecordType.FUEL, raw.id, record_warnings)
            return raw, record_warnings

        data: FuelInput = self._parse_input(FuelInput, raw, "Fuel")
        record_id = self._require_id(data.id)
        purchase_date = parse_date(data.date)
        fuel_quarter = self._resolve_quarter(data.quarter, purchase_date, reporting_quarter)
        warnings: list[DataQualityWarning] = []

        fuel_type = self._fuel_type(data.fuel_type, record_id, warnings)
        self._check_fuel_type(fuel_type)

        gallons = coerce_decimal(data.gallons, "gallons")
        if data.cost is None or (isinstance(data.cost, str) and not data.cost.strip()):
            cost = Decimal("0")
        else:
            cost = coerce_decimal(data.cost, "cost")

        jurisdiction = self._jurisdiction(data.jurisdiction, RecordType.FUEL, record_id, warnings)

        return FuelRecord(
            id=record_id,
            vehicle_id=_clean_id(data.vehicle_id),
            quarter=fuel_quarter,
            jurisdiction=jurisdiction,
            gallons=gallons,
            fuel_type=fuel_type,
            cost=cost,
            date=purchase_date,
        ), warnings

    def _fuel_type(
        self,
        value: Optional[str],
        record_id: str,
        warnings: list[DataQualityWarning],
    ) -> FuelType:
        if value is None or not value.strip():
            warnings.append(DataQualityWarning(
                code="fuel_type_defaulted",
                message="Fuel type missing; treated as diesel",
                record_type=RecordType.FUEL,
                record_id=record_id,
            ))
            return FuelType.DIESEL
        try:
            return FuelType(value.strip().lower())
        except ValueError:
            return FuelType.OTHER

    def _check_fuel_type(self, fuel_type: FuelType) -> None:
        if fuel_type.value not in self.config.eligible_fuel_types:
            raise RecordRejected(
                f"Fuel type {fuel_type.value!r} is not IFTA-eligible",
                reason=RejectionReason.INELIGIBLE_FUEL_TYPE.value,
                field="fuel_type",
            )
