"""Importers that turn upstream data into engine input rows.

Three upstream sources feed the engine besides manually entered trips:

- Completed dispatch loads ("City, ST" origin and destination plus the
  load's distance). These become legacy start/end trip rows.
- Odometer readings logged at state-line crossings. Consecutive readings
  give the miles driven in the jurisdiction being left.
- Per-jurisdiction mileage from an ELD or state mileage log, used as an
  independent tracker report for reconciliation.

Importers only reshape data. Validation stays with the RecordNormalizer, so
an imported row with problems is quarantined like any other row.
"""

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Iterable, Optional, Union

import structlog

from .exceptions import RecordRejected, ValidationError
from .jurisdictions import extract_jurisdiction, normalize_jurisdiction
from .models import MileageTrackerReport, TripSegment, TripSource
from .normalizer import coerce_decimal
from .quarters import QuarterLike, coerce_quarter

logger = structlog.get_logger()


def _miles(value: Any, field: str) -> Decimal:
    """Coerce a mileage figure, raising ValidationError on bad input."""
    try:
        return coerce_decimal(value, field)
    except RecordRejected as exc:
        raise ValidationError(
            exc.message,
            field=field,
            value=value,
            constraint=exc.reason,
        ) from exc


# =============================================================================
# DISPATCH LOADS
# =============================================================================


def trip_from_load(load: Mapping[str, Any]) -> dict[str, Any]:
    """
    Convert a completed dispatch load into a trip row.

    The load's origin and destination only give the start and end
    jurisdictions, so the row takes the legacy (start, end, total_miles)
    form. A load without a recorded distance produces a row without
    total_miles, which the normalizer rejects; mileage is never estimated.

    Args:
        load: Load mapping with id, origin, destination, distance,
            actual_delivery_date or delivery_date, and truck_id

    Returns:
        Trip row accepted by RecordNormalizer

    Raises:
        ValidationError: If the load has no id
    """
    load_id = load.get("id")
    if load_id is None or not str(load_id).strip():
        raise ValidationError("Load id is required", field="id")

    delivered = load.get("actual_delivery_date") or load.get("delivery_date")
    distance = load.get("distance")
    if distance is None or (isinstance(distance, str) and not distance.strip()):
        logger.warning("load_without_distance", load_id=str(load_id))

    return {
        "id": f"load-{str(load_id).strip()}",
        "vehicle_id": load.get("truck_id") or load.get("vehicle_id"),
        "date": delivered,
        "start_jurisdiction": extract_jurisdiction(load.get("origin")),
        "end_jurisdiction": extract_jurisdiction(load.get("destination")),
        "total_miles": distance,
        "source": TripSource.DISPATCH_LOAD.value,
    }


# =============================================================================
# STATE-LINE CROSSINGS
# =============================================================================


@dataclass
class BorderCrossing:
    """Odometer reading taken on entering a jurisdiction."""
    jurisdiction: str
    odometer: Decimal
    timestamp: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any], index: int = 0) -> "BorderCrossing":
        """Build from a mapping with state/jurisdiction, odometer and timestamp."""
        jurisdiction = row.get("jurisdiction") or row.get("state")
        timestamp = row.get("timestamp")
        if isinstance(timestamp, str) and timestamp.strip():
            try:
                timestamp = datetime.fromisoformat(timestamp.strip().replace("Z", "+00:00"))
            except ValueError as exc:
                raise ValidationError(
                    f"Invalid crossing timestamp {timestamp!r}",
                    field=f"crossings[{index}].timestamp",
                    value=timestamp,
                ) from exc
        elif not isinstance(timestamp, datetime):
            timestamp = None
        return cls(
            jurisdiction=normalize_jurisdiction(jurisdiction),
            odometer=_miles(row.get("odometer"), f"crossings[{index}].odometer"),
            timestamp=timestamp,
        )


CrossingLike = Union[BorderCrossing, Mapping[str, Any]]


def segments_from_crossings(crossings: Iterable[CrossingLike]) -> list[TripSegment]:
    """
    Turn a trip's odometer readings into per-jurisdiction segments.

    Readings are ordered by timestamp when every reading has one, otherwise
    they are taken in the order given. The miles between two consecutive
    readings belong to the jurisdiction of the earlier reading. Segments for
    the same jurisdiction are merged, keeping the order in which
    jurisdictions were first entered. Non-increasing odometer steps are
    skipped.

    Example:
        >>> [(s.jurisdiction, s.miles) for s in segments_from_crossings([
        ...     {"state": "TX", "odometer": "1000"},
        ...     {"state": "OK", "odometer": "1250"},
        ...     {"state": "KS", "odometer": "1400"},
        ... ])]
        [('TX', Decimal('250')), ('OK', Decimal('150'))]
    """
    readings = [
        c if isinstance(c, BorderCrossing) else BorderCrossing.from_row(c, i)
        for i, c in enumerate(crossings)
    ]
    if readings and all(r.timestamp is not None for r in readings):
        readings.sort(key=lambda r: r.timestamp)

    miles_by_jurisdiction: dict[str, Decimal] = {}
    for current, following in zip(readings, readings[1:]):
        driven = following.odometer - current.odometer
        if driven <= 0:
            logger.warning(
                "odometer_not_increasing",
                jurisdiction=current.jurisdiction,
                odometer=str(current.odometer),
                next_odometer=str(following.odometer),
            )
            continue
        miles_by_jurisdiction[current.jurisdiction] = (
            miles_by_jurisdiction.get(current.jurisdiction, Decimal("0")) + driven
        )

    return [
        TripSegment(jurisdiction=code, miles=miles)
        for code, miles in miles_by_jurisdiction.items()
    ]


def trip_from_mileage_tracker(
    trip_id: Any,
    crossings: Iterable[CrossingLike],
    *,
    vehicle_id: Optional[str] = None,
    trip_date: Optional[Union[date, str]] = None,
    source: TripSource = TripSource.MILEAGE_TRACKER,
) -> dict[str, Any]:
    """
    Build a segmented trip row from a driver's state-line crossing log.

    Args:
        trip_id: Identifier of the logged trip
        crossings: Odometer readings in travel order (or timestamped)
        vehicle_id: Vehicle the trip belongs to
        trip_date: Trip date; decides the quarter when no quarter is given
        source: Origin of the readings (mileage tracker or ELD)

    Returns:
        Trip row accepted by RecordNormalizer. A log with fewer than two
        usable readings yields no segments and is rejected downstream.
    """
    segments = segments_from_crossings(crossings)
    return {
        "id": f"mileage-{trip_id}",
        "vehicle_id": vehicle_id,
        "date": trip_date,
        "segments": [{"jurisdiction": s.jurisdiction, "miles": s.miles} for s in segments],
        "total_miles": sum((s.miles for s in segments), Decimal("0")) if segments else None,
        "source": source.value,
    }


# =============================================================================
# TRACKER REPORTS
# =============================================================================


def build_tracker_report(
    quarter: QuarterLike,
    jurisdiction_miles: Union[Mapping[str, Any], Iterable[Mapping[str, Any]]],
    *,
    vehicle_id: Optional[str] = None,
    source: TripSource = TripSource.MILEAGE_TRACKER,
) -> MileageTrackerReport:
    """
    Build a MileageTrackerReport from per-jurisdiction tracker mileage.

    Args:
        quarter: Quarter the tracker mileage covers
        jurisdiction_miles: Either a {code: miles} mapping or rows with
            jurisdiction/state and miles keys (as returned by ELD exports)
        vehicle_id: Vehicle scope, None for the whole fleet
        source: Tracker source

    Returns:
        Report with codes normalized, duplicate codes merged and
        total_miles equal to the sum of the breakdown

    Raises:
        ValidationError: Malformed quarter or mileage values
    """
    reporting_quarter = coerce_quarter(quarter)
    if isinstance(jurisdiction_miles, Mapping):
        pairs = list(jurisdiction_miles.items())
    else:
        pairs = [
            (row.get("jurisdiction") or row.get("state"), row.get("miles"))
            for row in jurisdiction_miles
        ]

    merged: dict[str, Decimal] = {}
    for raw_code, raw_miles in pairs:
        code = normalize_jurisdiction(raw_code)
        miles = _miles(raw_miles, f"jurisdiction_miles[{raw_code}]")
        merged[code] = merged.get(code, Decimal("0")) + miles

    report = MileageTrackerReport(
        source=source,
        quarter=reporting_quarter,
        vehicle_id=vehicle_id,
        total_miles=sum(merged.values(), Decimal("0")),
        jurisdiction_miles=dict(sorted(merged.items())),
    )
    logger.info(
        "tracker_report_built",
        quarter=str(reporting_quarter),
        vehicle_id=vehicle_id,
        jurisdictions=len(merged),
        total_miles=str(report.total_miles),
    )
    return report
