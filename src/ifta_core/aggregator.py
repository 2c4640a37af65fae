"""Per-jurisdiction accumulation of trip miles and fuel purchases.

Sums are exact Decimal additions, so for the filtered record set:

    sum(totals.miles_driven)      == sum(trip.total_miles)
    sum(totals.gallons_purchased) == sum(fuel.gallons)

Jurisdictions with no miles, gallons or cost are left out of the result.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable, Optional

import structlog

from .models import FuelRecord, JurisdictionTotals, TripRecord

logger = structlog.get_logger()


@dataclass
class _Bucket:
    """Mutable accumulator; frozen into JurisdictionTotals at the end."""
    miles: Decimal = Decimal("0")
    gallons: Decimal = Decimal("0")
    cost: Decimal = Decimal("0")
    trip_ids: set[str] = field(default_factory=set)
    fuel_count: int = 0


def filter_by_vehicle(records: Iterable, vehicle_filter: Optional[str]) -> list:
    """Keep records of one vehicle; no filter keeps everything."""
    if vehicle_filter is None:
        return list(records)
    return [r for r in records if r.vehicle_id == vehicle_filter]


class JurisdictionAggregator:
    """Accumulate miles and gallons per jurisdiction."""

    def aggregate(
        self,
        trips: Iterable[TripRecord],
        fuel: Iterable[FuelRecord],
        vehicle_filter: Optional[str] = None,
    ) -> dict[str, JurisdictionTotals]:
        """
        Aggregate trips and fuel purchases by jurisdiction.

        Args:
            trips: Normalized trip records
            fuel: Normalized fuel records
            vehicle_filter: Restrict both inputs to this vehicle id

        Returns:
            Mapping of jurisdiction code to totals, ordered by code
        """
        scoped_trips = filter_by_vehicle(trips, vehicle_filter)
        scoped_fuel = filter_by_vehicle(fuel, vehicle_filter)

        buckets: dict[str, _Bucket] = {}

        for trip in scoped_trips:
            for segment in trip.segments:
                bucket = buckets.setdefault(segment.jurisdiction, _Bucket())
                bucket.miles += segment.miles
                bucket.trip_ids.add(trip.id)

        for purchase in scoped_fuel:
            bucket = buckets.setdefault(purchase.jurisdiction, _Bucket())
            bucket.gallons += purchase.gallons
            bucket.cost += purchase.cost
            bucket.fuel_count += 1

        totals = {
            code: JurisdictionTotals(
                jurisdiction=code,
                miles_driven=bucket.miles,
                gallons_purchased=bucket.gallons,
                fuel_cost=bucket.cost,
                trip_count=len(bucket.trip_ids),
                fuel_purchase_count=bucket.fuel_count,
            )
            for code, bucket in sorted(buckets.items())
            if bucket.miles or bucket.gallons or bucket.cost
        }

        logger.debug(
            "jurisdictions_aggregated",
            vehicle_filter=vehicle_filter,
            trips=len(scoped_trips),
            fuel=len(scoped_fuel),
            jurisdictions=len(totals),
        )
        return totals

    def aggregate_by_vehicle(
        self,
        trips: Iterable[TripRecord],
        fuel: Iterable[FuelRecord],
    ) -> dict[Optional[str], dict[str, JurisdictionTotals]]:
        """
        Aggregate separately for every vehicle present in either input.

        Records without a vehicle id are grouped under None.
        """
        trips = list(trips)
        fuel = list(fuel)
        vehicle_ids = {t.vehicle_id for t in trips} | {f.vehicle_id for f in fuel}

        by_vehicle: dict[Optional[str], dict[str, JurisdictionTotals]] = {}
        for vehicle_id in sorted(vehicle_ids, key=lambda v: (v is None, v or "")):
            by_vehicle[vehicle_id] = self.aggregate(
                [t for t in trips if t.vehicle_id == vehicle_id],
                [f for f in fuel if f.vehicle_id == vehicle_id],
            )
        return by_vehicle


def total_miles(totals: Iterable[JurisdictionTotals]) -> Decimal:
    return sum((t.miles_driven for t in totals), Decimal("0"))


def total_gallons(totals: Iterable[JurisdictionTotals]) -> Decimal:
    return sum((t.gallons_purchased for t in totals), Decimal("0"))


def total_cost(totals: Iterable[JurisdictionTotals]) -> Decimal:
    return sum((t.fuel_cost for t in totals), Decimal("0"))
