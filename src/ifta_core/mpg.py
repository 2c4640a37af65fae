"""Fleet and per-vehicle fuel economy."""

from decimal import Decimal
from typing import Iterable, Optional

import structlog

from .aggregator import JurisdictionAggregator, total_gallons, total_miles
from .models import FuelRecord, JurisdictionTotals, TripRecord, VehicleEconomy

logger = structlog.get_logger()


class MPGCalculator:
    """
    Derive average miles per gallon from aggregated totals.

    A result of None means economy is not determinable (no fuel purchased);
    callers must not divide by it.
    """

    def __init__(self, aggregator: Optional[JurisdictionAggregator] = None):
        self.aggregator = aggregator or JurisdictionAggregator()

    def compute_mpg(self, totals: Iterable[JurisdictionTotals]) -> Optional[Decimal]:
        """
        Compute sum(miles_driven) / sum(gallons_purchased).

        Args:
            totals: Jurisdiction totals for the scope being measured

        Returns:
            MPG at full precision, or None when total gallons is zero
        """
        totals = list(totals)
        gallons = total_gallons(totals)
        if gallons == 0:
            return None
        return total_miles(totals) / gallons

    def compute_vehicle_economy(
        self,
        trips: Iterable[TripRecord],
        fuel: Iterable[FuelRecord],
    ) -> list[VehicleEconomy]:
        """
        Compute MPG separately for each vehicle.

        Returns:
            One VehicleEconomy per vehicle, sorted by vehicle id with
            records lacking a vehicle id last
        """
        economy = []
        by_vehicle = self.aggregator.aggregate_by_vehicle(trips, fuel)
        for vehicle_id, totals in by_vehicle.items():
            rows = list(totals.values())
            mpg = self.compute_mpg(rows)
            economy.append(VehicleEconomy(
                vehicle_id=vehicle_id,
                miles_driven=total_miles(rows),
                gallons_purchased=total_gallons(rows),
                mpg=mpg,
            ))
            if mpg is None:
                logger.info("vehicle_mpg_undetermined", vehicle_id=vehicle_id)
        return economy


def compute_mpg(totals: Iterable[JurisdictionTotals]) -> Optional[Decimal]:
    """Module-level shortcut for MPGCalculator().compute_mpg."""
    return MPGCalculator().compute_mpg(totals)
