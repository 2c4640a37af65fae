"""Cross-source consistency checks between mileage and fuel data.

The reconciler compares trip-derived miles against two independent
measures:

1. Miles implied by fuel purchases (gallons * MPG), fleet-wide and per
   jurisdiction. MPG is the derived fleet MPG unless a reference MPG is
   supplied; with the derived MPG the fleet-level estimate always equals
   trip miles, so only the per-jurisdiction comparisons carry signal.
2. Miles reported by an independently imported mileage tracker (ELD or the
   state mileage log). Being a miles-to-miles comparison, these findings are
   reported one severity level higher.

It also flags jurisdictions with miles but no fuel purchases and vice versa.
Findings are reported only; totals and taxable gallons are never altered.
"""

from decimal import Decimal
from typing import Iterable, Mapping, Optional

import structlog
from pydantic import BaseModel, Field

from .aggregator import total_gallons
from .config import ReconciliationConfig
from .models import (
    Discrepancy,
    DiscrepancyKind,
    DiscrepancySeverity,
    FuelRecord,
    JurisdictionTotals,
    MileageTrackerReport,
    TripRecord,
)

logger = structlog.get_logger()

KIND_ORDER = list(DiscrepancyKind)


class ReconciliationOptions(BaseModel):
    """Per-call reconciliation settings; defaults come from configuration."""

    threshold: Decimal = Field(default=Decimal("0.05"), gt=Decimal("0"))
    high_severity_threshold: Decimal = Field(default=Decimal("0.25"), gt=Decimal("0"))
    tracker_threshold: Decimal = Field(default=Decimal("0.02"), gt=Decimal("0"))
    reference_mpg: Optional[Decimal] = Field(
        default=None,
        gt=Decimal("0"),
        description="Known fuel economy used for fuel-implied mileage instead of derived MPG",
    )
    min_plausible_mpg: Decimal = Decimal("3")
    max_plausible_mpg: Decimal = Decimal("15")
    tracker: Optional[MileageTrackerReport] = None

    @classmethod
    def from_config(cls, config: ReconciliationConfig, **overrides) -> "ReconciliationOptions":
        values = {
            "threshold": config.threshold,
            "high_severity_threshold": config.high_severity_threshold,
            "tracker_threshold": config.tracker_threshold,
            "min_plausible_mpg": config.min_plausible_mpg,
            "max_plausible_mpg": config.max_plausible_mpg,
        }
        values.update(overrides)
        return cls(**values)


def relative_difference(trip_miles: Decimal, other_miles: Decimal) -> Decimal:
    """|trip - other| / max(trip, 1)."""
    return abs(trip_miles - other_miles) / max(trip_miles, Decimal("1"))


class DiscrepancyReconciler:
    """
    Detect inconsistencies between trip mileage, fuel purchases and
    tracker mileage. Never raises for data problems.
    """

    def reconcile(
        self,
        trips: Iterable[TripRecord],
        fuel: Iterable[FuelRecord],
        jurisdiction_totals: Mapping[str, JurisdictionTotals],
        mpg: Optional[Decimal],
        options: Optional[ReconciliationOptions] = None,
    ) -> list[Discrepancy]:
        """
        Cross-check mileage sources for one quarter/vehicle scope.

        Args:
            trips: Trip records in scope
            fuel: Fuel records in scope
            jurisdiction_totals: Aggregated totals for the same scope
            mpg: Derived MPG for the scope (None if undeterminable)
            options: Thresholds, reference MPG and optional tracker report

        Returns:
            Discrepancies ordered fleet-level first, then by jurisdiction
        """
        options = options or ReconciliationOptions()
        trip_miles = sum((t.total_miles for t in trips), Decimal("0"))
        fuel_gallons = sum((f.gallons for f in fuel), Decimal("0"))
        if fuel_gallons != total_gallons(jurisdiction_totals.values()):
            logger.warning(
                "reconcile_scope_mismatch",
                fuel_gallons=str(fuel_gallons),
                aggregated_gallons=str(total_gallons(jurisdiction_totals.values())),
            )

        estimate_mpg = options.reference_mpg if options.reference_mpg is not None else mpg
        usable_mpg = estimate_mpg if estimate_mpg is not None and estimate_mpg > 0 else None

        found: list[Discrepancy] = []
        found.extend(self._check_economy(trip_miles, mpg, options))

        if usable_mpg is not None and fuel_gallons > 0:
            estimated = fuel_gallons * usable_mpg
            gap = relative_difference(trip_miles, estimated)
            if gap > options.threshold:
                found.append(Discrepancy(
                    kind=DiscrepancyKind.FUEL_IMPLIED_MILEAGE,
                    expected=estimated,
                    actual=trip_miles,
                    relative_difference=gap,
                    severity=self._severity(gap, options),
                    message=(
                        f"Fuel purchases imply {estimated} miles but trips record {trip_miles}"
                    ),
                ))

        for totals in jurisdiction_totals.values():
            found.extend(self._check_jurisdiction(totals, usable_mpg, options))

        if options.tracker is not None:
            found.extend(self._check_tracker(trip_miles, jurisdiction_totals, options))

        found.sort(key=lambda d: (
            d.jurisdiction is not None,
            d.jurisdiction or "",
            KIND_ORDER.index(d.kind),
        ))

        for discrepancy in found:
            logger.info(
                "discrepancy_detected",
                kind=discrepancy.kind.value,
                jurisdiction=discrepancy.jurisdiction,
                severity=discrepancy.severity.value,
            )
        return found

    @staticmethod
    def _severity(gap: Decimal, options: ReconciliationOptions) -> DiscrepancySeverity:
        if gap > options.high_severity_threshold:
            return DiscrepancySeverity.ERROR
        return DiscrepancySeverity.WARNING

    def _check_economy(
        self,
        trip_miles: Decimal,
        mpg: Optional[Decimal],
        options: ReconciliationOptions,
    ) -> list[Discrepancy]:
        if mpg is None:
            if trip_miles > 0:
                return [Discrepancy(
                    kind=DiscrepancyKind.ECONOMY_UNDETERMINED,
                    actual=trip_miles,
                    severity=DiscrepancySeverity.WARNING,
                    message=f"{trip_miles} miles recorded with no fuel purchases; MPG cannot be determined",
                )]
            return []

        if mpg < options.min_plausible_mpg:
            bound = options.min_plausible_mpg
        elif mpg > options.max_plausible_mpg:
            bound = options.max_plausible_mpg
        else:
            return []
        return [Discrepancy(
            kind=DiscrepancyKind.IMPLAUSIBLE_MPG,
            expected=bound,
            actual=mpg,
            unit="mpg",
            severity=DiscrepancySeverity.WARNING,
            message=(
                f"Fleet MPG {mpg} is outside the plausible range "
                f"{options.min_plausible_mpg}-{options.max_plausible_mpg}"
            ),
        )]

    def _check_jurisdiction(
        self,
        totals: JurisdictionTotals,
        mpg: Optional[Decimal],
        options: ReconciliationOptions,
    ) -> list[Discrepancy]:
        code = totals.jurisdiction
        miles = totals.miles_driven
        gallons = totals.gallons_purchased

        if miles > 0 and gallons == 0:
            return [Discrepancy(
                kind=DiscrepancyKind.MILES_WITHOUT_FUEL,
                jurisdiction=code,
                expected=miles / mpg if mpg is not None else None,
                actual=Decimal("0"),
                unit="gallons",
                severity=DiscrepancySeverity.WARNING,
                message=f"{miles} miles driven in {code} with no fuel purchased there",
            )]

        if gallons > 0 and miles == 0:
            return [Discrepancy(
                kind=DiscrepancyKind.FUEL_WITHOUT_MILES,
                jurisdiction=code,
                expected=gallons * mpg if mpg is not None else None,
                actual=Decimal("0"),
                severity=DiscrepancySeverity.WARNING,
                message=f"{gallons} gallons purchased in {code} with no miles driven there",
            )]

        if mpg is None or miles == 0:
            return []

        estimated = gallons * mpg
        gap = relative_difference(miles, estimated)
        if gap <= options.threshold:
            return []
        return [Discrepancy(
            kind=DiscrepancyKind.FUEL_IMPLIED_MILEAGE,
            jurisdiction=code,
            expected=estimated,
            actual=miles,
            relative_difference=gap,
            severity=self._severity(gap, options),
            message=f"Fuel bought in {code} implies {estimated} miles but trips record {miles}",
        )]

    def _check_tracker(
        self,
        trip_miles: Decimal,
        jurisdiction_totals: Mapping[str, JurisdictionTotals],
        options: ReconciliationOptions,
    ) -> list[Discrepancy]:
        tracker = options.tracker
        found = []

        gap = relative_difference(trip_miles, tracker.total_miles)
        if gap > options.tracker_threshold:
            found.append(Discrepancy(
                kind=DiscrepancyKind.TRACKER_MILEAGE,
                expected=tracker.total_miles,
                actual=trip_miles,
                relative_difference=gap,
                severity=self._severity(gap, options).escalate(),
                message=(
                    f"{tracker.source.value} reports {tracker.total_miles} miles "
                    f"but trips record {trip_miles}"
                ),
            ))

        if not tracker.jurisdiction_miles:
            return found

        codes = sorted(set(tracker.jurisdiction_miles) | set(jurisdiction_totals))
        for code in codes:
            tracked = tracker.jurisdiction_miles.get(code, Decimal("0"))
            totals = jurisdiction_totals.get(code)
            recorded = totals.miles_driven if totals is not None else Decimal("0")
            if tracked == 0 and recorded == 0:
                continue
            gap = relative_difference(recorded, tracked)
            if gap > options.tracker_threshold:
                found.append(Discrepancy(
                    kind=DiscrepancyKind.TRACKER_JURISDICTION_MILEAGE,
                    jurisdiction=code,
                    expected=tracked,
                    actual=recorded,
                    relative_difference=gap,
                    severity=self._severity(gap, options).escalate(),
                    message=(
                        f"{tracker.source.value} reports {tracked} miles in {code} "
                        f"but trips record {recorded}"
                    ),
                ))
        return found
