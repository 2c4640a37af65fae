"""Quarterly IFTA reconciliation entry point.

Composes normalization, aggregation, fuel economy, taxable gallons,
discrepancy detection and summary building, in that order:

    RecordNormalizer -> JurisdictionAggregator -> {MPGCalculator,
    TaxableGallonsCalculator} -> DiscrepancyReconciler -> QuarterlySummaryBuilder

The computation is a pure, synchronous function of its inputs. The
calculator keeps no state between calls, so one instance can serve several
threads or workers at once.
"""

from collections.abc import Mapping
from decimal import Decimal
from typing import Any, Optional, Sequence

import structlog

from .aggregator import JurisdictionAggregator, filter_by_vehicle, total_gallons, total_miles
from .config import IftaConfig, load_config
from .exceptions import ValidationError
from .models import (
    CalculationStep,
    DataQualityWarning,
    MileageTrackerReport,
    QuarterlySummary,
)
from .mpg import MPGCalculator
from .normalizer import RecordNormalizer
from .quarters import QuarterLike, coerce_quarter
from .reconciler import DiscrepancyReconciler, ReconciliationOptions
from .summary import QuarterlySummaryBuilder
from .taxable import TaxableGallonsCalculator

logger = structlog.get_logger()


def _require_list(value: Any, field: str) -> Sequence[Any]:
    """Inputs must be lists (or tuples) of rows; anything else is fatal."""
    if isinstance(value, (list, tuple)):
        return value
    raise ValidationError(
        f"{field} must be a list of records, got {type(value).__name__}",
        field=field,
        constraint="list or tuple",
    )


class QuarterlyIftaCalculator:
    """
    Compute the quarterly multi-jurisdiction fuel-tax reconciliation.

    Every step is recorded in the summary's audit log and logged for
    traceability.
    """

    def __init__(self, config: Optional[IftaConfig] = None):
        """
        Initialize calculator with configuration.

        Args:
            config: Engine configuration (default: loaded from environment)
        """
        self.config = config or load_config()
        self.normalizer = RecordNormalizer(self.config.normalize)
        self.aggregator = JurisdictionAggregator()
        self.mpg_calculator = MPGCalculator(self.aggregator)
        self.taxable_calculator = TaxableGallonsCalculator()
        self.reconciler = DiscrepancyReconciler()
        self.builder = QuarterlySummaryBuilder()

    @staticmethod
    def _log_step(
        audit_log: list[CalculationStep],
        step: str,
        input_value: str,
        output_value: str,
        source: str,
        notes: Optional[str] = None,
    ) -> None:
        """Add an entry to the audit log."""
        audit_log.append(CalculationStep(
            step=step,
            input_value=input_value,
            output_value=output_value,
            source=source,
            notes=notes,
        ))
        logger.info(
            "calculation_step",
            step=step,
            input=input_value,
            output=output_value,
            source=source,
        )

    def calculate(
        self,
        trips: Sequence[Any],
        fuel_entries: Sequence[Any],
        quarter: QuarterLike,
        vehicle_filter: Optional[str] = None,
        *,
        tracker: Optional[MileageTrackerReport] = None,
        reference_mpg: Optional[Decimal] = None,
    ) -> QuarterlySummary:
        """
        Build the quarterly summary.

        Args:
            trips: Trip rows or TripRecord instances for the quarter
            fuel_entries: IFTA-eligible fuel rows or FuelRecord instances
            quarter: Reporting quarter (``YYYY-Qn`` or Quarter)
            vehicle_filter: Restrict the report to one vehicle id
            tracker: Independently imported mileage for the same scope
            reference_mpg: Known fuel economy for fuel-implied mileage checks

        Returns:
            A fresh QuarterlySummary

        Raises:
            ValidationError: Malformed quarter or non-list inputs
        """
        reporting_quarter = coerce_quarter(quarter)
        trips = _require_list(trips, "trips")
        fuel_entries = _require_list(fuel_entries, "fuel_entries")
        if vehicle_filter is not None:
            vehicle_filter = str(vehicle_filter).strip() or None

        audit_log: list[CalculationStep] = []

        # Step 1: Normalize
        normalized = self.normalizer.normalize(trips, fuel_entries, quarter=reporting_quarter)
        self._log_step(
            audit_log,
            step="normalize_records",
            input_value=f"{len(trips)} trips, {len(fuel_entries)} fuel entries",
            output_value=(
                f"{len(normalized.trips)} trips, {len(normalized.fuel)} fuel, "
                f"{len(normalized.rejected)} rejected"
            ),
            source="RecordNormalizer",
        )

        # Step 2: Aggregate per jurisdiction
        scoped_trips = filter_by_vehicle(normalized.trips, vehicle_filter)
        scoped_fuel = filter_by_vehicle(normalized.fuel, vehicle_filter)
        totals = self.aggregator.aggregate(normalized.trips, normalized.fuel, vehicle_filter)
        miles = total_miles(totals.values())
        gallons = total_gallons(totals.values())
        self._log_step(
            audit_log,
            step="aggregate_jurisdictions",
            input_value=f"{len(scoped_trips)} trips, {len(scoped_fuel)} fuel for vehicle={vehicle_filter or 'all'}",
            output_value=f"{len(totals)} jurisdictions, miles={miles}, gallons={gallons}",
            source="JurisdictionAggregator",
        )

        # Step 3: Fuel economy
        mpg = self.mpg_calculator.compute_mpg(totals.values())
        vehicle_economy = self.mpg_calculator.compute_vehicle_economy(scoped_trips, scoped_fuel)
        self._log_step(
            audit_log,
            step="fleet_mpg",
            input_value=f"{miles} / {gallons}",
            output_value=str(mpg) if mpg is not None else "undetermined",
            source="MPGCalculator",
            notes=None if mpg is not None else "No fuel purchased in scope",
        )

        # Step 4: Taxable gallons
        taxable = self.taxable_calculator.compute_taxable(totals, mpg)
        self._log_step(
            audit_log,
            step="taxable_gallons",
            input_value=f"{len(totals)} jurisdictions at mpg={mpg}",
            output_value=f"{sum(1 for t in taxable.values() if t.low_confidence)} low confidence",
            source="TaxableGallonsCalculator",
        )

        # Step 5: Discrepancies
        warnings = list(normalized.warnings)
        tracker = self._scoped_tracker(tracker, reporting_quarter, vehicle_filter, warnings)
        options = ReconciliationOptions.from_config(
            self.config.reconcile,
            tracker=tracker,
            reference_mpg=reference_mpg,
        )
        discrepancies = self.reconciler.reconcile(scoped_trips, scoped_fuel, totals, mpg, options)
        self._log_step(
            audit_log,
            step="reconcile",
            input_value=f"threshold={options.threshold}, tracker={'yes' if tracker else 'no'}",
            output_value=f"{len(discrepancies)} discrepancies",
            source="DiscrepancyReconciler",
        )

        # Step 6: Compose
        summary = self.builder.build(
            reporting_quarter,
            vehicle_filter,
            totals,
            mpg,
            taxable,
            discrepancies,
            trip_count=len(scoped_trips),
            fuel_record_count=len(scoped_fuel),
            vehicle_economy=vehicle_economy,
            rejected=normalized.rejected,
            warnings=warnings,
            audit_log=audit_log,
        )

        if normalized.has_rejections:
            logger.warning(
                "summary_has_rejected_records",
                quarter=str(reporting_quarter),
                rejected=len(normalized.rejected),
            )
        logger.info(
            "quarterly_summary_built",
            quarter=str(reporting_quarter),
            vehicle_filter=vehicle_filter,
            jurisdictions=len(summary.per_jurisdiction),
            discrepancies=len(summary.discrepancies),
        )
        return summary

    @staticmethod
    def _scoped_tracker(
        tracker: Optional[MileageTrackerReport],
        quarter,
        vehicle_filter: Optional[str],
        warnings: list[DataQualityWarning],
    ) -> Optional[MileageTrackerReport]:
        """Drop a tracker report that covers a different quarter or vehicle."""
        if tracker is None:
            return None
        if isinstance(tracker, Mapping):
            tracker = MileageTrackerReport.model_validate(tracker)
        if tracker.quarter == quarter and tracker.vehicle_id == vehicle_filter:
            return tracker

        warnings.append(DataQualityWarning(
            code="tracker_scope_mismatch",
            message=(
                f"Tracker report for {tracker.quarter} vehicle={tracker.vehicle_id or 'all'} "
                f"does not match {quarter} vehicle={vehicle_filter or 'all'}; not compared"
            ),
        ))
        logger.warning(
            "tracker_report_skipped",
            tracker_quarter=str(tracker.quarter),
            tracker_vehicle=tracker.vehicle_id,
            quarter=str(quarter),
            vehicle_filter=vehicle_filter,
        )
        return None


def compute_quarterly_summary(
    trips: Sequence[Any],
    fuel_entries: Sequence[Any],
    quarter: QuarterLike,
    vehicle_filter: Optional[str] = None,
    *,
    tracker: Optional[MileageTrackerReport] = None,
    reference_mpg: Optional[Decimal] = None,
    config: Optional[IftaConfig] = None,
) -> QuarterlySummary:
    """
    Compute the quarterly IFTA summary for a quarter and optional vehicle.

    See QuarterlyIftaCalculator.calculate for arguments.
    """
    return QuarterlyIftaCalculator(config).calculate(
        trips,
        fuel_entries,
        quarter,
        vehicle_filter,
        tracker=tracker,
        reference_mpg=reference_mpg,
    )
