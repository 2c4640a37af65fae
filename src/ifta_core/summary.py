"""Composition of engine outputs into the quarterly report."""

from decimal import Decimal
from typing import Iterable, Mapping, Optional

from .aggregator import total_cost, total_gallons, total_miles
from .jurisdictions import jurisdiction_name
from .models import (
    CalculationStep,
    DataQualityWarning,
    Discrepancy,
    JurisdictionSummaryRow,
    JurisdictionTotals,
    QuarterlySummary,
    RejectedRecord,
    SummaryTotals,
    TaxableGallons,
    VehicleEconomy,
)
from .quarters import Quarter


class QuarterlySummaryBuilder:
    """
    Compose aggregation, economy, taxable gallons and discrepancies into a
    single ordered QuarterlySummary. Pure composition: no recomputation of
    the inputs and no I/O.
    """

    def build(
        self,
        quarter: Quarter,
        vehicle_filter: Optional[str],
        jurisdiction_totals: Mapping[str, JurisdictionTotals],
        mpg: Optional[Decimal],
        taxable_by_jurisdiction: Mapping[str, TaxableGallons],
        discrepancies: Iterable[Discrepancy],
        *,
        trip_count: int = 0,
        fuel_record_count: int = 0,
        vehicle_economy: Iterable[VehicleEconomy] = (),
        rejected: Iterable[RejectedRecord] = (),
        warnings: Iterable[DataQualityWarning] = (),
        audit_log: Iterable[CalculationStep] = (),
    ) -> QuarterlySummary:
        """
        Build the report.

        Rows are sorted by jurisdiction code ascending; codes are unique keys
        so there are no ties.
        """
        rows = []
        for code in sorted(jurisdiction_totals):
            totals = jurisdiction_totals[code]
            taxable = taxable_by_jurisdiction.get(code)
            rows.append(JurisdictionSummaryRow(
                jurisdiction=code,
                jurisdiction_name=jurisdiction_name(code),
                miles_driven=totals.miles_driven,
                gallons_purchased=totals.gallons_purchased,
                fuel_cost=totals.fuel_cost,
                taxable_gallons=taxable.taxable_gallons if taxable else None,
                gallons_due_or_credit=taxable.gallons_due_or_credit if taxable else None,
                low_confidence=taxable.low_confidence if taxable else True,
            ))

        return QuarterlySummary(
            quarter=quarter,
            vehicle_filter=vehicle_filter,
            fleet_mpg=mpg,
            per_jurisdiction=tuple(rows),
            discrepancies=tuple(discrepancies),
            totals=self._totals(rows, jurisdiction_totals, trip_count, fuel_record_count),
            vehicle_economy=tuple(vehicle_economy),
            rejected=tuple(rejected),
            warnings=tuple(warnings),
            audit_log=tuple(audit_log),
        )

    @staticmethod
    def _totals(
        rows: list[JurisdictionSummaryRow],
        jurisdiction_totals: Mapping[str, JurisdictionTotals],
        trip_count: int,
        fuel_record_count: int,
    ) -> SummaryTotals:
        """Grand-totals row. Taxable totals only cover determinable rows."""
        values = list(jurisdiction_totals.values())
        determinable = [r for r in rows if r.taxable_gallons is not None]
        taxable = None
        net_due = None
        if determinable:
            taxable = sum((r.taxable_gallons for r in determinable), Decimal("0"))
            net_due = sum((r.gallons_due_or_credit for r in determinable), Decimal("0"))

        return SummaryTotals(
            trips=trip_count,
            fuel_records=fuel_record_count,
            miles=total_miles(values),
            gallons=total_gallons(values),
            fuel_cost=total_cost(values),
            jurisdiction_count=len(rows),
            taxable_gallons=taxable,
            net_gallons_due=net_due,
        )
