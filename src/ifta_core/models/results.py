"""Derived, transient output models of the IFTA engine.

Everything here is built fresh on every computation and never mutated in
place: the models are frozen, and collections are tuples. None of them
carry clocks or random identifiers, so serializing the same computation
twice yields identical bytes.

Gallon, mile and MPG figures are carried at full Decimal precision; rounding
happens only in ifta_core.report.
"""

from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field

from ..quarters import Quarter
from .records import FuelRecord, TripRecord


# =============================================================================
# NORMALIZATION OUTPUT
# =============================================================================


class RecordType(str, Enum):
    TRIP = "trip"
    FUEL = "fuel"


class RejectionReason(str, Enum):
    """Why a raw row was quarantined."""

    MALFORMED_RECORD = "malformed_record"
    MISSING_FIELD = "missing_field"
    NON_NUMERIC = "non_numeric"
    NEGATIVE_VALUE = "negative_value"
    INVALID_QUARTER = "invalid_quarter"
    INVALID_DATE = "invalid_date"
    QUARTER_MISMATCH = "quarter_mismatch"
    DATE_OUTSIDE_QUARTER = "date_outside_quarter"
    SEGMENT_TOTAL_MISMATCH = "segment_total_mismatch"
    MISSING_SEGMENTS = "missing_segments"
    INELIGIBLE_FUEL_TYPE = "ineligible_fuel_type"


class RejectedRecord(BaseModel):
    """A raw row excluded from the computation, with the reason."""

    model_config = ConfigDict(frozen=True)

    record_type: RecordType
    index: int = Field(ge=0, description="Position of the row in the caller's input list")
    record_id: Optional[str] = None
    reason: RejectionReason
    field: Optional[str] = None
    message: str


class DataQualityWarning(BaseModel):
    """A non-fatal observation about data that was kept."""

    model_config = ConfigDict(frozen=True)

    code: str = Field(description="Machine-readable warning code")
    message: str
    record_type: Optional[RecordType] = None
    record_id: Optional[str] = None


class NormalizedRecords(BaseModel):
    """Result of RecordNormalizer.normalize."""

    model_config = ConfigDict(frozen=True)

    trips: tuple[TripRecord, ...] = ()
    fuel: tuple[FuelRecord, ...] = ()
    rejected: tuple[RejectedRecord, ...] = ()
    warnings: tuple[DataQualityWarning, ...] = ()

    @property
    def has_rejections(self) -> bool:
        return len(self.rejected) > 0


# =============================================================================
# AGGREGATION AND ECONOMY
# =============================================================================


class JurisdictionTotals(BaseModel):
    """Miles and fuel accumulated for one jurisdiction."""

    model_config = ConfigDict(frozen=True)

    jurisdiction: str
    miles_driven: Decimal = Decimal("0")
    gallons_purchased: Decimal = Decimal("0")
    fuel_cost: Decimal = Decimal("0")
    trip_count: int = Field(default=0, ge=0, description="Trips with a segment here")
    fuel_purchase_count: int = Field(default=0, ge=0)

    @property
    def has_activity(self) -> bool:
        return bool(self.miles_driven or self.gallons_purchased or self.fuel_cost)


class VehicleEconomy(BaseModel):
    """Fuel economy of one vehicle over the quarter."""

    model_config = ConfigDict(frozen=True)

    vehicle_id: Optional[str]
    miles_driven: Decimal
    gallons_purchased: Decimal
    mpg: Optional[Decimal] = Field(
        default=None, description="None when no fuel was purchased"
    )


class TaxableGallons(BaseModel):
    """Taxable gallons and net gallons due/credit for one jurisdiction.

    Positive gallons_due_or_credit means less fuel was bought in the
    jurisdiction than was consumed there (tax due); negative is a credit.
    """

    model_config = ConfigDict(frozen=True)

    jurisdiction: str
    taxable_gallons: Optional[Decimal] = None
    gallons_due_or_credit: Optional[Decimal] = None
    low_confidence: bool = False


# =============================================================================
# DISCREPANCIES
# =============================================================================


class DiscrepancyKind(str, Enum):
    """Which cross-check produced a discrepancy."""

    FUEL_IMPLIED_MILEAGE = "fuel_implied_mileage"
    MILES_WITHOUT_FUEL = "miles_without_fuel"
    FUEL_WITHOUT_MILES = "fuel_without_miles"
    TRACKER_MILEAGE = "tracker_mileage"
    TRACKER_JURISDICTION_MILEAGE = "tracker_jurisdiction_mileage"
    ECONOMY_UNDETERMINED = "economy_undetermined"
    IMPLAUSIBLE_MPG = "implausible_mpg"


class DiscrepancySeverity(str, Enum):
    """Severity levels, lowest first."""

    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"

    def escalate(self) -> "DiscrepancySeverity":
        """One level higher, capped at CRITICAL."""
        order = list(DiscrepancySeverity)
        return order[min(order.index(self) + 1, len(order) - 1)]


class Discrepancy(BaseModel):
    """An inconsistency between two independently derived measures.

    ``expected`` is the independently derived figure (fuel-implied or
    tracker mileage), ``actual`` the trip-derived one.
    """

    model_config = ConfigDict(frozen=True)

    kind: DiscrepancyKind
    jurisdiction: Optional[str] = Field(
        default=None, description="None for fleet-level findings"
    )
    expected: Optional[Decimal] = None
    actual: Optional[Decimal] = None
    unit: str = Field(default="miles", description="miles, gallons or mpg")
    relative_difference: Optional[Decimal] = None
    severity: DiscrepancySeverity = DiscrepancySeverity.WARNING
    message: str = ""


# =============================================================================
# SUMMARY
# =============================================================================


class CalculationStep(BaseModel):
    """Audit log entry for calculation transparency.

    Carries no timestamp so that identical inputs produce identical output.
    """

    model_config = ConfigDict(frozen=True)

    step: str
    input_value: str
    output_value: str
    source: str
    notes: Optional[str] = None


class JurisdictionSummaryRow(BaseModel):
    """One per-jurisdiction line of the quarterly report."""

    model_config = ConfigDict(frozen=True)

    jurisdiction: str
    jurisdiction_name: str
    miles_driven: Decimal
    gallons_purchased: Decimal
    fuel_cost: Decimal
    taxable_gallons: Optional[Decimal] = None
    gallons_due_or_credit: Optional[Decimal] = None
    low_confidence: bool = False


class SummaryTotals(BaseModel):
    """Grand totals row of the quarterly report."""

    model_config = ConfigDict(frozen=True)

    trips: int = 0
    fuel_records: int = 0
    miles: Decimal = Decimal("0")
    gallons: Decimal = Decimal("0")
    fuel_cost: Decimal = Decimal("0")
    jurisdiction_count: int = 0
    taxable_gallons: Optional[Decimal] = Field(
        default=None, description="None when no jurisdiction's taxable gallons are determinable"
    )
    net_gallons_due: Optional[Decimal] = None


class QuarterlySummary(BaseModel):
    """The quarterly IFTA reconciliation report."""

    model_config = ConfigDict(frozen=True)

    quarter: Quarter
    vehicle_filter: Optional[str] = None
    fleet_mpg: Optional[Decimal] = None
    per_jurisdiction: tuple[JurisdictionSummaryRow, ...] = ()
    discrepancies: tuple[Discrepancy, ...] = ()
    totals: SummaryTotals = Field(default_factory=SummaryTotals)
    vehicle_economy: tuple[VehicleEconomy, ...] = ()
    rejected: tuple[RejectedRecord, ...] = ()
    warnings: tuple[DataQualityWarning, ...] = ()
    audit_log: tuple[CalculationStep, ...] = ()

    @computed_field
    @property
    def low_confidence(self) -> bool:
        """True if economy could not be determined for any row."""
        return self.fleet_mpg is None or any(r.low_confidence for r in self.per_jurisdiction)

    @property
    def has_discrepancies(self) -> bool:
        return len(self.discrepancies) > 0

    def row_for(self, jurisdiction: str) -> Optional[JurisdictionSummaryRow]:
        """Look up the row for a jurisdiction code."""
        for row in self.per_jurisdiction:
            if row.jurisdiction == jurisdiction:
                return row
        return None

    def discrepancies_for(self, jurisdiction: Optional[str]) -> list[Discrepancy]:
        return [d for d in self.discrepancies if d.jurisdiction == jurisdiction]
