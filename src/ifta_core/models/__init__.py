"""Data models for ifta-core.

This package provides:
- Canonical trip, fuel and tracker records plus raw input shapes (records.py)
- Derived aggregation, discrepancy and summary models (results.py)
"""

from ifta_core.models.records import (
    SEGMENT_TOLERANCE,
    FuelInput,
    FuelRecord,
    FuelType,
    MileageTrackerReport,
    SegmentInput,
    TripInput,
    TripRecord,
    TripSegment,
    TripSource,
)
from ifta_core.models.results import (
    CalculationStep,
    DataQualityWarning,
    Discrepancy,
    DiscrepancyKind,
    DiscrepancySeverity,
    JurisdictionSummaryRow,
    JurisdictionTotals,
    NormalizedRecords,
    QuarterlySummary,
    RecordType,
    RejectedRecord,
    RejectionReason,
    SummaryTotals,
    TaxableGallons,
    VehicleEconomy,
)

__all__ = [
    # Records
    "SEGMENT_TOLERANCE",
    "FuelType",
    "TripSource",
    "TripSegment",
    "TripRecord",
    "FuelRecord",
    "MileageTrackerReport",
    # Raw input shapes
    "SegmentInput",
    "TripInput",
    "FuelInput",
    # Normalization
    "RecordType",
    "RejectionReason",
    "RejectedRecord",
    "DataQualityWarning",
    "NormalizedRecords",
    # Aggregation
    "JurisdictionTotals",
    "VehicleEconomy",
    "TaxableGallons",
    # Discrepancies
    "DiscrepancyKind",
    "DiscrepancySeverity",
    "Discrepancy",
    # Summary
    "CalculationStep",
    "JurisdictionSummaryRow",
    "SummaryTotals",
    "QuarterlySummary",
]
