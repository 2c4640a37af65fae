"""Canonical trip, fuel and mileage-tracker records.

These are the validated, immutable snapshots the engine computes over.
Persistence rows are turned into these types by the RecordNormalizer; the
loose ``*Input`` shapes below declare every field the normalizer is allowed
to read from a raw row.
"""

import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

from ..jurisdictions import UNKNOWN_JURISDICTION, normalize_jurisdiction
from ..quarters import Quarter

# Allowed gap between sum(segments.miles) and total_miles
SEGMENT_TOLERANCE = Decimal("0.01")


class FuelType(str, Enum):
    """Fuel types recorded on purchase receipts."""

    DIESEL = "diesel"
    GASOLINE = "gasoline"
    PROPANE = "propane"
    CNG = "cng"
    LNG = "lng"
    ETHANOL = "ethanol"
    METHANOL = "methanol"
    E85 = "e85"
    M85 = "m85"
    A55 = "a55"
    BIODIESEL = "biodiesel"
    DEF = "def"
    OTHER = "other"


class TripSource(str, Enum):
    """How a trip record came into existence."""

    MANUAL = "manual"
    DISPATCH_LOAD = "dispatch_load"
    MILEAGE_TRACKER = "mileage_tracker"
    ELD = "eld"


# =============================================================================
# CANONICAL RECORDS
# =============================================================================


class TripSegment(BaseModel):
    """Miles driven within a single jurisdiction during a trip."""

    model_config = ConfigDict(frozen=True)

    jurisdiction: str = Field(
        default=UNKNOWN_JURISDICTION,
        description="Normalized jurisdiction code",
    )
    miles: Decimal = Field(ge=Decimal("0"), description="Miles driven in this jurisdiction")

    @field_validator("jurisdiction", mode="before")
    @classmethod
    def normalize_code(cls, v: Any) -> str:
        return normalize_jurisdiction(v)


class TripRecord(BaseModel):
    """One interstate movement attributable to a vehicle.

    Invariants:
        - segments is non-empty (a single-jurisdiction trip has one segment)
        - every segment's miles and total_miles are >= 0
        - sum(segments.miles) equals total_miles within SEGMENT_TOLERANCE
    """

    model_config = ConfigDict(
        frozen=True,
        json_schema_extra={
            "examples": [
                {
                    "id": "trip-001",
                    "vehicle_id": "V1",
                    "quarter": "2025-Q1",
                    "segments": [
                        {"jurisdiction": "TX", "miles": "320"},
                        {"jurisdiction": "OK", "miles": "180"},
                    ],
                    "total_miles": "500",
                    "date": "2025-01-15",
                }
            ]
        },
    )

    id: str = Field(description="Persistence identifier of the trip")
    vehicle_id: Optional[str] = Field(default=None, description="Vehicle the trip is attributed to")
    quarter: Quarter = Field(description="Reporting quarter; fixed once the trip is created")
    segments: tuple[TripSegment, ...] = Field(description="Ordered per-jurisdiction mileage")
    total_miles: Decimal = Field(ge=Decimal("0"), description="Total trip miles")
    source: TripSource = Field(default=TripSource.MANUAL)
    date: Optional[datetime.date] = Field(default=None, description="Trip date")

    @model_validator(mode="after")
    def check_segments(self) -> "TripRecord":
        """Segments must exist and add up to the trip total."""
        if not self.segments:
            raise ValueError("A trip must have at least one segment")
        segment_sum = sum((s.miles for s in self.segments), Decimal("0"))
        if abs(segment_sum - self.total_miles) > SEGMENT_TOLERANCE:
            raise ValueError(
                f"Segment miles ({segment_sum}) do not match total_miles ({self.total_miles})"
            )
        return self

    @property
    def jurisdictions(self) -> list[str]:
        """Jurisdictions touched, in travel order, without repeats."""
        seen: list[str] = []
        for segment in self.segments:
            if segment.jurisdiction not in seen:
                seen.append(segment.jurisdiction)
        return seen


class FuelRecord(BaseModel):
    """One tax-relevant fuel purchase."""

    model_config = ConfigDict(
        frozen=True,
        json_schema_extra={
            "examples": [
                {
                    "id": "fuel-001",
                    "vehicle_id": "V1",
                    "quarter": "2025-Q1",
                    "jurisdiction": "TX",
                    "gallons": "60",
                    "fuel_type": "diesel",
                    "cost": "215.40",
                    "date": "2025-01-14",
                }
            ]
        },
    )

    id: str = Field(description="Persistence identifier of the purchase")
    vehicle_id: Optional[str] = Field(default=None)
    quarter: Quarter
    jurisdiction: str = Field(default=UNKNOWN_JURISDICTION)
    gallons: Decimal = Field(ge=Decimal("0"))
    fuel_type: FuelType = Field(default=FuelType.DIESEL)
    cost: Decimal = Field(default=Decimal("0"), ge=Decimal("0"), description="Base-currency cost")
    date: Optional[datetime.date] = Field(default=None, description="Purchase date")

    @field_validator("jurisdiction", mode="before")
    @classmethod
    def normalize_code(cls, v: Any) -> str:
        return normalize_jurisdiction(v)


class MileageTrackerReport(BaseModel):
    """Mileage imported from an independent tracker (ELD or state mileage log).

    Compared miles-to-miles against trip mileage by the reconciler.
    """

    model_config = ConfigDict(frozen=True)

    source: TripSource = Field(default=TripSource.MILEAGE_TRACKER)
    quarter: Quarter
    vehicle_id: Optional[str] = Field(
        default=None, description="Vehicle scope; None means the whole fleet"
    )
    total_miles: Decimal = Field(ge=Decimal("0"))
    jurisdiction_miles: dict[str, Decimal] = Field(
        default_factory=dict,
        description="Optional per-jurisdiction breakdown",
    )


# =============================================================================
# RAW INPUT SHAPES
# =============================================================================
# Numeric and date fields are declared loosely so the normalizer can assign
# a precise rejection reason instead of failing on the whole row.

RawId = Union[str, int, None]


class SegmentInput(BaseModel):
    """A segment as supplied by a caller."""

    model_config = ConfigDict(extra="ignore")

    jurisdiction: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("jurisdiction", "state")
    )
    miles: Any = None


class TripInput(BaseModel):
    """A trip row as supplied by persistence or an importer."""

    model_config = ConfigDict(extra="ignore")

    id: RawId = None
    vehicle_id: RawId = Field(default=None, validation_alias=AliasChoices("vehicle_id", "vehicleId"))
    quarter: Optional[str] = None
    segments: Optional[list[SegmentInput]] = None
    total_miles: Any = Field(default=None, validation_alias=AliasChoices("total_miles", "totalMiles"))
    start_jurisdiction: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("start_jurisdiction", "startJurisdiction")
    )
    end_jurisdiction: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("end_jurisdiction", "endJurisdiction")
    )
    source: Optional[str] = None
    date: Any = Field(
        default=None, validation_alias=AliasChoices("date", "start_date", "startDate")
    )


class FuelInput(BaseModel):
    """A fuel purchase row as supplied by persistence."""

    model_config = ConfigDict(extra="ignore")

    id: RawId = None
    vehicle_id: RawId = Field(
        default=None, validation_alias=AliasChoices("vehicle_id", "vehicleId", "vehicle")
    )
    quarter: Optional[str] = None
    jurisdiction: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("jurisdiction", "state")
    )
    gallons: Any = None
    fuel_type: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("fuel_type", "fuelType")
    )
    cost: Any = Field(
        default=None, validation_alias=AliasChoices("cost", "total_amount", "totalAmount")
    )
    date: Any = None
