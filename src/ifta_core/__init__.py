"""IFTA Core - Quarterly multi-jurisdiction fuel-tax reconciliation."""

__version__ = "0.1.0"

from .calculator import QuarterlyIftaCalculator, compute_quarterly_summary
from .config import IftaConfig, load_config
from .exceptions import ConfigurationError, IftaError, RecordRejected, ValidationError
from .models import FuelRecord, QuarterlySummary, TripRecord, TripSegment
from .quarters import Quarter, quarter_to_date_range
from .refresh import RecordsChanged, SummaryRefresher

__all__ = [
    "QuarterlyIftaCalculator",
    "compute_quarterly_summary",
    "quarter_to_date_range",
    "IftaConfig",
    "load_config",
    "Quarter",
    "TripRecord",
    "TripSegment",
    "FuelRecord",
    "QuarterlySummary",
    "SummaryRefresher",
    "RecordsChanged",
    "IftaError",
    "ValidationError",
    "RecordRejected",
    "ConfigurationError",
]
