"""Exceptions raised by the IFTA reconciliation engine.

Only two situations are fatal for a computation: a malformed reporting
quarter and inputs of the wrong shape entirely. Per-record data problems are
raised internally as RecordRejected and converted into quarantined
RejectedRecord entries by the normalizer.

Example:
    try:
        summary = compute_quarterly_summary(trips, fuel, "2025-Q1")
    except ValidationError as e:
        # Bad quarter string or non-list input; nothing was aggregated
        logger.error("summary_failed", error=str(e), **e.details)
"""

from typing import Any, Optional


class IftaError(Exception):
    """Base exception for all IFTA engine errors.

    Attributes:
        message: Human-readable error description.
        details: Additional context, merged into log events by callers.
        recoverable: Whether correcting the offending input would let the
            computation proceed.
    """

    def __init__(
        self,
        message: str,
        *,
        details: Optional[dict[str, Any]] = None,
        recoverable: bool = False,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.recoverable = recoverable


class ValidationError(IftaError):
    """Engine input failed validation before any aggregation began.

    Raised for a reporting quarter that does not match ``YYYY-Qn`` and for
    trip/fuel inputs that are not lists at all.
    """

    def __init__(
        self,
        message: str,
        *,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        constraint: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, details=details)
        self.field = field
        self.value = value
        self.constraint = constraint

        if field:
            self.details["field"] = field
        if value is not None:
            self.details["value"] = value
        if constraint:
            self.details["constraint"] = constraint


class RecordRejected(IftaError):
    """A single trip or fuel row failed normalization.

    Never escapes the normalizer: it is caught per record and turned into a
    RejectedRecord so the rest of the quarter can still be computed.
    """

    def __init__(
        self,
        message: str,
        *,
        reason: str,
        field: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, details=details, recoverable=True)
        self.reason = reason
        self.field = field

        self.details["reason"] = reason
        if field:
            self.details["field"] = field


class ConfigurationError(IftaError):
    """Settings could not be loaded; raised by ``config.load_config``."""

    def __init__(
        self,
        message: str,
        *,
        config_key: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, details=details)
        self.config_key = config_key

        if config_key:
            self.details["config_key"] = config_key


__all__ = [
    "IftaError",
    "ValidationError",
    "RecordRejected",
    "ConfigurationError",
]
