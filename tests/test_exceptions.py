"""Tests for the engine exception hierarchy."""

import pytest

from ifta_core.exceptions import (
    ConfigurationError,
    IftaError,
    RecordRejected,
    ValidationError,
)


class TestIftaError:
    def test_message_and_defaults(self):
        error = IftaError("Something went wrong")

        assert str(error) == "Something went wrong"
        assert error.details == {}
        assert error.recoverable is False

    def test_details_and_recoverable(self):
        error = IftaError("boom", details={"quarter": "2025-Q1"}, recoverable=True)

        assert error.details == {"quarter": "2025-Q1"}
        assert error.recoverable is True

    @pytest.mark.parametrize("cls", [ValidationError, RecordRejected, ConfigurationError])
    def test_hierarchy(self, cls):
        assert issubclass(cls, IftaError)


class TestValidationError:
    def test_details_populated(self):
        error = ValidationError(
            "Invalid quarter",
            field="quarter",
            value="2025-Q5",
            constraint="YYYY-Qn",
        )

        assert error.field == "quarter"
        assert error.details == {"field": "quarter", "value": "2025-Q5", "constraint": "YYYY-Qn"}
        assert error.recoverable is False

    def test_caught_as_base(self):
        with pytest.raises(IftaError):
            raise ValidationError("bad input", field="trips")


class TestRecordRejected:
    def test_always_recoverable(self):
        error = RecordRejected("gallons is required", reason="missing_field", field="gallons")

        assert error.recoverable is True
        assert error.reason == "missing_field"
        assert error.details == {"reason": "missing_field", "field": "gallons"}


class TestConfigurationError:
    def test_details_populated(self):
        error = ConfigurationError(
            "Invalid configuration",
            config_key="reconcile.threshold",
            details={"error_count": 1},
        )

        assert error.details == {"error_count": 1, "config_key": "reconcile.threshold"}
        assert str(error) == "Invalid configuration"
        assert error.recoverable is False
