"""Configuration system for the IFTA reconciliation engine.

This module provides Pydantic Settings-based configuration with environment
variable support and sensible defaults for normalization, reconciliation
and presentation.

Usage:
    from ifta_core.config import IftaConfig

    # Load from environment variables and .env file
    config = load_config()

    # Access reconciliation settings
    print(config.reconcile.threshold)

    # Access normalization settings
    print(config.normalize.eligible_fuel_types)
"""

from decimal import Decimal
from typing import Any

from pydantic import Field, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from .exceptions import ConfigurationError


class NormalizationConfig(BaseSettings):
    """Record normalization settings.

    Environment Variables:
        IFTA_NORMALIZE_SEGMENT_TOLERANCE: Allowed gap between a trip's stated
            total miles and the sum of its segments
        IFTA_NORMALIZE_ELIGIBLE_FUEL_TYPES: JSON list of tax-relevant fuel types
        IFTA_NORMALIZE_REJECT_OTHER_QUARTERS: Reject rows belonging to a
            quarter other than the one being reported
    """

    model_config = SettingsConfigDict(
        env_prefix="IFTA_NORMALIZE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    segment_tolerance: Decimal = Field(
        default=Decimal("0.01"),
        ge=Decimal("0"),
        description="Maximum difference between stated total miles and segment sum",
    )
    eligible_fuel_types: list[str] = Field(
        default_factory=lambda: ["diesel", "gasoline"],
        description="Fuel types that participate in IFTA reporting",
    )
    reject_other_quarters: bool = Field(
        default=True,
        description="Quarantine records whose quarter differs from the reporting quarter",
    )

    @field_validator("eligible_fuel_types")
    @classmethod
    def normalize_fuel_types(cls, v: list[str]) -> list[str]:
        """Lowercase fuel types and require at least one."""
        cleaned = sorted({t.strip().lower() for t in v if t and t.strip()})
        if not cleaned:
            raise ValueError("At least one eligible fuel type is required")
        return cleaned


class ReconciliationConfig(BaseSettings):
    """Discrepancy detection settings.

    Thresholds are relative differences (0.05 = 5%).

    Environment Variables:
        IFTA_RECONCILE_THRESHOLD: Gap above which a fuel-based mismatch is flagged
        IFTA_RECONCILE_HIGH_SEVERITY_THRESHOLD: Gap above which severity escalates
        IFTA_RECONCILE_TRACKER_THRESHOLD: Gap above which a tracker mismatch is flagged
        IFTA_RECONCILE_MIN_PLAUSIBLE_MPG: Lowest fleet MPG not flagged as implausible
        IFTA_RECONCILE_MAX_PLAUSIBLE_MPG: Highest fleet MPG not flagged as implausible
    """

    model_config = SettingsConfigDict(
        env_prefix="IFTA_RECONCILE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    threshold: Decimal = Field(
        default=Decimal("0.05"),
        gt=Decimal("0"),
        le=Decimal("1"),
        description="Relative gap that triggers a fuel-implied mileage discrepancy",
    )
    high_severity_threshold: Decimal = Field(
        default=Decimal("0.25"),
        gt=Decimal("0"),
        description="Relative gap at which a discrepancy is escalated",
    )
    tracker_threshold: Decimal = Field(
        default=Decimal("0.02"),
        gt=Decimal("0"),
        le=Decimal("1"),
        description="Relative gap that triggers a tracker mileage discrepancy",
    )
    min_plausible_mpg: Decimal = Field(
        default=Decimal("3"),
        ge=Decimal("0"),
        description="Fleet MPG below this is flagged as implausible",
    )
    max_plausible_mpg: Decimal = Field(
        default=Decimal("15"),
        gt=Decimal("0"),
        description="Fleet MPG above this is flagged as implausible",
    )

    @model_validator(mode="after")
    def check_ordering(self) -> "ReconciliationConfig":
        """Escalation threshold must not sit below the base threshold."""
        if self.high_severity_threshold < self.threshold:
            raise ValueError(
                f"high_severity_threshold ({self.high_severity_threshold}) "
                f"must be at least threshold ({self.threshold})"
            )
        if self.max_plausible_mpg <= self.min_plausible_mpg:
            raise ValueError(
                f"max_plausible_mpg ({self.max_plausible_mpg}) "
                f"must be above min_plausible_mpg ({self.min_plausible_mpg})"
            )
        return self


class PresentationConfig(BaseSettings):
    """Decimal places used when a summary is rendered for export.

    The engine never rounds; these only apply in ifta_core.report.
    """

    model_config = SettingsConfigDict(
        env_prefix="IFTA_PRESENTATION_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    miles_places: int = Field(default=0, ge=0, le=6)
    gallons_places: int = Field(default=3, ge=0, le=6)
    mpg_places: int = Field(default=2, ge=0, le=6)
    cost_places: int = Field(default=2, ge=0, le=6)


class IftaConfig(BaseSettings):
    """Root configuration for the IFTA engine.

    Environment Variables:
        IFTA_ENV: Environment name (development, staging, production, test)

    Example:
        # Load all configuration from environment
        config = IftaConfig()

        # Override specific settings
        config = IftaConfig(
            reconcile=ReconciliationConfig(threshold=Decimal("0.10")),
        )
    """

    model_config = SettingsConfigDict(
        env_prefix="IFTA_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    env: str = Field(
        default="development",
        description="Environment name (development, staging, production)",
    )

    normalize: NormalizationConfig = Field(default_factory=NormalizationConfig)
    reconcile: ReconciliationConfig = Field(default_factory=ReconciliationConfig)
    presentation: PresentationConfig = Field(default_factory=PresentationConfig)

    @field_validator("env")
    @classmethod
    def validate_env(cls, v: str) -> str:
        """Validate environment name."""
        valid_envs = {"development", "staging", "production", "test"}
        v_lower = v.lower().strip()
        if v_lower not in valid_envs:
            raise ValueError(f"Invalid environment: {v}. Must be one of: {valid_envs}")
        return v_lower

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.env == "production"


def load_config(**overrides: Any) -> IftaConfig:
    """Load the root configuration from the environment and .env file.

    Constructing the settings classes directly raises pydantic's
    ValidationError for any bad value, including the cross-field checks.
    This wraps every such failure in a single ConfigurationError.

    Args:
        **overrides: Field values that take precedence over the environment

    Raises:
        ConfigurationError: A setting is malformed or inconsistent
    """
    try:
        return IftaConfig(**overrides)
    except PydanticValidationError as exc:
        first = exc.errors()[0]
        location = ".".join(str(part) for part in first["loc"])
        raise ConfigurationError(
            f"Invalid configuration: {first['msg']}",
            config_key=location or exc.title,
            details={"error_count": exc.error_count()},
        ) from exc
