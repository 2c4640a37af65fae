"""Shared fixtures: the Q1 2025 two-jurisdiction scenario for vehicle V1."""

from decimal import Decimal

import pytest

from ifta_core.config import IftaConfig


@pytest.fixture
def config() -> IftaConfig:
    """Default configuration, isolated from the process environment."""
    return IftaConfig(env="test")


@pytest.fixture
def worked_trips() -> list[dict]:
    """TX-only 500 mi and OK-only 300 mi."""
    return [
        {
            "id": "trip-tx",
            "vehicle_id": "V1",
            "quarter": "2025-Q1",
            "date": "2025-01-15",
            "segments": [{"jurisdiction": "TX", "miles": "500"}],
        },
        {
            "id": "trip-ok",
            "vehicle_id": "V1",
            "quarter": "2025-Q1",
            "date": "2025-02-10",
            "segments": [{"jurisdiction": "OK", "miles": "300"}],
        },
    ]


@pytest.fixture
def worked_fuel() -> list[dict]:
    """TX 60 gal and OK 40 gal of diesel."""
    return [
        {
            "id": "fuel-tx",
            "vehicle_id": "V1",
            "quarter": "2025-Q1",
            "jurisdiction": "TX",
            "gallons": "60",
            "fuel_type": "diesel",
            "cost": "210.00",
            "date": "2025-01-14",
        },
        {
            "id": "fuel-ok",
            "vehicle_id": "V1",
            "quarter": "2025-Q1",
            "jurisdiction": "OK",
            "gallons": "40",
            "fuel_type": "diesel",
            "cost": "136.00",
            "date": "2025-02-09",
        },
    ]


@pytest.fixture
def short_fuel(worked_fuel: list[dict]) -> list[dict]:
    """Same purchases, but only 5 gal bought in OK."""
    fuel = [dict(entry) for entry in worked_fuel]
    fuel[1]["gallons"] = "5"
    return fuel


@pytest.fixture
def zero() -> Decimal:
    return Decimal("0")
