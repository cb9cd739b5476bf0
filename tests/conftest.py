"""Integration test configuration."""

from datetime import UTC, datetime

import pytest
from ephemeris.calculator import PositionUnavailableError
from kairos.config import Settings
from kairos.schemas.timing import CelestialPosition


class StaticSky:
    """Position source that reports one fixed sky for every instant."""

    def __init__(self, sky: dict[str, dict]):
        self._sky = sky

    async def position(self, instant, body):
        data = self._sky.get(body)
        if data is None:
            raise PositionUnavailableError(f"No position for {body}")
        return CelestialPosition(body=body, **data)


@pytest.fixture
def sample_sky():
    """Waxing crescent Moon late in Taurus, Mercury direct in Libra."""
    return {
        "sun": {"longitude": 340.0, "speed": 1.0},
        "moon": {"longitude": 59.6, "speed": 12.0},
        "mercury": {"longitude": 200.0, "speed": 1.2},
        "venus": {"longitude": 155.0, "speed": 1.1},
        "mars": {"longitude": 250.0, "speed": 0.6},
        "jupiter": {"longitude": 100.0, "speed": 0.1},
        "saturn": {"longitude": 310.0, "speed": 0.05},
        "uranus": {"longitude": 59.7, "speed": 0.0},
        "neptune": {"longitude": 335.0, "speed": 0.02},
        "pluto": {"longitude": 280.0, "speed": 0.01},
    }


@pytest.fixture
def sky_source(sample_sky):
    return StaticSky(sample_sky)


@pytest.fixture
def integration_settings():
    return Settings(_env_file=None, cache_enabled=False, llm_api_key="")


@pytest.fixture
def fixed_now():
    return datetime(2026, 10, 19, 0, 0, tzinfo=UTC)
