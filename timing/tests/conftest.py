"""Timing test configuration."""

from datetime import UTC, datetime
from unittest.mock import AsyncMock

import pytest
from ephemeris.calculator import PositionUnavailableError
from kairos.config import Settings
from kairos.schemas.timing import CelestialPosition

NOW = datetime(2026, 10, 19, 0, 0, tzinfo=UTC)

# (longitude, speed) per body. Sun 340 / Moon 59.6 is a waxing crescent.
# The Moon leaves Taurus 48 minutes after any sampled instant and its last
# contact (conjunct Uranus) perfects 12 minutes in, so no void window
# contains a whole hour.
DIRECT_SKY = {
    "sun": (340.0, 1.0),
    "moon": (59.6, 12.0),
    "mercury": (200.0, 1.2),
    "venus": (155.0, 1.1),
    "mars": (250.0, 0.6),
    "jupiter": (100.0, 0.1),
    "saturn": (310.0, 0.05),
    "uranus": (59.7, 0.0),
    "neptune": (335.0, 0.02),
    "pluto": (280.0, 0.01),
}

RETROGRADE_SKY = {**DIRECT_SKY, "mercury": (200.0, -0.5)}


class FakeSource:
    """Position source returning the same sky for every instant."""

    def __init__(self, sky: dict[str, tuple[float, float]], *, missing: set[str] | None = None):
        self.sky = dict(sky)
        self.missing = missing or set()
        self.calls = 0

    async def position(self, instant, body):
        self.calls += 1
        if body in self.missing or body not in self.sky:
            raise PositionUnavailableError(f"No position for {body}")
        longitude, speed = self.sky[body]
        return CelestialPosition(body=body, longitude=longitude, speed=speed)


class FakeCache:
    """Dict-backed result cache."""

    def __init__(self):
        self.store: dict[str, dict] = {}
        self.ttls: dict[str, int] = {}

    async def get(self, key):
        return self.store.get(key)

    async def set(self, key, value, ttl_seconds):
        self.store[key] = value
        self.ttls[key] = ttl_seconds


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def settings():
    return Settings(_env_file=None, cache_enabled=True, max_recommendations=100)


@pytest.fixture
def direct_source():
    return FakeSource(DIRECT_SKY)


@pytest.fixture
def retrograde_source():
    return FakeSource(RETROGRADE_SKY)


@pytest.fixture
def empty_source():
    return FakeSource({})


@pytest.fixture
def partial_source():
    return FakeSource(DIRECT_SKY, missing={"moon"})


@pytest.fixture
def fake_cache():
    return FakeCache()


@pytest.fixture
def natal_positions():
    return {
        "jupiter": CelestialPosition(body="jupiter", longitude=100.0),
        "sun": CelestialPosition(body="sun", longitude=220.0),
        "mercury": CelestialPosition(body="mercury", longitude=200.0),
    }


@pytest.fixture
def profile_store(natal_positions):
    store = AsyncMock()

    async def _get_profile(user_id):
        return natal_positions if user_id == "user-1" else None

    store.get_profile.side_effect = _get_profile
    return store


@pytest.fixture
def direct_positions():
    return {
        body: CelestialPosition(body=body, longitude=longitude, speed=speed)
        for body, (longitude, speed) in DIRECT_SKY.items()
    }
