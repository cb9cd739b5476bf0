"""Body identifiers, sign data, aspect and dignity tables."""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType

from kairos.schemas.timing import SIGN_NAMES

# Celestial body IDs for pyswisseph
# These map to swisseph constants
BODY_IDS: MappingProxyType[str, int] = MappingProxyType({
    "sun": 0,  # SE_SUN
    "moon": 1,  # SE_MOON
    "mercury": 2,  # SE_MERCURY
    "venus": 3,  # SE_VENUS
    "mars": 4,  # SE_MARS
    "jupiter": 5,  # SE_JUPITER
    "saturn": 6,  # SE_SATURN
    "uranus": 7,  # SE_URANUS
    "neptune": 8,  # SE_NEPTUNE
    "pluto": 9,  # SE_PLUTO
})

# Bodies sampled per instant
TIMING_BODIES: tuple[str, ...] = tuple(BODY_IDS.keys())

# Bodies that can meaningfully be retrograde
RETROGRADE_BODIES: tuple[str, ...] = tuple(b for b in TIMING_BODIES if b not in ("sun", "moon"))

SIGNS: tuple[str, ...] = SIGN_NAMES


@dataclass(frozen=True)
class AspectDefinition:
    name: str
    angle: float
    tolerance: float


# Order matters: the first entry whose tolerance contains the angle wins.
ASPECT_TABLE: tuple[AspectDefinition, ...] = (
    AspectDefinition("conjunction", 0.0, 8.0),
    AspectDefinition("sextile", 60.0, 6.0),
    AspectDefinition("square", 90.0, 8.0),
    AspectDefinition("trine", 120.0, 8.0),
    AspectDefinition("opposition", 180.0, 8.0),
)

HARMONIOUS_ASPECTS = frozenset({"conjunction", "sextile", "trine"})


@dataclass(frozen=True)
class Dignity:
    """Ecliptic longitudes of a body's exaltation, detriment and fall points."""

    exaltation: float
    detriment: float
    fall: float


DIGNITIES: MappingProxyType[str, Dignity] = MappingProxyType({
    "sun": Dignity(exaltation=19.0, detriment=210.0, fall=199.0),
    "moon": Dignity(exaltation=33.0, detriment=240.0, fall=213.0),
    "mercury": Dignity(exaltation=165.0, detriment=267.0, fall=345.0),
    "venus": Dignity(exaltation=357.0, detriment=195.0, fall=177.0),
    "mars": Dignity(exaltation=298.0, detriment=30.0, fall=28.0),
    "jupiter": Dignity(exaltation=105.0, detriment=150.0, fall=298.0),
    "saturn": Dignity(exaltation=201.0, detriment=120.0, fall=19.0),
})


def normalize_longitude(longitude: float) -> float:
    """Wrap a longitude into [0, 360)."""
    value = float(longitude) % 360.0
    # float modulo can round up to exactly 360.0 for tiny negatives
    return 0.0 if value >= 360.0 else value


def longitude_to_sign(longitude: float) -> tuple[str, float]:
    """Convert ecliptic longitude to sign and degree within sign."""
    longitude = normalize_longitude(longitude)
    sign_index = int(longitude / 30.0)
    degree = longitude - (sign_index * 30.0)
    return SIGNS[sign_index], degree


def sign_index(longitude: float) -> int:
    return int(normalize_longitude(longitude) / 30.0)
