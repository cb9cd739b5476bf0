"""Planetary strength from dignity, sign placement and natal contacts."""

from __future__ import annotations

from collections.abc import Mapping, Sequence

from kairos.schemas.timing import CelestialPosition

from ephemeris.aspects import angular_distance, classify_relationship
from ephemeris.bodies import ASPECT_TABLE, DIGNITIES, AspectDefinition, Dignity

BASE_STRENGTH = 0.5
EXALTATION_ORB = 5.0
DETRIMENT_ORB = 10.0
FALL_ORB = 10.0
EXALTATION_BONUS = 0.5
DETRIMENT_PENALTY = -0.3
FALL_PENALTY = -0.5
SEGMENT_WEIGHT = 0.2
NATAL_WEIGHT = 0.3


def dignity_adjustment(
    body: str,
    longitude: float,
    dignities: Mapping[str, Dignity] = DIGNITIES,
) -> float:
    """Exaltation bonus or detriment/fall penalty; checked in that order."""
    dignity = dignities.get(body)
    if dignity is None:
        return 0.0
    if angular_distance(longitude, dignity.exaltation) <= EXALTATION_ORB:
        return EXALTATION_BONUS
    if angular_distance(longitude, dignity.detriment) <= DETRIMENT_ORB:
        return DETRIMENT_PENALTY
    if angular_distance(longitude, dignity.fall) <= FALL_ORB:
        return FALL_PENALTY
    return 0.0


def segment_adjustment(sign_index: int, segment_weights: Mapping[int, float] | None) -> float:
    if not segment_weights:
        return 0.0
    weight = max(0.0, min(1.0, float(segment_weights.get(sign_index, 0.0))))
    return weight * SEGMENT_WEIGHT


def natal_adjustment(
    position: CelestialPosition,
    natal: Mapping[str, CelestialPosition] | None,
    table: Sequence[AspectDefinition] = ASPECT_TABLE,
) -> float:
    """Relationship strength between a transiting body and its own natal placement."""
    if not natal or position.body not in natal:
        return 0.0
    relationship = classify_relationship(
        position.longitude,
        natal[position.body].longitude,
        body1=position.body,
        body2=position.body,
        table=table,
    )
    if relationship is None:
        return 0.0
    return relationship.strength * NATAL_WEIGHT


def planetary_strength(
    position: CelestialPosition,
    *,
    segment_weights: Mapping[int, float] | None = None,
    natal: Mapping[str, CelestialPosition] | None = None,
    dignities: Mapping[str, Dignity] = DIGNITIES,
    table: Sequence[AspectDefinition] = ASPECT_TABLE,
) -> float:
    """Combine dignity, segment weight and natal contact into a 0-1 strength."""
    strength = BASE_STRENGTH
    strength += dignity_adjustment(position.body, position.longitude, dignities)
    strength += segment_adjustment(position.sign_index, segment_weights)
    strength += natal_adjustment(position, natal, table)
    return max(0.0, min(1.0, strength))
