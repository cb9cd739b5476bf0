"""Angular relationship classification between body longitudes."""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence

from kairos.schemas.timing import AngularRelationship, CelestialPosition

from ephemeris.bodies import ASPECT_TABLE, AspectDefinition

logger = logging.getLogger(__name__)


def angular_distance(lon1: float, lon2: float) -> float:
    """Calculate the shortest angular distance between two longitudes."""
    diff = abs(lon1 - lon2) % 360.0
    if diff > 180.0:
        diff = 360.0 - diff
    return diff


def match_aspect(
    angle: float,
    table: Sequence[AspectDefinition] = ASPECT_TABLE,
) -> tuple[AspectDefinition, float] | None:
    """Return the first table entry containing a normalized angle, with its orb.

    Entries are tried in table order and the first hit wins, even when a later
    entry would be closer.
    """
    for definition in table:
        orb = abs(angle - definition.angle)
        if orb <= definition.tolerance:
            return definition, orb
    return None


def relationship_strength(orb: float, tolerance: float) -> float:
    """Linear decay from 1.0 at the exact angle to 0.0 at the tolerance boundary."""
    if tolerance <= 0:
        return 1.0 if orb == 0 else 0.0
    return max(0.0, min(1.0, (tolerance - orb) / tolerance))


def classify_relationship(
    lon1: float,
    lon2: float,
    *,
    body1: str = "",
    body2: str = "",
    table: Sequence[AspectDefinition] = ASPECT_TABLE,
) -> AngularRelationship | None:
    """Classify the angle between two longitudes, or None outside every tolerance.

    ``applying`` is approximated as "second longitude greater than first"; it
    ignores relative speed.
    """
    angle = angular_distance(lon1, lon2)
    hit = match_aspect(angle, table)
    if hit is None:
        return None
    definition, orb = hit
    return AngularRelationship(
        body1=body1,
        body2=body2,
        type=definition.name,
        angle=round(angle, 6),
        orb=round(orb, 6),
        strength=relationship_strength(orb, definition.tolerance),
        applying=lon2 > lon1,
    )


def find_relationships(
    positions: Mapping[str, CelestialPosition],
    *,
    table: Sequence[AspectDefinition] = ASPECT_TABLE,
    min_strength: float = 0.0,
) -> list[AngularRelationship]:
    """Classify every unordered pair of available bodies.

    Returns relationships sorted by strength, strongest first.
    """
    found: list[AngularRelationship] = []
    bodies = list(positions.keys())
    for i, body1 in enumerate(bodies):
        for body2 in bodies[i + 1:]:
            relationship = classify_relationship(
                positions[body1].longitude,
                positions[body2].longitude,
                body1=body1,
                body2=body2,
                table=table,
            )
            if relationship is not None and relationship.strength >= min_strength:
                found.append(relationship)

    found.sort(key=lambda r: (-r.strength, r.body1, r.body2))
    return found
