"""Lunar phase, retrograde state, and void-of-course calculations."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from datetime import datetime, timedelta

from kairos.schemas.timing import CelestialPosition, CyclicalPhase, PhaseName, VoidWindow

from ephemeris.bodies import ASPECT_TABLE, SIGNS, AspectDefinition, normalize_longitude

logger = logging.getLogger(__name__)

PHASE_WIDTH = 45.0

# Contiguous 45-degree buckets in cycle order, starting at the new moon.
PHASE_SEQUENCE: tuple[PhaseName, ...] = (
    PhaseName.NEW_MOON,
    PhaseName.WAXING_CRESCENT,
    PhaseName.FIRST_QUARTER,
    PhaseName.WAXING_GIBBOUS,
    PhaseName.FULL_MOON,
    PhaseName.WANING_GIBBOUS,
    PhaseName.LAST_QUARTER,
    PhaseName.WANING_CRESCENT,
)

UNKNOWN_PHASE = CyclicalPhase(name=PhaseName.UNKNOWN, angle=0.0, illumination=0.5)

DEFAULT_VOID_CEILING_HOURS = 48.0


def phase_angle(sun_longitude: float, moon_longitude: float) -> float:
    """Moon's elongation from the Sun in [0, 360)."""
    return normalize_longitude(moon_longitude - sun_longitude + 360.0)


def phase_for_angle(angle: float) -> PhaseName:
    index = int(normalize_longitude(angle) // PHASE_WIDTH)
    return PHASE_SEQUENCE[min(index, len(PHASE_SEQUENCE) - 1)]


def illumination_for(name: PhaseName, angle: float) -> float:
    if name in (PhaseName.FIRST_QUARTER, PhaseName.LAST_QUARTER):
        return 0.5
    if name == PhaseName.FULL_MOON:
        return 1.0
    if name in (PhaseName.NEW_MOON, PhaseName.WAXING_CRESCENT, PhaseName.WAXING_GIBBOUS):
        return angle / 180.0
    if name in (PhaseName.WANING_GIBBOUS, PhaseName.WANING_CRESCENT):
        return (360.0 - angle) / 180.0
    return 0.5


def calculate_lunar_phase(sun_longitude: float, moon_longitude: float) -> CyclicalPhase:
    """Calculate the lunar phase from Sun and Moon longitudes."""
    angle = phase_angle(sun_longitude, moon_longitude)
    name = phase_for_angle(angle)
    illumination = max(0.0, min(1.0, illumination_for(name, angle)))
    return CyclicalPhase(name=name, angle=round(angle, 6), illumination=round(illumination, 6))


def phase_from_positions(positions: Mapping[str, CelestialPosition]) -> CyclicalPhase:
    """Phase for an instant, or the neutral fallback when Sun or Moon is missing."""
    sun = positions.get("sun")
    moon = positions.get("moon")
    if sun is None or moon is None:
        logger.warning("Lunar phase unavailable: sun or moon position missing")
        return UNKNOWN_PHASE
    return calculate_lunar_phase(sun.longitude, moon.longitude)


def is_retrograde(position: CelestialPosition) -> bool:
    return position.speed < 0


def retrograde_bodies(
    positions: Mapping[str, CelestialPosition],
    bodies: Iterable[str] | None = None,
) -> list[str]:
    """Bodies among ``bodies`` (default: all) that are currently retrograde."""
    names = list(bodies) if bodies is not None else list(positions.keys())
    return [name for name in names if name in positions and is_retrograde(positions[name])]


def calculate_next_ingress(moon: CelestialPosition, base_dt: datetime) -> tuple[datetime, str] | None:
    """When the Moon enters its next sign, and which sign.

    Returns None when the Moon is not moving forward.
    """
    if moon.speed <= 0:
        return None
    days_to_ingress = (30.0 - moon.degree) / moon.speed
    next_sign = SIGNS[(moon.sign_index + 1) % 12]
    return base_dt + timedelta(days=days_to_ingress), next_sign


def _last_exact_offset(
    moon: CelestialPosition,
    other: CelestialPosition,
    horizon_days: float,
    table: Sequence[AspectDefinition],
) -> float | None:
    """Latest day offset <= horizon at which the Moon perfects any aspect to ``other``.

    Both bodies are projected linearly by their angular speed. Offsets are
    negative when the latest perfection already happened.
    """
    closing_speed = moon.speed - other.speed
    if closing_speed <= 0:
        return None
    separation = normalize_longitude(moon.longitude - other.longitude)
    cycle_days = 360.0 / closing_speed

    latest: float | None = None
    for definition in table:
        for target in {definition.angle % 360.0, (360.0 - definition.angle) % 360.0}:
            offset = ((target - separation) % 360.0) / closing_speed
            if offset > horizon_days:
                offset -= cycle_days
            if latest is None or offset > latest:
                latest = offset
    return latest


def void_span(
    moon: CelestialPosition,
    others: Mapping[str, CelestialPosition],
    at: datetime,
    table: Sequence[AspectDefinition] = ASPECT_TABLE,
) -> tuple[datetime, datetime, str] | None:
    """Raw void-of-course span for the Moon's current sign, unvalidated.

    The span runs from the last relationship the Moon perfects in its current
    sign to the instant it enters the next sign.
    """
    if moon.speed <= 0:
        return None
    days_to_ingress = (30.0 - moon.degree) / moon.speed
    days_since_entry = moon.degree / moon.speed

    last: float | None = None
    for name, other in others.items():
        if name == moon.body:
            continue
        offset = _last_exact_offset(moon, other, days_to_ingress, table)
        if offset is not None and (last is None or offset > last):
            last = offset
    if last is None:
        return None

    start_offset = max(last, -days_since_entry)
    start = at + timedelta(days=start_offset)
    end = at + timedelta(days=days_to_ingress)
    return start, end, SIGNS[moon.sign_index]


def void_significance(duration_hours: float) -> str:
    if duration_hours < 1:
        return "minor"
    if duration_hours < 6:
        return "moderate"
    if duration_hours < 12:
        return "significant"
    return "major"


def calculate_void_window(
    moon: CelestialPosition,
    others: Mapping[str, CelestialPosition],
    at: datetime,
    *,
    table: Sequence[AspectDefinition] = ASPECT_TABLE,
    max_hours: float = DEFAULT_VOID_CEILING_HOURS,
) -> VoidWindow | None:
    """Void-of-course window for the Moon's current sign.

    Spans that are not strictly between zero and ``max_hours`` are treated as
    calculation failures and dropped.
    """
    span = void_span(moon, others, at, table)
    if span is None:
        return None
    start, end, sign = span
    duration_hours = (end - start).total_seconds() / 3600.0
    if duration_hours <= 0 or duration_hours >= max_hours:
        logger.debug("Discarding implausible void window of %.2f hours in %s", duration_hours, sign)
        return None
    return VoidWindow(
        start=start,
        end=end,
        duration_hours=round(duration_hours, 4),
        sign=sign,
        significance=void_significance(duration_hours),
    )
