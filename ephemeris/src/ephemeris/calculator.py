"""Position source backed by the Swiss Ephemeris."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from datetime import UTC, datetime
from typing import Protocol

import swisseph as swe
from kairos.schemas.timing import CelestialPosition

from ephemeris.bodies import BODY_IDS, TIMING_BODIES, normalize_longitude

logger = logging.getLogger(__name__)


class PositionUnavailableError(RuntimeError):
    """A body's position could not be computed for an instant."""


class PositionSource(Protocol):
    async def position(self, instant: datetime, body: str) -> CelestialPosition: ...


def datetime_to_jd(dt: datetime) -> float:
    """Convert datetime to Julian Day number (UT)."""
    utc = dt.astimezone(UTC)
    return swe.julday(utc.year, utc.month, utc.day, utc.hour + utc.minute / 60.0 + utc.second / 3600.0)


class SwissEphemerisSource:
    """Geocentric tropical positions from pyswisseph.

    Uses the Swiss ephemeris files when available and falls back to the
    built-in Moshier model, which needs no external files.
    """

    def __init__(self, ephe_path: str = "") -> None:
        path = str(ephe_path or "").strip()
        swe.set_ephe_path(path if path else None)

    def _calculate(self, jd: float, body: str, body_id: int) -> CelestialPosition:
        # SEFLG_SPEED for speed calculation
        flags = swe.FLG_SWIEPH | swe.FLG_SPEED
        try:
            result, _ = swe.calc_ut(jd, body_id, flags)
        except Exception:
            try:
                flags = swe.FLG_MOSEPH | swe.FLG_SPEED
                result, _ = swe.calc_ut(jd, body_id, flags)
            except Exception as exc:
                raise PositionUnavailableError(f"swisseph failed for {body}: {exc}") from exc

        return CelestialPosition(
            body=body,
            longitude=normalize_longitude(result[0]),
            latitude=float(result[1]),
            distance=float(result[2]),
            speed=float(result[3]),
        )

    async def position(self, instant: datetime, body: str) -> CelestialPosition:
        body_id = BODY_IDS.get(body)
        if body_id is None:
            raise PositionUnavailableError(f"Unknown body: {body}")
        jd = datetime_to_jd(instant)
        return await asyncio.to_thread(self._calculate, jd, body, body_id)


async def positions_at(
    source: PositionSource,
    instant: datetime,
    bodies: Iterable[str] = TIMING_BODIES,
) -> dict[str, CelestialPosition]:
    """Positions of every body available at ``instant``.

    A failure for one body, whatever its type, is logged and that body is
    skipped. Only non-``Exception`` errors such as cancellation propagate.
    """
    names = list(bodies)
    results = await asyncio.gather(
        *(source.position(instant, name) for name in names),
        return_exceptions=True,
    )
    positions: dict[str, CelestialPosition] = {}
    for name, result in zip(names, results):
        if isinstance(result, PositionUnavailableError):
            logger.warning("Position unavailable for %s at %s: %s", name, instant.isoformat(), result)
            continue
        if isinstance(result, Exception):
            logger.warning(
                "Position source failed for %s at %s: %s: %s",
                name,
                instant.isoformat(),
                type(result).__name__,
                result,
            )
            continue
        if isinstance(result, BaseException):
            raise result
        positions[name] = result
    return positions
