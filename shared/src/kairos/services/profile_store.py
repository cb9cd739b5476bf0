"""Birth profile lookup for personalized timing."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any, Protocol

from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from kairos.models import BirthProfile
from kairos.schemas.timing import CelestialPosition

logger = logging.getLogger(__name__)


class BirthProfileStore(Protocol):
    """Natal positions by user. ``None`` means personalization is off, not an error."""

    async def get_profile(self, user_id: str) -> dict[str, CelestialPosition] | None: ...


def natal_positions_from_chart(chart: Any) -> dict[str, CelestialPosition]:
    """Extract natal positions from a stored chart payload.

    Accepts either ``{"positions": [{"body": ..., "longitude": ...}, ...]}``
    or ``{"positions": {"sun": {"longitude": ...}, ...}}``.
    """
    if not isinstance(chart, dict):
        return {}
    raw = chart.get("positions", [])
    if isinstance(raw, dict):
        raw = [{"body": name, **data} for name, data in raw.items() if isinstance(data, dict)]
    if not isinstance(raw, list):
        return {}

    positions: dict[str, CelestialPosition] = {}
    for item in raw:
        if not isinstance(item, dict):
            continue
        body = str(item.get("body", "")).strip().lower()
        if not body or item.get("longitude") is None:
            continue
        try:
            positions[body] = CelestialPosition(
                body=body,
                longitude=float(item["longitude"]) % 360.0,
                latitude=float(item.get("latitude", 0.0) or 0.0),
                distance=float(item.get("distance", 0.0) or 0.0),
                speed=float(item.get("speed", item.get("speed_deg_day", 0.0)) or 0.0),
            )
        except (TypeError, ValueError, ValidationError):
            logger.warning("Skipping malformed natal position for %s", body)
    return positions


class SqlBirthProfileStore:
    """Reads ``birth_profiles.natal_positions``."""

    def __init__(self, session_factory: Callable[[], async_sessionmaker[AsyncSession]]) -> None:
        self._session_factory = session_factory

    async def get_profile(self, user_id: str) -> dict[str, CelestialPosition] | None:
        factory = self._session_factory()
        try:
            async with factory() as session:
                result = await session.execute(
                    select(BirthProfile.natal_positions).where(BirthProfile.user_id == user_id)
                )
                chart = result.scalars().first()
        except Exception:
            logger.exception("Birth profile lookup failed for user %s", user_id)
            return None
        positions = natal_positions_from_chart(chart)
        return positions or None
