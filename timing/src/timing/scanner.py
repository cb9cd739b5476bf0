"""First pass: score every hour of the horizon against the activity profile."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, date, datetime, time, timedelta, tzinfo

from ephemeris.aspects import classify_relationship
from ephemeris.calculator import PositionSource, positions_at
from ephemeris.hours import parse_clock, planetary_hour
from ephemeris.lunar import calculate_void_window, phase_from_positions, retrograde_bodies
from ephemeris.strength import planetary_strength
from kairos.config import Settings, get_settings
from kairos.schemas.timing import CelestialPosition, PhaseName, TimeWindow, VoidWindow

from timing.profiles import ActivityProfile, TimingTables, default_tables

logger = logging.getLogger(__name__)

BASE_SCORE = 0.5
RULING_BODY_BONUS = 0.3
PHASE_WEIGHT = 0.2
STRENGTH_WEIGHT = 0.2
VOID_PENALTY = -0.3
PREFERRED_HOUR_BONUS = 0.1
RETROGRADE_STRENGTH_PENALTY = 0.2
PERSONALIZATION_WEIGHT = 0.1
VOID_SAMPLE_HOURS = (0, 12)
HOUR = timedelta(hours=1)


class PositionSourceOutageError(RuntimeError):
    """No position could be obtained for any instant of the horizon."""


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


def window_id(day: date, local: datetime) -> str:
    """``YYYY-MM-DD_H`` by local hour; the repeated hour after a fall-back change gets a ``b`` suffix."""
    suffix = "b" if local.fold else ""
    return f"{day.isoformat()}_{local.hour}{suffix}"


@dataclass
class DayScan:
    day: date
    windows: list[TimeWindow] = field(default_factory=list)
    sampled_hours: int = 0


def phase_suitability(profile: ActivityProfile, tables: TimingTables, phase_name: PhaseName) -> float:
    if phase_name in profile.favorable_phases:
        return min(1.0, 0.5 + 0.5 * tables.phase_confidence(phase_name))
    return 0.5


def strength_suitability(
    profile: ActivityProfile,
    tables: TimingTables,
    positions: Mapping[str, CelestialPosition],
    impacted: list[str],
    natal: Mapping[str, CelestialPosition] | None = None,
) -> float:
    """Mean analyzer strength of the favorable bodies, less a retrograde penalty."""
    strengths = [
        planetary_strength(
            positions[body],
            segment_weights=profile.segment_weights,
            natal=natal,
            dignities=tables.dignities,
            table=tables.aspects,
        )
        for body in profile.favorable_bodies
        if body in positions
    ]
    mean = sum(strengths) / len(strengths) if strengths else 0.5
    return clamp(mean - RETROGRADE_STRENGTH_PENALTY * len(impacted))


def personalization_enhancement(
    profile: ActivityProfile,
    tables: TimingTables,
    positions: Mapping[str, CelestialPosition],
    natal: Mapping[str, CelestialPosition],
) -> float:
    """0.1 x mean relationship strength between favorable bodies and their natal places."""
    strengths: list[float] = []
    for body in profile.favorable_bodies:
        if body not in positions or body not in natal:
            continue
        relationship = classify_relationship(
            positions[body].longitude,
            natal[body].longitude,
            body1=body,
            body2=body,
            table=tables.aspects,
        )
        strengths.append(relationship.strength if relationship is not None else 0.0)
    if not strengths:
        return 0.0
    return round(PERSONALIZATION_WEIGHT * sum(strengths) / len(strengths), 6)


class TimeWindowScanner:
    """Scans each local hour of each day in the horizon.

    Days are scanned concurrently, bounded by ``scan_concurrency``. Hours
    scoring below the confidence threshold are dropped.
    """

    def __init__(
        self,
        source: PositionSource,
        *,
        tables: TimingTables | None = None,
        settings: Settings | None = None,
    ) -> None:
        settings = settings or get_settings()
        self._source = source
        self._tables = tables or default_tables()
        self._threshold = settings.confidence_threshold
        self._void_max_hours = settings.void_window_max_hours
        self._sunrise = parse_clock(settings.sunrise_local)
        self._sunset = parse_clock(settings.sunset_local)
        self._concurrency = max(1, settings.scan_concurrency)

    async def scan(
        self,
        *,
        activity: str,
        profile: ActivityProfile,
        start_day: date,
        days: int,
        tz: tzinfo,
        natal: Mapping[str, CelestialPosition] | None = None,
    ) -> list[TimeWindow]:
        semaphore = asyncio.Semaphore(self._concurrency)

        async def _bounded(offset: int) -> DayScan:
            async with semaphore:
                return await self._scan_day(
                    activity=activity,
                    profile=profile,
                    day=start_day + timedelta(days=offset),
                    offset=offset,
                    tz=tz,
                    natal=natal,
                )

        results = await asyncio.gather(*(_bounded(offset) for offset in range(days)))

        if days > 0 and not any(result.sampled_hours for result in results):
            raise PositionSourceOutageError(
                f"Position source returned nothing for {days} day(s) from {start_day.isoformat()}"
            )

        windows = [window for result in results for window in result.windows]
        logger.info(
            "Scanned %d day(s) for %s/%s: %d window(s) retained",
            days,
            profile.category.value,
            activity,
            len(windows),
        )
        return windows

    @staticmethod
    def day_instants(day: date, tz: tzinfo) -> list[datetime]:
        """UTC start of every local hour of ``day``.

        Counted from local midnight to the next one, so a day has 23 or 25
        hours across a daylight-saving change.
        """
        start = datetime.combine(day, time(0), tzinfo=tz).astimezone(UTC)
        end = datetime.combine(day + timedelta(days=1), time(0), tzinfo=tz).astimezone(UTC)
        count = int((end - start) / HOUR)
        return [start + HOUR * i for i in range(count)]

    async def _scan_day(
        self,
        *,
        activity: str,
        profile: ActivityProfile,
        day: date,
        offset: int,
        tz: tzinfo,
        natal: Mapping[str, CelestialPosition] | None,
    ) -> DayScan:
        result = DayScan(day=day)

        hourly: list[tuple[datetime, datetime, dict[str, CelestialPosition]]] = []
        for instant in self.day_instants(day, tz):
            positions = await positions_at(self._source, instant)
            if positions:
                result.sampled_hours += 1
            hourly.append((instant.astimezone(tz), instant, positions))

        voids = self._void_windows(hourly)

        for local, instant, positions in hourly:
            if not positions:
                continue
            window = self._score_hour(
                activity=activity,
                profile=profile,
                day=day,
                local=local,
                offset=offset,
                instant=instant,
                tz=tz,
                positions=positions,
                voids=voids,
                natal=natal,
            )
            if window is not None:
                result.windows.append(window)
        return result

    def _void_windows(
        self,
        hourly: list[tuple[datetime, datetime, dict[str, CelestialPosition]]],
    ) -> list[VoidWindow]:
        voids: list[VoidWindow] = []
        for local, instant, positions in hourly:
            if local.hour not in VOID_SAMPLE_HOURS or local.fold or "moon" not in positions:
                continue
            void = calculate_void_window(
                positions["moon"],
                positions,
                instant,
                table=self._tables.aspects,
                max_hours=self._void_max_hours,
            )
            if void is None:
                continue
            if any(void.start < kept.end and kept.start < void.end for kept in voids):
                continue
            voids.append(void)
        return voids

    def _score_hour(
        self,
        *,
        activity: str,
        profile: ActivityProfile,
        day: date,
        local: datetime,
        offset: int,
        instant: datetime,
        tz: tzinfo,
        positions: dict[str, CelestialPosition],
        voids: list[VoidWindow],
        natal: Mapping[str, CelestialPosition] | None,
    ) -> TimeWindow | None:
        tables = self._tables
        phase = phase_from_positions(positions)
        ruling = planetary_hour(instant, tz, self._sunrise, self._sunset)
        impacted = retrograde_bodies(positions, profile.avoid_retrograde)
        void = next((v for v in voids if v.contains(instant)), None)

        factors = {
            "base": BASE_SCORE,
            "ruling_body": RULING_BODY_BONUS if tables.body_supports(ruling.body, activity) else 0.0,
            "lunar_phase": PHASE_WEIGHT * phase_suitability(profile, tables, phase.name),
            "planetary_strength": STRENGTH_WEIGHT
            * strength_suitability(profile, tables, positions, impacted, natal),
            "void_window": VOID_PENALTY if void is not None else 0.0,
            "preferred_hour": PREFERRED_HOUR_BONUS if profile.prefers_hour(local.hour) else 0.0,
        }
        factors = {name: round(value, 6) for name, value in factors.items()}
        score = clamp(sum(factors.values()))
        if score < self._threshold:
            return None

        personalization = None
        if natal:
            personalization = personalization_enhancement(profile, tables, positions, natal)

        return TimeWindow(
            id=window_id(day, local),
            start=instant,
            end=instant + HOUR,
            day_offset=offset,
            score=round(score, 6),
            factors=factors,
            phase=phase,
            ruling_body=ruling.body,
            planetary_hour=ruling,
            void_window=void,
            retrograde_bodies=impacted,
            personalization=personalization,
        )
