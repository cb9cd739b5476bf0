"""Planetary hours from fixed local sunrise and sunset times."""

from __future__ import annotations

from datetime import UTC, date, datetime, time, timedelta, tzinfo

from kairos.schemas.timing import PlanetaryHour

# Chaldean order rotated to start at the Sun. The weekday picks the first
# hour: Sunday index 0, Monday index 1, through Saturday index 6.
HOUR_ORDER: tuple[str, ...] = ("sun", "venus", "mercury", "moon", "saturn", "jupiter", "mars")

DEFAULT_SUNRISE = time(6, 30)
DEFAULT_SUNSET = time(18, 30)


def parse_clock(value: str | time) -> time:
    """Parse ``HH:MM`` into a time; time objects pass through."""
    if isinstance(value, time):
        return value
    return time.fromisoformat(value.strip())


def _seed(day: date) -> int:
    # date.weekday() counts from Monday
    return (day.weekday() + 1) % len(HOUR_ORDER)


def day_ruler(day: date) -> str:
    """Ruler of the first hour after sunrise."""
    return HOUR_ORDER[_seed(day)]


def hour_sequence(day: date) -> list[str]:
    """The 24 hour rulers of a day, cycling through ``HOUR_ORDER`` from the day ruler."""
    first = _seed(day)
    return [HOUR_ORDER[(first + i) % len(HOUR_ORDER)] for i in range(24)]


def _local_instant(day: date, clock: time, tz: tzinfo) -> datetime:
    return datetime.combine(day, clock, tzinfo=tz).astimezone(UTC)


def planetary_hour(
    instant: datetime,
    tz: tzinfo,
    sunrise: time = DEFAULT_SUNRISE,
    sunset: time = DEFAULT_SUNSET,
) -> PlanetaryHour:
    """Planetary hour containing ``instant``.

    Daylight runs sunrise to sunset and night runs sunset to the next sunrise,
    each split into 12 equal hours. Instants before sunrise belong to the
    previous day's night.
    """
    moment = instant.astimezone(UTC)
    local_day = instant.astimezone(tz).date()
    if moment < _local_instant(local_day, sunrise, tz):
        local_day -= timedelta(days=1)

    rise = _local_instant(local_day, sunrise, tz)
    dusk = _local_instant(local_day, sunset, tz)
    next_rise = _local_instant(local_day + timedelta(days=1), sunrise, tz)

    if moment < dusk:
        segment_start, segment_end, offset, is_day = rise, dusk, 0, True
    else:
        segment_start, segment_end, offset, is_day = dusk, next_rise, 12, False

    length = (segment_end - segment_start) / 12
    slot = min(int((moment - segment_start) / length), 11)
    index = offset + slot
    start = segment_start + length * slot

    return PlanetaryHour(
        body=hour_sequence(local_day)[index],
        index=index,
        start=start,
        end=start + length,
        is_day=is_day,
        day_ruler=day_ruler(local_day),
    )
