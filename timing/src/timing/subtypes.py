"""Subtype analyses: a weighted factor sum per named occasion.

Each analysis reads the sky at a single instant, weighs the strength of its
primary bodies, house baselines and the lunar phase, then scales the sum by
a safety multiplier for the conditions that spoil that occasion.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType

from ephemeris.aspects import classify_relationship
from ephemeris.lunar import calculate_void_window, phase_from_positions
from ephemeris.strength import planetary_strength
from kairos.schemas.timing import ActivityCategory, CelestialPosition, PhaseName

from timing.profiles import ActivityProfile, TimingTables, normalize_activity
from timing.scanner import phase_suitability

MISSING_BODY_STRENGTH = 0.3
# Houses are not cast; every house contributes the same baseline.
HOUSE_STRENGTH = 0.6
CONFIDENCE_CAP = 0.95
EXCELLENT_CONFIDENCE = 0.8
STRONG_BODY = 0.7
HARD_ASPECTS = frozenset({"square", "opposition"})

MERCURY_RETROGRADE_MULTIPLIER = 0.4
CHALLENGING_ASPECT_MULTIPLIER = 0.8
MARS_RETROGRADE_MULTIPLIER = 0.4
VOID_MOON_MULTIPLIER = 0.2
MARS_HARD_ASPECT_FACTOR = 0.5

WAXING = frozenset({PhaseName.WAXING_CRESCENT, PhaseName.FIRST_QUARTER, PhaseName.WAXING_GIBBOUS})
WANING = frozenset({PhaseName.WANING_GIBBOUS, PhaseName.LAST_QUARTER, PhaseName.WANING_CRESCENT})


@dataclass(frozen=True)
class SkyContext:
    positions: Mapping[str, CelestialPosition]
    profile: ActivityProfile
    tables: TimingTables
    at: datetime
    natal: Mapping[str, CelestialPosition] | None = None
    void_max_hours: float = 48.0

    def strength(self, body: str) -> float:
        position = self.positions.get(body)
        if position is None:
            return MISSING_BODY_STRENGTH
        return planetary_strength(
            position,
            segment_weights=self.profile.segment_weights,
            natal=self.natal,
            dignities=self.tables.dignities,
            table=self.tables.aspects,
        )

    def phase(self) -> PhaseName:
        return phase_from_positions(self.positions).name

    def is_retrograde(self, body: str) -> bool:
        position = self.positions.get(body)
        return position is not None and position.retrograde

    def hard_aspects(self, body: str) -> list[str]:
        """Bodies squaring or opposing ``body``."""
        position = self.positions.get(body)
        if position is None:
            return []
        found = []
        for name, other in self.positions.items():
            if name == body:
                continue
            relationship = classify_relationship(
                position.longitude, other.longitude, table=self.tables.aspects
            )
            if relationship is not None and relationship.type in HARD_ASPECTS:
                found.append(name)
        return found

    def moon_is_void(self) -> bool:
        moon = self.positions.get("moon")
        if moon is None:
            return False
        void = calculate_void_window(
            moon, self.positions, self.at, table=self.tables.aspects, max_hours=self.void_max_hours
        )
        return void is not None and void.contains(self.at)


@dataclass
class SubtypeScore:
    factors: dict[str, float]
    multiplier: float = 1.0
    warnings: list[str] = field(default_factory=list)
    notes: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class SubtypeDefinition:
    category: ActivityCategory
    name: str
    label: str
    scan_activity: str
    horizon_days: int
    primary_bodies: tuple[str, ...]
    analyze: Callable[[SkyContext, str | None], SubtypeScore]


def _weighted(values: Mapping[str, tuple[float, float]]) -> dict[str, float]:
    return {name: round(value * weight, 6) for name, (value, weight) in values.items()}


def analyze_meeting(sky: SkyContext, procedure: str | None = None) -> SubtypeScore:
    jupiter = sky.strength("jupiter")
    score = SubtypeScore(
        factors=_weighted({
            "mercury": (sky.strength("mercury"), 0.3),
            "sun": (sky.strength("sun"), 0.25),
            "jupiter": (jupiter, 0.2),
            "tenth_house": (HOUSE_STRENGTH, 0.15),
            "lunar_phase": (phase_suitability(sky.profile, sky.tables, sky.phase()), 0.1),
        })
    )
    if sky.is_retrograde("mercury"):
        score.multiplier *= MERCURY_RETROGRADE_MULTIPLIER
        score.warnings.append("Mercury retrograde: Double-check all communications and contracts")
    if jupiter > STRONG_BODY:
        score.notes.append("Jupiter support indicates expansion and success opportunities")
    return score


def analyze_first_date(sky: SkyContext, procedure: str | None = None) -> SubtypeScore:
    venus = sky.strength("venus")
    score = SubtypeScore(
        factors=_weighted({
            "venus": (venus, 0.35),
            "moon": (sky.strength("moon"), 0.25),
            "fifth_house": (HOUSE_STRENGTH, 0.2),
            "seventh_house": (HOUSE_STRENGTH, 0.15),
            "lunar_phase": (phase_suitability(sky.profile, sky.tables, sky.phase()), 0.05),
        })
    )
    challenged = sorted({*sky.hard_aspects("venus"), *sky.hard_aspects("mars")})
    if challenged:
        score.multiplier *= CHALLENGING_ASPECT_MULTIPLIER
        score.warnings.append(
            f"Challenging Venus or Mars aspects ({', '.join(challenged)}): keep plans relaxed"
        )
    if venus > STRONG_BODY:
        score.notes.append("Strong Venus favors attraction and easy connection")
    return score


def surgery_phase_suitability(phase: PhaseName, procedure: str | None) -> float:
    """Waning Moon for removal, waxing for reconstruction; a full Moon is avoided."""
    if phase == PhaseName.FULL_MOON:
        return 0.2
    wanted = WAXING if procedure == "reconstruction" else WANING
    return 1.0 if phase in wanted else 0.5


def analyze_surgery(sky: SkyContext, procedure: str | None = None) -> SubtypeScore:
    sun = sky.strength("sun")
    mars = sky.strength("mars")
    mars_contacts = [name for name in sky.hard_aspects("mars") if name in ("sun", "moon")]
    if mars_contacts:
        mars *= MARS_HARD_ASPECT_FACTOR

    score = SubtypeScore(
        factors=_weighted({
            "sun": (sun, 0.3),
            "mars": (mars, 0.25),
            "sixth_house": (HOUSE_STRENGTH, 0.2),
            "first_house": (HOUSE_STRENGTH, 0.15),
            "lunar_phase": (surgery_phase_suitability(sky.phase(), procedure), 0.1),
        })
    )
    if mars_contacts:
        score.warnings.append(f"Mars squares or opposes the {' and '.join(mars_contacts)}")
    if sky.is_retrograde("mars"):
        score.multiplier *= MARS_RETROGRADE_MULTIPLIER
        score.warnings.append("Mars retrograde: postpone elective procedures where possible")
    if sky.moon_is_void():
        score.multiplier *= VOID_MOON_MULTIPLIER
        score.warnings.append("Void-of-course Moon: avoid scheduling procedures now")
    if sun > STRONG_BODY:
        score.notes.append("Strong Sun supports vitality and recovery")
    return score


SUBTYPES: Mapping[tuple[ActivityCategory, str], SubtypeDefinition] = MappingProxyType({
    (definition.category, definition.name): definition
    for definition in (
        SubtypeDefinition(
            category=ActivityCategory.BUSINESS,
            name="important_meeting",
            label="business meeting",
            scan_activity="meeting",
            horizon_days=14,
            primary_bodies=("mercury", "sun", "jupiter"),
            analyze=analyze_meeting,
        ),
        SubtypeDefinition(
            category=ActivityCategory.RELATIONSHIPS,
            name="first_date",
            label="first date",
            scan_activity="first_dates",
            horizon_days=14,
            primary_bodies=("venus", "moon"),
            analyze=analyze_first_date,
        ),
        SubtypeDefinition(
            category=ActivityCategory.HEALTH,
            name="surgery",
            label="procedure",
            scan_activity="surgery",
            horizon_days=30,
            primary_bodies=("sun", "mars"),
            analyze=analyze_surgery,
        ),
    )
})


def find_subtype(category: ActivityCategory, name: str) -> SubtypeDefinition | None:
    return SUBTYPES.get((category, normalize_activity(name)))


def subtypes_for(category: ActivityCategory) -> list[str]:
    return [name for (owner, name) in SUBTYPES if owner == category]


def time_of_day_ranges(profile: ActivityProfile) -> list[str]:
    """Preferred hour ranges as ``HH:MM-HH:MM`` clock spans."""
    return [f"{start:02d}:00-{end + 1:02d}:00" for start, end in profile.preferred_hours]


def subtype_recommendations(
    definition: SubtypeDefinition,
    confidence: float,
    score: SubtypeScore,
) -> list[str]:
    recommendations = []
    if confidence > EXCELLENT_CONFIDENCE:
        recommendations.append(f"Excellent timing for this {definition.label}")
    recommendations.extend(score.warnings)
    recommendations.extend(score.notes)
    return recommendations


def subtype_reasoning(definition: SubtypeDefinition, score: SubtypeScore, confidence: float) -> str:
    strongest = max(score.factors.items(), key=lambda item: item[1])
    reasoning = (
        f"{definition.label.capitalize()} confidence {confidence:.0%}; "
        f"strongest factor is {strongest[0].replace('_', ' ')} ({strongest[1]:.2f})."
    )
    if score.multiplier < 1.0:
        reasoning += f" Current conditions reduce it by {1 - score.multiplier:.0%}."
    return reasoning
