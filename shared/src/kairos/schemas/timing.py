"""Pydantic schemas for timing recommendations."""

from __future__ import annotations

import math
from datetime import datetime
from enum import Enum
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator

SIGN_NAMES = (
    "Aries",
    "Taurus",
    "Gemini",
    "Cancer",
    "Leo",
    "Virgo",
    "Libra",
    "Scorpio",
    "Sagittarius",
    "Capricorn",
    "Aquarius",
    "Pisces",
)


def resolve_timezone(name: str) -> ZoneInfo:
    """Resolve an IANA timezone name, raising ValueError when it is unknown."""
    try:
        return ZoneInfo(str(name).strip())
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValueError(f"Unknown timezone: {name}") from exc


class ActivityCategory(str, Enum):
    """Closed set of activity domains with their own weight tables."""

    BUSINESS = "business"
    RELATIONSHIPS = "relationships"
    HEALTH = "health"
    TRAVEL = "travel"
    FINANCE = "finance"
    CREATIVE = "creative"
    LEGAL = "legal"
    HOME = "home"

    @classmethod
    def parse(cls, value: str | None) -> ActivityCategory | None:
        """Resolve a category name, returning None for unknown names."""
        key = str(value or "").strip().lower()
        if key == "financial":
            key = "finance"
        try:
            return cls(key)
        except ValueError:
            return None


class Urgency(str, Enum):
    NORMAL = "normal"
    URGENT = "urgent"
    FLEXIBLE = "flexible"


class PhaseName(str, Enum):
    """Eight-way lunar phase cycle plus the fallback used when it cannot be computed."""

    NEW_MOON = "new_moon"
    WAXING_CRESCENT = "waxing_crescent"
    FIRST_QUARTER = "first_quarter"
    WAXING_GIBBOUS = "waxing_gibbous"
    FULL_MOON = "full_moon"
    WANING_GIBBOUS = "waning_gibbous"
    LAST_QUARTER = "last_quarter"
    WANING_CRESCENT = "waning_crescent"
    UNKNOWN = "unknown"


class RecommendationStatus(str, Enum):
    OK = "ok"
    UNKNOWN_CATEGORY = "unknown_category"
    UNKNOWN_ACTIVITY = "unknown_activity"


class CelestialPosition(BaseModel):
    """Position of a body at one instant."""

    model_config = ConfigDict(frozen=True)

    body: str
    longitude: float = Field(ge=0.0, lt=360.0)
    latitude: float = 0.0
    distance: float = 0.0
    speed: float = 0.0

    @computed_field
    @property
    def sign_index(self) -> int:
        return int(math.floor(self.longitude / 30.0)) % 12

    @computed_field
    @property
    def sign(self) -> str:
        return SIGN_NAMES[self.sign_index]

    @computed_field
    @property
    def degree(self) -> float:
        return self.longitude % 30.0

    @computed_field
    @property
    def retrograde(self) -> bool:
        return self.speed < 0


class AngularRelationship(BaseModel):
    """A classified angle between two bodies, present only inside tolerance."""

    model_config = ConfigDict(frozen=True)

    body1: str
    body2: str
    type: str
    angle: float
    orb: float = Field(ge=0.0)
    strength: float = Field(ge=0.0, le=1.0)
    applying: bool


class CyclicalPhase(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: PhaseName
    angle: float = 0.0
    illumination: float = Field(default=0.5, ge=0.0, le=1.0)


class VoidWindow(BaseModel):
    """Span in which the Moon forms no further relationship before changing sign."""

    model_config = ConfigDict(frozen=True)

    start: datetime
    end: datetime
    duration_hours: float = Field(gt=0.0)
    sign: str
    significance: str = "moderate"

    def contains(self, instant: datetime) -> bool:
        return self.start <= instant < self.end


class PlanetaryHour(BaseModel):
    model_config = ConfigDict(frozen=True)

    body: str
    index: int = Field(ge=0, le=23)
    start: datetime
    end: datetime
    is_day: bool
    day_ruler: str


class TimeWindow(BaseModel):
    """Scored candidate hour produced by the scanner."""

    model_config = ConfigDict(frozen=True)

    id: str
    start: datetime
    end: datetime
    day_offset: int = 0
    score: float = Field(ge=0.0, le=1.0)
    factors: dict[str, float] = Field(default_factory=dict)
    phase: CyclicalPhase
    ruling_body: str | None = None
    planetary_hour: PlanetaryHour | None = None
    void_window: VoidWindow | None = None
    retrograde_bodies: list[str] = Field(default_factory=list)
    personalization: float | None = None


class ScoringFactor(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: str
    value: float
    weight: float
    description: str = ""


class Explanation(BaseModel):
    model_config = ConfigDict(frozen=True)

    summary: str
    reasoning: str
    advice: str
    source: str = "template"


class Alternative(BaseModel):
    model_config = ConfigDict(frozen=True)

    start: datetime
    score: int
    reason: str


class Recommendation(BaseModel):
    model_config = ConfigDict(frozen=True)

    rank: int = Field(ge=1)
    window: TimeWindow
    final_score: float = Field(ge=0.0, le=1.0)
    confidence: float = Field(ge=0.3, le=0.95)
    breakdown: list[ScoringFactor] = Field(default_factory=list)
    practical_advice: list[str] = Field(default_factory=list)
    alternatives: list[Alternative] = Field(default_factory=list)
    explanation: Explanation | None = None


class ConditionsSummary(BaseModel):
    timestamp: datetime
    lunar_phase: PhaseName
    illumination: float = 0.5
    retrograde_bodies: list[str] = Field(default_factory=list)
    retrograde_count: int = 0
    significant_relationships: int = 0


class TimingRequest(BaseModel):
    """Request for ranked timing windows."""

    activity: str = Field(min_length=1, max_length=100)
    category: str = Field(min_length=1, max_length=50)
    horizon_days: int = Field(default=30, ge=1, le=366)
    urgency: Urgency = Urgency.NORMAL
    personalize: bool = False
    include_explanations: bool = True
    timezone: str = "UTC"
    user_id: str | None = None

    @field_validator("timezone")
    @classmethod
    def _known_timezone(cls, value: str) -> str:
        resolve_timezone(value)
        return value.strip()


class RecommendationResult(BaseModel):
    status: RecommendationStatus = RecommendationStatus.OK
    detail: str | None = None
    activity: str
    category: str
    horizon_days: int
    urgency: Urgency = Urgency.NORMAL
    timezone: str = "UTC"
    personalized: bool = False
    recommendations: list[Recommendation] = Field(default_factory=list)
    overall_confidence: float = 0.0
    current_conditions: ConditionsSummary | None = None
    generated_at: datetime
    cached: bool = False


class RetrogradeReport(BaseModel):
    body: str
    timestamp: datetime
    is_retrograde: bool
    speed: float | None = None
    sign: str | None = None
    avoid_during: list[str] = Field(default_factory=list)
    good_for: list[str] = Field(default_factory=list)
    alternative_timing: str = ""
    tips: list[str] = Field(default_factory=list)


class SubtypeTiming(BaseModel):
    """Weighted analysis of current conditions for one named occasion."""

    category: str
    subtype: str
    timestamp: datetime
    confidence: float = Field(ge=0.0, le=0.95)
    base_confidence: float
    multiplier: float = 1.0
    factors: dict[str, float] = Field(default_factory=dict)
    primary_bodies: list[str] = Field(default_factory=list)
    optimal_time_of_day: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)
    reasoning: str = ""
    optimal_periods: list[Recommendation] = Field(default_factory=list)
