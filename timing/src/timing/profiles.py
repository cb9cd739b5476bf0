"""Static activity, planetary and lunar influence tables."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

from ephemeris.bodies import ASPECT_TABLE, DIGNITIES, AspectDefinition, Dignity
from kairos.schemas.timing import ActivityCategory, PhaseName


@dataclass(frozen=True)
class BodyInfluence:
    """What a ruling body's hour supports and what its retrograde spoils."""

    activities: tuple[str, ...]
    themes: tuple[str, ...]
    retrograde_avoid: tuple[str, ...] = ()


@dataclass(frozen=True)
class PhaseInfluence:
    activities: tuple[str, ...]
    themes: tuple[str, ...]
    energy: str
    confidence: float


@dataclass(frozen=True)
class ActivityProfile:
    """Weight table for one activity category."""

    category: ActivityCategory
    activities: tuple[str, ...]
    favorable_bodies: tuple[str, ...]
    avoid_retrograde: tuple[str, ...]
    favorable_phases: tuple[PhaseName, ...]
    baseline_confidence: float
    default_activity: str
    preferred_hours: tuple[tuple[int, int], ...] = ()
    segment_weights: Mapping[int, float] = field(default_factory=lambda: MappingProxyType({}))
    description: str = ""
    examples: tuple[str, ...] = ()

    def prefers_hour(self, hour: int) -> bool:
        """True when ``hour`` falls in any preferred range, both ends included."""
        return any(start <= hour <= end for start, end in self.preferred_hours)

    def to_payload(self) -> dict[str, object]:
        return {
            "category": self.category.value,
            "description": self.description,
            "activities": list(self.activities),
            "default_activity": self.default_activity,
            "favorable_bodies": list(self.favorable_bodies),
            "avoid_retrograde": list(self.avoid_retrograde),
            "favorable_phases": [phase.value for phase in self.favorable_phases],
            "preferred_hours": [list(span) for span in self.preferred_hours],
            "examples": list(self.examples),
        }


def _segments(houses: dict[int, float]) -> MappingProxyType[int, float]:
    """Map 1-based house numbers onto 0-based sign indices."""
    return MappingProxyType({house - 1: weight for house, weight in houses.items()})


BODY_INFLUENCES: MappingProxyType[str, BodyInfluence] = MappingProxyType({
    "sun": BodyInfluence(
        activities=("leadership", "visibility", "presentations", "recognition", "vitality", "authority"),
        themes=("vitality", "clarity", "leadership"),
    ),
    "moon": BodyInfluence(
        activities=("home", "family_gatherings", "nurturing", "intuition", "wellness", "public_relations"),
        themes=("intuition", "care", "rhythm"),
    ),
    "mercury": BodyInfluence(
        activities=(
            "communication", "contracts", "technology", "travel", "learning",
            "writing", "negotiations", "meeting", "meetings",
        ),
        themes=("mental_clarity", "communication_flow", "quick_thinking", "adaptability"),
        retrograde_avoid=("contracts", "technology", "travel", "major_purchases"),
    ),
    "venus": BodyInfluence(
        activities=("relationships", "beauty", "art", "finance", "harmony", "social_events", "romance"),
        themes=("love_attraction", "aesthetic_harmony", "financial_flow", "social_grace"),
        retrograde_avoid=("new_relationships", "major_purchases", "beauty_treatments"),
    ),
    "mars": BodyInfluence(
        activities=("action", "surgery", "competition", "conflict_resolution", "physical_activity", "initiation"),
        themes=("courage_action", "physical_energy", "assertiveness", "breakthrough"),
        retrograde_avoid=("surgery", "aggressive_actions", "starting_conflicts"),
    ),
    "jupiter": BodyInfluence(
        activities=("expansion", "legal_matters", "education", "opportunity", "publishing", "teaching"),
        themes=("growth_expansion", "wisdom_insight", "opportunity_recognition", "optimism"),
    ),
    "saturn": BodyInfluence(
        activities=("structure", "long_term_planning", "real_estate", "discipline", "authority", "commitment"),
        themes=("discipline_structure", "long_term_commitment", "responsibility", "foundation_building"),
    ),
    "uranus": BodyInfluence(
        activities=("innovation", "sudden_changes", "technology", "liberation", "rebellion", "invention"),
        themes=("innovation_breakthrough", "freedom_liberation", "technological_advancement"),
    ),
    "neptune": BodyInfluence(
        activities=("spirituality", "creativity", "healing", "intuition", "meditation", "artistic_inspiration"),
        themes=("spiritual_connection", "creative_inspiration", "intuitive_insight", "healing_energy"),
    ),
    "pluto": BodyInfluence(
        activities=("transformation", "power", "investigation", "deep_change", "psychology", "research"),
        themes=("deep_transformation", "power_empowerment", "hidden_revelation", "regeneration"),
    ),
})

PHASE_INFLUENCES: MappingProxyType[PhaseName, PhaseInfluence] = MappingProxyType({
    PhaseName.NEW_MOON: PhaseInfluence(
        activities=("new_beginnings", "goal_setting", "manifestation", "starting_projects"),
        themes=("fresh_start", "intention_setting", "new_opportunities"),
        energy="initiating",
        confidence=0.9,
    ),
    PhaseName.WAXING_CRESCENT: PhaseInfluence(
        activities=("building", "developing", "learning", "gathering_resources"),
        themes=("growth_momentum", "skill_building", "resource_gathering"),
        energy="building",
        confidence=0.7,
    ),
    PhaseName.FIRST_QUARTER: PhaseInfluence(
        activities=("decision_making", "overcoming_obstacles", "taking_action"),
        themes=("decisive_action", "challenge_resolution", "momentum_building"),
        energy="active",
        confidence=0.8,
    ),
    PhaseName.WAXING_GIBBOUS: PhaseInfluence(
        activities=("refinement", "adjustment", "preparation", "fine_tuning"),
        themes=("refinement_perfection", "preparation_optimization", "detail_attention"),
        energy="refining",
        confidence=0.6,
    ),
    PhaseName.FULL_MOON: PhaseInfluence(
        activities=("completion", "culmination", "high_energy_activities", "celebrations"),
        themes=("peak_energy", "completion_fulfillment", "heightened_emotions"),
        energy="culminating",
        confidence=0.9,
    ),
    PhaseName.WANING_GIBBOUS: PhaseInfluence(
        activities=("sharing", "teaching", "giving_back", "harvesting_results"),
        themes=("wisdom_sharing", "gratitude_expression", "result_harvesting"),
        energy="sharing",
        confidence=0.6,
    ),
    PhaseName.LAST_QUARTER: PhaseInfluence(
        activities=("release", "forgiveness", "letting_go", "clearing"),
        themes=("release_clearing", "forgiveness_healing", "space_creation"),
        energy="releasing",
        confidence=0.7,
    ),
    PhaseName.WANING_CRESCENT: PhaseInfluence(
        activities=("rest", "reflection", "planning", "preparation"),
        themes=("inner_reflection", "rest_restoration", "wisdom_integration"),
        energy="reflecting",
        confidence=0.5,
    ),
})

ACTIVITY_PROFILES: MappingProxyType[ActivityCategory, ActivityProfile] = MappingProxyType({
    ActivityCategory.BUSINESS: ActivityProfile(
        category=ActivityCategory.BUSINESS,
        activities=("job_interviews", "salary_negotiations", "product_launches", "meetings", "presentations"),
        favorable_bodies=("jupiter", "sun", "mercury"),
        avoid_retrograde=("mercury",),
        favorable_phases=(PhaseName.WAXING_CRESCENT, PhaseName.FIRST_QUARTER, PhaseName.FULL_MOON),
        baseline_confidence=0.8,
        default_activity="meetings",
        preferred_hours=((9, 10), (14, 15)),
        segment_weights=_segments({1: 0.9, 6: 0.8, 10: 1.0, 11: 0.7}),
        description="Professional activities and career decisions",
        examples=(
            "Job interviews and career changes",
            "Salary negotiations and promotions",
            "Business launches and presentations",
            "Important meetings and decisions",
        ),
    ),
    ActivityCategory.RELATIONSHIPS: ActivityProfile(
        category=ActivityCategory.RELATIONSHIPS,
        activities=("first_dates", "proposals", "difficult_conversations", "breakups"),
        favorable_bodies=("venus", "moon"),
        avoid_retrograde=("venus",),
        favorable_phases=(PhaseName.NEW_MOON, PhaseName.WAXING_CRESCENT, PhaseName.FULL_MOON),
        baseline_confidence=0.7,
        default_activity="first_dates",
        preferred_hours=((18, 21),),
        segment_weights=_segments({5: 0.8, 7: 1.0, 8: 0.6, 11: 0.7}),
        description="Love, romance, and personal relationships",
        examples=(
            "First dates and romantic encounters",
            "Marriage proposals and commitments",
            "Difficult relationship conversations",
        ),
    ),
    ActivityCategory.HEALTH: ActivityProfile(
        category=ActivityCategory.HEALTH,
        activities=("surgery", "detox", "fitness_routines", "medical_procedures", "wellness"),
        favorable_bodies=("sun", "moon"),
        avoid_retrograde=(),
        favorable_phases=(PhaseName.NEW_MOON, PhaseName.WAXING_CRESCENT),
        baseline_confidence=0.9,
        default_activity="wellness",
        preferred_hours=((6, 7), (16, 17)),
        segment_weights=_segments({1: 1.0, 6: 0.9, 8: 0.7, 12: 0.5}),
        description="Health, wellness, and medical procedures",
        examples=(
            "Elective medical procedures",
            "Starting new fitness routines",
            "Detox and cleansing programs",
        ),
    ),
    ActivityCategory.TRAVEL: ActivityProfile(
        category=ActivityCategory.TRAVEL,
        activities=("departure_times", "booking_optimization", "safe_travel_periods"),
        favorable_bodies=("jupiter", "mercury"),
        avoid_retrograde=("mercury",),
        favorable_phases=(PhaseName.WAXING_CRESCENT, PhaseName.FULL_MOON),
        baseline_confidence=0.8,
        default_activity="departure_times",
        preferred_hours=((6, 8), (15, 17)),
        segment_weights=_segments({3: 0.7, 9: 1.0, 12: 0.6}),
        description="Travel planning and journeys",
        examples=(
            "Flight departure times",
            "Vacation and trip planning",
            "International travel",
        ),
    ),
    ActivityCategory.FINANCE: ActivityProfile(
        category=ActivityCategory.FINANCE,
        activities=("investments", "major_purchases", "contract_signing", "loan_applications"),
        favorable_bodies=("jupiter", "venus", "sun"),
        avoid_retrograde=("mercury", "venus"),
        favorable_phases=(PhaseName.NEW_MOON, PhaseName.WAXING_CRESCENT, PhaseName.FIRST_QUARTER),
        baseline_confidence=0.8,
        default_activity="investments",
        preferred_hours=((9, 10), (14, 15)),
        segment_weights=_segments({2: 1.0, 8: 0.9, 11: 0.7}),
        description="Money, investments, and financial decisions",
        examples=(
            "Stock market investments",
            "Real estate purchases",
            "Loan applications and approvals",
        ),
    ),
    ActivityCategory.CREATIVE: ActivityProfile(
        category=ActivityCategory.CREATIVE,
        activities=("artistic_projects", "writing", "music", "design_launches"),
        favorable_bodies=("venus", "neptune", "moon"),
        avoid_retrograde=(),
        favorable_phases=(PhaseName.NEW_MOON, PhaseName.FULL_MOON),
        baseline_confidence=0.7,
        default_activity="artistic_projects",
        preferred_hours=((5, 6), (21, 22)),
        segment_weights=_segments({5: 1.0, 9: 0.8, 11: 0.6, 12: 0.7}),
        description="Artistic projects and creative expression",
        examples=(
            "Launching creative projects",
            "Starting writing projects",
            "Music recording and releases",
        ),
    ),
    ActivityCategory.LEGAL: ActivityProfile(
        category=ActivityCategory.LEGAL,
        activities=("court_dates", "contract_negotiations", "legal_filings"),
        favorable_bodies=("jupiter", "sun", "saturn"),
        avoid_retrograde=("mercury",),
        favorable_phases=(PhaseName.WAXING_CRESCENT, PhaseName.FIRST_QUARTER),
        baseline_confidence=0.9,
        default_activity="contract_signing",
        preferred_hours=((9, 10), (14, 15)),
        segment_weights=_segments({9: 1.0, 10: 0.8, 11: 0.7}),
        description="Legal matters and official procedures",
        examples=(
            "Court appearances and hearings",
            "Contract negotiations",
            "Legal document filing",
        ),
    ),
    ActivityCategory.HOME: ActivityProfile(
        category=ActivityCategory.HOME,
        activities=("moving", "renovations", "family_gatherings", "childcare_decisions"),
        favorable_bodies=("moon", "venus", "saturn"),
        avoid_retrograde=(),
        favorable_phases=(PhaseName.NEW_MOON, PhaseName.WAXING_CRESCENT),
        baseline_confidence=0.7,
        default_activity="moving",
        preferred_hours=((8, 10), (17, 19)),
        segment_weights=_segments({4: 1.0, 2: 0.6, 10: 0.5}),
        description="Home, family, and domestic matters",
        examples=(
            "Moving to new homes",
            "Home renovations and repairs",
            "Family celebrations and gatherings",
        ),
    ),
})


@dataclass(frozen=True)
class TimingTables:
    """Read-only lookup tables injected into the scanner and ranker."""

    profiles: Mapping[ActivityCategory, ActivityProfile] = field(default_factory=lambda: ACTIVITY_PROFILES)
    bodies: Mapping[str, BodyInfluence] = field(default_factory=lambda: BODY_INFLUENCES)
    phases: Mapping[PhaseName, PhaseInfluence] = field(default_factory=lambda: PHASE_INFLUENCES)
    dignities: Mapping[str, Dignity] = field(default_factory=lambda: DIGNITIES)
    aspects: tuple[AspectDefinition, ...] = ASPECT_TABLE

    def profile(self, category: ActivityCategory) -> ActivityProfile | None:
        return self.profiles.get(category)

    def body_supports(self, body: str | None, activity: str) -> bool:
        influence = self.bodies.get(body) if body else None
        return influence is not None and activity in influence.activities

    def phase_supports(self, phase: PhaseName, activity: str) -> bool:
        influence = self.phases.get(phase)
        return influence is not None and activity in influence.activities

    def phase_confidence(self, phase: PhaseName) -> float:
        influence = self.phases.get(phase)
        return influence.confidence if influence is not None else 0.0

    def known_activities(self) -> frozenset[str]:
        """Union of every activity vocabulary in the tables."""
        names: set[str] = set()
        for influence in self.bodies.values():
            names.update(influence.activities)
        for phase in self.phases.values():
            names.update(phase.activities)
        for profile in self.profiles.values():
            names.update(profile.activities)
            names.add(profile.default_activity)
        return frozenset(names)


_DEFAULT_TABLES = TimingTables()


def default_tables() -> TimingTables:
    return _DEFAULT_TABLES


def normalize_activity(activity: str) -> str:
    """Lower-case an activity name and join its words with underscores."""
    return "_".join(activity.strip().lower().replace("-", " ").split())
