"""Request-level timing engine: scan, rank, explain, cache."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from zoneinfo import ZoneInfo

from ephemeris.aspects import find_relationships
from ephemeris.bodies import RETROGRADE_BODIES
from ephemeris.calculator import PositionSource, positions_at
from ephemeris.lunar import phase_from_positions, retrograde_bodies
from kairos.config import Settings, get_settings
from kairos.schemas.timing import (
    ActivityCategory,
    CelestialPosition,
    ConditionsSummary,
    RecommendationResult,
    RecommendationStatus,
    RetrogradeReport,
    SubtypeTiming,
    TimingRequest,
    Urgency,
    resolve_timezone,
)
from kairos.services.profile_store import BirthProfileStore
from kairos.services.result_cache import ResultCache

from timing.explanations import ExplanationGenerator
from timing.profiles import TimingTables, default_tables, normalize_activity
from timing.ranking import RankingOptions, overall_confidence, rank_windows
from timing.scanner import PositionSourceOutageError, TimeWindowScanner
from timing.subtypes import (
    CONFIDENCE_CAP,
    SkyContext,
    find_subtype,
    subtype_reasoning,
    subtype_recommendations,
    subtypes_for,
    time_of_day_ranges,
)

logger = logging.getLogger(__name__)

SIGNIFICANT_RELATIONSHIP_STRENGTH = 0.7
QUICK_RESULT_LIMIT = 3
QUICK_HORIZON_DAYS = 7

MERCURY_AVOID = [
    "Signing important contracts",
    "Major technology purchases",
    "Starting new communication projects",
    "Beginning travel plans",
    "Launching websites or apps",
]
MERCURY_GOOD_FOR = [
    "Reviewing and revising existing work",
    "Reconnecting with old contacts",
    "Research and planning",
    "Backup and organize data",
    "Reflect on communication patterns",
]
MERCURY_TIPS = [
    "Double-check all communications and documents",
    "Allow extra time for travel and technology",
    "Backup important data before Mercury retrograde periods",
    "Be flexible with plans and expect delays",
    "Use this time for revision rather than initiation",
]
GENERIC_GOOD_FOR = [
    "Reviewing and revising existing plans",
    "Finishing work already in progress",
    "Reflection and research",
]
GENERIC_TIPS = [
    "Favor revision over initiation",
    "Allow extra time for delays",
]


class TimingEngine:
    """Entry point for timing recommendations.

    Stateless between requests; collaborators (cache, profile store,
    explanation generator) are optional.
    """

    def __init__(
        self,
        source: PositionSource,
        *,
        settings: Settings | None = None,
        tables: TimingTables | None = None,
        cache: ResultCache | None = None,
        profiles: BirthProfileStore | None = None,
        explainer: ExplanationGenerator | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._source = source
        self._tables = tables or default_tables()
        self._cache = cache if self._settings.cache_enabled else None
        self._profiles = profiles
        self._explainer = explainer or ExplanationGenerator(None, top_k=self._settings.explanation_top_k)
        self._scanner = TimeWindowScanner(source, tables=self._tables, settings=self._settings)

    @property
    def tables(self) -> TimingTables:
        return self._tables

    def _empty(
        self,
        request: TimingRequest,
        status: RecommendationStatus,
        detail: str,
        now: datetime,
    ) -> RecommendationResult:
        return RecommendationResult(
            status=status,
            detail=detail,
            activity=request.activity,
            category=request.category,
            horizon_days=request.horizon_days,
            urgency=request.urgency,
            timezone=request.timezone,
            generated_at=now,
        )

    def cache_key(
        self,
        request: TimingRequest,
        activity: str,
        category: ActivityCategory,
        horizon: int,
        now: datetime,
    ) -> str:
        local_date = now.astimezone(resolve_timezone(request.timezone)).date().isoformat()
        flag = f"p-{request.user_id}" if request.personalize and request.user_id else "g"
        explain = "x" if request.include_explanations else "n"
        return (
            f"timing:{activity}:{category.value}:{local_date}:{flag}"
            f":{horizon}:{request.urgency.value}:{request.timezone}:{explain}"
        )

    async def _load_natal(self, user_id: str | None) -> dict[str, CelestialPosition] | None:
        if not user_id or self._profiles is None:
            return None
        natal = await self._profiles.get_profile(user_id)
        if not natal:
            logger.info("No birth profile for user %s; personalization off", user_id)
            return None
        return natal

    async def _natal_positions(self, request: TimingRequest) -> dict[str, CelestialPosition] | None:
        if not request.personalize:
            return None
        return await self._load_natal(request.user_id)

    async def get_recommendations(
        self,
        request: TimingRequest,
        now: datetime | None = None,
    ) -> RecommendationResult:
        now = now or datetime.now(UTC)

        category = ActivityCategory.parse(request.category)
        if category is None or self._tables.profile(category) is None:
            logger.info("Unknown timing category requested: %s", request.category)
            return self._empty(
                request,
                RecommendationStatus.UNKNOWN_CATEGORY,
                f"Unknown category: {request.category}",
                now,
            )
        profile = self._tables.profile(category)

        activity = normalize_activity(request.activity)
        if activity not in self._tables.known_activities():
            logger.info("Unknown timing activity requested: %s", request.activity)
            return self._empty(
                request,
                RecommendationStatus.UNKNOWN_ACTIVITY,
                f"Unknown activity: {request.activity}",
                now,
            )

        horizon = max(1, min(request.horizon_days, self._settings.max_horizon_days))
        tz = resolve_timezone(request.timezone)

        key = self.cache_key(request, activity, category, horizon, now)
        if self._cache is not None:
            cached = await self._cache.get(key)
            if cached is not None:
                try:
                    result = RecommendationResult.model_validate(cached)
                except ValueError:
                    logger.warning("Ignoring malformed cache entry %s", key)
                else:
                    logger.info("Timing cache hit for %s", key)
                    return result.model_copy(update={"cached": True})

        natal = await self._natal_positions(request)

        windows = await self._scanner.scan(
            activity=activity,
            profile=profile,
            start_day=now.astimezone(tz).date(),
            days=horizon,
            tz=tz,
            natal=natal,
        )

        options = RankingOptions(
            activity=activity,
            urgency=request.urgency,
            personalized=natal is not None,
            void_threshold_hours=self._settings.void_moon_threshold_hours,
            max_results=self._settings.max_recommendations,
        )
        recommendations = rank_windows(windows, options, self._tables, now)

        if request.include_explanations and recommendations:
            recommendations = await self._explainer.explain(
                recommendations,
                activity=activity,
                category=category.value,
                timezone=request.timezone,
                personalized=natal is not None,
            )

        current = await positions_at(self._source, now)
        result = RecommendationResult(
            activity=activity,
            category=category.value,
            horizon_days=horizon,
            urgency=request.urgency,
            timezone=request.timezone,
            personalized=natal is not None,
            recommendations=recommendations,
            overall_confidence=overall_confidence(recommendations),
            current_conditions=self._summarize(current, now, tz),
            generated_at=now,
        )

        if self._cache is not None:
            await self._cache.set(key, result.model_dump(mode="json"), self._settings.cache_ttl_seconds)

        logger.info(
            "Generated %d timing recommendation(s) for %s/%s over %d day(s)",
            len(recommendations),
            category.value,
            activity,
            horizon,
        )
        return result

    def _summarize(
        self,
        positions: dict[str, CelestialPosition],
        now: datetime,
        tz: ZoneInfo,
    ) -> ConditionsSummary:
        phase = phase_from_positions(positions)
        retrograde = retrograde_bodies(positions, RETROGRADE_BODIES)
        relationships = find_relationships(positions, table=self._tables.aspects)
        return ConditionsSummary(
            timestamp=now.astimezone(tz),
            lunar_phase=phase.name,
            illumination=phase.illumination,
            retrograde_bodies=retrograde,
            retrograde_count=len(retrograde),
            significant_relationships=sum(
                1 for rel in relationships if rel.strength > SIGNIFICANT_RELATIONSHIP_STRENGTH
            ),
        )

    async def current_conditions(self, timezone: str = "UTC", now: datetime | None = None) -> ConditionsSummary:
        now = now or datetime.now(UTC)
        tz = resolve_timezone(timezone)
        positions = await positions_at(self._source, now)
        if not positions:
            raise PositionSourceOutageError(f"Position source returned nothing at {now.isoformat()}")
        return self._summarize(positions, now, tz)

    async def quick_recommendations(
        self,
        category: str,
        *,
        urgency: Urgency = Urgency.NORMAL,
        horizon_days: int = QUICK_HORIZON_DAYS,
        timezone: str = "UTC",
        user_id: str | None = None,
        now: datetime | None = None,
    ) -> RecommendationResult:
        """Top three windows for a category's default activity."""
        parsed = ActivityCategory.parse(category)
        profile = self._tables.profile(parsed) if parsed is not None else None
        request = TimingRequest(
            activity=profile.default_activity if profile is not None else "unknown",
            category=category,
            horizon_days=max(1, horizon_days),
            urgency=urgency,
            personalize=user_id is not None,
            timezone=timezone,
            user_id=user_id,
        )
        result = await self.get_recommendations(request, now=now)
        return result.model_copy(update={"recommendations": result.recommendations[:QUICK_RESULT_LIMIT]})

    async def retrograde_report(
        self,
        body: str = "mercury",
        timezone: str = "UTC",
        now: datetime | None = None,
    ) -> RetrogradeReport:
        body = body.strip().lower()
        if body not in RETROGRADE_BODIES:
            raise ValueError(f"Retrograde status is not tracked for {body}")
        now = now or datetime.now(UTC)
        tz = resolve_timezone(timezone)

        positions = await positions_at(self._source, now, [body])
        position = positions.get(body)
        if position is None:
            raise PositionSourceOutageError(f"Position unavailable for {body} at {now.isoformat()}")

        if body == "mercury":
            avoid = list(MERCURY_AVOID)
            good_for = list(MERCURY_GOOD_FOR)
            tips = list(MERCURY_TIPS)
        else:
            influence = self._tables.bodies.get(body)
            avoid = [
                f"Starting {activity.replace('_', ' ')}"
                for activity in (influence.retrograde_avoid if influence is not None else ())
            ]
            good_for = list(GENERIC_GOOD_FOR)
            tips = list(GENERIC_TIPS)

        name = body.title()
        if position.retrograde:
            alternative = f"Consider waiting until {name} goes direct, or proceed with extra caution and backup plans"
        else:
            alternative = f"Current timing is favorable for {name}-ruled activities"

        return RetrogradeReport(
            body=body,
            timestamp=now.astimezone(tz),
            is_retrograde=position.retrograde,
            speed=position.speed,
            sign=position.sign,
            avoid_during=avoid,
            good_for=good_for,
            alternative_timing=alternative,
            tips=tips,
        )

    async def subtype_analysis(
        self,
        category: str,
        subtype: str,
        *,
        timezone: str = "UTC",
        user_id: str | None = None,
        procedure: str | None = None,
        include_periods: bool = True,
        now: datetime | None = None,
    ) -> SubtypeTiming:
        """Score the current sky for one named occasion, such as an important meeting.

        The weighted factor sum is scaled by the occasion's safety multiplier and
        capped at 0.95. With ``include_periods`` the best upcoming windows for the
        occasion's activity are attached. Raises ``ValueError`` for an unknown
        category or subtype.
        """
        parsed = ActivityCategory.parse(category)
        profile = self._tables.profile(parsed) if parsed is not None else None
        definition = find_subtype(parsed, subtype) if parsed is not None else None
        if profile is None or definition is None:
            raise ValueError(f"Unknown timing subtype: {category}/{subtype}")
        now = now or datetime.now(UTC)
        tz = resolve_timezone(timezone)

        positions = await positions_at(self._source, now)
        if not positions:
            raise PositionSourceOutageError(f"Position source returned nothing at {now.isoformat()}")
        natal = await self._load_natal(user_id)

        sky = SkyContext(
            positions=positions,
            profile=profile,
            tables=self._tables,
            at=now,
            natal=natal,
            void_max_hours=self._settings.void_window_max_hours,
        )
        score = definition.analyze(sky, procedure)
        base = round(sum(score.factors.values()), 6)
        multiplier = round(score.multiplier, 6)
        confidence = round(min(base * multiplier, CONFIDENCE_CAP), 6)

        periods = []
        if include_periods:
            request = TimingRequest(
                activity=definition.scan_activity,
                category=profile.category.value,
                horizon_days=definition.horizon_days,
                personalize=natal is not None,
                include_explanations=False,
                timezone=timezone,
                user_id=user_id,
            )
            result = await self.get_recommendations(request, now=now)
            periods = result.recommendations[:QUICK_RESULT_LIMIT]

        logger.info(
            "Subtype analysis %s/%s: confidence %.3f (multiplier %.2f)",
            profile.category.value,
            definition.name,
            confidence,
            multiplier,
        )
        return SubtypeTiming(
            category=profile.category.value,
            subtype=definition.name,
            timestamp=now.astimezone(tz),
            confidence=confidence,
            base_confidence=base,
            multiplier=multiplier,
            factors=score.factors,
            primary_bodies=list(definition.primary_bodies),
            optimal_time_of_day=time_of_day_ranges(profile),
            warnings=score.warnings,
            recommendations=subtype_recommendations(definition, confidence, score),
            reasoning=subtype_reasoning(definition, score, confidence),
            optimal_periods=periods,
        )

    def list_categories(self) -> list[dict[str, object]]:
        categories = []
        for category, profile in self._tables.profiles.items():
            payload = profile.to_payload()
            payload["subtypes"] = subtypes_for(category)
            categories.append(payload)
        return categories
