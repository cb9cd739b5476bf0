"""Second pass: request-level re-weighting, ordering and truncation."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime

from kairos.schemas.timing import (
    Alternative,
    PhaseName,
    Recommendation,
    ScoringFactor,
    TimeWindow,
    Urgency,
)

from timing.profiles import TimingTables

WINDOW_WEIGHT = 0.4
RULING_BODY_BONUS = 0.2
PHASE_WEIGHT = 0.15
RETROGRADE_PENALTY = 0.1
VOID_PENALTY = 0.15
PERSONALIZATION_WEIGHT = 0.1
URGENCY_BONUS = 0.1
URGENCY_DECAY = 0.01
CONFIDENCE_BONUS = 0.05
CONFIDENCE_PENALTY = 0.03
CONFIDENCE_FLOOR = 0.3
CONFIDENCE_CEILING = 0.95
ALTERNATIVE_MIN_SCORE = 0.6
MAX_ALTERNATIVES = 2
VOID_ADVICE_HOURS = 2.0


@dataclass(frozen=True)
class RankingOptions:
    activity: str
    urgency: Urgency = Urgency.NORMAL
    personalized: bool = False
    void_threshold_hours: float = 3.0
    max_results: int = 10


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def days_from(now: datetime, instant: datetime) -> int:
    """Whole days between two instants, truncated toward zero."""
    return int((instant - now).total_seconds() / 86400)


def score_factors(
    window: TimeWindow,
    options: RankingOptions,
    tables: TimingTables,
    now: datetime,
) -> list[ScoringFactor]:
    activity = options.activity
    factors = [
        ScoringFactor(
            type="astrological_conditions",
            value=round(window.score * WINDOW_WEIGHT, 6),
            weight=WINDOW_WEIGHT,
            description="Overall astrological favorability",
        )
    ]

    if tables.body_supports(window.ruling_body, activity):
        factors.append(
            ScoringFactor(
                type="planetary_hour",
                value=RULING_BODY_BONUS,
                weight=RULING_BODY_BONUS,
                description=f"{window.ruling_body} hour enhances {activity}",
            )
        )

    if tables.phase_supports(window.phase.name, activity):
        factors.append(
            ScoringFactor(
                type="lunar_phase",
                value=round(tables.phase_confidence(window.phase.name) * PHASE_WEIGHT, 6),
                weight=PHASE_WEIGHT,
                description=f"{window.phase.name.value} supports {activity}",
            )
        )

    if window.retrograde_bodies:
        factors.append(
            ScoringFactor(
                type="retrograde_penalty",
                value=round(-RETROGRADE_PENALTY * len(window.retrograde_bodies), 6),
                weight=-RETROGRADE_PENALTY,
                description="Retrograde planets may create challenges",
            )
        )

    if window.void_window is not None and window.void_window.duration_hours > options.void_threshold_hours:
        factors.append(
            ScoringFactor(
                type="void_moon_penalty",
                value=-VOID_PENALTY,
                weight=-VOID_PENALTY,
                description="Void-of-course moon may cause delays",
            )
        )

    if options.personalized and window.personalization is not None:
        factors.append(
            ScoringFactor(
                type="personalized_enhancement",
                value=window.personalization,
                weight=PERSONALIZATION_WEIGHT,
                description="Timing harmonizes with your birth chart",
            )
        )

    if options.urgency == Urgency.URGENT:
        bonus = max(0.0, URGENCY_BONUS - URGENCY_DECAY * days_from(now, window.start))
        factors.append(
            ScoringFactor(
                type="urgency_bonus",
                value=round(bonus, 6),
                weight=URGENCY_BONUS,
                description="Earlier timing for urgent needs",
            )
        )

    return factors


def timing_confidence(window_score: float, factors: Sequence[ScoringFactor]) -> float:
    positive = sum(1 for factor in factors if factor.value > 0)
    negative = sum(1 for factor in factors if factor.value < 0)
    value = window_score + CONFIDENCE_BONUS * positive - CONFIDENCE_PENALTY * negative
    return round(_clamp(value, CONFIDENCE_FLOOR, CONFIDENCE_CEILING), 6)


def practical_advice(window: TimeWindow, tables: TimingTables) -> list[str]:
    advice: list[str] = []
    influence = tables.bodies.get(window.ruling_body) if window.ruling_body else None
    if influence is not None and influence.themes:
        themes = " and ".join(theme.replace("_", " ") for theme in influence.themes[:2])
        advice.append(f"Leverage {window.ruling_body} energy for {themes}")
    if window.void_window is not None and window.void_window.duration_hours > VOID_ADVICE_HOURS:
        advice.append("Avoid making final decisions during void moon period")
    if window.retrograde_bodies:
        advice.append("Double-check details due to retrograde influences")
    return advice or ["Proceed with standard precautions"]


def alternative_reason(window: TimeWindow) -> str:
    if window.ruling_body:
        return f"Strong {window.ruling_body} influence"
    if window.phase.name != PhaseName.UNKNOWN:
        return f"Favorable {window.phase.name.value} energy"
    return "Good overall astrological conditions"


def _alternatives(index: int, ranked: list[tuple[TimeWindow, float]]) -> list[Alternative]:
    found: list[Alternative] = []
    for other_index, (window, final) in enumerate(ranked):
        if other_index == index or final <= ALTERNATIVE_MIN_SCORE:
            continue
        found.append(Alternative(start=window.start, score=round(final * 100), reason=alternative_reason(window)))
        if len(found) == MAX_ALTERNATIVES:
            break
    return found


def rank_windows(
    windows: Sequence[TimeWindow],
    options: RankingOptions,
    tables: TimingTables,
    now: datetime,
) -> list[Recommendation]:
    """Re-score windows, sort by final score then earliest start, and truncate.

    Pure: the output depends only on the arguments.
    """
    scored: list[tuple[TimeWindow, float, list[ScoringFactor]]] = []
    for window in windows:
        factors = score_factors(window, options, tables, now)
        final = round(_clamp(sum(factor.value for factor in factors), 0.0, 1.0), 6)
        scored.append((window, final, factors))

    scored.sort(key=lambda item: (-item[1], item[0].start, item[0].id))
    selected = scored[: max(0, options.max_results)]
    ranked = [(window, final) for window, final, _ in selected]

    return [
        Recommendation(
            rank=index + 1,
            window=window,
            final_score=final,
            confidence=timing_confidence(window.score, factors),
            breakdown=factors,
            practical_advice=practical_advice(window, tables),
            alternatives=_alternatives(index, ranked),
        )
        for index, (window, final, factors) in enumerate(selected)
    ]


def overall_confidence(recommendations: Sequence[Recommendation]) -> float:
    """Conservative mean of final scores, 0 when nothing was selected."""
    if not recommendations:
        return 0.0
    mean = sum(rec.final_score for rec in recommendations) / len(recommendations)
    return round(mean * 0.8, 6)
