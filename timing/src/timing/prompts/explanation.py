"""Timing explanation prompt builder."""

from __future__ import annotations

from zoneinfo import ZoneInfo

from kairos.schemas.timing import Recommendation

SYSTEM_PROMPT = """You are an expert astrologer specializing in electional astrology (choosing optimal timing).
Create clear, specific explanations for why certain times are favorable for activities.

Focus on:
1. Specific astrological factors creating the favorable timing
2. How these factors support the intended activity
3. Practical timing advice
4. Alternative approaches if timing is challenging

Be specific about aspects and lunar conditions when relevant."""


def quality_label(final_score: float) -> str:
    if final_score > 0.7:
        return "excellent"
    if final_score > 0.5:
        return "good"
    return "acceptable"


def build_explanation_messages(
    recommendation: Recommendation,
    activity: str,
    category: str,
    timezone: str = "UTC",
    personalized: bool = False,
) -> list[dict[str, str]]:
    window = recommendation.window
    local = window.start.astimezone(ZoneInfo(timezone))
    void = window.void_window
    void_text = f"Yes ({void.duration_hours:.1f} hours)" if void is not None else "No"
    retrograde_text = ", ".join(window.retrograde_bodies) or "None"
    factor_lines = "\n".join(
        f"- {factor.type}: {factor.value:+.3f} ({factor.description})" for factor in recommendation.breakdown
    )
    personal = (
        "\nPERSONALIZED FACTORS:\nThis timing analysis includes the person's birth chart for enhanced accuracy.\n"
        if personalized
        else ""
    )

    user_prompt = f"""Explain why {local.strftime('%B %d %Y, %I:%M %p')} is {quality_label(recommendation.final_score)} timing for: {activity} ({category})

ASTROLOGICAL CONDITIONS:
- Planetary Hour: {window.ruling_body or 'Not specified'}
- Lunar Phase: {window.phase.name.value}
- Void Moon: {void_text}
- Retrograde Planets: {retrograde_text}
- Overall Score: {round(recommendation.final_score * 100)}%

SCORING BREAKDOWN:
{factor_lines}
{personal}
Return a JSON object with exactly these string fields:
- "summary": why this timing works well (2-3 sentences)
- "reasoning": specific astrological reasoning (3-4 sentences with technical details)
- "advice": practical advice for maximizing this timing (2-3 sentences)

No preamble, no markdown fencing. Return ONLY the JSON object."""

    return [
        {"role": "system", "content": SYSTEM_PROMPT},
        {"role": "user", "content": user_prompt},
    ]
