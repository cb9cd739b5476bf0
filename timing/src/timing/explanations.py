"""Natural-language explanations for ranked recommendations."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from typing import Any

from kairos.schemas.timing import Explanation, Recommendation
from kairos.services.llm_client import LLMClient

from timing.prompts.explanation import build_explanation_messages

logger = logging.getLogger(__name__)

EXPLANATION_FIELDS = ("summary", "reasoning", "advice")


def _validate_explanation(data: Any) -> None:
    if not isinstance(data, dict):
        raise ValueError("Explanation must be a JSON object")
    for key in EXPLANATION_FIELDS:
        value = data.get(key)
        if not isinstance(value, str) or not value.strip():
            raise ValueError(f"Explanation field '{key}' missing or empty")


def template_explanation(recommendation: Recommendation) -> Explanation:
    """Deterministic explanation built from the factor breakdown."""
    window = recommendation.window
    score = round(recommendation.final_score * 100)
    quality = "Excellent" if score > 80 else "Good" if score > 60 else "Acceptable"
    hour = f"{window.ruling_body.title()} hour" if window.ruling_body else "Standard timing"
    phase = window.phase.name.value.replace("_", " ")

    supporting = [factor.description for factor in recommendation.breakdown if factor.value > 0]
    cautions = [factor.description for factor in recommendation.breakdown if factor.value < 0]
    reasoning = "Multiple planetary and lunar factors create supportive energy patterns."
    if supporting:
        reasoning = "Supporting factors: " + "; ".join(supporting) + "."
    if cautions:
        reasoning += " Cautions: " + "; ".join(cautions) + "."

    return Explanation(
        summary=f"{quality} timing with {score}% astrological favorability. {hour} during {phase}.",
        reasoning=reasoning,
        advice=" ".join(f"{line}." for line in recommendation.practical_advice),
        source="template",
    )


class ExplanationGenerator:
    """LLM explanations for the top recommendations, templates for everything else."""

    def __init__(self, client: LLMClient | None = None, *, top_k: int = 5) -> None:
        self._client = client
        self._top_k = max(0, top_k)

    @property
    def enabled(self) -> bool:
        return self._client is not None

    async def _generate(
        self,
        recommendation: Recommendation,
        *,
        activity: str,
        category: str,
        timezone: str,
        personalized: bool,
    ) -> Explanation:
        if not self.enabled:
            return template_explanation(recommendation)
        messages = build_explanation_messages(recommendation, activity, category, timezone, personalized)
        try:
            data = await self._client.complete_json(messages, _validate_explanation)
        except Exception as exc:
            logger.warning(
                "Explanation generation failed for %s, using template: %s",
                recommendation.window.id,
                exc,
            )
            return template_explanation(recommendation)
        return Explanation(
            summary=data["summary"].strip(),
            reasoning=data["reasoning"].strip(),
            advice=data["advice"].strip(),
            source="llm",
        )

    async def explain(
        self,
        recommendations: Sequence[Recommendation],
        *,
        activity: str,
        category: str,
        timezone: str = "UTC",
        personalized: bool = False,
    ) -> list[Recommendation]:
        """Attach explanations in rank order; the input list is not modified."""
        top = list(recommendations[: self._top_k])
        generated = await asyncio.gather(
            *(
                self._generate(
                    rec,
                    activity=activity,
                    category=category,
                    timezone=timezone,
                    personalized=personalized,
                )
                for rec in top
            )
        )
        explanations = list(generated) + [
            template_explanation(rec) for rec in recommendations[self._top_k:]
        ]
        return [
            rec.model_copy(update={"explanation": explanation})
            for rec, explanation in zip(recommendations, explanations)
        ]
