"""Tests for recommendation explanations."""

import json
from datetime import UTC, datetime, timedelta

import httpx
import pytest
from kairos.schemas.timing import (
    CyclicalPhase,
    PhaseName,
    Recommendation,
    ScoringFactor,
    TimeWindow,
)
from kairos.services.llm_client import ChatModelConfig, LLMClient
from timing.explanations import ExplanationGenerator, template_explanation
from timing.prompts.explanation import build_explanation_messages, quality_label

START = datetime(2026, 10, 19, 13, 0, tzinfo=UTC)


def _recommendation(rank: int = 1, final: float = 0.85, ruling_body: str | None = "mercury") -> Recommendation:
    window = TimeWindow(
        id=f"2026-10-19_{12 + rank}",
        start=START + timedelta(hours=rank - 1),
        end=START + timedelta(hours=rank),
        score=0.9,
        phase=CyclicalPhase(name=PhaseName.WAXING_CRESCENT, angle=70.0, illumination=0.39),
        ruling_body=ruling_body,
        retrograde_bodies=["mercury"],
    )
    return Recommendation(
        rank=rank,
        window=window,
        final_score=final,
        confidence=0.8,
        breakdown=[
            ScoringFactor(type="astrological_conditions", value=0.36, weight=0.4,
                          description="Overall astrological favorability"),
            ScoringFactor(type="retrograde_penalty", value=-0.1, weight=-0.1,
                          description="Retrograde planets may create challenges"),
        ],
        practical_advice=["Double-check details due to retrograde influences"],
    )


def _llm_client(handler) -> LLMClient:
    config = ChatModelConfig(endpoint="https://llm.test/api/v1", model_id="test-model", api_key="test-key")
    return LLMClient(config, transport=httpx.MockTransport(handler))


def _completion(content: str) -> httpx.Response:
    return httpx.Response(200, json={"choices": [{"message": {"content": content}}], "usage": {}})


def test_template_explanation():
    explanation = template_explanation(_recommendation())
    assert explanation.source == "template"
    assert explanation.summary == (
        "Excellent timing with 85% astrological favorability. Mercury hour during waxing crescent."
    )
    assert "Overall astrological favorability" in explanation.reasoning
    assert "Cautions: Retrograde planets may create challenges." in explanation.reasoning
    assert explanation.advice == "Double-check details due to retrograde influences."


def test_template_quality_bands():
    assert template_explanation(_recommendation(final=0.7)).summary.startswith("Good timing with 70%")
    plain = template_explanation(_recommendation(final=0.5, ruling_body=None))
    assert plain.summary.startswith("Acceptable timing with 50%")
    assert "Standard timing during waxing crescent." in plain.summary


def test_prompt_contains_conditions():
    messages = build_explanation_messages(_recommendation(), "meeting", "business", "America/New_York")
    assert messages[0]["role"] == "system"
    user = messages[1]["content"]
    assert "October 19 2026, 09:00 AM" in user
    assert "meeting (business)" in user
    assert "Planetary Hour: mercury" in user
    assert "Retrograde Planets: mercury" in user
    assert "retrograde_penalty: -0.100" in user
    assert "PERSONALIZED" not in user
    assert quality_label(0.85) == "excellent"
    assert quality_label(0.6) == "good"
    assert quality_label(0.2) == "acceptable"


@pytest.mark.asyncio
async def test_without_client_uses_templates():
    generator = ExplanationGenerator(None)
    assert not generator.enabled
    recommendations = [_recommendation(rank) for rank in (1, 2)]
    explained = await generator.explain(recommendations, activity="meeting", category="business")
    assert [rec.explanation.source for rec in explained] == ["template", "template"]
    assert all(rec.explanation is None for rec in recommendations)


@pytest.mark.asyncio
async def test_llm_explains_top_k_only():
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(json.loads(request.content))
        return _completion(json.dumps({
            "summary": "Mercury rules this hour.",
            "reasoning": "The Moon is waxing.",
            "advice": "Prepare your notes.",
        }))

    client = _llm_client(handler)
    generator = ExplanationGenerator(client, top_k=2)
    recommendations = [_recommendation(rank) for rank in (1, 2, 3)]
    explained = await generator.explain(recommendations, activity="meeting", category="business")
    await client.close()

    assert [rec.explanation.source for rec in explained] == ["llm", "llm", "template"]
    assert explained[0].explanation.summary == "Mercury rules this hour."
    assert [rec.rank for rec in explained] == [1, 2, 3]
    assert len(requests) == 2
    assert requests[0]["model"] == "test-model"


@pytest.mark.asyncio
async def test_fenced_json_is_accepted():
    body = json.dumps({"summary": "s", "reasoning": "r", "advice": "a"})

    client = _llm_client(lambda request: _completion(f"```json\n{body}\n```"))
    explained = await ExplanationGenerator(client).explain(
        [_recommendation()], activity="meeting", category="business"
    )
    await client.close()
    assert explained[0].explanation.source == "llm"
    assert explained[0].explanation.advice == "a"


@pytest.mark.asyncio
async def test_invalid_llm_output_falls_back():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return _completion(json.dumps({"summary": "only a summary"}))

    client = _llm_client(handler)
    explained = await ExplanationGenerator(client).explain(
        [_recommendation()], activity="meeting", category="business"
    )
    await client.close()
    # one attempt plus one repair retry
    assert len(calls) == 2
    assert explained[0].explanation.source == "template"


@pytest.mark.asyncio
async def test_llm_http_error_falls_back():
    client = _llm_client(lambda request: httpx.Response(500, json={"error": {"message": "upstream down"}}))
    explained = await ExplanationGenerator(client).explain(
        [_recommendation()], activity="meeting", category="business"
    )
    await client.close()
    assert explained[0].explanation.source == "template"
