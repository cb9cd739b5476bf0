"""API test configuration."""

from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock

import pytest
from api.dependencies import get_timing_engine
from api.main import create_app
from httpx import ASGITransport, AsyncClient
from kairos.schemas.timing import (
    ConditionsSummary,
    CyclicalPhase,
    PhaseName,
    Recommendation,
    RecommendationResult,
    RetrogradeReport,
    SubtypeTiming,
    TimeWindow,
)

NOW = datetime(2026, 10, 19, 0, 0, tzinfo=UTC)


@pytest.fixture
def sample_result():
    window = TimeWindow(
        id="2026-10-19_13",
        start=datetime(2026, 10, 19, 13, 0, tzinfo=UTC),
        end=datetime(2026, 10, 19, 14, 0, tzinfo=UTC),
        score=1.0,
        factors={"base": 0.5, "ruling_body": 0.3},
        phase=CyclicalPhase(name=PhaseName.WAXING_CRESCENT, angle=79.6, illumination=0.44),
        ruling_body="mercury",
    )
    return RecommendationResult(
        activity="meeting",
        category="business",
        horizon_days=1,
        recommendations=[
            Recommendation(rank=1, window=window, final_score=0.6, confidence=0.95),
        ],
        overall_confidence=0.48,
        generated_at=NOW,
    )


@pytest.fixture
def sample_conditions():
    return ConditionsSummary(
        timestamp=NOW,
        lunar_phase=PhaseName.WAXING_CRESCENT,
        illumination=0.44,
        retrograde_bodies=["mercury"],
        retrograde_count=1,
        significant_relationships=2,
    )


@pytest.fixture
def mock_engine(sample_result, sample_conditions):
    """Stand-in for TimingEngine with canned results."""
    engine = MagicMock()
    engine.get_recommendations = AsyncMock(return_value=sample_result)
    engine.quick_recommendations = AsyncMock(return_value=sample_result)
    engine.current_conditions = AsyncMock(return_value=sample_conditions)
    engine.retrograde_report = AsyncMock(
        return_value=RetrogradeReport(body="mercury", timestamp=NOW, is_retrograde=True, speed=-0.5, sign="Libra")
    )
    engine.subtype_analysis = AsyncMock(
        return_value=SubtypeTiming(
            category="business",
            subtype="important_meeting",
            timestamp=NOW,
            confidence=0.2746,
            base_confidence=0.6865,
            multiplier=0.4,
            factors={"mercury": 0.18, "sun": 0.15, "jupiter": 0.12, "tenth_house": 0.09, "lunar_phase": 0.0665},
            primary_bodies=["mercury", "sun", "jupiter"],
            optimal_time_of_day=["09:00-11:00", "14:00-16:00"],
            warnings=["Mercury retrograde: Double-check all communications and contracts"],
        )
    )
    engine.list_categories.return_value = [{"category": "business"}, {"category": "home"}]
    return engine


@pytest.fixture
def app(mock_engine):
    a = create_app()
    a.dependency_overrides[get_timing_engine] = lambda: mock_engine
    return a


@pytest.fixture
async def client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
