"""End-to-end timing requests through the HTTP API with a static sky."""

import pytest
from api.dependencies import get_timing_engine
from api.main import create_app
from httpx import ASGITransport, AsyncClient
from timing.engine import TimingEngine


@pytest.fixture
async def e2e_client(sky_source, integration_settings):
    app = create_app()
    engine = TimingEngine(sky_source, settings=integration_settings)
    app.dependency_overrides[get_timing_engine] = lambda: engine
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.mark.asyncio
async def test_meeting_next_day(e2e_client: AsyncClient):
    response = await e2e_client.post(
        "/v1/timing/recommendations",
        json={"activity": "meeting", "category": "business", "horizon_days": 1, "urgency": "normal"},
    )
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ok"
    assert 0 < len(body["recommendations"]) <= 24
    for rec in body["recommendations"]:
        assert rec["window"]["score"] >= 0.6
        assert rec["window"]["void_window"] is None
        assert all(factor["type"] != "retrograde_penalty" for factor in rec["breakdown"])
        assert rec["explanation"]["source"] == "template"
        assert 0.3 <= rec["confidence"] <= 0.95
    ranks = [rec["rank"] for rec in body["recommendations"]]
    assert ranks == list(range(1, len(ranks) + 1))
    assert body["recommendations"][0]["window"]["ruling_body"] == "mercury"
    assert body["current_conditions"]["lunar_phase"] == "waxing_crescent"


@pytest.mark.asyncio
async def test_unknown_activity_is_reported(e2e_client: AsyncClient):
    response = await e2e_client.post(
        "/v1/timing/recommendations",
        json={"activity": "basket weaving", "category": "business"},
    )
    assert response.status_code == 200
    assert response.json()["status"] == "unknown_activity"
    assert response.json()["recommendations"] == []


@pytest.mark.asyncio
async def test_quick_and_categories(e2e_client: AsyncClient):
    response = await e2e_client.get("/v1/timing/quick/home", params={"horizon_days": 1})
    assert response.status_code == 200
    body = response.json()
    assert body["activity"] == "moving"
    assert len(body["recommendations"]) <= 3

    response = await e2e_client.get("/v1/timing/quick/astrology")
    assert response.status_code == 400

    response = await e2e_client.get("/v1/timing/categories")
    assert response.json()["total"] == 8


@pytest.mark.asyncio
async def test_conditions_and_retrograde(e2e_client: AsyncClient):
    response = await e2e_client.get("/v1/timing/conditions", params={"timezone": "America/New_York"})
    assert response.status_code == 200
    assert response.json()["retrograde_count"] == 0

    response = await e2e_client.get("/v1/timing/retrograde/mercury")
    assert response.status_code == 200
    assert response.json()["is_retrograde"] is False

    response = await e2e_client.get("/v1/timing/retrograde/moon")
    assert response.status_code == 404
