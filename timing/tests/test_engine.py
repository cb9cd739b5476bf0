"""Tests for the timing engine."""

import pytest
from kairos.config import Settings
from kairos.schemas.timing import ActivityCategory, PhaseName, RecommendationStatus, TimingRequest, Urgency
from timing.engine import MERCURY_AVOID, TimingEngine
from timing.scanner import PositionSourceOutageError


def _request(**overrides) -> TimingRequest:
    fields = {"activity": "meeting", "category": "business", "horizon_days": 1}
    fields.update(overrides)
    return TimingRequest(**fields)


@pytest.mark.asyncio
async def test_unknown_category(direct_source, settings, now):
    engine = TimingEngine(direct_source, settings=settings)
    result = await engine.get_recommendations(_request(category="astrology"), now=now)
    assert result.status == RecommendationStatus.UNKNOWN_CATEGORY
    assert result.recommendations == []
    assert direct_source.calls == 0


@pytest.mark.asyncio
async def test_unknown_activity(direct_source, settings, now):
    engine = TimingEngine(direct_source, settings=settings)
    result = await engine.get_recommendations(_request(activity="basket weaving"), now=now)
    assert result.status == RecommendationStatus.UNKNOWN_ACTIVITY
    assert result.detail == "Unknown activity: basket weaving"
    assert direct_source.calls == 0


@pytest.mark.asyncio
async def test_recommendations(direct_source, settings, now):
    engine = TimingEngine(direct_source, settings=settings)
    result = await engine.get_recommendations(_request(activity="Meeting"), now=now)
    assert result.status == RecommendationStatus.OK
    assert result.activity == "meeting"
    assert result.category == "business"
    assert result.generated_at == now
    assert not result.cached
    assert len(result.recommendations) == 24
    top = result.recommendations[0]
    assert top.window.ruling_body == "mercury"
    assert top.window.id == "2026-10-19_6"
    assert top.explanation is not None
    assert top.explanation.source == "template"
    assert result.overall_confidence > 0
    assert result.current_conditions.lunar_phase == PhaseName.WAXING_CRESCENT
    assert result.current_conditions.retrograde_count == 0


@pytest.mark.asyncio
async def test_financial_alias(direct_source, settings, now):
    engine = TimingEngine(direct_source, settings=settings)
    result = await engine.get_recommendations(
        _request(activity="investments", category="financial"), now=now
    )
    assert result.status == RecommendationStatus.OK
    assert result.category == "finance"


@pytest.mark.asyncio
async def test_max_recommendations(direct_source, now):
    engine = TimingEngine(direct_source, settings=Settings(_env_file=None, cache_enabled=False))
    result = await engine.get_recommendations(_request(), now=now)
    assert len(result.recommendations) == 10


@pytest.mark.asyncio
async def test_horizon_is_clamped(direct_source, now):
    settings = Settings(_env_file=None, cache_enabled=False, max_horizon_days=2, max_recommendations=100)
    engine = TimingEngine(direct_source, settings=settings)
    result = await engine.get_recommendations(_request(horizon_days=5), now=now)
    assert result.horizon_days == 2
    assert {rec.window.day_offset for rec in result.recommendations} == {0, 1}


@pytest.mark.asyncio
async def test_explanations_can_be_skipped(direct_source, settings, now):
    engine = TimingEngine(direct_source, settings=settings)
    result = await engine.get_recommendations(_request(include_explanations=False), now=now)
    assert all(rec.explanation is None for rec in result.recommendations)


@pytest.mark.asyncio
async def test_cache_round_trip(direct_source, settings, fake_cache, now):
    engine = TimingEngine(direct_source, settings=settings, cache=fake_cache)
    first = await engine.get_recommendations(_request(), now=now)
    calls = direct_source.calls
    assert not first.cached
    [key] = fake_cache.store
    assert key == "timing:meeting:business:2026-10-19:g:1:normal:UTC:x"
    assert fake_cache.ttls[key] == settings.cache_ttl_seconds

    second = await engine.get_recommendations(_request(), now=now)
    assert second.cached
    assert direct_source.calls == calls
    assert second.model_dump(exclude={"cached"}) == first.model_dump(exclude={"cached"})


@pytest.mark.asyncio
async def test_malformed_cache_entry_is_ignored(direct_source, settings, fake_cache, now):
    engine = TimingEngine(direct_source, settings=settings, cache=fake_cache)
    request = _request()
    key = engine.cache_key(request, "meeting", ActivityCategory.BUSINESS, 1, now)
    fake_cache.store[key] = {"recommendations": "not a list"}
    result = await engine.get_recommendations(request, now=now)
    assert not result.cached
    assert len(result.recommendations) == 24


@pytest.mark.asyncio
async def test_cache_disabled(direct_source, fake_cache, now):
    engine = TimingEngine(direct_source, settings=Settings(_env_file=None, cache_enabled=False), cache=fake_cache)
    await engine.get_recommendations(_request(), now=now)
    assert fake_cache.store == {}


@pytest.mark.asyncio
async def test_personalized(direct_source, settings, profile_store, now):
    engine = TimingEngine(direct_source, settings=settings, profiles=profile_store)
    result = await engine.get_recommendations(_request(personalize=True, user_id="user-1"), now=now)
    assert result.personalized
    factor_types = {factor.type for factor in result.recommendations[0].breakdown}
    assert "personalized_enhancement" in factor_types
    profile_store.get_profile.assert_awaited_once_with("user-1")


@pytest.mark.asyncio
async def test_personalization_without_profile(direct_source, settings, profile_store, now):
    engine = TimingEngine(direct_source, settings=settings, profiles=profile_store)
    result = await engine.get_recommendations(_request(personalize=True, user_id="nobody"), now=now)
    assert not result.personalized
    factor_types = {factor.type for rec in result.recommendations for factor in rec.breakdown}
    assert "personalized_enhancement" not in factor_types


@pytest.mark.asyncio
async def test_outage(empty_source, settings, now):
    engine = TimingEngine(empty_source, settings=settings)
    with pytest.raises(PositionSourceOutageError):
        await engine.get_recommendations(_request(), now=now)
    with pytest.raises(PositionSourceOutageError):
        await engine.current_conditions(now=now)


@pytest.mark.asyncio
async def test_current_conditions(retrograde_source, settings, now):
    engine = TimingEngine(retrograde_source, settings=settings)
    conditions = await engine.current_conditions("Europe/Berlin", now=now)
    assert conditions.lunar_phase == PhaseName.WAXING_CRESCENT
    assert conditions.retrograde_bodies == ["mercury"]
    assert conditions.retrograde_count == 1
    assert conditions.timestamp.utcoffset().total_seconds() == 7200


@pytest.mark.asyncio
async def test_quick_recommendations(direct_source, settings, now):
    engine = TimingEngine(direct_source, settings=settings)
    result = await engine.quick_recommendations("business", urgency=Urgency.URGENT, horizon_days=1, now=now)
    assert result.activity == "meetings"
    assert len(result.recommendations) == 3
    assert all(rec.explanation is not None for rec in result.recommendations)
    assert "urgency_bonus" in {factor.type for factor in result.recommendations[0].breakdown}


@pytest.mark.asyncio
async def test_quick_unknown_category(direct_source, settings, now):
    engine = TimingEngine(direct_source, settings=settings)
    result = await engine.quick_recommendations("astrology", now=now)
    assert result.status == RecommendationStatus.UNKNOWN_CATEGORY


@pytest.mark.asyncio
async def test_retrograde_report(retrograde_source, settings, now):
    engine = TimingEngine(retrograde_source, settings=settings)
    report = await engine.retrograde_report("Mercury", now=now)
    assert report.body == "mercury"
    assert report.is_retrograde
    assert report.sign == "Libra"
    assert report.avoid_during == MERCURY_AVOID
    assert report.alternative_timing.startswith("Consider waiting until Mercury goes direct")


@pytest.mark.asyncio
async def test_retrograde_report_for_other_bodies(direct_source, settings, now):
    engine = TimingEngine(direct_source, settings=settings)
    report = await engine.retrograde_report("venus", now=now)
    assert not report.is_retrograde
    assert "Starting new relationships" in report.avoid_during
    assert report.alternative_timing == "Current timing is favorable for Venus-ruled activities"
    with pytest.raises(ValueError):
        await engine.retrograde_report("sun", now=now)


@pytest.mark.asyncio
async def test_retrograde_report_outage(empty_source, settings, now):
    engine = TimingEngine(empty_source, settings=settings)
    with pytest.raises(PositionSourceOutageError):
        await engine.retrograde_report("mercury", now=now)


def test_list_categories(direct_source, settings):
    categories = TimingEngine(direct_source, settings=settings).list_categories()
    assert len(categories) == 8
    assert {entry["category"] for entry in categories} >= {"business", "finance", "home"}
    by_name = {entry["category"]: entry for entry in categories}
    assert by_name["business"]["subtypes"] == ["important_meeting"]
    assert by_name["home"]["subtypes"] == []


@pytest.mark.asyncio
async def test_identical_inputs_identical_output(direct_source, settings, now):
    first = await TimingEngine(direct_source, settings=settings).get_recommendations(_request(horizon_days=2), now=now)
    second = await TimingEngine(direct_source, settings=settings).get_recommendations(_request(horizon_days=2), now=now)
    assert first.model_dump_json() == second.model_dump_json()


@pytest.mark.asyncio
async def test_meeting_with_mercury_direct(direct_source, settings, now):
    engine = TimingEngine(direct_source, settings=settings)
    result = await engine.get_recommendations(_request(urgency=Urgency.NORMAL), now=now)
    assert 0 < len(result.recommendations) <= 24
    for rec in result.recommendations:
        assert rec.window.score >= settings.confidence_threshold
        assert rec.window.void_window is None
        assert "retrograde_penalty" not in {factor.type for factor in rec.breakdown}
    finals = [rec.final_score for rec in result.recommendations]
    assert finals == sorted(finals, reverse=True)


@pytest.mark.asyncio
async def test_mercury_retrograde_lowers_every_window(direct_source, retrograde_source, settings, now):
    direct = await TimingEngine(direct_source, settings=settings).get_recommendations(_request(), now=now)
    retro = await TimingEngine(retrograde_source, settings=settings).get_recommendations(_request(), now=now)
    direct_finals = {rec.window.id: rec.final_score for rec in direct.recommendations}
    assert retro.recommendations
    for rec in retro.recommendations:
        assert rec.window.retrograde_bodies
        assert rec.final_score < direct_finals[rec.window.id]


class _TimeoutFor:
    """Delegating source whose lookups for one body time out."""

    def __init__(self, inner, body):
        self.inner = inner
        self.body = body

    async def position(self, instant, body):
        if body == self.body:
            raise TimeoutError("ephemeris service timed out")
        return await self.inner.position(instant, body)


@pytest.mark.asyncio
async def test_one_body_timing_out_does_not_abort_the_scan(direct_source, settings, now):
    engine = TimingEngine(_TimeoutFor(direct_source, "mercury"), settings=settings)
    result = await engine.get_recommendations(_request(), now=now)
    assert result.status == RecommendationStatus.OK
    assert result.recommendations
    assert all(rec.window.retrograde_bodies == [] for rec in result.recommendations)
