"""FastAPI dependency injection."""

from __future__ import annotations

from ephemeris.calculator import SwissEphemerisSource
from kairos.config import get_settings
from kairos.database import get_session_factory
from kairos.services.llm_client import LLMClient, build_llm_client
from kairos.services.profile_store import SqlBirthProfileStore
from kairos.services.result_cache import RedisResultCache
from timing.engine import TimingEngine
from timing.explanations import ExplanationGenerator

_engine: TimingEngine | None = None
_cache: RedisResultCache | None = None
_llm_client: LLMClient | None = None


def get_timing_engine() -> TimingEngine:
    """Process-wide engine wired to Swiss Ephemeris, Redis, Postgres and the LLM service."""
    global _engine, _cache, _llm_client
    if _engine is None:
        settings = get_settings()
        _cache = RedisResultCache(settings.redis_url) if settings.cache_enabled else None
        _llm_client = build_llm_client(settings)
        _engine = TimingEngine(
            SwissEphemerisSource(settings.swisseph_ephe_path),
            settings=settings,
            cache=_cache,
            profiles=SqlBirthProfileStore(get_session_factory),
            explainer=ExplanationGenerator(_llm_client, top_k=settings.explanation_top_k),
        )
    return _engine


async def close_timing_engine() -> None:
    global _engine, _cache, _llm_client
    if _cache is not None:
        await _cache.close()
    if _llm_client is not None:
        await _llm_client.close()
    _engine = None
    _cache = None
    _llm_client = None
