"""Timing recommendation endpoints."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from kairos.schemas.timing import (
    ConditionsSummary,
    RecommendationResult,
    RecommendationStatus,
    RetrogradeReport,
    SubtypeTiming,
    TimingRequest,
    Urgency,
    resolve_timezone,
)
from timing.engine import TimingEngine
from timing.scanner import PositionSourceOutageError

from api.dependencies import get_timing_engine

logger = logging.getLogger(__name__)

router = APIRouter()

OUTAGE_DETAIL = "Ephemeris unavailable"


def _checked_timezone(timezone: str) -> str:
    try:
        resolve_timezone(timezone)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    return timezone


@router.post("/recommendations", response_model=RecommendationResult)
async def get_recommendations(
    payload: TimingRequest,
    engine: TimingEngine = Depends(get_timing_engine),
):
    try:
        return await engine.get_recommendations(payload)
    except PositionSourceOutageError as exc:
        logger.error("Timing recommendations failed: %s", exc)
        raise HTTPException(status_code=503, detail=OUTAGE_DETAIL) from exc


@router.get("/conditions", response_model=ConditionsSummary)
async def get_current_conditions(
    timezone: str = Query(default="UTC"),
    engine: TimingEngine = Depends(get_timing_engine),
):
    timezone = _checked_timezone(timezone)
    try:
        return await engine.current_conditions(timezone)
    except PositionSourceOutageError as exc:
        logger.error("Current conditions failed: %s", exc)
        raise HTTPException(status_code=503, detail=OUTAGE_DETAIL) from exc


@router.get("/quick/{category}", response_model=RecommendationResult)
async def get_quick_recommendations(
    category: str,
    urgency: Urgency = Query(default=Urgency.NORMAL),
    horizon_days: int = Query(default=7, ge=1, le=366),
    timezone: str = Query(default="UTC"),
    user_id: str | None = Query(default=None),
    engine: TimingEngine = Depends(get_timing_engine),
):
    timezone = _checked_timezone(timezone)
    try:
        result = await engine.quick_recommendations(
            category,
            urgency=urgency,
            horizon_days=horizon_days,
            timezone=timezone,
            user_id=user_id,
        )
    except PositionSourceOutageError as exc:
        logger.error("Quick recommendations failed for %s: %s", category, exc)
        raise HTTPException(status_code=503, detail=OUTAGE_DETAIL) from exc
    if result.status == RecommendationStatus.UNKNOWN_CATEGORY:
        raise HTTPException(status_code=400, detail=result.detail or f"Unknown category: {category}")
    return result


@router.get("/retrograde/{body}", response_model=RetrogradeReport)
async def get_retrograde_report(
    body: str,
    timezone: str = Query(default="UTC"),
    engine: TimingEngine = Depends(get_timing_engine),
):
    timezone = _checked_timezone(timezone)
    try:
        return await engine.retrograde_report(body, timezone)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except PositionSourceOutageError as exc:
        logger.error("Retrograde report failed for %s: %s", body, exc)
        raise HTTPException(status_code=503, detail=OUTAGE_DETAIL) from exc


@router.get("/analysis/{category}/{subtype}", response_model=SubtypeTiming)
async def get_subtype_analysis(
    category: str,
    subtype: str,
    timezone: str = Query(default="UTC"),
    user_id: str | None = Query(default=None),
    procedure: str | None = Query(default=None, pattern="^(removal|reconstruction)$"),
    engine: TimingEngine = Depends(get_timing_engine),
):
    timezone = _checked_timezone(timezone)
    try:
        return await engine.subtype_analysis(
            category,
            subtype,
            timezone=timezone,
            user_id=user_id,
            procedure=procedure,
        )
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except PositionSourceOutageError as exc:
        logger.error("Subtype analysis failed for %s/%s: %s", category, subtype, exc)
        raise HTTPException(status_code=503, detail=OUTAGE_DETAIL) from exc


@router.get("/categories")
async def list_categories(engine: TimingEngine = Depends(get_timing_engine)):
    categories = engine.list_categories()
    return {"categories": categories, "total": len(categories)}
