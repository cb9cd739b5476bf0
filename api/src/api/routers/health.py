"""Liveness and readiness checks."""

import logging

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from kairos import database
from sqlalchemy import text

logger = logging.getLogger(__name__)

router = APIRouter()

SERVICE_NAME = "kairos-api"


@router.get("/health")
async def health_check():
    return {"status": "ok", "service": SERVICE_NAME}


@router.get("/health/ready")
async def readiness_check():
    """Ready when the birth-profile database answers a trivial query."""
    try:
        async with database.get_session() as session:
            await session.execute(text("SELECT 1"))
    except Exception as exc:
        logger.warning("Readiness check failed: %s", exc)
        return JSONResponse(
            status_code=503,
            content={"status": "not_ready", "service": SERVICE_NAME, "error": str(exc)},
        )
    return {"status": "ready", "service": SERVICE_NAME}
