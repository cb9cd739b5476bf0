"""FastAPI application factory."""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from kairos.config import get_settings
from kairos.database import close_engine

from api.dependencies import close_timing_engine
from api.routers import health, timing

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    try:
        yield
    finally:
        await close_timing_engine()
        await close_engine()


def create_app() -> FastAPI:
    app = FastAPI(title="Kairos API", version="0.1.0", lifespan=lifespan)
    settings = get_settings()
    if not settings.llm_api_key:
        logger.warning("LLM_API_KEY is empty; explanations will use templates")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.site_url],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(health.router, tags=["health"])
    app.include_router(timing.router, prefix="/v1/timing", tags=["timing"])
    return app


app = create_app()
