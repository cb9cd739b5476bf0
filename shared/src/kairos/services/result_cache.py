"""Redis-backed cache for scored timing results."""

from __future__ import annotations

import json
import logging
from typing import Any, Protocol

import redis.asyncio as aioredis

logger = logging.getLogger(__name__)


class ResultCache(Protocol):
    """Cache contract used by the timing engine. A miss is never an error."""

    async def get(self, key: str) -> dict | None: ...

    async def set(self, key: str, value: dict, ttl_seconds: int) -> None: ...


class RedisResultCache:
    """JSON values in Redis with per-key expiry."""

    def __init__(self, redis_url: str, *, client: Any | None = None) -> None:
        self._redis_url = redis_url
        self._client = client

    def _get_client(self):
        if self._client is None:
            self._client = aioredis.from_url(self._redis_url)
        return self._client

    async def get(self, key: str) -> dict | None:
        try:
            raw = await self._get_client().get(key)
        except Exception as exc:
            logger.warning("Cache read failed for %s: %s", key, exc)
            return None
        if raw is None:
            return None
        try:
            value = json.loads(raw)
        except (TypeError, ValueError):
            logger.warning("Discarding undecodable cache entry %s", key)
            return None
        return value if isinstance(value, dict) else None

    async def set(self, key: str, value: dict, ttl_seconds: int) -> None:
        try:
            await self._get_client().set(key, json.dumps(value), ex=max(int(ttl_seconds), 1))
        except Exception as exc:
            logger.warning("Cache write failed for %s: %s", key, exc)

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
