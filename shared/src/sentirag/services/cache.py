"""Redis-backed key/value cache that degrades to "no cache" on any failure."""

from __future__ import annotations

import logging
from typing import Any

import redis.asyncio as aioredis

from sentirag.config import Settings

logger = logging.getLogger(__name__)


class AnswerCache:
    """Thin wrapper over an async redis client.

    Every operation is non-fatal: a missing client or a redis error is logged
    and treated as a miss (``get``), a no-op (``set``) or a first
    hit (``incr``).
    """

    def __init__(self, client: Any | None) -> None:
        self._client = client

    @classmethod
    def from_settings(cls, settings: Settings) -> AnswerCache:
        if not settings.redis_url.strip():
            logger.warning("REDIS_URL is not configured - answer cache disabled")
            return cls(None)
        try:
            client = aioredis.from_url(settings.redis_url, decode_responses=True)
        except ValueError as e:
            logger.warning("Could not create redis client, answer cache disabled: %s", e)
            return cls(None)
        return cls(client)

    @property
    def enabled(self) -> bool:
        return self._client is not None

    async def get(self, key: str) -> str | None:
        if self._client is None:
            return None
        try:
            value = await self._client.get(key)
        except Exception as e:
            logger.warning("Redis cache read failed for %s: %s", key, e)
            return None
        if isinstance(value, bytes):
            value = value.decode("utf-8")
        return value

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        if self._client is None:
            return
        try:
            await self._client.set(key, value, ex=max(1, int(ttl_seconds)))
        except Exception as e:
            logger.warning("Redis cache write failed for %s: %s", key, e)

    async def incr(self, key: str) -> int:
        if self._client is None:
            return 1
        try:
            return int(await self._client.incr(key))
        except Exception as e:
            logger.warning("Redis incr failed for %s: %s", key, e)
            return 1

    async def close(self) -> None:
        if self._client is None:
            return
        try:
            await self._client.aclose()
        except Exception as e:
            logger.warning("Redis close failed: %s", e)
