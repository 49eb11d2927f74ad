"""Redis cache adapter (redis.asyncio).

One client (with its own connection pool) is shared by all operations.
Every Redis failure is re-raised as CacheUnavailable.
"""

from __future__ import annotations

import logging

from redis import asyncio as aioredis
from redis.exceptions import RedisError

from memosync.errors import CacheUnavailable

logger = logging.getLogger(__name__)


class RedisCache:
    """Cache backed by a Redis server."""

    def __init__(
        self,
        url: str = "redis://localhost:6379/0",
        *,
        timeout: float = 0.5,
        client: aioredis.Redis | None = None,
    ) -> None:
        self.url = url
        self._client = client or aioredis.Redis.from_url(
            url,
            decode_responses=True,
            socket_timeout=timeout,
            socket_connect_timeout=timeout,
        )

    @property
    def name(self) -> str:
        return "redis"

    async def get(self, key: str) -> str | None:
        try:
            return await self._client.get(key)
        except RedisError as e:
            raise CacheUnavailable(f"Redis GET {key} failed: {e}") from e

    async def set(self, key: str, value: str, ttl: float | None = None) -> None:
        if ttl is not None and ttl <= 0:
            raise ValueError(f"ttl must be positive, got {ttl}")
        try:
            if ttl is None:
                await self._client.set(key, value)
            else:
                await self._client.set(key, value, px=max(1, int(ttl * 1000)))
        except RedisError as e:
            raise CacheUnavailable(f"Redis SET {key} failed: {e}") from e

    async def delete(self, key: str) -> None:
        try:
            await self._client.delete(key)
        except RedisError as e:
            raise CacheUnavailable(f"Redis DEL {key} failed: {e}") from e

    async def exists(self, key: str) -> bool:
        try:
            return bool(await self._client.exists(key))
        except RedisError as e:
            raise CacheUnavailable(f"Redis EXISTS {key} failed: {e}") from e

    async def ping(self) -> bool:
        try:
            return bool(await self._client.ping())
        except RedisError as e:
            logger.warning("Redis health check failed: %s", e)
            return False

    async def close(self) -> None:
        await self._client.aclose()
