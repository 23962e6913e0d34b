"""Async Redis/Valkey client wrapper.

Only the handful of string operations the identity layer needs. Failures are
raised as ``DaoError`` subclasses so callers can tell an unreachable cache
apart from a cache miss (``None``).
"""
import json
import logging
from typing import Any

import redis.asyncio as redis
from redis.exceptions import AuthenticationError, RedisError
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

from identity_api.errors import (
    DaoCacheAuthenticationError,
    DaoCacheConnectionError,
    DaoError,
)

logger = logging.getLogger(__name__)


def map_cache_error(exc: BaseException) -> DaoError:
    # AuthenticationError subclasses ConnectionError, check it first
    if isinstance(exc, AuthenticationError):
        return DaoCacheAuthenticationError(cause=exc)
    if isinstance(exc, (RedisConnectionError, RedisTimeoutError, OSError)):
        return DaoCacheConnectionError(cause=exc)
    return DaoError(f"Cache error: {exc}", exc)


class CacheClient:
    def __init__(self, client: "redis.Redis") -> None:
        self._client = client

    @classmethod
    def from_url(cls, url: str) -> "CacheClient":
        return cls(redis.Redis.from_url(url, decode_responses=True))

    async def get_raw(self, key: str) -> str | None:
        try:
            return await self._client.get(key)
        except (RedisError, OSError) as exc:
            raise map_cache_error(exc) from exc

    async def set_raw(self, key: str, value: str, ttl: int | None = None) -> None:
        try:
            await self._client.set(key, value, ex=ttl)
        except (RedisError, OSError) as exc:
            raise map_cache_error(exc) from exc

    async def get_json(self, key: str) -> Any:
        data = await self.get_raw(key)
        if data is None:
            return None
        try:
            return json.loads(data)
        except json.JSONDecodeError:
            logger.warning("discarding undecodable cache entry key=%s", key)
            return None

    async def set_json(self, key: str, value: Any, ttl: int | None = None) -> None:
        await self.set_raw(key, json.dumps(value, default=str), ttl)

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        try:
            return await self._client.delete(*keys)
        except (RedisError, OSError) as exc:
            raise map_cache_error(exc) from exc

    async def ping(self) -> bool:
        try:
            return bool(await self._client.ping())
        except (RedisError, OSError) as exc:
            raise map_cache_error(exc) from exc

    async def close(self) -> None:
        await self._client.aclose()
