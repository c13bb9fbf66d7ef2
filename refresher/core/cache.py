"""Redis-backed cache layer shared by the schedule index, session and lock stores.

Plain keys hold JSON or scalar strings with optional TTLs; the refresh
schedule lives in a sorted set scored by deadline (epoch ms).
"""

from __future__ import annotations

import re
from typing import Any, Awaitable, List, Optional, Tuple

import redis.asyncio as redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

from refresher.core.errors import CacheUnavailable
from refresher.utils.logger import get_logger

log = get_logger(__name__)

_UNSAFE_KEY_CHARS = re.compile(r"[^a-zA-Z0-9_-]")


def user_key(account_id: str, suffix: str) -> str:
    """``user:{sanitised id}:{suffix}``"""
    sanitised = _UNSAFE_KEY_CHARS.sub("_", str(account_id))
    return f"user:{sanitised}:{suffix}"


class CacheLayer:
    """Thin async wrapper over a Redis client.

    Connection and timeout errors surface as ``CacheUnavailable`` so callers
    can tell an unreachable store from an empty one.
    """

    def __init__(self, client: redis.Redis) -> None:
        self._redis = client

    @classmethod
    def from_url(cls, redis_url: str) -> "CacheLayer":
        return cls(redis.from_url(redis_url, decode_responses=True))

    async def close(self) -> None:
        await self._redis.aclose()

    async def ping(self) -> bool:
        return bool(await self._call("ping", None, self._redis.ping()))

    async def _call(self, operation: str, key: Optional[str], awaitable: Awaitable[Any]) -> Any:
        try:
            return await awaitable
        except (RedisConnectionError, RedisTimeoutError) as exc:
            log.warning(f"[cache] {operation} failed key={key}: {exc}")
            raise CacheUnavailable(f"Redis {operation} failed: {exc}", operation=operation, key=key) from exc

    async def get(self, key: str) -> Optional[str]:
        return await self._call("get", key, self._redis.get(key))

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        ex = max(int(ttl), 1) if ttl else None
        await self._call("set", key, self._redis.set(key, value, ex=ex))

    async def set_nx(self, key: str, value: Any, ttl: int) -> bool:
        result = await self._call("set_nx", key, self._redis.set(key, value, ex=max(int(ttl), 1), nx=True))
        return bool(result)

    async def delete(self, key: str) -> None:
        await self._call("delete", key, self._redis.delete(key))

    async def exists(self, key: str) -> bool:
        return bool(await self._call("exists", key, self._redis.exists(key)))

    async def zadd(self, key: str, member: str, score: float) -> None:
        await self._call("zadd", key, self._redis.zadd(key, {member: score}))

    async def zrem(self, key: str, member: str) -> None:
        await self._call("zrem", key, self._redis.zrem(key, member))

    async def zrangebyscore(self, key: str, minimum: Any, maximum: Any) -> List[Tuple[str, float]]:
        results = await self._call(
            "zrangebyscore",
            key,
            self._redis.zrangebyscore(key, minimum, maximum, withscores=True),
        )
        return [(member, float(score)) for member, score in results or []]

    async def zfirst(self, key: str) -> Optional[Tuple[str, float]]:
        results = await self._call("zrange", key, self._redis.zrange(key, 0, 0, withscores=True))
        if not results:
            return None
        member, score = results[0]
        return member, float(score)


__all__ = ["CacheLayer", "user_key"]
