"""Redis implementations of the schedule index, session store and lock store."""

from __future__ import annotations

import json
from typing import Any, Dict, List, Mapping, Optional, Tuple

from models.account import REFRESH_BUFFER_MS, SessionRecord, next_refresh_for
from refresher.core.cache import CacheLayer, user_key
from refresher.core.clock import SystemClock
from refresher.core.cookies import are_cookies_expired, min_expiration_seconds
from refresher.core.errors import CacheUnavailable, ScheduleIndexUnavailable, SessionStoreError
from refresher.core.interfaces import Clock, ScheduleIndex
from refresher.utils.logger import get_logger

log = get_logger(__name__)

REFRESH_SCHEDULE_KEY = "refreshSchedule"
COOKIE_TTL = 24 * 60 * 60
MIN_COOKIE_TTL = 60 * 60
MANUAL_LOCK_TTL = 300


class RedisScheduleIndex:
    """Sorted set ``refreshSchedule`` plus ``user:{id}:nextRefresh`` keys."""

    def __init__(self, cache: CacheLayer, key: str = REFRESH_SCHEDULE_KEY) -> None:
        self.cache = cache
        self.key = key

    async def add(self, account_id: str, deadline: int) -> None:
        await self.cache.zadd(self.key, account_id, deadline)
        await self.set_deadline(account_id, deadline)

    async def remove(self, account_id: str) -> None:
        await self.cache.zrem(self.key, account_id)

    async def range_by_score(self, minimum: float, maximum: float) -> List[Tuple[str, int]]:
        try:
            members = await self.cache.zrangebyscore(self.key, minimum, maximum)
        except CacheUnavailable as exc:
            raise ScheduleIndexUnavailable(f"schedule index query failed: {exc.message}") from exc
        return [(member, int(round(score))) for member, score in members]

    async def first(self) -> Optional[Tuple[str, int]]:
        try:
            head = await self.cache.zfirst(self.key)
        except CacheUnavailable as exc:
            raise ScheduleIndexUnavailable(f"schedule index head query failed: {exc.message}") from exc
        if head is None:
            return None
        member, score = head
        return member, int(round(score))

    async def get_deadline(self, account_id: str) -> Optional[int]:
        raw = await self.cache.get(user_key(account_id, "nextRefresh"))
        return _to_int(raw)

    async def set_deadline(self, account_id: str, deadline: int) -> None:
        await self.cache.set(user_key(account_id, "nextRefresh"), str(int(deadline)))

    async def delete_deadline(self, account_id: str) -> None:
        await self.cache.delete(user_key(account_id, "nextRefresh"))


class RedisSessionStore:
    """Cookies under ``user:{id}:cookies`` with expiry under ``user:{id}:cookieExpiry``.

    Saving a session also schedules its next refresh one buffer ahead of the
    soonest cookie expiry.
    """

    def __init__(
        self,
        cache: CacheLayer,
        index: ScheduleIndex,
        *,
        clock: Optional[Clock] = None,
        buffer_ms: int = REFRESH_BUFFER_MS,
    ) -> None:
        self.cache = cache
        self.index = index
        self.clock = clock or SystemClock()
        self.buffer_ms = buffer_ms

    async def get(self, account_id: str) -> Optional[SessionRecord]:
        raw_cookies = await self.cache.get(user_key(account_id, "cookies"))
        expiry_ts = _to_int(await self.cache.get(user_key(account_id, "cookieExpiry")))
        next_refresh_ts = await self.index.get_deadline(account_id)

        cookies: List[Dict[str, Any]] = []
        saved_at: Optional[int] = None
        if raw_cookies:
            try:
                payload = json.loads(raw_cookies)
            except json.JSONDecodeError:
                log.warning(f"[session] corrupt cookie payload for {account_id}, ignoring")
                payload = {}
            if isinstance(payload, list):
                cookies = payload
            elif isinstance(payload, dict):
                cookies = list(payload.get("cookies") or [])
                saved_at = _to_int(payload.get("savedAt"))

        if not cookies and expiry_ts is None and next_refresh_ts is None:
            return None
        return SessionRecord(
            account_id=account_id,
            cookies=cookies,
            expiry_ts=expiry_ts,
            next_refresh_ts=next_refresh_ts,
            saved_at=saved_at,
        )

    async def save(
        self,
        account_id: str,
        cookies: List[Dict[str, Any]],
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> SessionRecord:
        if not cookies:
            raise SessionStoreError("refusing to save an empty cookie list", account_id=account_id, operation="save")

        now = self.clock.now_ms()
        seconds_left = min_expiration_seconds(cookies, now_ms=now)
        if seconds_left:
            ttl = max(min(seconds_left, COOKIE_TTL), MIN_COOKIE_TTL)
            expiry_ts: Optional[int] = now + seconds_left * 1000
        else:
            ttl = COOKIE_TTL
            expiry_ts = _to_int((metadata or {}).get("expiry_ts"))

        if expiry_ts is not None:
            next_refresh_ts = next_refresh_for(expiry_ts, now_ms=now, buffer_ms=self.buffer_ms)
        else:
            # Session-only cookies live as long as the cache entry.
            next_refresh_ts = now + ttl * 1000 - self.buffer_ms

        payload = {"cookies": cookies, "savedAt": now}
        await self.cache.set(user_key(account_id, "cookies"), json.dumps(payload), ttl)
        if expiry_ts is not None:
            await self.cache.set(user_key(account_id, "cookieExpiry"), str(expiry_ts), ttl)
        await self.index.add(account_id, next_refresh_ts)

        log.info(
            f"[session] saved {len(cookies)} cookies for {account_id} "
            f"ttl={ttl}s expiry={expiry_ts} next_refresh={next_refresh_ts}"
        )
        return SessionRecord(
            account_id=account_id,
            cookies=list(cookies),
            expiry_ts=expiry_ts,
            next_refresh_ts=next_refresh_ts,
            saved_at=now,
        )

    async def invalidate(self, account_id: str, at_ms: int) -> None:
        await self.cache.set(user_key(account_id, "cookieExpiry"), str(int(at_ms)), MIN_COOKIE_TTL)
        await self.index.add(account_id, int(at_ms))
        log.info(f"[session] invalidated session for {account_id}, rescheduled at {at_ms}")

    async def reschedule(self, account_id: str, at_ms: int) -> None:
        """Move the next refresh without touching the stored expiry."""
        await self.index.add(account_id, int(at_ms))
        log.info(f"[session] rescheduled {account_id} at {at_ms}")

    def is_expired(self, cookies: Optional[List[Dict[str, Any]]]) -> bool:
        return are_cookies_expired(cookies, now_ms=self.clock.now_ms())

    def min_expiration_seconds(self, cookies: Optional[List[Dict[str, Any]]]) -> Optional[int]:
        return min_expiration_seconds(cookies, now_ms=self.clock.now_ms())


class RedisLockStore:
    """Manual refresh locks and TTL flags."""

    def __init__(self, cache: CacheLayer) -> None:
        self.cache = cache

    async def has_manual_refresh_lock(self, account_id: str) -> bool:
        return await self.cache.exists(user_key(account_id, "refreshLock"))

    async def acquire_manual_refresh_lock(self, account_id: str, ttl: int = MANUAL_LOCK_TTL) -> bool:
        return await self.cache.set_nx(user_key(account_id, "refreshLock"), "1", ttl)

    async def release_manual_refresh_lock(self, account_id: str) -> None:
        await self.cache.delete(user_key(account_id, "refreshLock"))

    async def set_flag(self, key: str, ttl: int) -> None:
        await self.cache.set(key, "1", ttl)

    async def get_flag(self, key: str) -> bool:
        return (await self.cache.get(key)) == "1"

    async def clear_flag(self, key: str) -> None:
        await self.cache.delete(key)

    async def get_value(self, key: str) -> Optional[str]:
        return await self.cache.get(key)

    async def set_value(self, key: str, value: str, ttl: int) -> None:
        await self.cache.set(key, value, ttl)


def _to_int(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return None


__all__ = [
    "REFRESH_SCHEDULE_KEY",
    "RedisScheduleIndex",
    "RedisSessionStore",
    "RedisLockStore",
]
