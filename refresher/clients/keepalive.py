"""Lightweight keep-alive check against the portal account page."""

from __future__ import annotations

from typing import Optional
from urllib.parse import urlparse

import httpx

from refresher.core.clock import SystemClock
from refresher.core.cookies import format_cookie_header, merge_cookies, parse_set_cookie
from refresher.core.interfaces import Clock, KeepAliveResult, SessionStore
from refresher.utils.logger import get_logger

log = get_logger(__name__)

ACCOUNT_PATH = "/en/account"
KEEP_ALIVE_TIMEOUT = 7.5
EXPIRED_STATUSES = {301, 302, 401, 403}
BODY_SNIFF_BYTES = 10 * 1024

DEFAULT_HEADERS = {
    "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36",
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.5",
}


class HttpKeepAliveClient:
    """Hits the account page with the stored cookies.

    A 200 that renders the account page means the session is alive and any
    Set-Cookie headers are merged back into the store. Redirects and auth
    errors mean the session is gone; anything else is inconclusive.
    """

    def __init__(
        self,
        sessions: SessionStore,
        *,
        base_url: str = "https://www.alfa.com.lb",
        timeout: float = KEEP_ALIVE_TIMEOUT,
        client: Optional[httpx.AsyncClient] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self.sessions = sessions
        self.base_url = base_url.rstrip("/")
        self.domain = urlparse(self.base_url).hostname or "www.alfa.com.lb"
        self.timeout = timeout
        self.clock = clock or SystemClock()
        self._owns_client = client is None
        self.http_client = client or httpx.AsyncClient(
            timeout=timeout,
            follow_redirects=False,
            headers=DEFAULT_HEADERS,
        )

    async def close(self) -> None:
        if self._owns_client:
            await self.http_client.aclose()

    async def keep_alive(self, account_id: str) -> KeepAliveResult:
        session = await self.sessions.get(account_id)
        if session is None or not session.has_cookies:
            log.info(f"[keep-alive] {account_id}: no stored cookies")
            return KeepAliveResult(success=False, needs_full_refresh=True, error="no cookies stored")

        started = self.clock.now_ms()
        try:
            response = await self.http_client.get(
                f"{self.base_url}{ACCOUNT_PATH}",
                headers={"Cookie": format_cookie_header(session.cookies)},
                timeout=self.timeout,
                follow_redirects=False,
            )
        except httpx.TimeoutException as exc:
            log.warning(f"[keep-alive] {account_id}: timed out after {self.timeout}s")
            return KeepAliveResult(success=False, error=f"timeout: {exc}")
        except httpx.RequestError as exc:
            log.warning(f"[keep-alive] {account_id}: network error {exc}")
            return KeepAliveResult(success=False, error=str(exc))

        status = response.status_code
        duration = self.clock.now_ms() - started

        if status in EXPIRED_STATUSES:
            log.info(f"[keep-alive] {account_id}: HTTP {status}, session expired ({duration}ms)")
            return KeepAliveResult(
                success=False,
                needs_full_refresh=True,
                status_code=status,
                error=f"session expired (HTTP {status})",
            )

        body = response.text[:BODY_SNIFF_BYTES].lower()
        if status != 200 or "account" not in body:
            log.warning(f"[keep-alive] {account_id}: HTTP {status} without account page ({duration}ms)")
            return KeepAliveResult(success=False, status_code=status, error=f"unexpected response (HTTP {status})")

        now = self.clock.now_ms()
        fresh = [
            cookie
            for cookie in (
                parse_set_cookie(header, domain=self.domain, now_ms=now)
                for header in response.headers.get_list("set-cookie")
            )
            if cookie is not None
        ]
        cookies = merge_cookies(session.cookies, fresh)
        record = await self.sessions.save(account_id, cookies, {"source": "keep-alive"})

        log.info(f"[keep-alive] {account_id}: OK, {len(fresh)} new cookie(s) ({duration}ms)")
        return KeepAliveResult(success=True, expiry_ts=record.expiry_ts, status_code=status)


__all__ = ["HttpKeepAliveClient"]
