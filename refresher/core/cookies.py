"""Helpers for browser-style cookie lists (dicts with name/value/expires)."""

from __future__ import annotations

import time
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional

Cookie = Dict[str, Any]

# Values below this are epoch seconds, above it epoch milliseconds.
_SECONDS_CUTOFF = 10_000_000_000


def _now_ms() -> int:
    return int(time.time() * 1000)


def _parse_date(value: str) -> Optional[datetime]:
    text = value.strip()
    if not text:
        return None
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        try:
            parsed = parsedate_to_datetime(text)
        except (TypeError, ValueError, IndexError):
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def cookie_expiry_ms(cookie: Mapping[str, Any]) -> Optional[int]:
    """Absolute expiry of one cookie in epoch ms, or None for session cookies."""
    expires = cookie.get("expires")
    if expires is None or expires == "" or isinstance(expires, bool):
        return None
    if isinstance(expires, (int, float)):
        if expires <= 0:
            return None
        return int(expires * 1000) if expires < _SECONDS_CUTOFF else int(expires)
    if isinstance(expires, str):
        parsed = _parse_date(expires)
        if parsed is None:
            return None
        return int(parsed.timestamp() * 1000)
    return None


def are_cookies_expired(cookies: Optional[Iterable[Mapping[str, Any]]], *, now_ms: Optional[int] = None) -> bool:
    """True when there are no cookies or any cookie has reached its expiry."""
    if not cookies:
        return True
    now_ms = _now_ms() if now_ms is None else now_ms
    for cookie in cookies:
        expiry = cookie_expiry_ms(cookie)
        if expiry is not None and expiry <= now_ms:
            return True
    return False


def min_expiration_seconds(cookies: Optional[Iterable[Mapping[str, Any]]], *, now_ms: Optional[int] = None) -> Optional[int]:
    """Seconds until the soonest-expiring cookie that is still valid."""
    if not cookies:
        return None
    now_ms = _now_ms() if now_ms is None else now_ms
    soonest: Optional[int] = None
    for cookie in cookies:
        expiry = cookie_expiry_ms(cookie)
        if expiry is None:
            continue
        remaining = (expiry - now_ms) // 1000
        if remaining > 0 and (soonest is None or remaining < soonest):
            soonest = remaining
    return soonest


def format_cookie_header(cookies: Optional[Iterable[Mapping[str, Any]]]) -> str:
    if not cookies:
        return ""
    return "; ".join(f"{c.get('name', '')}={c.get('value', '')}" for c in cookies)


def parse_set_cookie(header: str, *, domain: str, now_ms: Optional[int] = None) -> Optional[Cookie]:
    """Parse one Set-Cookie header value into a cookie dict."""
    if not header:
        return None
    parts = [part.strip() for part in header.split(";")]
    name, sep, value = parts[0].partition("=")
    name, value = name.strip(), value.strip()
    if not sep or not name or not value:
        return None

    cookie: Cookie = {
        "name": name,
        "value": value,
        "domain": domain if domain.startswith(".") else f".{domain}",
        "path": "/",
        "httpOnly": False,
        "secure": True,
        "sameSite": "Lax",
    }
    max_age: Optional[int] = None
    for attribute in parts[1:]:
        key, _, raw = attribute.partition("=")
        key = key.strip().lower()
        raw = raw.strip()
        if key == "domain" and raw:
            cookie["domain"] = raw
        elif key == "path" and raw:
            cookie["path"] = raw
        elif key == "httponly":
            cookie["httpOnly"] = True
        elif key == "secure":
            cookie["secure"] = True
        elif key == "expires":
            parsed = _parse_date(raw)
            if parsed is not None:
                cookie["expires"] = int(parsed.timestamp())
        elif key == "max-age":
            try:
                max_age = int(raw)
            except ValueError:
                continue

    # Max-Age wins over Expires.
    if max_age is not None:
        now_ms = _now_ms() if now_ms is None else now_ms
        cookie["expires"] = now_ms // 1000 + max_age
    return cookie


def merge_cookies(existing: Optional[List[Cookie]], fresh: Optional[List[Cookie]]) -> List[Cookie]:
    """Merge by cookie name; fresh cookies replace existing ones."""
    if not existing:
        return list(fresh or [])
    if not fresh:
        return list(existing)
    merged: Dict[str, Cookie] = {cookie.get("name", ""): cookie for cookie in existing}
    for cookie in fresh:
        merged[cookie.get("name", "")] = cookie
    return list(merged.values())


__all__ = [
    "Cookie",
    "cookie_expiry_ms",
    "are_cookies_expired",
    "min_expiration_seconds",
    "format_cookie_header",
    "parse_set_cookie",
    "merge_cookies",
]
