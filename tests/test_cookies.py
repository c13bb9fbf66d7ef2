from refresher.core.cookies import (
    are_cookies_expired,
    cookie_expiry_ms,
    format_cookie_header,
    merge_cookies,
    min_expiration_seconds,
    parse_set_cookie,
)

NOW_MS = 1_700_000_000_000
NOW_S = NOW_MS // 1000


def test_expiry_accepts_seconds_and_milliseconds():
    assert cookie_expiry_ms({"expires": NOW_S}) == NOW_MS
    assert cookie_expiry_ms({"expires": NOW_MS}) == NOW_MS


def test_expiry_parses_date_strings():
    assert cookie_expiry_ms({"expires": "2023-11-14T22:13:20Z"}) == NOW_MS
    assert cookie_expiry_ms({"expires": "Tue, 14 Nov 2023 22:13:20 GMT"}) == NOW_MS


def test_session_cookies_have_no_expiry():
    assert cookie_expiry_ms({"name": "sid"}) is None
    assert cookie_expiry_ms({"expires": -1}) is None
    assert cookie_expiry_ms({"expires": "not a date"}) is None


def test_expired_when_any_cookie_has_passed():
    cookies = [{"name": "a", "expires": NOW_S + 60}, {"name": "b", "expires": NOW_S - 1}]
    assert are_cookies_expired(cookies, now_ms=NOW_MS)
    assert not are_cookies_expired(cookies[:1], now_ms=NOW_MS)
    assert are_cookies_expired([], now_ms=NOW_MS)
    assert not are_cookies_expired([{"name": "session-only"}], now_ms=NOW_MS)


def test_min_expiration_ignores_session_and_expired_cookies():
    cookies = [
        {"name": "a", "expires": NOW_S + 600},
        {"name": "b", "expires": NOW_S + 60},
        {"name": "c", "expires": NOW_S - 60},
        {"name": "d"},
    ]
    assert min_expiration_seconds(cookies, now_ms=NOW_MS) == 60
    assert min_expiration_seconds([{"name": "d"}], now_ms=NOW_MS) is None


def test_cookie_header_format():
    cookies = [{"name": "a", "value": "1"}, {"name": "b", "value": "2"}]
    assert format_cookie_header(cookies) == "a=1; b=2"
    assert format_cookie_header(None) == ""


def test_parse_set_cookie_attributes():
    cookie = parse_set_cookie(
        "ASP.NET_SessionId=xyz; Path=/en; HttpOnly; Max-Age=120; Expires=Tue, 14 Nov 2023 22:13:20 GMT",
        domain="www.alfa.com.lb",
        now_ms=NOW_MS,
    )
    assert cookie["name"] == "ASP.NET_SessionId"
    assert cookie["value"] == "xyz"
    assert cookie["domain"] == ".www.alfa.com.lb"
    assert cookie["path"] == "/en"
    assert cookie["httpOnly"] is True
    # Max-Age wins over Expires.
    assert cookie["expires"] == NOW_S + 120


def test_parse_set_cookie_rejects_empty_values():
    assert parse_set_cookie("", domain="x") is None
    assert parse_set_cookie("name=", domain="x") is None


def test_merge_replaces_by_name():
    existing = [{"name": "a", "value": "old"}, {"name": "b", "value": "keep"}]
    fresh = [{"name": "a", "value": "new"}]
    merged = {c["name"]: c["value"] for c in merge_cookies(existing, fresh)}
    assert merged == {"a": "new", "b": "keep"}
    assert merge_cookies(None, fresh) == fresh
    assert merge_cookies(existing, []) == existing
