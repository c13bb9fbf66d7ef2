import asyncio

import httpx
import pytest

from fakes import FakeCache, FakeClock, make_account, make_cookies
from refresher.clients.keepalive import HttpKeepAliveClient
from refresher.clients.login import LOGIN_PATH, HttpLoginClient
from refresher.core.errors import LoginError
from refresher.stores.redis_stores import RedisScheduleIndex, RedisSessionStore

PORTAL = "https://www.alfa.com.lb"


def make_keep_alive(handler, *, with_session=True):
    clock = FakeClock()
    cache = FakeCache()
    sessions = RedisSessionStore(cache, RedisScheduleIndex(cache), clock=clock)
    if with_session:
        asyncio.run(sessions.save("acc-1", make_cookies(clock, 1800)))
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    client = HttpKeepAliveClient(sessions, base_url=PORTAL, client=http, clock=clock)
    return client, sessions


def test_keep_alive_success_merges_new_cookies():
    seen = {}

    def handler(request):
        seen["cookie"] = request.headers.get("cookie")
        seen["path"] = request.url.path
        return httpx.Response(
            200,
            headers=[("set-cookie", "__RequestVerificationToken=fresh; Path=/; Max-Age=7200")],
            text="<html><title>My Account</title></html>",
        )

    client, sessions = make_keep_alive(handler)

    async def scenario():
        result = await client.keep_alive("acc-1")
        return result, await sessions.get("acc-1")

    result, stored = asyncio.run(scenario())
    assert result.success
    assert result.status_code == 200
    assert seen["path"] == "/en/account"
    assert seen["cookie"] == "sid=token"
    assert {c["name"] for c in stored.cookies} == {"sid", "__RequestVerificationToken"}


@pytest.mark.parametrize("status", [301, 302, 401, 403])
def test_keep_alive_expired_statuses_need_full_refresh(status):
    def handler(request):
        return httpx.Response(status, headers={"location": "/en/login"})

    client, _ = make_keep_alive(handler)
    result = asyncio.run(client.keep_alive("acc-1"))
    assert not result.success
    assert result.needs_full_refresh
    assert result.status_code == status


def test_keep_alive_without_account_page_is_inconclusive():
    def handler(request):
        return httpx.Response(200, text="<html>maintenance</html>")

    client, _ = make_keep_alive(handler)
    result = asyncio.run(client.keep_alive("acc-1"))
    assert not result.success
    assert not result.needs_full_refresh


def test_keep_alive_network_error_is_inconclusive():
    def handler(request):
        raise httpx.ConnectError("connection reset", request=request)

    client, _ = make_keep_alive(handler)
    result = asyncio.run(client.keep_alive("acc-1"))
    assert not result.success
    assert not result.needs_full_refresh
    assert "connection reset" in result.error


def test_keep_alive_without_cookies_needs_full_refresh():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200, text="account")

    client, _ = make_keep_alive(handler, with_session=False)
    result = asyncio.run(client.keep_alive("acc-1"))
    assert result.needs_full_refresh
    assert calls == []


def make_login(handler):
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HttpLoginClient("http://login-service:3000", api_key="k", client=http, retry_delay=0)


def test_login_returns_cookies():
    seen = {}

    def handler(request):
        seen["path"] = request.url.path
        seen["key"] = request.headers.get("x-api-key")
        return httpx.Response(200, json={"success": True, "cookies": [{"name": "sid", "value": "v"}], "expiry": 123})

    result = asyncio.run(make_login(handler).login(make_account()))
    assert result.success
    assert result.expiry_ts == 123
    assert seen == {"path": LOGIN_PATH, "key": "k"}


def test_login_retries_once_on_server_error():
    responses = [httpx.Response(503), httpx.Response(200, json={"success": True, "cookies": [{"name": "sid"}]})]

    def handler(request):
        return responses.pop(0)

    result = asyncio.run(make_login(handler).login(make_account()))
    assert result.success
    assert responses == []


def test_login_rejection_raises_without_retry():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(401)

    with pytest.raises(LoginError) as exc_info:
        asyncio.run(make_login(handler).login(make_account()))
    assert exc_info.value.status_code == 401
    assert len(calls) == 1


def test_login_gives_up_after_second_network_error():
    calls = []

    def handler(request):
        calls.append(request)
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(LoginError):
        asyncio.run(make_login(handler).login(make_account()))
    assert len(calls) == 2


def test_login_service_failure_payload_raises():
    def handler(request):
        return httpx.Response(200, json={"success": False, "error": "captcha unsolved"})

    with pytest.raises(LoginError, match="captcha unsolved"):
        asyncio.run(make_login(handler).login(make_account()))
