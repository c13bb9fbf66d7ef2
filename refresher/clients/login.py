"""Full login through the browser-automation login service."""

from __future__ import annotations

import asyncio
from typing import Any, Dict, Optional

import httpx

from models.account import Account
from refresher.core.errors import LoginError
from refresher.core.interfaces import LoginResult
from refresher.utils.logger import get_logger

log = get_logger(__name__)

LOGIN_PATH = "/api/session/login"
LOGIN_TIMEOUT = 180.0
RETRY_DELAY_SECONDS = 2.0
MAX_ATTEMPTS = 2


class HttpLoginClient:
    """Posts account credentials to the login service and returns its cookies.

    CAPTCHA handling and site retries live in the service; this client only
    retries once on network errors or 5xx responses.
    """

    def __init__(
        self,
        base_url: str,
        *,
        api_key: Optional[str] = None,
        timeout: float = LOGIN_TIMEOUT,
        client: Optional[httpx.AsyncClient] = None,
        retry_delay: float = RETRY_DELAY_SECONDS,
    ) -> None:
        self.url = f"{base_url.rstrip('/')}{LOGIN_PATH}"
        self.api_key = api_key
        self.retry_delay = retry_delay
        self._owns_client = client is None
        self.http_client = client or httpx.AsyncClient(timeout=timeout)

    async def close(self) -> None:
        if self._owns_client:
            await self.http_client.aclose()

    async def login(self, account: Account) -> LoginResult:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["x-api-key"] = self.api_key
        body = {
            "userId": account.account_id,
            "phone": account.credential.get("phone"),
            "password": account.credential.get("password"),
        }

        attempt = 0
        last_exception: Optional[Exception] = None
        while attempt < MAX_ATTEMPTS:
            attempt += 1
            try:
                response = await self.http_client.post(self.url, json=body, headers=headers)
                if response.status_code in {401, 403}:
                    raise LoginError(
                        f"Login rejected (status {response.status_code})",
                        account_id=account.account_id,
                        status_code=response.status_code,
                    )
                response.raise_for_status()
                return self._to_result(account.account_id, response.json())
            except httpx.RequestError as exc:  # network errors
                last_exception = exc
                log.warning(f"[login] network error for {account.account_id} (attempt {attempt}): {exc}")
            except httpx.HTTPStatusError as exc:
                if exc.response.status_code >= 500 and attempt < MAX_ATTEMPTS:
                    last_exception = exc
                    log.warning(f"[login] server error for {account.account_id} (attempt {attempt}): {exc}")
                else:
                    raise LoginError(
                        f"Login service error (status {exc.response.status_code})",
                        account_id=account.account_id,
                        status_code=exc.response.status_code,
                    ) from exc
            if attempt < MAX_ATTEMPTS:
                await asyncio.sleep(self.retry_delay)

        raise LoginError(
            f"Login service unreachable: {last_exception}",
            account_id=account.account_id,
        ) from last_exception

    @staticmethod
    def _to_result(account_id: str, payload: Dict[str, Any]) -> LoginResult:
        if not payload.get("success"):
            raise LoginError(payload.get("error") or "login service reported failure", account_id=account_id)
        cookies = payload.get("cookies") or []
        expiry = payload.get("expiry")
        return LoginResult(
            success=bool(cookies),
            cookies=list(cookies),
            expiry_ts=int(expiry) if expiry is not None else None,
        )


__all__ = ["HttpLoginClient", "LOGIN_PATH"]
