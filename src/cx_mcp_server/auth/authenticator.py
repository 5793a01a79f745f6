"""Login-as-user against the backend's cookie-issuing redirect endpoint.

Pattern: Redirect Capture
--------------------------
The backend logs a user in by answering ``GET /services/uat/login?uuid=...``
with a 302 that sets a ``cnx`` session cookie (and usually a ``cnx-expires``
hint) and points ``Location`` at the dashboard.  We must observe that raw
3xx response, so redirects are never followed.  If the ``cnx`` cookie is
present the login succeeded, whatever the status code; the cookie is stored
in the ``SessionManager`` and the caller receives our own opaque token.

Every failure path is returned as a value.  ``authenticate`` does not raise.
"""

from __future__ import annotations

import asyncio
import dataclasses
import datetime
import logging
from typing import Any

import httpx

from cx_mcp_server.auth.session import SessionData
from cx_mcp_server.auth.session_manager import SessionManager
from cx_mcp_server.errors import ErrorInfo, classify_status, network_error
from cx_mcp_server.settings import AppConfig

logger = logging.getLogger(__name__)

OPERATION = "login_as_user"
SESSION_COOKIE = "cnx"
SESSION_EXPIRES_COOKIE = "cnx-expires"
DEFAULT_TIMEOUT_SECONDS = 5.0

_REQUEST_HEADERS = {
    "Content-Type": "application/json",
    "Accept": "application/json",
}


def _timestamp() -> str:
    return datetime.datetime.now(datetime.UTC).isoformat()


@dataclasses.dataclass(frozen=True)
class AuthenticationSuccess:
    account_uuid: str
    token: str
    cookie: str
    cookie_expiry_hint: str
    redirect_location: str
    message: str = "Authentication successful"
    timestamp: str = dataclasses.field(default_factory=_timestamp)

    success = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": True,
            "data": {
                "accountUuid": self.account_uuid,
                "token": self.token,
                "cookie": self.cookie,
                "cookieExpiryHint": self.cookie_expiry_hint,
                "redirectLocation": self.redirect_location,
                "message": self.message,
            },
            "operation": OPERATION,
            "timestamp": self.timestamp,
        }


@dataclasses.dataclass(frozen=True)
class AuthenticationFailure:
    error: ErrorInfo
    timestamp: str = dataclasses.field(default_factory=_timestamp)

    success = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": False,
            "error": self.error.to_dict(),
            "operation": OPERATION,
            "timestamp": self.timestamp,
        }


AuthenticationResult = AuthenticationSuccess | AuthenticationFailure


def extract_session_cookies(set_cookie: str | None) -> tuple[str, str | None] | None:
    """Pull the ``cnx`` value and ``cnx-expires`` hint out of a Set-Cookie header.

    The header is split naively on every comma.  An attribute such as
    ``Expires=Thu, 01 Jan 2026 ...`` therefore breaks a cookie in two; the
    fragment after the comma simply matches neither name and is ignored.
    A cookie whose *value* contains a comma is truncated at the comma.
    This is the backend contract we interoperate with, so it is kept as is.

    Returns ``(cnx, cnx_expires)`` or ``None`` when there is no ``cnx`` cookie.
    """
    if not set_cookie:
        return None

    session_value: str | None = None
    expires_value: str | None = None
    for fragment in set_cookie.split(","):
        cookie = fragment.strip()
        if cookie.startswith(f"{SESSION_COOKIE}="):
            value = cookie[len(SESSION_COOKIE) + 1:].split(";", 1)[0]
            if value:
                session_value = value
        elif cookie.startswith(f"{SESSION_EXPIRES_COOKIE}="):
            value = cookie[len(SESSION_EXPIRES_COOKIE) + 1:].split(";", 1)[0]
            if value:
                expires_value = value

    if session_value is None:
        return None
    return session_value, expires_value


class CookieAuthenticator:
    """Logs in as a backend account and registers the resulting session."""

    def __init__(
        self,
        config: AppConfig,
        session_manager: SessionManager,
        client: httpx.AsyncClient | None = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self._config = config
        self._sessions = session_manager
        self._client = client
        self._timeout = timeout

    async def authenticate(self, account_uuid: str) -> AuthenticationResult:
        """Authenticate as *account_uuid* and return a result envelope."""
        url = self._config.login_url(account_uuid)
        logger.info("Attempting authentication for account: %s", account_uuid)

        try:
            response = await asyncio.wait_for(self._login(url), timeout=self._timeout)
        except (httpx.TimeoutException, TimeoutError):
            logger.error("Authentication request timeout occurred for %s", account_uuid)
            return AuthenticationFailure(network_error(
                f"Authentication request timeout after {self._timeout:g}s: "
                "the backend did not respond in time"
            ))
        except httpx.TransportError as exc:
            logger.error("Authentication network error occurred: %s", exc)
            return AuthenticationFailure(network_error(
                "Network error: Unable to connect to authentication service",
                {"originalError": str(exc) or type(exc).__name__},
            ))
        except Exception as exc:
            logger.exception("Unexpected authentication error occurred")
            return AuthenticationFailure(network_error(
                f"Unexpected authentication error: {exc}",
                {"originalError": str(exc)},
            ))

        cookies = extract_session_cookies(response.headers.get("set-cookie"))
        if cookies is None:
            return self._failure(response, account_uuid)

        cnx, cnx_expires = cookies
        if cnx_expires is None:
            cnx_expires = (datetime.datetime.now(datetime.UTC) + self._sessions.ttl).isoformat()

        token = self._sessions.create_session(
            account_uuid,
            SessionData(cnx=cnx, cnx_expires=cnx_expires, account_uuid=account_uuid),
        )
        logger.info("Successfully authenticated account: %s", account_uuid)

        return AuthenticationSuccess(
            account_uuid=account_uuid,
            token=token,
            cookie=cnx,
            cookie_expiry_hint=cnx_expires,
            redirect_location=response.headers.get("location", ""),
        )

    # -- private helpers -----------------------------------------------------

    async def _login(self, url: str) -> httpx.Response:
        if self._client is not None:
            return await self._send(self._client, url)
        async with httpx.AsyncClient() as client:
            return await self._send(client, url)

    async def _send(self, client: httpx.AsyncClient, url: str) -> httpx.Response:
        return await client.get(
            url,
            headers=_REQUEST_HEADERS,
            follow_redirects=False,
            timeout=self._timeout,
        )

    @staticmethod
    def _failure(response: httpx.Response, account_uuid: str) -> AuthenticationFailure:
        status = response.status_code
        if not response.headers.get("set-cookie"):
            logger.warning("No Set-Cookie headers found in authentication response")
        logger.warning("Authentication failed for account %s: HTTP %d", account_uuid, status)
        return AuthenticationFailure(ErrorInfo(
            type=classify_status(status),
            status_code=status,
            message=f"Authentication failed for account {account_uuid}",
            details={
                "accountUuid": account_uuid,
                "responseStatus": status,
                "responseText": response.reason_phrase,
            },
        ))
