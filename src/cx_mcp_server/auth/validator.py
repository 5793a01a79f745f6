"""Session validation, locally by token or remotely by backend cookie.

Validation is advisory: every failure collapses to ``False`` and nothing is
raised to the caller.
"""

from __future__ import annotations

import asyncio
import logging

import httpx

from cx_mcp_server.auth.authenticator import DEFAULT_TIMEOUT_SECONDS, SESSION_COOKIE
from cx_mcp_server.auth.session_manager import SessionManager
from cx_mcp_server.settings import AppConfig

logger = logging.getLogger(__name__)


class SessionValidator:
    """Answers "is this session still usable?"."""

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

    def validate_by_token(self, token: str) -> bool:
        return self._sessions.is_session_valid(token)

    async def validate_by_backend_cookie(self, cookie: str | None) -> bool:
        """Probe a protected backend endpoint with *cookie* attached.

        Only an exact HTTP 200 counts as valid.  An empty cookie is rejected
        without touching the network.
        """
        if not cookie:
            logger.warning("Session validation failed: No session cookie provided")
            return False

        try:
            status = await asyncio.wait_for(self._probe(cookie), timeout=self._timeout)
        except Exception as exc:
            logger.error("Session validation error: %s", exc or type(exc).__name__)
            return False

        if status == 200:
            logger.info("Session validation successful")
            return True
        logger.warning("Session validation failed: HTTP %d", status)
        return False

    async def _probe(self, cookie: str) -> int:
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "Cookie": f"{SESSION_COOKIE}={cookie}",
        }
        url = self._config.account_licenses_url()
        if self._client is not None:
            response = await self._client.get(url, headers=headers, timeout=self._timeout)
        else:
            async with httpx.AsyncClient() as client:
                response = await client.get(url, headers=headers, timeout=self._timeout)
        return response.status_code
