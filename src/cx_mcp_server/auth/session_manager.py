"""In-memory, self-expiring session store.

Pattern: Lazy + Active Expiry
------------------------------
Every session lives for a fixed TTL (30 minutes by default) from creation or
last refresh.  Expired sessions disappear two ways:

  - **Lazily**: ``get_session`` is the single read path.  It re-checks the
    clock on every call and purges the entry when it has expired, so an
    expired session is never observable regardless of sweep timing.
  - **Actively**: a background task calls ``cleanup_expired_sessions``
    every ``cleanup_interval`` so sessions nobody reads again do not pile up.

The sweep runs as an asyncio task on the same loop as the request handlers.
Each store operation is synchronous and replaces whole records, so no
locking is needed; the sweep iterates over a snapshot of the mapping.

The manager is owned by whoever starts the server and passed explicitly to
the authenticator, validator and tool handlers.  ``stop()`` must be awaited
on shutdown so the sweep task does not outlive the loop.
"""

from __future__ import annotations

import asyncio
import contextlib
import datetime
import logging
from typing import Callable

from cx_mcp_server.auth.session import ActiveSession, SessionData, SessionRecord
from cx_mcp_server.auth.tokens import generate_session_token, redact_token

logger = logging.getLogger(__name__)

DEFAULT_TTL = datetime.timedelta(minutes=30)
DEFAULT_CLEANUP_INTERVAL = datetime.timedelta(minutes=5)

Clock = Callable[[], datetime.datetime]


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.UTC)


def _short(token: str) -> str:
    return f"{token[:8]}..."


class SessionManager:
    """Issues opaque session tokens and tracks their expiry."""

    def __init__(
        self,
        ttl: datetime.timedelta = DEFAULT_TTL,
        cleanup_interval: datetime.timedelta = DEFAULT_CLEANUP_INTERVAL,
        clock: Clock = _utcnow,
        token_factory: Callable[[], str] = generate_session_token,
    ) -> None:
        if ttl <= datetime.timedelta(0):
            raise ValueError(f"Session TTL must be positive, got {ttl}")
        if cleanup_interval <= datetime.timedelta(0):
            raise ValueError(f"Cleanup interval must be positive, got {cleanup_interval}")
        self._ttl = ttl
        self._cleanup_interval = cleanup_interval
        self._clock = clock
        self._token_factory = token_factory
        self._sessions: dict[str, SessionRecord] = {}
        self._cleanup_task: asyncio.Task[None] | None = None

    @property
    def ttl(self) -> datetime.timedelta:
        return self._ttl

    # -- store operations -----------------------------------------------------

    def create_session(self, account_uuid: str, session_data: SessionData) -> str:
        """Store *session_data* under a freshly generated token and return it."""
        token = self._token_factory()
        while token in self._sessions:
            token = self._token_factory()

        now = self._clock()
        record = SessionRecord(
            token=token,
            data=session_data,
            created_at=now,
            expires_at=now + self._ttl,
        )
        self._sessions[token] = record

        logger.info(
            "Session created for account %s, expires at %s",
            account_uuid,
            record.expires_at.isoformat(),
        )
        return token

    def get_session(self, token: str) -> SessionData | None:
        """Return the session for *token*, or ``None`` if unknown or expired.

        An expired entry is removed as a side effect.
        """
        record = self._sessions.get(token)
        if record is None:
            return None

        if record.is_expired(self._clock()):
            del self._sessions[token]
            logger.info("Session %s expired and removed", _short(token))
            return None

        return record.data

    def is_session_valid(self, token: str) -> bool:
        return self.get_session(token) is not None

    def refresh_session(self, token: str) -> bool:
        """Extend a live session to ``now + TTL``.

        Returns ``False`` for unknown or already-expired tokens; an expired
        session is never brought back.
        """
        record = self._sessions.get(token)
        now = self._clock()
        if record is None or record.is_expired(now):
            return False

        refreshed = record.refreshed(now, self._ttl)
        self._sessions[token] = refreshed
        logger.info(
            "Session %s refreshed, new expiry: %s",
            _short(token),
            refreshed.expires_at.isoformat(),
        )
        return True

    def delete_session(self, token: str) -> None:
        if self._sessions.pop(token, None) is not None:
            logger.info("Session %s deleted", _short(token))

    def cleanup_expired_sessions(self) -> int:
        """Remove every session whose expiry is at or before now.

        Returns the number of sessions removed.
        """
        now = self._clock()
        expired = [
            token
            for token, record in list(self._sessions.items())
            if record.is_expired(now)
        ]
        for token in expired:
            self._sessions.pop(token, None)

        if expired:
            logger.info("Cleaned up %d expired sessions", len(expired))
        return len(expired)

    def get_session_count(self) -> int:
        """Number of stored sessions, including expired ones not yet swept."""
        return len(self._sessions)

    def get_active_sessions(self) -> list[ActiveSession]:
        """Live sessions for monitoring, with tokens redacted."""
        now = self._clock()
        return [
            ActiveSession(
                token=redact_token(token),
                account_uuid=record.data.account_uuid,
                expires_at=record.expires_at,
            )
            for token, record in list(self._sessions.items())
            if record.expires_at > now
        ]

    # -- lifecycle ------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self._cleanup_task is not None and not self._cleanup_task.done()

    def start(self) -> None:
        """Schedule the periodic sweep on the running event loop."""
        if self.is_running:
            return
        self._cleanup_task = asyncio.get_running_loop().create_task(
            self._cleanup_loop(), name="session-cleanup"
        )
        logger.debug(
            "Session cleanup scheduled every %ds",
            int(self._cleanup_interval.total_seconds()),
        )

    async def stop(self) -> None:
        """Cancel the sweep task and wait for it to finish."""
        task, self._cleanup_task = self._cleanup_task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        logger.debug("Session cleanup stopped")

    async def __aenter__(self) -> SessionManager:
        self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.stop()

    async def _cleanup_loop(self) -> None:
        interval = self._cleanup_interval.total_seconds()
        while True:
            await asyncio.sleep(interval)
            try:
                self.cleanup_expired_sessions()
            except Exception:
                logger.exception("Session cleanup failed")
