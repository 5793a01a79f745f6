"""Tests for the in-memory session store.

Time is driven by ``FakeClock`` so expiry can be checked without sleeping;
only the sweep-task tests touch the real event loop.
"""

from __future__ import annotations

import asyncio
import datetime

import pytest

from conftest import ACCOUNT_UUID, OTHER_ACCOUNT_UUID, FakeClock
from cx_mcp_server.auth.session import SessionData
from cx_mcp_server.auth.session_manager import SessionManager


def _data(account_uuid: str = ACCOUNT_UUID, cnx: str = "cookie") -> SessionData:
    return SessionData(cnx=cnx, cnx_expires="hint", account_uuid=account_uuid)


class TestCreateAndGet:
    def test_new_session_is_valid(self, session_manager: SessionManager) -> None:
        token = session_manager.create_session(ACCOUNT_UUID, _data())
        assert session_manager.is_session_valid(token)
        assert session_manager.get_session(token) == _data()

    def test_tokens_are_unique(self, session_manager: SessionManager) -> None:
        tokens = {session_manager.create_session(ACCOUNT_UUID, _data()) for _ in range(200)}
        assert len(tokens) == 200
        assert session_manager.get_session_count() == 200

    def test_token_collision_is_retried(self, clock: FakeClock) -> None:
        issued = iter(["sess_1_dup", "sess_1_dup", "sess_1_fresh"])
        manager = SessionManager(clock=clock, token_factory=lambda: next(issued))

        first = manager.create_session(ACCOUNT_UUID, _data())
        second = manager.create_session(ACCOUNT_UUID, _data())

        assert first == "sess_1_dup"
        assert second == "sess_1_fresh"

    def test_unknown_token(self, session_manager: SessionManager) -> None:
        assert session_manager.get_session("sess_0_missing") is None
        assert not session_manager.is_session_valid("sess_0_missing")

    def test_valid_until_just_before_expiry(
        self, session_manager: SessionManager, clock: FakeClock
    ) -> None:
        token = session_manager.create_session(ACCOUNT_UUID, _data())
        clock.advance(minutes=29, seconds=59)
        assert session_manager.is_session_valid(token)

    def test_invalid_at_exact_expiry(
        self, session_manager: SessionManager, clock: FakeClock
    ) -> None:
        token = session_manager.create_session(ACCOUNT_UUID, _data())
        clock.advance(minutes=30)
        assert session_manager.get_session(token) is None

    def test_expired_read_purges_entry(
        self, session_manager: SessionManager, clock: FakeClock
    ) -> None:
        token = session_manager.create_session(ACCOUNT_UUID, _data())
        clock.advance(minutes=31)

        assert session_manager.get_session_count() == 1
        assert session_manager.get_session(token) is None
        assert session_manager.get_session_count() == 0

    def test_non_positive_ttl_rejected(self) -> None:
        with pytest.raises(ValueError):
            SessionManager(ttl=datetime.timedelta(0))


class TestDelete:
    def test_deleted_session_is_gone(self, session_manager: SessionManager) -> None:
        token = session_manager.create_session(ACCOUNT_UUID, _data())
        session_manager.delete_session(token)

        assert not session_manager.is_session_valid(token)
        assert session_manager.get_session(token) is None

    def test_delete_is_idempotent(self, session_manager: SessionManager) -> None:
        token = session_manager.create_session(ACCOUNT_UUID, _data())
        session_manager.delete_session(token)
        session_manager.delete_session(token)
        session_manager.delete_session("sess_0_never-issued")
        assert session_manager.get_session_count() == 0


class TestRefresh:
    def test_refresh_extends_expiry(
        self, session_manager: SessionManager, clock: FakeClock
    ) -> None:
        token = session_manager.create_session(ACCOUNT_UUID, _data())
        clock.advance(minutes=20)

        assert session_manager.refresh_session(token) is True
        assert session_manager.is_session_valid(token)

        # Original expiry (T0+30) has passed; refreshed expiry is T0+50.
        clock.advance(minutes=29)
        assert session_manager.is_session_valid(token)
        clock.advance(minutes=1)
        assert not session_manager.is_session_valid(token)

    def test_refresh_unknown_token(self, session_manager: SessionManager) -> None:
        assert session_manager.refresh_session("sess_0_missing") is False
        assert session_manager.get_session_count() == 0

    def test_refresh_does_not_resurrect(
        self, session_manager: SessionManager, clock: FakeClock
    ) -> None:
        token = session_manager.create_session(ACCOUNT_UUID, _data())
        clock.advance(minutes=31)

        assert session_manager.refresh_session(token) is False
        assert session_manager.get_session(token) is None

    def test_refreshed_expiry_visible_in_listing(
        self, session_manager: SessionManager, clock: FakeClock
    ) -> None:
        token = session_manager.create_session(ACCOUNT_UUID, _data())
        clock.advance(minutes=10)
        session_manager.refresh_session(token)

        [active] = session_manager.get_active_sessions()
        assert active.expires_at == clock.now + datetime.timedelta(minutes=30)


class TestCleanup:
    def test_removes_exactly_expired_entries(
        self, session_manager: SessionManager, clock: FakeClock
    ) -> None:
        for _ in range(3):
            session_manager.create_session(ACCOUNT_UUID, _data())
        clock.advance(minutes=15)
        survivors = [session_manager.create_session(OTHER_ACCOUNT_UUID, _data()) for _ in range(2)]
        clock.advance(minutes=15)

        before = session_manager.get_session_count()
        removed = session_manager.cleanup_expired_sessions()

        assert removed == 3
        assert before - session_manager.get_session_count() == 3
        assert all(session_manager.is_session_valid(token) for token in survivors)

    def test_nothing_to_clean(self, session_manager: SessionManager) -> None:
        session_manager.create_session(ACCOUNT_UUID, _data())
        assert session_manager.cleanup_expired_sessions() == 0
        assert session_manager.get_session_count() == 1

    def test_two_session_timeline(
        self, session_manager: SessionManager, clock: FakeClock
    ) -> None:
        t0 = clock.now
        first = session_manager.create_session(ACCOUNT_UUID, _data())

        clock.now = t0 + datetime.timedelta(minutes=20)
        second = session_manager.create_session(OTHER_ACCOUNT_UUID, _data(OTHER_ACCOUNT_UUID))

        clock.now = t0 + datetime.timedelta(minutes=40)
        session_manager.cleanup_expired_sessions()

        assert session_manager.get_session_count() == 1
        assert not session_manager.is_session_valid(first)
        assert session_manager.is_session_valid(second)

    def test_count_overcounts_until_swept(
        self, session_manager: SessionManager, clock: FakeClock
    ) -> None:
        session_manager.create_session(ACCOUNT_UUID, _data())
        clock.advance(minutes=45)

        assert session_manager.get_session_count() == 1
        assert session_manager.get_active_sessions() == []
        session_manager.cleanup_expired_sessions()
        assert session_manager.get_session_count() == 0


class TestActiveSessions:
    def test_lists_only_live_sessions_redacted(
        self, session_manager: SessionManager, clock: FakeClock
    ) -> None:
        session_manager.create_session(ACCOUNT_UUID, _data())
        clock.advance(minutes=20)
        live = session_manager.create_session(OTHER_ACCOUNT_UUID, _data(OTHER_ACCOUNT_UUID))
        clock.advance(minutes=15)

        active = session_manager.get_active_sessions()

        assert [a.account_uuid for a in active] == [OTHER_ACCOUNT_UUID]
        prefix, millis, rest = live.split("_")
        assert active[0].token == f"{prefix}_{millis}_{rest[:3]}..."
        assert live not in {a.token for a in active}
        # Listing does not purge.
        assert session_manager.get_session_count() == 2


class TestSweepLifecycle:
    @pytest.mark.asyncio
    async def test_sweep_runs_periodically(self, clock: FakeClock) -> None:
        manager = SessionManager(
            clock=clock,
            cleanup_interval=datetime.timedelta(milliseconds=10),
        )
        manager.create_session(ACCOUNT_UUID, _data())
        clock.advance(minutes=31)

        async with manager:
            for _ in range(50):
                if manager.get_session_count() == 0:
                    break
                await asyncio.sleep(0.01)

        assert manager.get_session_count() == 0

    @pytest.mark.asyncio
    async def test_stop_cancels_task(self, session_manager: SessionManager) -> None:
        session_manager.start()
        assert session_manager.is_running
        task = session_manager._cleanup_task

        await session_manager.stop()

        assert not session_manager.is_running
        assert task is not None and task.cancelled()

    @pytest.mark.asyncio
    async def test_start_is_idempotent_and_stop_is_safe(
        self, session_manager: SessionManager
    ) -> None:
        await session_manager.stop()
        session_manager.start()
        task = session_manager._cleanup_task
        session_manager.start()
        assert session_manager._cleanup_task is task
        await session_manager.stop()
        await session_manager.stop()

    def test_start_requires_running_loop(self, session_manager: SessionManager) -> None:
        with pytest.raises(RuntimeError):
            session_manager.start()
