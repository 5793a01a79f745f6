"""Shared fixtures for tests."""

from __future__ import annotations

import datetime
from typing import Callable

import httpx
import pytest

from cx_mcp_server.auth.session import SessionData
from cx_mcp_server.auth.session_manager import SessionManager
from cx_mcp_server.settings import AppConfig

BACKEND = "http://localhost:8000"
ACCOUNT_UUID = "6daa218b-cce4-4495-ae74-877692a6fd63"
OTHER_ACCOUNT_UUID = "0b1c2d3e-4f50-4a6b-8c7d-9e0f1a2b3c4d"


class FakeClock:
    """Manually advanced UTC clock for expiry tests."""

    def __init__(self, start: datetime.datetime | None = None) -> None:
        self.now = start or datetime.datetime(2025, 1, 1, 12, 0, tzinfo=datetime.UTC)

    def __call__(self) -> datetime.datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += datetime.timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def session_manager(clock: FakeClock) -> SessionManager:
    return SessionManager(clock=clock)


@pytest.fixture
def app_config() -> AppConfig:
    return AppConfig(backend_hostname=BACKEND)


@pytest.fixture
def session_data() -> SessionData:
    return SessionData(
        cnx="TOKENVALUE",
        cnx_expires="2025-01-01T12:30:00Z",
        account_uuid=ACCOUNT_UUID,
    )


def mock_client(
    handler: Callable[[httpx.Request], httpx.Response],
) -> httpx.AsyncClient:
    """Return an ``AsyncClient`` whose requests are answered by *handler*."""
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))
