"""Tests for the account-licences listing behind ``list_users``."""

from __future__ import annotations

import httpx
import pytest

from conftest import ACCOUNT_UUID, mock_client
from cx_mcp_server.backend.user_accounts import UserAccountService
from cx_mcp_server.settings import AppConfig

ACCOUNTS = [
    {
        "accountUuid": ACCOUNT_UUID,
        "accountName": "Jane Tan",
        "identificationNumber": "S1234567A",
        "professionalLicenses": [],
        "availableRolesForAccountLicenses": [{"roleKey": "developer", "regNumber": None}],
    }
]


async def _fetch(app_config: AppConfig, handler) -> dict:
    async with mock_client(handler) as client:
        return await UserAccountService(app_config, client).get_account_licenses()


class TestGetAccountLicenses:
    @pytest.mark.asyncio
    async def test_success(self, app_config: AppConfig) -> None:
        result = await _fetch(app_config, lambda request: httpx.Response(200, json=ACCOUNTS))
        assert result == {"success": True, "data": ACCOUNTS}

    @pytest.mark.asyncio
    async def test_not_logged_in(self, app_config: AppConfig) -> None:
        body = {
            "timestamp": "2025-01-01T00:00:00Z",
            "success": False,
            "status": 403,
            "message": "NOT_LOGGED_IN",
            "errorCode": "NOT_LOGGED_IN",
        }
        result = await _fetch(app_config, lambda request: httpx.Response(403, json=body))

        assert result["success"] is False
        error = result["error"]
        assert error["type"] == "CLIENT_ERROR"
        assert error["statusCode"] == 403
        assert error["message"].startswith("Authentication required")
        assert error["details"] == {
            "errorCode": "NOT_LOGGED_IN",
            "timestamp": "2025-01-01T00:00:00Z",
        }

    @pytest.mark.asyncio
    async def test_server_error_uses_body_message(self, app_config: AppConfig) -> None:
        result = await _fetch(
            app_config,
            lambda request: httpx.Response(500, json={"message": "database unavailable"}),
        )

        assert result["error"]["type"] == "SERVER_ERROR"
        assert result["error"]["message"] == "database unavailable"

    @pytest.mark.asyncio
    async def test_unparsable_error_body(self, app_config: AppConfig) -> None:
        result = await _fetch(
            app_config,
            lambda request: httpx.Response(404, text="<html>nope</html>"),
        )

        assert result["error"]["type"] == "CLIENT_ERROR"
        assert result["error"]["message"] == "Client error: Not Found (404)"

    @pytest.mark.asyncio
    async def test_connection_failure(self, app_config: AppConfig) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("Connection refused", request=request)

        result = await _fetch(app_config, handler)

        assert result["error"]["type"] == "NETWORK_ERROR"
        assert result["error"]["statusCode"] == 0

    @pytest.mark.asyncio
    async def test_timeout(self, app_config: AppConfig) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectTimeout("timed out", request=request)

        result = await _fetch(app_config, handler)

        assert result["error"]["type"] == "NETWORK_ERROR"
        assert "timeout" in result["error"]["message"]
