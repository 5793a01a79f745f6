"""Account and licence listing from the project-team-builder service.

Backs the ``list_users`` tool.  Like the authenticator, failures are
returned as ``{"success": False, "error": {...}}`` rather than raised.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx

from cx_mcp_server.errors import ErrorInfo, ErrorType, classify_status, network_error
from cx_mcp_server.settings import AppConfig

logger = logging.getLogger(__name__)

NOT_LOGGED_IN = "NOT_LOGGED_IN"


def _failure(error: ErrorInfo) -> dict[str, Any]:
    return {"success": False, "error": error.to_dict()}


class UserAccountService:
    """Fetches user accounts with their professional licences and roles."""

    def __init__(
        self,
        config: AppConfig,
        client: httpx.AsyncClient | None = None,
        timeout: float = 5.0,
    ) -> None:
        self._config = config
        self._client = client
        self._timeout = timeout

    async def get_account_licenses(self) -> dict[str, Any]:
        url = self._config.account_licenses_url()
        logger.info("Fetching user account licenses from: %s", url)

        try:
            response = await asyncio.wait_for(self._get(url), timeout=self._timeout)
        except (httpx.TimeoutException, TimeoutError):
            logger.error("Request timeout occurred")
            return _failure(network_error(
                f"Request timeout: The request took longer than {self._timeout:g}s to complete"
            ))
        except httpx.TransportError as exc:
            logger.error("Network error occurred: %s", exc)
            return _failure(network_error(
                "Network error: Unable to connect to the service",
                {"originalError": str(exc) or type(exc).__name__},
            ))
        except Exception as exc:
            logger.exception("Unexpected error occurred")
            return _failure(network_error(
                f"Unexpected error: {exc}",
                {"originalError": str(exc)},
            ))

        if not response.is_success:
            return _failure(self._error_from_response(response))

        try:
            data = response.json()
        except ValueError as exc:
            logger.error("Account licenses response is not JSON: %s", exc)
            return _failure(ErrorInfo(
                type=classify_status(response.status_code),
                status_code=response.status_code,
                message="Invalid JSON in account licenses response",
                details={"originalError": str(exc)},
            ))

        count = len(data) if isinstance(data, list) else 0
        logger.info("Successfully retrieved %d user accounts with licenses", count)
        return {"success": True, "data": data}

    # -- private helpers -----------------------------------------------------

    async def _get(self, url: str) -> httpx.Response:
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if self._client is not None:
            return await self._client.get(url, headers=headers, timeout=self._timeout)
        async with httpx.AsyncClient() as client:
            return await client.get(url, headers=headers, timeout=self._timeout)

    @staticmethod
    def _error_from_response(response: httpx.Response) -> ErrorInfo:
        status = response.status_code
        reason = response.reason_phrase
        error_type = classify_status(status)
        label = "Server error" if error_type is ErrorType.SERVER_ERROR else "Client error"

        try:
            body = response.json()
        except ValueError:
            message = f"{label}: {reason} ({status})"
            logger.error("HTTP %d error: %s", status, message)
            return ErrorInfo(type=error_type, status_code=status, message=message)

        if status == 403 and isinstance(body, dict) and body.get("errorCode") == NOT_LOGGED_IN:
            logger.warning("Authentication error: %s", body.get("message"))
            return ErrorInfo(
                type=error_type,
                status_code=status,
                message="Authentication required. Please log in to access this resource.",
                details={
                    "errorCode": body.get("errorCode"),
                    "timestamp": body.get("timestamp"),
                },
            )

        if isinstance(body, dict) and isinstance(body.get("message"), str):
            message = body["message"]
        else:
            message = f"{label}: {reason}"
        logger.error("HTTP %d error: %s", status, message)
        return ErrorInfo(type=error_type, status_code=status, message=message, details=body)
