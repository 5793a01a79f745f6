"""MCP server exposing the backend to AI agents.

Tools:

  - ``get_data``: GET pass-through to any backend path, optionally
    authenticated with a session from ``login_as_user``.
  - ``list_users``: accounts with their licences and roles.
  - ``login_as_user``: log in as an account and receive a session token.
  - ``validate_session``, ``refresh_session``, ``logout``, ``list_sessions``:
    manage tokens issued by ``login_as_user``.

All tool results are JSON documents in a single text block.
"""

from __future__ import annotations

import datetime
import http.cookiejar
import json
import logging
import re
from typing import Any

import httpx
from mcp.types import TextContent

from cx_mcp_server import events
from cx_mcp_server.auth.authenticator import CookieAuthenticator
from cx_mcp_server.auth.session_manager import SessionManager
from cx_mcp_server.auth.tokens import redact_token
from cx_mcp_server.auth.validator import SessionValidator
from cx_mcp_server.backend.passthrough import build_url, fetch_data
from cx_mcp_server.backend.user_accounts import UserAccountService
from cx_mcp_server.events import EventPublisher, event_timestamp
from cx_mcp_server.mcp.base_server import BaseMCPServer, ToolError
from cx_mcp_server.settings import AppConfig

logger = logging.getLogger(__name__)

SERVER_NAME = "cx-mcp-server"
UUID_PATTERN = "^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$"
_UUID_RE = re.compile(UUID_PATTERN)

_REDACTED = "[redacted]"
_SECRET_HEADERS = frozenset({"authorization", "cookie"})

_SESSION_TOKEN_SCHEMA = {
    "type": "object",
    "properties": {
        "sessionToken": {
            "type": "string",
            "description": "Session token returned by login_as_user.",
        },
    },
    "required": ["sessionToken"],
}


def _new_client() -> httpx.AsyncClient:
    # Backend cookies are held per session token, never in the shared client.
    jar = http.cookiejar.CookieJar(http.cookiejar.DefaultCookiePolicy(allowed_domains=[]))
    return httpx.AsyncClient(cookies=jar)


def _json_result(payload: Any) -> list[TextContent]:
    return [TextContent(type="text", text=json.dumps(payload, indent=2, default=str))]


def _require_string(args: dict[str, Any], key: str) -> str:
    value = args.get(key)
    if not isinstance(value, str) or not value:
        raise ToolError(f"Validation failed: {key} must be a non-empty string")
    return value


def _optional_mapping(args: dict[str, Any], key: str) -> dict[str, Any] | None:
    value = args.get(key)
    if value is None:
        return None
    if not isinstance(value, dict):
        raise ToolError(f"Validation failed: {key} must be an object")
    return value


class CxMCPServer(BaseMCPServer):
    """Relays agent requests to the backend and manages login sessions."""

    def __init__(
        self,
        config: AppConfig,
        session_manager: SessionManager | None = None,
        client: httpx.AsyncClient | None = None,
        publisher: EventPublisher | None = None,
    ) -> None:
        super().__init__(SERVER_NAME, publisher=publisher)
        self._config = config
        self._sessions = session_manager or SessionManager(
            ttl=datetime.timedelta(minutes=config.session_ttl_minutes),
            cleanup_interval=datetime.timedelta(minutes=config.cleanup_interval_minutes),
        )
        self._owns_client = client is None
        self._client = client or _new_client()
        timeout = config.request_timeout
        self._authenticator = CookieAuthenticator(config, self._sessions, self._client, timeout)
        self._validator = SessionValidator(config, self._sessions, self._client, timeout)
        self._user_accounts = UserAccountService(config, self._client, timeout)
        self._register_all_tools()

        logger.info(
            "MCP server '%s' initialised with backend host: %s",
            SERVER_NAME,
            config.backend_hostname,
        )

    @property
    def session_manager(self) -> SessionManager:
        return self._sessions

    @property
    def authenticator(self) -> CookieAuthenticator:
        return self._authenticator

    @property
    def validator(self) -> SessionValidator:
        return self._validator

    def _register_all_tools(self) -> None:
        self._register_tool(
            name="get_data",
            description="Get data from a HTTP endpoint",
            input_schema={
                "type": "object",
                "properties": {
                    "path": {
                        "type": "string",
                        "description": 'The API path to request (e.g., "/api/users")',
                    },
                    "queryParams": {
                        "type": "object",
                        "description": "Optional: query parameters to include in the request",
                    },
                    "headers": {
                        "type": "object",
                        "description": "Optional: additional headers to include in the request",
                    },
                    "sessionToken": {
                        "type": "string",
                        "description": (
                            "Optional: session token from login_as_user; the request is "
                            "sent as that user"
                        ),
                    },
                },
                "required": ["path"],
            },
            handler=self._get_data,
        )

        self._register_tool(
            name="list_users",
            description=(
                "Retrieve a list of all users and their account licenses from the project "
                "team builder service. Returns comprehensive user information including "
                "professional licenses, available roles, and account details."
            ),
            input_schema={"type": "object", "properties": {}, "required": []},
            handler=self._list_users,
        )

        self._register_tool(
            name="login_as_user",
            description=(
                "Authenticate as a specific user using their account UUID. This enables the "
                "AI agent to perform operations on behalf of that user by establishing an "
                "authenticated session."
            ),
            input_schema={
                "type": "object",
                "properties": {
                    "accountUuid": {
                        "type": "string",
                        "description": (
                            "Unique identifier for the user account to authenticate as "
                            "(use UUID from list_users tool)"
                        ),
                        "pattern": UUID_PATTERN,
                    },
                },
                "required": ["accountUuid"],
            },
            handler=self._login_as_user,
        )

        self._register_tool(
            name="validate_session",
            description="Check whether a session token from login_as_user is still valid.",
            input_schema=_SESSION_TOKEN_SCHEMA,
            handler=self._validate_session,
        )

        self._register_tool(
            name="refresh_session",
            description="Extend a valid session token by another session lifetime.",
            input_schema=_SESSION_TOKEN_SCHEMA,
            handler=self._refresh_session,
        )

        self._register_tool(
            name="logout",
            description="Discard a session token.  Succeeds even if the token is unknown.",
            input_schema=_SESSION_TOKEN_SCHEMA,
            handler=self._logout,
        )

        self._register_tool(
            name="list_sessions",
            description="List active sessions with redacted tokens.",
            input_schema={"type": "object", "properties": {}, "required": []},
            handler=self._list_sessions,
        )

    # -- tool handlers --------------------------------------------------------

    async def _get_data(self, args: dict[str, Any]) -> list[TextContent]:
        path = _require_string(args, "path")
        query_params = _optional_mapping(args, "queryParams")
        headers = _optional_mapping(args, "headers")

        cookie = None
        if args.get("sessionToken") is not None:
            token = _require_string(args, "sessionToken")
            session = self._sessions.get_session(token)
            if session is None:
                raise ToolError("Session is invalid or has expired; call login_as_user again")
            self._sessions.refresh_session(token)
            cookie = session.cnx

        url = build_url(self._config.backend_hostname, path, query_params)
        self._events.publish(events.HTTP_REQUEST_START, {
            "url": url,
            "method": "GET",
            "timestamp": event_timestamp(),
        })
        try:
            result = await fetch_data(
                self._client,
                self._config.backend_hostname,
                path,
                query_params=query_params,
                headers=headers,
                cookie=cookie,
                timeout=self._config.request_timeout,
            )
        except Exception as exc:
            self._events.publish(events.HTTP_REQUEST_ERROR, {
                "url": url,
                "error": str(exc),
                "timestamp": event_timestamp(),
            })
            raise

        self._events.publish(events.HTTP_REQUEST_SUCCESS, {
            "url": url,
            "data": result["data"],
            "timestamp": event_timestamp(),
        })
        return _json_result(result)

    async def _list_users(self, args: dict[str, Any]) -> list[TextContent]:
        return _json_result(await self._user_accounts.get_account_licenses())

    async def _login_as_user(self, args: dict[str, Any]) -> list[TextContent]:
        account_uuid = _require_string(args, "accountUuid")
        if not _UUID_RE.match(account_uuid):
            raise ToolError("Validation failed: accountUuid must be a valid UUID")
        result = await self._authenticator.authenticate(account_uuid)
        return _json_result(result.to_dict())

    async def _validate_session(self, args: dict[str, Any]) -> list[TextContent]:
        token = _require_string(args, "sessionToken")
        return _json_result({"valid": self._validator.validate_by_token(token)})

    async def _refresh_session(self, args: dict[str, Any]) -> list[TextContent]:
        token = _require_string(args, "sessionToken")
        return _json_result({"refreshed": self._sessions.refresh_session(token)})

    async def _logout(self, args: dict[str, Any]) -> list[TextContent]:
        token = _require_string(args, "sessionToken")
        self._sessions.delete_session(token)
        return _json_result({"loggedOut": True})

    async def _list_sessions(self, args: dict[str, Any]) -> list[TextContent]:
        active = self._sessions.get_active_sessions()
        return _json_result({
            "count": len(active),
            "sessions": [session.to_dict() for session in active],
        })

    # -- event payloads -------------------------------------------------------

    def _event_arguments(self, arguments: dict[str, Any]) -> dict[str, Any]:
        scrubbed = dict(arguments)
        token = scrubbed.get("sessionToken")
        if isinstance(token, str):
            scrubbed["sessionToken"] = redact_token(token)
        headers = scrubbed.get("headers")
        if isinstance(headers, dict):
            scrubbed["headers"] = {
                key: _REDACTED if str(key).lower() in _SECRET_HEADERS else value
                for key, value in headers.items()
            }
        return scrubbed

    def _event_result(self, name: str, result: list[TextContent]) -> list[str]:
        if name != "login_as_user":
            return super()._event_result(name, result)
        # Only the authentication envelope carries our token and the backend cookie.
        payload = json.loads(result[0].text)
        data = payload.get("data")
        if isinstance(data, dict):
            payload["data"] = {
                **data,
                "token": redact_token(data.get("token", "")),
                "cookie": _REDACTED,
            }
        return [json.dumps(payload, default=str)]

    # -- lifecycle ------------------------------------------------------------

    async def startup(self) -> None:
        self._sessions.start()
        await super().startup()

    async def shutdown(self) -> None:
        await super().shutdown()
        await self._sessions.stop()
        if self._owns_client:
            await self._client.aclose()
