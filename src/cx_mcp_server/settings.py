"""Application configuration.

Settings come from ``config/settings.yaml`` and may be overridden by
environment variables (``BACKEND_HOSTNAME``, ``NODE_ENV``, ``APP_PORT``).
The resulting ``AppConfig`` is immutable and passed explicitly to every
component that needs to reach the backend; nothing reads the environment
after start-up.
"""

from __future__ import annotations

import dataclasses
import os
import pathlib
from typing import Any
from urllib.parse import quote

import yaml

from cx_mcp_server.errors import ConfigError

DEFAULT_CONFIG_PATH = pathlib.Path(__file__).resolve().parents[2] / "config" / "settings.yaml"

_LOGIN_PATH = "/services/uat/login"
_ACCOUNT_LICENSES_PATH = "/services/uat/project-team-builder/account-licenses"


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    section = data.get(name) or {}
    if not isinstance(section, dict):
        raise ConfigError(f"Config section '{name}' must be a mapping")
    return section


@dataclasses.dataclass(frozen=True)
class AppConfig:
    """Resolved configuration.

    Attributes:
        backend_hostname:  Base URL of the upstream service, without a
                           trailing slash.
        node_env:          Deployment environment name.
        app_port:          Port the SSE transport listens on.
        sse_host:          Interface the SSE transport binds to.
        request_timeout:   Upper bound (seconds) for every backend call.
        session_ttl_minutes:      Lifetime of an issued session token.
        cleanup_interval_minutes: Period of the expired-session sweep.
    """

    backend_hostname: str
    node_env: str = "development"
    app_port: int = 3002
    sse_host: str = "127.0.0.1"
    request_timeout: float = 5.0
    session_ttl_minutes: int = 30
    cleanup_interval_minutes: int = 5

    def __post_init__(self) -> None:
        hostname = str(self.backend_hostname or "").strip()
        if not hostname:
            raise ConfigError("BACKEND_HOSTNAME environment variable is required")
        object.__setattr__(self, "backend_hostname", hostname.rstrip("/"))

    # -- URL builders --------------------------------------------------------

    def login_url(self, account_uuid: str) -> str:
        """Absolute URL of the backend's login-as-user endpoint."""
        return f"{self.backend_hostname}{_LOGIN_PATH}?uuid={quote(account_uuid, safe='')}"

    def account_licenses_url(self) -> str:
        """Absolute URL of the account-licenses endpoint.

        The same endpoint doubles as the probe for backend-cookie validation
        since it rejects unauthenticated callers.
        """
        return f"{self.backend_hostname}{_ACCOUNT_LICENSES_PATH}"

    def is_development(self) -> bool:
        return self.node_env == "development"

    # -- loading -------------------------------------------------------------

    @classmethod
    def from_mapping(cls, data: dict[str, Any]) -> AppConfig:
        """Build from the parsed YAML layout.  Raises ``ConfigError`` on bad values."""
        backend = _section(data, "backend")
        server = _section(data, "server")
        sessions = _section(data, "sessions")
        try:
            app_port = int(server.get("port", 3002))
            request_timeout = float(backend.get("timeout_seconds", 5.0))
            session_ttl_minutes = int(sessions.get("ttl_minutes", 30))
            cleanup_interval_minutes = int(sessions.get("cleanup_interval_minutes", 5))
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"Invalid numeric setting: {exc}") from exc

        return cls(
            backend_hostname=backend.get("hostname", ""),
            node_env=data.get("node_env", "development"),
            app_port=app_port,
            sse_host=server.get("host", "127.0.0.1"),
            request_timeout=request_timeout,
            session_ttl_minutes=session_ttl_minutes,
            cleanup_interval_minutes=cleanup_interval_minutes,
        )

    @classmethod
    def load(cls, path: str | pathlib.Path | None = None) -> AppConfig:
        """Read *path* (if it exists) and apply environment overrides."""
        config_path = pathlib.Path(path) if path is not None else DEFAULT_CONFIG_PATH
        data: dict[str, Any] = {}
        if config_path.exists():
            with open(config_path) as fh:
                loaded = yaml.safe_load(fh)
            if loaded is not None and not isinstance(loaded, dict):
                raise ConfigError(f"Config file must contain a mapping: {config_path}")
            data = loaded or {}

        backend = dict(_section(data, "backend"))
        server = dict(_section(data, "server"))
        if os.environ.get("BACKEND_HOSTNAME"):
            backend["hostname"] = os.environ["BACKEND_HOSTNAME"]
        if os.environ.get("APP_PORT"):
            server["port"] = os.environ["APP_PORT"]
        if os.environ.get("NODE_ENV"):
            data["node_env"] = os.environ["NODE_ENV"]

        return cls.from_mapping({**data, "backend": backend, "server": server})
