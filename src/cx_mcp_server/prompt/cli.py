"""One-shot login check from the terminal.

Runs the same login-as-user flow an agent would trigger through the
``login_as_user`` tool, then shows the issued session and whether the
backend still accepts its cookie.  Useful for checking a backend
deployment without an MCP client.

Rich is used for display; everything else is delegated to the auth layer.
"""

from __future__ import annotations

import asyncio
import datetime
import logging

import httpx
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from cx_mcp_server.auth.authenticator import AuthenticationSuccess, CookieAuthenticator
from cx_mcp_server.auth.session_manager import SessionManager
from cx_mcp_server.auth.validator import SessionValidator
from cx_mcp_server.settings import AppConfig

logger = logging.getLogger(__name__)
console = Console()


def _print_banner(config: AppConfig) -> None:
    console.print(
        Panel(
            "[bold]cx-mcp-server[/bold]\n"
            f"Backend: {config.backend_hostname}",
            border_style="blue",
        )
    )


def _print_sessions(session_manager: SessionManager) -> None:
    table = Table(title="Active Sessions")
    table.add_column("Token", style="cyan")
    table.add_column("Account", style="bold")
    table.add_column("Expires", style="green")

    for session in session_manager.get_active_sessions():
        table.add_row(session.token, session.account_uuid, session.expires_at.isoformat())

    console.print(table)


async def _login(config: AppConfig, account_uuid: str) -> bool:
    session_manager = SessionManager(
        ttl=datetime.timedelta(minutes=config.session_ttl_minutes),
        cleanup_interval=datetime.timedelta(minutes=config.cleanup_interval_minutes),
    )
    async with session_manager, httpx.AsyncClient() as client:
        authenticator = CookieAuthenticator(
            config, session_manager, client, timeout=config.request_timeout
        )
        validator = SessionValidator(
            config, session_manager, client, timeout=config.request_timeout
        )

        console.print(f"\n[bold yellow]Login[/bold yellow] as {account_uuid}\n")
        result = await authenticator.authenticate(account_uuid)

        if not isinstance(result, AuthenticationSuccess):
            error = result.error
            console.print(
                f"[red]Authentication failed:[/red] {error.type.value} "
                f"(HTTP {error.status_code}) {error.message}"
            )
            return False

        console.print(f"  [green]Authenticated[/green] as [bold]{result.account_uuid}[/bold]")
        console.print(f"  Redirect: {result.redirect_location or '(none)'}")
        console.print(f"  Backend cookie expiry hint: {result.cookie_expiry_hint}\n")
        _print_sessions(session_manager)

        accepted = await validator.validate_by_backend_cookie(result.cookie)
        if accepted:
            console.print("\n  Backend accepts the session cookie.")
        else:
            console.print("\n  [red]Backend rejected the session cookie.[/red]")
        return accepted


def run_cli(config: AppConfig, account_uuid: str) -> bool:
    """Log in as *account_uuid*; returns ``True`` if the backend accepted the session."""
    _print_banner(config)
    ok = asyncio.run(_login(config, account_uuid))
    console.print("\n[dim]Session discarded.[/dim]")
    return ok
