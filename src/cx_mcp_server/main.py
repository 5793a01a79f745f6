"""CLI entry point: loads configuration and starts the MCP server."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from cx_mcp_server.errors import ConfigError
from cx_mcp_server.settings import DEFAULT_CONFIG_PATH, AppConfig

logger = logging.getLogger(__name__)


def main() -> None:
    parser = argparse.ArgumentParser(
        description="cx-mcp-server: MCP gateway to the project team builder backend",
    )
    parser.add_argument(
        "--config",
        default=str(DEFAULT_CONFIG_PATH),
        help="Path to settings.yaml",
    )
    parser.add_argument(
        "--transport",
        choices=["stdio", "sse"],
        default="stdio",
        help="MCP transport (default: stdio)",
    )
    parser.add_argument(
        "--login",
        metavar="ACCOUNT_UUID",
        default=None,
        help="Log in as ACCOUNT_UUID, show the session and exit",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable debug logging",
    )
    args = parser.parse_args()

    # stdout carries the MCP protocol on stdio, so logs go to stderr.
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
        stream=sys.stderr,
    )

    try:
        config = AppConfig.load(args.config)
    except ConfigError as exc:
        logger.error("Invalid configuration: %s", exc)
        sys.exit(2)

    if args.login:
        from cx_mcp_server.prompt.cli import run_cli

        sys.exit(0 if run_cli(config, args.login) else 1)

    from cx_mcp_server.events import EventBroadcaster
    from cx_mcp_server.mcp.cx_server import CxMCPServer

    if args.transport == "sse":
        from cx_mcp_server.mcp.sse_app import run_sse

        broadcaster = EventBroadcaster()
        server = CxMCPServer(config, publisher=broadcaster)
        run_sse(
            server,
            broadcaster,
            host=config.sse_host,
            port=config.app_port,
            access_log=config.is_development(),
        )
    else:
        asyncio.run(CxMCPServer(config).run())


if __name__ == "__main__":
    main()
