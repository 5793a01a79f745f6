"""Base class for the MCP server.

Pattern: Tool Registry + Boundary Error Handling
-------------------------------------------------
Concrete servers register each tool once (name, description, JSON schema,
async handler).  The base class wires the registry onto the MCP protocol's
``list_tools`` / ``call_tool`` requests and owns two cross-cutting concerns:

  - Every tool failure is caught here and returned to the agent as an
    ``Error: ...`` text block.  Handlers are free to raise.
  - Every list/call is announced through the ``EventPublisher`` so SSE
    observers can follow along.  Without an observer the publisher is a
    no-op.
    Subclasses override ``_event_arguments`` / ``_event_result`` to keep
    credentials out of published payloads.

Subclasses hook their own resources into ``startup`` / ``shutdown``.
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable

from mcp.server import Server
from mcp.types import TextContent, Tool

from cx_mcp_server import events
from cx_mcp_server.events import EventPublisher, NullPublisher, event_timestamp

logger = logging.getLogger(__name__)

ToolHandler = Callable[[dict[str, Any]], Awaitable[list[TextContent]]]


class ToolError(Exception):
    """Raised by tool handlers for invalid input or unusable state."""


class BaseMCPServer:
    """Scaffolding shared by MCP servers.

    Subclasses must:
      1. Call ``super().__init__(server_name)``.
      2. Register tools via ``self._register_tool(name, description, schema, handler)``.
      3. Call ``await self.run()`` (stdio) or hand ``self.server`` to a transport.
    """

    def __init__(self, server_name: str, publisher: EventPublisher | None = None) -> None:
        self._name = server_name
        self._server = Server(server_name)
        self._events: EventPublisher = publisher or NullPublisher()
        self._all_tools: dict[str, Tool] = {}
        self._tool_handlers: dict[str, ToolHandler] = {}
        self._handlers_ready = False

    @property
    def name(self) -> str:
        return self._name

    @property
    def server(self) -> Server:
        """The underlying MCP server, with handlers wired up."""
        self.setup_handlers()
        return self._server

    # -- tool registration (called by subclasses) ----------------------------

    def _register_tool(
        self,
        name: str,
        description: str,
        input_schema: dict[str, Any],
        handler: ToolHandler,
    ) -> None:
        self._all_tools[name] = Tool(
            name=name,
            description=description,
            inputSchema=input_schema,
        )
        self._tool_handlers[name] = handler

    def list_tools(self) -> list[Tool]:
        tools = list(self._all_tools.values())
        self._events.publish(events.TOOLS_LISTED, {
            "tools": [tool.name for tool in tools],
            "timestamp": event_timestamp(),
        })
        return tools

    async def call_tool(self, name: str, arguments: dict[str, Any] | None) -> list[TextContent]:
        """Run tool *name*, converting any failure into an error text block."""
        arguments = arguments or {}
        self._events.publish(events.TOOL_CALL_START, {
            "toolName": name,
            "arguments": self._event_arguments(arguments),
            "timestamp": event_timestamp(),
        })

        try:
            handler = self._tool_handlers.get(name)
            if handler is None:
                raise ToolError(f"Unknown tool: {name}")
            result = await handler(arguments)
        except Exception as exc:
            if isinstance(exc, ToolError):
                logger.warning("Tool %s rejected: %s", name, exc)
            else:
                logger.exception("Error executing tool %s", name)
            self._events.publish(events.TOOL_CALL_ERROR, {
                "toolName": name,
                "error": str(exc) or type(exc).__name__,
                "timestamp": event_timestamp(),
            })
            return [TextContent(type="text", text=f"Error: {exc}")]

        self._events.publish(events.TOOL_CALL_SUCCESS, {
            "toolName": name,
            "result": self._event_result(name, result),
            "timestamp": event_timestamp(),
        })
        return result

    # -- event payloads -------------------------------------------------------

    def _event_arguments(self, arguments: dict[str, Any]) -> dict[str, Any]:
        return arguments

    def _event_result(self, name: str, result: list[TextContent]) -> list[str]:
        return [content.text for content in result]

    # -- lifecycle ------------------------------------------------------------

    def setup_handlers(self) -> None:
        """Wire up MCP protocol handlers.  Safe to call more than once."""
        if self._handlers_ready:
            return
        server = self._server

        @server.list_tools()
        async def list_tools() -> list[Tool]:
            return self.list_tools()

        @server.call_tool()
        async def call_tool(name: str, arguments: dict[str, Any]) -> list[TextContent]:
            return await self.call_tool(name, arguments)

        self._handlers_ready = True

    async def startup(self) -> None:
        self._events.publish(events.MCP_SERVER_STARTED, {
            "serverName": self._name,
            "timestamp": event_timestamp(),
        })
        logger.info("MCP server '%s' started", self._name)

    async def shutdown(self) -> None:
        self._events.publish(events.MCP_SERVER_STOPPED, {
            "serverName": self._name,
            "timestamp": event_timestamp(),
        })
        logger.info("MCP server '%s' stopped", self._name)

    async def run(self) -> None:
        """Serve MCP over stdio until the client disconnects."""
        from mcp.server.stdio import stdio_server

        server = self.server
        await self.startup()
        try:
            async with stdio_server() as (read_stream, write_stream):
                await server.run(
                    read_stream,
                    write_stream,
                    server.create_initialization_options(),
                )
        finally:
            await self.shutdown()
