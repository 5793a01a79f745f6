"""HTTP/SSE transport for the MCP server.

Routes:

  - ``GET  /sse``: MCP over server-sent events (one MCP session
    per connection).
  - ``POST /sse/messages/``: client-to-server JSON-RPC messages for the
    connection named by ``?session_id=``.
  - ``GET  /events``: read-only stream of protocol events (tool
    calls, backend requests) for observers.
  - ``GET  /health``: liveness plus the number of stored sessions.
"""

from __future__ import annotations

import contextlib
import json
import logging
from typing import Any, AsyncIterator

from mcp.server.sse import SseServerTransport
from sse_starlette.sse import EventSourceResponse
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Mount, Route

from cx_mcp_server.events import EventBroadcaster
from cx_mcp_server.mcp.cx_server import CxMCPServer

logger = logging.getLogger(__name__)

MESSAGES_PATH = "/sse/messages/"


def create_app(mcp_server: CxMCPServer, broadcaster: EventBroadcaster) -> Starlette:
    """Build the Starlette application serving *mcp_server*.

    *broadcaster* must be the publisher *mcp_server* was constructed with
    for ``/events`` to see anything.
    """
    transport = SseServerTransport(MESSAGES_PATH)
    server = mcp_server.server

    async def handle_sse(request: Request) -> Response:
        logger.info("GET /sse - MCP client connecting")
        async with transport.connect_sse(
            request.scope, request.receive, request._send
        ) as (read_stream, write_stream):
            await server.run(
                read_stream,
                write_stream,
                server.create_initialization_options(),
            )
        logger.info("MCP client disconnected")
        return Response()

    async def handle_events(request: Request) -> EventSourceResponse:
        client_id, queue = broadcaster.subscribe()

        async def stream() -> AsyncIterator[dict[str, Any]]:
            try:
                yield {"event": "connected", "data": json.dumps({"clientId": client_id})}
                while True:
                    event, data = await queue.get()
                    yield {"event": event, "data": json.dumps(data, default=str)}
            finally:
                broadcaster.unsubscribe(client_id)

        return EventSourceResponse(stream())

    async def handle_health(request: Request) -> JSONResponse:
        return JSONResponse({
            "status": "ok",
            "sessions": mcp_server.session_manager.get_session_count(),
            "eventSubscribers": broadcaster.client_count,
        })

    @contextlib.asynccontextmanager
    async def lifespan(app: Starlette) -> AsyncIterator[None]:
        await mcp_server.startup()
        try:
            yield
        finally:
            await mcp_server.shutdown()

    return Starlette(
        routes=[
            Route("/sse", endpoint=handle_sse, methods=["GET"]),
            Mount(MESSAGES_PATH, app=transport.handle_post_message),
            Route("/events", endpoint=handle_events, methods=["GET"]),
            Route("/health", endpoint=handle_health, methods=["GET"]),
        ],
        lifespan=lifespan,
    )


def run_sse(
    mcp_server: CxMCPServer,
    broadcaster: EventBroadcaster,
    host: str,
    port: int,
    access_log: bool = False,
) -> None:
    import uvicorn

    app = create_app(mcp_server, broadcaster)
    logger.info("Serving MCP over SSE on http://%s:%d/sse", host, port)
    uvicorn.run(app, host=host, port=port, access_log=access_log)
