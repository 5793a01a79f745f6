"""Protocol event side channel.

The MCP server announces what it is doing (tool calls, backend requests,
start/stop) through an ``EventPublisher``.  The session and authentication
core never publish anything; only the MCP layer does, and it does not care
whether anyone is listening.

``EventBroadcaster`` is the implementation used by the SSE transport: each
subscriber gets its own bounded queue, which the ``/events`` endpoint drains.
A subscriber that stops draining is dropped once its queue fills up.
"""

from __future__ import annotations

import asyncio
import datetime
import logging
import secrets
import string
import time
from typing import Any, Protocol

logger = logging.getLogger(__name__)

TOOLS_LISTED = "tools_listed"
TOOL_CALL_START = "tool_call_start"
TOOL_CALL_SUCCESS = "tool_call_success"
TOOL_CALL_ERROR = "tool_call_error"
HTTP_REQUEST_START = "http_request_start"
HTTP_REQUEST_SUCCESS = "http_request_success"
HTTP_REQUEST_ERROR = "http_request_error"
MCP_SERVER_STARTED = "mcp_server_started"
MCP_SERVER_STOPPED = "mcp_server_stopped"

Event = tuple[str, dict[str, Any]]


def event_timestamp() -> str:
    return datetime.datetime.now(datetime.UTC).isoformat()


class EventPublisher(Protocol):
    def publish(self, event: str, data: dict[str, Any]) -> None: ...


class NullPublisher:
    """Discards every event."""

    def publish(self, event: str, data: dict[str, Any]) -> None:
        return None


def generate_client_id() -> str:
    alphabet = string.digits + string.ascii_lowercase
    suffix = "".join(secrets.choice(alphabet) for _ in range(9))
    return f"client_{int(time.time() * 1000)}_{suffix}"


class EventBroadcaster:
    """Fans events out to every subscribed SSE client."""

    def __init__(self, max_queue_size: int = 100) -> None:
        self._max_queue_size = max_queue_size
        self._clients: dict[str, asyncio.Queue[Event]] = {}

    @property
    def client_count(self) -> int:
        return len(self._clients)

    def subscribe(self) -> tuple[str, asyncio.Queue[Event]]:
        client_id = generate_client_id()
        queue: asyncio.Queue[Event] = asyncio.Queue(maxsize=self._max_queue_size)
        self._clients[client_id] = queue
        logger.info("SSE client connected: %s", client_id)
        return client_id, queue

    def unsubscribe(self, client_id: str) -> None:
        if self._clients.pop(client_id, None) is not None:
            logger.info("SSE client disconnected: %s", client_id)

    def publish(self, event: str, data: dict[str, Any]) -> None:
        for client_id, queue in list(self._clients.items()):
            try:
                queue.put_nowait((event, data))
            except asyncio.QueueFull:
                logger.warning("Dropping SSE client %s: event queue full", client_id)
                self.unsubscribe(client_id)

    def send_to_client(self, client_id: str, event: str, data: dict[str, Any]) -> bool:
        queue = self._clients.get(client_id)
        if queue is None:
            return False
        try:
            queue.put_nowait((event, data))
        except asyncio.QueueFull:
            logger.warning("Dropping SSE client %s: event queue full", client_id)
            self.unsubscribe(client_id)
            return False
        return True
