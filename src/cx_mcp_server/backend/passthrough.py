"""Generic GET pass-through to the backend (the ``get_data`` tool)."""

from __future__ import annotations

import asyncio
import datetime
import logging
from typing import Any
from urllib.parse import urljoin

import httpx

from cx_mcp_server.errors import BackendRequestError

logger = logging.getLogger(__name__)


def build_url(base_url: str, path: str, query_params: dict[str, Any] | None = None) -> str:
    """Resolve *path* against *base_url* and append *query_params*.

    Existing query parameters in *path* are kept.
    """
    url = httpx.URL(urljoin(base_url + "/", path))
    if query_params:
        url = url.copy_merge_params({key: str(value) for key, value in query_params.items()})
    return str(url)


async def fetch_data(
    client: httpx.AsyncClient,
    base_url: str,
    path: str,
    query_params: dict[str, Any] | None = None,
    headers: dict[str, Any] | None = None,
    cookie: str | None = None,
    timeout: float = 5.0,
) -> dict[str, Any]:
    """GET ``base_url + path`` and return the decoded JSON in a result envelope.

    When *cookie* is given it is sent as the backend's ``cnx`` session
    cookie.  Raises ``BackendRequestError`` on a non-2xx status or when the
    backend cannot be reached.
    """
    url = build_url(base_url, path, query_params)
    request_headers = {"Content-Type": "application/json"}
    request_headers.update({key: str(value) for key, value in (headers or {}).items()})
    if cookie:
        request_headers["Cookie"] = f"cnx={cookie}"

    logger.debug("GET %s", url)
    try:
        response = await asyncio.wait_for(
            client.get(url, headers=request_headers, timeout=timeout),
            timeout=timeout,
        )
    except (httpx.TimeoutException, TimeoutError) as exc:
        raise BackendRequestError(
            f"Failed to fetch data: request timeout after {timeout:g}s"
        ) from exc
    except httpx.HTTPError as exc:
        raise BackendRequestError(f"Failed to fetch data: {exc}") from exc

    if not response.is_success:
        raise BackendRequestError(
            f"Failed to fetch data: HTTP {response.status_code}: {response.reason_phrase}"
        )

    try:
        data = response.json()
    except ValueError as exc:
        raise BackendRequestError(f"Failed to fetch data: invalid JSON ({exc})") from exc

    return {
        "operation": "get_data",
        "url": url,
        "data": data,
        "message": "Data retrieved successfully",
        "timestamp": datetime.datetime.now(datetime.UTC).isoformat(),
    }
