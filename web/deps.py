"""FastAPI dependencies.

Provides the MCP server held in app state and the API-key check for the
protected endpoints.

Authentication accepts either header:
- ``Authorization: Bearer <key>`` (scheme is case-insensitive)
- ``X-Api-Key: <key>``

When no ``API_KEY`` is configured every request is accepted (development
mode).
"""

from __future__ import annotations

import logging
import re
import secrets

from fastapi import Depends, Request

from mcp_server.errors import UnauthorizedError
from mcp_server.server import McpServer

logger = logging.getLogger(__name__)

_BEARER_RE = re.compile(r"^\s*Bearer\s+(.+)$", re.IGNORECASE)


def get_server(request: Request) -> McpServer:
    """Get the MCP server from app state.

    Args:
        request: FastAPI request object.

    Returns:
        The application's McpServer.
    """
    server: McpServer = request.app.state.mcp_server
    return server


def extract_api_key(request: Request) -> str | None:
    """Read the presented API key from the request headers, if any."""
    authorization = request.headers.get("authorization")
    if authorization:
        match = _BEARER_RE.match(authorization)
        if match:
            return match.group(1).strip()
    api_key = request.headers.get("x-api-key")
    if api_key:
        return api_key.strip()
    return None


def is_valid_api_key(presented: str | None, expected: str) -> bool:
    """Compare keys in constant time."""
    if not presented:
        return False
    return secrets.compare_digest(presented.encode(), expected.encode())


def require_api_key(
    request: Request, server: McpServer = Depends(get_server)
) -> None:
    """Reject the request unless it carries the configured API key.

    Raises:
        UnauthorizedError: On a missing or wrong key.
    """
    expected = server.settings.api_key
    if not expected:
        return
    if not is_valid_api_key(extract_api_key(request), expected):
        logger.warning(
            "Rejected unauthenticated %s %s", request.method, request.url.path
        )
        raise UnauthorizedError()
