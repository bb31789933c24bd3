"""MCP streamable HTTP endpoint.

- POST /mcp - JSON-RPC request or notification
- GET /mcp - SSE stream of server-to-client messages for a session
- DELETE /mcp - Close a session

Sessions are identified by the ``Mcp-Session-Id`` header. ``initialize``
creates one (a fresh id is generated when the header is absent); other
calls must either carry a live session id or no header at all, in which
case they are served without a session.
"""

import json
import logging
import uuid
from typing import Any

from fastapi import APIRouter, Depends, Request, Response
from fastapi import status as http_status
from fastapi.responses import JSONResponse, PlainTextResponse, StreamingResponse

from mcp_server.errors import (
    JSONRPC_VERSION,
    JsonRpcError,
    error_response,
    internal_error,
    invalid_request,
    invalid_session,
    no_session,
    parse_error,
    stream_conflict,
)
from mcp_server.server import McpServer
from web.deps import get_server, require_api_key

logger = logging.getLogger(__name__)

SESSION_HEADER = "Mcp-Session-Id"

router = APIRouter(dependencies=[Depends(require_api_key)])


def _error(
    status_code: int,
    error: JsonRpcError,
    request_id: Any = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    return JSONResponse(
        error_response(error, request_id), status_code=status_code, headers=headers
    )


def _request_id(message: Any) -> Any:
    """Echo a usable id from a rejected message, else null."""
    if not isinstance(message, dict):
        return None
    request_id = message.get("id")
    if isinstance(request_id, bool) or not isinstance(request_id, (str, int)):
        return None
    return request_id


def _check_envelope(message: Any) -> str | None:
    """Return why a decoded body is not a JSON-RPC message, or None."""
    if isinstance(message, list):
        return "batch requests are not supported"
    if not isinstance(message, dict):
        return "body must be a JSON object"
    if message.get("jsonrpc") != JSONRPC_VERSION:
        return 'jsonrpc must be "2.0"'
    if not isinstance(message.get("method"), str) or not message["method"]:
        return "method must be a non-empty string"
    request_id = message.get("id")
    if request_id is not None and (
        isinstance(request_id, bool) or not isinstance(request_id, (str, int))
    ):
        return "id must be a string, an integer or null"
    params = message.get("params")
    if params is not None and not isinstance(params, (dict, list)):
        return "params must be an object or an array"
    return None


@router.post("/mcp")
async def post_message(
    request: Request, server: McpServer = Depends(get_server)
) -> Response:
    """Handle one JSON-RPC message.

    Returns:
        200 with the JSON-RPC response for a request, 202 for a notification.
    """
    body = await request.body()
    try:
        message = json.loads(body)
    except ValueError:
        logger.warning("Rejected request body that is not valid JSON")
        return _error(http_status.HTTP_400_BAD_REQUEST, parse_error())

    problem = _check_envelope(message)
    if problem is not None:
        logger.warning("Rejected invalid JSON-RPC message: %s", problem)
        return _error(
            http_status.HTTP_400_BAD_REQUEST,
            invalid_request(problem),
            _request_id(message),
        )

    method = message["method"]
    request_id = message.get("id")
    session_id = request.headers.get(SESSION_HEADER)

    if method == "initialize":
        session_id = session_id or uuid.uuid4().hex
        transport = server.transports.create(session_id)
    elif session_id:
        existing = server.transports.get(session_id)
        if existing is None:
            logger.warning("Unknown session %s for %s", session_id, method)
            return _error(
                http_status.HTTP_400_BAD_REQUEST, invalid_session(), request_id
            )
        transport = existing
    else:
        transport = server.stateless_transport()

    headers = {SESSION_HEADER: session_id} if transport.session_id else None
    transport.ensure_connected(server.dispatcher)
    try:
        response = await transport.handle_message(
            message, credential=server.settings.replicate_api_token
        )
    except Exception:
        logger.exception("Error handling MCP request %s", method)
        return _error(
            http_status.HTTP_500_INTERNAL_SERVER_ERROR,
            internal_error(),
            request_id,
            headers,
        )

    if response is None:
        return Response(status_code=http_status.HTTP_202_ACCEPTED, headers=headers)
    return JSONResponse(response, headers=headers)


@router.get("/mcp")
async def open_stream(
    request: Request, server: McpServer = Depends(get_server)
) -> Response:
    """Open the SSE stream for an existing session."""
    session_id = request.headers.get(SESSION_HEADER)
    if not session_id:
        logger.warning("GET /mcp without session id")
        return _error(http_status.HTTP_405_METHOD_NOT_ALLOWED, no_session())

    transport = server.transports.get(session_id)
    if transport is None:
        return PlainTextResponse(
            "Invalid session", status_code=http_status.HTTP_404_NOT_FOUND
        )
    if transport.stream_open:
        return _error(http_status.HTTP_409_CONFLICT, stream_conflict())

    transport.ensure_connected(server.dispatcher)
    return StreamingResponse(
        transport.stream(),
        media_type="text/event-stream",
        headers={SESSION_HEADER: session_id, "Cache-Control": "no-cache"},
    )


@router.delete("/mcp")
async def close_session(
    request: Request, server: McpServer = Depends(get_server)
) -> Response:
    """Tear down a session and cancel its in-flight requests."""
    session_id = request.headers.get(SESSION_HEADER)
    if not session_id:
        return _error(http_status.HTTP_405_METHOD_NOT_ALLOWED, no_session())

    if not server.transports.remove(session_id):
        return PlainTextResponse(
            "Invalid session", status_code=http_status.HTTP_404_NOT_FOUND
        )
    return Response(status_code=http_status.HTTP_200_OK)
