"""Error definitions for the MCP endpoint.

This module defines the JSON-RPC error objects returned to MCP clients
and the exceptions raised inside the server. Codes are stable:

- -32700 parse error
- -32600 invalid request, including a stale session id
- -32601 method or tool not found
- -32602 invalid params
- -32603 internal error
- -32001 unauthorized
- -32000 no session id on a session-only verb

Tool failures (bad arguments, upstream errors, ...) are NOT JSON-RPC
errors; they are tool results flagged ``isError`` (see schemas.py).
"""

from dataclasses import dataclass
from typing import Any

from mcp.types import (
    INTERNAL_ERROR,
    INVALID_PARAMS,
    INVALID_REQUEST,
    METHOD_NOT_FOUND,
    PARSE_ERROR,
)

from replicate_mcp.types import RequestId

JSONRPC_VERSION = "2.0"

# Server-defined codes (JSON-RPC reserves -32000..-32099 for these)
NO_SESSION = -32000
UNAUTHORIZED = -32001


@dataclass
class JsonRpcError:
    """JSON-RPC error object.

    Attributes:
        code: Stable numeric error code.
        message: Human-readable error message.
        data: Optional additional error details.
    """

    code: int
    message: str
    data: Any = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.data is not None:
            result["data"] = self.data
        return result


def make_error(code: int, message: str, data: Any = None) -> JsonRpcError:
    """Create a JsonRpcError instance."""
    return JsonRpcError(code=code, message=message, data=data)


def parse_error() -> JsonRpcError:
    """Create a parse error for an undecodable body."""
    return make_error(PARSE_ERROR, "Parse error: request body is not valid JSON")


def invalid_request(message: str) -> JsonRpcError:
    """Create an invalid request error."""
    return make_error(INVALID_REQUEST, f"Invalid Request: {message}")


def invalid_session() -> JsonRpcError:
    """Create the error returned for an unknown or expired session id."""
    return make_error(INVALID_REQUEST, "Invalid session. Please re-initialize.")


def method_not_found(method: str) -> JsonRpcError:
    """Create a method not found error."""
    return make_error(METHOD_NOT_FOUND, f"Method not found: {method}")


def tool_not_found(name: str, available: list[str]) -> JsonRpcError:
    """Create the error returned for an unknown tool name."""
    return make_error(
        METHOD_NOT_FOUND,
        f"Tool not found: {name}",
        data={"available_tools": available},
    )


def invalid_params(message: str) -> JsonRpcError:
    """Create an invalid params error."""
    return make_error(INVALID_PARAMS, f"Invalid params: {message}")


def internal_error(message: str = "Internal server error") -> JsonRpcError:
    """Create an internal error."""
    return make_error(INTERNAL_ERROR, message)


def unauthorized() -> JsonRpcError:
    """Create the error returned when the API key check fails."""
    return make_error(UNAUTHORIZED, "Unauthorized: Invalid or missing API key")


def no_session() -> JsonRpcError:
    """Create the error returned when a session-only verb lacks a session id."""
    return make_error(NO_SESSION, "Method not allowed - no session")


def stream_conflict() -> JsonRpcError:
    """Create the error returned when a session already has an SSE stream."""
    return make_error(NO_SESSION, "Conflict: only one SSE stream is allowed per session")


def error_response(error: JsonRpcError, request_id: RequestId | None) -> dict[str, Any]:
    """Wrap an error in a JSON-RPC response envelope."""
    return {"jsonrpc": JSONRPC_VERSION, "error": error.to_dict(), "id": request_id}


def success_response(result: Any, request_id: RequestId) -> dict[str, Any]:
    """Wrap a result in a JSON-RPC response envelope."""
    return {"jsonrpc": JSONRPC_VERSION, "result": result, "id": request_id}


class ToolRegistrationError(Exception):
    """Raised at startup when the tool table is inconsistent."""

    def __init__(self, message: str, code: str = "tool_registration") -> None:
        """Initialize ToolRegistrationError.

        Args:
            message: Error description.
            code: Error code for structured error handling.
        """
        super().__init__(message)
        self.code = code


class UnauthorizedError(Exception):
    """Raised when a request does not carry a valid API key."""

    def __init__(self, message: str = "Invalid or missing API key") -> None:
        super().__init__(message)
        self.error = unauthorized()


__all__ = [
    "INTERNAL_ERROR",
    "INVALID_PARAMS",
    "INVALID_REQUEST",
    "JSONRPC_VERSION",
    "METHOD_NOT_FOUND",
    "NO_SESSION",
    "PARSE_ERROR",
    "UNAUTHORIZED",
    "JsonRpcError",
    "ToolRegistrationError",
    "UnauthorizedError",
    "error_response",
    "internal_error",
    "invalid_params",
    "invalid_request",
    "invalid_session",
    "make_error",
    "method_not_found",
    "no_session",
    "parse_error",
    "stream_conflict",
    "success_response",
    "tool_not_found",
    "unauthorized",
]
