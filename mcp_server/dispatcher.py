"""JSON-RPC method dispatch for the MCP endpoint.

The Dispatcher turns one decoded JSON-RPC message into either a result or
a JSON-RPC error, and applies the protocol side effects:

- ``initialize`` negotiates the protocol version and records client info
- ``ping`` answers with an empty result
- ``tools/list`` returns the registry
- ``tools/call`` validates arguments, runs the handler and converts every
  handler failure into an ``isError`` tool result
- ``notifications/initialized`` marks the session ready
- ``notifications/cancelled`` / ``$/cancelRequest`` signal the target
  request's cancellation token

HTTP concerns (headers, status codes, session lookup) live in the
transport and the web layer.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from mcp.shared.version import SUPPORTED_PROTOCOL_VERSIONS
from mcp.types import (
    LATEST_PROTOCOL_VERSION,
    Implementation,
    InitializeResult,
    ServerCapabilities,
    ToolsCapability,
)

from mcp_server.errors import (
    JsonRpcError,
    error_response,
    internal_error,
    invalid_params,
    method_not_found,
    success_response,
    tool_not_found,
)
from mcp_server.registry import Notifier, ToolContext, ToolRegistry
from mcp_server.schemas import dump_tool_result, error_result
from mcp_server.tools import SERVER_INSTRUCTIONS
from mcp_server.validation import format_field_errors, validate_arguments
from replicate_mcp.config import Settings
from replicate_mcp.context import ContextStore, RequestContext
from replicate_mcp.types import RequestId

logger = logging.getLogger(__name__)

SERVER_NAME = "replicate-mcp"


@dataclass
class SessionState:
    """Protocol state negotiated for one session."""

    session_id: str
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    protocol_version: str | None = None
    client_info: dict[str, Any] = field(default_factory=dict)
    client_capabilities: dict[str, Any] = field(default_factory=dict)
    initialized: bool = False


@dataclass
class CallContext:
    """Call-site information for one dispatched message."""

    session_id: str | None = None
    credential: str | None = field(default=None, repr=False)
    session: SessionState | None = None
    notifier: Notifier | None = None


@dataclass
class DispatchResult:
    """Either a JSON-RPC result or a JSON-RPC error."""

    result: Any = None
    error: JsonRpcError | None = None

    def to_response(self, request_id: RequestId) -> dict[str, Any]:
        if self.error is not None:
            return error_response(self.error, request_id)
        return success_response(self.result, request_id)


MethodHandler = Callable[
    [dict[str, Any], CallContext, RequestContext], Awaitable[DispatchResult]
]
NotificationHandler = Callable[[dict[str, Any], CallContext], None]


def _object_param(params: dict[str, Any], key: str) -> dict[str, Any]:
    # Non-object values are ignored; initialize must not fail on them
    value = params.get(key)
    return dict(value) if isinstance(value, dict) else {}


class Dispatcher:
    """Routes JSON-RPC methods to protocol handlers and tools."""

    def __init__(
        self,
        registry: ToolRegistry,
        contexts: ContextStore,
        settings: Settings,
        instructions: str = SERVER_INSTRUCTIONS,
    ) -> None:
        self.registry = registry
        self.contexts = contexts
        self.settings = settings
        self.instructions = instructions
        self._methods: dict[str, MethodHandler] = {
            "initialize": self._initialize,
            "ping": self._ping,
            "tools/list": self._list_tools,
            "tools/call": self._call_tool,
        }
        self._notifications: dict[str, NotificationHandler] = {
            "notifications/initialized": self._initialized,
            "notifications/cancelled": self._cancelled,
            "$/cancelRequest": self._cancel_request,
        }

    async def dispatch(
        self,
        method: str,
        params: Any,
        call: CallContext,
        request_id: RequestId,
    ) -> DispatchResult:
        """Handle a request (a message with an id).

        Never raises for protocol or tool failures; those come back as a
        DispatchResult carrying an error or an ``isError`` tool result.
        """
        handler = self._methods.get(method)
        if handler is None:
            logger.info("Unknown method requested: %s", method)
            return DispatchResult(error=method_not_found(method))
        if params is not None and not isinstance(params, dict):
            return DispatchResult(error=invalid_params("params must be an object"))
        params = params or {}

        meta = params.get("_meta")
        progress_token = meta.get("progressToken") if isinstance(meta, dict) else None
        context = self.contexts.create(
            request_id,
            session_id=call.session_id,
            credential=call.credential,
            progress_token=progress_token,
        )
        try:
            return await handler(params, call, context)
        except Exception:
            logger.exception("Unhandled error dispatching %s", method)
            return DispatchResult(error=internal_error())
        finally:
            # A newer request reusing the id may have replaced this context
            if self.contexts.get(request_id, call.session_id) is context:
                self.contexts.delete(request_id, call.session_id)

    def notify(self, method: str, params: Any, call: CallContext) -> None:
        """Handle a notification (a message without an id).

        Notifications never produce a response, including on failure.
        """
        handler = self._notifications.get(method)
        if handler is None:
            logger.debug("Ignoring notification %s", method)
            return
        try:
            handler(params if isinstance(params, dict) else {}, call)
        except Exception:
            logger.exception("Notification handler failed for %s", method)

    async def _initialize(
        self, params: dict[str, Any], call: CallContext, context: RequestContext
    ) -> DispatchResult:
        requested = params.get("protocolVersion")
        if requested in SUPPORTED_PROTOCOL_VERSIONS:
            version = requested
        else:
            version = LATEST_PROTOCOL_VERSION

        client_info = _object_param(params, "clientInfo")
        capabilities = _object_param(params, "capabilities")
        session = call.session
        if session is not None:
            session.protocol_version = version
            session.client_info = client_info
            session.client_capabilities = capabilities
            session.initialized = False

        logger.info(
            "Initialize session %s (client=%s, protocol=%s)",
            call.session_id,
            client_info.get("name"),
            version,
        )
        result = InitializeResult(
            protocolVersion=version,
            capabilities=ServerCapabilities(tools=ToolsCapability(listChanged=False)),
            serverInfo=Implementation(
                name=SERVER_NAME,
                title=self.settings.mcp_title,
                version=self.settings.mcp_version,
            ),
            instructions=self.instructions,
        )
        return DispatchResult(
            result=result.model_dump(mode="json", by_alias=True, exclude_none=True)
        )

    async def _ping(
        self, params: dict[str, Any], call: CallContext, context: RequestContext
    ) -> DispatchResult:
        return DispatchResult(result={})

    async def _list_tools(
        self, params: dict[str, Any], call: CallContext, context: RequestContext
    ) -> DispatchResult:
        tools = [
            tool.model_dump(mode="json", by_alias=True, exclude_none=True)
            for tool in self.registry.list_tools()
        ]
        return DispatchResult(result={"tools": tools})

    async def _call_tool(
        self, params: dict[str, Any], call: CallContext, context: RequestContext
    ) -> DispatchResult:
        name = params.get("name")
        if not isinstance(name, str) or not name:
            return DispatchResult(error=invalid_params("missing tool name"))

        definition = self.registry.get(name)
        if definition is None:
            logger.warning("Unknown tool requested: %s", name)
            return DispatchResult(error=tool_not_found(name, self.registry.names()))

        outcome = validate_arguments(definition.input_model, params.get("arguments"))
        if not outcome.ok:
            logger.info(
                "Invalid arguments for %s: %d field error(s)", name, len(outcome.errors)
            )
            result = error_result(
                "Invalid Input",
                f"{format_field_errors(outcome.errors)}\n\n"
                "Tip: Check the tool's inputSchema with tools/list "
                "(use search_models for model-specific input).",
            )
            return DispatchResult(result=dump_tool_result(result))

        tool_context = ToolContext(
            request_id=context.request_id,
            session_id=call.session_id,
            cancellation_token=context.cancellation_token,
            settings=self.settings,
            replicate_token=context.credential,
            progress_token=context.progress_token,
            notifier=call.notifier,
        )
        logger.info("Tool invocation started: %s", name)
        try:
            result = await definition.handler(outcome.value, tool_context)
        except Exception as exc:
            logger.exception("Tool %s failed unexpectedly", name)
            result = error_result(
                "Tool Execution Failed",
                f"Tool '{name}' failed unexpectedly: {exc}\n\n"
                "Check server logs for details and retry the request.",
            )
        else:
            logger.info("Tool completed: %s (isError=%s)", name, result.isError)
        return DispatchResult(result=dump_tool_result(result))

    def _initialized(self, params: dict[str, Any], call: CallContext) -> None:
        if call.session is not None:
            call.session.initialized = True
            logger.debug("Session %s initialized", call.session_id)

    def _cancelled(self, params: dict[str, Any], call: CallContext) -> None:
        self._cancel(params.get("requestId"), params.get("reason"), call)

    def _cancel_request(self, params: dict[str, Any], call: CallContext) -> None:
        self._cancel(params.get("id"), params.get("reason"), call)

    def _cancel(self, request_id: Any, reason: Any, call: CallContext) -> None:
        if not isinstance(request_id, (str, int)) or isinstance(request_id, bool):
            logger.debug("Cancellation without a usable request id: %r", request_id)
            return
        reason_text = str(reason) if reason is not None else None
        if not self.contexts.cancel(request_id, call.session_id, reason_text):
            logger.debug(
                "Cancellation for unknown request %r in session %s",
                request_id,
                call.session_id,
            )


__all__ = [
    "SERVER_NAME",
    "CallContext",
    "DispatchResult",
    "Dispatcher",
    "SessionState",
]
