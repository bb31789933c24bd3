"""MCP server assembly.

create_server() wires the tool registry, request-context store, session
transports and dispatcher together. Nothing here is a module-level
singleton: each call builds an independent server, which the web app keeps
on ``app.state``.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass

from mcp_server.dispatcher import Dispatcher
from mcp_server.registry import ToolDefinition, ToolRegistry
from mcp_server.tools import TOOLS
from mcp_server.transport import SessionTransport, TransportRegistry
from replicate_mcp.config import Settings, get_settings
from replicate_mcp.context import ContextStore

logger = logging.getLogger(__name__)


@dataclass
class McpServer:
    """Everything needed to serve the MCP endpoint."""

    settings: Settings
    registry: ToolRegistry
    contexts: ContextStore
    transports: TransportRegistry
    dispatcher: Dispatcher

    def start(self) -> None:
        """Start background housekeeping. Requires a running event loop."""
        self.contexts.start_sweeper(self.settings.context_sweep_interval)
        logger.info(
            "MCP server started (%d tools, auth %s)",
            len(self.registry),
            "enabled" if self.settings.auth_enabled else "disabled",
        )

    async def stop(self) -> None:
        """Close every session and stop housekeeping."""
        closed = self.transports.close_all()
        await self.contexts.stop_sweeper()
        logger.info("MCP server stopped (%d session(s) closed)", closed)

    def stateless_transport(self) -> SessionTransport:
        """A throwaway transport for calls made without a session."""
        transport = SessionTransport(None, contexts=self.contexts)
        transport.ensure_connected(self.dispatcher)
        return transport


def create_server(
    settings: Settings | None = None,
    tools: Iterable[ToolDefinition] = TOOLS,
) -> McpServer:
    """Build an MCP server.

    Args:
        settings: Settings to use. Defaults to get_settings().
        tools: Tool definitions to register.

    Raises:
        ToolRegistrationError: If the tool table is invalid.
    """
    if settings is None:
        settings = get_settings()
    registry = ToolRegistry(tools)
    contexts = ContextStore(max_age=settings.context_max_age)
    if not settings.replicate_api_token:
        logger.warning(
            "REPLICATE_API_TOKEN is not set; tools will return configuration errors"
        )
    return McpServer(
        settings=settings,
        registry=registry,
        contexts=contexts,
        transports=TransportRegistry(contexts),
        dispatcher=Dispatcher(registry, contexts, settings),
    )


__all__ = ["McpServer", "create_server"]
