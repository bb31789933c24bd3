"""Tool registry.

Tools are declared as immutable ToolDefinition records and collected into
a ToolRegistry once, at server construction. The table is validated there
(unique, non-empty names); nothing is registered afterwards.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Iterable, Iterator
from dataclasses import dataclass, field
from typing import Any

from mcp.types import CallToolResult, Tool, ToolAnnotations
from pydantic import BaseModel

from mcp_server.errors import ToolRegistrationError
from replicate_mcp.cancellation import CancellationToken
from replicate_mcp.config import Settings
from replicate_mcp.replicate import ReplicateClient
from replicate_mcp.types import RequestId

logger = logging.getLogger(__name__)

Notifier = Callable[[dict[str, Any]], None]


@dataclass
class ToolContext:
    """What a tool handler may know about the call it is serving."""

    request_id: RequestId | None
    session_id: str | None
    cancellation_token: CancellationToken
    settings: Settings
    replicate_token: str | None = field(default=None, repr=False)
    progress_token: str | int | None = None
    notifier: Notifier | None = None

    def replicate_client(self) -> ReplicateClient:
        """Create a Replicate client using the server-side token.

        Raises:
            ValueError: If no token is configured.
        """
        return ReplicateClient(
            self.replicate_token or "",
            base_url=self.settings.replicate_base_url,
            timeout=self.settings.replicate_timeout,
            poll_interval=self.settings.replicate_poll_interval,
        )

    def report_progress(
        self,
        progress: float,
        total: float | None = None,
        message: str | None = None,
    ) -> None:
        """Send a progress notification if the caller asked for one."""
        if self.progress_token is None or self.notifier is None:
            return
        params: dict[str, Any] = {
            "progressToken": self.progress_token,
            "progress": progress,
        }
        if total is not None:
            params["total"] = total
        if message is not None:
            params["message"] = message
        self.notifier(
            {"jsonrpc": "2.0", "method": "notifications/progress", "params": params}
        )


ToolHandler = Callable[[Any, ToolContext], Awaitable[CallToolResult]]


@dataclass(frozen=True)
class ToolDefinition:
    """A named, schema-described tool."""

    name: str
    title: str
    description: str
    input_model: type[BaseModel]
    handler: ToolHandler
    annotations: ToolAnnotations | None = None

    @property
    def input_schema(self) -> dict[str, Any]:
        """JSON schema published in ``tools/list``."""
        return self.input_model.model_json_schema()

    def to_tool(self) -> Tool:
        """Describe the tool with the MCP SDK type."""
        return Tool(
            name=self.name,
            title=self.title,
            description=self.description,
            inputSchema=self.input_schema,
            annotations=self.annotations,
        )


class ToolRegistry:
    """Fixed mapping from tool name to ToolDefinition."""

    def __init__(self, definitions: Iterable[ToolDefinition]) -> None:
        """Build the registry.

        Raises:
            ToolRegistrationError: If a name is empty or used twice.
        """
        tools: dict[str, ToolDefinition] = {}
        for definition in definitions:
            if not definition.name:
                raise ToolRegistrationError("Tool name must not be empty")
            if definition.name in tools:
                raise ToolRegistrationError(
                    f"Duplicate tool name: {definition.name}", code="duplicate_tool"
                )
            tools[definition.name] = definition
        self._tools = tools
        logger.info("Registered %d tools: %s", len(tools), ", ".join(tools))

    def get(self, name: str) -> ToolDefinition | None:
        return self._tools.get(name)

    def names(self) -> list[str]:
        return list(self._tools)

    def list_tools(self) -> list[Tool]:
        """All tools, in registration order."""
        return [definition.to_tool() for definition in self._tools.values()]

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __iter__(self) -> Iterator[ToolDefinition]:
        return iter(self._tools.values())

    def __len__(self) -> int:
        return len(self._tools)


__all__ = [
    "Notifier",
    "ToolContext",
    "ToolDefinition",
    "ToolHandler",
    "ToolRegistry",
]
