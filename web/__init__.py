"""FastAPI web application for the Replicate MCP server.

Exposes the MCP streamable HTTP endpoint and a public health check. All
protocol logic is delegated to ``mcp_server/``.
"""

from web.app import app, create_app

__all__ = ["app", "create_app"]
