"""MCP protocol layer for the Replicate MCP server.

This package implements the JSON-RPC side of the Model Context Protocol:
error codes, tool schemas and validation, the tool registry, the method
dispatcher and the per-session transport. The HTTP surface lives in
``web/``.
"""

from mcp_server.server import McpServer, create_server

__all__ = ["McpServer", "create_server"]
