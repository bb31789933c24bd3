"""Replicate MCP - expose Replicate image generation over the Model Context Protocol.

This package provides the core pieces behind the MCP server: configuration,
cooperative cancellation, per-request context bookkeeping, and the Replicate
API client used by the tools.
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
