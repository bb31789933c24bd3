"""Router modules for the FastAPI web API."""

from web.routers import health, mcp

__all__ = ["health", "mcp"]
