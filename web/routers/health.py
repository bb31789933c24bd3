"""Health check endpoints (no authentication)."""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from mcp_server.server import McpServer
from replicate_mcp import __version__
from web.deps import get_server

router = APIRouter()


@router.get("/health")
def health(server: McpServer = Depends(get_server)) -> dict[str, str]:
    """Health check endpoint.

    Returns:
        Health status, current UTC time and server title.
    """
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "title": server.settings.mcp_title,
    }


@router.get("/")
def root(server: McpServer = Depends(get_server)) -> dict[str, str]:
    """Root endpoint.

    Returns:
        Server name and version.
    """
    return {"name": server.settings.mcp_title, "version": __version__}
