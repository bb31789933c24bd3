"""FastAPI application factory and main app.

This module creates the FastAPI application with the MCP server attached
to app state, CORS configured and all routers included.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi import status as http_status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from mcp_server.errors import UnauthorizedError, error_response
from mcp_server.server import create_server
from replicate_mcp import __version__
from replicate_mcp.config import Settings, get_settings
from web.routers import health, mcp
from web.routers.mcp import SESSION_HEADER


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan context manager.

    Starts the request-context sweeper on startup; closes sessions and
    stops the sweeper on shutdown.
    """
    server = app.state.mcp_server
    server.start()
    try:
        yield
    finally:
        await server.stop()


async def unauthorized_handler(
    request: Request, exc: UnauthorizedError
) -> JSONResponse:
    """Render an API-key failure as a JSON-RPC error."""
    return JSONResponse(
        error_response(exc.error, None),
        status_code=http_status.HTTP_401_UNAUTHORIZED,
    )


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Settings to use. Defaults to get_settings().

    Returns:
        Configured FastAPI application.
    """
    if settings is None:
        settings = get_settings()

    application = FastAPI(
        title=settings.mcp_title,
        description="Model Context Protocol server for Replicate image generation",
        version=__version__,
        lifespan=lifespan,
    )
    application.state.mcp_server = create_server(settings)

    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=[SESSION_HEADER],
    )
    application.add_exception_handler(UnauthorizedError, unauthorized_handler)

    # Include routers
    application.include_router(health.router, tags=["health"])
    application.include_router(mcp.router, tags=["mcp"])

    return application


# Create the default application instance
app = create_app()
