"""Thin CLI wrapper for the Replicate MCP server.

This module provides the command-line interface using Typer.
Serving is delegated to uvicorn and the FastAPI app in ``web/``.
"""

import json
import logging
from typing import Annotated

import typer
from rich.console import Console

from replicate_mcp import __version__
from replicate_mcp.config import SECRET_MASK, get_settings, print_settings_json

app = typer.Typer(
    name="replicate-mcp",
    help="Replicate MCP Server - image generation tools over the Model Context Protocol",
    no_args_is_help=True,
)
console = Console()

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"replicate-mcp version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
) -> None:
    """Replicate MCP Server - image generation tools over the Model Context Protocol."""


@app.command()
def serve(
    host: Annotated[
        str | None,
        typer.Option("--host", help="Bind address (default: HOST)"),
    ] = None,
    port: Annotated[
        int | None,
        typer.Option("--port", "-p", help="Bind port (default: PORT)"),
    ] = None,
    reload: Annotated[
        bool,
        typer.Option("--reload", help="Reload on code changes (development)"),
    ] = False,
) -> None:
    """Run the HTTP server."""
    import uvicorn

    settings = get_settings()
    logging.basicConfig(level=settings.log_level, format=LOG_FORMAT)

    bind_host = host or settings.host
    bind_port = port or settings.port
    console.print(
        f"[bold]{settings.mcp_title}[/bold] listening on "
        f"http://{bind_host}:{bind_port}/mcp"
    )
    if not settings.auth_enabled:
        console.print("[yellow]API_KEY is not set: authentication disabled[/yellow]")
    if not settings.replicate_api_token:
        console.print("[yellow]REPLICATE_API_TOKEN is not set[/yellow]")

    uvicorn.run(
        "web.app:app",
        host=bind_host,
        port=bind_port,
        reload=reload,
        log_level=settings.log_level.lower(),
    )


@app.command()
def config(
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Show effective configuration."""
    settings = get_settings()
    if json_output:
        typer.echo(print_settings_json(settings))
        return

    def secret(value: str | None) -> str:
        return SECRET_MASK if value else "(not set)"

    console.print("[bold]Effective Configuration:[/bold]")
    console.print()
    console.print("[bold]Server:[/bold]")
    console.print(f"  Title:               {settings.mcp_title}")
    console.print(f"  Version:             {settings.mcp_version}")
    console.print(f"  Environment:         {settings.environment}")
    console.print(f"  Bind:                {settings.host}:{settings.port}")
    console.print(f"  API key:             {secret(settings.api_key)}")
    console.print(f"  CORS origins:        {', '.join(settings.cors_origins)}")
    console.print(f"  Log level:           {settings.log_level}")
    console.print()
    console.print("[bold]Replicate:[/bold]")
    console.print(f"  API token:           {secret(settings.replicate_api_token)}")
    console.print(f"  Base URL:            {settings.replicate_base_url}")
    console.print(f"  Search limit:        {settings.search_limit}")
    console.print()
    console.print("[bold]Timeouts (seconds):[/bold]")
    console.print(f"  Request timeout:     {settings.replicate_timeout}")
    console.print(f"  Poll interval:       {settings.replicate_poll_interval}")
    console.print(f"  Context max age:     {settings.context_max_age}")
    console.print(f"  Context sweep:       {settings.context_sweep_interval}")


@app.command()
def tools(
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """List the MCP tools this server exposes."""
    from mcp_server.registry import ToolRegistry
    from mcp_server.tools import TOOLS

    registry = ToolRegistry(TOOLS)
    if json_output:
        output = [
            tool.model_dump(mode="json", by_alias=True, exclude_none=True)
            for tool in registry.list_tools()
        ]
        typer.echo(json.dumps(output, indent=2))
        return

    console.print(f"[bold]Found {len(registry)} tool(s):[/bold]")
    console.print()
    for definition in registry:
        schema = definition.input_schema
        required = set(schema.get("required", []))
        console.print(f"  [green]{definition.name}[/green] - {definition.title}")
        for name in schema.get("properties", {}):
            marker = " (required)" if name in required else ""
            console.print(f"    {name}{marker}")
        console.print()


if __name__ == "__main__":
    app()
