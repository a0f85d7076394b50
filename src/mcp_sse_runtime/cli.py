"""MCP SSE Runtime CLI.

Usage:
    mcp-sse-runtime                          # Serve on 127.0.0.1:3001
    mcp-sse-runtime --port 8080              # Custom port
    mcp-sse-runtime --messages-path /rpc     # Custom message endpoint
    mcp-sse-runtime --health                 # Check a running server and exit
"""

from __future__ import annotations

import asyncio
import logging
import os
import sys

import click
import httpx

from .config import ServerConfig


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )


@click.command()
@click.option("--host", default=None, help="Host to bind to [env: MCP_SSE_HOST]")
@click.option("--port", type=int, default=None, help="Port to bind to [env: MCP_SSE_PORT]")
@click.option("--reload", is_flag=True, help="Enable auto-reload for development")
@click.option("--sse-path", default=None, help="Path of the SSE endpoint [env: MCP_SSE_PATH]")
@click.option(
    "--messages-path",
    default=None,
    help="Path clients POST messages to [env: MCP_SSE_MESSAGES_PATH]",
)
@click.option(
    "--keepalive",
    type=float,
    default=None,
    help="Seconds between keepalive comments, 0 disables [env: MCP_SSE_KEEPALIVE]",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default=None,
    help="Logging level [env: MCP_SSE_LOG_LEVEL]",
)
@click.option("--health", "health_check", is_flag=True, help="Check server health and exit")
@click.option("--health-url", default="http://localhost:3001", help="Server URL for health check")
def main(
    host: str | None,
    port: int | None,
    reload: bool,
    sse_path: str | None,
    messages_path: str | None,
    keepalive: float | None,
    log_level: str | None,
    health_check: bool,
    health_url: str,
) -> None:
    """MCP server over Server-Sent Events."""
    if health_check:
        _do_health_check(health_url)
        return

    # The app factory reads its config from the environment, so CLI
    # options are passed through it (this also survives --reload)
    overrides = {
        "MCP_SSE_HOST": host,
        "MCP_SSE_PORT": port,
        "MCP_SSE_PATH": sse_path,
        "MCP_SSE_MESSAGES_PATH": messages_path,
        "MCP_SSE_KEEPALIVE": keepalive,
        "MCP_SSE_LOG_LEVEL": log_level,
    }
    for name, value in overrides.items():
        if value is not None:
            os.environ[name] = str(value)

    try:
        config = ServerConfig.from_env()
    except ValueError as e:
        raise click.UsageError(str(e)) from e

    _configure_logging(config.log_level)
    _run_http_server(config, reload)


def _do_health_check(url: str) -> None:
    """Check server health."""

    async def check() -> None:
        try:
            async with httpx.AsyncClient() as client:
                response = await client.get(f"{url}/health")
                if response.status_code == 200:
                    data = response.json()
                    click.echo(f"Server is healthy: {data}")
                else:
                    click.echo(f"Server returned {response.status_code}", err=True)
                    sys.exit(1)
        except httpx.ConnectError:
            click.echo(f"Cannot connect to server at {url}", err=True)
            sys.exit(1)

    asyncio.run(check())


def _run_http_server(config: ServerConfig, reload: bool) -> None:
    """Run the HTTP server."""
    import uvicorn

    click.echo(f"MCP server running at http://{config.host}:{config.port}", err=True)
    click.echo(f"  GET {config.sse_path} for SSE connection", err=True)
    click.echo(f"  POST {config.messages_path}?sessionId=<ID> for messages", err=True)
    click.echo("Press Ctrl+C to stop", err=True)

    uvicorn.run(
        "mcp_sse_runtime.app:create_app",
        factory=True,
        host=config.host,
        port=config.port,
        reload=reload,
        log_level=config.log_level.lower(),
    )


if __name__ == "__main__":
    main()
