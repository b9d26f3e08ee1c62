"""Command line entry point."""

from __future__ import annotations

import sys

import anyio
import uvicorn
from pydantic import ValidationError

from mcp_searxng.searxng_server import create_server
from mcp_searxng.server.app import streamable_http_app
from mcp_searxng.server.lowlevel import Server
from mcp_searxng.server.stdio import stdio_server
from mcp_searxng.settings import Settings
from mcp_searxng.utilities.logging import configure_logging, get_logger

logger = get_logger(__name__)


async def run_stdio_async(server: Server) -> None:
    """Run the server using stdio transport."""
    async with stdio_server() as (read_stream, write_stream):
        await server.run(read_stream, write_stream, server.create_initialization_options())


async def run_streamable_http_async(server: Server, settings: Settings) -> None:
    """Run the server using the StreamableHTTP gateway."""
    assert settings.mcp_http_port is not None
    starlette_app = streamable_http_app(server, settings)

    config = uvicorn.Config(
        starlette_app,
        host=settings.mcp_http_host,
        port=settings.mcp_http_port,
        log_level=settings.log_level.lower(),
    )
    logger.info(f"Gateway listening on http://{settings.mcp_http_host}:{settings.mcp_http_port}{settings.mcp_http_path}")
    await uvicorn.Server(config).serve()


def main() -> int:
    try:
        settings = Settings()
    except ValidationError as e:
        print(f"Invalid configuration:\n{e}", file=sys.stderr)
        return 1

    configure_logging(settings.log_level)
    if not settings.searxng_url:
        logger.warning("SEARXNG_URL is not set; searxng_web_search will fail until it is configured")

    server = create_server(settings)
    if settings.mcp_http_port is not None:
        anyio.run(run_streamable_http_async, server, settings)
    else:
        logger.info("Starting stdio transport")
        anyio.run(run_stdio_async, server)
    return 0
