"""The searxng protocol engine: tool and resource handlers wired onto a low-level Server."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field, ValidationError

from mcp_searxng import __version__, types
from mcp_searxng.exceptions import McpError
from mcp_searxng.resources import CONFIG_URI, HELP_URI, RESOURCES, SERVER_NAME, server_config, usage_guide
from mcp_searxng.server.lowlevel import Server
from mcp_searxng.settings import Settings
from mcp_searxng.tools import READ_URL_TOOL, WEB_SEARCH_TOOL, SearXNGClient, URLReader
from mcp_searxng.tools.errors import SearXNGError
from mcp_searxng.utilities.logging import get_logger

logger = get_logger(__name__)

LOGGER_NAME = "mcp-searxng"


class WebSearchArguments(BaseModel):
    query: str
    pageno: int = Field(default=1, ge=1)
    time_range: str | None = None
    language: str | None = "all"
    safesearch: str | int | None = None


class WebUrlReadArguments(BaseModel):
    url: str


def _parse_arguments(model: type[BaseModel], name: str, arguments: dict[str, Any]) -> Any:
    try:
        return model.model_validate(arguments)
    except ValidationError as e:
        raise ValueError(f"Invalid arguments for {name}: {e}") from e


def create_server(
    settings: Settings,
    search_client: SearXNGClient | None = None,
    url_reader: URLReader | None = None,
) -> Server:
    """Build the engine served on every transport.

    Args:
        settings: Process settings
        search_client: SearXNG client to use; built from ``settings`` if omitted
        url_reader: URL reader to use; built from ``settings`` if omitted
    """
    server = Server(SERVER_NAME, __version__)
    search_client = search_client or SearXNGClient(settings)
    url_reader = url_reader or URLReader(settings)

    async def client_log(level: types.LoggingLevel, message: str, **data: Any) -> None:
        session = server.request_context.session
        payload: Any = {"message": message, **data} if data else message
        await session.send_log_message(level, payload, logger=LOGGER_NAME)

    @server.list_tools()
    async def list_tools() -> list[types.Tool]:
        await client_log("debug", "Handling list_tools request")
        return [WEB_SEARCH_TOOL, READ_URL_TOOL]

    @server.call_tool()
    async def call_tool(name: str, arguments: dict[str, Any]) -> list[types.TextContent]:
        await client_log("debug", f"Handling call_tool request: {name}")
        try:
            if name == WEB_SEARCH_TOOL.name:
                args = _parse_arguments(WebSearchArguments, name, arguments)
                await client_log("info", f"Starting web search: {args.query!r} (page {args.pageno})")
                text = await search_client.search(
                    args.query, args.pageno, args.time_range, args.language, args.safesearch
                )
            elif name == READ_URL_TOOL.name:
                args = _parse_arguments(WebUrlReadArguments, name, arguments)
                await client_log("info", f"Fetching URL: {args.url}")
                text = await url_reader.read(args.url)
            else:
                raise ValueError(f"Unknown tool: {name}")
        except (SearXNGError, ValueError) as e:
            logger.warning(f"Tool {name} failed: {e}")
            await client_log("error", f"Tool execution error: {e}", tool=name)
            raise

        return [types.TextContent(text=text)]

    @server.set_logging_level()
    async def set_logging_level(level: types.LoggingLevel) -> None:
        await client_log("info", f"Setting log level to: {level}")

    @server.list_resources()
    async def list_resources() -> list[types.Resource]:
        await client_log("debug", "Handling list_resources request")
        return RESOURCES

    @server.read_resource()
    async def read_resource(uri: str) -> list[types.TextResourceContents]:
        await client_log("debug", f"Handling read_resource request for: {uri}")
        if uri == CONFIG_URI:
            text = server_config(settings, server.request_context.session.log_level)
            return [types.TextResourceContents(uri=uri, mime_type="application/json", text=text)]
        if uri == HELP_URI:
            return [types.TextResourceContents(uri=uri, mime_type="text/markdown", text=usage_guide(settings))]
        raise McpError(types.ErrorData(code=types.INVALID_PARAMS, message=f"Unknown resource: {uri}"))

    return server
