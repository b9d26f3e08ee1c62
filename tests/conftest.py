from typing import Any

import anyio
import pytest
import sse_starlette
from packaging import version

from mcp_searxng import types
from mcp_searxng.server.lowlevel import Server
from mcp_searxng.settings import Settings


@pytest.fixture
def anyio_backend():
    return "asyncio"


SSE_STARLETTE_VERSION = version.parse(sse_starlette.__version__)
NEEDS_RESET = SSE_STARLETTE_VERSION < version.parse("3.0.0")


@pytest.fixture(autouse=True)
def reset_sse_app_status():
    """Reset sse-starlette's global AppStatus singleton before each test.

    AppStatus.should_exit_event is a global asyncio.Event that gets bound to
    an event loop. Versions 3.0 and later keep this state per context and need
    no reset.
    """
    if not NEEDS_RESET:
        yield
        return

    from sse_starlette.sse import AppStatus

    AppStatus.should_exit_event = anyio.Event()  # type: ignore[attr-defined]

    yield

    AppStatus.should_exit_event = anyio.Event()  # type: ignore[attr-defined]


def initialize_request(request_id: int | str = 1, **overrides: Any) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "jsonrpc": "2.0",
        "id": request_id,
        "method": "initialize",
        "params": {
            "protocolVersion": types.LATEST_PROTOCOL_VERSION,
            "capabilities": {},
            "clientInfo": {"name": "test-client", "version": "1.0"},
        },
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def initialize_payload() -> dict[str, Any]:
    return initialize_request()


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Hide settings variables of the surrounding environment."""
    for name in Settings.model_fields:
        monkeypatch.delenv(name, raising=False)
        monkeypatch.delenv(name.upper(), raising=False)


@pytest.fixture
def settings(clean_env: None) -> Settings:
    return Settings(_env_file=None, searxng_url="http://searx.test:8080")


@pytest.fixture
def echo_server() -> Server:
    server = Server("echo-server", "1.0")

    @server.list_tools()
    async def list_tools() -> list[types.Tool]:
        return [types.Tool(name="echo", input_schema={"type": "object"})]

    @server.call_tool()
    async def call_tool(name: str, arguments: dict[str, Any]) -> list[types.TextContent]:
        await server.request_context.session.send_log_message("info", f"echoing {arguments.get('text')}")
        return [types.TextContent(text=f"echo: {arguments.get('text')}")]

    return server
