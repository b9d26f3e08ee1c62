"""Tests for StreamableHTTPSessionManager, the request router of the gateway."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any
from unittest.mock import AsyncMock, patch

import anyio
import httpx
import pytest
from starlette.types import Message

from mcp_searxng import types
from mcp_searxng.server.app import create_session_manager, streamable_http_app
from mcp_searxng.server.lowlevel import Server
from mcp_searxng.server.session_registry import SessionState
from mcp_searxng.server.streamable_http import SESSION_ID_HEADER, StreamableHTTPServerTransport
from mcp_searxng.server.streamable_http_manager import StreamableHTTPSessionManager
from mcp_searxng.settings import Settings

pytestmark = pytest.mark.anyio

GATEWAY = "/gateway"


@asynccontextmanager
async def gateway(
    server: Server, settings: Settings
) -> AsyncIterator[tuple[httpx.AsyncClient, StreamableHTTPSessionManager]]:
    manager = create_session_manager(server, settings)
    app = streamable_http_app(server, settings, session_manager=manager)
    async with (
        app.router.lifespan_context(app),
        httpx.ASGITransport(app) as transport,
        httpx.AsyncClient(transport=transport, base_url="http://testserver") as client,
    ):
        yield client, manager


async def open_session(client: httpx.AsyncClient, initialize_payload: dict[str, Any]) -> str:
    response = await client.post(GATEWAY, json=initialize_payload)
    assert response.status_code == 200
    session_id = response.headers[SESSION_ID_HEADER]
    response = await client.post(
        GATEWAY,
        json={"jsonrpc": "2.0", "method": "notifications/initialized"},
        headers={SESSION_ID_HEADER: session_id},
    )
    assert response.status_code == 202
    return session_id


async def test_run_can_only_be_called_once(echo_server: Server):
    manager = StreamableHTTPSessionManager(app=echo_server)

    async with manager.run():
        pass

    with pytest.raises(RuntimeError) as excinfo:
        async with manager.run():
            pass

    assert "StreamableHTTPSessionManager .run() can only be called once per instance" in str(excinfo.value)


async def test_handle_request_without_run_raises_error(echo_server: Server):
    manager = StreamableHTTPSessionManager(app=echo_server)
    scope = {"type": "http", "method": "POST", "path": GATEWAY, "headers": []}

    async def receive() -> Message:
        return {"type": "http.request", "body": b""}

    async def send(message: Message) -> None:
        pass

    with pytest.raises(RuntimeError) as excinfo:
        await manager.handle_request(scope, receive, send)

    assert "Task group is not initialized. Make sure to use run()." in str(excinfo.value)


async def test_initialize_creates_session(echo_server: Server, settings: Settings, initialize_payload: dict[str, Any]):
    async with gateway(echo_server, settings) as (client, manager):
        response = await client.post(GATEWAY, json=initialize_payload)

        assert response.status_code == 200
        session_id = response.headers[SESSION_ID_HEADER]
        assert session_id

        body = response.json()
        assert body["id"] == 1
        assert body["result"]["serverInfo"] == {"name": "echo-server", "version": "1.0"}
        assert body["result"]["protocolVersion"] == types.LATEST_PROTOCOL_VERSION

        session = manager.lifecycle.lookup(session_id)
        assert session is not None
        assert session.state is SessionState.Active


async def test_session_routes_follow_up_requests(
    echo_server: Server, settings: Settings, initialize_payload: dict[str, Any]
):
    async with gateway(echo_server, settings) as (client, _):
        session_id = await open_session(client, initialize_payload)

        response = await client.post(
            GATEWAY,
            json={"jsonrpc": "2.0", "id": 2, "method": "tools/call", "params": {"name": "echo", "arguments": {"text": "hi"}}},
            headers={SESSION_ID_HEADER: session_id},
        )

        assert response.status_code == 200
        assert response.headers[SESSION_ID_HEADER] == session_id
        assert response.json()["result"] == {"content": [{"type": "text", "text": "echo: hi"}], "isError": False}


async def test_requests_on_one_session_are_processed_in_issue_order(
    echo_server: Server, settings: Settings, initialize_payload: dict[str, Any]
):
    async with gateway(echo_server, settings) as (client, _):
        session_id = await open_session(client, initialize_payload)

        for n in range(5):
            response = await client.post(
                GATEWAY,
                json={"jsonrpc": "2.0", "id": n + 10, "method": "tools/list"},
                headers={SESSION_ID_HEADER: session_id},
            )
            assert response.json()["id"] == n + 10
            assert response.json()["result"]["tools"][0]["name"] == "echo"


async def test_post_without_session_id_must_be_initialize(echo_server: Server, settings: Settings):
    async with gateway(echo_server, settings) as (client, manager):
        response = await client.post(GATEWAY, json={"jsonrpc": "2.0", "id": 1, "method": "tools/list"})

        assert response.status_code == 400
        assert response.json() == {
            "jsonrpc": "2.0",
            "error": {"code": -32000, "message": "Bad Request: No valid session ID provided"},
            "id": None,
        }
        assert len(manager.lifecycle.registry) == 0


async def test_batched_initialize_does_not_create_session(
    echo_server: Server, settings: Settings, initialize_payload: dict[str, Any]
):
    async with gateway(echo_server, settings) as (client, manager):
        response = await client.post(GATEWAY, json=[initialize_payload])

        assert response.status_code == 400
        assert response.json()["error"]["code"] == -32000
        assert len(manager.lifecycle.registry) == 0


async def test_unacceptable_initialize_does_not_create_session(
    echo_server: Server, settings: Settings, initialize_payload: dict[str, Any]
):
    async with gateway(echo_server, settings) as (client, manager):
        response = await client.post(GATEWAY, json=initialize_payload, headers={"accept": "text/event-stream"})

        assert response.status_code == 406
        assert SESSION_ID_HEADER not in response.headers
        assert len(manager.lifecycle.registry) == 0

        response = await client.post(GATEWAY, json=initialize_payload)
        assert response.status_code == 200
        assert len(manager.lifecycle.registry) == 1


async def test_empty_session_id_header_counts_as_absent(
    echo_server: Server, settings: Settings, initialize_payload: dict[str, Any]
):
    async with gateway(echo_server, settings) as (client, manager):
        response = await client.post(GATEWAY, json=initialize_payload, headers={SESSION_ID_HEADER: ""})

        assert response.status_code == 200
        session_id = response.headers[SESSION_ID_HEADER]
        assert session_id
        assert manager.lifecycle.lookup(session_id) is not None

        response = await client.get(GATEWAY, headers={SESSION_ID_HEADER: ""})
        assert response.status_code == 400
        assert response.text == "Invalid or missing session ID"


async def test_unknown_session_id_is_rejected(echo_server: Server, settings: Settings):
    async with gateway(echo_server, settings) as (client, _):
        response = await client.post(
            GATEWAY,
            json={"jsonrpc": "2.0", "id": 1, "method": "tools/list"},
            headers={SESSION_ID_HEADER: "does-not-exist"},
        )

        assert response.status_code == 400
        assert response.json()["error"] == {"code": -32000, "message": "Bad Request: Invalid or missing session ID"}


async def test_unknown_session_never_reaches_a_transport(
    echo_server: Server, settings: Settings, initialize_payload: dict[str, Any]
):
    async with gateway(echo_server, settings) as (client, _):
        await open_session(client, initialize_payload)

        with (
            patch.object(StreamableHTTPServerTransport, "handle_post", new_callable=AsyncMock) as post_spy,
            patch.object(StreamableHTTPServerTransport, "handle_get", new_callable=AsyncMock) as get_spy,
        ):
            await client.post(
                GATEWAY,
                json={"jsonrpc": "2.0", "id": 1, "method": "tools/list"},
                headers={SESSION_ID_HEADER: "does-not-exist"},
            )
            await client.get(GATEWAY, headers={SESSION_ID_HEADER: "does-not-exist"})

        post_spy.assert_not_called()
        get_spy.assert_not_called()


async def test_reinitialize_with_session_id_is_rejected(
    echo_server: Server, settings: Settings, initialize_payload: dict[str, Any]
):
    async with gateway(echo_server, settings) as (client, manager):
        session_id = await open_session(client, initialize_payload)

        response = await client.post(GATEWAY, json=initialize_payload, headers={SESSION_ID_HEADER: session_id})

        assert response.status_code == 400
        assert response.json()["error"]["message"] == "Bad Request: Session already initialized"
        assert len(manager.lifecycle.registry) == 1


async def test_get_without_session_id_is_rejected(echo_server: Server, settings: Settings):
    async with gateway(echo_server, settings) as (client, _):
        response = await client.get(GATEWAY, headers={"accept": "text/event-stream"})

        assert response.status_code == 400
        assert response.text == "Invalid or missing session ID"


async def test_delete_without_session_id_is_rejected(echo_server: Server, settings: Settings):
    async with gateway(echo_server, settings) as (client, _):
        response = await client.delete(GATEWAY)

        assert response.status_code == 400
        assert response.text == "Invalid or missing session ID"


async def test_delete_terminates_session(echo_server: Server, settings: Settings, initialize_payload: dict[str, Any]):
    async with gateway(echo_server, settings) as (client, manager):
        session_id = await open_session(client, initialize_payload)

        response = await client.delete(GATEWAY, headers={SESSION_ID_HEADER: session_id})
        assert response.status_code == 200
        assert manager.lifecycle.lookup(session_id) is None

        response = await client.get(GATEWAY, headers={SESSION_ID_HEADER: session_id, "accept": "text/event-stream"})
        assert response.status_code == 400
        assert response.text == "Invalid or missing session ID"

        response = await client.post(
            GATEWAY,
            json={"jsonrpc": "2.0", "id": 3, "method": "tools/list"},
            headers={SESSION_ID_HEADER: session_id},
        )
        assert response.status_code == 400

        response = await client.delete(GATEWAY, headers={SESSION_ID_HEADER: session_id})
        assert response.status_code == 400


async def test_concurrent_handshakes_get_distinct_sessions(
    echo_server: Server, settings: Settings, initialize_payload: dict[str, Any]
):
    session_ids: list[str] = []

    async with gateway(echo_server, settings) as (client, manager):

        async def handshake(n: int):
            response = await client.post(GATEWAY, json={**initialize_payload, "id": n})
            assert response.status_code == 200
            session_ids.append(response.headers[SESSION_ID_HEADER])

        async with anyio.create_task_group() as tg:
            for n in range(20):
                tg.start_soon(handshake, n)

        assert len(set(session_ids)) == 20
        assert len(manager.lifecycle.registry) == 20


async def test_sessions_are_independent(echo_server: Server, settings: Settings, initialize_payload: dict[str, Any]):
    async with gateway(echo_server, settings) as (client, _):
        first = await open_session(client, initialize_payload)
        second = await open_session(client, initialize_payload)

        await client.delete(GATEWAY, headers={SESSION_ID_HEADER: first})

        response = await client.post(
            GATEWAY,
            json={"jsonrpc": "2.0", "id": 2, "method": "ping"},
            headers={SESSION_ID_HEADER: second},
        )
        assert response.status_code == 200
        assert response.json() == {"jsonrpc": "2.0", "id": 2, "result": {}}


async def test_malformed_json_is_a_parse_error(echo_server: Server, settings: Settings):
    async with gateway(echo_server, settings) as (client, manager):
        response = await client.post(GATEWAY, content=b"{not json", headers={"content-type": "application/json"})

        assert response.status_code == 400
        assert response.json()["error"]["code"] == types.PARSE_ERROR
        assert len(manager.lifecycle.registry) == 0


async def test_oversized_body_is_rejected(echo_server: Server, settings: Settings, initialize_payload: dict[str, Any]):
    settings = settings.model_copy(update={"max_body_bytes": 64})
    async with gateway(echo_server, settings) as (client, manager):
        response = await client.post(GATEWAY, json=initialize_payload)

        assert response.status_code == 413
        assert len(manager.lifecycle.registry) == 0


async def test_unsupported_method_is_rejected(echo_server: Server, settings: Settings):
    async with gateway(echo_server, settings) as (client, _):
        response = await client.put(GATEWAY, json={})

        assert response.status_code == 405
        assert response.headers["allow"] == "GET, POST, DELETE"


async def test_failed_transport_setup_rolls_back_session(
    echo_server: Server, settings: Settings, initialize_payload: dict[str, Any]
):
    async with gateway(echo_server, settings) as (client, manager):
        with patch.object(
            StreamableHTTPSessionManager,
            "_start_transport_server",
            new_callable=AsyncMock,
            side_effect=RuntimeError("boom"),
        ):
            response = await client.post(GATEWAY, json=initialize_payload)

        assert response.status_code == 500
        assert response.json()["error"]["code"] == types.INTERNAL_ERROR
        assert SESSION_ID_HEADER not in response.headers
        assert len(manager.lifecycle.registry) == 0


async def test_crashed_engine_closes_session(settings: Settings, initialize_payload: dict[str, Any]):
    server = Server("crashing-server")

    @server.list_tools()
    async def list_tools() -> list[types.Tool]:
        return []

    async with gateway(server, settings) as (client, manager):
        session_id = await open_session(client, initialize_payload)
        transport = manager.lifecycle.lookup(session_id).binding

        # Ends the engine without terminating the transport
        transport.engine_scope.cancel()

        with anyio.fail_after(5):
            while manager.lifecycle.lookup(session_id) is not None:
                await anyio.sleep(0.01)


async def test_dns_rebinding_protection(echo_server: Server, settings: Settings, initialize_payload: dict[str, Any]):
    settings = settings.model_copy(
        update={
            "enable_dns_rebinding_protection": True,
            "allowed_hosts": ["testserver"],
            "allowed_origins": ["http://localhost:*"],
        }
    )
    async with gateway(echo_server, settings) as (client, manager):
        response = await client.post(GATEWAY, json=initialize_payload, headers={"host": "evil.example"})
        assert response.status_code == 421

        response = await client.post(GATEWAY, json=initialize_payload, headers={"origin": "http://evil.example"})
        assert response.status_code == 403
        assert len(manager.lifecycle.registry) == 0

        response = await client.post(GATEWAY, json=initialize_payload, headers={"origin": "http://localhost:5173"})
        assert response.status_code == 200


async def test_shutdown_closes_all_sessions(
    echo_server: Server, settings: Settings, initialize_payload: dict[str, Any]
):
    async with gateway(echo_server, settings) as (client, manager):
        await open_session(client, initialize_payload)
        await open_session(client, initialize_payload)
        transports = [session.binding for session in manager.lifecycle.registry]

    assert len(manager.lifecycle.registry) == 0
    assert all(transport.is_terminated for transport in transports)
