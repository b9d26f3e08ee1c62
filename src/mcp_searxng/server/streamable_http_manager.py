"""StreamableHTTP session manager: the request router of the HTTP gateway."""

from __future__ import annotations

import contextlib
import json
import logging
from collections.abc import AsyncIterator
from http import HTTPStatus

import anyio
from anyio.abc import TaskGroup, TaskStatus
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import Receive, Scope, Send

from mcp_searxng.server.handshake import is_initialize_request
from mcp_searxng.server.http_body import DEFAULT_MAX_BODY_BYTES, BodyTooLargeError, read_json_body
from mcp_searxng.server.lowlevel.server import Server as MCPServer
from mcp_searxng.server.session_lifecycle import SessionLifecycleManager
from mcp_searxng.server.streamable_http import (
    CONTENT_TYPE_JSON,
    SESSION_ID_HEADER,
    StreamableHTTPServerTransport,
    jsonrpc_error_response,
    accepts,
)
from mcp_searxng.server.transport_security import TransportSecurityMiddleware, TransportSecuritySettings
from mcp_searxng.types import INTERNAL_ERROR, INVALID_REQUEST, PARSE_ERROR

logger = logging.getLogger(__name__)

ALLOWED_METHODS = ("GET", "POST", "DELETE")


class StreamableHTTPSessionManager:
    """
    Routes gateway requests to the session they belong to.

    A POST without a session id header must carry an ``initialize`` request;
    it creates a session, starts a protocol engine for it and is answered by
    that engine. Every other request must name a live session in the
    ``session-id`` header. Requests for unknown sessions are rejected here and
    never reach an engine.

    Important: Only one StreamableHTTPSessionManager instance should be created
    per application. The instance cannot be reused after its run() context has
    completed.

    Args:
        app: The protocol engine served to every session
        lifecycle: Session lifecycle manager; a fresh one is created if omitted
        security_settings: Optional DNS rebinding protection settings
        max_body_bytes: Largest POST body accepted, ``None`` for no limit
    """

    def __init__(
        self,
        app: MCPServer,
        lifecycle: SessionLifecycleManager | None = None,
        security_settings: TransportSecuritySettings | None = None,
        max_body_bytes: int | None = DEFAULT_MAX_BODY_BYTES,
    ):
        self.app = app
        self.lifecycle = lifecycle if lifecycle is not None else SessionLifecycleManager()
        self.security = TransportSecurityMiddleware(security_settings)
        self.max_body_bytes = max_body_bytes

        # The task group will be set during lifespan
        self._task_group: TaskGroup | None = None
        self._run_lock = anyio.Lock()
        self._has_started = False

    @contextlib.asynccontextmanager
    async def run(self) -> AsyncIterator[None]:
        """
        Run the session manager with proper lifecycle management.

        Every protocol engine runs in the task group created here. Leaving the
        context closes all sessions.

        Use this in the lifespan context manager of your Starlette app:

        @contextlib.asynccontextmanager
        async def lifespan(app: Starlette) -> AsyncIterator[None]:
            async with session_manager.run():
                yield
        """
        async with self._run_lock:
            if self._has_started:
                raise RuntimeError(
                    "StreamableHTTPSessionManager .run() can only be called "
                    "once per instance. Create a new instance if you need to run again."
                )
            self._has_started = True

        async with anyio.create_task_group() as tg:
            self._task_group = tg
            logger.info("StreamableHTTP session manager started")
            try:
                async with self.lifecycle.run():
                    yield
            finally:
                logger.info("StreamableHTTP session manager shutting down")
                tg.cancel_scope.cancel()
                self._task_group = None

    async def handle_request(self, scope: Scope, receive: Receive, send: Send) -> None:
        """
        Process an ASGI request addressed to the gateway endpoint.

        Args:
            scope: ASGI scope
            receive: ASGI receive function
            send: ASGI send function
        """
        if self._task_group is None:
            raise RuntimeError("Task group is not initialized. Make sure to use run().")

        request = Request(scope, receive)
        if request.method not in ALLOWED_METHODS:
            response = Response(
                "Method Not Allowed",
                status_code=HTTPStatus.METHOD_NOT_ALLOWED,
                headers={"Allow": ", ".join(ALLOWED_METHODS)},
            )
            await response(scope, receive, send)
            return

        error_response = await self.security.validate_request(request)
        if error_response is not None:
            await error_response(scope, receive, send)
            return

        # An empty header names no session
        session_id = request.headers.get(SESSION_ID_HEADER) or None
        if request.method == "POST":
            await self._handle_post(request, session_id, send)
        elif request.method == "GET":
            await self._handle_get(request, session_id, send)
        else:
            await self._handle_delete(request, session_id, send)

    async def _handle_post(self, request: Request, session_id: str | None, send: Send) -> None:
        try:
            payload = await read_json_body(request, max_body_bytes=self.max_body_bytes)
        except BodyTooLargeError as e:
            response = jsonrpc_error_response(
                str(e), code=INVALID_REQUEST, status_code=HTTPStatus.REQUEST_ENTITY_TOO_LARGE
            )
            await response(request.scope, request.receive, send)
            return
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            response = jsonrpc_error_response(f"Parse error: {e}", code=PARSE_ERROR)
            await response(request.scope, request.receive, send)
            return

        if session_id is None:
            if not is_initialize_request(payload):
                logger.debug("Rejecting POST without session id that is not an initialize request")
                response = jsonrpc_error_response("Bad Request: No valid session ID provided")
                await response(request.scope, request.receive, send)
                return

            if not accepts(request, CONTENT_TYPE_JSON):
                response = Response(
                    "Not Acceptable: Client must accept application/json",
                    status_code=HTTPStatus.NOT_ACCEPTABLE,
                )
                await response(request.scope, request.receive, send)
                return

            transport = await self._create_session()
            if transport is None:
                response = jsonrpc_error_response(
                    "Internal Server Error: could not create session",
                    code=INTERNAL_ERROR,
                    status_code=HTTPStatus.INTERNAL_SERVER_ERROR,
                )
                await response(request.scope, request.receive, send)
                return

            await transport.handle_post(request, payload, send)
            return

        transport = self._live_transport(session_id)
        if transport is None:
            response = jsonrpc_error_response("Bad Request: Invalid or missing session ID")
            await response(request.scope, request.receive, send)
            return

        if is_initialize_request(payload):
            response = jsonrpc_error_response("Bad Request: Session already initialized")
            await response(request.scope, request.receive, send)
            return

        await transport.handle_post(request, payload, send)

    async def _handle_get(self, request: Request, session_id: str | None, send: Send) -> None:
        transport = self._live_transport(session_id)
        if transport is None:
            response = Response("Invalid or missing session ID", status_code=HTTPStatus.BAD_REQUEST)
            await response(request.scope, request.receive, send)
            return

        await transport.handle_get(request, send)

    async def _handle_delete(self, request: Request, session_id: str | None, send: Send) -> None:
        if self._live_transport(session_id) is None:
            response = Response("Invalid or missing session ID", status_code=HTTPStatus.BAD_REQUEST)
            await response(request.scope, request.receive, send)
            return

        assert session_id is not None
        await self.lifecycle.close_session(session_id, reason="terminated by client")
        response = Response(status_code=HTTPStatus.OK, headers={SESSION_ID_HEADER: session_id})
        await response(request.scope, request.receive, send)

    def _live_transport(self, session_id: str | None) -> StreamableHTTPServerTransport | None:
        """Return the transport of a known session and record activity on it."""
        if session_id is None:
            return None
        session = self.lifecycle.lookup(session_id)
        if session is None or session.binding is None:
            logger.debug(f"Unknown session id {session_id!r}")
            return None
        session.touch()
        return session.binding

    async def _create_session(self) -> StreamableHTTPServerTransport | None:
        session_id = await self.lifecycle.create_session()
        http_transport = StreamableHTTPServerTransport(session_id, closed_events=self.lifecycle.closed_events)
        try:
            self.lifecycle.bind(session_id, http_transport)
            await self._start_transport_server(http_transport)
        except Exception:
            logger.exception(f"Failed to start transport for session {session_id}")
            await self.lifecycle.discard_session(session_id)
            return None

        await self.lifecycle.activate_session(session_id)
        logger.info(f"Created new transport with session ID: {session_id}")
        return http_transport

    async def _transport_server_task(
        self,
        http_transport: StreamableHTTPServerTransport,
        *,
        task_status: TaskStatus[None] = anyio.TASK_STATUS_IGNORED,
    ) -> None:
        """
        Background task that runs the protocol engine for a transport.

        The engine is stopped through ``http_transport.engine_scope`` when the
        session is closed. If the engine exits on its own the transport reports
        the closure and the lifecycle manager drops the session.
        """
        async with http_transport.connect() as (read_stream, write_stream):
            task_status.started()
            try:
                with http_transport.engine_scope:
                    await self.app.run(read_stream, write_stream, self.app.create_initialization_options())
            except Exception:
                logger.exception(f"Session {http_transport.session_id} crashed")

    async def _start_transport_server(self, http_transport: StreamableHTTPServerTransport) -> None:
        assert self._task_group is not None
        await self._task_group.start(self._transport_server_task, http_transport)
