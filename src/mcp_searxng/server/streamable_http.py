"""
StreamableHTTP Server Transport Module

This module implements the per-session half of the HTTP gateway: one
transport object carries one session's traffic between HTTP requests and the
protocol engine.

POST requests carry a single JSON-RPC message and are answered with the
matching JSON-RPC response. A GET request opens a Server-Sent Events stream on
which every other server message (notifications, server-initiated requests)
is pushed in the order the engine produced it.
"""

import logging
from collections.abc import AsyncGenerator, AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import anyio
from anyio.streams.memory import MemoryObjectReceiveStream, MemoryObjectSendStream
from pydantic import ValidationError
from sse_starlette import EventSourceResponse
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.types import Send

from mcp_searxng.server.models import ReadStream, ReadStreamWriter, WriteStream, create_engine_streams
from mcp_searxng.types import (
    INTERNAL_ERROR,
    INVALID_REQUEST,
    SESSION_ERROR,
    JSONRPCErrorResponse,
    JSONRPCMessage,
    JSONRPCRequest,
    JSONRPCResultResponse,
    RequestId,
    dump_message,
    jsonrpc_message_adapter,
)

logger = logging.getLogger(__name__)

SESSION_ID_HEADER = "session-id"

CONTENT_TYPE_JSON = "application/json"
CONTENT_TYPE_SSE = "text/event-stream"

# Notifications queued for the push channel before the engine is back-pressured
PUSH_BUFFER_SIZE = 100


def jsonrpc_error_response(
    message: str,
    *,
    code: int = SESSION_ERROR,
    status_code: int = 400,
    request_id: RequestId | None = None,
    headers: dict[str, str] | None = None,
) -> Response:
    """Build an HTTP response whose body is a JSON-RPC error object."""
    return JSONResponse(
        {
            "jsonrpc": "2.0",
            "error": {"code": code, "message": message},
            "id": request_id,
        },
        status_code=status_code,
        headers=headers,
    )


def accepts(request: Request, media_type: str) -> bool:
    """Check the Accept header; a missing header accepts everything."""
    accept = request.headers.get("accept")
    if not accept:
        return True
    accepted = {part.split(";", 1)[0].strip().lower() for part in accept.split(",")}
    return bool(accepted & {media_type, "*/*", media_type.split("/", 1)[0] + "/*"})


class StreamableHTTPServerTransport:
    """
    HTTP transport bound to exactly one gateway session.

    The transport is connected to a protocol engine through :meth:`connect`.
    When its channel closes for a reason other than :meth:`terminate` (the
    engine exits or the client drops the push stream) the transport puts its
    session id on ``closed_events`` so that the owner of the session can
    clean up.
    """

    _read_stream_writer: ReadStreamWriter | None
    # Response streams of POST requests waiting for the engine, keyed by request id
    _pending: dict[RequestId, MemoryObjectSendStream[JSONRPCMessage]]

    def __init__(
        self,
        session_id: str,
        closed_events: MemoryObjectSendStream[str] | None = None,
        push_buffer_size: int = PUSH_BUFFER_SIZE,
    ):
        """
        Initialize a new StreamableHTTP server transport.

        Args:
            session_id: Identifier of the session this transport serves
            closed_events: Stream on which the session id is announced when
                           the channel closes on its own
            push_buffer_size: Capacity of the push channel queue
        """
        self.session_id = session_id
        self._closed_events = closed_events
        self._read_stream_writer = None
        self._pending = {}

        self._push_writer: MemoryObjectSendStream[JSONRPCMessage]
        self._push_reader: MemoryObjectReceiveStream[JSONRPCMessage]
        self._push_writer, self._push_reader = anyio.create_memory_object_stream[JSONRPCMessage](push_buffer_size)
        self._push_open = False

        self.engine_scope = anyio.CancelScope()
        self._terminated = False
        self._closure_reported = False

    @property
    def is_terminated(self) -> bool:
        return self._terminated

    @property
    def push_channel_open(self) -> bool:
        return self._push_open

    @property
    def _session_headers(self) -> dict[str, str]:
        return {SESSION_ID_HEADER: self.session_id}

    async def handle_post(self, request: Request, payload: Any, send: Send) -> None:
        """
        Hand one decoded JSON-RPC message to the engine and answer the POST.

        Requests are answered with their JSON-RPC response (200); notifications
        and responses are accepted with 202.

        Args:
            request: Starlette Request object
            payload: The already decoded JSON body
            send: ASGI send function
        """
        writer = self._read_stream_writer
        if self._terminated or writer is None:
            response = jsonrpc_error_response("Bad Request: Invalid or missing session ID")
            await response(request.scope, request.receive, send)
            return

        if not accepts(request, CONTENT_TYPE_JSON):
            response = Response(
                "Not Acceptable: Client must accept application/json",
                status_code=406,
                headers=self._session_headers,
            )
            await response(request.scope, request.receive, send)
            return

        try:
            message = jsonrpc_message_adapter.validate_python(payload)
        except ValidationError as e:
            response = jsonrpc_error_response(
                f"Invalid Request: {e}",
                code=INVALID_REQUEST,
                headers=self._session_headers,
            )
            await response(request.scope, request.receive, send)
            return

        if not isinstance(message, JSONRPCRequest):
            try:
                await writer.send(message)
            except (anyio.BrokenResourceError, anyio.ClosedResourceError):
                logger.debug(f"Session {self.session_id} closed while accepting {message}")
            response = Response("Accepted", status_code=202, headers=self._session_headers)
            await response(request.scope, request.receive, send)
            return

        response = await self._exchange(message, writer)
        await response(request.scope, request.receive, send)

    async def _exchange(self, message: JSONRPCRequest, writer: ReadStreamWriter) -> Response:
        request_id = message.id
        if request_id in self._pending:
            return jsonrpc_error_response(
                f"Invalid Request: request id {message.id!r} is already in flight",
                code=INVALID_REQUEST,
                request_id=message.id,
                headers=self._session_headers,
            )

        response_writer, response_reader = anyio.create_memory_object_stream[JSONRPCMessage](1)
        self._pending[request_id] = response_writer
        try:
            async with response_reader:
                await writer.send(message)
                result = await response_reader.receive()
        except (anyio.EndOfStream, anyio.BrokenResourceError, anyio.ClosedResourceError):
            logger.info(f"Session {self.session_id} closed before request {message.id!r} was answered")
            return jsonrpc_error_response(
                "Session terminated before a response was produced",
                code=INTERNAL_ERROR,
                status_code=503,
                request_id=message.id,
                headers=self._session_headers,
            )
        finally:
            self._pending.pop(request_id, None)

        return JSONResponse(dump_message(result), status_code=200, headers=self._session_headers)

    async def handle_get(self, request: Request, send: Send) -> None:
        """
        Open the push channel: a long-lived SSE stream of server messages.

        Only one push channel may be open per session. The call returns when
        the client disconnects or the transport is terminated.
        """
        if self._terminated:
            response = Response("Invalid or missing session ID", status_code=400)
            await response(request.scope, request.receive, send)
            return

        if not accepts(request, CONTENT_TYPE_SSE):
            response = Response(
                "Not Acceptable: Client must accept text/event-stream",
                status_code=406,
                headers=self._session_headers,
            )
            await response(request.scope, request.receive, send)
            return

        if self._push_open:
            response = Response(
                "Conflict: Only one push stream is allowed per session",
                status_code=409,
                headers=self._session_headers,
            )
            await response(request.scope, request.receive, send)
            return

        self._push_open = True
        logger.debug(f"Opening push channel for session {self.session_id}")

        headers = {
            "Cache-Control": "no-cache, no-transform",
            "Connection": "keep-alive",
            **self._session_headers,
        }
        response = EventSourceResponse(content=self._push_events(), headers=headers)
        try:
            await response(request.scope, request.receive, send)
        finally:
            self._push_open = False
            if not self._terminated:
                logger.info(f"Push channel for session {self.session_id} disconnected")
                self._report_closed()

    async def _push_events(self) -> AsyncIterator[dict[str, str]]:
        try:
            async for message in self._push_reader:
                yield {
                    "event": "message",
                    "data": message.model_dump_json(by_alias=True, exclude_none=True),
                }
        except anyio.ClosedResourceError:
            pass

    async def _push(self, message: JSONRPCMessage) -> None:
        if not self._push_open:
            logger.debug(f"No push channel open for session {self.session_id}, dropping {message}")
            return
        try:
            await self._push_writer.send(message)
        except (anyio.BrokenResourceError, anyio.ClosedResourceError):
            logger.debug(f"Push channel for session {self.session_id} closed, dropping {message}")

    async def _route(self, message: JSONRPCMessage) -> None:
        if isinstance(message, JSONRPCResultResponse | JSONRPCErrorResponse) and message.id is not None:
            target = self._pending.get(message.id)
            if target is None:
                logger.warning(f"No pending request {message.id!r} in session {self.session_id}")
                return
            try:
                await target.send(message)
            except (anyio.BrokenResourceError, anyio.ClosedResourceError):
                # The POST that was waiting for this response has gone away
                self._pending.pop(message.id, None)
            return

        await self._push(message)

    async def terminate(self) -> None:
        """
        Close the channel: abandon waiting POSTs, end the push stream and stop the engine.

        Safe to call more than once.
        """
        if self._terminated:
            return
        self._terminated = True
        logger.debug(f"Terminating transport for session {self.session_id}")

        self._push_writer.close()
        for stream in list(self._pending.values()):
            await stream.aclose()
        self._pending.clear()
        if self._read_stream_writer is not None:
            await self._read_stream_writer.aclose()
        self.engine_scope.cancel()

    def _report_closed(self) -> None:
        if self._terminated or self._closure_reported or self._closed_events is None:
            return
        self._closure_reported = True
        try:
            self._closed_events.send_nowait(self.session_id)
        except (anyio.BrokenResourceError, anyio.ClosedResourceError, anyio.WouldBlock):
            logger.debug(f"Could not report closure of session {self.session_id}")

    @asynccontextmanager
    async def connect(self) -> AsyncGenerator[tuple[ReadStream, WriteStream], None]:
        """
        Context manager that provides read and write streams for the protocol engine.

        Leaving the context counts as channel closure unless the transport was
        terminated first.

        Yields:
            Tuple of (read_stream, write_stream) for bidirectional communication
        """
        read_stream_writer, read_stream, write_stream, write_stream_reader = create_engine_streams()
        self._read_stream_writer = read_stream_writer

        async def message_router():
            async with write_stream_reader:
                async for message in write_stream_reader:
                    await self._route(message)

        async with anyio.create_task_group() as tg:
            tg.start_soon(message_router)
            try:
                yield read_stream, write_stream
            finally:
                for stream in list(self._pending.values()):
                    await stream.aclose()
                self._pending.clear()
                await read_stream_writer.aclose()
                await read_stream.aclose()
                await write_stream.aclose()
                self._push_writer.close()
                self._read_stream_writer = None
                self._report_closed()
