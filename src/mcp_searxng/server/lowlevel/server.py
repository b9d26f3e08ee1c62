"""
Protocol Engine Module

This module provides the JSON-RPC dispatcher that answers MCP requests for one
connected client. A transport hands the engine a pair of memory object
streams; the engine reads client messages from one and writes responses and
notifications to the other.

Usage:
1. Create a Server instance:
   server = Server("your_server_name", "1.0.0")

2. Define request handlers using decorators:
   @server.list_tools()
   async def handle_list_tools() -> list[types.Tool]:
       # Implementation

   @server.call_tool()
   async def handle_call_tool(name: str, arguments: dict[str, Any]) -> list[types.TextContent]:
       # Implementation

3. Run the server over a transport:
   async def main():
       async with stdio_server() as (read_stream, write_stream):
           await server.run(read_stream, write_stream)

   anyio.run(main)

``initialize`` and ``ping`` are always answered by the engine itself.
"""

from __future__ import annotations as _annotations

import contextvars
import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from typing import Any

import anyio
from pydantic import BaseModel, ValidationError

from mcp_searxng import types
from mcp_searxng.exceptions import McpError
from mcp_searxng.server.models import InitializationOptions, ReadStream, WriteStream
from mcp_searxng.server.session import InitializationState, ServerSession

logger = logging.getLogger(__name__)

RequestHandler = Callable[[dict[str, Any] | None], Awaitable[BaseModel | dict[str, Any]]]
NotificationHandler = Callable[[dict[str, Any] | None], Awaitable[None]]


@dataclass
class RequestContext:
    request_id: types.RequestId
    session: ServerSession


request_ctx: contextvars.ContextVar[RequestContext] = contextvars.ContextVar("request_ctx")


def _parse_params(model: type[types.MCPModel], params: dict[str, Any] | None) -> Any:
    try:
        return model.model_validate(params or {})
    except ValidationError as err:
        raise McpError(types.ErrorData(code=types.INVALID_PARAMS, message=f"Invalid params: {err}")) from err


class Server:
    def __init__(
        self,
        name: str,
        version: str | None = None,
        instructions: str | None = None,
    ):
        self.name = name
        self.version = version
        self.instructions = instructions
        self.request_handlers: dict[str, RequestHandler] = {
            "ping": _ping_handler,
        }
        self.notification_handlers: dict[str, NotificationHandler] = {}
        logger.debug("Initializing server %r", name)

    def create_initialization_options(self) -> InitializationOptions:
        return InitializationOptions(
            server_name=self.name,
            server_version=self.version or "unknown",
            capabilities=self.get_capabilities(),
            instructions=self.instructions,
        )

    def get_capabilities(self) -> types.ServerCapabilities:
        """Convert existing handlers to a ServerCapabilities object."""
        tools = {} if "tools/list" in self.request_handlers else None
        resources = {} if "resources/list" in self.request_handlers else None
        logging_capability = {} if "logging/setLevel" in self.request_handlers else None
        return types.ServerCapabilities(tools=tools, resources=resources, logging=logging_capability)

    @property
    def request_context(self) -> RequestContext:
        """If called outside of a request context, this will raise a LookupError."""
        return request_ctx.get()

    def list_tools(self):
        def decorator(func: Callable[[], Awaitable[list[types.Tool]]]):
            logger.debug("Registering handler for tools/list")

            async def handler(params: dict[str, Any] | None):
                tools = await func()
                return {"tools": [tool.dump() for tool in tools]}

            self.request_handlers["tools/list"] = handler
            return func

        return decorator

    def call_tool(self):
        def decorator(
            func: Callable[
                [str, dict[str, Any]],
                Awaitable[Iterable[types.TextContent] | types.CallToolResult],
            ],
        ):
            logger.debug("Registering handler for tools/call")

            async def handler(params: dict[str, Any] | None):
                req = _parse_params(types.CallToolRequestParams, params)
                try:
                    results = await func(req.name, req.arguments or {})
                except McpError:
                    raise
                except Exception as e:
                    logger.debug("Tool %s failed: %s", req.name, e)
                    return self._make_error_result(str(e))

                if isinstance(results, types.CallToolResult):
                    return results
                return types.CallToolResult(content=list(results))

            self.request_handlers["tools/call"] = handler
            return func

        return decorator

    def _make_error_result(self, error_message: str) -> types.CallToolResult:
        """Create an error CallToolResult."""
        return types.CallToolResult(
            content=[types.TextContent(text=error_message)],
            is_error=True,
        )

    def list_resources(self):
        def decorator(func: Callable[[], Awaitable[list[types.Resource]]]):
            logger.debug("Registering handler for resources/list")

            async def handler(params: dict[str, Any] | None):
                resources = await func()
                return {"resources": [resource.dump() for resource in resources]}

            self.request_handlers["resources/list"] = handler
            return func

        return decorator

    def read_resource(self):
        def decorator(func: Callable[[str], Awaitable[Iterable[types.TextResourceContents]]]):
            logger.debug("Registering handler for resources/read")

            async def handler(params: dict[str, Any] | None):
                req = _parse_params(types.ReadResourceRequestParams, params)
                contents = await func(req.uri)
                return {"contents": [content.dump() for content in contents]}

            self.request_handlers["resources/read"] = handler
            return func

        return decorator

    def set_logging_level(self):
        def decorator(func: Callable[[types.LoggingLevel], Awaitable[None]]):
            logger.debug("Registering handler for logging/setLevel")

            async def handler(params: dict[str, Any] | None):
                req = _parse_params(types.SetLevelRequestParams, params)
                self.request_context.session.set_log_level(req.level)
                await func(req.level)
                return {}

            self.request_handlers["logging/setLevel"] = handler
            return func

        return decorator

    async def run(
        self,
        read_stream: ReadStream,
        write_stream: WriteStream,
        initialization_options: InitializationOptions | None = None,
        # When False, exceptions are returned as messages to the client.
        # When True, exceptions are raised, which will cause the server to shut down
        # but also make tracing exceptions much easier during testing.
        raise_exceptions: bool = False,
    ) -> None:
        session = ServerSession(write_stream, initialization_options or self.create_initialization_options())

        async with anyio.create_task_group() as tg:
            async for message in read_stream:
                logger.debug("Received message: %s", message)
                tg.start_soon(self._handle_message, message, session, raise_exceptions)

    async def _handle_message(
        self,
        message: types.JSONRPCMessage | Exception,
        session: ServerSession,
        raise_exceptions: bool = False,
    ) -> None:
        match message:
            case types.JSONRPCRequest():
                await self._handle_request(message, session, raise_exceptions)
            case types.JSONRPCNotification():
                await self._handle_notification(message, session)
            case types.JSONRPCResultResponse() | types.JSONRPCErrorResponse():
                logger.warning("Ignoring unexpected response from client: %s", message)
            case Exception():
                logger.error(f"Received exception from stream: {message}")
                await session.send_log_message(
                    level="error",
                    data="Internal Server Error",
                    logger="mcp_searxng.server.exception_handler",
                )
                if raise_exceptions:
                    raise message

    async def _handle_request(
        self,
        req: types.JSONRPCRequest,
        session: ServerSession,
        raise_exceptions: bool,
    ) -> None:
        logger.info("Processing request %s", req.method)

        if req.method == "initialize":
            try:
                params = _parse_params(types.InitializeRequestParams, req.params)
            except McpError as err:
                await session.send_error(req.id, err.error)
                return
            await session.send_response(req.id, session.initialize(params).dump())
            return

        if session.initialization_state is InitializationState.NotInitialized and req.method != "ping":
            await session.send_error(
                req.id,
                types.ErrorData(
                    code=types.INVALID_REQUEST,
                    message="Received request before initialization was complete",
                ),
            )
            return

        handler = self.request_handlers.get(req.method)
        if handler is None:
            await session.send_error(
                req.id,
                types.ErrorData(code=types.METHOD_NOT_FOUND, message="Method not found"),
            )
            return

        logger.debug("Dispatching request %s", req.method)
        token = request_ctx.set(RequestContext(req.id, session))
        response: dict[str, Any] | types.ErrorData | None = None
        try:
            with anyio.CancelScope() as scope:
                session.track_request(req.id, scope)
                result = await handler(req.params)
                response = result.dump() if isinstance(result, types.MCPModel) else result
        except McpError as err:
            response = err.error
        except Exception as err:
            if raise_exceptions:
                raise err
            logger.exception("Request %s failed", req.method)
            response = types.ErrorData(code=types.INTERNAL_ERROR, message=str(err))
        finally:
            session.untrack_request(req.id)
            request_ctx.reset(token)

        if response is None:
            logger.info("Request %s cancelled - response suppressed", req.id)
            return
        if isinstance(response, types.ErrorData):
            await session.send_error(req.id, response)
        else:
            await session.send_response(req.id, response)

        logger.debug("Response sent")

    async def _handle_notification(self, notify: types.JSONRPCNotification, session: ServerSession) -> None:
        match notify.method:
            case "notifications/initialized":
                session.mark_initialized()
            case "notifications/cancelled":
                request_id = (notify.params or {}).get("requestId")
                if request_id is not None and session.cancel_request(request_id):
                    logger.debug("Cancelled request %s", request_id)

        if handler := self.notification_handlers.get(notify.method):
            logger.debug("Dispatching notification %s", notify.method)
            try:
                await handler(notify.params)
            except Exception:
                logger.exception("Uncaught exception in notification handler")


async def _ping_handler(params: dict[str, Any] | None) -> dict[str, Any]:
    return {}
