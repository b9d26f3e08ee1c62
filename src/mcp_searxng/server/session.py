"""
ServerSession Module

This module provides the ServerSession class, which holds the per-connection
protocol state of one engine run: the negotiated client parameters, the
client-selected logging level and the write side of the transport.

Common usage pattern:
```
    server = Server(name)

    @server.call_tool()
    async def handle_tool_call(name: str, arguments: dict[str, Any]) -> list[TextContent]:
        session = server.request_context.session
        await session.send_log_message("info", f"Running {name}")
        ...
```

The ServerSession class is created by ``Server.run`` and should not be
instantiated directly by tool authors.
"""

import logging
from enum import Enum
from typing import Any

import anyio

from mcp_searxng import types
from mcp_searxng.server.models import InitializationOptions, WriteStream

logger = logging.getLogger(__name__)


class InitializationState(Enum):
    NotInitialized = 1
    Initializing = 2
    Initialized = 3


class ServerSession:
    _initialization_state: InitializationState = InitializationState.NotInitialized

    def __init__(self, write_stream: WriteStream, init_options: InitializationOptions) -> None:
        self._write_stream = write_stream
        self._init_options = init_options
        self._log_level: types.LoggingLevel = "info"
        self._in_flight: dict[types.RequestId, anyio.CancelScope] = {}

    @property
    def initialization_state(self) -> InitializationState:
        return self._initialization_state

    @property
    def log_level(self) -> types.LoggingLevel:
        return self._log_level

    def set_log_level(self, level: types.LoggingLevel) -> None:
        self._log_level = level

    def initialize(self, params: types.InitializeRequestParams) -> types.InitializeResult:
        """Start the handshake and build the result for the negotiated protocol version."""
        requested_version = params.protocol_version
        self._initialization_state = InitializationState.Initializing
        return types.InitializeResult(
            protocol_version=requested_version
            if requested_version in types.SUPPORTED_PROTOCOL_VERSIONS
            else types.LATEST_PROTOCOL_VERSION,
            capabilities=self._init_options.capabilities,
            server_info=types.Implementation(
                name=self._init_options.server_name,
                version=self._init_options.server_version,
            ),
            instructions=self._init_options.instructions,
        )

    def mark_initialized(self) -> None:
        if self._initialization_state is InitializationState.NotInitialized:
            logger.warning("Received initialized notification before initialize request")
            return
        self._initialization_state = InitializationState.Initialized

    def should_log(self, level: types.LoggingLevel) -> bool:
        return types.LOGGING_LEVELS.index(level) >= types.LOGGING_LEVELS.index(self._log_level)

    def track_request(self, request_id: types.RequestId, scope: anyio.CancelScope) -> None:
        self._in_flight[request_id] = scope

    def untrack_request(self, request_id: types.RequestId) -> None:
        self._in_flight.pop(request_id, None)

    def cancel_request(self, request_id: types.RequestId) -> bool:
        scope = self._in_flight.get(request_id)
        if scope is None:
            return False
        scope.cancel()
        return True

    async def _send(self, message: types.JSONRPCMessage) -> None:
        try:
            await self._write_stream.send(message)
        except (anyio.ClosedResourceError, anyio.BrokenResourceError):
            logger.debug("Transport closed, dropping outgoing message %s", message)

    async def send_response(self, request_id: types.RequestId, result: dict[str, Any]) -> None:
        await self._send(types.JSONRPCResultResponse(id=request_id, result=result))

    async def send_error(self, request_id: types.RequestId | None, error: types.ErrorData) -> None:
        await self._send(types.JSONRPCErrorResponse(id=request_id, error=error))

    async def send_notification(self, method: str, params: dict[str, Any] | None = None) -> None:
        await self._send(types.JSONRPCNotification(method=method, params=params))

    async def send_log_message(
        self,
        level: types.LoggingLevel,
        data: Any,
        logger: str | None = None,
    ) -> None:
        """Send a log message notification if the client asked for this level."""
        if not self.should_log(level):
            return
        params = types.LoggingMessageNotificationParams(level=level, data=data, logger=logger)
        await self.send_notification("notifications/message", params.dump())
