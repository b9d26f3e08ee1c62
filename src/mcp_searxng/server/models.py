"""
Plumbing shared by the protocol engine and the transports that feed it: the
four ends of an engine's message streams and the options it announces during
the handshake.
"""

from typing import NamedTuple

import anyio
from anyio.streams.memory import MemoryObjectReceiveStream, MemoryObjectSendStream
from pydantic import BaseModel

from mcp_searxng.types import JSONRPCMessage, ServerCapabilities

# Engine side: incoming messages (or parse failures) and outgoing messages
ReadStream = MemoryObjectReceiveStream[JSONRPCMessage | Exception]
WriteStream = MemoryObjectSendStream[JSONRPCMessage]
# Transport side of the same two channels
ReadStreamWriter = MemoryObjectSendStream[JSONRPCMessage | Exception]
WriteStreamReader = MemoryObjectReceiveStream[JSONRPCMessage]


class EngineStreams(NamedTuple):
    read_stream_writer: ReadStreamWriter
    read_stream: ReadStream
    write_stream: WriteStream
    write_stream_reader: WriteStreamReader


def create_engine_streams(max_buffer_size: float = 0) -> EngineStreams:
    """Create the inbound and outbound channels between a transport and an engine."""
    read_stream_writer, read_stream = anyio.create_memory_object_stream[JSONRPCMessage | Exception](max_buffer_size)
    write_stream, write_stream_reader = anyio.create_memory_object_stream[JSONRPCMessage](max_buffer_size)
    return EngineStreams(read_stream_writer, read_stream, write_stream, write_stream_reader)


class InitializationOptions(BaseModel):
    """What the engine reports about itself in the initialize result."""

    server_name: str
    server_version: str
    capabilities: ServerCapabilities
    instructions: str | None = None
