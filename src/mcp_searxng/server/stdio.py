"""Stdio Server Transport Module

Single-session, point-to-point transport: newline-delimited JSON-RPC messages
are read from stdin and written to stdout. There is no session registry on
this path; the process itself is the session.

Example:
    ```python
    async def run_server():
        async with stdio_server() as (read_stream, write_stream):
            await server.run(read_stream, write_stream)

    anyio.run(run_server)
    ```
"""

import logging
import sys
from contextlib import asynccontextmanager
from io import TextIOWrapper
from typing import BinaryIO

import anyio
import anyio.lowlevel
from pydantic import ValidationError

from mcp_searxng.server.models import create_engine_streams
from mcp_searxng.types import jsonrpc_message_adapter

logger = logging.getLogger(__name__)


class _StdioWrapper(TextIOWrapper):
    """UTF-8 text view of a process handle that leaves the handle open on close."""

    def close(self) -> None:
        if not self.closed and self.writable():
            self.flush()


def _open_stdio(binary_stream: BinaryIO) -> anyio.AsyncFile[str]:
    return anyio.wrap_file(_StdioWrapper(binary_stream, encoding="utf-8"))


@asynccontextmanager
async def stdio_server(stdin: anyio.AsyncFile[str] | None = None, stdout: anyio.AsyncFile[str] | None = None):
    """Yield ``(read_stream, write_stream)`` connected to the process' stdin and stdout."""
    if not stdin:
        stdin = _open_stdio(sys.stdin.buffer)
    if not stdout:
        stdout = _open_stdio(sys.stdout.buffer)

    read_stream_writer, read_stream, write_stream, write_stream_reader = create_engine_streams()

    async def stdin_reader():
        try:
            async with read_stream_writer:
                async for line in stdin:
                    if not line.strip():
                        continue
                    try:
                        message = jsonrpc_message_adapter.validate_json(line)
                    except ValidationError as exc:
                        logger.warning(f"Discarding malformed message on stdin: {exc}")
                        await read_stream_writer.send(exc)
                        continue
                    await read_stream_writer.send(message)
        except anyio.ClosedResourceError:
            await anyio.lowlevel.checkpoint()

    async def stdout_writer():
        try:
            async with write_stream_reader:
                async for message in write_stream_reader:
                    await stdout.write(message.model_dump_json(by_alias=True, exclude_none=True) + "\n")
                    await stdout.flush()
        except anyio.ClosedResourceError:
            await anyio.lowlevel.checkpoint()

    async with anyio.create_task_group() as tg:
        tg.start_soon(stdin_reader)
        tg.start_soon(stdout_writer)
        yield read_stream, write_stream
