from __future__ import annotations

import json

import pytest
from starlette.requests import Request
from starlette.types import Message

from mcp_searxng.server.http_body import BodyTooLargeError, read_json_body


def make_request(*, body_chunks: list[bytes], headers: dict[str, str] | None = None) -> Request:
    scope = {
        "type": "http",
        "method": "POST",
        "path": "/",
        "query_string": b"",
        "headers": [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()],
    }

    messages: list[Message] = [
        {
            "type": "http.request",
            "body": chunk,
            "more_body": i < len(body_chunks) - 1,
        }
        for i, chunk in enumerate(body_chunks)
    ]

    async def receive() -> Message:
        if messages:
            return messages.pop(0)
        return {"type": "http.request", "body": b"", "more_body": False}

    return Request(scope, receive)


pytestmark = pytest.mark.anyio


async def test_decodes_chunked_json_body():
    request = make_request(body_chunks=[b'{"jsonrpc": "2.0", ', b'"method": "ping"}'])
    assert await read_json_body(request) == {"jsonrpc": "2.0", "method": "ping"}


async def test_limit_can_be_disabled():
    request = make_request(body_chunks=[b'"' + b"x" * 100 + b'"'])
    assert await read_json_body(request, max_body_bytes=None) == "x" * 100


async def test_rejects_non_positive_limit():
    request = make_request(body_chunks=[b"{}"])
    with pytest.raises(ValueError, match="max_body_bytes must be positive or None"):
        await read_json_body(request, max_body_bytes=0)


async def test_rejects_declared_length_over_limit():
    request = make_request(body_chunks=[b"{}"], headers={"content-length": "1000"})
    with pytest.raises(BodyTooLargeError):
        await read_json_body(request, max_body_bytes=10)


async def test_ignores_invalid_content_length_header():
    request = make_request(body_chunks=[b"{}"], headers={"content-length": "not-a-number"})
    assert await read_json_body(request, max_body_bytes=10) == {}


async def test_rejects_streamed_body_over_limit():
    request = make_request(body_chunks=[b"[1,2,", b"3,4,5]"])
    with pytest.raises(BodyTooLargeError) as excinfo:
        await read_json_body(request, max_body_bytes=8)
    assert "8 bytes" in str(excinfo.value)


async def test_invalid_json_raises_decode_error():
    request = make_request(body_chunks=[b"{nope"])
    with pytest.raises(json.JSONDecodeError):
        await read_json_body(request)


async def test_empty_body_is_not_json():
    request = make_request(body_chunks=[b""])
    with pytest.raises(json.JSONDecodeError):
        await read_json_body(request)
