from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

from starlette.requests import Request

DEFAULT_MAX_BODY_BYTES = 4 * 1024 * 1024


@dataclass(frozen=True)
class BodyTooLargeError(Exception):
    max_body_bytes: int

    def __str__(self) -> str:
        return f"Payload Too Large: request body exceeds {self.max_body_bytes} bytes"


async def read_json_body(request: Request, *, max_body_bytes: int | None = DEFAULT_MAX_BODY_BYTES) -> Any:
    """Read and decode a JSON request body, refusing to buffer more than ``max_body_bytes``.

    Raises:
        BodyTooLargeError: if the declared or the streamed size exceeds the cap
        json.JSONDecodeError: if the body is not valid JSON
    """
    if max_body_bytes is not None and max_body_bytes <= 0:
        raise ValueError("max_body_bytes must be positive or None")

    declared = request.headers.get("content-length", "")
    if max_body_bytes is not None and declared.isdigit() and int(declared) > max_body_bytes:
        raise BodyTooLargeError(max_body_bytes)

    body = bytearray()
    async for chunk in request.stream():
        body.extend(chunk)
        if max_body_bytes is not None and len(body) > max_body_bytes:
            raise BodyTooLargeError(max_body_bytes)

    return json.loads(body)
