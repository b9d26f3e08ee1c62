"""Recognition of session-initiating messages."""

from typing import Any

from pydantic import ValidationError

from mcp_searxng.types import JSONRPC_VERSION, InitializeRequest

INITIALIZE_METHOD = "initialize"


def is_initialize_request(payload: Any) -> bool:
    """Return True if ``payload`` is a single, well-formed JSON-RPC ``initialize`` request.

    Batches never start a session, and neither does a request that only
    borrows the method name without valid initialization parameters. A bare
    object such as ``{"type": "initialize"}`` is not a handshake: the message
    must be a JSON-RPC 2.0 request so the engine can answer it. The check has
    no side effects.
    """
    if not isinstance(payload, dict) or payload.get("method") != INITIALIZE_METHOD:
        return False
    if payload.get("jsonrpc") != JSONRPC_VERSION:
        return False
    try:
        InitializeRequest.model_validate(payload)
    except ValidationError:
        return False
    return True
