from typing import Any

import pytest

from mcp_searxng.server.handshake import is_initialize_request


def test_accepts_well_formed_initialize_request(initialize_payload: dict[str, Any]):
    assert is_initialize_request(initialize_payload)


def test_accepts_string_request_id(initialize_payload: dict[str, Any]):
    assert is_initialize_request({**initialize_payload, "id": "init-1"})


@pytest.mark.parametrize(
    "payload",
    [
        None,
        "initialize",
        {"type": "initialize"},
        {"jsonrpc": "2.0", "id": 1, "method": "tools/list"},
        {"jsonrpc": "2.0", "method": "notifications/initialized"},
    ],
)
def test_rejects_non_initialize_payloads(payload: Any):
    assert not is_initialize_request(payload)


def test_rejects_initialize_notification(initialize_payload: dict[str, Any]):
    notification = {key: value for key, value in initialize_payload.items() if key != "id"}
    assert not is_initialize_request(notification)


def test_rejects_batch_containing_initialize(initialize_payload: dict[str, Any]):
    assert not is_initialize_request([initialize_payload])


def test_rejects_wrong_jsonrpc_version(initialize_payload: dict[str, Any]):
    assert not is_initialize_request({**initialize_payload, "jsonrpc": "1.0"})


def test_rejects_initialize_without_client_info(initialize_payload: dict[str, Any]):
    params = {key: value for key, value in initialize_payload["params"].items() if key != "clientInfo"}
    assert not is_initialize_request({**initialize_payload, "params": params})


def test_check_does_not_modify_payload(initialize_payload: dict[str, Any]):
    before = repr(initialize_payload)
    is_initialize_request(initialize_payload)
    assert repr(initialize_payload) == before
