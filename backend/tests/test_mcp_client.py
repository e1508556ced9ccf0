from __future__ import annotations

import json

import httpx
import pytest

from backend.mcp.client import (
    McpClient,
    McpHttpError,
    McpProtocolError,
    McpRpcError,
    McpTransportError,
    extract_json_from_sse,
    is_likely_sse,
    redact_url,
)
from backend.mcp.config import McpConfig

CONFIG = McpConfig(url="https://mcp.example.com/mcp?api_key=secret", api_key="test-key", retry_delay_seconds=0)


def _client(handler, config: McpConfig = CONFIG) -> tuple[McpClient, list[float]]:
    sleeps: list[float] = []
    http = httpx.Client(transport=httpx.MockTransport(handler))
    return McpClient(config, http_client=http, sleep=sleeps.append), sleeps


def _rpc(result) -> httpx.Response:
    return httpx.Response(200, json={"jsonrpc": "2.0", "id": "1", "result": result})


def test_request_sends_jsonrpc_envelope_and_headers():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["body"] = json.loads(request.content)
        seen["headers"] = request.headers
        return _rpc({"tools": []})

    client, _ = _client(handler)
    client.request("tools/list")

    assert seen["body"]["jsonrpc"] == "2.0"
    assert seen["body"]["method"] == "tools/list"
    assert seen["body"]["params"] == {}
    assert seen["body"]["id"]
    assert seen["headers"]["x-api-key"] == "test-key"
    assert seen["headers"]["authorization"] == "Bearer test-key"
    assert "text/event-stream" in seen["headers"]["accept"]


def test_no_bearer_header_without_key():
    seen = {}

    def handler(request):
        seen["headers"] = request.headers
        return _rpc({"tools": []})

    client, _ = _client(handler, McpConfig(url="https://mcp.example.com/mcp", api_key=""))
    client.request("tools/list")

    assert "authorization" not in seen["headers"]


def test_list_tools_parses_definitions_and_skips_nameless():
    def handler(request):
        return _rpc({"tools": [
            {"name": "GOOGLE_MAPS_TEXT_SEARCH", "inputSchema": {"properties": {"textQuery": {}}}},
            {"description": "no name"},
            {"name": "BROKEN_SCHEMA", "inputSchema": "nope"},
        ]})

    client, _ = _client(handler)
    tools = client.list_tools()

    assert [t.name for t in tools] == ["GOOGLE_MAPS_TEXT_SEARCH", "BROKEN_SCHEMA"]
    assert tools[0].property_names == ["textQuery"]
    assert tools[1].property_names == []


def test_call_tool_sends_name_and_arguments():
    seen = {}

    def handler(request):
        seen["params"] = json.loads(request.content)["params"]
        return _rpc({"content": []})

    client, _ = _client(handler)
    client.call_tool("GOOGLE_MAPS_TEXT_SEARCH", {"textQuery": "noodles"})

    assert seen["params"] == {"name": "GOOGLE_MAPS_TEXT_SEARCH", "arguments": {"textQuery": "noodles"}}


def test_sse_response_is_decoded():
    body = (
        "event: message\n"
        'data: {"jsonrpc": "2.0", "id": "1", "result": {"tools": [{"name": "geocode"}]}}\n\n'
    )

    def handler(request):
        return httpx.Response(200, text=body, headers={"content-type": "text/event-stream"})

    client, _ = _client(handler)

    assert [t.name for t in client.list_tools()] == ["geocode"]


def test_transient_status_retried_once():
    calls = []

    def handler(request):
        calls.append(request)
        if len(calls) == 1:
            return httpx.Response(503, text="unavailable")
        return _rpc({"tools": []})

    client, sleeps = _client(handler)

    assert client.request("tools/list") == {"tools": []}
    assert len(calls) == 2
    assert sleeps == [0]


def test_persistent_transient_status_raises_http_error():
    def handler(request):
        return httpx.Response(502, text="bad gateway")

    client, sleeps = _client(handler)

    with pytest.raises(McpHttpError) as excinfo:
        client.request("tools/list")
    assert excinfo.value.status_code == 502
    assert len(sleeps) == 1


def test_client_error_not_retried():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(400, text="x" * 1000)

    client, _ = _client(handler)

    with pytest.raises(McpHttpError) as excinfo:
        client.request("tools/call", {"name": "t", "arguments": {}})
    assert excinfo.value.status_code == 400
    assert len(excinfo.value.body) == 500
    assert len(calls) == 1


def test_transport_error_retried_then_raised():
    calls = []

    def handler(request):
        calls.append(request)
        raise httpx.ConnectError("connection refused", request=request)

    client, _ = _client(handler)

    with pytest.raises(McpTransportError):
        client.request("tools/list")
    assert len(calls) == 2


def test_transport_error_then_success_returns_second_response():
    calls = []

    def handler(request):
        calls.append(request)
        if len(calls) == 1:
            raise httpx.ReadTimeout("timed out", request=request)
        return _rpc({"tools": []})

    client, sleeps = _client(handler)

    assert client.request("tools/list") == {"tools": []}
    assert len(calls) == 2
    assert sleeps == [0]


def test_rpc_error_carries_code():
    def handler(request):
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": "1", "error": {"code": -32601, "message": "Unknown tool"}})

    client, _ = _client(handler)

    with pytest.raises(McpRpcError) as excinfo:
        client.call_tool("missing", {})
    assert excinfo.value.code == -32601
    assert "Unknown tool" in str(excinfo.value)


@pytest.mark.parametrize("body", ["not json", "[1, 2]", '{"jsonrpc": "2.0", "id": "1"}'])
def test_protocol_errors(body):
    def handler(request):
        return httpx.Response(200, text=body, headers={"content-type": "application/json"})

    client, _ = _client(handler)

    with pytest.raises(McpProtocolError):
        client.request("tools/list")


def test_unconfigured_client_raises_without_network():
    def handler(request):
        raise AssertionError("should not be called")

    client, _ = _client(handler, McpConfig(url="", api_key=""))

    assert not client.is_configured
    with pytest.raises(McpTransportError):
        client.request("tools/list")


def test_redact_url_masks_sensitive_params():
    redacted = redact_url("https://mcp.example.com/mcp?api_key=secret&user=me&Token=abc")

    assert "secret" not in redacted
    assert "abc" not in redacted
    assert "user=me" in redacted
    assert redacted.count("REDACTED") == 2


def test_sse_helpers():
    assert is_likely_sse("data: {}", "application/json")
    assert is_likely_sse("{}", "text/event-stream; charset=utf-8")
    assert not is_likely_sse('{"a": 1}', "application/json")

    text = 'data: {"n": 1}\n\ndata: not-json\n\ndata: {"n":\ndata: 2}\n\n'
    assert extract_json_from_sse(text) == {"n": 2}

    with pytest.raises(McpProtocolError):
        extract_json_from_sse("event: ping\n\n")
