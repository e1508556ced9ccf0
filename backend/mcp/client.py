from __future__ import annotations

import json
import logging
import re
import time
import uuid
from typing import Any, Callable
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import httpx

from ..places.models import ToolDefinition
from .config import DEFAULT_MCP_CONFIG, McpConfig

logger = logging.getLogger(__name__)

_SENSITIVE_PARAMS = {"token", "access_token", "api_key", "apikey", "key", "auth", "authorization"}
_SENSITIVE_PARAM_RE = re.compile(
    r"(token|access_token|api_key|apikey|key|auth|authorization)=([^&]+)", re.IGNORECASE
)
_TRANSIENT_STATUS = {502, 503, 504}
_SNIPPET_LENGTH = 500


class McpError(Exception):
    """Base class for remote tool endpoint failures."""


class McpTransportError(McpError):
    pass


class McpHttpError(McpError):
    def __init__(self, status_code: int, body: str = ""):
        super().__init__(f"MCP response not ok (HTTP {status_code})")
        self.status_code = status_code
        self.body = body[:_SNIPPET_LENGTH]


class McpProtocolError(McpError):
    pass


class McpRpcError(McpError):
    def __init__(self, message: str, code: int | None = None):
        super().__init__(message)
        self.code = code


def redact_url(raw_url: str) -> str:
    try:
        parts = urlsplit(raw_url)
        query = [
            (key, "REDACTED" if key.lower() in _SENSITIVE_PARAMS else value)
            for key, value in parse_qsl(parts.query, keep_blank_values=True)
        ]
        return urlunsplit(parts._replace(query=urlencode(query)))
    except ValueError:
        return _SENSITIVE_PARAM_RE.sub(r"\1=REDACTED", raw_url)


def is_likely_sse(text: str, content_type: str) -> bool:
    if "text/event-stream" in content_type.lower():
        return True
    trimmed = text.lstrip()
    return trimmed.startswith("event:") or trimmed.startswith("data:")


def extract_json_from_sse(text: str) -> Any:
    """Return the last ``data:`` block of an event stream that parses as JSON."""
    last_json: Any = None
    found = False
    for block in re.split(r"\n\n+", text.replace("\r\n", "\n")):
        data_lines = [
            line.rstrip()[len("data:"):].removeprefix(" ")
            for line in block.split("\n")
            if line.rstrip().startswith("data:")
        ]
        payload = "\n".join(data_lines).strip()
        if not payload:
            continue
        try:
            last_json = json.loads(payload)
            found = True
        except json.JSONDecodeError:
            continue
    if not found:
        raise McpProtocolError("MCP SSE contained no JSON payload")
    return last_json


class McpClient:
    """JSON-RPC client for the remote places tool endpoint."""

    def __init__(
        self,
        config: McpConfig = DEFAULT_MCP_CONFIG,
        http_client: httpx.Client | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.config = config
        self._http = http_client or httpx.Client(timeout=config.timeout)
        self._sleep = sleep

    @property
    def is_configured(self) -> bool:
        return self.config.is_configured

    def _headers(self) -> dict[str, str]:
        headers = {
            "accept": "application/json, text/event-stream",
            "content-type": "application/json",
            "x-api-key": self.config.api_key,
        }
        if self.config.api_key:
            headers["authorization"] = f"Bearer {self.config.api_key}"
        return headers

    def _send(self, payload: dict[str, Any]) -> httpx.Response:
        return self._http.post(
            self.config.url,
            headers=self._headers(),
            content=json.dumps(payload),
            timeout=self.config.timeout,
        )

    def _log_send_failure(self, payload: dict[str, Any], request_id: str, attempt: int, exc: Exception) -> None:
        logger.error(
            "MCP request failed to send (method=%s, request_id=%s, url=%s, attempt=%d): %s",
            payload["method"], request_id, redact_url(self.config.url), attempt, exc,
        )

    def _post(self, payload: dict[str, Any], request_id: str) -> httpx.Response:
        """Send *payload*, retrying once after a transport error or a transient status."""
        try:
            response = self._send(payload)
        except httpx.HTTPError as exc:
            self._log_send_failure(payload, request_id, 1, exc)
        else:
            if response.status_code not in _TRANSIENT_STATUS:
                return response
            logger.warning(
                "MCP transient status %d, retrying (method=%s, request_id=%s)",
                response.status_code, payload["method"], request_id,
            )

        self._sleep(self.config.retry_delay_seconds)
        try:
            return self._send(payload)
        except httpx.HTTPError as exc:
            self._log_send_failure(payload, request_id, 2, exc)
            raise McpTransportError(str(exc) or "MCP request failed to send") from exc

    def request(self, method: str, params: dict[str, Any] | None = None) -> Any:
        """Send one JSON-RPC request and return its ``result``.

        Raises an ``McpError`` subclass for every failure mode.
        """
        if not self.is_configured:
            raise McpTransportError("MCP endpoint is not configured")

        request_id = uuid.uuid4().hex
        payload = {"jsonrpc": "2.0", "id": request_id, "method": method, "params": params or {}}
        logger.debug("MCP request started (method=%s, request_id=%s)", method, request_id)

        response = self._post(payload, request_id)
        text = response.text
        if not response.is_success:
            logger.error(
                "MCP response not ok (method=%s, request_id=%s, status=%d, url=%s): %s",
                method, request_id, response.status_code, redact_url(self.config.url),
                text[:_SNIPPET_LENGTH],
            )
            raise McpHttpError(response.status_code, text)

        content_type = response.headers.get("content-type", "")
        try:
            data = extract_json_from_sse(text) if is_likely_sse(text, content_type) else json.loads(text)
        except (json.JSONDecodeError, McpProtocolError) as exc:
            logger.error(
                "MCP response parse failed (method=%s, request_id=%s, content_type=%s): %s",
                method, request_id, content_type, text[:200],
            )
            raise McpProtocolError(f"MCP response parse failed: {exc}") from exc

        if not isinstance(data, dict):
            raise McpProtocolError("MCP response invalid payload")

        error = data.get("error")
        if error:
            message = error.get("message") if isinstance(error, dict) else str(error)
            code = error.get("code") if isinstance(error, dict) else None
            logger.error("MCP response error (method=%s, request_id=%s): %s", method, request_id, message)
            raise McpRpcError(message or "MCP response error", code=code)

        if "result" not in data:
            raise McpProtocolError("MCP response missing result")

        logger.debug("MCP request completed (method=%s, request_id=%s)", method, request_id)
        return data["result"]

    def list_tools(self) -> list[ToolDefinition]:
        result = self.request("tools/list")
        raw_tools = result.get("tools") if isinstance(result, dict) else None
        if not isinstance(raw_tools, list):
            raise McpProtocolError("tools/list result has no tools array")
        tools: list[ToolDefinition] = []
        for raw in raw_tools:
            if not isinstance(raw, dict) or not isinstance(raw.get("name"), str) or not raw["name"]:
                continue
            schema = raw.get("inputSchema")
            tools.append(ToolDefinition(
                name=raw["name"],
                description=raw.get("description") if isinstance(raw.get("description"), str) else None,
                input_schema=schema if isinstance(schema, dict) else {},
            ))
        return tools

    def call_tool(self, name: str, arguments: dict[str, Any]) -> Any:
        return self.request("tools/call", {"name": name, "arguments": arguments})

    def close(self) -> None:
        self._http.close()
