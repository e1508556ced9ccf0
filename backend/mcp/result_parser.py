"""
Interpretation of ``tools/call`` results.

Remote tools answer with a ``content`` list of typed items. Structured output
arrives either as a ``json`` item or as JSON embedded in text items; some
tools only return a numbered plain-text list. Everything here is tolerant:
malformed input yields an empty candidate list, never an exception.
"""
from __future__ import annotations

import json
import re
from typing import Any

from ..places.models import ToolCallResult
from ..places.normalize import coerce_number

_LIST_KEYS = ("results", "places", "candidates", "items", "data")
_STATUS_KEYS = {"statuscode", "status_code", "status", "code"}
_PAGE_TOKEN_KEYS = ("nextPageToken", "next_page_token", "pageToken", "page_token")

_URL_RE = re.compile(r"https?://\S+", re.IGNORECASE)
_NAME_RE = re.compile(r"^\d+\.?\s*([^\-–—(]+?)(?:\s+[\-–—]|\s*\(|$)")
_ADDRESS_RE = re.compile(r"address\s*[:\-]\s*([^,]+)", re.IGNORECASE)
_RATING_RE = re.compile(r"rating\s*[:\-]\s*([\d.]+)", re.IGNORECASE)


def parse_json_from_text(text: str) -> Any | None:
    """Parse *text* as JSON, else its outermost ``{...}``, else its outermost ``[...]``."""
    trimmed = text.strip()
    if not trimmed:
        return None
    try:
        return json.loads(trimmed)
    except json.JSONDecodeError:
        pass

    candidates = []
    start, end = trimmed.find("{"), trimmed.rfind("}")
    if 0 <= start < end:
        candidates.append(trimmed[start:end + 1])
    start, end = trimmed.find("["), trimmed.rfind("]")
    if 0 <= start < end:
        candidates.append(trimmed[start:end + 1])

    for candidate in candidates:
        try:
            return json.loads(candidate)
        except json.JSONDecodeError:
            continue
    return None


def extract_content_text(result: Any) -> list[str]:
    if not isinstance(result, dict) or not isinstance(result.get("content"), list):
        return []
    segments = []
    for item in result["content"]:
        if not isinstance(item, dict):
            continue
        text = item.get("text") if item.get("text") is not None else item.get("content")
        if isinstance(text, str) and text.strip():
            segments.append(text.strip())
    return segments


def resolve_payload(result: Any) -> tuple[Any, str | None]:
    """Return ``(payload, content_text)`` for a raw ``tools/call`` result."""
    if not isinstance(result, dict):
        return result, None
    content = result.get("content")
    if not isinstance(content, list):
        return result, None

    for item in content:
        if isinstance(item, dict) and "json" in item:
            return item["json"], None

    combined = "\n".join(extract_content_text(result)).strip()
    parsed = parse_json_from_text(combined) if combined else None
    if parsed:
        return parsed, combined
    return result, combined or None


def extract_places_array(payload: Any) -> list[dict[str, Any]]:
    if isinstance(payload, list):
        return [item for item in payload if isinstance(item, dict)]
    if not isinstance(payload, dict):
        return []
    for key in _LIST_KEYS:
        value = payload.get(key)
        if isinstance(value, list):
            return [item for item in value if isinstance(item, dict)]
        if isinstance(value, dict) and key == "data":
            nested = extract_places_array(value)
            if nested:
                return nested
    if isinstance(payload.get("result"), dict):
        return extract_places_array(payload["result"])
    return []


def extract_places_from_text(text: str) -> list[dict[str, Any]]:
    """Parse numbered lines like ``1. Name - Address: ..., Rating: 4.5, https://...``."""
    places = []
    for line in (raw.strip() for raw in text.split("\n")):
        if not line:
            continue
        url_match = _URL_RE.search(line)
        name_match = _NAME_RE.search(line)
        address_match = _ADDRESS_RE.search(line)
        rating_match = _RATING_RE.search(line)
        name = name_match.group(1).strip() if name_match else None
        if not name and not url_match and not address_match:
            continue

        place: dict[str, Any] = {"name": name or line}
        if address_match:
            place["address"] = address_match.group(1).strip()
        if rating_match:
            rating = coerce_number(rating_match.group(1))
            if rating is not None:
                place["rating"] = rating
        if url_match:
            place["mapsUrl"] = url_match.group(0)
        places.append(place)
    return places


def extract_successful(result: Any, payload: Any) -> bool | None:
    if isinstance(result, dict) and result.get("isError") is True:
        return False
    for record in (payload, result):
        if not isinstance(record, dict):
            continue
        for key in ("successful", "successfull", "success"):
            if isinstance(record.get(key), bool):
                return record[key]
    return None


def extract_error(payload: Any, content_text: str | None = None) -> str | None:
    if isinstance(payload, dict):
        for key in ("error", "error_message", "message"):
            value = payload.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
            if isinstance(value, dict) and isinstance(value.get("message"), str):
                return value["message"]
    return content_text


def _status_from_record(record: dict[str, Any]) -> int | None:
    for key, value in record.items():
        if key.lower() in _STATUS_KEYS:
            parsed = coerce_number(value)
            if parsed is not None:
                return int(parsed)
    return None


def extract_status_code(payload: Any) -> int | None:
    """Status code on the payload itself, its ``error`` object, or its ``response`` object."""
    if not isinstance(payload, dict):
        return None
    for record in (payload, payload.get("error"), payload.get("response")):
        if isinstance(record, dict):
            status = _status_from_record(record)
            if status is not None:
                return status
    return None


def extract_next_page_token(payload: Any) -> str | None:
    if not isinstance(payload, dict):
        return None
    for key in _PAGE_TOKEN_KEYS:
        value = payload.get(key)
        if isinstance(value, str) and value:
            return value
    if isinstance(payload.get("data"), dict):
        return extract_next_page_token(payload["data"])
    return None


def parse_tool_result(result: Any) -> ToolCallResult:
    payload, content_text = resolve_payload(result)
    places = extract_places_array(payload)
    if not places and content_text:
        parsed = parse_json_from_text(content_text)
        if parsed:
            places = extract_places_array(parsed)
        if not places:
            places = extract_places_from_text(content_text)

    successful = extract_successful(result, payload)
    error = extract_error(payload, content_text) if successful is False else None
    return ToolCallResult(
        places=places,
        successful=successful,
        error=error,
        payload=payload,
        content_text=content_text,
    )
