from __future__ import annotations

import logging
from typing import Any

from ..mcp.client import McpClient, McpError
from ..mcp.result_parser import extract_places_array, resolve_payload
from ..mcp.tool_resolver import ToolRegistry
from .arguments import build_geocode_args, build_place_details_args
from .models import GeocodeResult, NormalizedPlace
from .normalize import extract_address, extract_point, normalize_place

logger = logging.getLogger(__name__)


def _first_record(payload: Any) -> dict[str, Any] | None:
    places = extract_places_array(payload)
    if places:
        return places[0]
    if isinstance(payload, dict):
        for key in ("result", "place", "data"):
            if isinstance(payload.get(key), dict):
                return payload[key]
        return payload
    return None


def geocode_location(text: str, client: McpClient, registry: ToolRegistry) -> GeocodeResult | None:
    """Resolve a free-text location to coordinates. None on any failure."""
    if not text.strip() or not client.is_configured:
        return None
    tool = registry.resolve().geocode
    if tool is None:
        logger.info("No geocode tool advertised")
        return None
    try:
        result = client.call_tool(tool.name, build_geocode_args(tool, text.strip()))
    except McpError:
        logger.error("MCP geocode failed for %r", text, exc_info=True)
        return None

    payload, _ = resolve_payload(result)
    record = _first_record(payload)
    point = extract_point(record) if record else None
    if point is None:
        return None
    return GeocodeResult(lat=point.lat, lng=point.lng, formatted_address=extract_address(record))


def get_place_details(place_id: str, client: McpClient, registry: ToolRegistry) -> NormalizedPlace | None:
    if not place_id.strip() or not client.is_configured:
        return None
    tool = registry.resolve().place_details
    if tool is None:
        logger.info("No place details tool advertised")
        return None
    try:
        result = client.call_tool(tool.name, build_place_details_args(tool, place_id))
    except McpError:
        logger.error("MCP place details failed for %s", place_id, exc_info=True)
        return None

    payload, _ = resolve_payload(result)
    record = _first_record(payload)
    return normalize_place(record) if record else None
