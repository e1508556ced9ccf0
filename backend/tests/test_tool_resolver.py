from __future__ import annotations

from unittest.mock import MagicMock

from backend.mcp.cache import TTLCache
from backend.mcp.client import McpTransportError
from backend.mcp.config import McpConfig
from backend.mcp.tool_resolver import ToolRegistry, is_unknown_tool_error, resolve_tools
from backend.places.models import ResolvedToolSet, SearchMode, ToolDefinition


def _tool(name: str) -> ToolDefinition:
    return ToolDefinition(name=name, input_schema={"type": "object", "properties": {}})


COMPOSIO_TOOLS = [
    _tool("GOOGLE_MAPS_GEOCODING_API"),
    _tool("GOOGLE_MAPS_NEARBY_SEARCH"),
    _tool("GOOGLE_MAPS_TEXT_SEARCH"),
    _tool("GOOGLE_MAPS_GET_PLACE_DETAILS"),
]


def test_resolves_all_capabilities():
    resolved = resolve_tools(COMPOSIO_TOOLS)

    assert resolved.geocode.name == "GOOGLE_MAPS_GEOCODING_API"
    assert resolved.nearby_search.name == "GOOGLE_MAPS_NEARBY_SEARCH"
    assert resolved.text_search.name == "GOOGLE_MAPS_TEXT_SEARCH"
    assert resolved.place_details.name == "GOOGLE_MAPS_GET_PLACE_DETAILS"


def test_keyword_sets_are_tried_in_priority_order():
    tools = [_tool("maps_search"), _tool("places_nearby")]

    resolved = resolve_tools(tools)

    # ["places", "nearby"] outranks ["maps", "search"]
    assert resolved.nearby_search.name == "places_nearby"


def test_find_place_is_text_search():
    resolved = resolve_tools([_tool("find_place_from_text")])

    assert resolved.text_search.name == "find_place_from_text"
    assert resolved.nearby_search is None


def test_details_fallback_matches_any_details_tool():
    resolved = resolve_tools([_tool("get_details")])

    assert resolved.place_details.name == "get_details"


def test_unrelated_tools_leave_fields_empty():
    resolved = resolve_tools([_tool("send_email"), _tool("weather_forecast")])

    assert resolved.is_empty
    assert resolved.geocode is None
    assert resolved.place_details is None


def test_search_tool_falls_back_to_other_mode():
    text_only = ResolvedToolSet(text_search=_tool("text_search"))
    nearby_only = ResolvedToolSet(nearby_search=_tool("nearby_search"))

    assert text_only.search_tool(SearchMode.nearby) == (text_only.text_search, SearchMode.text)
    assert nearby_only.search_tool(SearchMode.text) == (nearby_only.nearby_search, SearchMode.nearby)


def test_unknown_tool_error_detection():
    assert is_unknown_tool_error("Unknown tool: GOOGLE_MAPS_NEARBY_SEARCH")
    assert is_unknown_tool_error("tool not found")
    assert not is_unknown_tool_error("Invalid place type(s) for includedTypes")
    assert not is_unknown_tool_error(None)


def _registry(list_tools_side_effect=None, tools=None):
    client = MagicMock()
    client.config = McpConfig(url="https://mcp.example.com/mcp", api_key="k")
    client.is_configured = True
    if list_tools_side_effect is not None:
        client.list_tools.side_effect = list_tools_side_effect
    else:
        client.list_tools.return_value = tools
    return client, ToolRegistry(client, TTLCache(ttl=300), TTLCache(ttl=300))


def test_registry_caches_listing_and_resolution():
    client, registry = _registry(tools=COMPOSIO_TOOLS)

    first = registry.resolve()
    second = registry.resolve()

    assert first is second
    assert client.list_tools.call_count == 1


def test_registry_invalidate_forces_refetch():
    client, registry = _registry(tools=COMPOSIO_TOOLS)
    registry.resolve()

    registry.invalidate()
    registry.resolve()

    assert client.list_tools.call_count == 2


def test_registry_listing_failure_is_empty_toolset():
    client, registry = _registry(list_tools_side_effect=McpTransportError("timeout"))

    resolved = registry.resolve()

    assert resolved.is_empty
    assert registry.list_tools() == []


def test_registry_unconfigured_never_calls_remote():
    client, registry = _registry(tools=COMPOSIO_TOOLS)
    client.is_configured = False

    assert registry.resolve().is_empty
    client.list_tools.assert_not_called()
