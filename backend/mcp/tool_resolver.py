from __future__ import annotations

import logging
from typing import Sequence

from ..places.models import ResolvedToolSet, ToolDefinition
from .cache import TTLCache, make_key
from .client import McpClient, McpError

logger = logging.getLogger(__name__)

GEOCODE_KEYWORDS = [["geocode"], ["geo"]]
NEARBY_SEARCH_KEYWORDS = [
    ["nearby", "search"],
    ["places", "nearby"],
    ["maps", "places", "search"],
    ["maps", "search"],
]
TEXT_SEARCH_KEYWORDS = [["text", "search"], ["find", "place"], ["places", "search"]]
PLACE_DETAILS_KEYWORDS = [["place", "details"], ["details", "place"]]

_UNKNOWN_TOOL_MARKERS = ("unknown tool", "tool not found")


def find_tool_by_keywords(
    tools: Sequence[ToolDefinition], keyword_sets: list[list[str]]
) -> ToolDefinition | None:
    """First tool whose lower-cased name contains every keyword of a set, sets tried in order."""
    for keywords in keyword_sets:
        for tool in tools:
            name = tool.name.lower()
            if all(keyword in name for keyword in keywords):
                return tool
    return None


def resolve_tools(tools: Sequence[ToolDefinition]) -> ResolvedToolSet:
    """Map advertised tools onto search capabilities; missing ones stay None."""
    place_details = find_tool_by_keywords(tools, PLACE_DETAILS_KEYWORDS) or next(
        (tool for tool in tools if "details" in tool.name.lower()), None
    )
    return ResolvedToolSet(
        nearby_search=find_tool_by_keywords(tools, NEARBY_SEARCH_KEYWORDS),
        text_search=find_tool_by_keywords(tools, TEXT_SEARCH_KEYWORDS),
        geocode=find_tool_by_keywords(tools, GEOCODE_KEYWORDS),
        place_details=place_details,
    )


def is_unknown_tool_error(message: str | None) -> bool:
    if not message:
        return False
    lower = message.lower()
    return any(marker in lower for marker in _UNKNOWN_TOOL_MARKERS)


class ToolRegistry:
    """Tool listing and resolution, each behind its own TTL cache.

    Both caches are keyed by endpoint URL. Resolution is cached separately
    from the listing so it can be recomputed without a remote fetch.
    """

    def __init__(
        self,
        client: McpClient,
        tools_cache: TTLCache | None = None,
        resolution_cache: TTLCache | None = None,
    ):
        self.client = client
        ttl = client.config.tools_ttl_seconds
        self.tools_cache = tools_cache if tools_cache is not None else TTLCache(ttl=ttl)
        self.resolution_cache = resolution_cache if resolution_cache is not None else TTLCache(ttl=ttl)

    def _key(self) -> str:
        return make_key({"url": self.client.config.url})

    def _fetch_tools(self) -> list[ToolDefinition]:
        try:
            tools = self.client.list_tools()
        except McpError:
            logger.warning("MCP tools/list failed; treating as no tools", exc_info=True)
            return []
        logger.info("MCP tools listed: %s", [tool.name for tool in tools])
        return tools

    def list_tools(self) -> list[ToolDefinition]:
        if not self.client.is_configured:
            return []
        return self.tools_cache.get_or_refresh(self._key(), self._fetch_tools)

    def resolve(self) -> ResolvedToolSet:
        if not self.client.is_configured:
            return ResolvedToolSet()
        return self.resolution_cache.get_or_refresh(
            self._key(), lambda: resolve_tools(self.list_tools())
        )

    def invalidate(self) -> None:
        logger.info("Invalidating MCP tool caches")
        self.tools_cache.invalidate()
        self.resolution_cache.invalidate()

    def cache_stats(self) -> dict:
        return {"tools": self.tools_cache.stats(), "resolution": self.resolution_cache.stats()}
