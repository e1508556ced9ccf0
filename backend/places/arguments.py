"""
Schema-driven argument building for remote search tools.

The remote tool schemas are versioned independently of this code, so each
semantic parameter is mapped onto whatever property name the schema declares.
Every parameter has an ordered table of candidate names; the first candidate
that is a case-insensitive substring of a declared property wins.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Sequence

from .food_filter import (
    DEFAULT_EXCLUDED_TYPES,
    build_food_included_types,
    build_food_text_search_query,
    normalize_included_types,
)
from .models import GeoPoint, ToolDefinition

LAT_KEYS = ("lat", "latitude")
LNG_KEYS = ("lng", "lon", "longitude")
RADIUS_KEYS = ("radius", "radius_m", "distance")
KEYWORD_KEYS = ("textquery", "searchterm", "text", "search")
QUERY_KEYS = ("query", "text", "input", "search")
LOCATION_KEYS = ("location", "near", "bias")
LOCATION_BIAS_KEYS = ("locationbias", "location_bias")
RANK_PREFERENCE_KEYS = ("rankpreference", "rank_preference", "rankby", "rank_by")
PAGE_TOKEN_KEYS = ("nextpagetoken", "next_page_token", "pagetoken", "page_token")
MAX_RESULTS_KEYS = ("maxresultcount", "maxresults", "limit")
FIELD_MASK_KEYS = ("fieldmask", "field_mask", "fields")
INCLUDED_TYPES_KEYS = ("includedtypes", "included_types", "includetypes")
EXCLUDED_TYPES_KEYS = ("excludedtypes", "excluded_types", "excludetypes")
GEOCODE_TEXT_KEYS = ("text", "address", "query", "input")
PLACE_ID_KEYS = ("place_id", "placeid", "place", "id")

PLACES_FIELD_MASK = ",".join([
    "places.id",
    "places.displayName",
    "places.formattedAddress",
    "places.location",
    "places.rating",
    "places.userRatingCount",
    "places.googleMapsUri",
    "places.types",
    "places.primaryType",
    "places.primaryTypeDisplayName",
    "places.businessStatus",
])


def match_schema_key(tool: ToolDefinition | None, candidates: Sequence[str]) -> str | None:
    """Return the first declared property matching a candidate, in candidate order."""
    if tool is None:
        return None
    keys = tool.property_names
    lower_keys = [key.lower() for key in keys]
    for candidate in candidates:
        candidate_lower = candidate.lower()
        for key, lower in zip(keys, lower_keys):
            if candidate_lower in lower:
                return key
    return None


def has_schema_property(tool: ToolDefinition | None, name: str) -> bool:
    if tool is None:
        return False
    return any(key.lower() == name.lower() for key in tool.property_names)


def supports_pagination(tool: ToolDefinition | None) -> bool:
    return match_schema_key(tool, PAGE_TOKEN_KEYS) is not None


def supports_max_results(tool: ToolDefinition | None) -> bool:
    return match_schema_key(tool, MAX_RESULTS_KEYS) is not None


def _resolve_keyword_key(tool: ToolDefinition) -> str | None:
    # Exact names win over substring matches ("keyword" vs "keyword_type").
    for exact in ("keyword", "query"):
        if has_schema_property(tool, exact):
            return next(key for key in tool.property_names if key.lower() == exact)
    return match_schema_key(tool, KEYWORD_KEYS)


@dataclass(frozen=True)
class BuiltArgs:
    args: dict[str, Any]
    query: str | None = None
    included_types: list[str] | None = None


def _apply_common(
    tool: ToolDefinition,
    args: dict[str, Any],
    keyword: str | None,
    included_types_override: list[str] | None,
    next_page_token: str | None,
    max_result_count: int | None,
) -> list[str] | None:
    included_key = match_schema_key(tool, INCLUDED_TYPES_KEYS)
    included = normalize_included_types(included_types_override) or build_food_included_types(keyword)
    if included_key and included_key not in args:
        args[included_key] = included

    page_token_key = match_schema_key(tool, PAGE_TOKEN_KEYS)
    if page_token_key and next_page_token:
        args[page_token_key] = next_page_token

    max_results_key = match_schema_key(tool, MAX_RESULTS_KEYS)
    if max_results_key and max_result_count:
        args[max_results_key] = max_result_count

    field_mask_key = match_schema_key(tool, FIELD_MASK_KEYS)
    if field_mask_key:
        args[field_mask_key] = PLACES_FIELD_MASK

    return args.get(included_key) if included_key else None


def build_nearby_args(
    tool: ToolDefinition,
    coords: GeoPoint,
    radius_meters: int,
    keyword: str | None = None,
    next_page_token: str | None = None,
    max_result_count: int | None = None,
    included_types_override: list[str] | None = None,
) -> BuiltArgs:
    """Arguments for a proximity search around *coords*."""
    args: dict[str, Any] = {}
    lat_key = match_schema_key(tool, LAT_KEYS)
    lng_key = match_schema_key(tool, LNG_KEYS)
    radius_key = match_schema_key(tool, RADIUS_KEYS)
    keyword_key = _resolve_keyword_key(tool)

    if has_schema_property(tool, "location") and (not lat_key or not lng_key):
        args["location"] = {"lat": coords.lat, "lng": coords.lng}
    else:
        if lat_key:
            args[lat_key] = coords.lat
        if lng_key:
            args[lng_key] = coords.lng

    if radius_key:
        args[radius_key] = radius_meters

    keyword_value = keyword.strip() if keyword and keyword.strip() else None
    if keyword_key and keyword_value:
        args[keyword_key] = keyword_value

    included = _apply_common(
        tool, args, keyword, included_types_override, next_page_token, max_result_count,
    )

    excluded_key = match_schema_key(tool, EXCLUDED_TYPES_KEYS)
    if excluded_key and excluded_key not in args:
        args[excluded_key] = list(DEFAULT_EXCLUDED_TYPES)

    return BuiltArgs(args=args, query=keyword_value, included_types=included)


def build_text_args(
    tool: ToolDefinition,
    keyword: str,
    coords: GeoPoint | None = None,
    radius_meters: int | None = None,
    location_text: str | None = None,
    query_override: str | None = None,
    next_page_token: str | None = None,
    max_result_count: int | None = None,
    included_types_override: list[str] | None = None,
) -> BuiltArgs:
    """Arguments for a free-text search; returns the synthesized query string too."""
    args: dict[str, Any] = {}
    query_key = match_schema_key(tool, QUERY_KEYS)
    location_bias_key = match_schema_key(tool, LOCATION_BIAS_KEYS)
    location_key = match_schema_key(tool, LOCATION_KEYS)
    lat_key = match_schema_key(tool, LAT_KEYS)
    lng_key = match_schema_key(tool, LNG_KEYS)
    rank_key = match_schema_key(tool, RANK_PREFERENCE_KEYS)

    query = query_override or build_food_text_search_query(keyword, location_text)
    args[query_key or "query"] = query

    included = _apply_common(
        tool, args, keyword, included_types_override, next_page_token, max_result_count,
    )

    # Either a circular bias or raw coordinates, never both.
    if coords is not None and location_bias_key and radius_meters:
        args[location_bias_key] = {
            "circle": {
                "center": {"latitude": coords.lat, "longitude": coords.lng},
                "radius": radius_meters,
            },
        }
    elif coords is not None and (lat_key or lng_key):
        if lat_key:
            args[lat_key] = coords.lat
        if lng_key:
            args[lng_key] = coords.lng
    elif coords is not None and has_schema_property(tool, "location"):
        args["location"] = {"lat": coords.lat, "lng": coords.lng}
    elif location_key and location_key != location_bias_key and location_text:
        args[location_key] = location_text

    if rank_key:
        args[rank_key] = "distance" if "rankby" in rank_key.lower() else "DISTANCE"

    return BuiltArgs(args=args, query=query, included_types=included)


def build_geocode_args(tool: ToolDefinition, text: str) -> dict[str, Any]:
    return {match_schema_key(tool, GEOCODE_TEXT_KEYS) or "text": text}


def build_place_details_args(tool: ToolDefinition, place_id: str) -> dict[str, Any]:
    return {match_schema_key(tool, PLACE_ID_KEYS) or "placeId": place_id}
