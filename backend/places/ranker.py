"""
Relevance ranking of raw search candidates.

Two LLM-backed stages, each optional:
1. Cuisine filter: keep only candidates that match the cuisine intent.
2. Reorder: rank the survivors by relevance (behind a feature flag).

Whenever the LLM is disabled, fails, or answers with anything that does not
match the strict response schema, the deterministic path is used instead:
the food-type filter followed by the distance safety net.
"""
from __future__ import annotations

import json
import logging
import math
from typing import Any, Union

from pydantic import BaseModel, ConfigDict, StrictFloat, StrictInt, StrictStr, ValidationError

from ..llm.config import DEFAULT_LLM_CONFIG, LLMConfig
from ..llm.groq_client import CompletionFn, is_available, make_completion
from .config import DEFAULT_SEARCH_CONFIG, SearchConfig
from .food_filter import filter_food_places
from .geo import filter_by_max_distance, haversine_meters
from .models import GeoPoint, RankResult
from .normalize import (
    coerce_number,
    coerce_string,
    extract_address,
    extract_place_id,
    extract_place_types,
    extract_point,
)

logger = logging.getLogger(__name__)

PlaceRecord = dict[str, Any]
RankEntry = Union[StrictStr, StrictInt, StrictFloat]

CUISINE_FILTER_PROMPT = "\n".join([
    "You are a filtering assistant for cuisine-specific restaurant recommendations.",
    "Return JSON ONLY with this schema:",
    '{ "kept": ["placeId or index"] }',
    "Rules:",
    "- Keep only places that match the cuisine intent.",
    "- If a place might still match, keep it.",
    "- Only use the provided place ids or indices. Do not invent new values.",
    "- Indices are 0-based and correspond to the provided list order.",
])

RANKING_PROMPT = "\n".join([
    "You are a ranking assistant for restaurant recommendations.",
    "Return JSON ONLY with this schema:",
    '{ "ranked": ["placeId or index"], "rationale": "optional short sentence" }',
    "Rules:",
    "- Rank the places by relevance to the user's question and location context.",
    "- Only use the provided place ids or indices. Do not invent new values.",
    "- If you use indices, they are 0-based and correspond to the provided list order.",
    "- Keep rationale short (max 1 sentence).",
])


class CuisineFilterResponse(BaseModel):
    model_config = ConfigDict(extra="forbid", strict=True)

    kept: list[RankEntry]


class RankingResponse(BaseModel):
    model_config = ConfigDict(extra="forbid", strict=True)

    ranked: list[RankEntry]
    rationale: StrictStr | None = None


def extract_json_object(raw: str) -> Any:
    """Parse the outermost ``{...}`` span of *raw*; raises ``ValueError`` when absent."""
    trimmed = raw.strip()
    if not trimmed:
        raise ValueError("empty completion")
    start, end = trimmed.find("{"), trimmed.rfind("}")
    if start != -1 and end > start:
        return json.loads(trimmed[start:end + 1])
    return json.loads(trimmed)


def extract_menu_hints(place: PlaceRecord) -> list[str]:
    hints: list[str] = []

    def add(value: Any) -> None:
        text = coerce_string(value)
        if text and text not in hints:
            hints.append(text)

    for item in place.get("menuHighlights") or []:
        add(item)
    for item in place.get("menuItems") or []:
        if isinstance(item, dict):
            add(item.get("name") or item.get("title") or item.get("text"))
        else:
            add(item)
    summary = place.get("editorialSummary")
    if isinstance(summary, dict):
        add(summary.get("text") or summary.get("description"))
    add(place.get("description"))
    add(place.get("summary"))
    cuisines = place.get("servesCuisine")
    for item in cuisines if isinstance(cuisines, list) else [cuisines]:
        add(item)
    return hints[:3]


def _place_label(place: PlaceRecord) -> str | None:
    return coerce_string(place.get("name") or place.get("title")) or coerce_string(
        (place.get("displayName") or {}).get("text") if isinstance(place.get("displayName"), dict) else None
    )


def _rounded_distance(place: PlaceRecord, coords: GeoPoint | None) -> int | None:
    point = extract_point(place)
    if coords is None or point is None:
        return None
    return round(haversine_meters(coords, point))


def build_cuisine_filter_payload(query: str, places: list[PlaceRecord]) -> dict[str, Any]:
    return {
        "cuisine_intent": query,
        "places": [
            {
                "index": index,
                "id": extract_place_id(place, index),
                "name": _place_label(place),
                "address": extract_address(place),
                "types": extract_place_types(place),
                "menu_hints": extract_menu_hints(place) or None,
            }
            for index, place in enumerate(places)
        ],
    }


def build_ranking_payload(
    query: str,
    places: list[PlaceRecord],
    coords: GeoPoint | None,
    location_text: str | None,
) -> dict[str, Any]:
    summarized = []
    for index, place in enumerate(places):
        rating = coerce_number(place.get("rating", place.get("googleRating")))
        reviews = coerce_number(place.get("userRatingCount", place.get("user_ratings_total")))
        types = place.get("types")
        summarized.append({
            "index": index,
            "id": extract_place_id(place, index),
            "name": _place_label(place),
            "address": extract_address(place),
            "rating": rating,
            "reviewCount": reviews,
            "types": [t for t in types if isinstance(t, str)] if isinstance(types, list) else None,
            "distance_meters": _rounded_distance(place, coords),
        })
    return {
        "query": query,
        "location": {
            "text": location_text,
            "coords": coords.model_dump() if coords else None,
        },
        "places": summarized,
    }


def resolve_entries(places: list[PlaceRecord], entries: list[Any]) -> list[PlaceRecord]:
    """Map ids / 0-based indices back to places; unknown, duplicate or out-of-range entries are skipped."""
    by_id = {extract_place_id(place, index): index for index, place in enumerate(places)}
    seen: set[int] = set()
    resolved: list[PlaceRecord] = []
    for entry in entries:
        if isinstance(entry, (int, float)) and not isinstance(entry, bool):
            if not math.isfinite(entry):
                continue
            index = math.trunc(entry)
            if not 0 <= index < len(places):
                continue
        else:
            index = by_id.get(entry)
            if index is None:
                continue
        if index not in seen:
            seen.add(index)
            resolved.append(places[index])
    return resolved


def build_ranked_list(places: list[PlaceRecord], order: list[Any], max_results: int) -> list[PlaceRecord]:
    ranked = resolve_entries(places, order)
    mentioned = {id(place) for place in ranked}
    for place in places:
        if len(ranked) >= max_results:
            break
        if id(place) not in mentioned:
            ranked.append(place)
    return ranked[:max_results]


def build_fallback_ranking(
    places: list[PlaceRecord],
    coords: GeoPoint | None,
    radius_meters: int | None,
    max_results: int,
    disable_distance_filter: bool = False,
    search_config: SearchConfig = DEFAULT_SEARCH_CONFIG,
) -> tuple[list[PlaceRecord], int]:
    """Deterministic ranking: food-type filter, then the distance safety net."""
    filtered = filter_food_places(places)
    if coords is None or not radius_meters or radius_meters <= 0:
        return filtered[:max_results], 0

    safety = filter_by_max_distance(
        coords,
        filtered,
        extract_point,
        search_config.max_distance_for(radius_meters),
        disable_distance_filter=disable_distance_filter,
    )
    return safety.kept[:max_results], safety.dropped_count


def filter_by_cuisine(
    query: str,
    places: list[PlaceRecord],
    complete: CompletionFn,
    request_id: str | None = None,
) -> list[PlaceRecord]:
    if not query.strip() or not places:
        return places
    try:
        raw = complete(CUISINE_FILTER_PROMPT, build_cuisine_filter_payload(query, places), 0.0)
        parsed = CuisineFilterResponse.model_validate(extract_json_object(raw))
    except ValidationError as exc:
        logger.warning(
            "Cuisine filter schema mismatch; keeping unfiltered places (request_id=%s): %s",
            request_id, exc.errors(include_url=False),
        )
        return places
    except Exception:
        logger.warning(
            "Cuisine filter LLM call failed; keeping unfiltered places (request_id=%s)",
            request_id, exc_info=True,
        )
        return places
    return resolve_entries(places, parsed.kept)


def rank_places(
    query: str,
    places: list[PlaceRecord],
    coords: GeoPoint | None = None,
    location_text: str | None = None,
    radius_meters: int | None = None,
    max_results: int | None = None,
    disable_distance_filter: bool = False,
    request_id: str | None = None,
    config: LLMConfig = DEFAULT_LLM_CONFIG,
    complete: CompletionFn | None = None,
    search_config: SearchConfig = DEFAULT_SEARCH_CONFIG,
) -> RankResult:
    """
    Rank raw candidates for *query*.

    Always returns a RankResult; ``used_ranker`` is True only when the LLM
    reorder stage produced a valid response that was applied.
    """
    max_results = max_results or search_config.max_ranked_results

    def fallback(candidates: list[PlaceRecord]) -> RankResult:
        kept, dropped = build_fallback_ranking(
            candidates, coords, radius_meters, max_results,
            disable_distance_filter=disable_distance_filter, search_config=search_config,
        )
        return RankResult(
            ranked_places=kept,
            used_ranker=False,
            dropped_count=dropped,
            candidate_count=len(filter_food_places(candidates)),
        )

    if not places:
        return fallback(places)

    llm_available = config.enabled and (complete is not None or is_available(config))
    if llm_available and complete is None:
        complete = make_completion(config, timeout=config.ranker_timeout)

    candidates = places
    if llm_available:
        candidates = filter_by_cuisine(query, places, complete, request_id)

    if not (config.enabled and config.relevance_ranking_enabled):
        return fallback(candidates)
    if not llm_available:
        logger.warning("LLM relevance ranker disabled; missing GROQ_API_KEY (request_id=%s)", request_id)
        return fallback(candidates)

    try:
        raw = complete(RANKING_PROMPT, build_ranking_payload(query, candidates, coords, location_text), 0.2)
        parsed = RankingResponse.model_validate(extract_json_object(raw))
    except ValidationError as exc:
        logger.warning(
            "Relevance ranker schema mismatch; using fallback (request_id=%s): %s",
            request_id, exc.errors(include_url=False),
        )
        return fallback(candidates)
    except Exception:
        logger.warning("Relevance ranker LLM call failed; using fallback (request_id=%s)", request_id, exc_info=True)
        return fallback(candidates)

    rationale = (parsed.rationale or "").strip()
    return RankResult(
        ranked_places=build_ranked_list(candidates, parsed.ranked, max_results),
        assistant_message=rationale or None,
        used_ranker=True,
        candidate_count=len(filter_food_places(candidates)),
    )
