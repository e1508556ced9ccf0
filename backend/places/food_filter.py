"""
Food-intent heuristics shared by argument building, ranking and filtering.

Responsibilities:
- Detect whether a keyword already carries food intent or a cuisine term.
- Synthesize text-search queries and default place-type filters.
- Drop candidates whose declared types are clearly not food venues.
"""
from __future__ import annotations

import re
from typing import Any

from .normalize import extract_place_types

FOOD_PLACE_TYPES = ["restaurant", "meal_takeaway", "meal_delivery", "cafe"]

DEFAULT_EXCLUDED_TYPES = ["store", "lodging", "school", "shopping_mall"]

FOOD_INTENT_KEYWORDS = [
    "food", "restaurant", "restaurants", "cafe", "cafes", "coffee", "coffee shop",
    "coffeehouse", "bakery", "bakeries", "bar", "bars", "tea", "noodle", "noodles",
    "bbq", "barbecue", "sushi", "hotpot", "hot pot", "dim sum", "kitchen", "grill",
    "bistro", "diner", "ramen", "pho", "pizza", "burger", "steak", "seafood",
    "buffet", "kebab", "shawarma", "taco", "curry",
]

CUISINE_KEYWORDS = [
    "chinese", "thai", "korean", "japanese", "burmese", "myanmar", "indian",
    "malay", "vietnamese", "seafood", "vegetarian", "vegan", "halal", "pizza",
    "burger", "bbq", "barbecue", "hotpot", "dim sum", "noodle", "noodles",
    "ramen", "sushi", "coffee", "tea", "dessert", "cake", "breakfast", "brunch",
    "lunch", "dinner",
]

_LOCATION_PHRASE_RE = re.compile(r"\b(in|near|around)\s+[a-zA-Z]", re.IGNORECASE)
_RESTAURANT_WORD_RE = re.compile(r"\brestaurants?\b|\bfood\b", re.IGNORECASE)
_CUISINE_RES = [
    (keyword, re.compile(rf"\b{re.escape(keyword)}\b", re.IGNORECASE)) for keyword in CUISINE_KEYWORDS
]


def _contains_any(value: str, terms: list[str]) -> bool:
    return any(term in value for term in terms)


def has_food_intent(query: str | None) -> bool:
    if not query:
        return False
    return _contains_any(query.lower(), FOOD_INTENT_KEYWORDS)


def extract_cuisine_keyword(query: str | None) -> str | None:
    if not query:
        return None
    for keyword, pattern in _CUISINE_RES:
        if pattern.search(query):
            return keyword
    return None


def is_cuisine_query(query: str | None) -> bool:
    return extract_cuisine_keyword(query) is not None


def has_explicit_location_phrase(query: str | None) -> bool:
    if not query:
        return False
    return bool(_LOCATION_PHRASE_RE.search(query))


def build_food_search_query(keyword: str) -> str:
    """Keyword for nearby search: suffixed with "restaurant" when it lacks a food noun."""
    trimmed = keyword.strip()
    if not trimmed:
        return "restaurants"
    if has_food_intent(trimmed):
        return trimmed
    return f"{trimmed} restaurant"


def build_restaurant_intent(keyword: str) -> str:
    trimmed = re.sub(r"\s{2,}", " ", keyword.strip())
    cleaned = re.sub(r"\s{2,}", " ", _RESTAURANT_WORD_RE.sub(" ", trimmed)).strip()
    if not cleaned:
        return "restaurant"
    # "sushi", "dim sum bar": already a food noun
    if has_food_intent(cleaned):
        return trimmed
    return f"{cleaned} restaurant"


def build_food_text_search_query(keyword: str, location_text: str | None = None) -> str:
    """Free-text query: ``"<intent> in <location>"`` when a location label is known."""
    intent = build_restaurant_intent(keyword)
    location = (location_text or "").strip()
    if location and not has_explicit_location_phrase(keyword):
        return f"{intent} in {location}"
    return intent


def normalize_included_types(value: Any) -> list[str] | None:
    if isinstance(value, str):
        return [value.strip()] if value.strip() else None
    if isinstance(value, list):
        types = [item.strip() for item in value if isinstance(item, str) and item.strip()]
        return types or None
    return None


def build_food_included_types(keyword: str | None) -> list[str]:
    types = ["restaurant"]
    if not keyword:
        return types
    lower = keyword.lower()
    if "cafe" in lower or "coffee" in lower or "tea" in lower:
        types.append("cafe")
    if "bakery" in lower:
        types.append("bakery")
    if "bar" in lower:
        types.append("bar")
    if "takeaway" in lower or "takeout" in lower:
        types.append("meal_takeaway")
    return types


def _has_food_type(types: list[str]) -> bool:
    return any(t.lower() in FOOD_PLACE_TYPES for t in types)


def filter_food_places(
    places: list[dict[str, Any]],
    preserve_order: bool = False,
) -> list[dict[str, Any]]:
    """Drop typed candidates with no food type; untyped candidates are kept.

    Unless *preserve_order* is set, typed candidates are moved ahead of
    untyped ones (stable within each group).
    """
    typed: list[dict[str, Any]] = []
    untyped: list[dict[str, Any]] = []
    ordered: list[dict[str, Any]] = []
    for place in places:
        types = extract_place_types(place)
        has_types = bool(types)
        if has_types and not _has_food_type(types):
            continue
        ordered.append(place)
        (typed if has_types else untyped).append(place)

    if preserve_order:
        return ordered
    return typed + untyped
