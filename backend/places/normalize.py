from __future__ import annotations

import math
import zlib
from typing import Any

from .geo import haversine_meters
from .models import GeoPoint, NormalizedPlace


def coerce_number(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else None
    if isinstance(value, str) and value.strip():
        try:
            parsed = float(value.strip())
        except ValueError:
            return None
        return parsed if math.isfinite(parsed) else None
    return None


def coerce_string(value: Any) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _first(record: dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if record.get(key) is not None:
            return record[key]
    return None


def extract_point(raw: dict[str, Any]) -> GeoPoint | None:
    """Find coordinates in flat, ``location`` or ``geometry.location`` shapes."""
    lat = coerce_number(_first(raw, "lat", "latitude", "y"))
    lng = coerce_number(_first(raw, "lng", "lon", "longitude", "x"))
    if lat is not None and lng is not None:
        return GeoPoint(lat=lat, lng=lng)

    location = raw.get("location")
    if not isinstance(location, dict):
        location = raw.get("geometry")
    if isinstance(location, dict):
        inner = location.get("location") if isinstance(location.get("location"), dict) else location
        lat = coerce_number(_first(inner, "lat", "latitude"))
        lng = coerce_number(_first(inner, "lng", "lon", "longitude"))
        if lat is not None and lng is not None:
            return GeoPoint(lat=lat, lng=lng)
    return None


def extract_place_id(raw: dict[str, Any], index: int) -> str:
    return coerce_string(_first(raw, "placeId", "place_id", "id")) or f"index_{index}"


def extract_place_name(raw: dict[str, Any]) -> str | None:
    display_name = raw.get("displayName")
    if isinstance(display_name, dict):
        text = coerce_string(display_name.get("text") or display_name.get("value"))
        if text:
            return text
    return (
        coerce_string(raw.get("name"))
        or coerce_string(raw.get("display_name"))
        or coerce_string(raw.get("title"))
    )


def extract_address(raw: dict[str, Any]) -> str | None:
    for key in ("formattedAddress", "shortFormattedAddress", "formatted_address", "vicinity", "address"):
        value = coerce_string(raw.get(key))
        if value:
            return value
    return None


def extract_place_types(raw: dict[str, Any]) -> list[str]:
    types = raw.get("types")
    if not isinstance(types, list):
        types = raw.get("categories") if isinstance(raw.get("categories"), list) else []
    result = [t for t in types if isinstance(t, str)]
    if isinstance(raw.get("primaryType"), str):
        result.append(raw["primaryType"])
    return result


def _fallback_place_id(seed: str) -> str:
    return f"mcp_{zlib.crc32(seed.encode('utf-8'))}"


def normalize_place(raw: Any, origin: GeoPoint | None = None) -> NormalizedPlace | None:
    """Build a NormalizedPlace from an untyped tool record, or None if unnamed."""
    if not isinstance(raw, dict):
        return None

    name = extract_place_name(raw)
    if not name:
        return None

    point = extract_point(raw)
    address = extract_address(raw)
    rating = coerce_number(_first(raw, "rating", "googleRating"))
    review_count = coerce_number(
        _first(raw, "userRatingCount", "user_ratings_total", "reviewsCount", "googleRatingsTotal")
    )
    price_level = coerce_number(_first(raw, "priceLevel", "price_level"))
    maps_url = coerce_string(_first(raw, "googleMapsUri", "mapsUri", "mapsUrl", "url", "maps_url"))

    types = raw.get("types") if isinstance(raw.get("types"), list) else raw.get("categories")
    types = [t for t in types or [] if isinstance(t, str)]

    lat = point.lat if point else None
    lng = point.lng if point else None
    place_id = coerce_string(_first(raw, "placeId", "place_id", "id")) or _fallback_place_id(
        f"{name}|{lat if lat is not None else 'unknown'}|{lng if lng is not None else 'unknown'}|{address or ''}"
    )

    distance = haversine_meters(origin, point) if origin is not None and point is not None else None

    return NormalizedPlace(
        place_id=place_id,
        name=name,
        lat=lat,
        lng=lng,
        rating=rating,
        review_count=int(review_count) if review_count is not None else None,
        price_level=int(price_level) if price_level is not None else None,
        types=types,
        address=address,
        maps_url=maps_url,
        distance_meters=distance,
    )


def place_point(place: NormalizedPlace) -> GeoPoint | None:
    if place.lat is None or place.lng is None:
        return None
    return GeoPoint(lat=place.lat, lng=place.lng)
