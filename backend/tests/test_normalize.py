from __future__ import annotations

from backend.places.models import GeoPoint
from backend.places.normalize import coerce_number, extract_point, normalize_place

ORIGIN = GeoPoint(lat=16.8409, lng=96.1735)


def test_places_api_shape():
    raw = {
        "id": "ChIJ123",
        "displayName": {"text": "Rangoon Tea House", "languageCode": "en"},
        "formattedAddress": "77-79 Pansodan St, Yangon",
        "location": {"latitude": 16.7745, "longitude": 96.1600},
        "rating": 4.6,
        "userRatingCount": "2103",
        "priceLevel": 2,
        "googleMapsUri": "https://maps.google.com/?cid=1",
        "types": ["restaurant", "cafe", 7],
    }

    place = normalize_place(raw, ORIGIN)

    assert place.place_id == "ChIJ123"
    assert place.name == "Rangoon Tea House"
    assert place.address == "77-79 Pansodan St, Yangon"
    assert (place.lat, place.lng) == (16.7745, 96.16)
    assert place.review_count == 2103
    assert place.price_level == 2
    assert place.types == ["restaurant", "cafe"]
    assert place.maps_url == "https://maps.google.com/?cid=1"
    assert 7000 < place.distance_meters < 8000


def test_legacy_geometry_shape_without_origin():
    raw = {
        "place_id": "legacy-1",
        "name": "Shan Noodle",
        "vicinity": "Bahan",
        "geometry": {"location": {"lat": "16.81", "lng": "96.15"}},
        "user_ratings_total": 88,
    }

    place = normalize_place(raw)

    assert place.place_id == "legacy-1"
    assert (place.lat, place.lng) == (16.81, 96.15)
    assert place.address == "Bahan"
    assert place.distance_meters is None


def test_missing_id_gets_stable_fallback():
    raw = {"name": "Street Stall", "lat": 16.8, "lng": 96.1}

    first = normalize_place(raw)
    second = normalize_place(dict(raw))

    assert first.place_id.startswith("mcp_")
    assert first.place_id == second.place_id


def test_unnamed_or_non_dict_is_skipped():
    assert normalize_place({"id": "x"}) is None
    assert normalize_place("Shan Noodle") is None


def test_extract_point_variants():
    assert extract_point({"latitude": 1, "longitude": 2}) == GeoPoint(lat=1, lng=2)
    assert extract_point({"location": {"lat": 1, "lng": 2}}) == GeoPoint(lat=1, lng=2)
    assert extract_point({"lat": 1}) is None


def test_coerce_number():
    assert coerce_number(" 4.5 ") == 4.5
    assert coerce_number(True) is None
    assert coerce_number(float("inf")) is None
    assert coerce_number("abc") is None
