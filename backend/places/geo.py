"""
Geographic helpers and the distance safety net.

The safety net is a plausibility check only: it drops candidates whose
coordinates are missing or too far from the search origin, which guards
against a tool returning places from the wrong city or hemisphere.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Callable, Generic, Iterable, TypeVar

from .models import GeoPoint

T = TypeVar("T")

EARTH_RADIUS_METERS = 6_371_000


def haversine_meters(origin: GeoPoint, point: GeoPoint) -> float:
    """Great-circle distance between two points in meters."""
    lat1 = math.radians(origin.lat)
    lat2 = math.radians(point.lat)
    d_lat = math.radians(point.lat - origin.lat)
    d_lng = math.radians(point.lng - origin.lng)

    a = math.sin(d_lat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(d_lng / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_METERS * c


def _is_valid(value: float | None) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


@dataclass
class DistanceFilterResult(Generic[T]):
    kept: list[T] = field(default_factory=list)
    dropped_count: int = 0
    max_kept_distance: float | None = None


def filter_by_max_distance(
    origin: GeoPoint | None,
    items: Iterable[T],
    get_point: Callable[[T], GeoPoint | None],
    max_distance_meters: float,
    disable_distance_filter: bool = False,
) -> DistanceFilterResult[T]:
    """Keep items whose point lies within *max_distance_meters* of *origin*.

    Without an origin, or when the filter is disabled, every item is kept.
    Items without a usable point are dropped and counted.
    """
    items = list(items)
    if origin is None or disable_distance_filter:
        return DistanceFilterResult(kept=items)

    result: DistanceFilterResult[T] = DistanceFilterResult()
    for item in items:
        point = get_point(item)
        if point is None or not _is_valid(point.lat) or not _is_valid(point.lng):
            result.dropped_count += 1
            continue
        distance = haversine_meters(origin, point)
        if distance <= max_distance_meters:
            result.kept.append(item)
            if result.max_kept_distance is None or distance > result.max_kept_distance:
                result.max_kept_distance = distance
        else:
            result.dropped_count += 1
    return result
