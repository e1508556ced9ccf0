from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class SearchConfig:
    max_result_count: int = 12
    follow_up_max_result_count: int = 30
    max_ranked_results: int = 7
    distance_multiplier: int = 4
    min_max_distance_meters: int = 8000
    radius_expand_factor: int = 3
    max_radius_meters: int = 8000
    follow_up_radius_factor: float = 1.5

    def max_distance_for(self, radius_meters: int) -> int:
        """Safety-net tolerance for a requested radius."""
        return max(radius_meters * self.distance_multiplier, self.min_max_distance_meters)


DEFAULT_SEARCH_CONFIG = SearchConfig()
