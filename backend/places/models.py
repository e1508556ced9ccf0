from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class SearchMode(str, Enum):
    nearby = "nearby"
    text = "text"


class GeoPoint(BaseModel):
    model_config = ConfigDict(frozen=True)

    lat: float
    lng: float


class GeocodeResult(GeoPoint):
    formatted_address: str | None = None


class ToolDefinition(BaseModel):
    """A tool advertised by the remote endpoint's ``tools/list``."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str = Field(..., min_length=1)
    description: str | None = None
    input_schema: dict[str, Any] = Field(default_factory=dict, alias="inputSchema")

    @property
    def property_names(self) -> list[str]:
        properties = self.input_schema.get("properties")
        if not isinstance(properties, dict):
            return []
        return list(properties.keys())


class ResolvedToolSet(BaseModel):
    model_config = ConfigDict(frozen=True)

    nearby_search: ToolDefinition | None = None
    text_search: ToolDefinition | None = None
    geocode: ToolDefinition | None = None
    place_details: ToolDefinition | None = None

    @property
    def is_empty(self) -> bool:
        return self.nearby_search is None and self.text_search is None

    def search_tool(self, mode: SearchMode) -> tuple[ToolDefinition | None, SearchMode]:
        """Return the tool for *mode*, falling back to the other search tool."""
        if mode == SearchMode.nearby:
            if self.nearby_search is not None:
                return self.nearby_search, SearchMode.nearby
            return self.text_search, SearchMode.text
        if self.text_search is not None:
            return self.text_search, SearchMode.text
        return self.nearby_search, SearchMode.nearby


class SearchRequest(BaseModel):
    keyword: str = Field(default="", max_length=200)
    coords: GeoPoint | None = None
    radius_meters: int = Field(default=1500, gt=0, le=50_000)
    location_text: str | None = Field(default=None, max_length=200)
    place_types: list[str] | None = Field(
        default=None, description='Included place types override, e.g. ["bakery"]'
    )
    force_mode: SearchMode | None = None
    pagination_token: str | None = None
    disable_distance_filter: bool = False
    request_id: str | None = None


class NormalizedPlace(BaseModel):
    model_config = ConfigDict(frozen=True)

    place_id: str
    name: str
    lat: float | None = None
    lng: float | None = None
    rating: float | None = None
    review_count: int | None = None
    price_level: int | None = None
    types: list[str] = Field(default_factory=list)
    address: str | None = None
    maps_url: str | None = None
    distance_meters: float | None = None


class ToolCallResult(BaseModel):
    places: list[dict[str, Any]] = Field(default_factory=list)
    successful: bool | None = None
    error: str | None = None
    payload: Any = None
    content_text: str | None = None


class RankResult(BaseModel):
    ranked_places: list[dict[str, Any]]
    assistant_message: str | None = None
    used_ranker: bool = False
    dropped_count: int = 0
    # food-type candidates left after the cuisine filter, before any distance check
    candidate_count: int = 0


class SearchOutcome(BaseModel):
    model_config = ConfigDict(frozen=True)

    places: list[NormalizedPlace]
    message: str
    next_page_token: str | None = None
    used_ranker: bool = False
    used_radius_meters: int | None = None
    assistant_message: str | None = None
    tool_calls: int = 0
