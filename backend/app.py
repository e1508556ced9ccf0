from __future__ import annotations

import logging
import os
from functools import lru_cache

from fastapi import Depends, FastAPI, HTTPException, Query
from fastapi.responses import JSONResponse

from .mcp.client import McpClient
from .mcp.tool_resolver import ToolRegistry
from .places.lookup import geocode_location, get_place_details
from .places.models import GeocodeResult, NormalizedPlace, SearchOutcome, SearchRequest
from .places.orchestrator import PlaceSearchOrchestrator

logging.basicConfig(
    level=os.environ.get("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(title="Place Search API", version="1.0.0")


@lru_cache(maxsize=1)
def get_orchestrator() -> PlaceSearchOrchestrator:
    client = McpClient()
    return PlaceSearchOrchestrator(client, ToolRegistry(client))


# ── Health ───────────────────────────────────────────────────────────────


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/health/places")
def places_health(orchestrator: PlaceSearchOrchestrator = Depends(get_orchestrator)):
    if not orchestrator.client.is_configured:
        return JSONResponse(status_code=503, content={"ok": False, "error": "PLACES_MCP_URL is not configured"})
    tools = orchestrator.registry.list_tools()
    if not tools:
        return JSONResponse(status_code=503, content={"ok": False, "error": "No tools advertised"})
    return {"ok": True, "tool_count": len(tools), "tools": [tool.name for tool in tools]}


# ── Search ───────────────────────────────────────────────────────────────


@app.post("/search", response_model=SearchOutcome)
def search(
    body: SearchRequest,
    orchestrator: PlaceSearchOrchestrator = Depends(get_orchestrator),
) -> SearchOutcome:
    return orchestrator.search(body)


@app.post("/search/more", response_model=SearchOutcome)
def search_more(
    body: SearchRequest,
    orchestrator: PlaceSearchOrchestrator = Depends(get_orchestrator),
) -> SearchOutcome:
    return orchestrator.search_more(body)


@app.get("/geocode", response_model=GeocodeResult)
def geocode(
    q: str = Query(..., min_length=1, max_length=200),
    orchestrator: PlaceSearchOrchestrator = Depends(get_orchestrator),
) -> GeocodeResult:
    result = geocode_location(q, orchestrator.client, orchestrator.registry)
    if result is None:
        raise HTTPException(status_code=404, detail="Location not found")
    return result


@app.get("/places/{place_id}", response_model=NormalizedPlace)
def place_details(
    place_id: str,
    orchestrator: PlaceSearchOrchestrator = Depends(get_orchestrator),
) -> NormalizedPlace:
    place = get_place_details(place_id, orchestrator.client, orchestrator.registry)
    if place is None:
        raise HTTPException(status_code=404, detail="Place not found")
    return place


@app.get("/cache/stats")
def cache_stats(orchestrator: PlaceSearchOrchestrator = Depends(get_orchestrator)) -> dict:
    return orchestrator.registry.cache_stats()
