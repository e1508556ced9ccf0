"""
Place search orchestration.

A search runs as a small state machine:

    select mode -> call tool -> process candidates -> [fallback]* -> outcome

Processing ranks the raw candidates, drops non-food venues, normalizes them
and applies the distance safety net. Fallbacks are an ordered list of
strategies; each looks at the current SearchState and either declines
(returns None), produces a new state, or produces a terminal SearchOutcome.
Every strategy fires at most once per run and the loop is capped at the
number of strategies, so a search costs a small constant number of remote
calls. Only the radius-expand strategy re-enters the whole run, guarded by
``distance_retry_attempted``; the wider run inherits the strategies already
fired, so the schema-error text retry still happens at most once per request.
"""
from __future__ import annotations

import dataclasses
import logging
import uuid
from dataclasses import dataclass, field
from typing import Callable, Union

from ..llm.config import DEFAULT_LLM_CONFIG, LLMConfig
from ..llm.groq_client import CompletionFn
from ..mcp.client import McpClient, McpError, McpHttpError, McpRpcError
from ..mcp.result_parser import extract_next_page_token, extract_status_code, parse_tool_result
from ..mcp.tool_resolver import ToolRegistry, is_unknown_tool_error
from .arguments import (
    BuiltArgs,
    build_nearby_args,
    build_text_args,
    supports_max_results,
    supports_pagination,
)
from .config import DEFAULT_SEARCH_CONFIG, SearchConfig
from .food_filter import (
    build_food_search_query,
    extract_cuisine_keyword,
    filter_food_places,
    has_explicit_location_phrase,
    is_cuisine_query,
)
from .geo import filter_by_max_distance, haversine_meters
from .models import (
    NormalizedPlace,
    ResolvedToolSet,
    SearchMode,
    SearchOutcome,
    SearchRequest,
    ToolCallResult,
    ToolDefinition,
)
from .normalize import normalize_place, place_point
from .ranker import rank_places

logger = logging.getLogger(__name__)

UNAVAILABLE_MESSAGE = "Places search is temporarily unavailable."
NEEDS_LOCATION_MESSAGE = (
    "I need a location to search. Share your location or name an area, "
    "for example “noodles in Yangon”."
)
SUCCESS_MESSAGE = "Here are a few places you might like."
TEXT_FALLBACK_MESSAGE = (
    "I had trouble with nearby filtering, so I searched by text instead. Here are some options."
)
SAFETY_DROP_MESSAGE = (
    "I couldn’t find reliable nearby matches for that location. "
    "Try widening your radius or share a more specific neighborhood."
)
CALL_FAILED_MESSAGE = "I couldn’t reach places search just now. Please try again."
EMPTY_MESSAGE = "I couldn’t find food places nearby. Try a different keyword."
MORE_SUCCESS_MESSAGE = "Here are more places you might like."
MORE_FAILED_MESSAGE = "Couldn't fetch nearby places. Please try again."
MORE_EMPTY_MESSAGE = (
    "I couldn’t find food places for that. "
    "Try a different keyword (e.g., 'hotpot', 'noodle', 'dim sum')."
)

INVALID_INCLUDED_TYPES_ERROR = "invalid place type(s) for includedtypes"


def format_radius_label(radius_meters: int) -> str:
    if radius_meters >= 1000:
        kilometers = f"{radius_meters / 1000:.1f}".removesuffix(".0")
        return f"{kilometers} km"
    return f"{radius_meters} m"


def should_retry_with_text(
    call: ToolCallResult,
    mode: SearchMode,
    has_text_tool: bool,
    already_retried: bool,
) -> bool:
    """Nearby call rejected for its type filter or with a 400: worth one text retry."""
    if already_retried or call.successful is not False:
        return False
    if mode != SearchMode.nearby or not has_text_tool:
        return False
    if call.error and INVALID_INCLUDED_TYPES_ERROR in call.error.lower():
        return True
    return extract_status_code(call.payload) == 400


@dataclass(frozen=True)
class SearchState:
    """Everything known about one orchestration run so far."""

    request: SearchRequest
    tools: ResolvedToolSet
    radius_meters: int
    request_id: str
    mode: SearchMode
    tool: ToolDefinition
    call: ToolCallResult = field(default_factory=ToolCallResult)
    query: str | None = None
    places: list[NormalizedPlace] = field(default_factory=list)
    had_candidates: bool = False
    geo_dropped_count: int = 0
    used_ranker: bool = False
    assistant_message: str | None = None
    fallback_message: str | None = None
    used_location_fallback: bool = False
    distance_retry_attempted: bool = False
    fired: frozenset[str] = frozenset()
    tool_calls: int = 0

    def evolve(self, **changes) -> "SearchState":
        return dataclasses.replace(self, **changes)


Strategy = Callable[[SearchState], Union[SearchState, SearchOutcome, None]]


class PlaceSearchOrchestrator:
    def __init__(
        self,
        client: McpClient,
        registry: ToolRegistry | None = None,
        llm_config: LLMConfig = DEFAULT_LLM_CONFIG,
        search_config: SearchConfig = DEFAULT_SEARCH_CONFIG,
        complete: CompletionFn | None = None,
    ):
        self.client = client
        self.registry = registry or ToolRegistry(client)
        self.llm_config = llm_config
        self.search_config = search_config
        self.complete = complete
        self.strategies: list[tuple[str, Strategy]] = [
            ("text_retry", self._retry_with_text),
            ("cuisine_broaden", self._broaden_cuisine),
            ("radius_expand", self._expand_radius),
            ("location_fallback", self._explicit_location_fallback),
        ]

    # ── Public operations ────────────────────────────────────────────────

    def search(self, request: SearchRequest) -> SearchOutcome:
        """Run a search and its fallback cascade. Never raises for remote failures."""
        request_id = request.request_id or uuid.uuid4().hex[:12]
        tools = self._resolve_tools(request_id)
        if tools is None:
            return SearchOutcome(places=[], message=UNAVAILABLE_MESSAGE)
        return self._run(request, tools, request.radius_meters, request_id, distance_retry_attempted=False)

    def search_more(self, request: SearchRequest) -> SearchOutcome:
        """Fetch the next page for a previous search.

        Reuses the radius with the pagination token when the tool supports one,
        otherwise widens the radius. Only the schema-error text retry applies.
        """
        request_id = request.request_id or uuid.uuid4().hex[:12]
        tools = self._resolve_tools(request_id)
        if tools is None:
            return SearchOutcome(places=[], message=UNAVAILABLE_MESSAGE)

        desired = SearchMode.nearby if request.coords is not None else SearchMode.text
        tool, mode = tools.search_tool(desired)
        if tool is None or (mode == SearchMode.nearby and request.coords is None):
            return SearchOutcome(places=[], message=NEEDS_LOCATION_MESSAGE)

        token = request.pagination_token if supports_pagination(tool) else None
        if token:
            radius = request.radius_meters
        else:
            radius = int(round(request.radius_meters * self.search_config.follow_up_radius_factor))
        page_size = (
            self.search_config.follow_up_max_result_count
            if supports_max_results(tool)
            else self.search_config.max_result_count
        )

        keyword = request.keyword.strip()
        search_keyword = build_food_search_query(keyword)
        if mode == SearchMode.text:
            built = build_text_args(
                tool, keyword or "restaurant", coords=request.coords, radius_meters=radius,
                location_text=request.location_text, next_page_token=token,
                max_result_count=page_size, included_types_override=request.place_types,
            )
        else:
            built = build_nearby_args(
                tool, request.coords, radius, keyword=search_keyword, next_page_token=token,
                max_result_count=page_size, included_types_override=request.place_types,
            )
        call = self._call_tool(tool, mode, built, radius, request_id)
        calls, active_tool = 1, tool

        used_fallback = False
        if should_retry_with_text(call, mode, tools.text_search is not None, already_retried=False):
            logger.warning(
                "MCP nearby follow-up failed; retrying with text search (request_id=%s): %s",
                request_id, (call.error or "")[:120],
            )
            fallback_built = build_text_args(
                tools.text_search, keyword or "restaurant", coords=request.coords,
                radius_meters=radius, max_result_count=page_size,
            )
            retry = self._call_tool(tools.text_search, SearchMode.text, fallback_built, radius, request_id, fallback="schema_error")
            calls += 1
            if retry.successful is not False:
                call, active_tool, used_fallback = retry, tools.text_search, True

        if call.successful is False:
            logger.warning("MCP follow-up search failed (request_id=%s): %s", request_id, call.error)
        places = self._normalize(filter_food_places(call.places), request)

        if call.successful is False:
            message = MORE_FAILED_MESSAGE
        elif used_fallback and places:
            message = TEXT_FALLBACK_MESSAGE
        elif places:
            message = MORE_SUCCESS_MESSAGE
        else:
            message = MORE_EMPTY_MESSAGE

        return SearchOutcome(
            places=places,
            message=message,
            next_page_token=self._next_page_token(active_tool, call),
            used_radius_meters=radius,
            tool_calls=calls,
        )

    # ── Orchestration ────────────────────────────────────────────────────

    def _resolve_tools(self, request_id: str) -> ResolvedToolSet | None:
        if not self.client.is_configured:
            logger.warning("Places MCP endpoint not configured (request_id=%s)", request_id)
            return None
        tools = self.registry.resolve()
        if tools.is_empty:
            logger.warning("No usable places search tool advertised (request_id=%s)", request_id)
            return None
        return tools

    def _select_mode(self, request: SearchRequest) -> SearchMode:
        if request.coords is None:
            return SearchMode.text
        if request.force_mode is not None:
            return request.force_mode
        if (
            is_cuisine_query(request.keyword)
            or request.location_text
            or has_explicit_location_phrase(request.keyword)
        ):
            return SearchMode.text
        return SearchMode.nearby

    def _run(
        self,
        request: SearchRequest,
        tools: ResolvedToolSet,
        radius: int,
        request_id: str,
        distance_retry_attempted: bool,
        fired: frozenset[str] = frozenset(),
        mode: SearchMode | None = None,
    ) -> SearchOutcome:
        tool, mode = tools.search_tool(mode or self._select_mode(request))
        if tool is None or (mode == SearchMode.nearby and request.coords is None):
            return SearchOutcome(places=[], message=NEEDS_LOCATION_MESSAGE, used_radius_meters=radius)

        state = SearchState(
            request=request,
            tools=tools,
            radius_meters=radius,
            request_id=request_id,
            mode=mode,
            tool=tool,
            distance_retry_attempted=distance_retry_attempted,
            fired=fired,
        )
        state = self._search_with(state, tool, mode)

        for _ in range(len(self.strategies)):
            for name, strategy in self.strategies:
                if name in state.fired:
                    continue
                result = strategy(state)
                if result is None:
                    continue
                if isinstance(result, SearchOutcome):
                    return result
                state = result.evolve(fired=result.fired | {name})
                break
            else:
                break

        return self._finish(state)

    def _search_with(
        self,
        state: SearchState,
        tool: ToolDefinition,
        mode: SearchMode,
        keyword: str | None = None,
        query_override: str | None = None,
        fallback: str | None = None,
        use_ranker: bool = True,
    ) -> SearchState:
        """Issue one tool call and process its candidates into a new state."""
        request = state.request
        keyword = request.keyword if keyword is None else keyword
        intent_keyword = keyword.strip() or "restaurant"
        max_results = self.search_config.max_result_count

        if mode == SearchMode.text:
            built = build_text_args(
                tool, intent_keyword, coords=request.coords, radius_meters=state.radius_meters,
                location_text=request.location_text, query_override=query_override,
                max_result_count=max_results, included_types_override=request.place_types,
            )
        else:
            built = build_nearby_args(
                tool, request.coords, state.radius_meters, keyword=build_food_search_query(keyword),
                max_result_count=max_results, included_types_override=request.place_types,
            )
        call = self._call_tool(tool, mode, built, state.radius_meters, state.request_id, fallback=fallback)
        return self._process(
            state.evolve(tool=tool, mode=mode, call=call, query=built.query, tool_calls=state.tool_calls + 1),
            keyword,
            use_ranker=use_ranker,
        )

    def _call_tool(
        self,
        tool: ToolDefinition,
        mode: SearchMode,
        built: BuiltArgs,
        radius: int,
        request_id: str,
        fallback: str | None = None,
    ) -> ToolCallResult:
        logger.info(
            "MCP search request (request_id=%s, tool=%s, mode=%s, query=%r, included_types=%s, radius=%s, fallback=%s)",
            request_id, tool.name, mode.value, built.query, built.included_types, radius, fallback,
        )
        try:
            raw = self.client.call_tool(tool.name, built.args)
        except McpError as exc:
            if is_unknown_tool_error(str(exc)):
                self.registry.invalidate()
            payload: dict = {"error": str(exc)}
            if isinstance(exc, McpHttpError):
                payload["status_code"] = exc.status_code
            elif isinstance(exc, McpRpcError) and exc.code is not None:
                payload["code"] = exc.code
            logger.warning("MCP tool call failed (request_id=%s, tool=%s): %s", request_id, tool.name, exc)
            return ToolCallResult(successful=False, error=str(exc), payload=payload)

        result = parse_tool_result(raw)
        if result.successful is False and is_unknown_tool_error(result.error):
            self.registry.invalidate()
        return result

    def _normalize(self, raw_places: list[dict], request: SearchRequest) -> list[NormalizedPlace]:
        normalized = (normalize_place(place, request.coords) for place in raw_places)
        return [place for place in normalized if place is not None]

    def _process(self, state: SearchState, keyword: str, use_ranker: bool = True) -> SearchState:
        request = state.request
        query = build_food_search_query(keyword)
        raw_places = state.call.places

        ranked_dropped = 0
        used_ranker = False
        assistant_message = None
        if not use_ranker:
            had_candidates = bool(filter_food_places(raw_places))
        else:
            ranking = rank_places(
                query,
                raw_places,
                coords=request.coords,
                location_text=request.location_text,
                radius_meters=state.radius_meters,
                disable_distance_filter=request.disable_distance_filter,
                request_id=state.request_id,
                config=self.llm_config,
                complete=self.complete,
                search_config=self.search_config,
            )
            raw_places = ranking.ranked_places
            had_candidates = ranking.candidate_count > 0
            ranked_dropped = ranking.dropped_count
            used_ranker = ranking.used_ranker
            assistant_message = ranking.assistant_message

        filtered = filter_food_places(raw_places, preserve_order=used_ranker)
        normalized = self._normalize(filtered, request)
        safety_kept, safety_dropped = self._apply_safety_net(state, normalized)

        return state.evolve(
            places=safety_kept,
            had_candidates=had_candidates,
            geo_dropped_count=ranked_dropped + safety_dropped,
            used_ranker=used_ranker,
            assistant_message=assistant_message,
        )

    def _apply_safety_net(self, state: SearchState, places: list[NormalizedPlace]) -> tuple[list[NormalizedPlace], int]:
        origin = state.request.coords
        max_distance = self.search_config.max_distance_for(state.radius_meters)
        result = filter_by_max_distance(
            origin,
            places,
            place_point,
            max_distance,
            disable_distance_filter=state.request.disable_distance_filter,
        )
        if origin is not None:
            points = [place_point(place) for place in places[:3]]
            sample = [round(haversine_meters(origin, point)) if point else None for point in points]
            logger.info(
                "Applied distance safety net (request_id=%s, origin=%s,%s, radius=%d, max_distance=%d, "
                "candidate_distances=%s, dropped=%d, mode=%s, max_kept_distance=%s)",
                state.request_id, origin.lat, origin.lng, state.radius_meters, max_distance,
                sample, result.dropped_count, state.mode.value, result.max_kept_distance,
            )
        return result.kept, result.dropped_count

    # ── Fallback strategies ──────────────────────────────────────────────

    def _retry_with_text(self, state: SearchState) -> SearchState | None:
        tools = state.tools
        if not should_retry_with_text(state.call, state.mode, tools.text_search is not None, already_retried=False):
            return None
        logger.warning(
            "MCP nearby search failed; retrying with text search (request_id=%s, tool=%s, fallback_tool=%s): %s",
            state.request_id, state.tool.name, tools.text_search.name, (state.call.error or "")[:120],
        )
        retried = self._search_with(state, tools.text_search, SearchMode.text, fallback="schema_error")
        if retried.call.successful is False:
            return state.evolve(tool_calls=retried.tool_calls)
        return retried.evolve(fallback_message=TEXT_FALLBACK_MESSAGE)

    def _broaden_cuisine(self, state: SearchState) -> SearchState | None:
        request = state.request
        if (
            not is_cuisine_query(request.keyword)
            or state.call.successful is False
            or state.call.places
            or state.tools.text_search is None
        ):
            return None
        location = (request.location_text or "").strip()
        query = f"restaurants in {location}" if location else "restaurants"
        logger.warning(
            "Cuisine search returned nothing; broadening to %r (request_id=%s)", query, state.request_id,
        )
        broadened = self._search_with(
            state, state.tools.text_search, SearchMode.text,
            keyword="restaurants", query_override=query, fallback="cuisine_broaden",
        )
        if not broadened.places:
            return broadened
        cuisine = extract_cuisine_keyword(request.keyword)
        return broadened.evolve(
            fallback_message=f"I couldn’t find {cuisine} places there, so here are other restaurants nearby."
        )

    def _expand_radius(self, state: SearchState) -> SearchOutcome | None:
        request = state.request
        if state.distance_retry_attempted or state.places or not state.had_candidates:
            return None
        if request.coords is None or request.disable_distance_filter:
            return None
        expanded = min(
            state.radius_meters * self.search_config.radius_expand_factor,
            self.search_config.max_radius_meters,
        )
        if expanded <= state.radius_meters:
            return None

        logger.warning(
            "All candidates failed the distance check; retrying with radius %d (request_id=%s)",
            expanded, state.request_id,
        )
        # the wider run keeps the fallbacks already spent and any mode the text retry switched to
        outcome = self._run(
            request, state.tools, expanded, state.request_id,
            distance_retry_attempted=True,
            fired=state.fired,
            mode=state.mode if "text_retry" in state.fired else None,
        )
        place = request.location_text or "that spot"
        prefix = f"I found places, but they seem far from {place}. I’ll retry with a wider radius."
        return outcome.model_copy(update={
            "message": f"{prefix} {outcome.message}".strip() if outcome.message else prefix,
            "tool_calls": state.tool_calls + outcome.tool_calls,
        })

    def _explicit_location_fallback(self, state: SearchState) -> SearchState | None:
        request = state.request
        location = (request.location_text or "").strip()
        if not location or state.places or not state.had_candidates or state.tools.text_search is None:
            return None
        intent_keyword = request.keyword.strip() or "restaurant"
        logger.warning(
            "No plausible results near %r; retrying text search (request_id=%s)", location, state.request_id,
        )
        retried = self._search_with(
            state, state.tools.text_search, SearchMode.text,
            query_override=f"{intent_keyword} in {location}",
            fallback="distance_safety_net", use_ranker=False,
        )
        if retried.call.successful is False:
            return state.evolve(tool_calls=retried.tool_calls, used_location_fallback=True)
        return retried.evolve(
            used_location_fallback=True,
            had_candidates=state.had_candidates,
            geo_dropped_count=state.geo_dropped_count + retried.geo_dropped_count,
        )

    # ── Terminal ─────────────────────────────────────────────────────────

    def _next_page_token(self, tool: ToolDefinition, call: ToolCallResult) -> str | None:
        if not supports_pagination(tool):
            return None
        return extract_next_page_token(call.payload)

    def _finish(self, state: SearchState) -> SearchOutcome:
        request = state.request
        if state.places and state.fallback_message:
            message = state.fallback_message
        elif state.places:
            message = SUCCESS_MESSAGE
        elif state.used_location_fallback and request.location_text:
            message = (
                f"I couldn’t find results near {request.location_text} within "
                f"{format_radius_label(state.radius_meters)}. Try a broader keyword or increase radius."
            )
        elif state.geo_dropped_count > 0:
            message = SAFETY_DROP_MESSAGE
        elif state.call.successful is False:
            message = CALL_FAILED_MESSAGE
        else:
            message = EMPTY_MESSAGE

        if state.call.successful is False:
            logger.warning("MCP place search failed (request_id=%s): %s", state.request_id, state.call.error)

        return SearchOutcome(
            places=state.places,
            message=message,
            next_page_token=self._next_page_token(state.tool, state.call),
            used_ranker=state.used_ranker,
            used_radius_meters=state.radius_meters,
            assistant_message=state.assistant_message,
            tool_calls=state.tool_calls,
        )
