"""End-to-end navigation query pipeline.

raw query -> navigation gate -> intent classification -> fragment matching
-> shortest path -> graph reduction -> instruction composer
"""

from __future__ import annotations

import json
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Sequence

from naviq.ai import InstructionComposer, Turn
from naviq.classifier import QueryClassifier, QueryType, normalize_query, split_source_destination
from naviq.graph_store import FlatGraph
from naviq.matching import EntityMatcher, MatchMode, MatchResult
from naviq.path_reducer import populate_path, reduce_graph
from naviq.pathfinding import RouteResult, RouteStatus, format_path, plan_route

logger = logging.getLogger(__name__)


class Outcome(str, Enum):
    GENERAL = "general"
    ROUTE_FOUND = "route_found"
    NEEDS_SOURCE = "needs_source"
    NEEDS_DESTINATION = "needs_destination"
    NEEDS_CLARIFICATION = "needs_clarification"
    UNREACHABLE = "unreachable"
    DISCONNECTED_SCOPES = "disconnected_scopes"


REPLIES = {
    Outcome.GENERAL: "This does not look like a navigation question.",
    Outcome.ROUTE_FOUND: "Path found! Here's your route:",
    Outcome.NEEDS_SOURCE: "I found your destination. Where are you starting from?",
    Outcome.NEEDS_DESTINATION: "I found your starting point. Where would you like to go?",
    Outcome.NEEDS_CLARIFICATION: (
        "I could not match those locations. Could you be more specific about your source and destination?"
    ),
    Outcome.UNREACHABLE: "I found both locations, but there is no connected route between them.",
    Outcome.DISCONNECTED_SCOPES: (
        "I found both locations, but they are in areas that no recorded connector links together."
    ),
}


@dataclass(slots=True)
class Resolution:
    """Matched endpoints for one query."""

    query_type: QueryType
    source: MatchResult | None = None
    destination: MatchResult | None = None
    match_method: str = "none"

    @property
    def match_score(self) -> float:
        scores = [m.score for m in (self.source, self.destination) if m is not None]
        return min(scores) if scores else 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "source": self.source.to_dict() if self.source is not None else None,
            "destination": self.destination.to_dict() if self.destination is not None else None,
            "queryType": self.query_type.value,
            "matchMethod": self.match_method,
            "matchScore": round(self.match_score, 4),
        }


@dataclass(slots=True)
class NavigationAnswer:
    outcome: Outcome
    reply: str
    resolution: Resolution | None = None
    route: RouteResult | None = None
    reduced_graph: dict[str, Any] | None = None
    steps: list[dict[str, Any]] = field(default_factory=list)
    instructions: str | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "outcome": self.outcome.value,
            "reply": self.reply,
            "resolution": self.resolution.to_dict() if self.resolution is not None else None,
        }
        if self.route is not None:
            payload["result"] = format_path(self.route.segments)
            payload["total_distance"] = round(self.route.total_distance, 2)
            payload["scopes"] = list(self.route.scopes)
        if self.reduced_graph is not None:
            payload["reduced_graph"] = self.reduced_graph
        if self.steps:
            payload["populated_result"] = self.steps
        if self.instructions is not None:
            payload["instructions"] = self.instructions
        return payload


class QueryResolver:
    """Wires classifier, matcher, planner and reducer together."""

    def __init__(
        self,
        classifier: QueryClassifier | None = None,
        matcher: EntityMatcher | None = None,
        composer: InstructionComposer | None = None,
    ) -> None:
        self.classifier = classifier or QueryClassifier()
        self.matcher = matcher or EntityMatcher()
        self.composer = composer
        self._executor: ThreadPoolExecutor | None = None

    def _pool(self) -> ThreadPoolExecutor:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=4, thread_name_prefix="naviq-fragments")
        return self._executor

    def _match_pair(self, flat: FlatGraph, source: str, destination: str) -> tuple[MatchResult | None, MatchResult | None]:
        # Fragments are independent; each AI call keeps its own timeout.
        source_future = self._pool().submit(self.matcher.match, flat.nodes, source, MatchMode.SOURCE)
        destination_future = self._pool().submit(self.matcher.match, flat.nodes, destination, MatchMode.DESTINATION)
        return source_future.result(), destination_future.result()

    def resolve(self, flat: FlatGraph, query: str, history: Sequence[Turn] = ()) -> Resolution:
        """Classify `query` and match its fragments to nodes.

        Raises:
            ValueError: If the query is empty after normalisation.
        """
        clean = normalize_query(query)
        if not clean:
            raise ValueError("Query is empty")

        query_type = self.classifier.classify(clean, history)

        if query_type is QueryType.DESTINATION_ONLY:
            destination = self.matcher.match(flat.nodes, clean, MatchMode.DESTINATION)
            return Resolution(
                query_type=query_type,
                destination=destination,
                match_method=destination.method if destination is not None else "none",
            )

        if query_type is QueryType.SOURCE_DESTINATION:
            parts = split_source_destination(clean)
            if parts is None:
                logger.info("No source/destination split for %r, matching whole query as source", clean)
                source = self.matcher.match(flat.nodes, clean, MatchMode.SOURCE)
                return Resolution(
                    query_type=query_type,
                    source=source,
                    match_method=source.method if source is not None else "none",
                )

            source, destination = self._match_pair(flat, parts.source, parts.destination)
            used_ai = any(m is not None and m.method.startswith("gemini") for m in (source, destination))
            return Resolution(
                query_type=query_type,
                source=source,
                destination=destination,
                match_method="gemini-dual" if used_ai else "fuzzy-dual",
            )

        source = self.matcher.match(flat.nodes, clean, MatchMode.SOURCE)
        return Resolution(
            query_type=query_type,
            source=source,
            match_method=source.method if source is not None else "none",
        )

    def _compose(self, steps: list[dict[str, Any]], reduced: dict[str, Any]) -> str | None:
        if self.composer is None:
            return None
        try:
            return self.composer.compose(json.dumps({"steps": steps, "graph": reduced}, indent=2, default=str))
        except Exception as exc:
            logger.warning("Instruction composer failed, returning route without prose: %s", exc)
            return None

    def route(self, document: dict[str, Any], flat: FlatGraph, source_id: str, destination_id: str) -> NavigationAnswer:
        """Plan, reduce and narrate a route between two known node ids."""
        route = plan_route(flat, source_id, destination_id)

        if route.status is RouteStatus.UNREACHABLE:
            return NavigationAnswer(Outcome.UNREACHABLE, REPLIES[Outcome.UNREACHABLE], route=route)
        if route.status is RouteStatus.DISCONNECTED_SCOPES:
            return NavigationAnswer(Outcome.DISCONNECTED_SCOPES, REPLIES[Outcome.DISCONNECTED_SCOPES], route=route)

        reduced = reduce_graph(document, route.segments)
        steps = populate_path(flat, route.segments)
        logger.info(
            "Route %s -> %s: %d segments, %.2f m",
            source_id,
            destination_id,
            len(route.segments),
            route.total_distance,
        )
        return NavigationAnswer(
            Outcome.ROUTE_FOUND,
            REPLIES[Outcome.ROUTE_FOUND],
            route=route,
            reduced_graph=reduced,
            steps=steps,
            instructions=self._compose(steps, reduced),
        )

    def answer(self, document: dict[str, Any], flat: FlatGraph, user_id: str, query: str) -> NavigationAnswer:
        """Full pipeline for one user query."""
        if not self.classifier.is_navigation_query(user_id, query):
            return NavigationAnswer(Outcome.GENERAL, REPLIES[Outcome.GENERAL])

        history: list[Turn] = []
        if self.classifier.conversations is not None:
            history = self.classifier.conversations.get_history(user_id)

        resolution = self.resolve(flat, query, history)

        if resolution.source is not None and resolution.destination is not None:
            answer = self.route(document, flat, resolution.source.node.id, resolution.destination.node.id)
            answer.resolution = resolution
            return answer

        if resolution.source is not None:
            outcome = Outcome.NEEDS_DESTINATION
        elif resolution.destination is not None:
            outcome = Outcome.NEEDS_SOURCE
        else:
            outcome = Outcome.NEEDS_CLARIFICATION
        return NavigationAnswer(outcome, REPLIES[outcome], resolution=resolution)

    def close(self) -> None:
        """Release worker pools and drop conversation sessions and timers."""
        if self._executor is not None:
            self._executor.shutdown(wait=False, cancel_futures=True)
            self._executor = None
        self.matcher.close()
        if self.classifier.conversations is not None:
            self.classifier.conversations.clear()
