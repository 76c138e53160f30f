"""Dijkstra shortest paths over scoped venue graphs.

Purpose:
- Compute shortest node-to-node routes across main map and floor sub-graphs.
- Treat every connection as bidirectional; the compass tag is narration only.
- Report unreachable destinations as a result status, not an exception.

Usage example:
    >>> from naviq.pathfinding import format_path, plan_route
    >>> route = plan_route(flat, "A", "C")
    >>> format_path(route.segments)
    ['A → B (5.00 m)', 'B → C (10.00 m)']
"""

from __future__ import annotations

import heapq
import itertools
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Iterable

from naviq.graph_store import MAIN_MAP_SCOPE, Edge, FlatGraph, GraphDataError

Adjacency = dict[str, list[tuple[str, float, Edge]]]


class RouteStatus(str, Enum):
    FOUND = "found"
    UNREACHABLE = "unreachable"
    DISCONNECTED_SCOPES = "disconnected_scopes"


@dataclass(slots=True)
class PathSegment:
    """One traversed connection, oriented along the route."""

    from_id: str
    to_id: str
    distance: float
    edge: Edge | None = None

    def to_wire(self) -> str:
        return f"{self.from_id} → {self.to_id} ({self.distance:.2f} m)"


@dataclass(slots=True)
class RouteResult:
    status: RouteStatus
    source_id: str
    destination_id: str
    segments: list[PathSegment] = field(default_factory=list)
    scopes: list[str] = field(default_factory=list)

    @property
    def found(self) -> bool:
        return self.status is RouteStatus.FOUND

    @property
    def total_distance(self) -> float:
        return path_distance(self.segments)


def build_adjacency(edges: Iterable[Edge], weight: Callable[[Edge], float] | None = None) -> Adjacency:
    """Undirected adjacency list in edge insertion order.

    Args:
        edges: Connections to include.
        weight: Optional callable `edge -> float`; defaults to stored distance.

    Raises:
        GraphDataError: If any edge cost is negative.
    """
    adjacency: Adjacency = {}
    for edge in edges:
        if not edge.from_id or not edge.to_id:
            continue
        cost = float(weight(edge)) if weight is not None else float(edge.distance or 0.0)
        if cost < 0:
            raise GraphDataError(f"Edge {edge.id} has negative distance")
        adjacency.setdefault(edge.from_id, []).append((edge.to_id, cost, edge))
        adjacency.setdefault(edge.to_id, []).append((edge.from_id, cost, edge))
    return adjacency


def dijkstra(adjacency: Adjacency, source: str, destination: str) -> list[PathSegment] | None:
    """Single-source Dijkstra stopping at `destination`.

    Ties keep the first relaxation (strict `<`), so insertion order of the
    adjacency decides between equal-length routes.

    Returns:
        Ordered segments from source to destination, `[]` when they coincide,
        or None when the destination is unreachable.
    """
    if source == destination:
        return []

    counter = itertools.count()
    open_heap: list[tuple[float, int, str]] = [(0.0, next(counter), source)]
    dist: dict[str, float] = {source: 0.0}
    came_from: dict[str, tuple[str, float, Edge]] = {}
    closed: set[str] = set()

    while open_heap:
        current_dist, _, current = heapq.heappop(open_heap)

        if current in closed:
            continue

        if current == destination:
            segments: list[PathSegment] = []
            node = current
            while node in came_from:
                prev, cost, edge = came_from[node]
                segments.append(PathSegment(from_id=prev, to_id=node, distance=cost, edge=edge))
                node = prev
            segments.reverse()
            return segments

        closed.add(current)

        for neighbor, cost, edge in adjacency.get(current, []):
            if neighbor in closed:
                continue

            tentative = current_dist + cost
            if tentative < dist.get(neighbor, float("inf")):
                dist[neighbor] = tentative
                came_from[neighbor] = (current, cost, edge)
                heapq.heappush(open_heap, (tentative, next(counter), neighbor))

    return None


def _reachable(adjacency: Adjacency, source: str) -> set[str]:
    seen = {source}
    stack = [source]
    while stack:
        current = stack.pop()
        for neighbor, _, _ in adjacency.get(current, []):
            if neighbor not in seen:
                seen.add(neighbor)
                stack.append(neighbor)
    return seen


def route_scopes(flat: FlatGraph, source_id: str, destination_id: str) -> list[str]:
    """Main map plus the scopes owning both endpoints, in stable order."""
    scopes = [MAIN_MAP_SCOPE]
    for node_id in (source_id, destination_id):
        scope = flat.scope_of(node_id)
        if scope is not None and scope not in scopes:
            scopes.append(scope)
    return scopes


def plan_route(flat: FlatGraph, source_id: str, destination_id: str) -> RouteResult:
    """Shortest route between two resolved nodes.

    Raises:
        ValueError: If either id is not a node of the graph.
        GraphDataError: If an edge in the routed scopes has a negative distance.
    """
    source_id = str(source_id)
    destination_id = str(destination_id)
    source_scope = flat.scope_of(source_id)
    destination_scope = flat.scope_of(destination_id)
    if source_scope is None:
        raise ValueError(f"Unknown source node: {source_id}")
    if destination_scope is None:
        raise ValueError(f"Unknown destination node: {destination_id}")

    scopes = route_scopes(flat, source_id, destination_id)
    adjacency = build_adjacency(flat.edges_for(scopes), weight=flat.weight)
    segments = dijkstra(adjacency, source_id, destination_id)

    if segments is not None:
        return RouteResult(RouteStatus.FOUND, source_id, destination_id, segments, scopes)

    status = RouteStatus.UNREACHABLE
    if source_scope != destination_scope:
        reached_scopes = {flat.scope_of(n) for n in _reachable(adjacency, source_id)}
        if destination_scope not in reached_scopes:
            status = RouteStatus.DISCONNECTED_SCOPES

    return RouteResult(status, source_id, destination_id, [], scopes)


def format_path(segments: Iterable[PathSegment]) -> list[str]:
    """Serialize segments to the `"<from> → <to> (<N.NN> m)"` wire format."""
    return [segment.to_wire() for segment in segments]


def path_distance(segments: Iterable[PathSegment]) -> float:
    return float(sum(segment.distance for segment in segments))
