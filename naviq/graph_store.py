"""Canonical venue graph structs and flattening for routing and matching.

Document convention:
- Main map nodes/connections live at the document root.
- Buildings own ordered floors; each floor owns its own nodes/connections.
- An edge whose endpoints belong to different scopes is a cross-level connector
  and is traversed at zero cost.

Usage example:
    >>> from naviq.graph_store import flatten, parse_map_graph
    >>> flat = flatten(parse_map_graph(document))
    >>> flat.scope_of(node_id)
    'main_map'
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable

from shapely.geometry import Point

logger = logging.getLogger(__name__)

MAIN_MAP_SCOPE = "main_map"


class GraphDataError(ValueError):
    """Stored graph content that cannot be routed, as opposed to bad caller input."""


class NodeType(str, Enum):
    """Closed set of node kinds drawn by administrators."""

    ROOM = "room"
    STAIR = "stair"
    LIFT = "lift"
    DOOR = "door"
    ROAD_TURN = "road_turn"
    ESCALATOR = "escalator"
    ENTRANCE = "entrance"
    EXIT = "exit"
    OTHER = "other"


class Direction(str, Enum):
    """Compass tag stored on a connection. Narration metadata only."""

    N_S = "N-S"
    S_N = "S-N"
    E_W = "E-W"
    W_E = "W-E"
    NE_SW = "NE-SW"
    SW_NE = "SW-NE"
    NW_SE = "NW-SE"
    SE_NW = "SE-NW"

    def reversed(self) -> Direction:
        """Heading when the connection is walked from `to` back to `from`."""
        start, end = self.value.split("-")
        return Direction(f"{end}-{start}")


@dataclass(slots=True)
class Node:
    """Point of interest or waypoint."""

    id: str
    name: str
    type: NodeType = NodeType.OTHER
    description: str = ""
    x: float = 0.0
    y: float = 0.0


@dataclass(slots=True)
class Edge:
    """Weighted connection between two nodes."""

    id: str
    from_id: str
    to_id: str
    direction: Direction | None = None
    distance: float | None = None
    left_reference_nodes: list[str] = field(default_factory=list)
    right_reference_nodes: list[str] = field(default_factory=list)


@dataclass(slots=True)
class Floor:
    floor_number: int
    map_image: str = ""
    width: float = 0.0
    height: float = 0.0
    nodes: list[Node] = field(default_factory=list)
    connections: list[Edge] = field(default_factory=list)


@dataclass(slots=True)
class Building:
    name: str
    floors: list[Floor] = field(default_factory=list)
    # Reserved, not used by routing.
    entrance_nodes: list[str] = field(default_factory=list)
    entrance_edges: list[str] = field(default_factory=list)


@dataclass(slots=True)
class MapGraph:
    """Venue-level graph: main map plus buildings."""

    nodes: list[Node] = field(default_factory=list)
    connections: list[Edge] = field(default_factory=list)
    buildings: list[Building] = field(default_factory=list)


@dataclass(slots=True)
class LocatedNode:
    """Node annotated with the container that owns it."""

    node: Node
    location: str
    scope: str
    building: str | None = None
    floor: int | None = None

    @property
    def id(self) -> str:
        return self.node.id

    @property
    def name(self) -> str:
        return self.node.name

    @property
    def type(self) -> NodeType:
        return self.node.type

    @property
    def description(self) -> str:
        return self.node.description

    def location_label(self) -> str:
        """Human label used in candidate lists, e.g. `Library Floor 2`."""
        if self.building is None:
            return "Main Map"
        return f"{self.building} Floor {self.floor}"

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "_id": self.node.id,
            "name": self.node.name,
            "type": self.node.type.value,
            "description": self.node.description,
            "x": self.node.x,
            "y": self.node.y,
            "location": self.location,
        }
        if self.building is not None:
            payload["building"] = self.building
        if self.floor is not None:
            payload["floor"] = self.floor
        return payload


@dataclass(slots=True)
class FlatGraph:
    """Flattened node universe with edges kept per owning scope."""

    nodes: list[LocatedNode] = field(default_factory=list)
    scoped_edges: dict[str, list[Edge]] = field(default_factory=dict)
    _by_id: dict[str, LocatedNode] = field(default_factory=dict)

    def node(self, node_id: str) -> LocatedNode | None:
        return self._by_id.get(str(node_id))

    def scope_of(self, node_id: str) -> str | None:
        located = self._by_id.get(str(node_id))
        return located.scope if located is not None else None

    def scopes(self) -> list[str]:
        return list(self.scoped_edges.keys())

    def edges_for(self, scopes: Iterable[str]) -> list[Edge]:
        """Collect edges of the given scopes in document order."""
        wanted = set(scopes)
        out: list[Edge] = []
        for scope, edges in self.scoped_edges.items():
            if scope in wanted:
                out.extend(edges)
        return out

    def is_connector(self, edge: Edge) -> bool:
        """True when the edge bridges two different scopes."""
        a = self.scope_of(edge.from_id)
        b = self.scope_of(edge.to_id)
        return a is not None and b is not None and a != b

    def weight(self, edge: Edge) -> float:
        """Traversal cost of an edge; connectors always cost 0."""
        if self.is_connector(edge):
            return 0.0
        if edge.distance is None:
            a = self.node(edge.from_id)
            b = self.node(edge.to_id)
            if a is None or b is None:
                return 0.0
            return edge_length(a.node, b.node)
        return float(edge.distance)


def floor_scope(building: str, floor_number: int) -> str:
    return f"{building}:{floor_number}"


def edge_length(a: Node, b: Node) -> float:
    """Euclidean pixel-space distance between two nodes."""
    return float(Point(a.x, a.y).distance(Point(b.x, b.y)))


def _as_list(value: Any) -> list[Any]:
    if not value:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    return []


def _ref_id(value: Any) -> str:
    """Resolve a populated node object or a bare id to its id string."""
    if isinstance(value, dict):
        return str(value.get("_id", value.get("id", "")))
    return "" if value is None else str(value)


def _parse_node(raw: dict[str, Any]) -> Node:
    raw_type = str(raw.get("type") or NodeType.OTHER.value).lower()
    try:
        node_type = NodeType(raw_type)
    except ValueError:
        logger.warning("Unknown node type %r on node %s, using 'other'", raw_type, raw.get("_id"))
        node_type = NodeType.OTHER

    return Node(
        id=_ref_id(raw),
        name=str(raw.get("name") or ""),
        type=node_type,
        description=str(raw.get("description") or ""),
        x=float(raw.get("x") or 0.0),
        y=float(raw.get("y") or 0.0),
    )


def _parse_edge(raw: dict[str, Any]) -> Edge:
    direction: Direction | None = None
    raw_direction = raw.get("direction")
    if raw_direction:
        try:
            direction = Direction(str(raw_direction).upper())
        except ValueError:
            logger.warning("Unknown direction %r on edge %s", raw_direction, raw.get("_id"))

    distance = raw.get("distance")
    return Edge(
        id=_ref_id(raw),
        from_id=_ref_id(raw.get("from")),
        to_id=_ref_id(raw.get("to")),
        direction=direction,
        distance=float(distance) if distance is not None else None,
        left_reference_nodes=[str(v) for v in _as_list(raw.get("left_reference_nodes"))],
        right_reference_nodes=[str(v) for v in _as_list(raw.get("right_reference_nodes"))],
    )


def _parse_floor(raw: dict[str, Any]) -> Floor:
    return Floor(
        floor_number=int(raw.get("floorNumber", raw.get("floor_number", 0)) or 0),
        map_image=str(raw.get("mapImage") or ""),
        width=float(raw.get("width") or 0.0),
        height=float(raw.get("height") or 0.0),
        nodes=[_parse_node(n) for n in _as_list(raw.get("nodes")) if isinstance(n, dict)],
        connections=[_parse_edge(e) for e in _as_list(raw.get("connections")) if isinstance(e, dict)],
    )


def parse_map_graph(document: dict[str, Any] | None) -> MapGraph:
    """Build the canonical MapGraph from a persisted graph document.

    Args:
        document: Raw document, optionally wrapped as `{"mapdata": {...}}`.

    Returns:
        MapGraph with missing collections treated as empty.
    """
    if not document:
        return MapGraph()
    if isinstance(document.get("mapdata"), dict):
        document = document["mapdata"]

    buildings: list[Building] = []
    for raw_building in _as_list(document.get("buildings")):
        if not isinstance(raw_building, dict):
            continue
        buildings.append(
            Building(
                name=str(raw_building.get("name") or ""),
                floors=[_parse_floor(f) for f in _as_list(raw_building.get("floors")) if isinstance(f, dict)],
                entrance_nodes=[_ref_id(v) for v in _as_list(raw_building.get("entranceNodes"))],
                entrance_edges=[_ref_id(v) for v in _as_list(raw_building.get("entranceEdges"))],
            )
        )

    return MapGraph(
        nodes=[_parse_node(n) for n in _as_list(document.get("nodes")) if isinstance(n, dict)],
        connections=[_parse_edge(e) for e in _as_list(document.get("connections")) if isinstance(e, dict)],
        buildings=buildings,
    )


def flatten(graph: MapGraph) -> FlatGraph:
    """Flatten main map and every floor into one addressable node universe.

    Main-map nodes come first, then each building's floors in stored order.
    Edges stay grouped by the scope whose connection list holds them.
    """
    flat = FlatGraph()

    def add(located: LocatedNode) -> None:
        flat.nodes.append(located)
        # First owner wins when an id is duplicated across containers.
        flat._by_id.setdefault(located.id, located)

    for node in graph.nodes:
        add(LocatedNode(node=node, location="main_map", scope=MAIN_MAP_SCOPE))
    flat.scoped_edges[MAIN_MAP_SCOPE] = list(graph.connections)

    for building in graph.buildings:
        for floor in building.floors:
            scope = floor_scope(building.name, floor.floor_number)
            for node in floor.nodes:
                add(
                    LocatedNode(
                        node=node,
                        location="building",
                        scope=scope,
                        building=building.name,
                        floor=floor.floor_number,
                    )
                )
            flat.scoped_edges.setdefault(scope, []).extend(floor.connections)

    return flat
