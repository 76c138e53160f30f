"""Reduce a venue graph document to the connections used by a route."""

from __future__ import annotations

import logging
import re
from typing import Any, Iterable

from naviq.graph_store import FlatGraph
from naviq.pathfinding import PathSegment

logger = logging.getLogger(__name__)

_WIRE_SEGMENT = re.compile(r"^\s*(\S+)\s*→\s*(\S+)")


def path_node_ids(path: Iterable[str | PathSegment]) -> set[str]:
    """Collect endpoint ids from wire strings or structured segments."""
    ids: set[str] = set()
    for segment in path:
        if isinstance(segment, PathSegment):
            ids.add(segment.from_id)
            ids.add(segment.to_id)
            continue
        match = _WIRE_SEGMENT.match(str(segment))
        if match is None:
            logger.warning("Skipping unparseable path segment %r", segment)
            continue
        ids.add(match.group(1))
        ids.add(match.group(2))
    return ids


def _endpoint_id(value: Any) -> str:
    if isinstance(value, dict):
        return str(value.get("_id", value.get("id", "")))
    return "" if value is None else str(value)


def _on_path(connection: Any, ids: set[str]) -> bool:
    if not isinstance(connection, dict):
        return False
    return _endpoint_id(connection.get("from")) in ids and _endpoint_id(connection.get("to")) in ids


def _filter(connections: Any, ids: set[str]) -> list[dict[str, Any]]:
    return [dict(c) for c in (connections or []) if _on_path(c, ids)]


def reduce_graph(document: dict[str, Any] | None, path: Iterable[str | PathSegment]) -> dict[str, Any]:
    """Keep only connections whose both endpoints lie on the path.

    The output mirrors the document nesting (`connections`, then
    `buildings[].floors[].connections`) but carries no `nodes` arrays. The
    input document is not modified.
    """
    ids = path_node_ids(path)
    document = document or {}
    if isinstance(document.get("mapdata"), dict):
        document = document["mapdata"]

    buildings: list[dict[str, Any]] = []
    for building in document.get("buildings") or []:
        if not isinstance(building, dict):
            continue
        floors: list[dict[str, Any]] = []
        for floor in building.get("floors") or []:
            if not isinstance(floor, dict):
                continue
            reduced_floor = {k: v for k, v in floor.items() if k not in ("nodes", "connections")}
            reduced_floor["connections"] = _filter(floor.get("connections"), ids)
            floors.append(reduced_floor)
        reduced_building = {k: v for k, v in building.items() if k not in ("nodes", "floors")}
        reduced_building["floors"] = floors
        buildings.append(reduced_building)

    reduced = {
        "connections": _filter(document.get("connections"), ids),
        "buildings": buildings,
    }

    total = len(reduced["connections"]) + sum(len(f["connections"]) for b in buildings for f in b["floors"])
    logger.debug("Reduced graph to %d connections over %d path nodes", total, len(ids))
    return reduced


def populate_path(flat: FlatGraph, segments: Iterable[PathSegment]) -> list[dict[str, Any]]:
    """Expand segments into node summaries for the instruction composer."""
    steps: list[dict[str, Any]] = []
    for segment in segments:
        step: dict[str, Any] = {}
        for key, node_id in (("from", segment.from_id), ("to", segment.to_id)):
            located = flat.node(node_id)
            if located is None:
                step[key] = node_id
                continue
            summary: dict[str, Any] = {"id": located.id, "name": located.name, "type": located.type.value}
            if located.building is not None:
                summary["building"] = located.building
                summary["floor"] = located.floor
            step[key] = summary

        edge = segment.edge
        direction = edge.direction if edge is not None else None
        if direction is not None and edge.from_id != segment.from_id:
            direction = direction.reversed()
        step["edge"] = {
            "id": edge.id if edge is not None else None,
            "distance": round(segment.distance, 2),
            "direction": direction.value if direction is not None else None,
        }
        if edge is not None and (edge.left_reference_nodes or edge.right_reference_nodes):
            step["edge"]["left_reference_nodes"] = list(edge.left_reference_nodes)
            step["edge"]["right_reference_nodes"] = list(edge.right_reference_nodes)
        steps.append(step)
    return steps
