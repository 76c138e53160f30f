"""Unit tests for naviq.graph_store."""

from __future__ import annotations

import pytest

from naviq.graph_store import (
    MAIN_MAP_SCOPE,
    Direction,
    FlatGraph,
    Node,
    NodeType,
    edge_length,
    flatten,
    parse_map_graph,
)


def test_flatten_orders_main_map_before_floors(campus: FlatGraph) -> None:
    """Main map nodes come first, then floors in stored building order."""
    ids = [n.id for n in campus.nodes]

    assert ids == ["m1", "m2", "m3", "m4", "m5", "m6", "f1", "f2", "f3", "a1", "a2"]
    assert campus.scopes() == [MAIN_MAP_SCOPE, "Science Block:1", "Annex:0"]


def test_flatten_tags_every_node_with_its_container(campus: FlatGraph) -> None:
    """Floor nodes carry building and floor; main map nodes carry neither."""
    library = campus.node("m2")
    lab = campus.node("f2")

    assert library is not None and lab is not None
    assert library.location == "main_map"
    assert library.building is None
    assert library.location_label() == "Main Map"

    assert lab.location == "building"
    assert lab.building == "Science Block"
    assert lab.floor == 1
    assert lab.location_label() == "Science Block Floor 1"
    assert lab.to_dict()["building"] == "Science Block"


def test_parse_accepts_populated_and_bare_endpoint_references(campus: FlatGraph) -> None:
    """Populated `from`/`to` objects resolve to the same ids as bare ids."""
    edges = {e.id: e for e in campus.edges_for([MAIN_MAP_SCOPE])}

    assert (edges["e1"].from_id, edges["e1"].to_id) == ("m1", "m2")
    assert (edges["e2"].from_id, edges["e2"].to_id) == ("m1", "m3")
    assert edges["e1"].direction is Direction.SW_NE


def test_parse_treats_missing_collections_as_empty() -> None:
    """A document with no arrays still parses to an empty graph."""
    graph = parse_map_graph({"buildings": [{"name": "Hall"}]})
    flat = flatten(graph)

    assert graph.nodes == []
    assert graph.connections == []
    assert graph.buildings[0].floors == []
    assert flat.nodes == []
    assert parse_map_graph(None).nodes == []


def test_parse_unwraps_mapdata_envelope(abc_document: dict) -> None:
    """Documents stored as `{"mapdata": {...}}` parse like bare documents."""
    flat = flatten(parse_map_graph({"mapdata": abc_document}))
    assert [n.id for n in flat.nodes] == ["A", "B", "C"]


def test_parse_maps_unknown_type_and_direction_leniently() -> None:
    """Unknown node types become `other`; unknown compass tags are dropped."""
    graph = parse_map_graph(
        {
            "nodes": [{"_id": "x", "name": "Kiosk", "type": "Booth"}, {"_id": "y", "name": "Gate", "type": "EXIT"}],
            "connections": [{"_id": "xy", "from": "x", "to": "y", "direction": "UP", "distance": 4}],
        }
    )

    assert graph.nodes[0].type is NodeType.OTHER
    assert graph.nodes[1].type is NodeType.EXIT
    assert graph.connections[0].direction is None
    assert graph.connections[0].distance == 4.0


def test_direction_reversed_swaps_heading() -> None:
    assert Direction.N_S.reversed() is Direction.S_N
    assert Direction.NE_SW.reversed() is Direction.SW_NE


def test_edge_length_is_euclidean() -> None:
    assert edge_length(Node(id="a", name="a"), Node(id="b", name="b", x=3, y=4)) == pytest.approx(5.0)


def test_connector_weight_is_zero_even_with_stored_distance(campus: FlatGraph) -> None:
    """Cross-scope edges cost nothing; in-scope edges cost their distance."""
    edges = {e.id: e for e in campus.edges_for(campus.scopes())}

    assert campus.is_connector(edges["e5"])
    assert campus.weight(edges["e5"]) == 0.0
    assert not campus.is_connector(edges["fe1"])
    assert campus.weight(edges["fe1"]) == 20.0


def test_missing_distance_falls_back_to_coordinates(abc_document: dict) -> None:
    """A null stored distance is measured from node coordinates."""
    abc_document["connections"][0]["distance"] = None
    flat = flatten(parse_map_graph(abc_document))
    edge = flat.edges_for([MAIN_MAP_SCOPE])[0]

    assert edge.distance is None
    assert flat.weight(edge) == pytest.approx(5.0)


def test_duplicate_ids_resolve_to_first_owner() -> None:
    """Lookup by id returns the first container that declared the node."""
    flat = flatten(
        parse_map_graph(
            {
                "nodes": [{"_id": "dup", "name": "Outside"}],
                "buildings": [{"name": "B", "floors": [{"floorNumber": 2, "nodes": [{"_id": "dup", "name": "Inside"}]}]}],
            }
        )
    )

    assert len(flat.nodes) == 2
    assert flat.node("dup").name == "Outside"
    assert flat.scope_of("dup") == MAIN_MAP_SCOPE
    assert flat.scope_of("missing") is None
