"""Unit tests for naviq.graph_validation."""

from __future__ import annotations

from naviq.graph_store import parse_map_graph
from naviq.graph_validation import validate_map_graph


def test_campus_graph_passes_with_connector_note(campus_document: dict) -> None:
    """Well-formed graph is ok; the stored connector distance is informational."""
    report = validate_map_graph(parse_map_graph(campus_document))

    assert report["ok"] is True
    assert report["summary"]["nodes"] == 11
    assert report["summary"]["scopes"] == 3
    assert report["summary"]["connectors"] == 1
    assert report["summary"]["errors"] == 0

    kinds = {(i["kind"], i["edge_id"]) for i in report["issues"]}
    assert ("connector_distance", "e5") in kinds


def test_dangling_edge_is_an_error(abc_document: dict) -> None:
    abc_document["connections"].append({"_id": "bz", "from": "B", "to": "Z", "distance": 1})

    report = validate_map_graph(parse_map_graph(abc_document))

    assert report["ok"] is False
    assert report["summary"]["errors"] == 1
    assert report["issues"][0]["kind"] == "dangling_edge"
    assert "'Z'" in report["issues"][0]["message"]


def test_distance_mismatch_and_self_loop_are_warnings(abc_document: dict) -> None:
    """Stored distance far from coordinates and self loops are flagged."""
    abc_document["connections"][1]["distance"] = 99.0
    abc_document["connections"].append({"_id": "aa", "from": "A", "to": "A", "distance": 0})

    report = validate_map_graph(parse_map_graph(abc_document))
    kinds = [i["kind"] for i in report["issues"]]

    assert report["ok"] is True
    assert report["summary"]["warnings"] == 2
    assert "distance_mismatch" in kinds
    assert "self_loop" in kinds


def test_duplicate_node_ids_are_errors() -> None:
    graph = parse_map_graph(
        {
            "nodes": [{"_id": "n1", "name": "Gate"}],
            "buildings": [{"name": "Hall", "floors": [{"floorNumber": 1, "nodes": [{"_id": "n1", "name": "Lobby"}]}]}],
        }
    )

    report = validate_map_graph(graph)

    assert report["ok"] is False
    assert report["issues"][0]["kind"] == "duplicate_node"
    assert report["issues"][0]["scope"] == "Hall:1"


def test_negative_distance_is_an_error(abc_document: dict) -> None:
    """Negative in-scope distances fail routing, so the graph is not ok."""
    abc_document["connections"][0]["distance"] = -5

    report = validate_map_graph(parse_map_graph(abc_document))

    assert report["ok"] is False
    assert [(i["kind"], i["severity"], i["edge_id"]) for i in report["issues"]] == [
        ("negative_distance", "error", "ab")
    ]
