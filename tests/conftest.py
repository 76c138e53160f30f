"""Pytest global fixtures and test isolation hooks."""

from __future__ import annotations

import copy
from typing import Any, Callable

import pytest

from naviq.api import STATE
from naviq.graph_store import FlatGraph, flatten, parse_map_graph


def _node(node_id: str, name: str, x: float, y: float, node_type: str = "other", description: str = "") -> dict:
    return {"_id": node_id, "name": name, "type": node_type, "description": description, "x": x, "y": y}


def _edge(edge_id: str, a: Any, b: Any, distance: float | None, direction: str = "N-S") -> dict:
    return {
        "_id": edge_id,
        "from": a,
        "to": b,
        "direction": direction,
        "distance": distance,
        "left_reference_nodes": [],
        "right_reference_nodes": [],
    }


CAMPUS_DOCUMENT: dict[str, Any] = {
    "nodes": [
        _node("m1", "Main Gate", 0, 0, "entrance"),
        _node("m2", "Library", 30, 40, "room", "quiet reading space"),
        _node("m3", "Cafeteria", 30, 0, "room"),
        _node("m4", "Pond", 60, 40),
        _node("m5", "b1-entrance connector", 100, 40),
        _node("m6", "Old Shed", 500, 500),
    ],
    "connections": [
        _edge("e1", _node("m1", "Main Gate", 0, 0, "entrance"), _node("m2", "Library", 30, 40, "room"), 50.0, "SW-NE"),
        _edge("e2", "m1", "m3", 30.0, "W-E"),
        _edge("e3", "m2", "m4", 30.0, "W-E"),
        _edge("e4", "m4", "m5", 40.0, "W-E"),
        # Cross-level connector into the Science Block entrance; routed at zero cost.
        _edge("e5", "m5", "f1", 12.0, "N-S"),
    ],
    "buildings": [
        {
            "name": "Science Block",
            "floors": [
                {
                    "floorNumber": 1,
                    "mapImage": "science-1.png",
                    "width": 800,
                    "height": 600,
                    "nodes": [
                        _node("f1", "entrance1", 10, 10, "entrance"),
                        _node("f2", "Physics Lab", 10, 30, "room"),
                        _node("f3", "Washroom", 40, 30),
                    ],
                    "connections": [
                        _edge("fe1", "f1", "f2", 20.0, "N-S"),
                        _edge("fe2", "f2", "f3", 30.0, "W-E"),
                    ],
                }
            ],
        },
        {
            "name": "Annex",
            "floors": [
                {
                    "floorNumber": 0,
                    "mapImage": "annex-0.png",
                    "width": 400,
                    "height": 300,
                    "nodes": [
                        _node("a1", "Annex Hall", 0, 0, "room"),
                        _node("a2", "Annex Store", 0, 10, "room"),
                    ],
                    "connections": [_edge("ae1", "a1", "a2", 10.0, "N-S")],
                }
            ],
        },
    ],
}

ABC_DOCUMENT: dict[str, Any] = {
    "nodes": [
        _node("A", "A", 0, 0),
        _node("B", "B", 3, 4),
        _node("C", "C", 3, 14),
    ],
    "connections": [
        _edge("ab", "A", "B", 5.0),
        _edge("bc", "B", "C", 10.0),
    ],
}


@pytest.fixture(autouse=True)
def reset_service_state() -> None:
    """Reset in-memory API state before each test."""
    if STATE.resolver is not None:
        STATE.resolver.close()
    STATE.graphs.clear()
    STATE.resolver = None


@pytest.fixture()
def campus_document() -> dict[str, Any]:
    return copy.deepcopy(CAMPUS_DOCUMENT)


@pytest.fixture()
def campus(campus_document: dict[str, Any]) -> FlatGraph:
    return flatten(parse_map_graph(campus_document))


@pytest.fixture()
def abc_document() -> dict[str, Any]:
    return copy.deepcopy(ABC_DOCUMENT)


@pytest.fixture()
def abc(abc_document: dict[str, Any]) -> FlatGraph:
    return flatten(parse_map_graph(abc_document))


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 0.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeTimer:
    """Timer double that only fires when told to."""

    def __init__(self, interval_s: float, callback: Callable[[], None]) -> None:
        self.interval_s = interval_s
        self.callback = callback
        self.started = False
        self.cancelled = False

    def start(self) -> None:
        self.started = True

    def cancel(self) -> None:
        self.cancelled = True

    def fire(self) -> None:
        if self.started and not self.cancelled:
            self.callback()


class FakeTimerFactory:
    def __init__(self) -> None:
        self.timers: list[FakeTimer] = []

    def __call__(self, interval_s: float, callback: Callable[[], None]) -> FakeTimer:
        timer = FakeTimer(interval_s, callback)
        self.timers.append(timer)
        return timer


@pytest.fixture()
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def fake_timers() -> FakeTimerFactory:
    return FakeTimerFactory()
