"""Quality gate checks for venue graphs before they are used for routing."""

from __future__ import annotations

from typing import Any

from naviq.graph_store import FlatGraph, MapGraph, edge_length, flatten


def _issue(kind: str, severity: str, scope: str, edge_id: str | None, message: str) -> dict[str, Any]:
    return {
        "kind": kind,
        "severity": severity,
        "scope": scope,
        "edge_id": edge_id,
        "message": message,
    }


def validate_map_graph(
    graph: MapGraph,
    flat: FlatGraph | None = None,
    distance_tolerance_px: float = 1.0,
) -> dict[str, Any]:
    """Validate edge endpoints, container ownership and stored distances."""
    flat = flat if flat is not None else flatten(graph)
    issues: list[dict[str, Any]] = []
    edge_checks = 0
    connector_count = 0

    seen: dict[str, str] = {}
    for located in flat.nodes:
        if located.id in seen:
            issues.append(
                _issue(
                    "duplicate_node",
                    "error",
                    located.scope,
                    None,
                    f"Node id {located.id} is also owned by {seen[located.id]}",
                )
            )
            continue
        seen[located.id] = located.scope

    for scope, edges in flat.scoped_edges.items():
        for edge in edges:
            edge_checks += 1
            a = flat.node(edge.from_id)
            b = flat.node(edge.to_id)

            if a is None or b is None:
                missing = edge.from_id if a is None else edge.to_id
                issues.append(
                    _issue("dangling_edge", "error", scope, edge.id, f"Endpoint {missing!r} does not resolve to a node")
                )
                continue

            if a.id == b.id:
                issues.append(_issue("self_loop", "warning", scope, edge.id, "Edge connects a node to itself"))
                continue

            if a.scope != b.scope:
                connector_count += 1
                if scope not in (a.scope, b.scope):
                    issues.append(
                        _issue(
                            "misplaced_edge",
                            "warning",
                            scope,
                            edge.id,
                            f"Connector between {a.scope} and {b.scope} is stored under {scope}",
                        )
                    )
                if edge.distance:
                    issues.append(
                        _issue(
                            "connector_distance",
                            "info",
                            scope,
                            edge.id,
                            f"Cross-level connector stores distance {edge.distance:.2f}; routed as 0",
                        )
                    )
                continue

            if a.scope != scope:
                issues.append(
                    _issue(
                        "misplaced_edge",
                        "warning",
                        scope,
                        edge.id,
                        f"Both endpoints belong to {a.scope} but the edge is stored under {scope}",
                    )
                )

            if edge.distance is not None and edge.distance < 0:
                issues.append(
                    _issue(
                        "negative_distance",
                        "error",
                        scope,
                        edge.id,
                        f"Stored distance {edge.distance:.2f} is negative; routes through {scope} will fail",
                    )
                )
            elif edge.distance is not None:
                expected = edge_length(a.node, b.node)
                if abs(expected - float(edge.distance)) > float(distance_tolerance_px):
                    issues.append(
                        _issue(
                            "distance_mismatch",
                            "warning",
                            scope,
                            edge.id,
                            f"Stored distance {edge.distance:.2f} differs from coordinates ({expected:.2f})",
                        )
                    )

    error_count = sum(1 for issue in issues if issue.get("severity") == "error")
    warning_count = sum(1 for issue in issues if issue.get("severity") == "warning")

    return {
        "ok": error_count == 0,
        "summary": {
            "nodes": len(flat.nodes),
            "scopes": len(flat.scoped_edges),
            "edge_checks": edge_checks,
            "connectors": connector_count,
            "errors": error_count,
            "warnings": warning_count,
        },
        "issues": issues,
    }
