"""Read-only analytics over a graph snapshot.

Every function takes a :class:`GraphSnapshot` (or plain node/edge lists) and
returns JSON-ready dicts; nothing here mutates the graph.
"""

from __future__ import annotations

from collections import Counter
from typing import Any, Callable, Iterable

from . import confidence as conf
from .models import TEMPORAL_EDGE_TYPES, Edge, EdgeType, GraphSnapshot, Node, NodeType

HIGH_PRIORITY_GAP_IMPACT = 0.7
WEAK_CAUSAL_BELOW = 0.4
STRONG_CAUSAL_FROM = 0.7
TOP_N = 5


def density(node_count: int, edge_count: int) -> float:
    """Directed graph density; 0 for graphs with fewer than two nodes."""
    if node_count < 2:
        return 0.0
    return edge_count / (node_count * (node_count - 1))


def edge_type_distribution(edges: Iterable[Edge]) -> dict[str, int]:
    return dict(Counter(e.edge_type.value for e in edges))


def disciplinary_coverage(nodes: Iterable[Node]) -> list[str]:
    seen: dict[str, None] = {}
    for node in nodes:
        for tag in node.disciplinary_tags:
            seen.setdefault(tag, None)
    return list(seen)


def causal_strength_distribution(edges: Iterable[Edge]) -> dict[str, int]:
    """Bucket causal edges by mean edge confidence."""
    out = {"weak": 0, "moderate": 0, "strong": 0}
    for edge in edges:
        score = conf.aggregate(edge.metadata.confidence)
        if score < WEAK_CAUSAL_BELOW:
            out["weak"] += 1
        elif score < STRONG_CAUSAL_FROM:
            out["moderate"] += 1
        else:
            out["strong"] += 1
    return out


def temporal_pattern_distribution(edges: Iterable[Edge]) -> dict[str, int]:
    return edge_type_distribution(e for e in edges if e.edge_type in TEMPORAL_EDGE_TYPES)


def _of_type(snapshot: GraphSnapshot, node_type: NodeType) -> list[Node]:
    return [n for n in snapshot.vertices.values() if n.node_type is node_type]


def subgraph_insights(nodes: list[Node], edges: list[Edge], limit: int = 3) -> dict[str, Any]:
    by_conf = sorted(nodes, key=lambda n: conf.aggregate(n.confidence), reverse=True)[:limit]
    by_impact = sorted(nodes, key=lambda n: n.impact_score, reverse=True)[:limit]
    return {
        "most_confident_nodes": [
            {"id": n.node_id, "label": n.label, "confidence": conf.aggregate(n.confidence)} for n in by_conf
        ],
        "highest_impact_nodes": [
            {"id": n.node_id, "label": n.label, "impact": n.impact_score} for n in by_impact
        ],
        "edge_type_distribution": edge_type_distribution(edges),
        "disciplinary_coverage": disciplinary_coverage(nodes),
    }


def gap_insights(snapshot: GraphSnapshot) -> dict[str, Any]:
    gaps = _of_type(snapshot, NodeType.PLACEHOLDER_GAP)
    return {
        "total_gaps_identified": len(gaps),
        "high_priority_gaps": [
            {"id": n.node_id, "label": n.label, "impact": n.impact_score}
            for n in gaps
            if n.impact_score > HIGH_PRIORITY_GAP_IMPACT
        ],
        "research_recommendations": [
            f"Investigate {n.label} (Impact: {n.impact_score:.2f})" for n in gaps[:TOP_N]
        ],
    }


def intervention_insights(snapshot: GraphSnapshot) -> dict[str, Any]:
    planned = [n for n in _of_type(snapshot, NodeType.HYPOTHESIS) if n.plan]
    ranked = sorted(planned, key=lambda n: n.impact_score, reverse=True)[:TOP_N]
    return {
        "potential_interventions": len(planned),
        "recommended_actions": [
            {
                "hypothesis": n.label,
                "plan": n.plan,
                "impact": n.impact_score,
                "confidence": conf.aggregate(n.confidence),
            }
            for n in ranked
        ],
    }


def causality_insights(snapshot: GraphSnapshot) -> dict[str, Any]:
    causal = [e for e in snapshot.edges.values() if e.edge_type is EdgeType.CAUSAL]
    strongest = sorted(causal, key=lambda e: conf.aggregate(e.metadata.confidence), reverse=True)[:TOP_N]
    return {
        "causal_relationships_identified": len(causal),
        "strongest_causal_links": [
            {
                "source": e.source,
                "target": e.target,
                "confidence": conf.aggregate(e.metadata.confidence),
                "mechanism": e.metadata.causal_metadata.mechanism if e.metadata.causal_metadata else None,
            }
            for e in strongest
        ],
        "causal_strength_distribution": causal_strength_distribution(causal),
    }


def temporal_insights(snapshot: GraphSnapshot) -> dict[str, Any]:
    temporal = [e for e in snapshot.edges.values() if e.edge_type in TEMPORAL_EDGE_TYPES]
    delays = [
        e.metadata.temporal_metadata.delay_duration
        for e in temporal
        if e.metadata.temporal_metadata and e.metadata.temporal_metadata.delay_duration is not None
    ]
    return {
        "temporal_relationships_found": len(temporal),
        "temporal_patterns": temporal_pattern_distribution(temporal),
        "mean_delay_days": sum(delays) / len(delays) if delays else None,
    }


def interdisciplinary_insights(snapshot: GraphSnapshot) -> dict[str, Any]:
    bridges = _of_type(snapshot, NodeType.INTERDISCIPLINARY_BRIDGE)
    return {
        "interdisciplinary_bridges": len(bridges),
        "disciplines_connected": len(disciplinary_coverage(snapshot.vertices.values())),
        "cross_disciplinary_opportunities": [
            {
                "id": n.node_id,
                "label": n.label,
                "disciplines": list(n.disciplinary_tags),
                "potential_impact": n.impact_score,
            }
            for n in bridges
        ],
    }


FOCUS_AREAS: dict[str, Callable[[GraphSnapshot], dict[str, Any]]] = {
    "gaps": gap_insights,
    "interventions": intervention_insights,
    "causality": causality_insights,
    "temporal_patterns": temporal_insights,
    "interdisciplinary": interdisciplinary_insights,
}


def research_insights(snapshot: GraphSnapshot, focus_area: str = "gaps") -> dict[str, Any]:
    """Insights for one focus area. Raises ``ValueError`` for an unknown area."""
    try:
        build = FOCUS_AREAS[focus_area]
    except KeyError:
        raise ValueError(
            f"Unknown focus area: {focus_area} (expected one of {', '.join(FOCUS_AREAS)})"
        ) from None
    return build(snapshot)
