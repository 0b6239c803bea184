"""Approximate topology metrics.

These are cheap stand-ins, recomputed on demand: centrality is normalised
degree, betweenness is degree over node count (no shortest paths), and the
clustering coefficient counts linked neighbour pairs. O(degree^2) per node.
"""

from __future__ import annotations

from typing import Iterable

from .models import Edge, TopologyMetrics


def neighbors(edges: Iterable[Edge], node_id: str) -> list[str]:
    out: list[str] = []
    for e in edges:
        if e.source == node_id and e.target not in out:
            out.append(e.target)
        elif e.target == node_id and e.source not in out:
            out.append(e.source)
    return out


def degree(edges: Iterable[Edge], node_id: str) -> int:
    return sum(1 for e in edges if e.touches(node_id))


def centrality(edges: Iterable[Edge], node_id: str, node_count: int) -> float:
    if node_count <= 1:
        return 0.0
    return min(1.0, degree(edges, node_id) / (node_count - 1))


def betweenness(edges: Iterable[Edge], node_id: str, node_count: int) -> float:
    if node_count <= 0:
        return 0.0
    return degree(edges, node_id) / node_count


def clustering_coefficient(edges: Iterable[Edge], node_id: str) -> float:
    edges = list(edges)
    nbrs = neighbors(edges, node_id)
    if len(nbrs) < 2:
        return 0.0

    linked = {frozenset((e.source, e.target)) for e in edges}
    possible = len(nbrs) * (len(nbrs) - 1) / 2
    triangles = sum(
        1
        for i, a in enumerate(nbrs)
        for b in nbrs[i + 1 :]
        if frozenset((a, b)) in linked
    )
    return triangles / possible


def compute_metrics(edges: Iterable[Edge], node_id: str, node_count: int) -> TopologyMetrics:
    edges = list(edges)
    return TopologyMetrics(
        degree=degree(edges, node_id),
        centrality=centrality(edges, node_id, node_count),
        clustering_coefficient=clustering_coefficient(edges, node_id),
        betweenness=betweenness(edges, node_id, node_count),
    )
