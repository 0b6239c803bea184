from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from typing import Any

from . import confidence as conf
from .models import Node, NodeType
from .store import GraphStore


@dataclass(slots=True)
class GraphQueryEngine:
    """Convenience layer for common read-only traversals.

    Keeps host-facing lookups out of the store itself; nothing here mutates
    graph state.
    """

    store: GraphStore

    def get_node(self, node_id: str) -> dict[str, Any] | None:
        node = self.store.get_node(node_id)
        return node.to_dict() if node else None

    def expand(self, node_id: str, *, depth: int = 1, limit: int = 200) -> dict[str, Any]:
        """Breadth-first neighbourhood of ``node_id`` up to ``depth`` hops."""
        if not self.store.has_node(node_id):
            return {"nodes": [], "edges": []}

        seen = {node_id}
        frontier = deque([(node_id, 0)])
        while frontier and len(seen) < limit:
            current, hops = frontier.popleft()
            if hops >= depth:
                continue
            for nbr in self.store.neighbors(current):
                if nbr not in seen:
                    seen.add(nbr)
                    frontier.append((nbr, hops + 1))
                    if len(seen) >= limit:
                        break

        edges = [e for e in self.store.edges() if e.source in seen and e.target in seen]
        return {
            "nodes": [self.store.get_node(n).to_dict() for n in seen],
            "edges": [e.to_dict() for e in edges],
        }

    def shortest_path(self, src_id: str, dst_id: str, *, max_hops: int = 6) -> list[str] | None:
        """Undirected shortest path as a list of node ids, or None."""
        if not (self.store.has_node(src_id) and self.store.has_node(dst_id)):
            return None
        if src_id == dst_id:
            return [src_id]

        parents: dict[str, str | None] = {src_id: None}
        frontier = deque([(src_id, 0)])
        while frontier:
            current, hops = frontier.popleft()
            if hops >= max_hops:
                continue
            for nbr in self.store.neighbors(current):
                if nbr in parents:
                    continue
                parents[nbr] = current
                if nbr == dst_id:
                    path = [nbr]
                    while parents[path[-1]] is not None:
                        path.append(parents[path[-1]])
                    return path[::-1]
                frontier.append((nbr, hops + 1))
        return None

    def top_nodes(self, node_type: NodeType | None = None, *, limit: int = 5) -> list[Node]:
        """Nodes ranked by weighted confidence score, then impact."""
        ranked = sorted(
            self.store.nodes(node_type),
            key=lambda n: (conf.weighted_score(n.confidence), n.impact_score),
            reverse=True,
        )
        return ranked[:limit]
