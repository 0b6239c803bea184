from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Iterable, Mapping, Protocol

from ..errors import GraphReferenceError, GraphValidationError, StaleWriterError
from . import confidence as conf
from .models import (
    ConfidenceVector,
    Edge,
    EdgeMetadata,
    EdgeType,
    GraphSnapshot,
    Hyperedge,
    Node,
    NodeType,
    RevisionEntry,
    StatisticalPower,
    Subgraph,
    SubgraphCriteria,
    TopologyMetrics,
    new_id,
    utcnow,
)
from . import topology

logger = logging.getLogger(__name__)

BRIDGE_SIMILARITY_THRESHOLD = 0.5
MERGE_OVERLAP_THRESHOLD = 0.8
FALLBACK_SAMPLE_SIZE = 5


class WriteToken(Protocol):
    """Anything that can tell a session its owner has been abandoned."""

    @property
    def cancelled(self) -> bool: ...


@dataclass(frozen=True, slots=True)
class Evidence:
    """Reliability (and optional power record) behind a confidence update."""

    reliability: float = 0.5
    statistical_power: StatisticalPower | None = None


@dataclass(frozen=True, slots=True)
class BridgeOutcome:
    """Result of a bridge-synthesis attempt. ``bridge_id`` is set iff created."""

    bridge_id: str | None = None
    reason: str = "created"
    edge_ids: tuple[str, ...] = ()

    @property
    def created(self) -> bool:
        return self.bridge_id is not None


def tag_overlap(a: Iterable[str], b: Iterable[str]) -> float:
    """Jaccard overlap of two tag collections."""
    sa, sb = set(a), set(b)
    union = sa | sb
    return len(sa & sb) / len(union) if union else 0.0


def _coerce(cls, metadata):
    """Copy a record, or build one from a mapping; bad mappings become GraphValidationError."""
    if not isinstance(metadata, Mapping):
        return replace(metadata)
    try:
        return cls.from_mapping(metadata)
    except (KeyError, TypeError, ValueError) as e:
        raise GraphValidationError(f"Invalid {cls.__name__} metadata: {e}") from e


def _union(*groups: Iterable[str]) -> list[str]:
    out: list[str] = []
    for group in groups:
        for item in group:
            if item not in out:
                out.append(item)
    return out


class GraphStore:
    """In-memory, single-writer reasoning graph.

    Owns nodes, edges, hyperedges and the layer index. Not thread-safe and not
    meant to be shared between pipeline runs; create one store per run.
    """

    def __init__(self) -> None:
        self._nodes: dict[str, Node] = {}
        self._edges: dict[str, Edge] = {}
        self._hyperedges: dict[str, Hyperedge] = {}
        self._layers: dict[str, list[str]] = {}
        self.timestamp: datetime = utcnow()

    # ------------------------------------------------------------------
    # Nodes
    # ------------------------------------------------------------------

    def add_node(self, metadata: Node | Mapping[str, Any]) -> str:
        node = _coerce(Node, metadata)
        if not node.node_id:
            raise GraphValidationError("Invalid metadata: node_id is required")
        if node.node_type is None:
            raise GraphValidationError(f"Invalid metadata for {node.node_id}: type is required")

        if node.node_id in self._nodes:
            fresh = new_id()
            logger.warning("Node %s already exists, generating new ID %s", node.node_id, fresh)
            node.node_id = fresh

        node.impact_score = conf.clamp(node.impact_score)
        node.disciplinary_tags = list(node.disciplinary_tags)
        node.bias_flags = list(node.bias_flags)
        node.revision_history = list(node.revision_history) or [
            RevisionEntry("Node created", timestamp=node.timestamp)
        ]
        # Creation must not postdate any revision (merged histories carry older entries).
        earliest = min(r.timestamp for r in node.revision_history)
        if earliest < node.timestamp:
            node.timestamp = earliest

        self._nodes[node.node_id] = node
        if node.layer_id:
            self._layers.setdefault(node.layer_id, []).append(node.node_id)

        self._touch()
        return node.node_id

    def get_node(self, node_id: str) -> Node | None:
        return self._nodes.get(node_id)

    def has_node(self, node_id: str) -> bool:
        return node_id in self._nodes

    def nodes(self, node_type: NodeType | None = None) -> list[Node]:
        if node_type is None:
            return list(self._nodes.values())
        return [n for n in self._nodes.values() if n.node_type is node_type]

    def update_node_confidence(
        self,
        node_id: str,
        likelihood: ConfidenceVector,
        evidence: Evidence | None = None,
    ) -> bool:
        """Bayesian-update a node's confidence. Returns False if the node is absent."""
        node = self._nodes.get(node_id)
        if node is None:
            return False

        ev = evidence or Evidence()
        node.confidence = conf.bayesian_update(
            node.confidence, likelihood, ev.reliability, ev.statistical_power
        )
        node.revision_history.append(RevisionEntry("Confidence updated via Bayesian inference"))
        self._touch()
        return True

    def apply_decay(self, node_id: str, half_life_days: float = 365.0, *, degraded: bool = False) -> bool:
        node = self._nodes.get(node_id)
        if node is None:
            return False

        age_days = max(0.0, (utcnow() - node.timestamp).total_seconds() / 86400.0)
        node.confidence = conf.decay(node.confidence, age_days, half_life_days, degraded=degraded)
        node.revision_history.append(RevisionEntry(f"Temporal decay applied (age {age_days:.2f}d)"))
        self._touch()
        return True

    def remove_node(self, node_id: str) -> bool:
        if self._nodes.pop(node_id, None) is None:
            return False

        for ids in self._layers.values():
            if node_id in ids:
                ids.remove(node_id)

        for edge_id in [eid for eid, e in self._edges.items() if e.touches(node_id)]:
            del self._edges[edge_id]

        self._touch()
        return True

    # ------------------------------------------------------------------
    # Edges / hyperedges
    # ------------------------------------------------------------------

    def add_edge(self, source_id: str, target_id: str, metadata: EdgeMetadata | Mapping[str, Any]) -> str:
        meta = _coerce(EdgeMetadata, metadata)
        if not source_id or not target_id or not meta.edge_id:
            raise GraphValidationError(
                "Invalid edge parameters: source_id, target_id and edge_id are required"
            )
        if source_id not in self._nodes:
            raise GraphReferenceError(source_id, "source")
        if target_id not in self._nodes:
            raise GraphReferenceError(target_id, "target")

        if meta.edge_id in self._edges:
            fresh = new_id()
            logger.warning("Edge %s already exists, generating new ID %s", meta.edge_id, fresh)
            meta.edge_id = fresh

        edge = Edge(source=source_id, target=target_id, metadata=meta)
        self._edges[edge.id] = edge
        self._touch()
        return edge.id

    def remove_edge(self, edge_id: str) -> bool:
        if self._edges.pop(edge_id, None) is None:
            return False
        self._touch()
        return True

    def get_edge(self, edge_id: str) -> Edge | None:
        return self._edges.get(edge_id)

    def has_edge(self, edge_id: str) -> bool:
        return edge_id in self._edges

    def edges(self) -> list[Edge]:
        return list(self._edges.values())

    def incident_edges(self, node_id: str) -> list[Edge]:
        return [e for e in self._edges.values() if e.touches(node_id)]

    def add_hyperedge(
        self,
        node_ids: Iterable[str],
        metadata: EdgeMetadata | Mapping[str, Any],
        *,
        strict: bool = False,
    ) -> str:
        """Register a hyperedge over two or more nodes.

        Membership is not checked against the store unless ``strict`` is set;
        hyperedges are annotations and may outlive pruned members.
        """
        meta = _coerce(EdgeMetadata, metadata)
        members = list(dict.fromkeys(node_ids))
        if len(members) < 2:
            raise GraphValidationError("A hyperedge needs at least two distinct nodes")
        if not meta.edge_id:
            meta.edge_id = new_id()
        if strict:
            for nid in members:
                if nid not in self._nodes:
                    raise GraphReferenceError(nid, "member")

        if meta.edge_id in self._hyperedges:
            meta.edge_id = new_id()

        hyperedge = Hyperedge(nodes=members, metadata=meta)
        self._hyperedges[hyperedge.id] = hyperedge
        self._touch()
        return hyperedge.id

    def get_hyperedge(self, hyperedge_id: str) -> Hyperedge | None:
        return self._hyperedges.get(hyperedge_id)

    # ------------------------------------------------------------------
    # Bridges, pruning, merging
    # ------------------------------------------------------------------

    def create_interdisciplinary_bridge(
        self, source_id: str, target_id: str, semantic_similarity: float
    ) -> BridgeOutcome:
        source = self._nodes.get(source_id)
        target = self._nodes.get(target_id)
        if source is None or target is None:
            return BridgeOutcome(reason="missing_endpoint")
        if set(source.disciplinary_tags) & set(target.disciplinary_tags):
            return BridgeOutcome(reason="shared_tags")
        if semantic_similarity <= BRIDGE_SIMILARITY_THRESHOLD:
            return BridgeOutcome(reason="low_similarity")

        bridge_id = self.add_node(
            Node(
                node_id=new_id(),
                label=f"IBN: {source.label} <-> {target.label}",
                node_type=NodeType.INTERDISCIPLINARY_BRIDGE,
                provenance=f"Interdisciplinary bridge between {source_id} and {target_id}",
                epistemic_status="interdisciplinary_bridge",
                confidence=conf.average(source.confidence, target.confidence),
                impact_score=max(source.impact_score, target.impact_score),
                disciplinary_tags=_union(source.disciplinary_tags, target.disciplinary_tags),
                revision_history=[RevisionEntry("IBN created automatically")],
            )
        )
        first = self.add_edge(
            source_id,
            bridge_id,
            EdgeMetadata(edge_id=new_id(), edge_type=EdgeType.OTHER, confidence=source.confidence),
        )
        second = self.add_edge(
            bridge_id,
            target_id,
            EdgeMetadata(edge_id=new_id(), edge_type=EdgeType.OTHER, confidence=target.confidence),
        )
        logger.debug("Bridge %s created between %s and %s", bridge_id, source_id, target_id)
        return BridgeOutcome(bridge_id=bridge_id, edge_ids=(first, second))

    def prune_nodes(self, confidence_threshold: float = 0.2, impact_threshold: float = 0.1) -> list[str]:
        """Remove nodes that are BOTH low-confidence and low-impact."""
        doomed = [
            node_id
            for node_id, node in self._nodes.items()
            if conf.aggregate(node.confidence) < confidence_threshold
            and node.impact_score < impact_threshold
        ]
        for node_id in doomed:
            self.remove_node(node_id)
        if doomed:
            logger.info("Pruned %d nodes", len(doomed))
        return doomed

    def merge_nodes(self, node_id_a: str, node_id_b: str, semantic_overlap: float) -> str | None:
        if semantic_overlap < MERGE_OVERLAP_THRESHOLD or node_id_a == node_id_b:
            return None
        a = self._nodes.get(node_id_a)
        b = self._nodes.get(node_id_b)
        if a is None or b is None:
            return None

        merged_id = self.add_node(
            Node(
                node_id=new_id(),
                label=f"{a.label} + {b.label}",
                node_type=a.node_type,
                provenance=f"Merged from {node_id_a} and {node_id_b}",
                epistemic_status="merged",
                confidence=conf.average(a.confidence, b.confidence),
                impact_score=max(a.impact_score, b.impact_score),
                disciplinary_tags=_union(a.disciplinary_tags, b.disciplinary_tags),
                bias_flags=_union(a.bias_flags, b.bias_flags),
                revision_history=[
                    *a.revision_history,
                    *b.revision_history,
                    RevisionEntry("Node created by merging"),
                ],
                layer_id=a.layer_id or b.layer_id,
                falsification_criteria=a.falsification_criteria or b.falsification_criteria,
                plan=a.plan or b.plan,
                statistical_power=a.statistical_power or b.statistical_power,
            )
        )
        self._rewire(node_id_a, merged_id)
        self._rewire(node_id_b, merged_id)
        self.remove_node(node_id_a)
        self.remove_node(node_id_b)
        return merged_id

    def _rewire(self, from_id: str, to_id: str) -> None:
        for edge_id, edge in list(self._edges.items()):
            if edge.source == from_id:
                edge.source = to_id
            if edge.target == from_id:
                edge.target = to_id
            if edge.source == edge.target == to_id:
                del self._edges[edge_id]

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def extract_subgraph(self, criteria: SubgraphCriteria | None = None) -> Subgraph:
        criteria = criteria or SubgraphCriteria()
        result = Subgraph()

        for node in self._nodes.values():
            try:
                if self._matches(node, criteria):
                    result.nodes.append(node)
            except (AttributeError, TypeError, ValueError) as e:
                logger.warning("Skipping malformed node %s during extraction: %s", node.node_id, e)
                result.skipped.append(node.node_id)

        kept = result.node_ids()
        for edge in self._edges.values():
            if edge.source in kept and edge.target in kept:
                if not criteria.edge_types or edge.edge_type in criteria.edge_types:
                    result.edges.append(edge)

        if not result.nodes and self._nodes:
            logger.warning("Subgraph criteria matched nothing; returning fallback sample")
            return Subgraph(
                nodes=list(self._nodes.values())[:FALLBACK_SAMPLE_SIZE],
                fallback=True,
                skipped=result.skipped,
            )
        return result

    @staticmethod
    def _matches(node: Node, criteria: SubgraphCriteria) -> bool:
        if criteria.confidence_threshold is not None:
            if conf.aggregate(node.confidence) < criteria.confidence_threshold:
                return False
        if criteria.node_types and node.node_type not in criteria.node_types:
            return False
        if criteria.layer_ids and node.layer_id not in criteria.layer_ids:
            return False
        if criteria.impact_threshold is not None and node.impact_score < criteria.impact_threshold:
            return False
        if criteria.temporal_recency_days is not None:
            age_days = (utcnow() - node.timestamp).total_seconds() / 86400.0
            if age_days > criteria.temporal_recency_days:
                return False
        return True

    def neighbors(self, node_id: str) -> list[str]:
        return topology.neighbors(self._edges.values(), node_id)

    def update_topology_metrics(self, node_id: str) -> TopologyMetrics:
        metrics = topology.compute_metrics(self._edges.values(), node_id, len(self._nodes))
        node = self._nodes.get(node_id)
        if node is not None:
            node.topology_metrics = metrics
        return metrics

    def layer(self, layer_id: str) -> list[str]:
        return list(self._layers.get(layer_id, []))

    # ------------------------------------------------------------------
    # Snapshots / counts
    # ------------------------------------------------------------------

    def snapshot(self) -> GraphSnapshot:
        return GraphSnapshot(
            timestamp=self.timestamp,
            vertices=copy.deepcopy(self._nodes),
            edges=copy.deepcopy(self._edges),
            hyperedges=copy.deepcopy(self._hyperedges),
            layers=copy.deepcopy(self._layers),
        )

    get_state = snapshot

    @property
    def node_count(self) -> int:
        return len(self._nodes)

    @property
    def edge_count(self) -> int:
        return len(self._edges)

    @property
    def hyperedge_count(self) -> int:
        return len(self._hyperedges)

    def is_empty(self) -> bool:
        return not self._nodes and not self._edges

    def writer(self, token: WriteToken) -> GraphWriter:
        return GraphWriter(self, token)

    def _touch(self) -> None:
        self.timestamp = utcnow()


class GraphWriter:
    """Write session bound to a cancellation token.

    Every mutation checks the token first; once the owning phase has been
    abandoned the session rejects writes for good, so a timed-out phase can
    never touch the store after fallback output has been produced.
    Only the read methods in ``READS`` pass straight through to the store.
    """

    READS = frozenset(
        {
            "get_node",
            "has_node",
            "nodes",
            "get_edge",
            "has_edge",
            "edges",
            "incident_edges",
            "get_hyperedge",
            "neighbors",
            "layer",
            "extract_subgraph",
            "snapshot",
            "get_state",
            "node_count",
            "edge_count",
            "hyperedge_count",
            "is_empty",
        }
    )

    def __init__(self, store: GraphStore, token: WriteToken):
        self._store = store
        self._token = token

    def _check(self) -> None:
        if self._token.cancelled:
            raise StaleWriterError("write rejected: owning phase was abandoned")

    def add_node(self, metadata: Node | Mapping[str, Any]) -> str:
        self._check()
        return self._store.add_node(metadata)

    def add_edge(self, source_id: str, target_id: str, metadata: EdgeMetadata | Mapping[str, Any]) -> str:
        self._check()
        return self._store.add_edge(source_id, target_id, metadata)

    def add_hyperedge(self, node_ids: Iterable[str], metadata: EdgeMetadata | Mapping[str, Any], **kw) -> str:
        self._check()
        return self._store.add_hyperedge(node_ids, metadata, **kw)

    def update_node_confidence(self, node_id: str, likelihood: ConfidenceVector, evidence: Evidence | None = None) -> bool:
        self._check()
        return self._store.update_node_confidence(node_id, likelihood, evidence)

    def apply_decay(self, node_id: str, half_life_days: float = 365.0, *, degraded: bool = False) -> bool:
        self._check()
        return self._store.apply_decay(node_id, half_life_days, degraded=degraded)

    def update_topology_metrics(self, node_id: str) -> TopologyMetrics:
        self._check()
        return self._store.update_topology_metrics(node_id)

    def create_interdisciplinary_bridge(self, source_id: str, target_id: str, semantic_similarity: float) -> BridgeOutcome:
        self._check()
        return self._store.create_interdisciplinary_bridge(source_id, target_id, semantic_similarity)

    def prune_nodes(self, confidence_threshold: float = 0.2, impact_threshold: float = 0.1) -> list[str]:
        self._check()
        return self._store.prune_nodes(confidence_threshold, impact_threshold)

    def merge_nodes(self, node_id_a: str, node_id_b: str, semantic_overlap: float) -> str | None:
        self._check()
        return self._store.merge_nodes(node_id_a, node_id_b, semantic_overlap)

    def remove_node(self, node_id: str) -> bool:
        self._check()
        return self._store.remove_node(node_id)

    def remove_edge(self, edge_id: str) -> bool:
        self._check()
        return self._store.remove_edge(edge_id)

    def __getattr__(self, name: str) -> Any:
        if name in GraphWriter.READS:
            return getattr(self._store, name)
        raise AttributeError(f"{type(self).__name__} has no attribute {name!r}")
