from __future__ import annotations

import uuid
from dataclasses import asdict, dataclass, field, fields
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Mapping

DEFAULT_AUTHOR = "ASR-GoT System"


def utcnow() -> datetime:
    return datetime.now(UTC)


def new_id() -> str:
    return str(uuid.uuid4())


class NodeType(Enum):
    """Node variants of the reasoning graph."""

    ROOT = "root"
    DIMENSION = "dimension"
    HYPOTHESIS = "hypothesis"
    EVIDENCE = "evidence"
    PLACEHOLDER_GAP = "placeholder_gap"
    INTERDISCIPLINARY_BRIDGE = "interdisciplinary_bridge_node"


class EdgeType(Enum):
    """Typed relations between nodes."""

    # Basic
    CORRELATIVE = "correlative"
    SUPPORTIVE = "supportive"
    CONTRADICTORY = "contradictory"
    PREREQUISITE = "prerequisite"
    GENERALIZATION = "generalization"
    SPECIALIZATION = "specialization"
    OTHER = "other"

    # Causal
    CAUSAL = "causal"
    COUNTERFACTUAL = "counterfactual"
    CONFOUNDED = "confounded"

    # Temporal
    TEMPORAL_PRECEDENCE = "temporal_precedence"
    CYCLIC = "cyclic"
    DELAYED = "delayed"
    SEQUENTIAL = "sequential"


TEMPORAL_EDGE_TYPES = frozenset(
    {EdgeType.TEMPORAL_PRECEDENCE, EdgeType.CYCLIC, EdgeType.DELAYED, EdgeType.SEQUENTIAL}
)


def parse_timestamp(value: datetime | str) -> datetime:
    """Accept a datetime or an ISO-8601 string; naive values are taken as UTC."""
    if isinstance(value, str):
        value = datetime.fromisoformat(value)
    if not isinstance(value, datetime):
        raise TypeError(f"timestamp must be a datetime or ISO string, got {type(value).__name__}")
    return value if value.tzinfo else value.replace(tzinfo=UTC)


@dataclass(frozen=True, slots=True)
class ConfidenceVector:
    """Four independent epistemic-support dimensions, each in [0, 1].

    There is deliberately no ``float(vector)``; reduce through
    :func:`asr_got.knowledge_graph.confidence.aggregate` when a scalar is needed.
    """

    empirical_support: float = 0.5
    theoretical_basis: float = 0.5
    methodological_rigor: float = 0.5
    consensus_alignment: float = 0.5

    @classmethod
    def uniform(cls, value: float) -> ConfidenceVector:
        return cls(value, value, value, value)

    def as_tuple(self) -> tuple[float, float, float, float]:
        return (
            self.empirical_support,
            self.theoretical_basis,
            self.methodological_rigor,
            self.consensus_alignment,
        )

    def to_dict(self) -> dict[str, float]:
        return asdict(self)


@dataclass(frozen=True, slots=True)
class StatisticalPower:
    power: float | None = None
    sample_size: int | None = None
    effect_size: float | None = None
    confidence_interval: tuple[float, float] | None = None
    p_value: float | None = None


@dataclass(slots=True)
class TopologyMetrics:
    degree: int = 0
    centrality: float = 0.0
    clustering_coefficient: float = 0.0
    betweenness: float = 0.0


@dataclass(frozen=True, slots=True)
class RevisionEntry:
    change: str
    timestamp: datetime = field(default_factory=utcnow)
    author: str = DEFAULT_AUTHOR

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> RevisionEntry:
        return cls(
            change=data["change"],
            timestamp=parse_timestamp(data.get("timestamp") or utcnow()),
            author=data.get("author") or DEFAULT_AUTHOR,
        )


@dataclass
class Node:
    """A reasoning-graph node.

    ``node_id`` and ``node_type`` may be left empty on construction; the store
    rejects such nodes. Every other field has the default the store would fill.
    """

    node_id: str = ""
    label: str = ""
    node_type: NodeType | None = None
    timestamp: datetime = field(default_factory=utcnow)
    provenance: str = ""
    epistemic_status: str = ""
    confidence: ConfidenceVector = field(default_factory=ConfidenceVector)
    impact_score: float = 0.5
    disciplinary_tags: list[str] = field(default_factory=lambda: ["general"])
    bias_flags: list[str] = field(default_factory=list)
    revision_history: list[RevisionEntry] = field(default_factory=list)
    layer_id: str | None = None
    falsification_criteria: str | None = None
    plan: str | None = None
    statistical_power: StatisticalPower | None = None
    topology_metrics: TopologyMetrics | None = None
    attribution: str | None = None

    @property
    def id(self) -> str:
        return self.node_id

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> Node:
        known = {f.name for f in fields(cls)}
        kwargs = {k: v for k, v in data.items() if k in known}
        if "type" in data and "node_type" not in kwargs:
            kwargs["node_type"] = data["type"]
        if isinstance(kwargs.get("node_type"), str):
            kwargs["node_type"] = NodeType(kwargs["node_type"])
        if isinstance(kwargs.get("confidence"), Mapping):
            kwargs["confidence"] = ConfidenceVector(**kwargs["confidence"])
        if isinstance(kwargs.get("statistical_power"), Mapping):
            power = dict(kwargs["statistical_power"])
            if power.get("confidence_interval") is not None:
                power["confidence_interval"] = tuple(power["confidence_interval"])
            kwargs["statistical_power"] = StatisticalPower(**power)
        if isinstance(kwargs.get("topology_metrics"), Mapping):
            kwargs["topology_metrics"] = TopologyMetrics(**kwargs["topology_metrics"])
        if kwargs.get("timestamp") is not None:
            kwargs["timestamp"] = parse_timestamp(kwargs["timestamp"])
        else:
            kwargs.pop("timestamp", None)
        if "revision_history" in kwargs:
            kwargs["revision_history"] = [
                r if isinstance(r, RevisionEntry) else RevisionEntry.from_mapping(r)
                for r in kwargs["revision_history"] or []
            ]
        return cls(**kwargs)

    def to_dict(self) -> dict[str, Any]:
        return {
            "node_id": self.node_id,
            "label": self.label,
            "type": self.node_type.value if self.node_type else None,
            "timestamp": self.timestamp.isoformat(),
            "provenance": self.provenance,
            "epistemic_status": self.epistemic_status,
            "confidence": self.confidence.to_dict(),
            "impact_score": self.impact_score,
            "disciplinary_tags": list(self.disciplinary_tags),
            "bias_flags": list(self.bias_flags),
            "revision_history": [
                {"timestamp": r.timestamp.isoformat(), "change": r.change, "author": r.author}
                for r in self.revision_history
            ],
            "layer_id": self.layer_id,
            "falsification_criteria": self.falsification_criteria,
            "plan": self.plan,
            "statistical_power": asdict(self.statistical_power) if self.statistical_power else None,
            "topology_metrics": asdict(self.topology_metrics) if self.topology_metrics else None,
        }


@dataclass(frozen=True, slots=True)
class CausalMetadata:
    confounders: tuple[str, ...] = ()
    mechanism: str | None = None
    strength: float | None = None


@dataclass(frozen=True, slots=True)
class TemporalMetadata:
    delay_duration: float | None = None
    pattern_type: str | None = None
    frequency: float | None = None


@dataclass
class EdgeMetadata:
    """Metadata shared by edges and hyperedges."""

    edge_id: str = ""
    edge_type: EdgeType = EdgeType.OTHER
    confidence: ConfidenceVector = field(default_factory=ConfidenceVector)
    timestamp: datetime = field(default_factory=utcnow)
    causal_metadata: CausalMetadata | None = None
    temporal_metadata: TemporalMetadata | None = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> EdgeMetadata:
        known = {f.name for f in fields(cls)}
        kwargs = {k: v for k, v in data.items() if k in known}
        if isinstance(kwargs.get("edge_type"), str):
            kwargs["edge_type"] = EdgeType(kwargs["edge_type"])
        if isinstance(kwargs.get("confidence"), Mapping):
            kwargs["confidence"] = ConfidenceVector(**kwargs["confidence"])
        if kwargs.get("timestamp") is not None:
            kwargs["timestamp"] = parse_timestamp(kwargs["timestamp"])
        else:
            kwargs.pop("timestamp", None)
        if isinstance(kwargs.get("causal_metadata"), Mapping):
            causal = dict(kwargs["causal_metadata"])
            causal["confounders"] = tuple(causal.get("confounders") or ())
            kwargs["causal_metadata"] = CausalMetadata(**causal)
        if isinstance(kwargs.get("temporal_metadata"), Mapping):
            kwargs["temporal_metadata"] = TemporalMetadata(**kwargs["temporal_metadata"])
        return cls(**kwargs)

    def to_dict(self) -> dict[str, Any]:
        return {
            "edge_id": self.edge_id,
            "edge_type": self.edge_type.value,
            "confidence": self.confidence.to_dict(),
            "timestamp": self.timestamp.isoformat(),
            "causal_metadata": asdict(self.causal_metadata) if self.causal_metadata else None,
            "temporal_metadata": asdict(self.temporal_metadata) if self.temporal_metadata else None,
        }


@dataclass
class Edge:
    """A directed, typed edge. ``source``/``target`` are node ids."""

    source: str
    target: str
    metadata: EdgeMetadata

    @property
    def id(self) -> str:
        return self.metadata.edge_id

    @property
    def edge_type(self) -> EdgeType:
        return self.metadata.edge_type

    def touches(self, node_id: str) -> bool:
        return self.source == node_id or self.target == node_id

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "source": self.source, "target": self.target, **self.metadata.to_dict()}


@dataclass
class Hyperedge:
    nodes: list[str]
    metadata: EdgeMetadata

    @property
    def id(self) -> str:
        return self.metadata.edge_id

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "nodes": list(self.nodes), **self.metadata.to_dict()}


@dataclass(frozen=True, slots=True)
class SubgraphCriteria:
    """Conjunctive node filter plus an optional edge-type allow list.

    None and an empty set both mean "no filter".
    """

    confidence_threshold: float | None = None
    node_types: frozenset[NodeType] | None = None
    edge_types: frozenset[EdgeType] | None = None
    layer_ids: frozenset[str] | None = None
    impact_threshold: float | None = None
    temporal_recency_days: float | None = None


@dataclass(slots=True)
class Subgraph:
    nodes: list[Node] = field(default_factory=list)
    edges: list[Edge] = field(default_factory=list)
    # True when the criteria matched nothing and a sample of the store was returned instead.
    fallback: bool = False
    skipped: list[str] = field(default_factory=list)

    def node_ids(self) -> set[str]:
        return {n.node_id for n in self.nodes}


@dataclass(slots=True)
class GraphSnapshot:
    """Deep-copied view of a store, safe to hand to hosts and validators."""

    timestamp: datetime
    vertices: dict[str, Node]
    edges: dict[str, Edge]
    hyperedges: dict[str, Hyperedge]
    layers: dict[str, list[str]]

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "nodes": [n.to_dict() for n in self.vertices.values()],
            "edges": [e.to_dict() for e in self.edges.values()],
            "hyperedges": [h.to_dict() for h in self.hyperedges.values()],
            "layers": {k: list(v) for k, v in self.layers.items()},
        }
