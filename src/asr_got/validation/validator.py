from __future__ import annotations

import logging
import math
from dataclasses import asdict, dataclass, field, fields, is_dataclass
from datetime import UTC, datetime, timedelta
from typing import Any, Literal, Mapping

from pydantic import ValidationError

from ..knowledge_graph.confidence import clamp
from ..knowledge_graph.models import (
    TEMPORAL_EDGE_TYPES,
    ConfidenceVector,
    EdgeType,
    GraphSnapshot,
    NodeType,
    new_id,
    utcnow,
)
from .schemas import EdgeMetadataSchema, NodeMetadataSchema

logger = logging.getLogger(__name__)

GENERIC_TAGS = frozenset({"general", "other", "misc", "unknown"})
MAX_TAGS = 10
_CONFIDENCE_KEYS = tuple(f.name for f in fields(ConfidenceVector))


@dataclass(slots=True)
class MetadataReport:
    is_valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    sanitized: NodeMetadataSchema | EdgeMetadataSchema | None = None


@dataclass(slots=True)
class ValidationReport:
    is_valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    statistics: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    def recommendations(self) -> list[str]:
        total = self.statistics.get("total_nodes", 0)
        out: list[str] = []
        if self.statistics.get("orphaned_nodes"):
            out.append("Consider connecting or removing orphaned nodes")
        if self.statistics.get("invalid_references"):
            out.append("Fix invalid edge references")
        if not self.is_valid:
            out.append("Address validation errors before proceeding")
        if len(self.warnings) > total * 0.1:
            out.append("Review and address validation warnings")
        return out

    def quality_metrics(self) -> dict[str, float]:
        total = max(1, self.statistics.get("total_nodes", 0))
        return {
            "structural_integrity": 1.0 if self.is_valid else 0.5,
            "error_rate": len(self.errors) / total,
            "warning_rate": len(self.warnings) / total,
            "connectivity": 1.0 - self.statistics.get("orphaned_nodes", 0) / total,
        }


def _as_mapping(obj: Any) -> dict[str, Any]:
    if is_dataclass(obj) and not isinstance(obj, type):
        return asdict(obj)
    if isinstance(obj, Mapping):
        return dict(obj)
    raise TypeError(f"cannot validate {type(obj).__name__}")


def _aware(ts: datetime) -> datetime:
    return ts if ts.tzinfo is not None else ts.replace(tzinfo=UTC)


def _schema_errors(err: ValidationError) -> list[str]:
    return [f"{'.'.join(str(p) for p in e['loc'])}: {e['msg']}" for e in err.errors()]


class GraphValidator:
    """Structural and semantic checks over node/edge metadata and whole snapshots.

    Errors make a report invalid; warnings are advisory (missing falsification
    criteria, orphaned nodes, suspicious confidence profiles, ...).
    """

    def __init__(self, *, clock_skew: timedelta = timedelta(seconds=5)):
        self.clock_skew = clock_skew

    # ------------------------------------------------------------------
    # Per-item
    # ------------------------------------------------------------------

    def validate_node_metadata(self, metadata: Any) -> MetadataReport:
        try:
            node = NodeMetadataSchema.model_validate(_as_mapping(metadata))
        except (ValidationError, TypeError) as e:
            errors = _schema_errors(e) if isinstance(e, ValidationError) else [f"Validation error: {e}"]
            return MetadataReport(is_valid=False, errors=errors)

        errors: list[str] = []
        warnings: list[str] = []
        self._check_node_semantics(node, warnings)
        self._check_confidence(node.confidence.model_dump(), warnings)
        self._check_temporal_consistency(node, errors)
        self._check_tags(node.disciplinary_tags, warnings)
        self._check_power(node, warnings)
        return MetadataReport(is_valid=not errors, errors=errors, warnings=warnings, sanitized=node)

    def validate_edge_metadata(self, metadata: Any) -> MetadataReport:
        try:
            edge = EdgeMetadataSchema.model_validate(_as_mapping(metadata))
        except (ValidationError, TypeError) as e:
            errors = _schema_errors(e) if isinstance(e, ValidationError) else [f"Validation error: {e}"]
            return MetadataReport(is_valid=False, errors=errors)

        errors: list[str] = []
        warnings: list[str] = []
        if edge.edge_type is EdgeType.CAUSAL and edge.causal_metadata is None:
            warnings.append("Causal edges should include causal metadata")
        if edge.edge_type in TEMPORAL_EDGE_TYPES and edge.temporal_metadata is None:
            warnings.append("Temporal edges should include temporal metadata")

        causal = edge.causal_metadata
        if causal and not causal.confounders and (causal.strength or 0.0) > 0.8:
            warnings.append(
                "High causal strength with no identified confounders may indicate incomplete analysis"
            )

        temporal = edge.temporal_metadata
        if temporal:
            if temporal.delay_duration is not None and temporal.delay_duration < 0:
                errors.append("Delay duration cannot be negative")
            if temporal.frequency is not None and temporal.frequency <= 0:
                errors.append("Frequency must be positive")

        return MetadataReport(is_valid=not errors, errors=errors, warnings=warnings, sanitized=edge)

    def _check_node_semantics(self, node: NodeMetadataSchema, warnings: list[str]) -> None:
        if node.node_type is NodeType.HYPOTHESIS and not node.falsification_criteria:
            warnings.append("Hypothesis nodes should have falsification criteria")
        if node.node_type is NodeType.EVIDENCE and node.statistical_power is None:
            warnings.append("Evidence nodes should include statistical power analysis")
        if node.node_type is NodeType.PLACEHOLDER_GAP and node.impact_score > 0.8:
            warnings.append("Gap nodes typically should not have very high impact scores")

    @staticmethod
    def _check_confidence(values: Mapping[str, float], warnings: list[str]) -> None:
        if values["empirical_support"] > 0.9 and values["methodological_rigor"] < 0.3:
            warnings.append("High empirical support with low methodological rigor may indicate issues")
        if values["consensus_alignment"] > 0.8 and values["theoretical_basis"] < 0.2:
            warnings.append("High consensus with low theoretical basis is unusual")
        if all(v > 0.95 for v in values.values()):
            warnings.append("All confidence dimensions extremely high - may indicate overconfidence")
        if all(v < 0.05 for v in values.values()):
            warnings.append("All confidence dimensions extremely low - consider if node should exist")

    def _check_temporal_consistency(self, node: NodeMetadataSchema, errors: list[str]) -> None:
        horizon = utcnow() + self.clock_skew
        created = _aware(node.timestamp)
        if created > horizon:
            errors.append("Node timestamp cannot be in the future")
        for rev in node.revision_history:
            ts = _aware(rev.timestamp)
            if ts > horizon:
                errors.append("Revision timestamp cannot be in the future")
            if ts < created:
                errors.append("Revision timestamp cannot be before node creation")

    @staticmethod
    def _check_tags(tags: list[str], warnings: list[str]) -> None:
        if not tags:
            warnings.append("Nodes should have at least one disciplinary tag")
            return
        if all(t.lower() in GENERIC_TAGS for t in tags):
            warnings.append("Consider using more specific disciplinary tags")
        if len(tags) > MAX_TAGS:
            warnings.append("Consider reducing the number of disciplinary tags for clarity")

    @staticmethod
    def _check_power(node: NodeMetadataSchema, warnings: list[str]) -> None:
        power = node.statistical_power
        if power is None:
            return
        if power.power is not None and power.power < 0.8 and (power.sample_size or 0) > 1000:
            warnings.append("Large sample size with low statistical power may indicate effect size issues")
        if (
            power.p_value is not None
            and power.p_value < 0.001
            and power.effect_size is not None
            and abs(power.effect_size) < 0.1
        ):
            warnings.append("Very low p-value with small effect size may indicate multiple testing issues")

    # ------------------------------------------------------------------
    # Whole graph
    # ------------------------------------------------------------------

    def validate(self, snapshot: GraphSnapshot) -> ValidationReport:
        errors: list[str] = []
        warnings: list[str] = []
        stats = {
            "total_nodes": len(snapshot.vertices),
            "total_edges": len(snapshot.edges),
            "orphaned_nodes": 0,
            "invalid_references": 0,
        }

        for node_id, node in snapshot.vertices.items():
            report = self.validate_node_metadata(node)
            if not report.is_valid:
                errors.append(f"Node {node_id}: {', '.join(report.errors)}")

        connected: set[str] = set()
        for edge_id, edge in snapshot.edges.items():
            report = self.validate_edge_metadata(edge.metadata)
            if not report.is_valid:
                errors.append(f"Edge {edge_id}: {', '.join(report.errors)}")
            for role, endpoint in (("source", edge.source), ("target", edge.target)):
                if endpoint not in snapshot.vertices:
                    errors.append(f"Edge {edge_id} references non-existent {role} node {endpoint}")
                    stats["invalid_references"] += 1
            connected.update((edge.source, edge.target))

        for hyperedge_id, hyperedge in snapshot.hyperedges.items():
            missing = [n for n in hyperedge.nodes if n not in snapshot.vertices]
            if missing:
                warnings.append(f"Hyperedge {hyperedge_id} references unknown nodes {', '.join(missing)}")

        for node_id, node in snapshot.vertices.items():
            if node_id not in connected and node.node_type is not NodeType.ROOT:
                stats["orphaned_nodes"] += 1
                warnings.append(f"Node {node_id} is orphaned (no connections)")

        self._check_layers(snapshot, errors)

        if errors:
            logger.info("Graph validation found %d errors", len(errors))
        return ValidationReport(is_valid=not errors, errors=errors, warnings=warnings, statistics=stats)

    @staticmethod
    def _check_layers(snapshot: GraphSnapshot, errors: list[str]) -> None:
        for node_id, node in snapshot.vertices.items():
            if node.layer_id and node.layer_id not in snapshot.layers:
                errors.append(f"Node {node_id} references non-existent layer {node.layer_id}")
        for layer_id, members in snapshot.layers.items():
            for node_id in members:
                if node_id not in snapshot.vertices:
                    errors.append(f"Layer {layer_id} references non-existent node {node_id}")

    # ------------------------------------------------------------------
    # Repair
    # ------------------------------------------------------------------

    def sanitize_metadata(self, metadata: Mapping[str, Any], kind: Literal["node", "edge"]) -> dict[str, Any]:
        """Fill required fields and clamp numeric ranges. Returns a new dict."""
        out = dict(metadata)
        now = utcnow()
        id_key = "node_id" if kind == "node" else "edge_id"

        if not out.get(id_key):
            out[id_key] = new_id()
        if not out.get("timestamp"):
            out["timestamp"] = now
        out["confidence"] = self._sanitize_confidence(out.get("confidence"))

        if kind == "node":
            if not out.get("disciplinary_tags"):
                out["disciplinary_tags"] = ["general"]
            out.setdefault("bias_flags", [])
            if not out.get("revision_history"):
                out["revision_history"] = [
                    {"timestamp": out["timestamp"], "change": "Node created", "author": "sanitizer"}
                ]
            impact = out.get("impact_score")
            out["impact_score"] = clamp(impact) if isinstance(impact, (int, float)) else 0.5
        else:
            if not out.get("edge_type"):
                out["edge_type"] = EdgeType.OTHER.value
        return out

    @staticmethod
    def _sanitize_confidence(raw: Any) -> dict[str, float]:
        if isinstance(raw, ConfidenceVector):
            raw = raw.to_dict()
        if not isinstance(raw, Mapping):
            raw = {}
        values: dict[str, float] = {}
        for key in _CONFIDENCE_KEYS:
            v = raw.get(key)
            ok = isinstance(v, (int, float)) and not isinstance(v, bool) and not math.isnan(v)
            values[key] = clamp(float(v)) if ok else 0.5
        return values
