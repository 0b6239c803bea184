from __future__ import annotations

from datetime import datetime

from pydantic import AliasChoices, BaseModel, Field

from ..knowledge_graph.models import EdgeType, NodeType


class ConfidenceSchema(BaseModel):
    empirical_support: float = Field(ge=0.0, le=1.0)
    theoretical_basis: float = Field(ge=0.0, le=1.0)
    methodological_rigor: float = Field(ge=0.0, le=1.0)
    consensus_alignment: float = Field(ge=0.0, le=1.0)


class StatisticalPowerSchema(BaseModel):
    power: float | None = Field(default=None, ge=0.0, le=1.0)
    sample_size: int | None = Field(default=None, gt=0)
    effect_size: float | None = None
    confidence_interval: tuple[float, float] | None = None
    p_value: float | None = Field(default=None, ge=0.0, le=1.0)


class TopologySchema(BaseModel):
    degree: int = Field(default=0, ge=0)
    centrality: float = Field(default=0.0, ge=0.0, le=1.0)
    clustering_coefficient: float = Field(default=0.0, ge=0.0, le=1.0)
    betweenness: float = Field(default=0.0, ge=0.0)


class RevisionSchema(BaseModel):
    timestamp: datetime
    change: str
    author: str


class NodeMetadataSchema(BaseModel):
    node_id: str = Field(min_length=1)
    label: str
    node_type: NodeType = Field(validation_alias=AliasChoices("node_type", "type"))
    timestamp: datetime
    provenance: str = ""
    epistemic_status: str = ""
    confidence: ConfidenceSchema
    impact_score: float = Field(ge=0.0, le=1.0)
    disciplinary_tags: list[str] = Field(default_factory=list)
    bias_flags: list[str] = Field(default_factory=list)
    revision_history: list[RevisionSchema] = Field(default_factory=list)
    layer_id: str | None = None
    falsification_criteria: str | None = None
    plan: str | None = None
    statistical_power: StatisticalPowerSchema | None = None
    topology_metrics: TopologySchema | None = None
    attribution: str | None = None


class CausalSchema(BaseModel):
    confounders: list[str] = Field(default_factory=list)
    mechanism: str | None = None
    strength: float | None = Field(default=None, ge=0.0, le=1.0)


class TemporalSchema(BaseModel):
    # Sign and positivity are semantic checks, reported with readable messages.
    delay_duration: float | None = None
    pattern_type: str | None = None
    frequency: float | None = None


class EdgeMetadataSchema(BaseModel):
    edge_id: str = Field(min_length=1)
    edge_type: EdgeType
    confidence: ConfidenceSchema
    timestamp: datetime
    causal_metadata: CausalSchema | None = None
    temporal_metadata: TemporalSchema | None = None
