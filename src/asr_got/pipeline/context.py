from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any

from ..knowledge_graph.models import GraphSnapshot, Subgraph

logger = logging.getLogger(__name__)

TOTAL_STAGES = 8


class RunMode(Enum):
    NORMAL = "normal"
    DEGRADED = "degraded"


@dataclass(frozen=True, slots=True)
class Budget:
    max_nodes: int = 1000
    max_edges: int = 5000
    max_execution_time_ms: int = 300_000


@dataclass(slots=True)
class UserProfile:
    identity: str = "researcher"
    disciplines: list[str] = field(default_factory=list)
    research_focus: list[str] = field(default_factory=list)
    # e.g. {"format": "markdown", "detail": "high"}
    communication_preferences: dict[str, str] = field(default_factory=dict)


@dataclass(slots=True)
class ResearchQuery:
    """A query plus the hints the phases use to shape the graph."""

    query: str
    domain: list[str] = field(default_factory=list)
    complexity: str = "medium"
    depth: str = "standard"
    interdisciplinary: bool = False

    @classmethod
    def coerce(cls, value: ResearchQuery | str | None) -> ResearchQuery:
        if isinstance(value, ResearchQuery):
            return value
        return cls(query=value or "")

    @property
    def tags(self) -> list[str]:
        return list(self.domain) or ["general"]


@dataclass(slots=True)
class StageDraft:
    """Mutable per-phase record; frozen into a :class:`StageResult` once resolved."""

    stage: int
    name: str
    nodes_created: list[str] = field(default_factory=list)
    edges_created: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def reset_created(self) -> None:
        self.nodes_created.clear()
        self.edges_created.clear()

    def freeze(self, *, success: bool, execution_time_ms: float) -> StageResult:
        return StageResult(
            stage=self.stage,
            name=self.name,
            success=success,
            nodes_created=tuple(self.nodes_created),
            edges_created=tuple(self.edges_created),
            errors=tuple(self.errors),
            warnings=tuple(self.warnings),
            execution_time_ms=execution_time_ms,
        )


@dataclass(frozen=True, slots=True)
class StageResult:
    stage: int
    name: str
    success: bool
    nodes_created: tuple[str, ...] = ()
    edges_created: tuple[str, ...] = ()
    errors: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()
    execution_time_ms: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        d = asdict(self)
        return {k: list(v) if isinstance(v, tuple) else v for k, v in d.items()}


@dataclass(slots=True)
class AuditResult:
    score: float
    critical_issues: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    statistics: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(slots=True)
class ExecutionContext:
    """Everything a run produces. Owned by the pipeline; returned to the caller."""

    query: ResearchQuery
    user_profile: UserProfile = field(default_factory=UserProfile)
    budget: Budget = field(default_factory=Budget)
    stage_results: list[StageResult] = field(default_factory=list)
    current_stage: int = 0
    mode: RunMode = RunMode.NORMAL
    graph_state: GraphSnapshot | None = None

    # Phase outputs
    subgraph: Subgraph | None = None
    narrative: str | None = None
    audit: AuditResult | None = None
    quality_score: float | None = None

    @property
    def task_query(self) -> str:
        return self.query.query

    @property
    def fail_safe_active(self) -> bool:
        return self.mode is RunMode.DEGRADED

    def degrade(self, reason: str) -> None:
        """Switch to DEGRADED. Sticky: there is no way back for this run."""
        if self.mode is RunMode.DEGRADED:
            return
        self.mode = RunMode.DEGRADED
        logger.info("Fail-safe mode activated: %s", reason)

    @property
    def errors(self) -> list[str]:
        return [e for r in self.stage_results for e in r.errors]

    @property
    def warnings(self) -> list[str]:
        return [w for r in self.stage_results for w in r.warnings]

    @property
    def elapsed_ms(self) -> float:
        return sum(r.execution_time_ms for r in self.stage_results)

    def successful_stages(self) -> int:
        return sum(1 for r in self.stage_results if r.success)

    def to_dict(self) -> dict[str, Any]:
        return {
            "query": asdict(self.query),
            "user_profile": asdict(self.user_profile),
            "budget": asdict(self.budget),
            "current_stage": self.current_stage,
            "mode": self.mode.value,
            "fail_safe_active": self.fail_safe_active,
            "stage_results": [r.to_dict() for r in self.stage_results],
            "errors": self.errors,
            "warnings": self.warnings,
            "narrative": self.narrative,
            "audit": self.audit.to_dict() if self.audit else None,
            "quality_score": self.quality_score,
            "subgraph": (
                {
                    "nodes": [n.node_id for n in self.subgraph.nodes],
                    "edges": [e.id for e in self.subgraph.edges],
                    "fallback": self.subgraph.fallback,
                }
                if self.subgraph
                else None
            ),
            "graph": self.graph_state.to_dict() if self.graph_state else None,
        }
