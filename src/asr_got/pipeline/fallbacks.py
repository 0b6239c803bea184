"""Minimal-output fallbacks, one per phase.

Each runs after the phase has exhausted its attempts and must leave the
context usable for the phases that follow.
"""

from __future__ import annotations

from ..knowledge_graph.models import (
    ConfidenceVector,
    EdgeMetadata,
    EdgeType,
    Node,
    NodeType,
    RevisionEntry,
    Subgraph,
    new_id,
)
from .context import AuditResult, ExecutionContext
from .narrative import basic_narrative
from .session import PhaseEnv, PhaseSession

BASIC_DIMENSIONS = ("Scope", "Objectives")
DEFAULT_AUDIT_SCORE = 0.5


def basic_root(s: PhaseSession, query: str) -> str:
    return s.add_node(
        Node(
            node_id=new_id(),
            label="Basic Task Understanding",
            node_type=NodeType.ROOT,
            provenance=f"Fail-safe root for: {query}",
            epistemic_status="fail-safe",
            confidence=ConfidenceVector.uniform(0.5),
            impact_score=0.3,
            revision_history=[RevisionEntry("Fail-safe root created")],
            layer_id="root",
        )
    )


def basic_dimensions(s: PhaseSession, query: str) -> list[str]:
    roots = s.graph.nodes(NodeType.ROOT)
    ids: list[str] = []
    for dim in BASIC_DIMENSIONS:
        dim_id = s.add_node(
            Node(
                node_id=new_id(),
                label=f"Basic {dim}",
                node_type=NodeType.DIMENSION,
                provenance=f"Fail-safe dimension for: {query}",
                epistemic_status="fail-safe",
                confidence=ConfidenceVector.uniform(0.4),
                impact_score=0.2,
                revision_history=[RevisionEntry("Fail-safe dimension created")],
                layer_id="decomposition",
            )
        )
        ids.append(dim_id)
        if roots:
            s.add_edge(
                roots[0].node_id,
                dim_id,
                EdgeMetadata(
                    edge_id=new_id(),
                    edge_type=EdgeType.SPECIALIZATION,
                    confidence=ConfidenceVector.uniform(0.4),
                ),
            )
    return ids


def basic_hypothesis(s: PhaseSession) -> str:
    hyp_id = s.add_node(
        Node(
            node_id=new_id(),
            label="Basic Hypothesis",
            node_type=NodeType.HYPOTHESIS,
            provenance="Fail-safe hypothesis",
            epistemic_status="fail-safe",
            confidence=ConfidenceVector.uniform(0.3),
            impact_score=0.1,
            revision_history=[RevisionEntry("Fail-safe hypothesis created")],
            falsification_criteria="Basic empirical testing",
            layer_id="hypothesis",
        )
    )
    dims = s.graph.nodes(NodeType.DIMENSION)
    if dims:
        s.add_edge(
            dims[0].node_id,
            hyp_id,
            EdgeMetadata(edge_id=new_id(), edge_type=EdgeType.SUPPORTIVE, confidence=ConfidenceVector.uniform(0.3)),
        )
    return hyp_id


def default_quality(ctx: ExecutionContext) -> float:
    return 0.3 if ctx.fail_safe_active else 0.5


# ----------------------------------------------------------------------
# Per-phase fallbacks
# ----------------------------------------------------------------------


def initialization(ctx: ExecutionContext, s: PhaseSession, env: PhaseEnv) -> None:
    basic_root(s, ctx.task_query)


def decomposition(ctx: ExecutionContext, s: PhaseSession, env: PhaseEnv) -> None:
    basic_dimensions(s, ctx.task_query)


def hypothesis_planning(ctx: ExecutionContext, s: PhaseSession, env: PhaseEnv) -> None:
    basic_hypothesis(s)


def evidence_integration(ctx: ExecutionContext, s: PhaseSession, env: PhaseEnv) -> None:
    # Hypotheses keep their priors.
    return None


def pruning_merging(ctx: ExecutionContext, s: PhaseSession, env: PhaseEnv) -> None:
    pruned = s.graph.prune_nodes(0.1, 0.05)
    s.warn(f"Pruned {len(pruned)} nodes")


def subgraph_extraction(ctx: ExecutionContext, s: PhaseSession, env: PhaseEnv) -> None:
    ctx.subgraph = Subgraph(nodes=s.graph.nodes())


def composition(ctx: ExecutionContext, s: PhaseSession, env: PhaseEnv) -> None:
    ctx.narrative = basic_narrative(ctx.task_query)


def reflection(ctx: ExecutionContext, s: PhaseSession, env: PhaseEnv) -> None:
    ctx.audit = AuditResult(score=DEFAULT_AUDIT_SCORE, warnings=["Default audit applied"])
    ctx.quality_score = default_quality(ctx)
