"""The eight reasoning phases.

Each phase is a coroutine ``(ctx, session, env)``; it writes only through the
session's token-bound writer and yields at per-item checkpoints so a timed-out
attempt can be abandoned cleanly. Per-item failures are isolated into stage
warnings; anything that escapes a phase is retried and finally replaced by the
matching fallback from :mod:`.fallbacks`.
"""

from __future__ import annotations

import re

from ..annotators import safe_bias_flags, safe_causal_claims, safe_temporal_patterns
from ..knowledge_graph import confidence as conf
from ..knowledge_graph.models import (
    CausalMetadata,
    ConfidenceVector,
    EdgeMetadata,
    EdgeType,
    Node,
    NodeType,
    RevisionEntry,
    StatisticalPower,
    Subgraph,
    SubgraphCriteria,
    TemporalMetadata,
    new_id,
)
from ..knowledge_graph.store import MERGE_OVERLAP_THRESHOLD, Evidence, tag_overlap
from . import fallbacks
from .context import TOTAL_STAGES, AuditResult, ExecutionContext
from .narrative import apology_narrative, basic_narrative, compose_narrative
from .session import Phase, PhaseEnv, PhaseSession


DIMENSIONS = (
    "Scope",
    "Objectives",
    "Constraints",
    "Data Needs",
    "Use Cases",
    "Potential Biases",
    "Knowledge Gaps",
)
BIAS_DIMENSION = "Potential Biases"

FALSIFICATION_METHODS = {
    "Scope": "experimental validation",
    "Objectives": "outcome measurement",
    "Constraints": "boundary testing",
    "Data Needs": "data availability verification",
    "Use Cases": "application testing",
    "Potential Biases": "bias detection methods",
    "Knowledge Gaps": "literature review",
}

EVIDENCE_RELIABILITY = 0.7
MAX_BRIDGES_PER_HYPOTHESIS = 2
MERGEABLE_TYPES = frozenset({NodeType.HYPOTHESIS, NodeType.EVIDENCE})
EMERGENCY_SUBGRAPH_SIZE = 10

_WORD_RE = re.compile(r"[a-z]+")


def falsification_method(dimension: str) -> str:
    return FALSIFICATION_METHODS.get(dimension, "empirical testing")


def execution_plan(dimension: str) -> str:
    return (
        f"Plan for {dimension}: Literature review → Hypothesis refinement → "
        "Experimental design → Data collection → Analysis"
    )


def priority_score(node: Node) -> float:
    return conf.aggregate(node.confidence) * 0.6 + node.impact_score * 0.4


def evidence_likelihood(prior: ConfidenceVector, evidence: ConfidenceVector) -> ConfidenceVector:
    """Blend a hypothesis prior with one evidence node, nudged towards support."""
    return ConfidenceVector(
        min(1.0, (prior.empirical_support + evidence.empirical_support) / 2 + 0.1),
        min(1.0, (prior.theoretical_basis + evidence.theoretical_basis) / 2 + 0.05),
        min(1.0, (prior.methodological_rigor + evidence.methodological_rigor) / 2 + 0.05),
        min(1.0, (prior.consensus_alignment + evidence.consensus_alignment) / 2 + 0.05),
    )


def text_similarity(a: Node, b: Node) -> float:
    """Word-level Jaccard overlap of label, plan and falsification text."""

    def words(n: Node) -> set[str]:
        text = " ".join(filter(None, (n.label, n.plan, n.falsification_criteria)))
        return set(_WORD_RE.findall(text.lower()))

    return tag_overlap(words(a), words(b))


def quality_score(ctx: ExecutionContext, node_count: int) -> float:
    # The reflection phase counts itself as successful.
    successful = ctx.successful_stages() + 1
    score = successful / TOTAL_STAGES + min(0.2, node_count / 50)
    if ctx.fail_safe_active:
        score -= 0.1
    return conf.clamp(score)


def audit(ctx: ExecutionContext, s: PhaseSession, env: PhaseEnv) -> AuditResult:
    snapshot = s.graph.snapshot()
    report = env.validator.validate(snapshot)
    stats = dict(report.statistics)

    critical: list[str] = []
    warnings: list[str] = []
    if len(snapshot.vertices) < 5:
        critical.append("Insufficient node coverage")
    if stats.get("invalid_references"):
        critical.append(f"{stats['invalid_references']} edges reference missing nodes")
    if not any(n.bias_flags for n in snapshot.vertices.values()):
        warnings.append("No bias detection performed")
    if stats.get("orphaned_nodes"):
        warnings.append(f"{stats['orphaned_nodes']} orphaned nodes")
    if not report.is_valid:
        warnings.append(f"Graph validation reported {len(report.errors)} errors")

    score = conf.clamp(1.0 - 0.3 * len(critical) - 0.1 * len(warnings))
    return AuditResult(score=score, critical_issues=critical, warnings=warnings, statistics=stats)


# ----------------------------------------------------------------------
# Phases
# ----------------------------------------------------------------------


async def initialization(ctx: ExecutionContext, s: PhaseSession, env: PhaseEnv) -> None:
    s.add_node(
        Node(
            node_id=new_id(),
            label="Task Understanding",
            node_type=NodeType.ROOT,
            provenance=f'Query: "{ctx.task_query}"',
            epistemic_status="initial",
            confidence=ConfidenceVector.uniform(0.8),
            impact_score=0.9,
            disciplinary_tags=ctx.query.tags,
            revision_history=[RevisionEntry("Root node initialized")],
            layer_id="root",
        )
    )


async def decomposition(ctx: ExecutionContext, s: PhaseSession, env: PhaseEnv) -> None:
    roots = s.graph.nodes(NodeType.ROOT)
    if roots:
        root = roots[0]
    else:
        root = s.graph.get_node(fallbacks.basic_root(s, ctx.task_query))
        s.warn("Created emergency root node for decomposition")

    for label in DIMENSIONS:
        await s.checkpoint()
        dim_id = s.add_node(
            Node(
                node_id=new_id(),
                label=label,
                node_type=NodeType.DIMENSION,
                provenance=f"Dimension analysis of: {ctx.task_query}",
                epistemic_status="decomposed",
                confidence=ConfidenceVector.uniform(0.7),
                impact_score=0.6,
                disciplinary_tags=list(root.disciplinary_tags),
                bias_flags=["bias_analysis"] if label == BIAS_DIMENSION else [],
                revision_history=[RevisionEntry("Dimension created")],
                layer_id="decomposition",
            )
        )
        s.add_edge(
            root.node_id,
            dim_id,
            EdgeMetadata(
                edge_id=new_id(),
                edge_type=EdgeType.SPECIALIZATION,
                confidence=ConfidenceVector.uniform(0.7),
            ),
        )


async def hypothesis_planning(ctx: ExecutionContext, s: PhaseSession, env: PhaseEnv) -> None:
    dims = s.graph.nodes(NodeType.DIMENSION)
    if not dims:
        created = fallbacks.basic_dimensions(s, ctx.task_query)
        s.warn(f"Created {len(created)} basic dimensions for hypothesis generation")
        dims = s.graph.nodes(NodeType.DIMENSION)

    # Interdisciplinary queries spread hypotheses over single domains so that
    # evidence integration has disjoint-tag pairs to bridge.
    domains = ctx.query.domain if ctx.query.interdisciplinary and len(ctx.query.domain) > 1 else []
    generated = 0

    for dim in dims:
        count = 2 if ctx.fail_safe_active else int(env.rng.integers(3, 6))
        for i in range(count):
            await s.checkpoint()
            tags = [domains[generated % len(domains)]] if domains else list(dim.disciplinary_tags)
            generated += 1

            hyp_id: str | None = None
            with s.isolate(f"Failed to create hypothesis {i + 1} for {dim.label}"):
                hyp_id = s.add_node(
                    Node(
                        node_id=new_id(),
                        label=f"Hypothesis {i + 1} for {dim.label}",
                        node_type=NodeType.HYPOTHESIS,
                        provenance=f"Generated for dimension: {dim.label}",
                        epistemic_status="hypothetical",
                        confidence=ConfidenceVector.uniform(0.5),
                        impact_score=float(env.rng.random() * 0.8 + 0.2),
                        disciplinary_tags=tags,
                        bias_flags=safe_bias_flags(env.bias, dim.label, ctx.task_query),
                        revision_history=[RevisionEntry("Hypothesis generated")],
                        layer_id="hypothesis",
                        falsification_criteria=f"Testable via {falsification_method(dim.label)}",
                        plan=execution_plan(dim.label),
                    )
                )
            if hyp_id is None:
                continue

            with s.isolate(f"Failed to connect hypothesis {hyp_id} to dimension"):
                s.add_edge(
                    dim.node_id,
                    hyp_id,
                    EdgeMetadata(
                        edge_id=new_id(),
                        edge_type=EdgeType.SUPPORTIVE,
                        confidence=ConfidenceVector.uniform(0.5),
                    ),
                )


def _evidence_edge(
    confidence: ConfidenceVector, text: str, env: PhaseEnv
) -> EdgeMetadata:
    claims = safe_causal_claims(env.causal, text)
    if claims:
        claim = claims[0]
        return EdgeMetadata(
            edge_id=new_id(),
            edge_type=EdgeType.CAUSAL,
            confidence=confidence,
            causal_metadata=CausalMetadata(
                confounders=tuple(claim.confounders),
                mechanism=claim.mechanism,
                strength=conf.clamp(claim.strength),
            ),
        )

    patterns = safe_temporal_patterns(env.temporal, text)
    if patterns:
        pattern = patterns[0]
        return EdgeMetadata(
            edge_id=new_id(),
            edge_type=EdgeType.TEMPORAL_PRECEDENCE,
            confidence=confidence,
            temporal_metadata=TemporalMetadata(
                delay_duration=pattern.delay_days,
                pattern_type=pattern.pattern_type,
                frequency=pattern.frequency,
            ),
        )

    return EdgeMetadata(edge_id=new_id(), edge_type=EdgeType.SUPPORTIVE, confidence=confidence)


def _gather_evidence(ctx: ExecutionContext, s: PhaseSession, env: PhaseEnv, hyp: Node) -> list[Node]:
    count = 1 if ctx.fail_safe_active else int(env.rng.integers(1, 4))
    text = f"{ctx.task_query}. {hyp.label}"
    gathered: list[Node] = []

    for i in range(count):
        cv = ConfidenceVector(*(float(v) for v in env.rng.uniform(0.4, 1.0, size=4)))
        ev_id = s.add_node(
            Node(
                node_id=new_id(),
                label=f"Evidence {i + 1} for {hyp.label}",
                node_type=NodeType.EVIDENCE,
                provenance="Simulated evidence gathering",
                epistemic_status="evidential",
                confidence=cv,
                impact_score=float(env.rng.uniform(0.3, 1.0)),
                disciplinary_tags=list(hyp.disciplinary_tags),
                revision_history=[RevisionEntry("Evidence node created")],
                layer_id="evidence",
                statistical_power=StatisticalPower(
                    power=float(env.rng.uniform(0.4, 1.0)),
                    sample_size=int(env.rng.integers(100, 1100)),
                    effect_size=float(env.rng.uniform(-1.0, 1.0)),
                ),
            )
        )
        s.add_edge(ev_id, hyp.node_id, _evidence_edge(cv, text, env))
        gathered.append(s.graph.get_node(ev_id))
    return gathered


def _bridge(s: PhaseSession, hyp: Node, bridged: set[frozenset[str]]) -> None:
    created = 0
    for other in s.graph.nodes(NodeType.HYPOTHESIS):
        if created >= MAX_BRIDGES_PER_HYPOTHESIS:
            break
        pair = frozenset((hyp.node_id, other.node_id))
        if other.node_id == hyp.node_id or pair in bridged:
            continue
        outcome = s.graph.create_interdisciplinary_bridge(hyp.node_id, other.node_id, text_similarity(hyp, other))
        if outcome.created:
            bridged.add(pair)
            created += 1
            s.draft.nodes_created.append(outcome.bridge_id)
            s.draft.edges_created.extend(outcome.edge_ids)


async def evidence_integration(ctx: ExecutionContext, s: PhaseSession, env: PhaseEnv) -> None:
    limit = 3 if ctx.fail_safe_active else 10
    ranked = sorted(s.graph.nodes(NodeType.HYPOTHESIS), key=priority_score, reverse=True)[:limit]
    bridged: set[frozenset[str]] = set()

    for hyp in ranked:
        await s.checkpoint()
        evidence: list[Node] = []
        with s.isolate(f"Evidence gathering failed for hypothesis {hyp.node_id}"):
            evidence = _gather_evidence(ctx, s, env, hyp)

        for ev in evidence:
            with s.isolate(f"Confidence update failed for hypothesis {hyp.node_id}"):
                prior = s.graph.get_node(hyp.node_id).confidence
                s.graph.update_node_confidence(
                    hyp.node_id,
                    evidence_likelihood(prior, ev.confidence),
                    Evidence(reliability=EVIDENCE_RELIABILITY, statistical_power=ev.statistical_power),
                )

        with s.isolate(f"IBN check failed for hypothesis {hyp.node_id}"):
            _bridge(s, hyp, bridged)

        with s.isolate(f"Temporal decay failed for hypothesis {hyp.node_id}"):
            s.graph.apply_decay(
                hyp.node_id, env.settings.decay_half_life_days, degraded=ctx.fail_safe_active
            )


async def pruning_merging(ctx: ExecutionContext, s: PhaseSession, env: PhaseEnv) -> None:
    c_thresh, i_thresh = (0.1, 0.05) if ctx.fail_safe_active else (0.2, 0.1)
    pruned = s.graph.prune_nodes(c_thresh, i_thresh)
    s.warn(f"Pruned {len(pruned)} nodes")

    candidates = [n for n in s.graph.nodes() if n.node_type in MERGEABLE_TYPES]
    merged: set[str] = set()
    for idx, a in enumerate(candidates):
        await s.checkpoint()
        if a.node_id in merged:
            continue
        for b in candidates[idx + 1 :]:
            if b.node_id in merged or b.node_type is not a.node_type:
                continue
            overlap = tag_overlap(a.disciplinary_tags, b.disciplinary_tags)
            if overlap < MERGE_OVERLAP_THRESHOLD:
                continue
            merged_id = s.graph.merge_nodes(a.node_id, b.node_id, overlap)
            if merged_id:
                s.draft.nodes_created.append(merged_id)
                merged.update((a.node_id, b.node_id))
                s.warn(f"Merged nodes {a.node_id} and {b.node_id}")
                break


def extraction_criteria(degraded: bool) -> SubgraphCriteria:
    return SubgraphCriteria(
        confidence_threshold=0.1 if degraded else 0.3,
        impact_threshold=0.05 if degraded else 0.2,
        temporal_recency_days=365,
        node_types=frozenset(
            {NodeType.HYPOTHESIS, NodeType.EVIDENCE, NodeType.INTERDISCIPLINARY_BRIDGE}
        ),
        edge_types=frozenset({EdgeType.SUPPORTIVE, EdgeType.CAUSAL, EdgeType.TEMPORAL_PRECEDENCE}),
    )


async def subgraph_extraction(ctx: ExecutionContext, s: PhaseSession, env: PhaseEnv) -> None:
    subgraph: Subgraph | None = None
    with s.isolate("Primary subgraph extraction failed"):
        subgraph = s.graph.extract_subgraph(extraction_criteria(ctx.fail_safe_active))

    if subgraph is None:
        subgraph = Subgraph(nodes=s.graph.nodes(), edges=s.graph.edges())
        s.warn("Used fallback: extracted all available nodes and edges")
    else:
        if subgraph.fallback:
            s.warn(f"Extraction criteria matched nothing; sampled {len(subgraph.nodes)} nodes instead")
        for node_id in subgraph.skipped:
            s.warn(f"Skipped malformed node {node_id} during extraction")

    if not subgraph.nodes and not s.graph.is_empty():
        subgraph = Subgraph(nodes=s.graph.nodes()[:EMERGENCY_SUBGRAPH_SIZE])
        s.warn(f"Used emergency fallback: selected first {EMERGENCY_SUBGRAPH_SIZE} available nodes")

    ctx.subgraph = subgraph
    s.warn(f"Extracted subgraph with {len(subgraph.nodes)} nodes and {len(subgraph.edges)} edges")


async def composition(ctx: ExecutionContext, s: PhaseSession, env: PhaseEnv) -> None:
    if ctx.subgraph is None or not ctx.subgraph.nodes:
        s.warn("No subgraph available, creating basic narrative")
        ctx.narrative = basic_narrative(ctx.task_query)
        return

    ctx.narrative = None
    with s.isolate("Narrative generation failed"):
        ctx.narrative = compose_narrative(ctx.subgraph, ctx)
        s.warn(f"Generated narrative with {len(ctx.narrative)} characters")

    if ctx.narrative is None:
        with s.isolate("Basic narrative generation failed"):
            ctx.narrative = basic_narrative(ctx.task_query)
            s.warn("Used fallback basic narrative generation")
    if ctx.narrative is None:
        ctx.narrative = apology_narrative(ctx.task_query)


async def reflection(ctx: ExecutionContext, s: PhaseSession, env: PhaseEnv) -> None:
    ctx.audit = None
    ctx.quality_score = None

    with s.isolate("Audit failed"):
        ctx.audit = audit(ctx, s, env)
        if ctx.audit.critical_issues:
            s.warn(f"Audit found {len(ctx.audit.critical_issues)} critical issues")
    if ctx.audit is None:
        ctx.audit = AuditResult(score=0.3, warnings=["Audit failed"])

    with s.isolate("Quality calculation failed"):
        ctx.quality_score = quality_score(ctx, s.graph.node_count)
        s.warn(f"Overall quality score: {ctx.quality_score:.2f}")
    if ctx.quality_score is None:
        ctx.quality_score = fallbacks.default_quality(ctx)


def default_phases() -> list[Phase]:
    return [
        Phase(1, "Initialization", initialization, fallbacks.initialization),
        Phase(2, "Decomposition", decomposition, fallbacks.decomposition),
        Phase(3, "Hypothesis/Planning", hypothesis_planning, fallbacks.hypothesis_planning),
        Phase(4, "Evidence Integration", evidence_integration, fallbacks.evidence_integration),
        Phase(5, "Pruning/Merging", pruning_merging, fallbacks.pruning_merging),
        Phase(6, "Subgraph Extraction", subgraph_extraction, fallbacks.subgraph_extraction),
        Phase(7, "Composition", composition, fallbacks.composition),
        Phase(8, "Reflection", reflection, fallbacks.reflection),
    ]
