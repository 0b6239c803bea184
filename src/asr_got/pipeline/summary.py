from __future__ import annotations

from collections import Counter
from typing import Any

from ..knowledge_graph.insights import density
from ..knowledge_graph.models import NodeType
from .context import TOTAL_STAGES, ExecutionContext


def key_findings(ctx: ExecutionContext) -> list[str]:
    """Headline counts for a finished run, in a fixed order."""
    if ctx.graph_state is None:
        return []
    counts = Counter(n.node_type for n in ctx.graph_state.vertices.values())

    findings: list[str] = []
    if counts[NodeType.HYPOTHESIS]:
        findings.append(f"Generated {counts[NodeType.HYPOTHESIS]} hypotheses for investigation")
    if counts[NodeType.EVIDENCE]:
        findings.append(f"Integrated {counts[NodeType.EVIDENCE]} pieces of evidence")
    if counts[NodeType.INTERDISCIPLINARY_BRIDGE]:
        findings.append(
            f"Identified {counts[NodeType.INTERDISCIPLINARY_BRIDGE]} interdisciplinary connections"
        )
    if any(r.warnings for r in ctx.stage_results):
        findings.append("Analysis identified potential biases and limitations")
    return findings


def analysis_summary(ctx: ExecutionContext) -> dict[str, Any]:
    nodes = len(ctx.graph_state.vertices) if ctx.graph_state else 0
    edges = len(ctx.graph_state.edges) if ctx.graph_state else 0
    return {
        "query": ctx.task_query,
        "stages_completed": f"{ctx.successful_stages()}/{TOTAL_STAGES}",
        "graph_complexity": {"nodes": nodes, "edges": edges, "density": density(nodes, edges)},
        "fail_safe_activated": ctx.fail_safe_active,
        "total_execution_time_ms": ctx.elapsed_ms,
        "key_findings": key_findings(ctx),
    }
