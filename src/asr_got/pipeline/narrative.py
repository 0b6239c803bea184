from __future__ import annotations

from ..knowledge_graph import confidence as conf
from ..knowledge_graph.models import Node, Subgraph
from .context import ExecutionContext

KEY_FINDINGS = 5


def top_findings(subgraph: Subgraph, limit: int = KEY_FINDINGS) -> list[Node]:
    return sorted(
        subgraph.nodes,
        key=lambda n: (conf.weighted_score(n.confidence), n.impact_score),
        reverse=True,
    )[:limit]


def compose_narrative(subgraph: Subgraph, ctx: ExecutionContext) -> str:
    """Markdown report built from the strongest nodes of the extracted subgraph."""
    perspectives = ctx.user_profile.research_focus or ctx.query.domain
    findings = "\n".join(
        f"{i}. **{node.label}**: {node.provenance} "
        f"(Confidence: {conf.weighted_score(node.confidence) * 100:.1f}%)"
        for i, node in enumerate(top_findings(subgraph), start=1)
    )
    qa = (
        "Analysis completed with fail-safe mechanisms active."
        if ctx.fail_safe_active
        else "Analysis completed with full computational resources."
    )
    return "\n".join(
        [
            "# Advanced Scientific Reasoning Analysis",
            "",
            f"## Query: {ctx.task_query}",
            "",
            "## Executive Summary",
            f"This analysis processed {len(subgraph.nodes)} conceptual nodes and "
            f"{len(subgraph.edges)} relationships through an 8-stage Graph-of-Thoughts "
            f"reasoning pipeline, drawing on {', '.join(perspectives) or 'interdisciplinary'} perspectives.",
            "",
            "## Key Findings",
            findings or "_No findings met the extraction criteria._",
            "",
            "## Methodology",
            "Hypotheses were decomposed from the query, scored against simulated evidence "
            "with Bayesian confidence updates, pruned and merged before extraction.",
            "",
            "## Quality Assurance",
            qa,
        ]
    )


def basic_narrative(query: str) -> str:
    return "\n".join(
        [
            "# Basic Analysis Results",
            "",
            f"## Query: {query}",
            "",
            "## Summary",
            "A basic analysis was performed using fail-safe mechanisms. The system encountered "
            "limitations but generated the following minimal viable output:",
            "",
            "- Initial task understanding established",
            "- Basic dimensional analysis completed",
            "- Fundamental hypotheses identified",
            "",
            "## Note",
            "This analysis operated under computational constraints. For comprehensive results, "
            "retry with a larger computational budget.",
        ]
    )


def apology_narrative(query: str) -> str:
    return f'Analysis attempted for query: "{query}". Partial results may be available in the graph state.'


def emergency_narrative(query: str, error: BaseException) -> str:
    return (
        f'Analysis of query "{query}" encountered critical errors. '
        f"Partial results may be available. Error: {error}"
    )
