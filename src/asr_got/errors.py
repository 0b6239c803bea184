"""Exception taxonomy for the reasoning graph.

Per-item failures (one bad add) raise the graph errors below and are isolated
by the caller; phase-level failures are retried and then replaced by fallback
output. None of these ever escape ``ReasoningPipeline.execute_complete``.
"""

from __future__ import annotations


class GraphError(Exception):
    """Base class for graph store failures."""


class GraphValidationError(GraphError):
    """Malformed node/edge metadata (missing id, missing type, ...)."""


class GraphReferenceError(GraphError):
    """An edge references a node that is not in the store."""

    def __init__(self, node_id: str, role: str = "endpoint"):
        self.node_id = node_id
        self.role = role
        super().__init__(f"{role.capitalize()} node {node_id} does not exist")


class StaleWriterError(GraphError):
    """A write was attempted through a session whose phase was abandoned."""


class StageTimeoutError(TimeoutError):
    """A phase attempt exceeded its time budget."""

    def __init__(self, stage: int, timeout_s: float):
        self.stage = stage
        self.timeout_s = timeout_s
        super().__init__(f"Stage {stage} timeout after {timeout_s:g} seconds")


class AnnotatorError(Exception):
    """A text heuristic failed. Always recovered locally as a warning."""
