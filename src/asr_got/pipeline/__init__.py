"""Eight-phase fail-safe reasoning pipeline over the knowledge graph."""

from .cancellation import CancellationToken
from .context import (
    AuditResult,
    Budget,
    ExecutionContext,
    ResearchQuery,
    RunMode,
    StageResult,
    UserProfile,
)
from .orchestrator import ReasoningPipeline
from .session import Phase, PhaseEnv, PhaseSession
from .summary import analysis_summary, key_findings

__all__ = [
    "AuditResult",
    "Budget",
    "CancellationToken",
    "ExecutionContext",
    "Phase",
    "PhaseEnv",
    "PhaseSession",
    "ReasoningPipeline",
    "ResearchQuery",
    "RunMode",
    "StageResult",
    "UserProfile",
    "analysis_summary",
    "key_findings",
]
