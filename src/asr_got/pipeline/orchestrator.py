from __future__ import annotations

import logging
import time
from typing import Iterable

import numpy as np

from ..annotators import (
    BiasAnnotator,
    CausalAnnotator,
    RegexBiasAnnotator,
    RegexCausalAnnotator,
    RegexTemporalAnnotator,
    TemporalAnnotator,
)
from ..knowledge_graph.models import GraphSnapshot
from ..knowledge_graph.store import GraphStore
from ..settings import AsrGotSettings, settings as default_settings
from ..validation import GraphValidator
from .cancellation import CancellationToken, run_cancellable
from .context import (
    Budget,
    ExecutionContext,
    ResearchQuery,
    StageDraft,
    StageResult,
    UserProfile,
)
from .narrative import emergency_narrative
from .phases import default_phases
from .retry import phase_retrying
from .session import Phase, PhaseEnv, PhaseSession

logger = logging.getLogger(__name__)

EMERGENCY_QUALITY = 0.1


class ReasoningPipeline:
    """Runs the eight phases over a fresh graph store, one run at a time.

    Every phase resolves to exactly one :class:`StageResult`: its coroutine runs
    as a cancellable task under the phase timeout, failed attempts are retried
    with exponential backoff, and the phase fallback supplies minimal output
    once attempts are exhausted. Any failure of a primary attempt, or a blown
    budget, switches the run to DEGRADED mode for the phases that follow.
    """

    def __init__(
        self,
        *,
        settings: AsrGotSettings | None = None,
        phases: Iterable[Phase] | None = None,
        bias_annotator: BiasAnnotator | None = None,
        causal_annotator: CausalAnnotator | None = None,
        temporal_annotator: TemporalAnnotator | None = None,
        validator: GraphValidator | None = None,
    ):
        self.settings = settings or default_settings
        self.phases = list(phases) if phases is not None else default_phases()
        self.bias_annotator = bias_annotator or RegexBiasAnnotator()
        self.causal_annotator = causal_annotator or RegexCausalAnnotator()
        self.temporal_annotator = temporal_annotator or RegexTemporalAnnotator()
        self.validator = validator or GraphValidator()
        self.store = GraphStore()

    def default_budget(self) -> Budget:
        return Budget(
            max_nodes=self.settings.max_nodes,
            max_edges=self.settings.max_edges,
            max_execution_time_ms=self.settings.max_execution_time_ms,
        )

    async def execute_complete(
        self,
        query: ResearchQuery | str,
        profile: UserProfile | None = None,
        *,
        budget: Budget | None = None,
        seed: int | None = None,
    ) -> ExecutionContext:
        """Run all phases for ``query``. Never raises."""
        self.store = GraphStore()
        ctx = ExecutionContext(
            query=ResearchQuery.coerce(query),
            user_profile=profile or UserProfile(),
            budget=budget or self.default_budget(),
        )

        try:
            env = PhaseEnv(
                settings=self.settings,
                rng=np.random.default_rng(seed if seed is not None else self.settings.random_seed),
                bias=self.bias_annotator,
                causal=self.causal_annotator,
                temporal=self.temporal_annotator,
                validator=self.validator,
            )
            for phase in self.phases:
                ctx.current_stage = phase.number
                ctx.stage_results.append(await self._run_phase(phase, ctx, env))
        except Exception as e:
            logger.exception("Pipeline failed at stage %d", ctx.current_stage)
            self._emergency_output(ctx, e)

        ctx.graph_state = self.store.snapshot()
        return ctx

    def get_graph(self) -> GraphSnapshot:
        return self.store.snapshot()

    get_state = get_graph

    # ------------------------------------------------------------------
    # Phase execution
    # ------------------------------------------------------------------

    async def _run_phase(self, phase: Phase, ctx: ExecutionContext, env: PhaseEnv) -> StageResult:
        draft = StageDraft(stage=phase.number, name=phase.name)
        started = time.perf_counter()
        max_attempts = (
            self.settings.degraded_max_attempts if ctx.fail_safe_active else self.settings.max_attempts
        )
        logger.info("Stage %d (%s) started, mode=%s", phase.number, phase.name, ctx.mode.value)

        primary_failed = False
        attempts = 0
        try:
            async for attempt in phase_retrying(max_attempts, self.settings.backoff_base_ms):
                with attempt:
                    attempts = attempt.retry_state.attempt_number
                    self._discard_partial(draft)
                    try:
                        await self._attempt(phase, ctx, env, draft)
                    except Exception as e:
                        primary_failed = True
                        draft.errors.append(f"Stage {phase.number} attempt {attempts} error: {e}")
                        logger.warning("Stage %d attempt %d failed: %s", phase.number, attempts, e)
                        raise
        except Exception:
            self._run_fallback(phase, ctx, env, draft, attempts)

        if primary_failed:
            ctx.degrade(f"stage {phase.number} failed")

        elapsed_ms = (time.perf_counter() - started) * 1000.0
        if not ctx.fail_safe_active and self._exceeds_budget(ctx, elapsed_ms):
            draft.warnings.append("Computational budget exceeded, switching to fail-safe mode")
            ctx.degrade("computational budget exceeded")

        logger.info("Stage %d (%s) resolved in %.1f ms", phase.number, phase.name, elapsed_ms)
        return draft.freeze(success=True, execution_time_ms=elapsed_ms)

    async def _attempt(self, phase: Phase, ctx: ExecutionContext, env: PhaseEnv, draft: StageDraft) -> None:
        token = CancellationToken()
        session = PhaseSession(graph=self.store.writer(token), draft=draft, token=token)
        await run_cancellable(
            lambda: phase.run(ctx, session, env),
            token,
            self.settings.phase_timeout_s,
            stage=phase.number,
        )

    def _run_fallback(
        self, phase: Phase, ctx: ExecutionContext, env: PhaseEnv, draft: StageDraft, attempts: int
    ) -> None:
        token = CancellationToken()
        self._discard_partial(draft)
        session = PhaseSession(graph=self.store.writer(token), draft=draft, token=token)
        try:
            phase.fallback(ctx, session, env)
            draft.warnings.append(
                f"Stage {phase.number} completed with fallback output after {attempts} attempts"
            )
        except Exception as e:
            logger.error("Stage %d fallback failed: %s", phase.number, e)
            draft.errors.append(f"Fallback creation failed: {e}")
            draft.warnings.append(
                f"Stage {phase.number} continued with minimal output due to fallback failure"
            )

    def _discard_partial(self, draft: StageDraft) -> None:
        """Roll back what an earlier attempt of this stage wrote, then forget its ids."""
        writer = self.store.writer(CancellationToken())
        edges = sum(writer.remove_edge(edge_id) for edge_id in reversed(draft.edges_created))
        nodes = sum(writer.remove_node(node_id) for node_id in reversed(draft.nodes_created))
        if edges or nodes:
            logger.info(
                "Stage %d: discarded %d nodes and %d edges from a failed attempt", draft.stage, nodes, edges
            )
        draft.reset_created()

    def _exceeds_budget(self, ctx: ExecutionContext, current_ms: float) -> bool:
        budget = ctx.budget
        return (
            self.store.node_count > budget.max_nodes
            or self.store.edge_count > budget.max_edges
            or ctx.elapsed_ms + current_ms > budget.max_execution_time_ms
        )

    def _emergency_output(self, ctx: ExecutionContext, error: Exception) -> None:
        if not ctx.stage_results:
            ctx.stage_results.append(
                StageResult(
                    stage=0,
                    name="Pipeline Failure",
                    success=False,
                    errors=(f"Pipeline failed: {error}",),
                )
            )
        ctx.degrade("pipeline failure")
        ctx.narrative = emergency_narrative(ctx.task_query, error)
        ctx.quality_score = EMERGENCY_QUALITY
