import asyncio
from dataclasses import replace

import pytest

from asr_got.errors import StageTimeoutError, StaleWriterError
from asr_got.knowledge_graph import Node, NodeType
from asr_got.knowledge_graph.models import new_id
from asr_got.pipeline import (
    Budget,
    CancellationToken,
    ReasoningPipeline,
    ResearchQuery,
    RunMode,
)
from asr_got.pipeline.cancellation import run_cancellable
from asr_got.pipeline.phases import decomposition, default_phases


async def always_fails(ctx, session, env):
    raise RuntimeError("boom")


def broken_fallback(ctx, session, env):
    raise RuntimeError("fallback boom")


def with_phase(number, **changes):
    return [replace(p, **changes) if p.number == number else p for p in default_phases()]


class TestCompleteRun:
    @pytest.mark.asyncio
    async def test_empty_query_resolves_all_stages(self, fast_settings):
        ctx = await ReasoningPipeline(settings=fast_settings).execute_complete("")

        assert [r.stage for r in ctx.stage_results] == list(range(1, 9))
        assert ctx.current_stage == 8
        assert all(r.success for r in ctx.stage_results)
        assert ctx.narrative
        assert 0.0 <= ctx.quality_score <= 1.0
        assert ctx.audit is not None

    @pytest.mark.asyncio
    async def test_normal_run_builds_expected_shape(self, fast_settings):
        pipeline = ReasoningPipeline(settings=fast_settings)
        ctx = await pipeline.execute_complete("Effects of exercise on sleep quality")

        stage1, stage2 = ctx.stage_results[0], ctx.stage_results[1]
        assert len(stage1.nodes_created) == 1
        assert len(stage2.nodes_created) == 7
        assert len(stage2.edges_created) == 7
        assert ctx.mode is RunMode.NORMAL
        assert not ctx.fail_safe_active
        assert ctx.errors == []
        assert ctx.narrative.startswith("# Advanced Scientific Reasoning Analysis")

        snapshot = pipeline.get_graph()
        causal = [e for e in snapshot.edges.values() if e.edge_type.value == "causal"]
        assert causal and all(e.metadata.causal_metadata is not None for e in causal)

    @pytest.mark.asyncio
    async def test_final_graph_passes_validation(self, fast_settings):
        pipeline = ReasoningPipeline(settings=fast_settings)
        await pipeline.execute_complete("Sleep improves after exercise over 2 weeks")

        report = pipeline.validator.validate(pipeline.get_state())
        assert report.statistics["invalid_references"] == 0
        assert report.is_valid, report.errors

    @pytest.mark.asyncio
    async def test_same_seed_same_shape(self, fast_settings):
        a = await ReasoningPipeline(settings=fast_settings).execute_complete("gut microbiome", seed=11)
        b = await ReasoningPipeline(settings=fast_settings).execute_complete("gut microbiome", seed=11)
        assert [len(r.nodes_created) for r in a.stage_results] == [len(r.nodes_created) for r in b.stage_results]

    @pytest.mark.asyncio
    async def test_interdisciplinary_query_creates_bridges(self, fast_settings):
        query = ResearchQuery(
            query="Microbiome and labour productivity",
            domain=["biology", "economics"],
            interdisciplinary=True,
        )
        pipeline = ReasoningPipeline(settings=fast_settings)
        ctx = await pipeline.execute_complete(query)

        stage4 = ctx.stage_results[3]
        bridges = [
            n for n in stage4.nodes_created
            if (node := ctx.graph_state.vertices.get(n)) and node.node_type is NodeType.INTERDISCIPLINARY_BRIDGE
        ]
        assert bridges
        node = ctx.graph_state.vertices[bridges[0]]
        assert set(node.disciplinary_tags) == {"biology", "economics"}

    @pytest.mark.asyncio
    async def test_graph_snapshot_is_a_copy(self, fast_settings):
        pipeline = ReasoningPipeline(settings=fast_settings)
        await pipeline.execute_complete("q")
        snap = pipeline.get_graph()
        snap.vertices.clear()
        assert pipeline.get_graph().vertices


class TestFailSafe:
    @pytest.mark.asyncio
    async def test_phase_failing_every_attempt_falls_back(self, fast_settings):
        pipeline = ReasoningPipeline(settings=fast_settings, phases=with_phase(3, run=always_fails))
        ctx = await pipeline.execute_complete("q")

        stage3 = ctx.stage_results[2]
        assert stage3.success
        assert any("fallback" in w for w in stage3.warnings)
        assert [e for e in stage3.errors if "attempt" in e] == [
            "Stage 3 attempt 1 error: boom",
            "Stage 3 attempt 2 error: boom",
            "Stage 3 attempt 3 error: boom",
        ]
        assert len(stage3.nodes_created) == 1
        assert ctx.fail_safe_active
        assert len(ctx.stage_results) == 8

    @pytest.mark.asyncio
    async def test_degraded_mode_retries_once_and_shrinks_output(self, fast_settings):
        phases = [
            replace(p, run=always_fails) if p.number in (1, 5) else p for p in default_phases()
        ]
        ctx = await ReasoningPipeline(settings=fast_settings, phases=phases).execute_complete("q")

        # Stage 1 failed in NORMAL mode, so hypotheses are generated degraded: 2 per dimension.
        assert len(ctx.stage_results[2].nodes_created) == 14
        stage5_attempts = [e for e in ctx.stage_results[4].errors if "attempt" in e]
        assert stage5_attempts == ["Stage 5 attempt 1 error: boom"]

    @pytest.mark.asyncio
    async def test_failing_fallback_is_downgraded_to_warning(self, fast_settings):
        phases = with_phase(7, run=always_fails, fallback=broken_fallback)
        ctx = await ReasoningPipeline(settings=fast_settings, phases=phases).execute_complete("q")

        stage7 = ctx.stage_results[6]
        assert stage7.success
        assert "Fallback creation failed: fallback boom" in stage7.errors
        assert any("continued with minimal output" in w for w in stage7.warnings)
        assert ctx.current_stage == 8

    @pytest.mark.asyncio
    async def test_timeout_triggers_retry_and_fallback(self, fast_settings):
        async def hangs(ctx, session, env):
            await asyncio.sleep(10)

        settings = fast_settings.model_copy(update={"phase_timeout_s": 0.05})
        ctx = await ReasoningPipeline(settings=settings, phases=with_phase(1, run=hangs)).execute_complete("q")

        stage1 = ctx.stage_results[0]
        assert stage1.success
        assert "Stage 1 attempt 1 error: Stage 1 timeout after 0.05 seconds" in stage1.errors
        assert any("fallback" in w for w in stage1.warnings)
        assert ctx.graph_state.vertices[stage1.nodes_created[0]].label == "Basic Task Understanding"

    @pytest.mark.asyncio
    async def test_budget_overrun_degrades_by_stage_five(self, fast_settings):
        observed = {}

        async def spy(ctx, session, env):
            observed["degraded"] = ctx.fail_safe_active

        phases = with_phase(5, run=spy)
        ctx = await ReasoningPipeline(settings=fast_settings, phases=phases).execute_complete(
            "q", budget=Budget(max_nodes=5)
        )

        assert observed["degraded"] is True
        assert ctx.fail_safe_active
        assert any("budget" in w for w in ctx.stage_results[1].warnings)

    @pytest.mark.asyncio
    async def test_escaped_exception_yields_emergency_context(self, fast_settings, monkeypatch):
        pipeline = ReasoningPipeline(settings=fast_settings)

        async def explode(*args, **kwargs):
            raise RuntimeError("kaboom")

        monkeypatch.setattr(pipeline, "_run_phase", explode)
        ctx = await pipeline.execute_complete("q")

        assert len(ctx.stage_results) == 1
        failure = ctx.stage_results[0]
        assert failure.name == "Pipeline Failure" and not failure.success
        assert ctx.quality_score == 0.1
        assert "encountered critical errors" in ctx.narrative
        assert ctx.fail_safe_active


class TestCancellation:
    @pytest.mark.asyncio
    async def test_timeout_cancels_token_before_raising(self):
        token = CancellationToken()

        async def slow():
            await asyncio.sleep(10)

        with pytest.raises(StageTimeoutError, match="Stage 4 timeout"):
            await run_cancellable(slow, token, 0.01, stage=4)
        assert token.cancelled

    @pytest.mark.asyncio
    async def test_checkpoint_aborts_abandoned_phase(self):
        token = CancellationToken()
        token.cancel()
        with pytest.raises(asyncio.CancelledError):
            await token.checkpoint()

    @pytest.mark.asyncio
    async def test_result_passes_through(self):
        async def quick():
            return 42

        assert await run_cancellable(quick, CancellationToken(), 1.0, stage=1) == 42

    @pytest.mark.asyncio
    async def test_late_write_from_timed_out_phase_is_rejected(self, fast_settings):
        rejected = []

        async def stubborn(ctx, session, env):
            try:
                await asyncio.sleep(10)
            except asyncio.CancelledError:
                try:
                    session.add_node(Node(node_id=new_id(), label="Late root", node_type=NodeType.ROOT))
                except StaleWriterError:
                    rejected.append(True)
                raise

        settings = fast_settings.model_copy(update={"phase_timeout_s": 0.05})
        pipeline = ReasoningPipeline(settings=settings, phases=with_phase(1, run=stubborn))
        ctx = await pipeline.execute_complete("q")

        assert rejected == [True, True, True]
        stage1 = ctx.stage_results[0]
        assert len(stage1.nodes_created) == 1
        roots = [n for n in ctx.graph_state.vertices.values() if n.node_type is NodeType.ROOT]
        assert [n.label for n in roots] == ["Basic Task Understanding"]


class TestRetryRollback:
    @pytest.mark.asyncio
    async def test_retry_discards_writes_of_failed_attempt(self, fast_settings):
        calls = []

        async def flaky_decomposition(ctx, session, env):
            await decomposition(ctx, session, env)
            calls.append(1)
            if len(calls) == 1:
                raise RuntimeError("transient")

        pipeline = ReasoningPipeline(settings=fast_settings, phases=with_phase(2, run=flaky_decomposition))
        ctx = await pipeline.execute_complete("q")

        stage2, stage3 = ctx.stage_results[1], ctx.stage_results[2]
        dims = [n for n in ctx.graph_state.vertices.values() if n.node_type is NodeType.DIMENSION]
        assert len(calls) == 2
        assert len(dims) == 7
        assert {n.node_id for n in dims} == set(stage2.nodes_created)
        assert all(e in ctx.graph_state.edges for e in stage2.edges_created)
        assert not any("fallback" in w for w in stage2.warnings)
        # The failure degraded the run: two hypotheses per surviving dimension.
        assert len(stage3.nodes_created) == 14

    @pytest.mark.asyncio
    async def test_fallback_discards_writes_of_failed_attempts(self, fast_settings):
        async def writes_then_fails(ctx, session, env):
            await decomposition(ctx, session, env)
            raise RuntimeError("boom")

        pipeline = ReasoningPipeline(settings=fast_settings, phases=with_phase(2, run=writes_then_fails))
        ctx = await pipeline.execute_complete("q")

        dims = [n for n in ctx.graph_state.vertices.values() if n.node_type is NodeType.DIMENSION]
        assert sorted(n.label for n in dims) == ["Basic Objectives", "Basic Scope"]
