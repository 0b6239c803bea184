from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from typing import Awaitable, Callable, Iterator

import numpy as np

from ..annotators import BiasAnnotator, CausalAnnotator, TemporalAnnotator
from ..errors import StaleWriterError
from ..knowledge_graph.models import EdgeMetadata, Node
from ..knowledge_graph.store import GraphWriter
from ..settings import AsrGotSettings
from ..validation import GraphValidator
from .cancellation import CancellationToken
from .context import ExecutionContext, StageDraft


@dataclass(slots=True)
class PhaseEnv:
    """Run-scoped collaborators shared by every phase of one execution."""

    settings: AsrGotSettings
    rng: np.random.Generator
    bias: BiasAnnotator
    causal: CausalAnnotator
    temporal: TemporalAnnotator
    validator: GraphValidator


@dataclass(slots=True)
class PhaseSession:
    """One attempt's view of the run: a token-bound writer plus the stage draft."""

    graph: GraphWriter
    draft: StageDraft
    token: CancellationToken

    async def checkpoint(self) -> None:
        await self.token.checkpoint()

    def add_node(self, node: Node) -> str:
        node_id = self.graph.add_node(node)
        self.draft.nodes_created.append(node_id)
        return node_id

    def add_edge(self, source_id: str, target_id: str, metadata: EdgeMetadata) -> str:
        edge_id = self.graph.add_edge(source_id, target_id, metadata)
        self.draft.edges_created.append(edge_id)
        return edge_id

    def warn(self, message: str) -> None:
        self.draft.warnings.append(message)

    @contextmanager
    def isolate(self, what: str) -> Iterator[None]:
        """Downgrade a per-item failure to a stage warning.

        Stale-writer rejections still propagate: the phase has been abandoned.
        """
        try:
            yield
        except StaleWriterError:
            raise
        except Exception as e:
            self.draft.warnings.append(f"{what}: {e}")


PhaseFn = Callable[[ExecutionContext, PhaseSession, PhaseEnv], Awaitable[None]]
FallbackFn = Callable[[ExecutionContext, PhaseSession, PhaseEnv], None]


@dataclass(frozen=True, slots=True)
class Phase:
    number: int
    name: str
    run: PhaseFn
    fallback: FallbackFn
