from datetime import timedelta

import pytest

from asr_got.knowledge_graph import ConfidenceVector, GraphStore, Node, NodeType
from asr_got.knowledge_graph.models import new_id, utcnow
from asr_got.settings import AsrGotSettings


def make_node(
    node_type: NodeType = NodeType.HYPOTHESIS,
    *,
    label: str = "node",
    confidence: float = 0.5,
    impact: float = 0.5,
    tags: list[str] | None = None,
    age_days: float = 0.0,
    **extra,
) -> Node:
    return Node(
        node_id=new_id(),
        label=label,
        node_type=node_type,
        timestamp=utcnow() - timedelta(days=age_days),
        confidence=ConfidenceVector.uniform(confidence),
        impact_score=impact,
        disciplinary_tags=tags if tags is not None else ["general"],
        **extra,
    )


@pytest.fixture
def store():
    return GraphStore()


@pytest.fixture
def fast_settings():
    """No backoff, short timeouts, fixed seed."""
    return AsrGotSettings(
        phase_timeout_s=5.0,
        backoff_base_ms=0.0,
        random_seed=7,
    )


@pytest.fixture
def node_factory():
    return make_node
