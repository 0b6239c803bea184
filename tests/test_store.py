import pytest

from asr_got.errors import GraphReferenceError, GraphValidationError, StaleWriterError
from asr_got.knowledge_graph import (
    ConfidenceVector,
    EdgeMetadata,
    EdgeType,
    Evidence,
    GraphStore,
    Node,
    NodeType,
    SubgraphCriteria,
)
from asr_got.knowledge_graph.models import CausalMetadata, new_id
from asr_got.pipeline import CancellationToken


def edge(edge_type=EdgeType.SUPPORTIVE):
    return EdgeMetadata(edge_id=new_id(), edge_type=edge_type)


class TestNodes:
    def test_add_then_get_round_trips_fields(self, store, node_factory):
        node = node_factory(label="Scope", confidence=0.7, impact=0.6, tags=["biology"], layer_id="decomposition")
        node_id = store.add_node(node)

        got = store.get_node(node_id)
        assert store.node_count == 1
        assert got.label == "Scope"
        assert got.confidence == ConfidenceVector.uniform(0.7)
        assert got.disciplinary_tags == ["biology"]
        assert got.revision_history[0].change == "Node created"
        assert store.layer("decomposition") == [node_id]

    def test_mapping_input_accepts_type_key(self, store):
        node_id = store.add_node({"node_id": "n1", "label": "root", "type": "root"})
        got = store.get_node(node_id)
        assert got.node_type is NodeType.ROOT
        assert got.impact_score == 0.5
        assert got.disciplinary_tags == ["general"]

    def test_missing_id_or_type_is_rejected(self, store):
        with pytest.raises(GraphValidationError):
            store.add_node(Node(node_type=NodeType.ROOT))
        with pytest.raises(GraphValidationError):
            store.add_node(Node(node_id="x"))
        assert store.node_count == 0

    def test_id_collision_regenerates_id(self, store, node_factory):
        first = node_factory()
        store.add_node(first)
        second_id = store.add_node(Node(node_id=first.node_id, node_type=NodeType.EVIDENCE))
        assert second_id != first.node_id
        assert store.node_count == 2

    def test_update_confidence_on_missing_node_returns_false(self, store):
        assert store.update_node_confidence("missing", ConfidenceVector.uniform(0.9)) is False

    def test_update_confidence_appends_revision(self, store, node_factory):
        node_id = store.add_node(node_factory(confidence=0.5))
        assert store.update_node_confidence(node_id, ConfidenceVector.uniform(0.5), Evidence(reliability=1.0))
        got = store.get_node(node_id)
        assert got.revision_history[-1].change == "Confidence updated via Bayesian inference"
        assert got.confidence.empirical_support == pytest.approx(0.5)

    def test_remove_cascades_to_edges_and_layers(self, store, node_factory):
        a = store.add_node(node_factory(layer_id="hypothesis"))
        b = store.add_node(node_factory())
        store.add_edge(a, b, edge())
        assert store.remove_node(a)
        assert store.edge_count == 0
        assert store.layer("hypothesis") == []


class TestEdges:
    def test_missing_endpoint_fails_and_count_unchanged(self, store, node_factory):
        a = store.add_node(node_factory())
        with pytest.raises(GraphReferenceError, match="does not exist"):
            store.add_edge(a, "ghost", edge())
        with pytest.raises(GraphReferenceError):
            store.add_edge("ghost", a, edge())
        assert store.edge_count == 0

    def test_missing_edge_id_is_rejected(self, store, node_factory):
        a = store.add_node(node_factory())
        b = store.add_node(node_factory())
        with pytest.raises(GraphValidationError):
            store.add_edge(a, b, EdgeMetadata())

    def test_hyperedge_requires_two_distinct_members(self, store, node_factory):
        a = store.add_node(node_factory())
        with pytest.raises(GraphValidationError):
            store.add_hyperedge([a, a], edge())

    def test_hyperedge_membership_checked_only_when_strict(self, store, node_factory):
        a = store.add_node(node_factory())
        hid = store.add_hyperedge([a, "ghost"], edge())
        assert store.get_hyperedge(hid).nodes == [a, "ghost"]
        with pytest.raises(GraphReferenceError):
            store.add_hyperedge([a, "ghost"], edge(), strict=True)


class TestPruneAndMerge:
    def test_prune_requires_both_conditions(self, store, node_factory):
        both_low = store.add_node(node_factory(confidence=0.1, impact=0.05))
        low_conf = store.add_node(node_factory(confidence=0.1, impact=0.5))
        low_impact = store.add_node(node_factory(confidence=0.5, impact=0.05))
        store.add_edge(both_low, low_conf, edge())

        pruned = store.prune_nodes(0.2, 0.1)

        assert pruned == [both_low]
        assert store.has_node(low_conf) and store.has_node(low_impact)
        assert store.edge_count == 0

    def test_merge_below_threshold_is_noop(self, store, node_factory):
        a = store.add_node(node_factory())
        b = store.add_node(node_factory())
        assert store.merge_nodes(a, b, 0.79) is None
        assert store.node_count == 2

    def test_merge_unions_tags_and_rewires(self, store, node_factory):
        a = store.add_node(node_factory(label="A", tags=["x"], impact=0.3, bias_flags=["recency_bias"]))
        b = store.add_node(node_factory(label="B", tags=["y"], impact=0.7))
        c = store.add_node(node_factory(label="C"))
        store.add_edge(c, a, edge())
        store.add_edge(b, c, edge())
        store.add_edge(a, b, edge())

        merged = store.merge_nodes(a, b, 0.9)

        assert store.node_count == 2
        node = store.get_node(merged)
        assert set(node.disciplinary_tags) == {"x", "y"}
        assert node.bias_flags == ["recency_bias"]
        assert node.impact_score == 0.7
        assert node.revision_history[-1].change == "Node created by merging"
        assert store.edge_count == 2
        for e in store.edges():
            assert e.touches(merged) and e.touches(c)
            assert e.source != e.target


class TestBridges:
    def test_disjoint_tags_and_high_similarity_create_bridge(self, store, node_factory):
        a = store.add_node(node_factory(label="A", tags=["biology"], confidence=0.4, impact=0.2))
        b = store.add_node(node_factory(label="B", tags=["economics"], confidence=0.8, impact=0.9))

        outcome = store.create_interdisciplinary_bridge(a, b, 0.9)

        assert outcome.created
        bridge = store.get_node(outcome.bridge_id)
        assert bridge.node_type is NodeType.INTERDISCIPLINARY_BRIDGE
        assert set(bridge.disciplinary_tags) == {"biology", "economics"}
        assert bridge.impact_score == 0.9
        assert bridge.confidence.empirical_support == pytest.approx(0.6)
        assert len(outcome.edge_ids) == 2
        assert store.edge_count == 2
        assert {(e.source, e.target) for e in store.edges()} == {(a, bridge.node_id), (bridge.node_id, b)}

    def test_bridge_refusals_are_reported(self, store, node_factory):
        a = store.add_node(node_factory(tags=["biology"]))
        b = store.add_node(node_factory(tags=["biology", "chemistry"]))
        c = store.add_node(node_factory(tags=["economics"]))

        assert store.create_interdisciplinary_bridge(a, b, 0.9).reason == "shared_tags"
        assert store.create_interdisciplinary_bridge(a, c, 0.5).reason == "low_similarity"
        assert store.create_interdisciplinary_bridge(a, "ghost", 0.9).reason == "missing_endpoint"
        assert store.node_count == 3


class TestSubgraph:
    def _populate(self, store, node_factory):
        h = store.add_node(node_factory(NodeType.HYPOTHESIS, confidence=0.6))
        e = store.add_node(node_factory(NodeType.EVIDENCE, confidence=0.6))
        d = store.add_node(node_factory(NodeType.DIMENSION, confidence=0.6))
        old = store.add_node(node_factory(NodeType.HYPOTHESIS, confidence=0.6, age_days=400))
        store.add_edge(e, h, edge(EdgeType.SUPPORTIVE))
        store.add_edge(d, h, edge(EdgeType.SPECIALIZATION))
        store.add_edge(old, h, edge(EdgeType.SUPPORTIVE))
        return h, e, d, old

    def test_edges_only_between_kept_nodes(self, store, node_factory):
        h, e, d, old = self._populate(store, node_factory)
        sub = store.extract_subgraph(
            SubgraphCriteria(
                node_types=frozenset({NodeType.HYPOTHESIS, NodeType.EVIDENCE}),
                temporal_recency_days=365,
            )
        )
        assert sub.node_ids() == {h, e}
        assert not sub.fallback
        for ed in sub.edges:
            assert ed.source in sub.node_ids() and ed.target in sub.node_ids()
        assert len(sub.edges) == 1

    def test_edge_type_filter(self, store, node_factory):
        self._populate(store, node_factory)
        sub = store.extract_subgraph(SubgraphCriteria(edge_types=frozenset({EdgeType.CAUSAL})))
        assert sub.nodes and sub.edges == []

    def test_empty_type_sets_mean_no_filter(self, store, node_factory):
        self._populate(store, node_factory)
        sub = store.extract_subgraph(SubgraphCriteria(node_types=frozenset(), edge_types=frozenset()))
        assert len(sub.nodes) == 4
        assert len(sub.edges) == 3

    def test_empty_match_returns_flagged_sample(self, store, node_factory):
        self._populate(store, node_factory)
        sub = store.extract_subgraph(SubgraphCriteria(confidence_threshold=0.99))
        assert sub.fallback
        assert 0 < len(sub.nodes) <= 5
        assert sub.edges == []

    def test_empty_store_is_not_a_fallback(self, store):
        sub = store.extract_subgraph(SubgraphCriteria(confidence_threshold=0.99))
        assert sub.nodes == [] and not sub.fallback

    def test_malformed_node_is_skipped(self, store, node_factory):
        good = store.add_node(node_factory())
        bad = store.add_node(node_factory())
        store.get_node(bad).confidence = None

        sub = store.extract_subgraph(SubgraphCriteria(confidence_threshold=0.1))

        assert sub.node_ids() == {good}
        assert sub.skipped == [bad]


class TestSessions:
    def test_writer_rejects_writes_after_cancellation(self, store, node_factory):
        token = CancellationToken()
        writer = store.writer(token)
        writer.add_node(node_factory())

        token.cancel()
        with pytest.raises(StaleWriterError):
            writer.add_node(node_factory())
        assert writer.node_count == 1

    def test_writer_guards_topology_cache_and_hides_store(self, store, node_factory):
        token = CancellationToken()
        node_id = store.add_node(node_factory())
        writer = store.writer(token)

        token.cancel()
        with pytest.raises(StaleWriterError):
            writer.update_topology_metrics(node_id)
        with pytest.raises(StaleWriterError):
            writer.remove_edge("any")
        assert store.get_node(node_id).topology_metrics is None
        assert not hasattr(writer, "store")
        with pytest.raises(AttributeError):
            writer._touch()

    def test_snapshot_is_a_deep_copy(self, store, node_factory):
        node_id = store.add_node(node_factory(label="original"))
        snap = store.snapshot()
        snap.vertices[node_id].label = "changed"
        snap.vertices[node_id].disciplinary_tags.append("mutated")

        assert store.get_node(node_id).label == "original"
        assert store.get_node(node_id).disciplinary_tags == ["general"]
        assert snap.to_dict()["nodes"][0]["type"] == "hypothesis"


class TestMappingInput:
    def test_node_dict_round_trips_into_another_store(self, store, node_factory):
        node_id = store.add_node(node_factory(label="Scope", tags=["biology"], layer_id="decomposition"))
        original = store.get_node(node_id)

        other = GraphStore()
        copied_id = other.add_node(original.to_dict())

        copied = other.get_node(copied_id)
        assert copied_id == node_id
        assert copied.timestamp == original.timestamp
        assert copied.revision_history == original.revision_history
        assert copied.confidence == original.confidence
        assert other.layer("decomposition") == [node_id]

    def test_edge_dict_round_trips_with_causal_metadata(self, store, node_factory):
        a = store.add_node(node_factory())
        b = store.add_node(node_factory())
        meta = EdgeMetadata(
            edge_id=new_id(),
            edge_type=EdgeType.CAUSAL,
            causal_metadata=CausalMetadata(confounders=("age",), strength=0.6),
        )
        edge_id = store.add_edge(a, b, meta)

        other = GraphStore()
        for node in store.nodes():
            other.add_node(node.to_dict())
        data = store.get_edge(edge_id).to_dict()
        other.add_edge(data["source"], data["target"], data)

        copied = other.get_edge(edge_id)
        assert copied.edge_type is EdgeType.CAUSAL
        assert copied.metadata.causal_metadata == CausalMetadata(confounders=("age",), strength=0.6)

    @pytest.mark.parametrize(
        "data",
        [
            {"node_id": "x", "type": "bogus"},
            {"node_id": "x", "type": "root", "confidence": {"certainty": 0.9}},
            {"node_id": "x", "type": "root", "timestamp": "yesterday"},
            {"node_id": "x", "type": "root", "revision_history": [{"timestamp": "2024-01-01"}]},
        ],
    )
    def test_malformed_node_mapping_is_a_validation_error(self, store, data):
        with pytest.raises(GraphValidationError):
            store.add_node(data)
        assert store.node_count == 0

    def test_unknown_edge_type_is_a_validation_error(self, store, node_factory):
        a = store.add_node(node_factory())
        b = store.add_node(node_factory())
        with pytest.raises(GraphValidationError):
            store.add_edge(a, b, {"edge_id": "e1", "edge_type": "telepathic"})
        assert store.edge_count == 0
