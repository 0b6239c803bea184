import pytest

from asr_got.knowledge_graph import EdgeMetadata, EdgeType, GraphQueryEngine, NodeType
from asr_got.knowledge_graph.models import new_id


@pytest.fixture
def triangle(store, node_factory):
    """a-b-c triangle plus a pendant d hanging off c."""
    ids = {name: store.add_node(node_factory(label=name)) for name in "abcd"}
    for src, dst in [("a", "b"), ("b", "c"), ("c", "a"), ("c", "d")]:
        store.add_edge(ids[src], ids[dst], EdgeMetadata(edge_id=new_id(), edge_type=EdgeType.SUPPORTIVE))
    return ids


class TestTopology:
    def test_metrics_for_triangle_member(self, store, triangle):
        m = store.update_topology_metrics(triangle["a"])
        assert m.degree == 2
        assert m.centrality == pytest.approx(2 / 3)
        assert m.clustering_coefficient == pytest.approx(1.0)
        assert m.betweenness == pytest.approx(2 / 4)
        assert store.get_node(triangle["a"]).topology_metrics == m

    def test_hub_clustering(self, store, triangle):
        m = store.update_topology_metrics(triangle["c"])
        assert m.degree == 3
        assert m.centrality == pytest.approx(1.0)
        # neighbours a, b, d: only a-b linked
        assert m.clustering_coefficient == pytest.approx(1 / 3)

    def test_pendant_has_no_clustering(self, store, triangle):
        assert store.update_topology_metrics(triangle["d"]).clustering_coefficient == 0.0


class TestQueryEngine:
    def test_expand_respects_depth(self, store, triangle):
        qe = GraphQueryEngine(store)
        one_hop = qe.expand(triangle["d"], depth=1)
        assert {n["node_id"] for n in one_hop["nodes"]} == {triangle["d"], triangle["c"]}
        two_hops = qe.expand(triangle["d"], depth=2)
        assert len(two_hops["nodes"]) == 4

    def test_expand_unknown_node(self, store):
        assert GraphQueryEngine(store).expand("ghost") == {"nodes": [], "edges": []}

    def test_shortest_path(self, store, triangle):
        qe = GraphQueryEngine(store)
        assert qe.shortest_path(triangle["a"], triangle["d"]) == [triangle["a"], triangle["c"], triangle["d"]]
        assert qe.shortest_path(triangle["a"], triangle["a"]) == [triangle["a"]]
        assert qe.shortest_path(triangle["a"], "ghost") is None

    def test_top_nodes_ranks_by_score(self, store, node_factory):
        weak = store.add_node(node_factory(confidence=0.2))
        strong = store.add_node(node_factory(confidence=0.9))
        store.add_node(node_factory(NodeType.EVIDENCE, confidence=1.0))

        top = GraphQueryEngine(store).top_nodes(NodeType.HYPOTHESIS, limit=2)
        assert [n.node_id for n in top] == [strong, weak]
