"""Tests for the attestation graph."""

from trustgraph.attestation_graph import AttestationGraph, Edge, build_attestation_graph


class TestAddEdge:
    def test_registers_nodes_in_first_seen_order(self):
        graph = AttestationGraph()
        graph.add_edge("c", "a", 1.0)
        graph.add_edge("b", "c", 1.0)
        assert graph.nodes() == ["c", "a", "b"]
        assert len(graph) == 3
        assert "a" in graph
        assert "z" not in graph

    def test_duplicates_append_parallel_edges(self):
        graph = AttestationGraph()
        graph.add_edge("a", "b", 1.0)
        graph.add_edge("a", "b", 2.0)
        assert graph.outgoing("a") == [("b", 1.0), ("b", 2.0)]
        assert graph.incoming_count("b") == 2
        assert graph.edge_count() == 2

    def test_override_existing_edge(self):
        graph = AttestationGraph(allow_duplicates=False)
        graph.add_edge("a", "b", 1.0)
        assert graph.incoming_count("b") == 1
        graph.add_edge("a", "b", 2.0)
        assert graph.incoming_count("b") == 1
        assert graph.outgoing("a") == [("b", 2.0)]

    def test_override_only_touches_same_target(self):
        graph = AttestationGraph(allow_duplicates=False)
        graph.add_edge("a", "b", 1.0)
        graph.add_edge("a", "c", 3.0)
        graph.add_edge("a", "b", 5.0)
        assert graph.outgoing("a") == [("b", 5.0), ("c", 3.0)]

    def test_self_loops_are_stored(self):
        graph = AttestationGraph()
        graph.add_edge("a", "a", 100.0)
        assert graph.nodes() == ["a"]
        assert graph.outgoing("a") == [("a", 100.0)]

    def test_clamps_when_bounds_given(self):
        graph = AttestationGraph(min_weight=0.0, max_weight=100.0)
        graph.add_edge("a", "b", 250.0)
        graph.add_edge("a", "c", -3.0)
        graph.add_edge("a", "d", float("nan"))
        assert graph.outgoing("a") == [("b", 100.0), ("c", 0.0), ("d", 0.0)]

    def test_unknown_node_has_no_edges(self):
        graph = AttestationGraph()
        assert graph.outgoing("missing") == []
        assert graph.incoming_count("missing") == 0

    def test_accessors_return_copies(self):
        graph = AttestationGraph()
        graph.add_edge("a", "b", 1.0)
        graph.nodes().append("x")
        graph.outgoing("a").append(("x", 1.0))
        assert graph.nodes() == ["a", "b"]
        assert graph.outgoing("a") == [("b", 1.0)]


class TestSort:
    def test_orders_nodes_and_edges(self):
        graph = AttestationGraph()
        graph.add_edge("c", "b", 1.0)
        graph.add_edge("c", "a", 2.0)
        graph.add_edge("b", "c", 3.0)
        graph.sort()
        assert graph.nodes() == ["a", "b", "c"]
        assert graph.outgoing("c") == [("a", 2.0), ("b", 1.0)]


class TestBuildAttestationGraph:
    def test_builds_sorted_graph(self):
        graph = build_attestation_graph([Edge("b", "a", 1.0), ("a", "c", 2.0)])
        assert graph.nodes() == ["a", "b", "c"]
        assert graph.outgoing("a") == [("c", 2.0)]

    def test_last_write_wins(self):
        graph = build_attestation_graph(
            [("a", "b", 10.0), ("a", "b", 0.0)], allow_duplicates=False
        )
        assert graph.outgoing("a") == [("b", 0.0)]

    def test_empty(self):
        graph = build_attestation_graph([])
        assert len(graph) == 0
        assert graph.edge_count() == 0


class TestDefaultBounds:
    def test_default_graph_clamps_to_weight_range(self):
        graph = AttestationGraph()
        graph.add_edge("a", "b", 1000.0)
        graph.add_edge("a", "c", -20.0)
        assert graph.outgoing("a") == [("b", 100.0), ("c", 0.0)]

    def test_builder_clamps_by_default(self):
        graph = build_attestation_graph([("a", "b", 1000.0), ("c", "b", 50.0)])
        assert graph.outgoing("a") == [("b", 100.0)]
        assert graph.outgoing("c") == [("b", 50.0)]

    def test_bounds_can_be_disabled(self):
        graph = AttestationGraph(min_weight=None, max_weight=None)
        graph.add_edge("a", "b", 1000.0)
        assert graph.outgoing("a") == [("b", 1000.0)]
