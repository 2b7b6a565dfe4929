"""Graph validation tests."""

import pytest

from blockflow.contracts import Edge, Node
from blockflow.errors import (
    CycleError,
    DanglingEdgeError,
    GraphError,
    OrphanNodeError,
)
from blockflow.graph import (
    validate,
    validate_acyclic,
    validate_graph,
    validate_orphans,
    validate_references,
    validate_terminals,
)


def _nodes(*ids, triggers=()):
    return [Node(id=i, block_type="RECORD", trigger=i in triggers) for i in ids]


def _edges(*pairs):
    return [Edge(source=s, target=t) for s, t in pairs]


def test_two_node_cycle_names_both_nodes():
    with pytest.raises(CycleError) as exc_info:
        validate(_nodes("A", "B"), _edges(("A", "B"), ("B", "A")))

    assert exc_info.value.node_ids == {"A", "B"}
    assert exc_info.value.cycle == ["A", "B", "A"]


def test_self_loop_is_a_cycle():
    with pytest.raises(CycleError) as exc_info:
        validate(_nodes("A"), _edges(("A", "A")))
    assert exc_info.value.cycle == ["A", "A"]


def test_longer_cycle_behind_a_valid_prefix():
    nodes = _nodes("start", "A", "B", "C")
    edges = _edges(("start", "A"), ("A", "B"), ("B", "C"), ("C", "A"))
    with pytest.raises(CycleError) as exc_info:
        validate_acyclic(nodes, edges)
    assert exc_info.value.node_ids == {"A", "B", "C"}


def test_cycle_reported_before_orphans():
    with pytest.raises(CycleError):
        validate(_nodes("A", "B", "lonely"), _edges(("A", "B"), ("B", "A")))


def test_empty_graph_is_valid():
    validate([], [])


def test_single_node_is_valid():
    validate(_nodes("only"), [])


def test_dangling_edge_rejected():
    with pytest.raises(DanglingEdgeError) as exc_info:
        validate(_nodes("A"), _edges(("A", "ghost")))
    assert exc_info.value.edges == [("A", "ghost")]


def test_duplicate_node_ids_rejected():
    with pytest.raises(GraphError, match="Duplicate node ids: A"):
        validate_references(_nodes("A", "A"), [])


def test_multiple_roots_without_triggers_are_entry_points():
    validate(_nodes("A", "B", "C"), _edges(("A", "C"), ("B", "C")))


def test_isolated_node_without_triggers_is_orphan():
    with pytest.raises(OrphanNodeError) as exc_info:
        validate(_nodes("A", "B", "C"), _edges(("A", "B")))
    assert exc_info.value.node_ids == ["C"]


def test_triggers_must_reach_every_node():
    nodes = _nodes("A", "B", "C", triggers=("A",))
    with pytest.raises(OrphanNodeError) as exc_info:
        validate_orphans(nodes, _edges(("A", "B"), ("C", "B")))
    assert exc_info.value.node_ids == ["C"]


def test_every_node_reachable_from_triggers_is_valid():
    nodes = _nodes("T1", "T2", "X", triggers=("T1", "T2"))
    validate(nodes, _edges(("T1", "X"), ("T2", "X")))


def test_terminal_check_on_empty_graph():
    validate_terminals([], [])


def test_terminal_check_catches_dangling_targets():
    with pytest.raises(DanglingEdgeError):
        validate_terminals(_nodes("A"), _edges(("A", "missing")))


def test_validation_does_not_mutate_input(make_graph):
    graph = make_graph(["A", "B", "C"], [("A", "B"), ("B", "C")])
    before = graph.model_dump()
    validate_graph(graph)
    assert graph.model_dump() == before
