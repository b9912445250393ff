"""
Unit Tests for the topological scheduler

Tests cover:
- Deterministic Kahn ordering (declaration order breaks ties)
- Cycle detection
- Branch tracking for condition nodes
"""

import pytest

from migraflow.core.exceptions import CycleError
from migraflow.core.nodes import WorkflowEdge, WorkflowNode
from migraflow.core.scheduler import BranchTracker, get_execution_order


def _nodes(*ids):
    return [WorkflowNode(id=node_id, type="delay", label=node_id, data={"duration": 1}) for node_id in ids]


def _edges(*pairs, **labels):
    return [WorkflowEdge(source=a, target=b, label=labels.get(f"{a}_{b}")) for a, b in pairs]


# ============================================================================
# ORDERING TESTS
# ============================================================================

@pytest.mark.unit
def test_linear_order():
    order = get_execution_order(_nodes("c", "b", "a"), _edges(("a", "b"), ("b", "c")))

    assert [node.id for node in order] == ["a", "b", "c"]


@pytest.mark.unit
def test_ties_follow_declaration_order():
    nodes = _nodes("start", "left", "right", "join")
    edges = _edges(("start", "right"), ("start", "left"), ("left", "join"), ("right", "join"))

    order = get_execution_order(nodes, edges)

    # Successors are released in edge declaration order
    assert [node.id for node in order] == ["start", "right", "left", "join"]


@pytest.mark.unit
def test_order_is_stable_across_calls():
    nodes = _nodes("a", "b", "c", "d", "e")
    edges = _edges(("a", "c"), ("b", "c"), ("c", "d"), ("c", "e"))

    first = [node.id for node in get_execution_order(nodes, edges)]
    second = [node.id for node in get_execution_order(nodes, edges)]

    assert first == second == ["a", "b", "c", "d", "e"]


@pytest.mark.unit
def test_every_edge_respected():
    nodes = _nodes("e", "d", "c", "b", "a")
    edges = _edges(("a", "b"), ("a", "c"), ("b", "d"), ("c", "d"), ("d", "e"))

    position = {node.id: index for index, node in enumerate(get_execution_order(nodes, edges))}

    for edge in edges:
        assert position[edge.source] < position[edge.target]


@pytest.mark.unit
def test_cycle_raises():
    with pytest.raises(CycleError, match="cycles or unreachable nodes"):
        get_execution_order(_nodes("a", "b"), _edges(("a", "b"), ("b", "a")))


# ============================================================================
# BRANCH TRACKER TESTS
# ============================================================================

@pytest.mark.unit
def test_root_nodes_always_run():
    tracker = BranchTracker([])

    assert tracker.should_run("anything") is True


@pytest.mark.unit
def test_plain_edge_requires_executed_source():
    tracker = BranchTracker(_edges(("a", "b")))

    assert tracker.should_run("b") is False
    tracker.mark_executed("a")
    assert tracker.should_run("b") is True


@pytest.mark.unit
def test_condition_branches():
    tracker = BranchTracker(_edges(("check", "yes"), ("check", "no"), check_yes="true", check_no="false"))

    tracker.mark_executed("check", outcome=False)

    assert tracker.should_run("yes") is False
    assert tracker.should_run("no") is True


@pytest.mark.unit
def test_skipped_node_propagates():
    edges = _edges(("check", "yes"), ("yes", "after_yes"), check_yes="true")
    tracker = BranchTracker(edges)

    tracker.mark_executed("check", outcome=False)

    assert tracker.should_run("yes") is False
    # "yes" never executed, so its successor is skipped too
    assert tracker.should_run("after_yes") is False


@pytest.mark.unit
def test_join_runs_when_any_branch_taken():
    edges = _edges(("check", "yes"), ("check", "no"), ("yes", "join"), ("no", "join"), check_yes="true", check_no="false")
    tracker = BranchTracker(edges)

    tracker.mark_executed("check", outcome=True)
    tracker.mark_executed("yes")

    assert tracker.should_run("no") is False
    assert tracker.should_run("join") is True


@pytest.mark.unit
def test_source_handle_used_when_no_label():
    edge = WorkflowEdge.model_validate({"source": "check", "target": "yes", "sourceHandle": "TRUE"})

    assert edge.branch is True
    assert WorkflowEdge(source="a", target="b", label="next").branch is None
