"""
Topological Scheduler

Linearizes a workflow graph into the order nodes are executed in, and
tracks which condition branches were taken so that nodes on a branch that
was not taken get skipped.
"""

from collections import deque
from typing import Deque, Dict, List, Optional

from .exceptions import CycleError
from .nodes import WorkflowEdge, WorkflowNode


def get_execution_order(nodes: List[WorkflowNode], edges: List[WorkflowEdge]) -> List[WorkflowNode]:
    """
    Kahn's algorithm.

    The queue is FIFO and seeded in node declaration order, and successors
    are released in edge declaration order, so the same definition always
    produces the same order.

    Raises:
        CycleError: fewer nodes ordered than declared
    """
    by_id: Dict[str, WorkflowNode] = {node.id: node for node in nodes}
    in_degree: Dict[str, int] = {node.id: 0 for node in nodes}
    successors: Dict[str, List[str]] = {node.id: [] for node in nodes}

    for edge in edges:
        if edge.source not in by_id or edge.target not in by_id:
            continue
        successors[edge.source].append(edge.target)
        in_degree[edge.target] += 1

    queue: Deque[str] = deque(node.id for node in nodes if in_degree[node.id] == 0)
    order: List[WorkflowNode] = []

    while queue:
        node_id = queue.popleft()
        order.append(by_id[node_id])

        for target in successors[node_id]:
            in_degree[target] -= 1
            if in_degree[target] == 0:
                queue.append(target)

    if len(order) != len(by_id):
        raise CycleError()

    return order


class BranchTracker:
    """
    Decides whether a node should run, given what ran before it.

    A node runs when it has no incoming edges, or when at least one
    incoming edge is "taken": its source executed and, if the source is a
    condition and the edge carries a true/false tag, the tag matches the
    condition's result. Everything else is skipped.

    Example:
        >>> tracker = BranchTracker(definition.edges)
        >>> tracker.mark_executed("check", outcome=False)
        >>> tracker.should_run("on_true")   # edge check -> on_true labeled "true"
        False
    """

    def __init__(self, edges: List[WorkflowEdge]):
        self._incoming: Dict[str, List[WorkflowEdge]] = {}
        for edge in edges:
            self._incoming.setdefault(edge.target, []).append(edge)
        # node id -> condition outcome (None for non-condition nodes)
        self._executed: Dict[str, Optional[bool]] = {}

    def mark_executed(self, node_id: str, outcome: Optional[bool] = None) -> None:
        self._executed[node_id] = outcome

    def should_run(self, node_id: str) -> bool:
        incoming = self._incoming.get(node_id)
        if not incoming:
            return True
        return any(self._is_taken(edge) for edge in incoming)

    def _is_taken(self, edge: WorkflowEdge) -> bool:
        if edge.source not in self._executed:
            return False

        outcome = self._executed[edge.source]
        branch = edge.branch
        if outcome is None or branch is None:
            return True
        return branch == outcome
