"""Structural validation of workflow graphs.

All checks are pure functions over ``(nodes, edges)``; none mutate their
input. ``validate`` runs them in a fixed order so the first problem found
is the one reported:

1. references: unique node ids, every edge endpoint exists
2. acyclicity
3. orphans
4. terminals

Entry point policy: a graph that flags one or more nodes as ``trigger``
must reach every other node from those triggers. A graph without
triggers treats every in-degree-0 node as an entry point; only nodes that
are completely disconnected (no incoming and no outgoing edges) in a
graph of more than one node are reported as orphans.
"""

from __future__ import annotations

from collections import Counter, deque
from typing import Dict, List, Sequence

from ..contracts import Edge, Node, WorkflowGraph
from ..errors import CycleError, DanglingEdgeError, GraphError, OrphanNodeError
from .structure import adjacency, in_degrees

WHITE, GRAY, BLACK = 0, 1, 2


def validate_references(nodes: Sequence[Node], edges: Sequence[Edge]) -> None:
    """Reject duplicate node ids and edges pointing at unknown nodes."""
    counts = Counter(node.id for node in nodes)
    duplicates = sorted(node_id for node_id, count in counts.items() if count > 1)
    if duplicates:
        raise GraphError(f"Duplicate node ids: {', '.join(duplicates)}")

    dangling = [
        (edge.source, edge.target)
        for edge in edges
        if edge.source not in counts or edge.target not in counts
    ]
    if dangling:
        raise DanglingEdgeError(dangling)


def validate_acyclic(nodes: Sequence[Node], edges: Sequence[Edge]) -> None:
    """Depth-first search with white/gray/black colouring.

    Raises ``CycleError`` carrying the cycle path, e.g. ``[A, B, A]``.
    """
    graph = adjacency(nodes, edges)
    color: Dict[str, int] = {node_id: WHITE for node_id in graph}

    for root in graph:
        if color[root] != WHITE:
            continue
        color[root] = GRAY
        path: List[str] = [root]
        stack = [(root, iter(graph[root]))]
        while stack:
            node_id, children = stack[-1]
            child = next(children, None)
            if child is None:
                color[node_id] = BLACK
                stack.pop()
                path.pop()
                continue
            if color[child] == GRAY:
                start = path.index(child)
                raise CycleError(path[start:] + [child])
            if color[child] == WHITE:
                color[child] = GRAY
                path.append(child)
                stack.append((child, iter(graph[child])))


def validate_orphans(nodes: Sequence[Node], edges: Sequence[Edge]) -> None:
    """Flag nodes that no entry point can reach."""
    if len(nodes) <= 1:
        return

    graph = adjacency(nodes, edges)
    triggers = [node.id for node in nodes if node.trigger]

    if triggers:
        reachable = set(triggers)
        queue = deque(triggers)
        while queue:
            for child in graph[queue.popleft()]:
                if child not in reachable:
                    reachable.add(child)
                    queue.append(child)
        orphans = [node.id for node in nodes if node.id not in reachable]
    else:
        incoming = in_degrees(nodes, edges)
        orphans = [
            node.id
            for node in nodes
            if incoming[node.id] == 0 and not graph[node.id]
        ]

    if orphans:
        raise OrphanNodeError(orphans)


def validate_terminals(nodes: Sequence[Node], edges: Sequence[Edge]) -> None:
    """Every path must end in a node with no outgoing edges."""
    validate_references(nodes, edges)
    if not nodes:
        return
    graph = adjacency(nodes, edges)
    if not any(not targets for targets in graph.values()):
        raise GraphError("Workflow has no terminal node")


def validate(nodes: Sequence[Node], edges: Sequence[Edge]) -> None:
    """Run every structural check, raising the first ``GraphError`` found."""
    validate_references(nodes, edges)
    validate_acyclic(nodes, edges)
    validate_orphans(nodes, edges)
    validate_terminals(nodes, edges)


def validate_graph(graph: WorkflowGraph) -> None:
    validate(graph.nodes, graph.edges)
