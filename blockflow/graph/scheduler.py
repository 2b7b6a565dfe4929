"""Deterministic topological ordering of workflow graphs."""

from __future__ import annotations

import heapq
from typing import List, Sequence

from ..contracts import Edge, Node
from ..errors import GraphNotOrderedError
from .structure import adjacency, in_degrees


def topological_sort(nodes: Sequence[Node], edges: Sequence[Edge]) -> List[Node]:
    """Order ``nodes`` with Kahn's algorithm.

    Whenever several nodes are ready at once, the one listed first in
    ``nodes`` runs first, so the same graph always yields the same order.
    Expects a graph that already passed validation.
    """
    position = {node.id: index for index, node in enumerate(nodes)}
    graph = adjacency(nodes, edges)
    remaining = in_degrees(nodes, edges)

    ready = [position[node.id] for node in nodes if remaining[node.id] == 0]
    heapq.heapify(ready)

    ordered: List[Node] = []
    while ready:
        node = nodes[heapq.heappop(ready)]
        ordered.append(node)
        for child in graph[node.id]:
            remaining[child] -= 1
            if remaining[child] == 0:
                heapq.heappush(ready, position[child])

    if len(ordered) != len(nodes):
        raise GraphNotOrderedError(len(ordered), len(nodes))
    return ordered
