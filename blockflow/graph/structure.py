"""Adjacency helpers shared by the validator and the scheduler."""

from __future__ import annotations

from typing import Dict, List, Sequence

from ..contracts import Edge, Node


def adjacency(nodes: Sequence[Node], edges: Sequence[Edge]) -> Dict[str, List[str]]:
    """Map each node id to its distinct successors, in edge order.

    Edges whose endpoints are not in ``nodes`` are ignored here; reference
    checking is the validator's job.
    """
    known = {node.id for node in nodes}
    result: Dict[str, List[str]] = {node.id: [] for node in nodes}
    for edge in edges:
        if edge.source not in known or edge.target not in known:
            continue
        targets = result[edge.source]
        if edge.target not in targets:
            targets.append(edge.target)
    return result


def in_degrees(nodes: Sequence[Node], edges: Sequence[Edge]) -> Dict[str, int]:
    degrees = {node.id: 0 for node in nodes}
    for targets in adjacency(nodes, edges).values():
        for target in targets:
            degrees[target] += 1
    return degrees


def dependency_map(nodes: Sequence[Node], edges: Sequence[Edge]) -> Dict[str, List[str]]:
    """Map each node id to its direct parents."""
    parents: Dict[str, List[str]] = {node.id: [] for node in nodes}
    for source, targets in adjacency(nodes, edges).items():
        for target in targets:
            parents[target].append(source)
    return parents
