"""Error taxonomy for workflow execution."""

from __future__ import annotations

from typing import Iterable, List, Sequence, Tuple


class BlockflowError(Exception):
    """Base class for blockflow errors."""


class GraphError(BlockflowError):
    """The workflow graph is not a valid executable plan."""


class CycleError(GraphError):
    def __init__(self, cycle: Sequence[str]) -> None:
        self.cycle: List[str] = list(cycle)
        super().__init__(f"Workflow contains a cycle: {' -> '.join(self.cycle)}")

    @property
    def node_ids(self) -> set[str]:
        return set(self.cycle)


class OrphanNodeError(GraphError):
    def __init__(self, node_ids: Iterable[str]) -> None:
        self.node_ids: List[str] = list(node_ids)
        super().__init__(
            f"Orphaned nodes not reachable from any entry point: {', '.join(self.node_ids)}"
        )


class DanglingEdgeError(GraphError):
    def __init__(self, edges: Iterable[Tuple[str, str]]) -> None:
        self.edges: List[Tuple[str, str]] = list(edges)
        rendered = ", ".join(f"{s} -> {t}" for s, t in self.edges)
        super().__init__(f"Edges reference unknown nodes: {rendered}")


class GraphNotOrderedError(GraphError):
    def __init__(self, ordered: int, total: int) -> None:
        self.ordered = ordered
        self.total = total
        super().__init__(
            f"Graph not fully ordered: scheduled {ordered} of {total} nodes"
        )


class DispatchError(BlockflowError):
    """No handler is registered for a node's block type."""

    def __init__(self, block_type: str, node_id: str | None = None) -> None:
        self.block_type = block_type
        self.node_id = node_id
        super().__init__(f"No handler for block type: {block_type}")


class HandlerError(BlockflowError):
    """A handler failed; ``str()`` is the handler's own message."""

    def __init__(self, node_id: str, message: str) -> None:
        self.node_id = node_id
        self.message = message
        super().__init__(message)


class NodeTimeoutError(HandlerError):
    def __init__(self, node_id: str, timeout: float) -> None:
        self.timeout = timeout
        super().__init__(node_id, f"Node {node_id} timed out after {timeout:g}s")


class AuthorizationDenied(HandlerError):
    def __init__(self, node_id: str, reason: str = "authorization denied") -> None:
        super().__init__(node_id, f"Node {node_id}: {reason}")


class CircuitOpenError(HandlerError):
    """The block type failed too often recently; the node is not attempted."""

    def __init__(self, node_id: str, block_type: str, failures: int) -> None:
        self.block_type = block_type
        super().__init__(
            node_id,
            f"Circuit open for block type {block_type} after {failures} consecutive failures",
        )


class WorkflowNotFoundError(BlockflowError):
    def __init__(self, workflow_id: str) -> None:
        self.workflow_id = workflow_id
        super().__init__(f"Workflow {workflow_id} not found")
