"""Shared fixtures for blockflow tests."""

from typing import Awaitable, Callable, Iterable, List, Optional, Sequence, Tuple

import pytest

import blockflow.persistence as persistence
from blockflow.contracts import Edge, Node, WorkflowGraph
from blockflow.executor import NodeExecutor
from blockflow.handlers import BlockHandler, ExecutionContext, HandlerRegistry
from blockflow.persistence import InMemoryExecutionRepository
from blockflow.runner import RunController


class RecordingHandler(BlockHandler):
    """Deterministic handler that remembers the order nodes ran in."""

    block_types = ("RECORD",)

    def __init__(
        self,
        fail_on: Iterable[str] = (),
        on_execute: Optional[Callable[[Node, ExecutionContext], Awaitable[None]]] = None,
    ) -> None:
        self.calls: List[str] = []
        self.contexts: List[ExecutionContext] = []
        self.fail_on = set(fail_on)
        self.on_execute = on_execute

    async def execute(self, node: Node, context: ExecutionContext):
        self.calls.append(node.id)
        self.contexts.append(context)
        if self.on_execute is not None:
            await self.on_execute(node, context)
        if node.id in self.fail_on:
            raise RuntimeError(f"{node.id} exploded")
        return {
            "node": node.id,
            "seen": sorted(context.prior_outputs),
            "inputs": sorted(context.inputs),
        }


def build_graph(
    node_ids: Sequence[str],
    edges: Sequence[Tuple[str, str]] = (),
    block_type: str = "RECORD",
) -> WorkflowGraph:
    return WorkflowGraph(
        nodes=[Node(id=node_id, block_type=block_type) for node_id in node_ids],
        edges=[Edge(source=s, target=t) for s, t in edges],
    )


@pytest.fixture
def make_graph():
    return build_graph


@pytest.fixture
def repository():
    return InMemoryExecutionRepository()


@pytest.fixture
def recorder():
    return RecordingHandler()


@pytest.fixture
def registry(recorder):
    registry = HandlerRegistry()
    registry.register(recorder)
    return registry


@pytest.fixture
def executor(registry, repository):
    return NodeExecutor(registry, repository)


@pytest.fixture
def controller(repository, executor):
    return RunController(repository, executor)


@pytest.fixture(autouse=True)
def _reset_repository_instance():
    yield
    persistence._repository_instance = None
