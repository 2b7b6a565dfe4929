"""End-to-end runs: dispatcher -> transport -> worker -> SQLite state."""

import asyncio

import httpx
import pytest

from blockflow.config import BlockflowConfig, WorkerConfig
from blockflow.contracts import Edge, Node, NodeStatus, RunStatus, WorkflowGraph
from blockflow.dispatch import ExecutionDispatcher
from blockflow.handlers import FunctionHandler, HttpRequestHandler, default_registry
from blockflow.persistence import SQLiteExecutionRepository
from blockflow.transports import InMemoryTransport
from blockflow.worker import ExecutionWorker

QUEUE = "workflow-executions"


def _order_graph() -> WorkflowGraph:
    return WorkflowGraph(
        nodes=[
            Node(
                id="fetch",
                block_type="HTTP_REQUEST",
                config={"url": "https://shop.test/orders/{{seed.order_id}}"},
            ),
            Node(id="seed", block_type="SEED", trigger=True),
            Node(
                id="shape",
                block_type="TRANSFORM",
                config={
                    "mapping": {"total": "fetch.body.total", "currency": "fetch.body.currency"},
                    "defaults": {"currency": "EUR"},
                },
            ),
            Node(
                id="big",
                block_type="CONDITION",
                config={"left": "{{shape.total}}", "operator": "gte", "right": 100},
            ),
        ],
        edges=[
            Edge(source="seed", target="fetch"),
            Edge(source="fetch", target="shape"),
            Edge(source="shape", target="big"),
        ],
    )


def _registry(calls):
    def respond(request: httpx.Request) -> httpx.Response:
        calls.append(str(request.url))
        return httpx.Response(200, json={"total": 250})

    async def seed(node, context):
        calls.append("seed")
        return {"order_id": 17}

    registry = default_registry()
    registry.register(HttpRequestHandler(transport=httpx.MockTransport(respond)))
    registry.register(FunctionHandler("SEED", seed))
    return registry


def _config(**worker):
    worker.setdefault("paused_requeue_delay", 0.05)
    return BlockflowConfig(worker=WorkerConfig(**worker))


@pytest.mark.asyncio
async def test_dispatched_run_completes(tmp_path):
    repository = SQLiteExecutionRepository(tmp_path / "runs.db")
    transport = InMemoryTransport()
    calls = []
    await repository.save_workflow("orders", _order_graph())

    dispatcher = ExecutionDispatcher(transport, repository, queue=QUEUE)
    execution_id = await dispatcher.dispatch("orders", user_id="u-1")

    worker = ExecutionWorker.from_config(
        _config(), transport, repository, registry=_registry(calls)
    )
    await worker.start(lifespan=0.5)

    run = await repository.get_run(execution_id)
    assert run.status == RunStatus.COMPLETED
    assert run.result["big"] == {"result": True}
    assert run.result["shape"] == {"total": 250, "currency": "EUR"}
    assert calls == ["seed", "https://shop.test/orders/17"]

    records = await repository.get_node_executions(execution_id)
    assert [r.node_id for r in records] == ["seed", "fetch", "shape", "big"]
    assert all(r.status == NodeStatus.COMPLETED for r in records)

    logs = await repository.get_logs(execution_id)
    assert logs[0].message == "Run started"
    assert logs[-1].message == "Run completed"


@pytest.mark.asyncio
async def test_failing_node_leaves_downstream_pending(tmp_path):
    repository = SQLiteExecutionRepository(tmp_path / "runs.db")
    transport = InMemoryTransport()
    graph = WorkflowGraph(
        nodes=[
            Node(id="fetch", block_type="HTTP_REQUEST", config={"url": "https://down.test/"}),
            Node(id="shape", block_type="TRANSFORM"),
        ],
        edges=[Edge(source="fetch", target="shape")],
    )
    await repository.save_workflow("flaky", graph)

    registry = default_registry()
    registry.register(
        HttpRequestHandler(transport=httpx.MockTransport(lambda r: httpx.Response(503)))
    )
    execution_id = await ExecutionDispatcher(transport, repository, queue=QUEUE).dispatch(
        "flaky"
    )

    worker = ExecutionWorker.from_config(_config(), transport, repository, registry=registry)
    await worker.start(lifespan=0.3)

    run = await repository.get_run(execution_id)
    assert run.status == RunStatus.FAILED
    assert run.error == "HTTP 503: Service Unavailable"
    records = {r.node_id: r for r in await repository.get_node_executions(execution_id)}
    assert records["fetch"].error == "HTTP 503: Service Unavailable"
    assert "shape" not in records
    assert transport.nacked[-1][1] is False


@pytest.mark.asyncio
async def test_pause_and_resume_through_the_queue(tmp_path):
    repository = SQLiteExecutionRepository(tmp_path / "runs.db")
    transport = InMemoryTransport()
    dispatcher = ExecutionDispatcher(transport, repository, queue=QUEUE)
    executed = []

    async def step(node, context):
        executed.append(node.id)
        if node.id == "A" and executed.count("A") == 1:
            await dispatcher.pause(context.run_id)
        return {"step": node.id, "after": sorted(context.prior_outputs)}

    registry = default_registry()
    registry.register(FunctionHandler("STEP", step))
    graph = WorkflowGraph(
        nodes=[Node(id=i, block_type="STEP") for i in ("A", "B", "C")],
        edges=[Edge(source="A", target="B"), Edge(source="B", target="C")],
    )
    await repository.save_workflow("steps", graph)
    execution_id = await dispatcher.dispatch("steps")

    worker = ExecutionWorker.from_config(_config(), transport, repository, registry=registry)
    await worker.start(lifespan=0.3)

    assert executed == ["A"]
    assert await repository.get_run_status(execution_id) == RunStatus.PAUSED

    await dispatcher.resume(execution_id)
    await worker.start(lifespan=0.5)

    assert executed == ["A", "B", "C"]
    run = await repository.get_run(execution_id)
    assert run.status == RunStatus.COMPLETED
    assert run.result["C"] == {"step": "C", "after": ["A", "B"]}


@pytest.mark.asyncio
async def test_concurrent_runs_are_isolated(tmp_path):
    repository = SQLiteExecutionRepository(tmp_path / "runs.db")
    transport = InMemoryTransport()
    dispatcher = ExecutionDispatcher(transport, repository, queue=QUEUE)

    async def slow(node, context):
        await asyncio.sleep(0.05)
        return {"run": context.run_id}

    registry = default_registry()
    registry.register(FunctionHandler("SLOW", slow))
    graph = WorkflowGraph(
        nodes=[Node(id="A", block_type="SLOW"), Node(id="B", block_type="SLOW")],
        edges=[Edge(source="A", target="B")],
    )
    await repository.save_workflow("slow", graph)
    ids = [await dispatcher.dispatch("slow") for _ in range(3)]

    worker = ExecutionWorker.from_config(
        _config(concurrency=3), transport, repository, registry=registry
    )
    await worker.start(lifespan=0.6)

    for execution_id in ids:
        run = await repository.get_run(execution_id)
        assert run.status == RunStatus.COMPLETED
        assert run.result == {"A": {"run": execution_id}, "B": {"run": execution_id}}
