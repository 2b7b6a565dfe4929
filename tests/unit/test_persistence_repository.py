import uuid

import pytest

import blockflow.persistence as persistence
from blockflow.contracts import Edge, Node, NodeStatus, RunStatus, WorkflowGraph
from blockflow.persistence import (
    InMemoryExecutionRepository,
    SQLiteExecutionRepository,
    get_repository,
)


@pytest.fixture(params=["inmemory", "sqlite"])
def repo(request, tmp_path):
    if request.param == "sqlite":
        return SQLiteExecutionRepository(tmp_path / "runs.db")
    return InMemoryExecutionRepository()


@pytest.mark.asyncio
async def test_run_lifecycle(repo):
    run_id = str(uuid.uuid4())

    created = await repo.create_run(run_id, "wf", "u-1")
    assert created.status == RunStatus.PENDING
    assert created.completed_at is None

    # creating again returns the existing run untouched
    await repo.update_run_status(run_id, RunStatus.RUNNING)
    again = await repo.create_run(run_id, "other-wf")
    assert again.workflow_id == "wf"
    assert again.status == RunStatus.RUNNING

    await repo.update_run_status(run_id, RunStatus.COMPLETED, result={"A": {"x": 1}})
    run = await repo.get_run(run_id)
    assert run.status == RunStatus.COMPLETED
    assert run.result == {"A": {"x": 1}}
    assert run.completed_at is not None
    assert await repo.get_run_status(run_id) == RunStatus.COMPLETED


@pytest.mark.asyncio
async def test_failed_run_keeps_error(repo):
    await repo.create_run("run-1", "wf")
    await repo.update_run_status("run-1", RunStatus.FAILED, error="boom")
    run = await repo.get_run("run-1")
    assert run.error == "boom"
    assert run.result is None


@pytest.mark.asyncio
async def test_run_keeps_authorization(repo):
    grant = {"session_key": "sk", "scopes": ["transfer"]}
    await repo.create_run("run-1", "wf", "u-1", authorization=grant)

    run = await repo.get_run("run-1")
    assert run.authorization == grant
    assert (await repo.create_run("run-2", "wf")).authorization is None


@pytest.mark.asyncio
async def test_missing_run(repo):
    assert await repo.get_run("ghost") is None
    assert await repo.get_run_status("ghost") is None


@pytest.mark.asyncio
async def test_list_runs(repo):
    await repo.create_run("run-1", "wf")
    await repo.create_run("run-2", "wf")
    assert {run.id for run in await repo.list_runs()} == {"run-1", "run-2"}


@pytest.mark.asyncio
async def test_node_execution_upsert_is_idempotent(repo):
    await repo.create_run("run-1", "wf")

    await repo.upsert_node_execution("run-1", "A", NodeStatus.RUNNING)
    await repo.upsert_node_execution("run-1", "A", NodeStatus.RUNNING)
    await repo.upsert_node_execution("run-1", "A", NodeStatus.COMPLETED, output={"v": [1, 2]})
    await repo.upsert_node_execution("run-1", "B", NodeStatus.RUNNING)
    await repo.upsert_node_execution("run-1", "B", NodeStatus.FAILED, error="bad")

    records = await repo.get_node_executions("run-1")
    assert [r.node_id for r in records] == ["A", "B"]
    a, b = records
    assert a.status == NodeStatus.COMPLETED
    assert a.output == {"v": [1, 2]}
    assert a.started_at is not None and a.completed_at is not None
    assert b.status == NodeStatus.FAILED
    assert b.error == "bad"
    assert b.output is None


@pytest.mark.asyncio
async def test_rerunning_a_node_clears_previous_result(repo):
    await repo.create_run("run-1", "wf")
    await repo.upsert_node_execution("run-1", "A", NodeStatus.FAILED, error="first try")
    await repo.upsert_node_execution("run-1", "A", NodeStatus.RUNNING)

    (record,) = await repo.get_node_executions("run-1")
    assert record.status == NodeStatus.RUNNING
    assert record.error is None
    assert record.completed_at is None


@pytest.mark.asyncio
async def test_logs_are_appended_in_order(repo):
    await repo.append_log("run-1", "system", "info", "Run started")
    await repo.append_log("run-1", "A", "error", "Node A failed", {"error_type": "KeyError"})
    await repo.append_log("run-2", "system", "info", "other run")

    logs = await repo.get_logs("run-1")
    assert [(e.node_id, e.level, e.message) for e in logs] == [
        ("system", "info", "Run started"),
        ("A", "error", "Node A failed"),
    ]
    assert logs[1].data == {"error_type": "KeyError"}


@pytest.mark.asyncio
async def test_workflow_graph_round_trip(repo):
    graph = WorkflowGraph(
        nodes=[
            Node(id="A", block_type="TRANSFORM", config={"mapping": {"x": "in.x"}}, trigger=True),
            Node(id="B", block_type="WEBHOOK", label="Notify"),
        ],
        edges=[Edge(source="A", target="B")],
    )
    await repo.save_workflow("wf", graph)

    assert await repo.get_workflow("wf") == graph
    assert await repo.get_workflow("missing") is None


def test_get_repository_defaults_to_inmemory(monkeypatch, tmp_path):
    monkeypatch.delenv("BLOCKFLOW_DATABASE_URL", raising=False)
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.setenv("BLOCKFLOW_CONFIG", str(tmp_path / "absent.yaml"))
    persistence._repository_instance = None

    repo = get_repository()
    assert isinstance(repo, InMemoryExecutionRepository)
    assert get_repository() is repo


def test_get_repository_sqlite_url(tmp_path):
    repo = get_repository(database_url=f"sqlite://{tmp_path / 'runs.db'}")
    assert isinstance(repo, SQLiteExecutionRepository)
    assert repo.db_path == str(tmp_path / "runs.db")


def test_get_repository_rejects_unknown_backend():
    with pytest.raises(ValueError, match="Unsupported database backend"):
        get_repository(database_url="mysql://localhost/db")
