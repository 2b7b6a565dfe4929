"""Dispatcher tests."""

import pytest

from blockflow.contracts import RunStatus
from blockflow.dispatch import ExecutionDispatcher
from blockflow.errors import BlockflowError, WorkflowNotFoundError
from blockflow.persistence.inmemory import InMemoryExecutionRepository
from blockflow.transports import InMemoryTransport

QUEUE = "workflow-executions"


@pytest.fixture
def transport():
    return InMemoryTransport()


@pytest.fixture
def dispatcher(transport, repository):
    return ExecutionDispatcher(transport, repository, queue=QUEUE)


async def _next_message(transport):
    async for raw, message in transport.subscribe(QUEUE):
        await transport.ack(raw)
        return message


@pytest.mark.asyncio
async def test_dispatch_creates_pending_run_and_publishes(
    dispatcher, transport, repository, make_graph
):
    await repository.save_workflow("wf", make_graph(["A"]))
    grant = {"session_key": "sk-1"}

    execution_id = await dispatcher.dispatch("wf", user_id="u-1", authorization=grant)

    run = await repository.get_run(execution_id)
    assert run.status == RunStatus.PENDING
    assert run.workflow_id == "wf"
    assert run.user_id == "u-1"

    message = await _next_message(transport)
    assert message.execution_id == execution_id
    assert message.workflow_id == "wf"
    assert message.authorization == grant


@pytest.mark.asyncio
async def test_dispatch_with_explicit_execution_id(dispatcher, repository, make_graph):
    await repository.save_workflow("wf", make_graph(["A"]))
    assert await dispatcher.dispatch("wf", execution_id="exec-42") == "exec-42"
    assert await repository.get_run_status("exec-42") == RunStatus.PENDING


@pytest.mark.asyncio
async def test_dispatch_unknown_workflow(dispatcher, transport):
    with pytest.raises(WorkflowNotFoundError):
        await dispatcher.dispatch("nope")
    assert transport.pending(QUEUE) == 0


@pytest.mark.asyncio
async def test_pause_and_resume(dispatcher, transport, repository):
    await repository.create_run("run-1", "wf")

    await dispatcher.pause("run-1")
    assert await repository.get_run_status("run-1") == RunStatus.PAUSED

    await dispatcher.resume("run-1")
    assert await repository.get_run_status("run-1") == RunStatus.PENDING
    assert transport.pending(QUEUE) == 0


@pytest.mark.asyncio
async def test_resume_can_republish(dispatcher, transport, repository):
    await repository.create_run("run-1", "wf", user_id="u-1")
    await repository.update_run_status("run-1", RunStatus.PAUSED)

    await dispatcher.resume("run-1", republish=True)

    message = await _next_message(transport)
    assert message.execution_id == "run-1"
    assert message.user_id == "u-1"


@pytest.mark.asyncio
async def test_pause_rejects_finished_runs(dispatcher, repository):
    await repository.create_run("run-1", "wf")
    await repository.update_run_status("run-1", RunStatus.COMPLETED)

    with pytest.raises(BlockflowError, match="Cannot pause a completed run"):
        await dispatcher.pause("run-1")


@pytest.mark.asyncio
async def test_resume_requires_paused_run(dispatcher, repository):
    await repository.create_run("run-1", "wf")
    with pytest.raises(BlockflowError, match="Cannot resume a pending run"):
        await dispatcher.resume("run-1")


@pytest.mark.asyncio
async def test_control_of_unknown_run(dispatcher):
    with pytest.raises(BlockflowError, match="not found"):
        await dispatcher.pause("ghost")


@pytest.mark.asyncio
async def test_republished_message_keeps_authorization(
    dispatcher, transport, repository, make_graph
):
    await repository.save_workflow("wf", make_graph(["A"]))
    grant = {"session_key": "k"}
    execution_id = await dispatcher.dispatch("wf", authorization=grant)
    first = await _next_message(transport)

    await dispatcher.pause(execution_id)
    await dispatcher.resume(execution_id, republish=True)

    second = await _next_message(transport)
    assert first.authorization == grant
    assert second.authorization == grant
    assert second.message_id != first.message_id
    assert (await repository.get_run(execution_id)).authorization == grant


class _VanishingRunRepository(InMemoryExecutionRepository):
    async def get_run(self, run_id):
        return None


@pytest.mark.asyncio
async def test_republish_of_vanished_run_raises(transport):
    repository = _VanishingRunRepository()
    dispatcher = ExecutionDispatcher(transport, repository, queue=QUEUE)
    await repository.create_run("run-1", "wf")
    await repository.update_run_status("run-1", RunStatus.PAUSED)

    with pytest.raises(BlockflowError, match="Run run-1 not found"):
        await dispatcher.resume("run-1", republish=True)
    assert transport.pending(QUEUE) == 0
