"""Run controller: drives one workflow run through its scheduled nodes."""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, Mapping, Optional

from .contracts import NodeStatus, RunOutcome, RunStatus, WorkflowGraph
from .errors import DispatchError, GraphError, HandlerError
from .executor import NodeExecutor
from .graph import dependency_map, topological_sort, validate_graph
from .logs import ExecutionLogger
from .notifications import WORKFLOW_COMPLETED, WORKFLOW_FAILED, WORKFLOW_STARTED, Notifier
from .persistence import ExecutionRepository

logger = logging.getLogger(__name__)


class RunController:
    """State machine ``pending -> running -> completed | failed | paused``.

    Before each node the run status is re-read from the store; a ``paused``
    status stops the loop without touching recorded node results. Nodes
    whose record is already ``completed`` are skipped and their stored
    output reused, which is what makes a re-dequeued run resume.
    """

    def __init__(
        self,
        repository: ExecutionRepository,
        executor: NodeExecutor,
        execution_logger: Optional[ExecutionLogger] = None,
        notifier: Optional[Notifier] = None,
    ) -> None:
        self._repository = repository
        self._executor = executor
        self._logs = execution_logger or ExecutionLogger(repository)
        self._notifier = notifier

    async def run(
        self,
        run_id: str,
        graph: WorkflowGraph,
        *,
        workflow_id: Optional[str] = None,
        user_id: Optional[str] = None,
        authorization: Optional[Mapping[str, Any]] = None,
    ) -> RunOutcome:
        current = await self._repository.get_run(run_id)
        if current is not None and current.status.is_terminal:
            logger.info(f"Run already {current.status.value} for execution_id={run_id}")
            return RunOutcome(
                run_id=run_id,
                status=current.status,
                outputs=current.result or {},
                error=current.error,
            )

        started = time.monotonic()
        event = {"execution_id": run_id, "workflow_id": workflow_id, "user_id": user_id}

        try:
            validate_graph(graph)
            order = topological_sort(graph.nodes, graph.edges)
        except GraphError as e:
            return await self._fail(run_id, str(e), {}, event, started)

        parents = dependency_map(graph.nodes, graph.edges)
        completed = {
            record.node_id: record.output
            for record in await self._repository.get_node_executions(run_id)
            if record.status == NodeStatus.COMPLETED
        }
        outputs: Dict[str, Any] = {}

        if await self._repository.get_run_status(run_id) == RunStatus.PAUSED:
            return await self._pause(run_id, outputs, None)

        await self._repository.update_run_status(run_id, RunStatus.RUNNING)
        await self._logs.run_event(
            run_id,
            "Run resumed" if completed else "Run started",
            data={"nodes": [node.id for node in order], "skipped": sorted(completed)},
        )
        await self._notify(WORKFLOW_STARTED, {**event, "resumed": bool(completed)})

        for node in order:
            if node.id in completed:
                outputs[node.id] = completed[node.id]
                continue

            if await self._repository.get_run_status(run_id) == RunStatus.PAUSED:
                return await self._pause(run_id, outputs, node.id)

            inputs = {parent: outputs[parent] for parent in parents[node.id] if parent in outputs}
            try:
                outputs[node.id] = await self._executor.execute_node(
                    node,
                    outputs,
                    run_id,
                    inputs=inputs,
                    authorization=authorization,
                    workflow_id=workflow_id,
                    user_id=user_id,
                )
            except (DispatchError, HandlerError) as e:
                return await self._fail(run_id, str(e), outputs, event, started)

        await self._repository.update_run_status(run_id, RunStatus.COMPLETED, result=outputs)
        await self._logs.run_event(run_id, "Run completed")
        logger.info(f"Run completed for execution_id={run_id}")
        await self._notify(
            WORKFLOW_COMPLETED,
            {**event, "status": RunStatus.COMPLETED.value, "duration_ms": _elapsed_ms(started)},
        )
        return RunOutcome(run_id=run_id, status=RunStatus.COMPLETED, outputs=outputs)

    async def _fail(
        self,
        run_id: str,
        error: str,
        outputs: Dict[str, Any],
        event: Dict[str, Any],
        started: float,
    ) -> RunOutcome:
        await self._repository.update_run_status(run_id, RunStatus.FAILED, error=error)
        await self._logs.run_event(run_id, f"Run failed: {error}", level="error")
        await self._notify(
            WORKFLOW_FAILED,
            {
                **event,
                "status": RunStatus.FAILED.value,
                "error": error,
                "duration_ms": _elapsed_ms(started),
            },
        )
        return RunOutcome(run_id=run_id, status=RunStatus.FAILED, outputs=outputs, error=error)

    async def _pause(
        self, run_id: str, outputs: Dict[str, Any], next_node: Optional[str]
    ) -> RunOutcome:
        message = "Run paused" if next_node is None else f"Run paused before {next_node}"
        await self._logs.run_event(run_id, message, level="warning")
        return RunOutcome(run_id=run_id, status=RunStatus.PAUSED, outputs=outputs)

    async def _notify(self, event: str, payload: Dict[str, Any]) -> None:
        if self._notifier is None:
            return
        try:
            await self._notifier.notify(event, payload)
        except Exception as e:
            # notification delivery never changes a run's outcome
            logger.warning(
                f"Failed to send {event} for execution_id={payload['execution_id']}: {e}"
            )


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)
