"""In-memory implementation of the execution repository."""

from __future__ import annotations

from typing import Any, Dict, List, Tuple

from ..contracts import NodeStatus, RunStatus, WorkflowGraph
from .models import LogEntry, NodeExecutionRecord, RunRecord, utcnow
from .repository import ExecutionRepository


class InMemoryExecutionRepository(ExecutionRepository):
    """Store execution state in local memory.

    Useful for tests or when no database is configured. Data is not
    persisted across process restarts. Records are copied on the way in
    and out so callers never alias stored state.
    """

    def __init__(self) -> None:
        self._runs: Dict[str, RunRecord] = {}
        self._nodes: Dict[Tuple[str, str], NodeExecutionRecord] = {}
        self._logs: List[LogEntry] = []
        self._workflows: Dict[str, WorkflowGraph] = {}

    # ------------------------------------------------------------------
    async def create_run(
        self,
        run_id: str,
        workflow_id: str,
        user_id: str | None = None,
        authorization: dict[str, Any] | None = None,
    ) -> RunRecord:
        existing = self._runs.get(run_id)
        if existing is None:
            existing = RunRecord(
                id=run_id,
                workflow_id=workflow_id,
                user_id=user_id,
                authorization=authorization,
            )
            self._runs[run_id] = existing
        return existing.model_copy(deep=True)

    async def get_run(self, run_id: str) -> RunRecord | None:
        run = self._runs.get(run_id)
        return run.model_copy(deep=True) if run else None

    async def get_run_status(self, run_id: str) -> RunStatus | None:
        run = self._runs.get(run_id)
        return run.status if run else None

    async def update_run_status(
        self,
        run_id: str,
        status: RunStatus,
        result: dict[str, Any] | None = None,
        error: str | None = None,
    ) -> None:
        status = RunStatus(status)
        run = self._runs.get(run_id)
        if not run:
            return
        now = utcnow()
        run.status = status
        run.updated_at = now
        if result is not None:
            run.result = dict(result)
        if error is not None:
            run.error = error
        if status.is_terminal:
            run.completed_at = now

    async def list_runs(self) -> list[RunRecord]:
        return [run.model_copy(deep=True) for run in self._runs.values()]

    # ------------------------------------------------------------------
    async def upsert_node_execution(
        self,
        run_id: str,
        node_id: str,
        status: NodeStatus,
        output: Any = None,
        error: str | None = None,
    ) -> None:
        status = NodeStatus(status)
        now = utcnow()
        record = self._nodes.get((run_id, node_id))
        if record is None:
            record = NodeExecutionRecord(run_id=run_id, node_id=node_id)
            self._nodes[(run_id, node_id)] = record

        record.status = status
        if status == NodeStatus.RUNNING:
            record.started_at = now
            record.completed_at = None
            record.output = None
            record.error = None
        elif status in (NodeStatus.COMPLETED, NodeStatus.FAILED):
            if record.started_at is None:
                record.started_at = now
            record.completed_at = now
            record.output = output
            record.error = error

    async def get_node_executions(self, run_id: str) -> list[NodeExecutionRecord]:
        return [
            record.model_copy(deep=True)
            for (owner, _), record in self._nodes.items()
            if owner == run_id
        ]

    async def append_log(
        self,
        run_id: str,
        node_id: str,
        level: str,
        message: str,
        data: dict[str, Any] | None = None,
    ) -> None:
        self._logs.append(
            LogEntry(
                id=len(self._logs) + 1,
                run_id=run_id,
                node_id=node_id,
                level=level,
                message=message,
                data=data,
            )
        )

    async def get_logs(self, run_id: str) -> list[LogEntry]:
        return [entry for entry in self._logs if entry.run_id == run_id]

    # ------------------------------------------------------------------
    async def save_workflow(self, workflow_id: str, graph: WorkflowGraph) -> None:
        self._workflows[workflow_id] = graph

    async def get_workflow(self, workflow_id: str) -> WorkflowGraph | None:
        return self._workflows.get(workflow_id)
