"""Repository abstraction for execution state persistence."""

from __future__ import annotations

from typing import Any, Protocol

from ..contracts import NodeStatus, RunStatus, WorkflowGraph
from .models import LogEntry, NodeExecutionRecord, RunRecord


class ExecutionRepository(Protocol):
    """Protocol for run/node state stores and the workflow graph source.

    Implementations must offer read-after-write consistency within one
    process: a status written by ``update_run_status`` is visible to the
    next ``get_run_status`` call.
    """

    async def create_run(
        self,
        run_id: str,
        workflow_id: str,
        user_id: str | None = None,
        authorization: dict[str, Any] | None = None,
    ) -> RunRecord:
        """Persist a pending run, or return the existing one unchanged."""

    async def get_run(self, run_id: str) -> RunRecord | None:
        """Retrieve a run by id."""

    async def get_run_status(self, run_id: str) -> RunStatus | None:
        """Return the current status of a run."""

    async def update_run_status(
        self,
        run_id: str,
        status: RunStatus,
        result: dict[str, Any] | None = None,
        error: str | None = None,
    ) -> None:
        """Transition a run, storing its result or error."""

    async def list_runs(self) -> list[RunRecord]:
        """Return all persisted runs."""

    async def upsert_node_execution(
        self,
        run_id: str,
        node_id: str,
        status: NodeStatus,
        output: Any = None,
        error: str | None = None,
    ) -> None:
        """Create or update the single record for ``(run_id, node_id)``."""

    async def get_node_executions(self, run_id: str) -> list[NodeExecutionRecord]:
        """Return node records of a run in order of first start."""

    async def append_log(
        self,
        run_id: str,
        node_id: str,
        level: str,
        message: str,
        data: dict[str, Any] | None = None,
    ) -> None:
        """Append an execution log line."""

    async def get_logs(self, run_id: str) -> list[LogEntry]:
        """Return log lines of a run in insertion order."""

    async def save_workflow(self, workflow_id: str, graph: WorkflowGraph) -> None:
        """Store a workflow graph definition."""

    async def get_workflow(self, workflow_id: str) -> WorkflowGraph | None:
        """Fetch a workflow graph definition."""
