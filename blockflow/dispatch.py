"""Run dispatcher: creates runs and flags them for pause or resume."""

from __future__ import annotations

import logging
import uuid
from typing import Any, Dict, Optional

from .contracts import ExecutionMessage, RunStatus
from .errors import BlockflowError, WorkflowNotFoundError
from .persistence import ExecutionRepository
from .transports import BaseTransport

logger = logging.getLogger(__name__)


class ExecutionDispatcher:
    """Service responsible for dispatching workflow runs."""

    def __init__(
        self,
        transport: BaseTransport,
        repository: ExecutionRepository,
        queue: str = "workflow-executions",
    ) -> None:
        self._transport = transport
        self._repository = repository
        self._queue = queue

    async def dispatch(
        self,
        workflow_id: str,
        user_id: Optional[str] = None,
        authorization: Optional[Dict[str, Any]] = None,
        execution_id: Optional[str] = None,
    ) -> str:
        """Create a pending run for ``workflow_id`` and enqueue it.

        Args:
            workflow_id: Stored workflow to execute.
            user_id: Optional owner of the run.
            authorization: Opaque object handed to privileged blocks.
            execution_id: Reuse a caller-chosen run id instead of a new one.

        Returns:
            The execution id for tracking the run.
        """
        if await self._repository.get_workflow(workflow_id) is None:
            raise WorkflowNotFoundError(workflow_id)

        execution_id = execution_id or str(uuid.uuid4())
        await self._repository.create_run(execution_id, workflow_id, user_id, authorization)
        message = ExecutionMessage(
            execution_id=execution_id,
            workflow_id=workflow_id,
            user_id=user_id,
            authorization=authorization,
        )
        await self._transport.publish(self._queue, message)
        logger.info(f"Dispatched workflow {workflow_id} as execution_id={execution_id}")
        return execution_id

    async def pause(self, execution_id: str) -> None:
        """Ask a run to stop before its next node."""
        status = await self._require_status(execution_id)
        if status not in (RunStatus.PENDING, RunStatus.RUNNING):
            raise BlockflowError(f"Cannot pause a {status.value} run")
        await self._repository.update_run_status(execution_id, RunStatus.PAUSED)
        logger.info(f"Pause requested for execution_id={execution_id}")

    async def resume(self, execution_id: str, republish: bool = False) -> None:
        """Make a paused run eligible for execution again.

        The worker already holds a delayed redelivery for a paused run, so
        republishing is only needed when that message was lost.
        """
        status = await self._require_status(execution_id)
        if status != RunStatus.PAUSED:
            raise BlockflowError(f"Cannot resume a {status.value} run")
        await self._repository.update_run_status(execution_id, RunStatus.PENDING)
        logger.info(f"Resumed execution_id={execution_id}")

        if republish:
            run = await self._repository.get_run(execution_id)
            if run is None:
                raise BlockflowError(f"Run {execution_id} not found")
            await self._transport.publish(
                self._queue,
                ExecutionMessage(
                    execution_id=execution_id,
                    workflow_id=run.workflow_id,
                    user_id=run.user_id,
                    authorization=run.authorization,
                ),
            )

    async def _require_status(self, execution_id: str) -> RunStatus:
        status = await self._repository.get_run_status(execution_id)
        if status is None:
            raise BlockflowError(f"Run {execution_id} not found")
        return status
