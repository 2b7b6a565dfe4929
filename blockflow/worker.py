"""Execution job consumer: queue messages in, ack/nack decisions out."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional, Set

from .cache import TTLCache
from .config import BlockflowConfig, WorkerConfig
from .contracts import ExecutionMessage, RunOutcome, RunStatus, WorkflowGraph
from .errors import WorkflowNotFoundError
from .executor import NodeExecutor
from .handlers import HandlerRegistry, default_registry
from .logs import ExecutionLogger
from .notifications import Notifier, get_notifier
from .persistence import ExecutionRepository
from .runner import RunController
from .security import PolicyEngine
from .transports import BaseTransport
from .utils.retry import compute_backoff

logger = logging.getLogger(__name__)


class ExecutionWorker:
    """Consumes execution messages and hands each run to the controller.

    Delivery is assumed at-least-once. The persisted run status is read
    before every execution so duplicate deliveries of finished runs are
    acknowledged without doing any work.
    """

    def __init__(
        self,
        transport: BaseTransport,
        repository: ExecutionRepository,
        controller: RunController,
        config: Optional[WorkerConfig] = None,
        queue: str = "workflow-executions",
    ) -> None:
        self._transport = transport
        self._repository = repository
        self._controller = controller
        self._config = config or WorkerConfig()
        self._queue = queue
        self._graphs: TTLCache[str, WorkflowGraph] = TTLCache(
            max_size=self._config.workflow_cache_size,
            ttl=self._config.workflow_cache_ttl,
        )
        self._active: Set[str] = set()
        self._logs = ExecutionLogger(repository)

    @classmethod
    def from_config(
        cls,
        config: BlockflowConfig,
        transport: BaseTransport,
        repository: ExecutionRepository,
        registry: Optional[HandlerRegistry] = None,
        policy: Optional[PolicyEngine] = None,
        notifier: Optional[Notifier] = None,
    ) -> "ExecutionWorker":
        """Wire executor, controller and worker from one configuration."""
        execution_logger = ExecutionLogger(repository)
        executor = NodeExecutor(
            registry or default_registry(),
            repository,
            config=config.execution,
            policy=policy,
            execution_logger=execution_logger,
        )
        controller = RunController(
            repository,
            executor,
            execution_logger,
            notifier=notifier or get_notifier(config.notifications.webhook_url),
        )
        return cls(
            transport,
            repository,
            controller,
            config=config.worker,
            queue=config.transport.queue,
        )

    @property
    def queue(self) -> str:
        return self._queue

    async def start(
        self, lifespan: Optional[float] = None, concurrency: Optional[int] = None
    ) -> None:
        """Consume until ``lifespan`` seconds have passed (forever if None)."""
        consumers = concurrency or self._config.concurrency
        logger.info(f"Worker consuming {self._queue} with {consumers} consumer(s)")
        await self._transport.connect()
        try:
            await asyncio.gather(
                *(self._consume(lifespan) for _ in range(consumers))
            )
        finally:
            await self._transport.disconnect()

    async def _consume(self, lifespan: Optional[float]) -> None:
        async for raw_message, message in self._transport.subscribe(
            self._queue, lifespan=lifespan
        ):
            await self.handle_message(raw_message, message)

    async def handle_message(self, raw_message: Any, message: ExecutionMessage) -> None:
        """Process one delivery and settle it with the transport."""
        try:
            await self._process(raw_message, message)
        except Exception as e:
            logger.exception(
                f"Infrastructure failure for execution_id={message.execution_id} "
                f"(attempt {message.attempt})"
            )
            await self._retry_or_drop(raw_message, message, e)

    async def _process(self, raw_message: Any, message: ExecutionMessage) -> None:
        run_id = message.execution_id
        run = await self._repository.create_run(
            run_id, message.workflow_id, message.user_id, message.authorization
        )

        if run.status.is_terminal:
            logger.info(
                f"Skipping {run.status.value} run for execution_id={run_id}"
            )
            await self._transport.ack(raw_message)
            return

        if run.status == RunStatus.PAUSED or run_id in self._active:
            reason = "paused" if run.status == RunStatus.PAUSED else "already executing"
            logger.info(f"Requeueing execution_id={run_id}: {reason}")
            await self._transport.requeue(
                self._queue, raw_message, message, self._config.paused_requeue_delay
            )
            return

        self._active.add(run_id)
        try:
            try:
                graph = await self._load_graph(message.workflow_id)
            except WorkflowNotFoundError as e:
                await self._repository.update_run_status(
                    run_id, RunStatus.FAILED, error=str(e)
                )
                await self._logs.run_event(run_id, str(e), level="error")
                await self._transport.nack(raw_message, requeue=False)
                return

            outcome = await self._controller.run(
                run_id,
                graph,
                workflow_id=message.workflow_id,
                user_id=message.user_id,
                authorization=message.authorization,
            )
        finally:
            self._active.discard(run_id)

        await self._settle(raw_message, message, outcome)

    async def _settle(
        self, raw_message: Any, message: ExecutionMessage, outcome: RunOutcome
    ) -> None:
        if outcome.status == RunStatus.COMPLETED:
            await self._transport.ack(raw_message)
        elif outcome.status == RunStatus.PAUSED:
            await self._transport.requeue(
                self._queue, raw_message, message, self._config.paused_requeue_delay
            )
        else:
            logger.warning(
                f"Run failed for execution_id={message.execution_id}: {outcome.error}"
            )
            await self._transport.nack(raw_message, requeue=False)

    async def _load_graph(self, workflow_id: str) -> WorkflowGraph:
        graph = self._graphs.get(workflow_id)
        if graph is None:
            graph = await self._repository.get_workflow(workflow_id)
            if graph is None:
                raise WorkflowNotFoundError(workflow_id)
            self._graphs.set(workflow_id, graph)
        return graph

    async def _retry_or_drop(
        self, raw_message: Any, message: ExecutionMessage, error: Exception
    ) -> None:
        run_id = message.execution_id
        try:
            if message.attempt < self._config.max_attempts:
                delay = compute_backoff(message.attempt)
                logger.info(
                    f"Retrying execution_id={run_id} in {delay:.1f}s "
                    f"(attempt {message.attempt + 1} of {self._config.max_attempts})"
                )
                await self._transport.requeue(
                    self._queue, raw_message, message.bump_attempt(), delay
                )
                return

            logger.error(
                f"Giving up on execution_id={run_id} after {message.attempt} attempts"
            )
            await self._repository.update_run_status(
                run_id, RunStatus.FAILED, error=str(error) or type(error).__name__
            )
            await self._transport.nack(raw_message, requeue=False)
        except Exception:
            logger.exception(f"Could not settle message for execution_id={run_id}")
