"""Single-node execution with a bounded budget and durable bookkeeping."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Dict, Mapping, Optional

from .config import ExecutionConfig
from .contracts import BlockClass, Node, NodeStatus, block_type_name
from .errors import (
    AuthorizationDenied,
    CircuitOpenError,
    DispatchError,
    HandlerError,
    NodeTimeoutError,
)
from .handlers import BlockHandler, ExecutionContext, HandlerRegistry
from .logs import ExecutionLogger
from .persistence import ExecutionRepository
from .security import PolicyEngine
from .utils.circuit import CircuitBreakers

logger = logging.getLogger(__name__)


class NodeExecutor:
    """Runs one node through its handler and records the lifecycle.

    The record goes ``running`` before anything else happens and ends in
    exactly one of ``completed`` or ``failed``. Failures are recorded and
    re-raised as ``DispatchError`` or ``HandlerError``; retrying is left
    to the caller.
    """

    def __init__(
        self,
        registry: HandlerRegistry,
        repository: ExecutionRepository,
        config: Optional[ExecutionConfig] = None,
        policy: Optional[PolicyEngine] = None,
        execution_logger: Optional[ExecutionLogger] = None,
    ) -> None:
        self._registry = registry
        self._repository = repository
        self._config = config or ExecutionConfig()
        self._policy = policy
        self._logs = execution_logger or ExecutionLogger(repository)
        self._breakers = CircuitBreakers(
            self._config.circuit_breaker_threshold,
            self._config.circuit_breaker_reset,
        )

    def timeout_for(self, node: Node, handler: BlockHandler) -> float:
        return self._config.timeout_for(handler.block_class, node.config.get("timeout"))

    async def execute_node(
        self,
        node: Node,
        prior_outputs: Mapping[str, Any],
        run_id: str,
        *,
        inputs: Optional[Mapping[str, Any]] = None,
        authorization: Optional[Mapping[str, Any]] = None,
        workflow_id: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> Any:
        await self._repository.upsert_node_execution(run_id, node.id, NodeStatus.RUNNING)
        await self._logs.log(
            run_id,
            node.id,
            "info",
            f"Node {node.id} started",
            {"block_type": node.block_type},
        )
        started = time.monotonic()

        try:
            handler = self._registry.get(node.block_type)
            if handler is None:
                raise DispatchError(node.block_type, node.id)
            await self._authorize(node, handler, authorization)
            timeout = self.timeout_for(node, handler)
            context = ExecutionContext(
                run_id=run_id,
                node_id=node.id,
                workflow_id=workflow_id,
                user_id=user_id,
                prior_outputs=dict(prior_outputs),
                inputs=dict(inputs or {}),
                authorization=authorization,
                logger=self._logs.for_node(run_id, node.id),
            )
            output = await self._call(handler, node, context, timeout)
        except (DispatchError, HandlerError) as exc:
            await self._record_failure(run_id, node, exc, started, exc.__cause__)
            raise
        except Exception as exc:
            failure = HandlerError(node.id, str(exc) or type(exc).__name__)
            await self._record_failure(run_id, node, failure, started, exc)
            raise failure from exc

        await self._repository.upsert_node_execution(
            run_id, node.id, NodeStatus.COMPLETED, output=output
        )
        duration = time.monotonic() - started
        await self._logs.log(
            run_id,
            node.id,
            "info",
            f"Node {node.id} completed in {duration:.3f}s",
            {"block_type": node.block_type, "duration": duration},
        )
        return output

    async def _call(
        self,
        handler: BlockHandler,
        node: Node,
        context: ExecutionContext,
        timeout: float,
    ) -> Any:
        block_type = block_type_name(node.block_type)
        breaker = self._breakers.get(block_type) if self._breakers.enabled else None
        if breaker is not None and not breaker.allow():
            raise CircuitOpenError(node.id, block_type, breaker.failures)

        try:
            output = await asyncio.wait_for(self._invoke(handler, node, context), timeout)
        except asyncio.TimeoutError as exc:
            # only the budget expiring reaches here; see _invoke
            if breaker is not None:
                breaker.record_failure()
            raise NodeTimeoutError(node.id, timeout) from exc
        except Exception:
            if breaker is not None:
                breaker.record_failure()
            raise

        if breaker is not None:
            breaker.record_success()
        return output

    @staticmethod
    async def _invoke(handler: BlockHandler, node: Node, context: ExecutionContext) -> Any:
        try:
            return await handler.execute(node, context)
        except asyncio.TimeoutError as exc:
            # a handler's own timeout keeps its message
            raise HandlerError(node.id, str(exc) or type(exc).__name__) from exc

    async def _authorize(
        self,
        node: Node,
        handler: BlockHandler,
        authorization: Optional[Mapping[str, Any]],
    ) -> None:
        if self._policy is None:
            return
        if handler.block_class != BlockClass.BLOCKCHAIN and not handler.requires_authorization:
            return
        allowed = await self._policy.evaluate(authorization, node.block_type, node.id)
        if not allowed:
            raise AuthorizationDenied(node.id, "denied by authorization policy")

    async def _record_failure(
        self,
        run_id: str,
        node: Node,
        error: Exception,
        started: float,
        cause: Optional[BaseException] = None,
    ) -> None:
        message = str(error)
        await self._repository.upsert_node_execution(
            run_id, node.id, NodeStatus.FAILED, error=message
        )
        details: Dict[str, Any] = {
            "block_type": node.block_type,
            "duration": time.monotonic() - started,
            "error_type": type(cause or error).__name__,
        }
        await self._logs.log(run_id, node.id, "error", f"Node {node.id} failed: {message}", details)
