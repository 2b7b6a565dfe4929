"""Execution contract every block handler implements."""

from __future__ import annotations

import abc
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Iterable, Mapping, Optional, Tuple

from ..contracts import BlockClass, Node, ValidationResult, block_class_for, block_type_name
from ..logs import NodeLogger
from ..utils.templates import render

logger = logging.getLogger(__name__)


@dataclass
class ExecutionContext:
    """What a handler may see while executing one node.

    ``prior_outputs`` holds every output recorded so far in the run, keyed by
    node id. ``inputs`` narrows that to the node's direct parents.
    ``authorization`` is passed through untouched from the run request.
    """

    run_id: str
    node_id: str
    workflow_id: Optional[str] = None
    user_id: Optional[str] = None
    prior_outputs: Dict[str, Any] = field(default_factory=dict)
    inputs: Dict[str, Any] = field(default_factory=dict)
    authorization: Optional[Mapping[str, Any]] = None
    logger: Optional[NodeLogger] = None

    def render(self, value: Any) -> Any:
        """Resolve ``{{node.path}}`` references in ``value``."""
        return render(value, self.prior_outputs)

    async def log(self, level: str, message: str, data: Optional[Dict[str, Any]] = None) -> None:
        if self.logger is None:
            logger.debug(f"[execution_id={self.run_id}] [{self.node_id}] {message}")
            return
        await self.logger.log(level, message, data)


class BlockHandler(abc.ABC):
    """Base class for block handlers.

    Subclasses list the block types they serve in ``block_types``. The
    registry maps each of those discriminators to one shared instance.
    """

    block_types: Tuple[str, ...] = ()
    requires_authorization: bool = False

    @property
    def block_class(self) -> BlockClass:
        if not self.block_types:
            return BlockClass.NETWORK
        return block_class_for(self.block_types[0])

    @abc.abstractmethod
    async def execute(self, node: Node, context: ExecutionContext) -> Any:
        """Run ``node`` and return its output."""
        raise NotImplementedError

    def validate(self, config: Mapping[str, Any]) -> ValidationResult:
        """Static config check used before a workflow is stored."""
        return ValidationResult()

    @staticmethod
    def require(config: Mapping[str, Any], keys: Iterable[str]) -> list[str]:
        return [f"Missing required field: {key}" for key in keys if key not in config]


class FunctionHandler(BlockHandler):
    """Adapt an async callable ``(node, context) -> output`` into a handler.

    This is how hosts plug in email, database, LLM-prompt and custom blocks.
    """

    def __init__(
        self,
        block_type: str,
        func: Callable[[Node, ExecutionContext], Awaitable[Any]],
        block_class: Optional[BlockClass] = None,
        required: Iterable[str] = (),
        requires_authorization: bool = False,
    ) -> None:
        self.block_types = (block_type_name(block_type),)
        self._func = func
        self._block_class = block_class
        self._required = tuple(required)
        self.requires_authorization = requires_authorization

    @property
    def block_class(self) -> BlockClass:
        return self._block_class or super().block_class

    async def execute(self, node: Node, context: ExecutionContext) -> Any:
        return await self._func(node, context)

    def validate(self, config: Mapping[str, Any]) -> ValidationResult:
        return ValidationResult.from_errors(self.require(config, self._required))
