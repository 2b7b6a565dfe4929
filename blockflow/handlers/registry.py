"""Block-type keyed handler registry."""

from __future__ import annotations

import logging
from typing import Dict, List, Optional

from ..config import parse_timeout
from ..contracts import ValidationResult, WorkflowGraph, block_type_name
from .base import BlockHandler

logger = logging.getLogger(__name__)


class HandlerRegistry:
    """Maps block-type discriminators to handler instances.

    Built once at process start; lookups never fall back to a default
    handler, so an unknown discriminator is a hard failure for the node.
    """

    def __init__(self) -> None:
        self._handlers: Dict[str, BlockHandler] = {}

    def register(self, handler: BlockHandler, block_type: Optional[str] = None) -> None:
        """Register ``handler`` for ``block_type`` or all of its ``block_types``."""
        types = [block_type] if block_type is not None else list(handler.block_types)
        if not types:
            raise ValueError(f"{type(handler).__name__} declares no block types")
        for name in types:
            key = _key(name)
            if key in self._handlers:
                logger.warning(f"Replacing handler for block type {key}")
            self._handlers[key] = handler

    def get(self, block_type: str) -> Optional[BlockHandler]:
        return self._handlers.get(_key(block_type))

    def __contains__(self, block_type: object) -> bool:
        return isinstance(block_type, str) and _key(block_type) in self._handlers

    def block_types(self) -> List[str]:
        return sorted(self._handlers)

    def validate_workflow(self, graph: WorkflowGraph) -> Dict[str, ValidationResult]:
        """Run every node's static config check.

        Returns a result per node id; unknown block types and unusable
        ``timeout`` settings are reported as errors rather than raised.
        """
        results: Dict[str, ValidationResult] = {}
        for node in graph.nodes:
            handler = self.get(node.block_type)
            if handler is None:
                results[node.id] = ValidationResult.from_errors(
                    [f"No handler for block type: {node.block_type}"]
                )
                continue
            result = handler.validate(node.config)
            timeout = node.config.get("timeout")
            if timeout is not None:
                try:
                    parse_timeout(timeout)
                except ValueError as e:
                    result = ValidationResult.from_errors(
                        [*result.errors, str(e)], result.warnings
                    )
            results[node.id] = result
        return results


def _key(block_type: str) -> str:
    return block_type_name(block_type)


def default_registry(
    chain_client=None, script_runner=None, http_client=None
) -> HandlerRegistry:
    """Registry with every built-in handler.

    Blockchain blocks are only registered when a ``chain_client`` is given.
    """
    from .blockchain import BlockchainHandler
    from .condition import ConditionHandler
    from .delay import DelayHandler
    from .http import HttpRequestHandler
    from .transform import TransformHandler

    registry = HandlerRegistry()
    registry.register(TransformHandler(script_runner=script_runner))
    registry.register(ConditionHandler())
    registry.register(DelayHandler())
    registry.register(HttpRequestHandler(client=http_client))
    if chain_client is not None:
        registry.register(BlockchainHandler(chain_client))
    return registry
