from __future__ import annotations

import asyncio
from typing import Any, Mapping

from ..contracts import BlockType, Node, ValidationResult
from .base import BlockHandler, ExecutionContext


class DelayHandler(BlockHandler):
    """Wait ``seconds`` before letting the run continue."""

    block_types = (BlockType.DELAY.value,)

    async def execute(self, node: Node, context: ExecutionContext) -> Any:
        seconds = float(node.config.get("seconds", 0))
        await asyncio.sleep(seconds)
        return {"delayed": seconds}

    def validate(self, config: Mapping[str, Any]) -> ValidationResult:
        try:
            seconds = float(config.get("seconds", 0))
        except (TypeError, ValueError):
            return ValidationResult.from_errors(["seconds must be a number"])
        if seconds < 0:
            return ValidationResult.from_errors(["seconds must not be negative"])
        return ValidationResult()
