"""Durable execution logs, mirrored to the standard logger."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from .persistence import ExecutionRepository

logger = logging.getLogger(__name__)

SYSTEM_NODE = "system"

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


class ExecutionLogger:
    """Writes operator-facing log lines through the repository."""

    def __init__(self, repository: ExecutionRepository) -> None:
        self._repository = repository

    async def log(
        self,
        run_id: str,
        node_id: str,
        level: str,
        message: str,
        data: Optional[Dict[str, Any]] = None,
    ) -> None:
        level = level.lower() if level.lower() in _LEVELS else "info"
        logger.log(
            _LEVELS[level],
            f"[execution_id={run_id}] [{node_id}] {message}",
        )
        try:
            await self._repository.append_log(run_id, node_id, level, message, data)
        except Exception as e:
            # a failing log sink must not change the outcome of a run
            logger.warning(f"Failed to persist log for execution_id={run_id}: {e}")

    async def run_event(
        self,
        run_id: str,
        message: str,
        level: str = "info",
        data: Optional[Dict[str, Any]] = None,
    ) -> None:
        await self.log(run_id, SYSTEM_NODE, level, message, data)

    def for_node(self, run_id: str, node_id: str) -> "NodeLogger":
        return NodeLogger(self, run_id, node_id)


class NodeLogger:
    """Log handle bound to one node of one run, handed to block handlers."""

    def __init__(self, sink: ExecutionLogger, run_id: str, node_id: str) -> None:
        self._sink = sink
        self.run_id = run_id
        self.node_id = node_id

    async def log(
        self, level: str, message: str, data: Optional[Dict[str, Any]] = None
    ) -> None:
        """Log at ``level``; unknown level names are recorded as ``info``."""
        await self._sink.log(self.run_id, self.node_id, level, message, data)

    async def debug(self, message: str, data: Optional[Dict[str, Any]] = None) -> None:
        await self._sink.log(self.run_id, self.node_id, "debug", message, data)

    async def info(self, message: str, data: Optional[Dict[str, Any]] = None) -> None:
        await self._sink.log(self.run_id, self.node_id, "info", message, data)

    async def warning(self, message: str, data: Optional[Dict[str, Any]] = None) -> None:
        await self._sink.log(self.run_id, self.node_id, "warning", message, data)

    async def error(self, message: str, data: Optional[Dict[str, Any]] = None) -> None:
        await self._sink.log(self.run_id, self.node_id, "error", message, data)
