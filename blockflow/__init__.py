"""blockflow: queue-driven execution engine for block workflow graphs."""

from .contracts import (
    BlockType,
    Edge,
    ExecutionMessage,
    Node,
    RunOutcome,
    RunStatus,
    WorkflowGraph,
)
from .dispatch import ExecutionDispatcher
from .executor import NodeExecutor
from .graph import topological_sort, validate
from .handlers import BlockHandler, ExecutionContext, HandlerRegistry, default_registry
from .persistence import get_repository
from .runner import RunController
from .transports import get_transport
from .worker import ExecutionWorker

__version__ = "0.1.0"
__all__ = [
    "BlockHandler",
    "BlockType",
    "Edge",
    "ExecutionContext",
    "ExecutionDispatcher",
    "ExecutionMessage",
    "ExecutionWorker",
    "HandlerRegistry",
    "Node",
    "NodeExecutor",
    "RunController",
    "RunOutcome",
    "RunStatus",
    "WorkflowGraph",
    "default_registry",
    "get_repository",
    "get_transport",
    "topological_sort",
    "validate",
]
