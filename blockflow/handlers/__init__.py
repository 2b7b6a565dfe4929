"""Block handlers and the registry that dispatches to them."""

from .base import BlockHandler, ExecutionContext, FunctionHandler
from .blockchain import BlockchainHandler, ChainClient
from .condition import ConditionHandler
from .delay import DelayHandler
from .http import HttpRequestHandler
from .registry import HandlerRegistry, default_registry
from .transform import ScriptRunner, TransformHandler

__all__ = [
    "BlockHandler",
    "BlockchainHandler",
    "ChainClient",
    "ConditionHandler",
    "DelayHandler",
    "ExecutionContext",
    "FunctionHandler",
    "HandlerRegistry",
    "HttpRequestHandler",
    "ScriptRunner",
    "TransformHandler",
    "default_registry",
]
