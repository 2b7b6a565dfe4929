"""Reshape upstream outputs without leaving the process."""

from __future__ import annotations

from typing import Any, Dict, Mapping, Optional, Protocol

from ..contracts import BlockType, Node, ValidationResult
from ..utils.templates import resolve_path
from .base import BlockHandler, ExecutionContext


class ScriptRunner(Protocol):
    """Restricted interpreter for user-supplied transform scripts.

    Implementations must be pure ``(data) -> result`` functions with no
    ambient I/O; the caller enforces the wall-clock budget.
    """

    async def run(self, script: str, data: Mapping[str, Any]) -> Any:
        ...


class TransformHandler(BlockHandler):
    """Build an output mapping from dotted paths into upstream outputs.

    Config::

        mapping:  {output_key: "node_id.path.to.value"}
        defaults: {output_key: fallback}
        script:   optional source passed to the injected ScriptRunner

    When both are present the mapping is applied first and its result is
    handed to the script as ``data``.
    """

    block_types = (BlockType.TRANSFORM.value,)

    def __init__(self, script_runner: Optional[ScriptRunner] = None) -> None:
        self._script_runner = script_runner

    async def execute(self, node: Node, context: ExecutionContext) -> Any:
        config = node.config
        mapping: Dict[str, str] = config.get("mapping") or {}
        defaults: Dict[str, Any] = config.get("defaults") or {}

        result: Dict[str, Any] = {}
        if mapping:
            for key, path in mapping.items():
                result[key] = resolve_path(context.prior_outputs, path, defaults.get(key))
        else:
            result = dict(context.inputs)
        for key, value in defaults.items():
            result.setdefault(key, value)

        script = config.get("script")
        if not script:
            return result
        if self._script_runner is None:
            raise RuntimeError("Transform scripts require a configured script runner")
        await context.log("debug", "Running transform script")
        return await self._script_runner.run(
            script, {"data": result, "outputs": context.prior_outputs}
        )

    def validate(self, config: Mapping[str, Any]) -> ValidationResult:
        errors = []
        warnings = []
        mapping = config.get("mapping")
        if mapping is not None and not isinstance(mapping, Mapping):
            errors.append("mapping must be an object of output key to source path")
        elif mapping:
            for key, path in mapping.items():
                if not isinstance(path, str) or not path:
                    errors.append(f"mapping.{key} must be a non-empty path")
        if config.get("script") and self._script_runner is None:
            warnings.append("script configured but no script runner is available")
        if not mapping and not config.get("script"):
            warnings.append("no mapping or script; upstream inputs pass through")
        return ValidationResult.from_errors(errors, warnings)
