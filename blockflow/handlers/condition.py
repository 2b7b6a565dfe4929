"""Compare two values and emit a boolean."""

from __future__ import annotations

import re
from typing import Any, Callable, Dict, Mapping, Sized

from ..contracts import BlockType, Node, ValidationResult
from .base import BlockHandler, ExecutionContext


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    if isinstance(value, Sized):
        return len(value) == 0
    return False


def _contains(container: Any, item: Any) -> bool:
    if container is None:
        return False
    if isinstance(container, str):
        return str(item) in container
    try:
        return item in container
    except TypeError:
        return False


def _numeric(op: Callable[[float, float], bool]) -> Callable[[Any, Any], bool]:
    def compare(left: Any, right: Any) -> bool:
        try:
            return op(float(left), float(right))
        except (TypeError, ValueError):
            return False

    return compare


OPERATORS: Dict[str, Callable[[Any, Any], bool]] = {
    "eq": lambda l, r: l == r,
    "neq": lambda l, r: l != r,
    "gt": _numeric(lambda l, r: l > r),
    "gte": _numeric(lambda l, r: l >= r),
    "lt": _numeric(lambda l, r: l < r),
    "lte": _numeric(lambda l, r: l <= r),
    "in": lambda l, r: _contains(r, l),
    "not_in": lambda l, r: not _contains(r, l),
    "contains": _contains,
    "not_contains": lambda l, r: not _contains(l, r),
    "starts_with": lambda l, r: str(l).startswith(str(r)) if l is not None else False,
    "ends_with": lambda l, r: str(l).endswith(str(r)) if l is not None else False,
    "is_null": lambda l, _: l is None,
    "is_not_null": lambda l, _: l is not None,
    "is_empty": lambda l, _: _is_empty(l),
    "is_not_empty": lambda l, _: not _is_empty(l),
    "regex_match": lambda l, r: l is not None and re.search(str(r), str(l)) is not None,
}

UNARY = {"is_null", "is_not_null", "is_empty", "is_not_empty"}


class ConditionHandler(BlockHandler):
    """Evaluate ``left <operator> right``; both sides may be templates."""

    block_types = (BlockType.CONDITION.value,)

    async def execute(self, node: Node, context: ExecutionContext) -> Any:
        config = node.config
        operator = config.get("operator", "eq")
        compare = OPERATORS.get(operator)
        if compare is None:
            raise ValueError(f"Unsupported operator: {operator}")
        left = context.render(config.get("left"))
        right = context.render(config.get("right"))
        return {"result": bool(compare(left, right))}

    def validate(self, config: Mapping[str, Any]) -> ValidationResult:
        errors = self.require(config, ["left", "operator"])
        operator = config.get("operator")
        if operator is not None and operator not in OPERATORS:
            errors.append(f"Unsupported operator: {operator}")
        elif operator is not None and operator not in UNARY and "right" not in config:
            errors.append(f"Operator {operator} requires a right operand")
        if operator == "regex_match" and isinstance(config.get("right"), str):
            try:
                re.compile(config["right"])
            except re.error as e:
                errors.append(f"Invalid regular expression: {e}")
        return ValidationResult.from_errors(errors)
