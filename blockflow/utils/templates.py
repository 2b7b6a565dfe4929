"""Resolution of ``{{node.path}}`` references against upstream outputs.

Templates are Jinja2 expressions evaluated in a sandbox, with every prior
node output available by its node id (and the whole mapping as
``outputs`` for ids that are not valid identifiers).
"""

from __future__ import annotations

from typing import Any, Mapping, Optional

from jinja2 import ChainableUndefined, TemplateSyntaxError, nodes
from jinja2.sandbox import SandboxedEnvironment

_MISSING = object()


class _OutputsEnvironment(SandboxedEnvironment):
    """Mapping keys win over attributes, so ``body.items`` reads the key."""

    def getattr(self, obj: Any, attribute: str) -> Any:
        if isinstance(obj, Mapping) and attribute in obj:
            return obj[attribute]
        return super().getattr(obj, attribute)


_env = _OutputsEnvironment(
    undefined=ChainableUndefined,
    autoescape=False,
    finalize=lambda value: "" if value is None else value,
)


def resolve_path(data: Any, path: str, default: Any = None) -> Any:
    """Walk ``data`` along a dotted ``path``.

    Mapping keys and sequence indexes are both supported, so
    ``"fetch.body.items.0.id"`` reads ``data["fetch"]["body"]["items"][0]["id"]``.
    """
    current = data
    for part in path.split("."):
        if isinstance(current, Mapping):
            current = current.get(part, _MISSING)
        elif isinstance(current, (list, tuple)) and part.lstrip("-").isdigit():
            index = int(part)
            current = current[index] if -len(current) <= index < len(current) else _MISSING
        else:
            current = getattr(current, part, _MISSING)
        if current is _MISSING:
            return default
    return current


def render(value: Any, outputs: Mapping[str, Any]) -> Any:
    """Substitute templates inside ``value``, recursing into containers.

    A string that is exactly one ``{{ expression }}`` keeps the value's
    type; templates embedded in longer strings are interpolated as text,
    with unresolved references rendered as empty strings.
    """
    if isinstance(value, str):
        if "{{" not in value and "{%" not in value:
            return value
        context = dict(outputs)
        context.setdefault("outputs", outputs)
        try:
            expression = _single_expression(value)
            if expression is not None:
                return _env.compile_expression(expression)(**context)
            return _env.from_string(value).render(**context)
        except TemplateSyntaxError as e:
            raise ValueError(f"Invalid template {value!r}: {e.message}") from e
    if isinstance(value, Mapping):
        return {key: render(item, outputs) for key, item in value.items()}
    if isinstance(value, list):
        return [render(item, outputs) for item in value]
    return value


def _single_expression(source: str) -> Optional[str]:
    text = source.strip()
    if not (text.startswith("{{") and text.endswith("}}")):
        return None
    body = _env.parse(text).body
    if (
        len(body) == 1
        and isinstance(body[0], nodes.Output)
        and len(body[0].nodes) == 1
        and not isinstance(body[0].nodes[0], nodes.TemplateData)
    ):
        return text[2:-2].strip("-+ \t\r\n")
    return None
