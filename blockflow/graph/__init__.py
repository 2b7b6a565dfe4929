"""Graph validation and scheduling."""

from .scheduler import topological_sort
from .structure import dependency_map
from .validator import (
    validate,
    validate_acyclic,
    validate_graph,
    validate_orphans,
    validate_references,
    validate_terminals,
)

__all__ = [
    "dependency_map",
    "topological_sort",
    "validate",
    "validate_acyclic",
    "validate_graph",
    "validate_orphans",
    "validate_references",
    "validate_terminals",
]
