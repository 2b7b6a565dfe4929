"""Runtime authorization seam for privileged blocks."""

from __future__ import annotations

from typing import Any, Mapping, Optional


class PolicyEngine:
    """Evaluates authorization policies at runtime.

    The engine never interprets the authorization object itself; spending
    limits, signatures and expiry belong to the implementation plugged in
    here.
    """

    async def evaluate(
        self, authorization: Optional[Mapping[str, Any]], action: str, resource: str
    ) -> bool:  # pragma: no cover
        """Return ``True`` if the ``action`` on ``resource`` is permitted."""
        raise NotImplementedError


class AllowAllPolicy(PolicyEngine):
    """Permit everything; for local development and tests."""

    async def evaluate(
        self, authorization: Optional[Mapping[str, Any]], action: str, resource: str
    ) -> bool:
        return True
