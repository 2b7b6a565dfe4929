"""Data models for persisted execution state."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, Field

from ..contracts import NodeStatus, RunStatus


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RunRecord(BaseModel):
    """One workflow invocation (a "workflow execution")."""

    id: str
    workflow_id: str
    user_id: Optional[str] = None
    # opaque grant from the run request, replayed when a run is republished
    authorization: Optional[dict[str, Any]] = None
    status: RunStatus = RunStatus.PENDING
    started_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None
    updated_at: datetime = Field(default_factory=utcnow)
    result: Optional[dict[str, Any]] = None
    error: Optional[str] = None


class NodeExecutionRecord(BaseModel):
    """Execution state of one node within one run."""

    run_id: str
    node_id: str
    status: NodeStatus = NodeStatus.PENDING
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    output: Any = None
    error: Optional[str] = None


class LogEntry(BaseModel):
    """Operator-facing log line attached to a run (and optionally a node)."""

    id: Optional[int] = None
    run_id: str
    node_id: str = "system"
    level: str = "info"
    message: str
    data: Optional[dict[str, Any]] = None
    created_at: datetime = Field(default_factory=utcnow)
