"""Core contracts for blockflow workflow execution."""

from __future__ import annotations

import json
import uuid
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, Field, field_validator


class BlockType(str, Enum):
    """Built-in block discriminators.

    Nodes carry the discriminator as a plain string so hosts can register
    handlers for their own block types.
    """

    EMAIL = "EMAIL"
    DATABASE = "DATABASE"
    WEBHOOK = "WEBHOOK"
    HTTP_REQUEST = "HTTP_REQUEST"
    NOTIFICATION = "NOTIFICATION"
    WALLET = "WALLET"
    TRANSACTION = "TRANSACTION"
    CONDITION = "CONDITION"
    TRANSFORM = "TRANSFORM"
    DELAY = "DELAY"
    SCHEDULE = "SCHEDULE"
    CUSTOM = "CUSTOM"
    LLM_PROMPT = "LLM_PROMPT"


class BlockClass(str, Enum):
    """Execution budget classes."""

    IN_PROCESS = "in_process"
    NETWORK = "network"
    BLOCKCHAIN = "blockchain"


BLOCK_CLASSES: Dict[str, BlockClass] = {
    BlockType.TRANSFORM.value: BlockClass.IN_PROCESS,
    BlockType.CONDITION.value: BlockClass.IN_PROCESS,
    BlockType.DELAY.value: BlockClass.IN_PROCESS,
    BlockType.WALLET.value: BlockClass.BLOCKCHAIN,
    BlockType.TRANSACTION.value: BlockClass.BLOCKCHAIN,
}


def block_type_name(block_type: str) -> str:
    """Plain discriminator string for a ``BlockType`` member or custom name."""
    if isinstance(block_type, Enum):
        return str(block_type.value)
    return str(block_type)


def block_class_for(block_type: str) -> BlockClass:
    """Return the budget class of ``block_type`` (network by default)."""
    return BLOCK_CLASSES.get(block_type_name(block_type), BlockClass.NETWORK)


class RunStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (RunStatus.COMPLETED, RunStatus.FAILED)


class NodeStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class Node(BaseModel):
    """One block in a workflow graph."""

    id: str
    block_type: str
    config: Dict[str, Any] = Field(default_factory=dict)
    label: Optional[str] = None
    trigger: bool = False

    @field_validator("block_type", mode="before")
    @classmethod
    def _plain_block_type(cls, v: Any) -> Any:
        return block_type_name(v) if isinstance(v, Enum) else v


class Edge(BaseModel):
    """Directed dependency ``source -> target``."""

    source: str
    target: str


class WorkflowGraph(BaseModel):
    """Immutable snapshot of a workflow's nodes and edges."""

    nodes: List[Node] = Field(default_factory=list)
    edges: List[Edge] = Field(default_factory=list)

    model_config = {"frozen": True}

    def node_ids(self) -> List[str]:
        return [node.id for node in self.nodes]

    def get_node(self, node_id: str) -> Optional[Node]:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    @classmethod
    def from_file(cls, path: str | Path) -> "WorkflowGraph":
        """Load a graph definition from a YAML or JSON file."""
        path = Path(path)
        text = path.read_text()
        if path.suffix.lower() == ".json":
            data = json.loads(text)
        else:
            data = yaml.safe_load(text) or {}
        return cls.model_validate(data)


class ValidationResult(BaseModel):
    """Outcome of a handler's static config check."""

    valid: bool = True
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)

    @classmethod
    def from_errors(
        cls, errors: List[str], warnings: Optional[List[str]] = None
    ) -> "ValidationResult":
        return cls(valid=not errors, errors=errors, warnings=warnings or [])


class RunOutcome(BaseModel):
    """Result of driving one run through the Run Controller."""

    run_id: str
    status: RunStatus
    outputs: Dict[str, Any] = Field(default_factory=dict)
    error: Optional[str] = None

    @property
    def paused(self) -> bool:
        return self.status == RunStatus.PAUSED


class ExecutionMessage(BaseModel):
    """Queue envelope requesting execution of one workflow run."""

    message_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    execution_id: str
    workflow_id: str
    user_id: Optional[str] = None
    authorization: Optional[Dict[str, Any]] = None
    attempt: int = 1
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    spec_version: str = "1.0"

    def to_json(self) -> str:
        """Serialize message to JSON."""
        return self.model_dump_json()

    @classmethod
    def from_json(cls, data: str) -> "ExecutionMessage":
        """Deserialize message from JSON."""
        return cls.model_validate_json(data)

    def bump_attempt(self) -> "ExecutionMessage":
        """Return a redelivery copy with a fresh id and incremented attempt."""
        return self.model_copy(
            update={
                "message_id": str(uuid.uuid4()),
                "attempt": self.attempt + 1,
                "timestamp": datetime.now(timezone.utc),
            }
        )
