"""Wallet and transaction blocks.

Signing, gas estimation and bundler calls live behind ``ChainClient``;
this handler only validates the request shape and forwards it together
with the run's authorization object.
"""

from __future__ import annotations

from typing import Any, Dict, Mapping, Optional, Protocol

from ..contracts import BlockType, Node, ValidationResult
from .base import BlockHandler, ExecutionContext


class ChainClient(Protocol):
    async def wallet(
        self, config: Mapping[str, Any], authorization: Optional[Mapping[str, Any]]
    ) -> Dict[str, Any]:
        ...

    async def transaction(
        self, config: Mapping[str, Any], authorization: Optional[Mapping[str, Any]]
    ) -> Dict[str, Any]:
        ...


class BlockchainHandler(BlockHandler):
    block_types = (BlockType.WALLET.value, BlockType.TRANSACTION.value)
    requires_authorization = True

    def __init__(self, client: ChainClient) -> None:
        self._client = client

    async def execute(self, node: Node, context: ExecutionContext) -> Any:
        if context.authorization is None:
            raise PermissionError(
                f"{node.block_type} blocks require an authorization object"
            )
        config = context.render(node.config)
        if node.block_type == BlockType.TRANSACTION.value:
            await context.log("info", f"Submitting transaction to {config.get('to')}")
            return await self._client.transaction(config, context.authorization)
        return await self._client.wallet(config, context.authorization)

    def validate(self, config: Mapping[str, Any]) -> ValidationResult:
        errors = []
        if "to" in config or "amount" in config:
            errors = self.require(config, ["to", "amount"])
        return ValidationResult.from_errors(errors)
