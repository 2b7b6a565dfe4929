"""Redis transport for cross-process execution queues."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, AsyncIterator, Optional, Tuple

import redis.asyncio as redis
from pydantic import ValidationError

from ..contracts import ExecutionMessage
from .base import BaseTransport

logger = logging.getLogger(__name__)


class RedisTransport(BaseTransport[Tuple[str, str]]):
    """Redis list-based transport.

    Raw messages are ``(queue_name, payload)`` pairs so a negative
    acknowledgement can push the payload back onto its queue.
    """

    def __init__(
        self,
        host: str = "localhost",
        port: int = 6379,
        db: int = 0,
        password: Optional[str] = None,
    ) -> None:
        super().__init__()
        self.host = host
        self.port = port
        self.db = db
        self.password = password
        self._redis: Optional[Any] = None

    @staticmethod
    def queue_name(topic: str) -> str:
        return f"blockflow:{topic}"

    async def connect(self) -> None:
        """Connect to Redis."""
        self._redis = redis.Redis(
            host=self.host,
            port=self.port,
            db=self.db,
            password=self.password,
            decode_responses=True,
        )
        # Test connection
        await self._redis.ping()

    async def disconnect(self) -> None:
        """Disconnect from Redis."""
        await super().disconnect()
        if self._redis:
            await self._redis.aclose()
            self._redis = None

    async def publish(self, topic: str, message: ExecutionMessage) -> None:
        """Publish message to Redis list (acting as queue)."""
        if not self._redis:
            await self.connect()
        await self._redis.lpush(self.queue_name(topic), message.to_json())

    async def subscribe(
        self, topic: str, lifespan: Optional[float] = None
    ) -> AsyncIterator[Tuple[Tuple[str, str], ExecutionMessage]]:
        """Subscribe to messages from Redis queue."""
        if not self._redis:
            await self.connect()

        queue_name = self.queue_name(topic)
        loop = asyncio.get_running_loop()
        start_time = loop.time() if lifespan else None

        while True:
            if lifespan and start_time is not None:
                if loop.time() - start_time >= lifespan:
                    break

            # Blocking pop with timeout
            result = await self._redis.brpop(queue_name, timeout=1)
            if not result:
                continue

            _, message_json = result
            try:
                message = ExecutionMessage.from_json(message_json)
            except ValidationError as e:
                logger.error(f"Dropping unparseable message on {queue_name}: {e}")
                continue
            yield (queue_name, message_json), message

    async def ack(self, raw_message: Tuple[str, str]) -> None:
        """No-op acknowledgment for Redis transport (message already consumed)."""
        pass

    async def nack(self, raw_message: Tuple[str, str], requeue: bool = True) -> None:
        if not requeue:
            return
        if not self._redis:
            await self.connect()
        queue_name, message_json = raw_message
        # brpop takes from the right, so this message is served next
        await self._redis.rpush(queue_name, message_json)
