"""In-memory transport for testing."""

from __future__ import annotations

import asyncio
from collections import defaultdict, deque
from typing import AsyncIterator, Deque, Dict, Optional, Tuple

from ..contracts import ExecutionMessage
from .base import BaseTransport


class InMemoryTransport(BaseTransport[Tuple[str, ExecutionMessage]]):
    """Simple in-process queue for unit tests."""

    def __init__(self) -> None:
        super().__init__()
        self._queues: Dict[str, Deque[Tuple[str, ExecutionMessage]]] = defaultdict(deque)
        self._lock = asyncio.Lock()
        self.acked: list[str] = []
        self.nacked: list[Tuple[str, bool]] = []
        self._origins: Dict[str, str] = {}

    async def publish(self, topic: str, message: ExecutionMessage) -> None:
        """Publish message to in-memory queue."""
        raw = (message.to_json(), message)
        async with self._lock:
            self._queues[topic].append(raw)

    async def subscribe(
        self, topic: str, lifespan: Optional[float] = None
    ) -> AsyncIterator[Tuple[Tuple[str, ExecutionMessage], ExecutionMessage]]:
        """Subscribe to messages from topic.

        Args:
            topic: The topic to subscribe to
            lifespan: Maximum time in seconds to keep connection open. If None, runs indefinitely.
        """
        loop = asyncio.get_running_loop()
        start_time = loop.time() if lifespan else None

        while True:
            if lifespan and start_time is not None:
                if loop.time() - start_time >= lifespan:
                    break

            async with self._lock:
                raw_message = (
                    self._queues[topic].popleft() if self._queues[topic] else None
                )
            if raw_message is not None:
                self._origins[raw_message[1].message_id] = topic
                yield raw_message, raw_message[1]
                continue

            await asyncio.sleep(0.05)

    async def ack(self, raw_message: Tuple[str, ExecutionMessage]) -> None:
        """Record acknowledgment; the message has already left the queue."""
        self._origins.pop(raw_message[1].message_id, None)
        self.acked.append(raw_message[1].message_id)

    async def nack(
        self, raw_message: Tuple[str, ExecutionMessage], requeue: bool = True
    ) -> None:
        message = raw_message[1]
        self.nacked.append((message.message_id, requeue))
        topic = self._origins.pop(message.message_id, None)
        if requeue and topic is not None:
            async with self._lock:
                self._queues[topic].appendleft(raw_message)

    def pending(self, topic: str) -> int:
        return len(self._queues[topic])
