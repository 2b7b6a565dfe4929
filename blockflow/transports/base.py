"""Base transport interface for execution queues."""

from __future__ import annotations

import abc
import asyncio
import logging
from typing import AsyncIterator, Dict, Generic, Optional, Tuple, TypeVar

from ..contracts import ExecutionMessage

logger = logging.getLogger(__name__)

RawMessageT = TypeVar("RawMessageT")


class BaseTransport(Generic[RawMessageT], metaclass=abc.ABCMeta):
    """Abstract base transport for message brokers."""

    def __init__(self) -> None:
        self._delayed: Dict[asyncio.Task, Tuple[str, ExecutionMessage]] = {}

    async def connect(self) -> None:
        """Open connection to broker (no-op by default)."""
        pass

    async def disconnect(self) -> None:
        """Publish any still-delayed redeliveries, then close."""
        await self.flush_delayed()

    @abc.abstractmethod
    async def publish(self, topic: str, message: ExecutionMessage) -> None:
        """Send a message to a topic/queue."""
        raise NotImplementedError

    @abc.abstractmethod
    async def subscribe(
        self, topic: str, lifespan: Optional[float] = None
    ) -> AsyncIterator[Tuple[RawMessageT, ExecutionMessage]]:
        """Yield raw transport message and ExecutionMessage pairs.

        Args:
            topic: The topic to subscribe to
            lifespan: Maximum time in seconds to keep connection open. If None, runs indefinitely.
        """
        raise NotImplementedError

    @abc.abstractmethod
    async def ack(self, raw_message: RawMessageT) -> None:
        """Acknowledge successful processing."""
        raise NotImplementedError

    async def nack(self, raw_message: RawMessageT, requeue: bool = True) -> None:
        """Negatively acknowledge (default to ack if unsupported)."""
        await self.ack(raw_message)

    async def requeue(
        self,
        topic: str,
        raw_message: RawMessageT,
        message: ExecutionMessage,
        delay: float = 0.0,
    ) -> None:
        """Redeliver ``message`` on ``topic`` after ``delay`` seconds.

        The current delivery is settled right away and the copy is published
        from a background task, so the consumer keeps draining the queue.
        """
        await self.ack(raw_message)
        if delay <= 0:
            await self.publish(topic, message)
            return
        task = asyncio.create_task(self._publish_later(topic, message, delay))
        self._delayed[task] = (topic, message)
        task.add_done_callback(lambda t: self._delayed.pop(t, None))

    async def _publish_later(
        self, topic: str, message: ExecutionMessage, delay: float
    ) -> None:
        await asyncio.sleep(delay)
        try:
            await self.publish(topic, message)
        except Exception:
            logger.exception(
                f"Failed to redeliver message for execution_id={message.execution_id}"
            )

    async def flush_delayed(self) -> None:
        """Publish pending delayed redeliveries immediately."""
        pending = list(self._delayed.items())
        self._delayed.clear()
        for task, (topic, message) in pending:
            if task.done():
                continue
            task.cancel()
            await self.publish(topic, message)
