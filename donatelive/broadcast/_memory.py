from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Set

logger = logging.getLogger(__name__)

Message = Dict[str, Any]


class BroadcastChannel:
    """Fans events out to the viewers connected to this process.

    Each viewer owns a bounded queue, so delivery is FIFO per connection.
    Nothing is kept for viewers that subscribe later, and a viewer whose
    queue is full simply misses the message.
    """

    def __init__(self, queue_size: int = 100) -> None:
        self.queue_size = queue_size
        self.subscribers: Set[asyncio.Queue] = set()

    async def start(self) -> None:
        return None

    async def stop(self) -> None:
        self.subscribers.clear()

    async def subscribe(self) -> asyncio.Queue:
        q: asyncio.Queue = asyncio.Queue(maxsize=self.queue_size)
        self.subscribers.add(q)
        return q

    async def unsubscribe(self, q: asyncio.Queue) -> None:
        self.subscribers.discard(q)

    def publish(self, event_type: str, data: Dict[str, Any]) -> None:
        """Hand the event to every current subscriber without waiting."""
        self.deliver({"event": event_type, "data": data})

    def deliver(self, message: Message) -> int:
        delivered = 0
        for q in list(self.subscribers):
            try:
                q.put_nowait(message)
                delivered += 1
            except asyncio.QueueFull:
                logger.debug("viewer queue full, dropping %s",
                             message.get("event"))
        return delivered
