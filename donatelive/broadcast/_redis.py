from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional, Set

import orjson
import redis.asyncio as redis
from redis.exceptions import RedisError

from ._memory import BroadcastChannel

logger = logging.getLogger(__name__)

CHANNEL = "donatelive:donations"
# seconds before the first resubscribe attempt; doubles up to the cap
RECONNECT_DELAY = 0.5
MAX_RECONNECT_DELAY = 30.0


class RedisBroadcastChannel(BroadcastChannel):
    """Broadcast across worker processes through Redis pub/sub.

    ``publish`` only schedules the Redis PUBLISH; a listener task in every
    worker relays what arrives on the channel to that worker's local
    subscribers, including the worker that published it. A dropped
    connection is retried with exponential backoff until ``stop``.
    """

    def __init__(self, r: redis.Redis, channel: str = CHANNEL,
                 queue_size: int = 100,
                 reconnect_delay: float = RECONNECT_DELAY) -> None:
        super().__init__(queue_size=queue_size)
        self.r = r
        self.channel = channel
        self._pubsub = None
        self._listener: Optional[asyncio.Task] = None
        self._inflight: Set[asyncio.Task] = set()
        self.reconnect_delay = reconnect_delay

    async def start(self) -> None:
        await self._subscribe()
        self._listener = asyncio.create_task(self._relay())

    async def stop(self) -> None:
        if self._listener is not None:
            self._listener.cancel()
            try:
                await self._listener
            except asyncio.CancelledError:
                pass
            self._listener = None
        await self._close_pubsub()
        await super().stop()

    async def _subscribe(self) -> None:
        # assigned first so a failed subscribe is still closed
        self._pubsub = self.r.pubsub(ignore_subscribe_messages=True)
        await self._pubsub.subscribe(self.channel)

    async def _close_pubsub(self) -> None:
        pubsub, self._pubsub = self._pubsub, None
        if pubsub is None:
            return
        try:
            await pubsub.unsubscribe(self.channel)
            await pubsub.aclose()
        except RedisError as e:
            logger.debug("closing redis pubsub failed: %s", e)

    def publish(self, event_type: str, data: Dict[str, Any]) -> None:
        payload = orjson.dumps({"event": event_type, "data": data})
        task = asyncio.create_task(self._send(payload))
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)

    async def _send(self, payload: bytes) -> None:
        try:
            await self.r.publish(self.channel, payload)
        except RedisError as e:
            logger.warning("redis publish failed: %s", e)

    async def _relay(self) -> None:
        delay = self.reconnect_delay
        while True:
            try:
                if self._pubsub is None:
                    await self._subscribe()
                    logger.info("redis broadcast listener resubscribed to %s",
                                self.channel)
                async for message in self._pubsub.listen():
                    delay = self.reconnect_delay
                    self._relay_message(message)
                logger.warning("redis broadcast subscription ended")
            except RedisError as e:
                logger.warning("redis broadcast listener lost its "
                               "connection: %s", e)
            await self._close_pubsub()
            logger.info("resubscribing in %.1fs", delay)
            await asyncio.sleep(delay)
            delay = min(delay * 2, MAX_RECONNECT_DELAY)

    def _relay_message(self, message: Dict[str, Any]) -> None:
        if message.get("type") != "message":
            return
        try:
            decoded = orjson.loads(message["data"])
        except orjson.JSONDecodeError:
            logger.warning("ignoring undecodable broadcast message")
            return
        self.deliver(decoded)
