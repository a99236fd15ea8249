from typing import Optional

import redis.asyncio as redis

from ._memory import BroadcastChannel
from ._redis import RedisBroadcastChannel


# Factory keeps server.py simple and backend-agnostic:
def new_channel(backend: str = "memory", *,
                r: Optional[redis.Redis] = None,
                queue_size: int = 100) -> BroadcastChannel:
    if backend == "redis":
        if r is None:
            raise RuntimeError(
                "BroadcastChannel(redis) requires r=redis.Redis"
            )
        return RedisBroadcastChannel(r, queue_size=queue_size)
    return BroadcastChannel(queue_size=queue_size)


__all__ = ["BroadcastChannel", "RedisBroadcastChannel", "new_channel"]
