"""Redis connection owner."""
import logging
from typing import Optional

import redis.asyncio as redis

logger = logging.getLogger(__name__)


class RedisBus:
    """Owns the Redis client shared by the job queue and the rate limiter."""

    def __init__(self, url: str, client: Optional[redis.Redis] = None):
        self.url = url
        self._redis: Optional[redis.Redis] = client

    @property
    def client(self) -> redis.Redis:
        if self._redis is None:
            raise RuntimeError("RedisBus is not connected")
        return self._redis

    async def connect(self) -> None:
        """Connect and verify the server answers; raises if Redis is unreachable."""
        if self._redis is None:
            self._redis = redis.from_url(self.url, decode_responses=True)
        await self._redis.ping()
        logger.info("Connected to Redis at %s", self.url.rsplit("@", 1)[-1])

    async def disconnect(self) -> None:
        """Disconnect from Redis."""
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None

    async def increment_window(self, key: str, ttl_ms: int) -> tuple[int, int]:
        """Increment a fixed-window counter; returns (count, remaining ttl ms)."""
        async with self.client.pipeline(transaction=True) as pipe:
            pipe.incr(key)
            pipe.pttl(key)
            count, ttl = await pipe.execute()
        if ttl is None or ttl < 0:
            await self.client.pexpire(key, ttl_ms)
            ttl = ttl_ms
        return int(count), int(ttl)
