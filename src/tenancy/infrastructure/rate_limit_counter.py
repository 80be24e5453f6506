"""
Rate limit counters: process-local and Redis-backed.
"""
from __future__ import annotations

import time
from typing import Callable

from redis.asyncio import Redis

from src.shared.infrastructure.observability.logger import get_logger

logger = get_logger(__name__)


class InMemoryRateLimitCounter:
    """Counter store for single-process deployments and tests."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._values: dict[str, tuple[int, float]] = {}

    async def get_count(self, key: str) -> int:
        value = self._values.get(key)
        if value is None:
            return 0
        count, expires_at = value
        if self._clock() >= expires_at:
            del self._values[key]
            return 0
        return count

    async def increment(self, key: str, amount: int, ttl_seconds: int) -> int:
        count = await self.get_count(key) + amount
        self._values[key] = (count, self._clock() + ttl_seconds)
        return count


class RedisRateLimitCounter:
    """
    Counter store shared by all workers through Redis.

    INCRBY + EXPIRE run in one MULTI/EXEC pipeline so the key never lives
    without an expiry.
    """

    def __init__(self, redis: Redis) -> None:
        self.redis = redis

    async def get_count(self, key: str) -> int:
        raw = await self.redis.get(key)
        return int(raw) if raw is not None else 0

    async def increment(self, key: str, amount: int, ttl_seconds: int) -> int:
        async with self.redis.pipeline(transaction=True) as pipe:
            pipe.incrby(key, amount)
            pipe.expire(key, ttl_seconds)
            count, _ = await pipe.execute()
        logger.debug("rate_limit_incremented", key=key, count=count)
        return int(count)
