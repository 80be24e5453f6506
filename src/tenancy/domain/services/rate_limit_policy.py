"""Rate limiting policy enforcement for outbound sends."""

import asyncio
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime

from src.tenancy.domain.entities.team import TenantContext
from src.tenancy.domain.protocols import RateLimitCounter

MINUTE = 60
DAY = 86_400


@dataclass(frozen=True, slots=True)
class RateLimitResult:
    """Result of rate limit check."""
    allowed: bool
    window: str
    current_count: int
    limit: int
    retry_after_seconds: int | None = None


class RateLimitPolicy:
    """
    Domain service for per-team rate limiting.

    Enforces the team's messages/minute and messages/day limits using fixed
    windows aligned to the epoch. A send consumes one unit per concrete
    recipient. Both windows are checked before either is consumed, so a
    rejected send leaves the counters untouched.

    Example:
        policy = RateLimitPolicy(counter)
        result = await policy.check_and_consume(tenant, cost=3, now=now)
        if not result.allowed:
            raise RateLimitExceededError(..., retry_after_seconds=result.retry_after_seconds)
    """

    def __init__(self, counter: RateLimitCounter) -> None:
        self._counter = counter
        self._locks: defaultdict[int, asyncio.Lock] = defaultdict(asyncio.Lock)

    async def check_and_consume(self, tenant: TenantContext, cost: int, now: datetime) -> RateLimitResult:
        """
        Check both windows for the team and consume `cost` units if allowed.

        Args:
            tenant: Team snapshot carrying its limits
            cost: Units requested (recipients of the send)
            now: Current time

        Returns:
            RateLimitResult for the most constraining window
        """
        cost = max(cost, 1)
        limits = tenant.rate_limits
        windows = (
            ("minute", MINUTE, limits.messages_per_minute),
            ("day", DAY, limits.messages_per_day),
        )
        epoch = int(now.timestamp())

        async with self._locks[tenant.team_id]:
            counts: list[tuple[str, str, int, int, int]] = []
            for name, size, limit in windows:
                bucket = epoch // size
                key = f"rate_limit:team:{tenant.team_id}:{name}:{bucket}"
                current = await self._counter.get_count(key)
                if current + cost > limit:
                    retry_after = (bucket + 1) * size - epoch
                    return RateLimitResult(
                        allowed=False,
                        window=name,
                        current_count=current,
                        limit=limit,
                        retry_after_seconds=retry_after,
                    )
                counts.append((name, key, size, limit, current))

            consumed = [
                await self._counter.increment(key, cost, ttl_seconds=size)
                for _, key, size, _, _ in counts
            ]
            # report against the minute window, the one a burst hits first
            name, _, _, limit, _ = counts[0]
            return RateLimitResult(allowed=True, window=name, current_count=consumed[0], limit=limit)
