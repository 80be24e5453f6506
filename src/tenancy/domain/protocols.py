"""Ports consumed by the tenancy context."""
from __future__ import annotations

from typing import Optional, Protocol

from src.tenancy.domain.entities.team import Team


class TeamRepository(Protocol):
    """Durable storage for teams."""

    async def add(self, team: Team) -> Team:
        """Persist a new team and assign its id."""
        ...

    async def get(self, team_id: int) -> Optional[Team]:
        ...

    async def get_by_phone_number_id(self, phone_number_id: str) -> Optional[Team]:
        ...

    async def save(self, team: Team) -> None:
        ...

    async def list_all(self) -> list[Team]:
        ...


class RateLimitCounter(Protocol):
    """Protocol for rate limit counter storage."""

    async def get_count(self, key: str) -> int:
        """Get current count for key (0 when absent or expired)."""
        ...

    async def increment(self, key: str, amount: int, ttl_seconds: int) -> int:
        """Increment counter, (re)arm its expiry, and return the new value."""
        ...
