"""In-process team store."""
from __future__ import annotations

import itertools
from typing import Optional

from src.tenancy.domain.entities.team import Team


class InMemoryTeamRepository:
    """TeamRepository kept in process memory; ids come from a sequence."""

    def __init__(self) -> None:
        self._teams: dict[int, Team] = {}
        self._seq = itertools.count(1)

    async def add(self, team: Team) -> Team:
        team.id = next(self._seq)
        self._teams[team.id] = team
        return team

    async def get(self, team_id: int) -> Optional[Team]:
        return self._teams.get(team_id)

    async def get_by_phone_number_id(self, phone_number_id: str) -> Optional[Team]:
        return next((t for t in self._teams.values() if t.phone_number_id == phone_number_id), None)

    async def save(self, team: Team) -> None:
        self._teams[team.id] = team

    async def list_all(self) -> list[Team]:
        return sorted(self._teams.values(), key=lambda t: t.id)
