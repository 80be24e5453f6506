"""
Domain Event Base Class
All domain events inherit from this
"""
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from src.shared.domain.base_entity import utc_now


@dataclass(frozen=True)
class DomainEvent:
    """
    Base class for all domain events.

    Domain events represent something that happened in the domain.
    They are immutable and carry all necessary data.

    Attributes:
        event_id: Unique identifier for this event occurrence
        occurred_at: Timestamp when event occurred
        team_id: Tenant the event belongs to (None for legacy records)
    """

    event_id: UUID = field(default_factory=uuid4, kw_only=True)
    occurred_at: datetime = field(default_factory=utc_now, kw_only=True)
    team_id: int | None = field(default=None, kw_only=True)

    @property
    def event_type(self) -> str:
        return self.__class__.__name__

    def to_dict(self) -> dict[str, Any]:
        """Convert event to a JSON-friendly dictionary."""
        data = asdict(self)
        data["event_id"] = str(self.event_id)
        data["occurred_at"] = self.occurred_at.isoformat()
        data["event_type"] = self.event_type
        return {k: _plain(v) for k, v in data.items()}


def _plain(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    return value
