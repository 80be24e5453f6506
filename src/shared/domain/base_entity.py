"""
Base Entity Contract for Domain Layer
Provides repository-assigned identity, equality, and audit fields
"""
from __future__ import annotations

from abc import ABC
from datetime import datetime, timezone


def utc_now() -> datetime:
    """Timezone-aware current UTC time; the default clock for services."""
    return datetime.now(timezone.utc)


class BaseEntity(ABC):
    """
    Abstract base class for all domain entities.

    Entities are defined by their identity (id), not their attributes.
    Ids are integer sequence values assigned by the repository on first
    save, so ascending id order is creation order.

    Attributes:
        id: Identifier (None until persisted)
        created_at: Timestamp of creation
        updated_at: Timestamp of last update
    """

    def __init__(
        self,
        id: int | None = None,
        created_at: datetime | None = None,
        updated_at: datetime | None = None,
    ) -> None:
        self.id: int | None = id
        self.created_at: datetime = created_at or utc_now()
        self.updated_at: datetime = updated_at or self.created_at

    def __eq__(self, other: object) -> bool:
        """Entities are equal if they have the same id and type."""
        if not isinstance(other, self.__class__):
            return False
        if self.id is None or other.id is None:
            return self is other
        return self.id == other.id

    def __hash__(self) -> int:
        return hash((self.__class__.__name__, self.id)) if self.id is not None else id(self)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(id={self.id})"

    def mark_updated(self, at: datetime | None = None) -> None:
        """Update the updated_at timestamp."""
        self.updated_at = at or utc_now()
