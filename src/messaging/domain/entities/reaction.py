"""Reaction Entity"""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from src.messaging.domain.exceptions import InvalidMessageContentError
from src.messaging.domain.value_objects.reactor import Reactor
from src.shared.domain.base_entity import BaseEntity, utc_now


class Reaction(BaseEntity):
    """At most one per (message, reactor); a new emoji replaces the old one."""

    def __init__(
        self,
        message_id: int,
        reactor: Reactor,
        emoji: str,
        reacted_at: Optional[datetime] = None,
        id: Optional[int] = None,
        created_at: Optional[datetime] = None,
        updated_at: Optional[datetime] = None,
    ) -> None:
        super().__init__(id, created_at, updated_at)
        if not emoji:
            raise InvalidMessageContentError("Reaction emoji cannot be empty")
        self.message_id = message_id
        self.reactor = reactor
        self.emoji = emoji
        self.reacted_at = reacted_at or utc_now()

    def replace(self, emoji: str, at: datetime) -> None:
        if not emoji:
            raise InvalidMessageContentError("Reaction emoji cannot be empty")
        self.emoji = emoji
        self.reacted_at = at
        self.mark_updated(at)
