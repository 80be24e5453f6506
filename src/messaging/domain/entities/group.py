"""
Group and GroupParticipant Entities
"""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from src.messaging.domain.exceptions import InvalidPhoneNumberError
from src.shared.domain.base_entity import BaseEntity, utc_now


class Group(BaseEntity):
    def __init__(
        self,
        team_id: Optional[int],
        name: str,
        whatsapp_group_id: Optional[str] = None,
        is_active: bool = True,
        id: Optional[int] = None,
        created_at: Optional[datetime] = None,
        updated_at: Optional[datetime] = None,
    ) -> None:
        super().__init__(id, created_at, updated_at)
        self.team_id = team_id
        self.name = name
        self.whatsapp_group_id = whatsapp_group_id
        self.is_active = is_active


class GroupParticipant(BaseEntity):
    """
    Member of a group: a registered driver, or a raw phone + name.

    Removing a participant only flips `is_active`; recipient rows that
    already reference it are left alone. Join order is id order.
    """

    def __init__(
        self,
        group_id: int,
        driver_id: Optional[int] = None,
        phone_number: Optional[str] = None,
        participant_name: Optional[str] = None,
        role: str = "member",
        is_active: bool = True,
        joined_at: Optional[datetime] = None,
        left_at: Optional[datetime] = None,
        id: Optional[int] = None,
        created_at: Optional[datetime] = None,
        updated_at: Optional[datetime] = None,
    ) -> None:
        super().__init__(id, created_at, updated_at)
        if (driver_id is None) == (not phone_number):
            raise InvalidPhoneNumberError("Participant needs a driver or a raw phone number, not both")
        self.group_id = group_id
        self.driver_id = driver_id
        self.phone_number = phone_number
        self.participant_name = participant_name
        self.role = role
        self.is_active = is_active
        self.joined_at = joined_at or self.created_at
        self.left_at = left_at

    def remove(self, at: Optional[datetime] = None) -> None:
        at = at or utc_now()
        self.is_active = False
        self.left_at = at
        self.mark_updated(at)

    def __repr__(self) -> str:
        return f"<GroupParticipant(id={self.id}, group={self.group_id}, active={self.is_active})>"
