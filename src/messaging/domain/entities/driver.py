"""
Driver Entity
"""
from datetime import datetime
from typing import Optional

from src.messaging.domain.exceptions import InvalidPhoneNumberError
from src.shared.domain.base_entity import BaseEntity


class Driver(BaseEntity):
    """
    A driver reachable over WhatsApp.

    `phone_number` is stored normalized (see normalize_phone) so inbound
    senders can be matched by equality within a team.
    """

    def __init__(
        self,
        team_id: Optional[int],
        name: str,
        phone_number: str,
        is_active: bool = True,
        id: Optional[int] = None,
        created_at: Optional[datetime] = None,
        updated_at: Optional[datetime] = None,
    ):
        super().__init__(id, created_at, updated_at)
        if not phone_number:
            raise InvalidPhoneNumberError("Driver phone number is required")
        self.team_id = team_id
        self.name = name
        self.phone_number = phone_number
        self.is_active = is_active

    def __repr__(self) -> str:
        return f"<Driver(id={self.id}, team={self.team_id})>"
