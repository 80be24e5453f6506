"""
Destination Value Object
A concrete delivery target: a driver, or a group participant.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class DestinationKind(str, Enum):
    DRIVER = "driver"
    PARTICIPANT = "participant"


@dataclass(frozen=True, slots=True)
class Destination:
    """
    Exactly one of driver_id / participant_id is set.

    `phone` is the normalized MSISDN the provider client addresses; a
    participant may be a registered driver (both ids set on the participant
    row) or a raw phone + name.
    """
    kind: DestinationKind
    phone: str
    driver_id: Optional[int] = None
    participant_id: Optional[int] = None
    display_name: Optional[str] = None

    def __post_init__(self) -> None:
        if self.kind is DestinationKind.DRIVER and (self.driver_id is None or self.participant_id is not None):
            raise ValueError("Driver destination needs driver_id only")
        if self.kind is DestinationKind.PARTICIPANT and self.participant_id is None:
            raise ValueError("Participant destination needs participant_id")
        if not self.phone:
            raise ValueError("Destination phone is required")

    @classmethod
    def driver(cls, driver_id: int, phone: str, display_name: Optional[str] = None) -> Destination:
        return cls(DestinationKind.DRIVER, phone, driver_id=driver_id, display_name=display_name)

    @classmethod
    def participant(
        cls,
        participant_id: int,
        phone: str,
        display_name: Optional[str] = None,
        driver_id: Optional[int] = None,
    ) -> Destination:
        # participant rows may also reference a driver; identity is the participant
        return cls(
            DestinationKind.PARTICIPANT,
            phone,
            driver_id=driver_id,
            participant_id=participant_id,
            display_name=display_name,
        )

    def __str__(self) -> str:
        ref = self.driver_id if self.kind is DestinationKind.DRIVER else self.participant_id
        return f"{self.kind.value}:{ref}"
