"""Reactor Value Object: who placed a reaction (staff user XOR driver)."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True, slots=True)
class Reactor:
    user_id: Optional[str] = None
    driver_id: Optional[int] = None

    def __post_init__(self) -> None:
        if (self.user_id is None) == (self.driver_id is None):
            raise ValueError("Reactor must be exactly one of staff user or driver")

    @classmethod
    def staff(cls, user_id: str) -> Reactor:
        return cls(user_id=user_id)

    @classmethod
    def driver(cls, driver_id: int) -> Reactor:
        return cls(driver_id=driver_id)

    @property
    def is_staff(self) -> bool:
        return self.user_id is not None

    @property
    def key(self) -> str:
        return f"user:{self.user_id}" if self.is_staff else f"driver:{self.driver_id}"
