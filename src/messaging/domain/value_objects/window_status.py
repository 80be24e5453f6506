"""
Session Window Status
Result of evaluating a conversation's 24-hour customer-service window.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import ClassVar, Optional, Union


@dataclass(frozen=True, slots=True)
class NoWindow:
    """No inbound message has ever been received."""
    state: ClassVar[str] = "no_window"
    is_open: ClassVar[bool] = False

    @property
    def expires_at(self) -> Optional[datetime]:
        return None

    @property
    def message(self) -> str:
        return "No incoming message received. Use template messages to start conversation."


@dataclass(frozen=True, slots=True)
class Open:
    """
    Window still open.

    `remaining` keeps full precision; `hours`/`minutes` are floored for
    display, so the last sub-minute reads "0h 0m".
    """
    remaining: timedelta
    expires_at: datetime
    state: ClassVar[str] = "open"
    is_open: ClassVar[bool] = True

    @property
    def seconds_remaining(self) -> int:
        return int(self.remaining.total_seconds())

    @property
    def hours(self) -> int:
        return self.seconds_remaining // 3600

    @property
    def minutes(self) -> int:
        return (self.seconds_remaining % 3600) // 60

    @property
    def message(self) -> str:
        return f"Free messaging available for {self.hours}h {self.minutes}m"


@dataclass(frozen=True, slots=True)
class Closed:
    expires_at: datetime
    state: ClassVar[str] = "closed"
    is_open: ClassVar[bool] = False

    @property
    def message(self) -> str:
        return "24-hour window expired. Template messages only."


WindowStatus = Union[NoWindow, Open, Closed]
