# src/messaging/domain/services/session_window_policy.py
"""24-hour customer-service window policy."""

from datetime import datetime, timedelta
from typing import Optional

from src.messaging.domain.exceptions import WindowClosedError
from src.messaging.domain.value_objects.window_status import Closed, NoWindow, Open, WindowStatus

DEFAULT_WINDOW = timedelta(hours=24)


class SessionWindowPolicy:
    """
    Domain service deciding whether free-form content may be sent.

    Stateless: the window is recomputed from `last_inbound_message_at` on
    every call and never stored.

    Example:
        policy = SessionWindowPolicy()
        status = policy.evaluate(conversation.last_inbound_message_at, now)
        policy.ensure_can_send(status, is_template=False)
    """

    def __init__(self, window: timedelta = DEFAULT_WINDOW) -> None:
        if window <= timedelta(0):
            raise ValueError("Session window must be positive")
        self._window = window

    @property
    def window(self) -> timedelta:
        return self._window

    def evaluate(self, last_inbound_message_at: Optional[datetime], now: datetime) -> WindowStatus:
        """
        Args:
            last_inbound_message_at: Last counterpart message, or None
            now: Current time

        Returns:
            NoWindow, Open(remaining) while elapsed < window, else Closed
        """
        if last_inbound_message_at is None:
            return NoWindow()
        expires_at = last_inbound_message_at + self._window
        elapsed = now - last_inbound_message_at
        if elapsed < self._window:
            return Open(remaining=self._window - elapsed, expires_at=expires_at)
        return Closed(expires_at=expires_at)

    @staticmethod
    def ensure_can_send(status: WindowStatus, is_template: bool) -> None:
        """Templates always pass; free-form needs an open window."""
        if is_template or status.is_open:
            return
        raise WindowClosedError(status.message, details={"window": status.state})
