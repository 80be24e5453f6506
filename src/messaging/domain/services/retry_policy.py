"""Retry backoff policy for failed deliveries."""

from dataclasses import dataclass
from datetime import datetime, timedelta


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """
    Exponential backoff with a cap.

    `retry_count` is incremented before the delay is computed, so with
    base=1s the first three failures wait 2s, 4s, 8s. A failure that takes
    retry_count past `max_attempts` is terminal.
    """
    max_attempts: int = 3
    base_seconds: float = 30.0
    max_seconds: float = 3600.0

    def __post_init__(self) -> None:
        if self.max_attempts < 0:
            raise ValueError("max_attempts cannot be negative")
        if self.base_seconds <= 0 or self.max_seconds <= 0:
            raise ValueError("Backoff intervals must be positive")

    def delay_for(self, retry_count: int) -> timedelta:
        return timedelta(seconds=min(self.base_seconds * (2 ** retry_count), self.max_seconds))

    def next_retry_at(self, retry_count: int, now: datetime) -> datetime:
        return now + self.delay_for(retry_count)

    def is_exhausted(self, retry_count: int) -> bool:
        return retry_count > self.max_attempts
