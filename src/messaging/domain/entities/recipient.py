"""
Message Recipient Entity
Delivery state of one message towards one concrete destination.
"""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from src.messaging.domain.exceptions import InvalidStatusTransitionError
from src.messaging.domain.value_objects.destination import Destination
from src.messaging.domain.value_objects.message_status import MessageStatus
from src.shared.domain.base_entity import BaseEntity


class MessageRecipient(BaseEntity):
    """
    Per-destination status, moving forward only.

    Acknowledgements that arrive out of order backfill the skipped
    timestamps with their own timestamp instead of being rejected.
    """

    def __init__(
        self,
        message_id: int,
        destination: Destination,
        status: MessageStatus = MessageStatus.PENDING,
        provider_message_id: Optional[str] = None,
        sent_at: Optional[datetime] = None,
        delivered_at: Optional[datetime] = None,
        read_at: Optional[datetime] = None,
        seen_at: Optional[datetime] = None,
        error_code: Optional[str] = None,
        error_message: Optional[str] = None,
        id: Optional[int] = None,
        created_at: Optional[datetime] = None,
        updated_at: Optional[datetime] = None,
    ) -> None:
        super().__init__(id, created_at, updated_at)
        self.message_id = message_id
        self.destination = destination
        self.status = MessageStatus(status)
        self.provider_message_id = provider_message_id
        self.sent_at = sent_at
        self.delivered_at = delivered_at
        self.read_at = read_at
        self.seen_at = seen_at
        self.error_code = error_code
        self.error_message = error_message

    @property
    def needs_attempt(self) -> bool:
        return self.status in (MessageStatus.PENDING, MessageStatus.FAILED)

    def _move(self, target: MessageStatus, at: Optional[datetime]) -> None:
        if not self.status.can_transition_to(target):
            raise InvalidStatusTransitionError(
                f"Recipient {self.id}: {self.status.value} → {target.value} not allowed"
            )
        self.status = target
        self.mark_updated(at)

    def mark_pending(self, at: Optional[datetime] = None) -> None:
        if self.status is not MessageStatus.PENDING:
            self._move(MessageStatus.PENDING, at)

    def mark_sent(self, provider_message_id: Optional[str], at: datetime) -> bool:
        """Provider accepted the message (synchronous response or "sent" webhook)."""
        if provider_message_id and not self.provider_message_id:
            self.provider_message_id = provider_message_id
        if self.status not in (MessageStatus.PENDING, MessageStatus.FAILED):
            return False
        self._move(MessageStatus.SENT, at)
        self.sent_at = self.sent_at or at
        self.error_code = None
        self.error_message = None
        return True

    def acknowledge_delivered(self, at: datetime) -> bool:
        if self.status in (MessageStatus.DELIVERED, MessageStatus.READ, MessageStatus.FAILED_EXHAUSTED):
            return False
        self._move(MessageStatus.DELIVERED, at)
        self.sent_at = self.sent_at or at
        self.delivered_at = at
        return True

    def acknowledge_read(self, at: datetime) -> bool:
        if self.status in (MessageStatus.READ, MessageStatus.FAILED_EXHAUSTED):
            return False
        self._move(MessageStatus.READ, at)
        self.sent_at = self.sent_at or at
        self.delivered_at = self.delivered_at or at
        self.read_at = at
        self.seen_at = self.seen_at or at
        return True

    def mark_failed(self, error_code: Optional[str], error_message: Optional[str], at: Optional[datetime] = None) -> None:
        self._move(MessageStatus.FAILED, at)
        self.error_code = error_code
        self.error_message = error_message

    def mark_exhausted(self, error_code: Optional[str], error_message: Optional[str], at: Optional[datetime] = None) -> bool:
        if self.status is MessageStatus.FAILED_EXHAUSTED:
            return False
        self._move(MessageStatus.FAILED_EXHAUSTED, at)
        self.error_code = error_code
        self.error_message = error_message
        return True

    def __repr__(self) -> str:
        return f"<MessageRecipient(id={self.id}, message={self.message_id}, to={self.destination}, status={self.status.value})>"
