# src/messaging/domain/value_objects/message_status.py
"""
Message Status and Type Enums
"""
from __future__ import annotations

from enum import Enum
from typing import Iterable


class MessageDirection(str, Enum):
    """Message flow direction."""
    INBOUND = "inbound"    # from the driver / group participant
    OUTBOUND = "outbound"  # from staff


class ConversationKind(str, Enum):
    INDIVIDUAL = "individual"
    GROUP = "group"


class MessageType(str, Enum):
    """WhatsApp message types."""
    TEXT = "text"
    IMAGE = "image"
    VIDEO = "video"
    AUDIO = "audio"
    DOCUMENT = "document"
    LOCATION = "location"
    CONTACTS = "contacts"
    TEMPLATE = "template"  # Pre-approved template

    @property
    def is_media(self) -> bool:
        return self in _MEDIA_TYPES


_MEDIA_TYPES = frozenset({MessageType.IMAGE, MessageType.VIDEO, MessageType.AUDIO, MessageType.DOCUMENT})


class MessageStatus(str, Enum):
    """
    Delivery status, used both per recipient and as the message aggregate.

    Flow: pending → sent → delivered → read
    pending|sent → failed (retryable) → pending on re-attempt
    pending|sent|failed → failed_exhausted (terminal, never retried)
    """
    PENDING = "pending"
    SENT = "sent"
    DELIVERED = "delivered"
    READ = "read"
    FAILED = "failed"
    FAILED_EXHAUSTED = "failed_exhausted"

    @property
    def rank(self) -> int:
        """Progress order used for the minimum-across-recipients aggregate."""
        return _RANK[self]

    @property
    def is_terminal(self) -> bool:
        return self in (MessageStatus.READ, MessageStatus.FAILED_EXHAUSTED)

    @property
    def is_failure(self) -> bool:
        return self in (MessageStatus.FAILED, MessageStatus.FAILED_EXHAUSTED)

    @property
    def is_accepted(self) -> bool:
        """Provider has taken the message (sent or further)."""
        return self in (MessageStatus.SENT, MessageStatus.DELIVERED, MessageStatus.READ)

    def can_transition_to(self, target: MessageStatus) -> bool:
        return target in _TRANSITIONS[self]


_RANK = {
    # the message stays Failed (due for retry) while any recipient is Failed
    MessageStatus.FAILED: 0,
    MessageStatus.FAILED_EXHAUSTED: 1,
    MessageStatus.PENDING: 2,
    MessageStatus.SENT: 3,
    MessageStatus.DELIVERED: 4,
    MessageStatus.READ: 5,
}

_TRANSITIONS: dict[MessageStatus, frozenset[MessageStatus]] = {
    MessageStatus.PENDING: frozenset({
        MessageStatus.SENT, MessageStatus.DELIVERED, MessageStatus.READ,
        MessageStatus.FAILED, MessageStatus.FAILED_EXHAUSTED,
    }),
    MessageStatus.SENT: frozenset({
        MessageStatus.DELIVERED, MessageStatus.READ,
        MessageStatus.FAILED, MessageStatus.FAILED_EXHAUSTED,
    }),
    MessageStatus.DELIVERED: frozenset({MessageStatus.READ}),
    MessageStatus.READ: frozenset(),
    # late acknowledgements prove a failed attempt actually landed
    MessageStatus.FAILED: frozenset({
        MessageStatus.PENDING, MessageStatus.SENT, MessageStatus.DELIVERED, MessageStatus.READ,
        MessageStatus.FAILED_EXHAUSTED,
    }),
    MessageStatus.FAILED_EXHAUSTED: frozenset(),
}


def aggregate_status(statuses: Iterable[MessageStatus]) -> MessageStatus:
    """
    Message-level status: the least-progressed recipient status.

    A message without recipients (empty group fan-out) counts as Sent.
    """
    statuses = list(statuses)
    if not statuses:
        return MessageStatus.SENT
    return min(statuses, key=lambda s: s.rank)
