"""Domain events for the messaging module.

Published on the EventBus after the state change is stored; subscribers
(live-update push, operator alerts) are best-effort.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from src.messaging.domain.value_objects.message_status import MessageDirection, MessageStatus
from src.shared.domain.domain_event import DomainEvent


@dataclass(frozen=True)
class MessageCreated(DomainEvent):
    """Raised when an inbound or outbound message is stored."""
    message_id: int
    conversation_id: int
    direction: MessageDirection
    recipient_count: int = 0


@dataclass(frozen=True)
class MessageStatusChanged(DomainEvent):
    """Raised when a message's aggregate status moves."""
    message_id: int
    conversation_id: int
    old_status: MessageStatus
    new_status: MessageStatus


@dataclass(frozen=True)
class MessageDeliveryExhausted(DomainEvent):
    """Terminal failure, reported to the operator surface."""
    message_id: int
    conversation_id: int
    reason: str
    error_code: Optional[str] = None
    retry_count: int = 0


@dataclass(frozen=True)
class ReactionChanged(DomainEvent):
    """emoji is None when the reaction was removed."""
    message_id: int
    conversation_id: int
    reactor: str
    emoji: Optional[str]


@dataclass(frozen=True)
class MessageUpdated(DomainEvent):
    """Pin, star, soft delete or forward count change."""
    message_id: int
    conversation_id: int
    change: str


@dataclass(frozen=True)
class ConversationUpdated(DomainEvent):
    """Archive, unarchive, assignment or window change."""
    conversation_id: int
    change: str
