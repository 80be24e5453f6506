# src/messaging/domain/events/__init__.py
"""
Messaging Domain Events
"""
from .message_events import (
    ConversationUpdated,
    MessageCreated,
    MessageDeliveryExhausted,
    MessageStatusChanged,
    MessageUpdated,
    ReactionChanged,
)

__all__ = [
    "ConversationUpdated",
    "MessageCreated",
    "MessageDeliveryExhausted",
    "MessageStatusChanged",
    "MessageUpdated",
    "ReactionChanged",
]
