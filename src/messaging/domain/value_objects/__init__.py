# src/messaging/domain/value_objects/__init__.py
"""
Messaging Domain Value Objects

Immutable value objects for delivery status, session windows and addressing.
"""
from .destination import Destination, DestinationKind
from .message_status import ConversationKind, MessageDirection, MessageStatus, MessageType, aggregate_status
from .phone_number import extract_phone_from_wa_id, normalize_phone
from .reactor import Reactor
from .webhook_signature import WebhookSignature
from .window_status import Closed, NoWindow, Open, WindowStatus

__all__ = [
    "Closed",
    "ConversationKind",
    "Destination",
    "DestinationKind",
    "MessageDirection",
    "MessageStatus",
    "MessageType",
    "NoWindow",
    "Open",
    "Reactor",
    "WebhookSignature",
    "WindowStatus",
    "aggregate_status",
    "extract_phone_from_wa_id",
    "normalize_phone",
]
