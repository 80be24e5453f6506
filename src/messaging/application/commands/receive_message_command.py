"""Inbound message command."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

from src.messaging.domain.value_objects.message_status import MessageType


@dataclass
class ReceiveMessageCommand:
    """
    One message from a driver or group participant, as delivered by the
    provider webhook.

    `from_phone` may be a bare MSISDN or a JID ("...@c.us"). For group
    messages `whatsapp_group_id` is set and `participant_phone` names the
    member who wrote it (falls back to `from_phone`).
    """
    from_phone: str
    timestamp: datetime
    content: str = ""
    message_type: MessageType = MessageType.TEXT
    provider_message_id: Optional[str] = None
    sender_name: Optional[str] = None
    whatsapp_group_id: Optional[str] = None
    participant_phone: Optional[str] = None
    reply_to_provider_message_id: Optional[str] = None
    payload: Dict[str, Any] = field(default_factory=dict)
