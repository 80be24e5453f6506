"""Outbound payload value object."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from src.messaging.domain.value_objects.message_status import MessageType


@dataclass(frozen=True, slots=True)
class OutboundPayload:
    """Provider-neutral content of one send attempt.

    Built from a Message by `from_message`; the provider client turns it into
    its own wire format. `extra` carries type-specific fields (media link,
    file name, location coordinates, contact cards).

    Examples:
        >>> OutboundPayload(MessageType.TEXT, text="On my way").text
        'On my way'
    """

    message_type: MessageType
    text: str = ""
    template_name: Optional[str] = None
    template_language: str = "en"
    template_parameters: Dict[str, str] = field(default_factory=dict)
    reply_to_provider_message_id: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_message(cls, message: Any, reply_to_provider_message_id: Optional[str] = None) -> OutboundPayload:
        return cls(
            message_type=message.message_type,
            text=message.content,
            template_name=message.template_name,
            template_language=message.template_language,
            template_parameters=dict(message.template_parameters),
            reply_to_provider_message_id=reply_to_provider_message_id,
            extra=dict(message.payload),
        )
