"""Send message command."""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from src.messaging.domain.value_objects.message_status import MessageType


@dataclass
class SendMessageCommand:
    """Staff request to send into a conversation."""
    conversation_id: int
    sender_user_id: Optional[str]
    content: str = ""
    message_type: MessageType = MessageType.TEXT
    sender_name: Optional[str] = None
    template_name: Optional[str] = None
    template_language: str = "en"
    template_parameters: Dict[str, str] = field(default_factory=dict)
    payload: Dict[str, Any] = field(default_factory=dict)
    reply_to_message_id: Optional[int] = None
    forwarded_from_message_id: Optional[int] = None

    @property
    def is_template(self) -> bool:
        return self.message_type is MessageType.TEMPLATE
