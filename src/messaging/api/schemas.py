from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from src.messaging.application.commands import SendMessageCommand
from src.messaging.application.services.message_interactions import ForwardOutcome
from src.messaging.domain.entities.reaction import Reaction
from src.messaging.domain.value_objects.message_status import (
    ConversationKind,
    MessageDirection,
    MessageStatus,
    MessageType,
)
from src.messaging.domain.value_objects.window_status import WindowStatus


# ─────────────────────────────── Requests ───────────────────────────────

class SendMessageRequest(BaseModel):
    """Staff send into a conversation."""
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    sender_user_id: Optional[str] = Field(None, max_length=64)
    sender_name: Optional[str] = Field(None, max_length=128)
    content: str = Field("", max_length=4096, description="Text body or media caption")
    message_type: MessageType = MessageType.TEXT
    template_name: Optional[str] = Field(None, max_length=512)
    template_language: str = Field(default="en", max_length=10)
    template_parameters: Dict[str, str] = Field(default_factory=dict)
    payload: Dict[str, Any] = Field(default_factory=dict, description="Media link/id, location, contacts")
    reply_to_message_id: Optional[int] = None

    @model_validator(mode="after")
    def validate_content_or_template(self):
        if self.message_type == MessageType.TEMPLATE and not self.template_name:
            raise ValueError("template_name is required for template messages")
        if self.message_type == MessageType.TEXT and not self.content:
            raise ValueError("content is required for text messages")
        return self

    def to_command(self, conversation_id: int) -> SendMessageCommand:
        return SendMessageCommand(
            conversation_id=conversation_id,
            sender_user_id=self.sender_user_id,
            sender_name=self.sender_name,
            content=self.content,
            message_type=self.message_type,
            template_name=self.template_name,
            template_language=self.template_language,
            template_parameters=dict(self.template_parameters),
            payload=dict(self.payload),
            reply_to_message_id=self.reply_to_message_id,
        )


class ReactionRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    user_id: str = Field(..., min_length=1, max_length=64)
    emoji: str = Field(..., min_length=1, max_length=16)


class PinRequest(BaseModel):
    is_pinned: bool


class StarRequest(BaseModel):
    is_starred: bool


class ActorRequest(BaseModel):
    """Who performed an archive/assign/delete/abandon."""
    user_id: Optional[str] = Field(None, max_length=64)


class ForwardRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    target_conversation_ids: List[int] = Field(..., min_length=1, max_length=50)
    sender_user_id: Optional[str] = Field(None, max_length=64)
    sender_name: Optional[str] = Field(None, max_length=128)
    override_content: Optional[str] = Field(None, max_length=4096)


# ─────────────────────────────── Responses ──────────────────────────────

class ReplySnapshotResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    message_id: int
    content: str
    sender_name: Optional[str] = None
    message_type: MessageType
    was_deleted: bool = False


class MessageResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    team_id: Optional[int]
    conversation_id: int
    direction: MessageDirection
    message_type: MessageType
    content: str
    status: MessageStatus
    sender_user_id: Optional[str] = None
    sender_driver_id: Optional[int] = None
    sender_participant_id: Optional[int] = None
    sender_name: Optional[str] = None
    provider_message_id: Optional[str] = None
    retry_count: int = 0
    next_retry_at: Optional[datetime] = None
    last_error_code: Optional[str] = None
    last_error_message: Optional[str] = None
    template_name: Optional[str] = None
    reply_to_message_id: Optional[int] = None
    reply_snapshot: Optional[ReplySnapshotResponse] = None
    forwarded_from_message_id: Optional[int] = None
    forward_count: int = 0
    is_starred: bool = False
    is_pinned: bool = False
    is_deleted: bool = False
    sent_at: Optional[datetime] = None
    created_at: datetime
    updated_at: Optional[datetime] = None


class ReactionResponse(BaseModel):
    id: int
    message_id: int
    reactor: str
    emoji: str
    reacted_at: datetime

    @classmethod
    def from_entity(cls, reaction: Reaction) -> ReactionResponse:
        return cls(
            id=reaction.id,
            message_id=reaction.message_id,
            reactor=reaction.reactor.key,
            emoji=reaction.emoji,
            reacted_at=reaction.reacted_at,
        )


class ConversationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    team_id: Optional[int]
    kind: ConversationKind
    driver_id: Optional[int] = None
    group_id: Optional[int] = None
    topic: Optional[str] = None
    is_answered: bool
    is_archived: bool
    archived_at: Optional[datetime] = None
    assigned_to_user_id: Optional[str] = None
    last_inbound_message_at: Optional[datetime] = None
    last_message_at: Optional[datetime] = None


class WindowStatusResponse(BaseModel):
    state: Literal["no_window", "open", "closed"]
    is_open: bool
    message: str
    expires_at: Optional[datetime] = None
    seconds_remaining: Optional[int] = None

    @classmethod
    def from_status(cls, status: WindowStatus) -> WindowStatusResponse:
        return cls(
            state=status.state,
            is_open=status.is_open,
            message=status.message,
            expires_at=status.expires_at,
            seconds_remaining=getattr(status, "seconds_remaining", None),
        )


class ForwardResultResponse(BaseModel):
    conversation_id: int
    succeeded: bool
    message_id: Optional[int] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    @classmethod
    def from_outcome(cls, outcome: ForwardOutcome) -> ForwardResultResponse:
        return cls(
            conversation_id=outcome.conversation_id,
            succeeded=outcome.succeeded,
            message_id=outcome.message_id,
            error_code=outcome.error_code,
            error_message=outcome.error_message,
        )


class ForwardResponse(BaseModel):
    results: List[ForwardResultResponse]


class WebhookAck(BaseModel):
    ok: bool = True
    messages: int = 0
    reactions: int = 0
    statuses: int = 0
    ignored: int = 0
