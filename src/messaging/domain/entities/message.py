"""
Message Entity
One logical message in a conversation, inbound or outbound.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable, Optional

from src.messaging.domain.exceptions import InvalidMessageContentError, MessageDeletedError
from src.messaging.domain.value_objects.message_status import (
    MessageDirection,
    MessageStatus,
    MessageType,
    aggregate_status,
)
from src.shared.domain.base_entity import BaseEntity, utc_now


@dataclass(frozen=True, slots=True)
class ReplySnapshot:
    """Preview of the replied-to message, captured once at reply time."""
    message_id: int
    content: str
    sender_name: Optional[str]
    message_type: MessageType
    was_deleted: bool = False


class Message(BaseEntity):
    """
    Entity for a message and its delivery bookkeeping.

    `status` is the aggregate over the message's recipients and is only
    written through `refresh_status` (or `force_status` for recipient-less
    inbound messages); per-destination state lives on MessageRecipient.

    Attributes:
        team_id: Owning team
        conversation_id: Conversation the message belongs to
        content: Text body / caption (kept after soft delete for audit)
        message_type: text, image, ..., template
        direction: inbound (from counterpart) or outbound (from staff)
        sender_user_id / sender_driver_id / sender_participant_id: Author
        sender_name: Display name of the author at send time
        payload: Type-specific fields (media url, location, contacts)
        provider_message_id: Provider id of an inbound message
        retry_count / next_retry_at: Backoff state, meaningful while Pending/Failed
        last_error_code / last_error_message: Last provider failure
        template_name / template_language / template_parameters: Template send
        reply_to_message_id / reply_snapshot: Reply link and its frozen preview
        forwarded_from_message_id: Source of a forwarded copy (any conversation)
    """

    def __init__(
        self,
        team_id: Optional[int],
        conversation_id: int,
        content: str,
        message_type: MessageType = MessageType.TEXT,
        direction: MessageDirection = MessageDirection.OUTBOUND,
        sender_user_id: Optional[str] = None,
        sender_driver_id: Optional[int] = None,
        sender_participant_id: Optional[int] = None,
        sender_name: Optional[str] = None,
        payload: Optional[dict[str, Any]] = None,
        sent_at: Optional[datetime] = None,
        status: MessageStatus = MessageStatus.PENDING,
        provider_message_id: Optional[str] = None,
        retry_count: int = 0,
        next_retry_at: Optional[datetime] = None,
        last_error_code: Optional[str] = None,
        last_error_message: Optional[str] = None,
        template_name: Optional[str] = None,
        template_language: str = "en",
        template_parameters: Optional[dict[str, str]] = None,
        reply_to_message_id: Optional[int] = None,
        reply_snapshot: Optional[ReplySnapshot] = None,
        forwarded_from_message_id: Optional[int] = None,
        forward_count: int = 0,
        is_starred: bool = False,
        starred_at: Optional[datetime] = None,
        is_pinned: bool = False,
        pinned_at: Optional[datetime] = None,
        is_deleted: bool = False,
        deleted_at: Optional[datetime] = None,
        deleted_by_user_id: Optional[str] = None,
        id: Optional[int] = None,
        created_at: Optional[datetime] = None,
        updated_at: Optional[datetime] = None,
    ) -> None:
        super().__init__(id, created_at, updated_at)
        message_type = MessageType(message_type)
        if message_type is MessageType.TEMPLATE and not template_name:
            raise InvalidMessageContentError("Template message requires template_name")
        if message_type is MessageType.TEXT and not (content or "").strip():
            raise InvalidMessageContentError("Text message content cannot be empty")
        if (reply_to_message_id is None) != (reply_snapshot is None):
            raise InvalidMessageContentError("Reply link and snapshot are set together")
        self.team_id = team_id
        self.conversation_id = conversation_id
        self.content = content or ""
        self.message_type = message_type
        self.direction = MessageDirection(direction)
        self.sender_user_id = sender_user_id
        self.sender_driver_id = sender_driver_id
        self.sender_participant_id = sender_participant_id
        self.sender_name = sender_name
        self.payload = dict(payload or {})
        self.sent_at = sent_at or self.created_at
        self.status = MessageStatus(status)
        self.provider_message_id = provider_message_id
        self.retry_count = retry_count
        self.next_retry_at = next_retry_at
        self.last_error_code = last_error_code
        self.last_error_message = last_error_message
        self.template_name = template_name
        self.template_language = template_language
        self.template_parameters = dict(template_parameters or {})
        self.reply_to_message_id = reply_to_message_id
        self.reply_snapshot = reply_snapshot
        self.forwarded_from_message_id = forwarded_from_message_id
        self.forward_count = forward_count
        self.is_starred = is_starred
        self.starred_at = starred_at
        self.is_pinned = is_pinned
        self.pinned_at = pinned_at
        self.is_deleted = is_deleted
        self.deleted_at = deleted_at
        self.deleted_by_user_id = deleted_by_user_id

    # ------------------------------------------------------------------ queries

    @property
    def is_template(self) -> bool:
        return self.message_type is MessageType.TEMPLATE

    @property
    def is_inbound(self) -> bool:
        return self.direction is MessageDirection.INBOUND

    @property
    def is_retry_due_candidate(self) -> bool:
        return self.status is MessageStatus.FAILED and self.next_retry_at is not None

    def snapshot(self) -> ReplySnapshot:
        return ReplySnapshot(
            message_id=self.id,
            content=self.content,
            sender_name=self.sender_name,
            message_type=self.message_type,
            was_deleted=self.is_deleted,
        )

    # --------------------------------------------------------------- mutations

    def ensure_not_deleted(self) -> None:
        if self.is_deleted:
            raise MessageDeletedError(f"Message {self.id} has been deleted")

    def star(self, is_starred: bool, at: Optional[datetime] = None) -> bool:
        """Returns True when the flag changed."""
        self.ensure_not_deleted()
        if self.is_starred == is_starred:
            return False
        at = at or utc_now()
        self.is_starred = is_starred
        self.starred_at = at if is_starred else None
        self.mark_updated(at)
        return True

    def pin(self, is_pinned: bool, at: Optional[datetime] = None) -> bool:
        """pinned_at is stamped on false→true only and cleared on unpin."""
        self.ensure_not_deleted()
        if self.is_pinned == is_pinned:
            return False
        at = at or utc_now()
        self.is_pinned = is_pinned
        self.pinned_at = at if is_pinned else None
        self.mark_updated(at)
        return True

    def soft_delete(self, actor_id: Optional[str], at: Optional[datetime] = None) -> bool:
        """Flag as deleted; content stays for audit. Repeat deletes keep the first actor."""
        if self.is_deleted:
            return False
        at = at or utc_now()
        self.is_deleted = True
        self.deleted_at = at
        self.deleted_by_user_id = actor_id
        self.mark_updated(at)
        return True

    def record_forward(self, at: Optional[datetime] = None) -> None:
        self.forward_count += 1
        self.mark_updated(at)

    # ----------------------------------------------------------- delivery state

    def refresh_status(self, recipient_statuses: Iterable[MessageStatus], at: Optional[datetime] = None) -> bool:
        """Recompute the aggregate; returns True when it changed."""
        return self.force_status(aggregate_status(recipient_statuses), at)

    def force_status(self, status: MessageStatus, at: Optional[datetime] = None) -> bool:
        if self.status is status:
            return False
        self.status = status
        if status not in (MessageStatus.PENDING, MessageStatus.FAILED):
            self.next_retry_at = None
        self.mark_updated(at)
        return True

    def record_failure(self, error_code: Optional[str], error_message: Optional[str]) -> None:
        self.last_error_code = error_code
        self.last_error_message = error_message

    def __repr__(self) -> str:
        return f"<Message(id={self.id}, conversation={self.conversation_id}, status={self.status.value})>"
