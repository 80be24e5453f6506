"""
Conversation Entity
A thread between a team and one driver, or a team and one WhatsApp group.
"""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from src.messaging.domain.value_objects.message_status import ConversationKind
from src.shared.domain.base_entity import BaseEntity, utc_now
from src.shared.exceptions import ValidationError


class Conversation(BaseEntity):
    """
    Attributes:
        team_id: Owning team (None for legacy records, which cannot send)
        kind: individual | group (immutable)
        driver_id: Counterpart for individual conversations
        group_id: Counterpart for group conversations
        last_inbound_message_at: Last counterpart message; drives the 24h window.
            Only ever moves forward and only inbound events set it.
        last_message_at: Last message in either direction
        is_answered: False after inbound, True after a staff send
        is_archived / archived_at / archived_by_user_id: Archive state
        assigned_to_user_id: Staff member handling the thread
    """

    def __init__(
        self,
        team_id: Optional[int],
        kind: ConversationKind,
        driver_id: Optional[int] = None,
        group_id: Optional[int] = None,
        topic: Optional[str] = None,
        last_inbound_message_at: Optional[datetime] = None,
        last_message_at: Optional[datetime] = None,
        is_answered: bool = False,
        is_archived: bool = False,
        archived_at: Optional[datetime] = None,
        archived_by_user_id: Optional[str] = None,
        assigned_to_user_id: Optional[str] = None,
        id: Optional[int] = None,
        created_at: Optional[datetime] = None,
        updated_at: Optional[datetime] = None,
    ) -> None:
        super().__init__(id, created_at, updated_at)
        kind = ConversationKind(kind)
        if kind is ConversationKind.GROUP and (group_id is None or driver_id is not None):
            raise ValidationError("Group conversation needs group_id and no driver_id")
        if kind is ConversationKind.INDIVIDUAL and group_id is not None:
            raise ValidationError("Individual conversation cannot reference a group")
        self._kind = kind
        self.team_id = team_id
        self.driver_id = driver_id
        self.group_id = group_id
        self.topic = topic
        self.last_inbound_message_at = last_inbound_message_at
        self.last_message_at = last_message_at
        self.is_answered = is_answered
        self.is_archived = is_archived
        self.archived_at = archived_at
        self.archived_by_user_id = archived_by_user_id
        self.assigned_to_user_id = assigned_to_user_id

    @property
    def kind(self) -> ConversationKind:
        return self._kind

    @property
    def is_group(self) -> bool:
        return self._kind is ConversationKind.GROUP

    def record_inbound(self, at: datetime) -> bool:
        """
        Apply an inbound message received at `at`.

        Returns True when the conversation was unarchived by it.
        """
        if self.last_inbound_message_at is None or at > self.last_inbound_message_at:
            self.last_inbound_message_at = at
        self._touch_last_message(at)
        self.is_answered = False
        unarchived = self.is_archived
        if unarchived:
            self._clear_archive()
        self.mark_updated(at)
        return unarchived

    def record_outbound(self, at: datetime) -> None:
        """Staff send: never touches the window timestamp."""
        self._touch_last_message(at)
        self.is_answered = True
        self.mark_updated(at)

    def archive(self, user_id: Optional[str], at: Optional[datetime] = None) -> None:
        at = at or utc_now()
        self.is_archived = True
        self.archived_at = at
        self.archived_by_user_id = user_id
        self.mark_updated(at)

    def unarchive(self, at: Optional[datetime] = None) -> None:
        self._clear_archive()
        self.mark_updated(at)

    def assign(self, user_id: Optional[str], at: Optional[datetime] = None) -> None:
        self.assigned_to_user_id = user_id
        self.mark_updated(at)

    def _touch_last_message(self, at: datetime) -> None:
        if self.last_message_at is None or at > self.last_message_at:
            self.last_message_at = at

    def _clear_archive(self) -> None:
        self.is_archived = False
        self.archived_at = None
        self.archived_by_user_id = None

    def __repr__(self) -> str:
        return f"<Conversation(id={self.id}, team={self.team_id}, kind={self._kind.value})>"
