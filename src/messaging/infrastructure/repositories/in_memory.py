"""
In-process repositories for the messaging aggregates.

Each store hands out ids from its own sequence, so id order is insertion
order. Entities are kept by reference; save() re-registers them.
"""
from __future__ import annotations

import itertools
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from src.messaging.domain.entities.conversation import Conversation
from src.messaging.domain.entities.driver import Driver
from src.messaging.domain.entities.group import Group, GroupParticipant
from src.messaging.domain.entities.message import Message
from src.messaging.domain.entities.reaction import Reaction
from src.messaging.domain.entities.recipient import MessageRecipient
from src.messaging.domain.value_objects.message_status import MessageStatus
from src.messaging.domain.value_objects.reactor import Reactor


class InMemoryConversationRepository:

    def __init__(self) -> None:
        self._items: Dict[int, Conversation] = {}
        self._seq = itertools.count(1)

    async def add(self, conversation: Conversation) -> Conversation:
        conversation.id = next(self._seq)
        self._items[conversation.id] = conversation
        return conversation

    async def get(self, conversation_id: int) -> Optional[Conversation]:
        return self._items.get(conversation_id)

    async def save(self, conversation: Conversation) -> None:
        self._items[conversation.id] = conversation

    async def find_for_driver(self, team_id: int, driver_id: int) -> Optional[Conversation]:
        return next(
            (c for c in self._items.values()
             if c.team_id == team_id and not c.is_group and c.driver_id == driver_id),
            None,
        )

    async def find_for_group(self, team_id: int, group_id: int) -> Optional[Conversation]:
        return next(
            (c for c in self._items.values() if c.team_id == team_id and c.group_id == group_id),
            None,
        )


class InMemoryMessageRepository:

    def __init__(self) -> None:
        self._items: Dict[int, Message] = {}
        self._seq = itertools.count(1)

    async def add(self, message: Message) -> Message:
        message.id = next(self._seq)
        self._items[message.id] = message
        return message

    async def get(self, message_id: int) -> Optional[Message]:
        return self._items.get(message_id)

    async def save(self, message: Message) -> None:
        self._items[message.id] = message

    async def get_by_provider_message_id(self, team_id: int, provider_message_id: str) -> Optional[Message]:
        return next(
            (m for m in self._items.values()
             if m.team_id == team_id and m.provider_message_id == provider_message_id),
            None,
        )

    async def list_due_for_retry(self, now: datetime, limit: int) -> List[Message]:
        due = [
            m for m in self._items.values()
            if m.status is MessageStatus.FAILED and m.next_retry_at is not None and m.next_retry_at <= now
        ]
        due.sort(key=lambda m: (m.next_retry_at, m.id))
        return due[:limit]

    async def list_for_conversation(self, conversation_id: int, limit: int = 100) -> List[Message]:
        items = [m for m in self._items.values() if m.conversation_id == conversation_id]
        items.sort(key=lambda m: m.id)
        return items[-limit:]


class InMemoryRecipientRepository:

    def __init__(self) -> None:
        self._items: Dict[int, MessageRecipient] = {}
        self._seq = itertools.count(1)

    async def add_many(self, recipients: List[MessageRecipient]) -> List[MessageRecipient]:
        for recipient in recipients:
            recipient.id = next(self._seq)
            self._items[recipient.id] = recipient
        return recipients

    async def list_for_message(self, message_id: int) -> List[MessageRecipient]:
        return sorted((r for r in self._items.values() if r.message_id == message_id), key=lambda r: r.id)

    async def get(self, recipient_id: int) -> Optional[MessageRecipient]:
        return self._items.get(recipient_id)

    async def get_by_provider_message_id(self, provider_message_id: str) -> Optional[MessageRecipient]:
        return next((r for r in self._items.values() if r.provider_message_id == provider_message_id), None)

    async def save(self, recipient: MessageRecipient) -> None:
        self._items[recipient.id] = recipient


class InMemoryReactionRepository:

    def __init__(self) -> None:
        self._items: Dict[Tuple[int, str], Reaction] = {}
        self._seq = itertools.count(1)

    async def get_for_reactor(self, message_id: int, reactor: Reactor) -> Optional[Reaction]:
        return self._items.get((message_id, reactor.key))

    async def add(self, reaction: Reaction) -> Reaction:
        reaction.id = next(self._seq)
        self._items[(reaction.message_id, reaction.reactor.key)] = reaction
        return reaction

    async def save(self, reaction: Reaction) -> None:
        self._items[(reaction.message_id, reaction.reactor.key)] = reaction

    async def delete(self, reaction: Reaction) -> None:
        self._items.pop((reaction.message_id, reaction.reactor.key), None)

    async def list_for_message(self, message_id: int) -> List[Reaction]:
        return sorted((r for (mid, _), r in self._items.items() if mid == message_id), key=lambda r: r.id)


class InMemoryDriverRepository:

    def __init__(self) -> None:
        self._items: Dict[int, Driver] = {}
        self._seq = itertools.count(1)

    async def add(self, driver: Driver) -> Driver:
        driver.id = next(self._seq)
        self._items[driver.id] = driver
        return driver

    async def get(self, driver_id: int) -> Optional[Driver]:
        return self._items.get(driver_id)

    async def get_by_phone(self, team_id: int, phone_number: str) -> Optional[Driver]:
        return next(
            (d for d in self._items.values() if d.team_id == team_id and d.phone_number == phone_number),
            None,
        )


class InMemoryGroupRepository:

    def __init__(self) -> None:
        self._groups: Dict[int, Group] = {}
        self._participants: Dict[int, GroupParticipant] = {}
        self._group_seq = itertools.count(1)
        self._participant_seq = itertools.count(1)

    async def add(self, group: Group) -> Group:
        group.id = next(self._group_seq)
        self._groups[group.id] = group
        return group

    async def get(self, group_id: int) -> Optional[Group]:
        return self._groups.get(group_id)

    async def get_by_whatsapp_group_id(self, team_id: int, whatsapp_group_id: str) -> Optional[Group]:
        return next(
            (g for g in self._groups.values()
             if g.team_id == team_id and g.whatsapp_group_id == whatsapp_group_id),
            None,
        )

    async def add_participant(self, participant: GroupParticipant) -> GroupParticipant:
        participant.id = next(self._participant_seq)
        self._participants[participant.id] = participant
        return participant

    async def save_participant(self, participant: GroupParticipant) -> None:
        self._participants[participant.id] = participant

    async def list_participants(self, group_id: int) -> List[GroupParticipant]:
        return sorted((p for p in self._participants.values() if p.group_id == group_id), key=lambda p: p.id)
