"""
Repository Protocols
Persistence interfaces for the messaging aggregates. Ids are assigned on add().
"""
from abc import abstractmethod
from datetime import datetime
from typing import List, Optional, Protocol

from src.messaging.domain.entities.conversation import Conversation
from src.messaging.domain.entities.driver import Driver
from src.messaging.domain.entities.group import Group, GroupParticipant
from src.messaging.domain.entities.message import Message
from src.messaging.domain.entities.reaction import Reaction
from src.messaging.domain.entities.recipient import MessageRecipient
from src.messaging.domain.value_objects.reactor import Reactor


class ConversationRepository(Protocol):

    @abstractmethod
    async def add(self, conversation: Conversation) -> Conversation:
        ...

    @abstractmethod
    async def get(self, conversation_id: int) -> Optional[Conversation]:
        ...

    @abstractmethod
    async def save(self, conversation: Conversation) -> None:
        ...

    @abstractmethod
    async def find_for_driver(self, team_id: int, driver_id: int) -> Optional[Conversation]:
        """Individual conversation of a driver within a team."""
        ...

    @abstractmethod
    async def find_for_group(self, team_id: int, group_id: int) -> Optional[Conversation]:
        ...


class MessageRepository(Protocol):

    @abstractmethod
    async def add(self, message: Message) -> Message:
        ...

    @abstractmethod
    async def get(self, message_id: int) -> Optional[Message]:
        ...

    @abstractmethod
    async def save(self, message: Message) -> None:
        ...

    @abstractmethod
    async def get_by_provider_message_id(self, team_id: int, provider_message_id: str) -> Optional[Message]:
        """Inbound message lookup (webhook idempotency, reaction targets)."""
        ...

    @abstractmethod
    async def list_due_for_retry(self, now: datetime, limit: int) -> List[Message]:
        """Failed messages whose next_retry_at has elapsed, oldest first."""
        ...

    @abstractmethod
    async def list_for_conversation(self, conversation_id: int, limit: int = 100) -> List[Message]:
        ...


class RecipientRepository(Protocol):

    @abstractmethod
    async def add_many(self, recipients: List[MessageRecipient]) -> List[MessageRecipient]:
        ...

    @abstractmethod
    async def list_for_message(self, message_id: int) -> List[MessageRecipient]:
        """Recipients of a message in id order."""
        ...

    @abstractmethod
    async def get(self, recipient_id: int) -> Optional[MessageRecipient]:
        ...

    @abstractmethod
    async def get_by_provider_message_id(self, provider_message_id: str) -> Optional[MessageRecipient]:
        ...

    @abstractmethod
    async def save(self, recipient: MessageRecipient) -> None:
        ...


class ReactionRepository(Protocol):

    @abstractmethod
    async def get_for_reactor(self, message_id: int, reactor: Reactor) -> Optional[Reaction]:
        ...

    @abstractmethod
    async def add(self, reaction: Reaction) -> Reaction:
        ...

    @abstractmethod
    async def save(self, reaction: Reaction) -> None:
        ...

    @abstractmethod
    async def delete(self, reaction: Reaction) -> None:
        ...

    @abstractmethod
    async def list_for_message(self, message_id: int) -> List[Reaction]:
        ...


class DriverRepository(Protocol):

    @abstractmethod
    async def add(self, driver: Driver) -> Driver:
        ...

    @abstractmethod
    async def get(self, driver_id: int) -> Optional[Driver]:
        ...

    @abstractmethod
    async def get_by_phone(self, team_id: int, phone_number: str) -> Optional[Driver]:
        """Match on the normalized phone number within one team."""
        ...


class GroupRepository(Protocol):

    @abstractmethod
    async def add(self, group: Group) -> Group:
        ...

    @abstractmethod
    async def get(self, group_id: int) -> Optional[Group]:
        ...

    @abstractmethod
    async def get_by_whatsapp_group_id(self, team_id: int, whatsapp_group_id: str) -> Optional[Group]:
        ...

    @abstractmethod
    async def add_participant(self, participant: GroupParticipant) -> GroupParticipant:
        ...

    @abstractmethod
    async def save_participant(self, participant: GroupParticipant) -> None:
        ...

    @abstractmethod
    async def list_participants(self, group_id: int) -> List[GroupParticipant]:
        """All participants of a group (active or not) in id order."""
        ...
