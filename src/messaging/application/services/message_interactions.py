"""
Message Interaction Engine
React, pin, star, soft-delete, forward and reply on existing messages.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Optional, Sequence

from src.messaging.application.commands import SendMessageCommand
from src.messaging.application.services.conversation_orchestrator import ConversationOrchestrator
from src.messaging.domain.entities.message import Message
from src.messaging.domain.entities.reaction import Reaction
from src.messaging.domain.events import MessageUpdated, ReactionChanged
from src.messaging.domain.exceptions import MessageNotFoundError
from src.messaging.domain.protocols import MessageRepository, ReactionRepository
from src.messaging.domain.value_objects.message_status import MessageType
from src.messaging.domain.value_objects.reactor import Reactor
from src.messaging.infrastructure.entity_locks import EntityLockManager
from src.shared.domain.base_entity import utc_now
from src.shared.exceptions import DomainError
from src.shared.infrastructure.messaging.event_bus import EventBus
from src.shared.infrastructure.observability.logger import get_logger
from src.tenancy.domain.entities.team import TenantContext
from src.tenancy.domain.exceptions import TenantMismatchError, TenantNotConfiguredError

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class ForwardOutcome:
    """Result of forwarding to one target conversation."""
    conversation_id: int
    message_id: Optional[int] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.message_id is not None


class MessageInteractionEngine:
    """
    Mutations on a message other than delivery status.

    Each mutation runs under the message lock, so it serializes with
    delivery acknowledgements for the same message. A soft-deleted message
    refuses react, pin, star and forward with MessageDeletedError but stays
    readable.
    """

    def __init__(
        self,
        messages: MessageRepository,
        reactions: ReactionRepository,
        orchestrator: ConversationOrchestrator,
        locks: EntityLockManager,
        event_bus: EventBus,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._messages = messages
        self._reactions = reactions
        self._orchestrator = orchestrator
        self._locks = locks
        self._event_bus = event_bus
        self._clock = clock

    # -------------------------------------------------------------- reactions

    async def react(self, tenant: TenantContext, message_id: int, reactor: Reactor, emoji: str) -> Reaction:
        """Upsert: the reactor's previous reaction on this message is replaced."""
        async with self._locks.message(message_id):
            message = await self._load_owned(tenant, message_id)
            message.ensure_not_deleted()
            now = self._clock()
            reaction = await self._reactions.get_for_reactor(message_id, reactor)
            if reaction is None:
                reaction = await self._reactions.add(
                    Reaction(message_id=message_id, reactor=reactor, emoji=emoji, reacted_at=now, created_at=now)
                )
            elif reaction.emoji != emoji:
                reaction.replace(emoji, now)
                await self._reactions.save(reaction)
        logger.info("reaction_set", message_id=message_id, reactor=reactor.key, emoji=emoji)
        await self._event_bus.publish(
            ReactionChanged(
                message_id=message_id,
                conversation_id=message.conversation_id,
                reactor=reactor.key,
                emoji=emoji,
                team_id=tenant.team_id,
            )
        )
        return reaction

    async def remove_reaction(self, tenant: TenantContext, message_id: int, reactor: Reactor) -> bool:
        async with self._locks.message(message_id):
            message = await self._load_owned(tenant, message_id)
            reaction = await self._reactions.get_for_reactor(message_id, reactor)
            if reaction is None:
                return False
            await self._reactions.delete(reaction)
        await self._event_bus.publish(
            ReactionChanged(
                message_id=message_id,
                conversation_id=message.conversation_id,
                reactor=reactor.key,
                emoji=None,
                team_id=tenant.team_id,
            )
        )
        return True

    async def list_reactions(self, tenant: TenantContext, message_id: int) -> List[Reaction]:
        await self._load_owned(tenant, message_id)
        return await self._reactions.list_for_message(message_id)

    # ------------------------------------------------------------------ flags

    async def pin(self, tenant: TenantContext, message_id: int, is_pinned: bool) -> Message:
        return await self._toggle(tenant, message_id, "pinned" if is_pinned else "unpinned",
                                  lambda m, now: m.pin(is_pinned, now))

    async def star(self, tenant: TenantContext, message_id: int, is_starred: bool) -> Message:
        return await self._toggle(tenant, message_id, "starred" if is_starred else "unstarred",
                                  lambda m, now: m.star(is_starred, now))

    async def soft_delete(self, tenant: TenantContext, message_id: int, actor_id: Optional[str]) -> Message:
        """Content and reactions are kept for audit."""
        return await self._toggle(tenant, message_id, "deleted", lambda m, now: m.soft_delete(actor_id, now))

    async def _toggle(self, tenant, message_id, change, apply) -> Message:
        async with self._locks.message(message_id):
            message = await self._load_owned(tenant, message_id)
            changed = apply(message, self._clock())
            if changed:
                await self._messages.save(message)
        if changed:
            logger.info("message_updated", message_id=message_id, change=change)
            await self._event_bus.publish(
                MessageUpdated(
                    message_id=message_id,
                    conversation_id=message.conversation_id,
                    change=change,
                    team_id=tenant.team_id,
                )
            )
        return message

    # ---------------------------------------------------------------- forward

    async def forward(
        self,
        tenant: TenantContext,
        message_id: int,
        target_conversation_ids: Sequence[int],
        sender_user_id: Optional[str],
        override_content: Optional[str] = None,
        sender_name: Optional[str] = None,
    ) -> List[ForwardOutcome]:
        """
        Copy a message into each target conversation as a fresh send.

        Targets are independent: each is checked for tenant, archive and
        its own 24h window, and a failure is reported for that target only.
        The original's forward_count grows by the number of copies made.
        """
        async with self._locks.message(message_id):
            original = await self._load_owned(tenant, message_id)
            original.ensure_not_deleted()
            source = _ForwardSource.of(original)

        outcomes: List[ForwardOutcome] = []
        for conversation_id in dict.fromkeys(target_conversation_ids):
            command = SendMessageCommand(
                conversation_id=conversation_id,
                sender_user_id=sender_user_id,
                sender_name=sender_name,
                content=override_content if override_content is not None else source.content,
                message_type=source.message_type,
                template_name=source.template_name,
                template_language=source.template_language,
                template_parameters=dict(source.template_parameters),
                payload=dict(source.payload),
                forwarded_from_message_id=message_id,
            )
            try:
                copy = await self._orchestrator.send(tenant, command)
            except DomainError as exc:
                logger.info("forward_target_rejected", message_id=message_id, conversation_id=conversation_id, code=exc.code)
                outcomes.append(ForwardOutcome(conversation_id, error_code=exc.code, error_message=exc.message))
                continue
            outcomes.append(ForwardOutcome(conversation_id, message_id=copy.id))

        forwarded = sum(1 for o in outcomes if o.succeeded)
        if forwarded:
            async with self._locks.message(message_id):
                original = await self._messages.get(message_id)
                now = self._clock()
                for _ in range(forwarded):
                    original.record_forward(now)
                await self._messages.save(original)
            await self._event_bus.publish(
                MessageUpdated(
                    message_id=message_id,
                    conversation_id=original.conversation_id,
                    change="forwarded",
                    team_id=tenant.team_id,
                )
            )
        return outcomes

    # ------------------------------------------------------------------ reply

    async def reply(self, tenant: TenantContext, reply_to_message_id: int, command: SendMessageCommand) -> Message:
        """Send `command` as a reply; the target must be in the same conversation."""
        command.reply_to_message_id = reply_to_message_id
        return await self._orchestrator.send(tenant, command)

    # ---------------------------------------------------------------- helpers

    async def _load_owned(self, tenant: TenantContext, message_id: int) -> Message:
        message = await self._messages.get(message_id)
        if message is None:
            raise MessageNotFoundError(f"Message {message_id} not found")
        if message.team_id is None:
            raise TenantNotConfiguredError("Record belongs to no team")
        if message.team_id != tenant.team_id:
            raise TenantMismatchError("Message belongs to another team")
        return message


@dataclass(frozen=True, slots=True)
class _ForwardSource:
    content: str
    message_type: MessageType
    template_name: Optional[str]
    template_language: str
    template_parameters: dict
    payload: dict

    @classmethod
    def of(cls, message: Message) -> _ForwardSource:
        return cls(
            content=message.content,
            message_type=message.message_type,
            template_name=message.template_name,
            template_language=message.template_language,
            template_parameters=dict(message.template_parameters),
            payload=dict(message.payload),
        )
