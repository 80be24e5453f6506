"""
Conversation Orchestrator
Composes tenancy, window policy, recipient resolution and delivery per send/receive.
"""
from __future__ import annotations

from datetime import datetime
from typing import Callable, Optional, Tuple

from src.messaging.application.commands import ReceiveMessageCommand, SendMessageCommand
from src.messaging.application.services.delivery_state_machine import DeliveryStateMachine
from src.messaging.domain.entities.conversation import Conversation
from src.messaging.domain.entities.driver import Driver
from src.messaging.domain.entities.group import GroupParticipant
from src.messaging.domain.entities.message import Message, ReplySnapshot
from src.messaging.domain.events import ConversationUpdated
from src.messaging.domain.exceptions import (
    ConversationArchivedError,
    ConversationNotFoundError,
    InvalidPhoneNumberError,
    InvalidReplyTargetError,
    MessageNotFoundError,
)
from src.messaging.domain.protocols import (
    ConversationRepository,
    DriverRepository,
    GroupRepository,
    MessageRepository,
)
from src.messaging.domain.services.recipient_resolver import RecipientResolver
from src.messaging.domain.services.session_window_policy import SessionWindowPolicy
from src.messaging.domain.value_objects.message_status import ConversationKind, MessageDirection, MessageStatus
from src.messaging.domain.value_objects.phone_number import extract_phone_from_wa_id, normalize_phone
from src.messaging.domain.value_objects.window_status import WindowStatus
from src.messaging.infrastructure.entity_locks import EntityLockManager
from src.shared.domain.base_entity import utc_now
from src.shared.infrastructure.messaging.event_bus import EventBus
from src.shared.infrastructure.observability.logger import bind_context, get_logger
from src.tenancy.domain.entities.team import TenantContext
from src.tenancy.domain.exceptions import (
    RateLimitExceededError,
    TenantInactiveError,
    TenantMismatchError,
    TenantNotConfiguredError,
)
from src.tenancy.domain.services.rate_limit_policy import RateLimitPolicy

logger = get_logger(__name__)


class ConversationOrchestrator:
    """
    Facade for everything that happens to a conversation.

    Tenant context is passed into every call; nothing here holds a
    process-wide "current team". Conversation-level state (window
    timestamps, archive flag, message creation) changes under the
    conversation lock; the provider round-trip happens after that lock is
    released, inside the delivery engine's own message lock.
    """

    def __init__(
        self,
        conversations: ConversationRepository,
        messages: MessageRepository,
        drivers: DriverRepository,
        groups: GroupRepository,
        window_policy: SessionWindowPolicy,
        resolver: RecipientResolver,
        delivery: DeliveryStateMachine,
        rate_limits: RateLimitPolicy,
        locks: EntityLockManager,
        event_bus: EventBus,
        group_relay_enabled: bool = False,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._conversations = conversations
        self._messages = messages
        self._drivers = drivers
        self._groups = groups
        self._window_policy = window_policy
        self._resolver = resolver
        self._delivery = delivery
        self._rate_limits = rate_limits
        self._locks = locks
        self._event_bus = event_bus
        self._group_relay_enabled = group_relay_enabled
        self._clock = clock

    # ---------------------------------------------------------------- inbound

    async def receive_inbound(self, tenant: TenantContext, command: ReceiveMessageCommand) -> Optional[Message]:
        """
        Record a counterpart message.

        Moves the window timestamps forward (never back), unarchives the
        conversation and stores the message as Sent. Messages whose provider
        id was already seen are returned without side effects. Returns None
        for group messages of a group this team does not know.
        """
        bind_context(team_id=tenant.team_id)
        if command.provider_message_id:
            existing = await self._messages.get_by_provider_message_id(tenant.team_id, command.provider_message_id)
            if existing is not None:
                logger.info("inbound_duplicate_ignored", message_id=existing.id, provider_message_id=command.provider_message_id)
                return existing

        if command.whatsapp_group_id:
            resolved = await self._group_sender(tenant, command)
            if resolved is None:
                return None
            conversation, participant = resolved
            sender_driver_id = participant.driver_id
            sender_participant_id = participant.id
            sender_name = command.sender_name or participant.participant_name
        else:
            driver = await self._driver_sender(tenant, command)
            conversation = await self.ensure_driver_conversation(tenant, driver.id)
            participant = None
            sender_driver_id = driver.id
            sender_participant_id = None
            sender_name = command.sender_name or driver.name

        now = self._clock()
        received_at = min(command.timestamp, now)
        reply_snapshot = None
        reply_to_id = None
        if command.reply_to_provider_message_id:
            target = await self.find_by_provider_message_id(tenant, command.reply_to_provider_message_id)
            if target is not None and target.conversation_id == conversation.id:
                reply_to_id, reply_snapshot = target.id, target.snapshot()

        async with self._locks.conversation(conversation.id):
            unarchived = conversation.record_inbound(received_at)
            await self._conversations.save(conversation)
            message = Message(
                team_id=tenant.team_id,
                conversation_id=conversation.id,
                content=command.content,
                message_type=command.message_type,
                direction=MessageDirection.INBOUND,
                sender_driver_id=sender_driver_id,
                sender_participant_id=sender_participant_id,
                sender_name=sender_name,
                payload=command.payload,
                sent_at=received_at,
                status=MessageStatus.SENT,
                provider_message_id=command.provider_message_id,
                reply_to_message_id=reply_to_id,
                reply_snapshot=reply_snapshot,
                created_at=now,
            )
            message, _ = await self._delivery.create(message, [])

        logger.info(
            "inbound_recorded",
            conversation_id=conversation.id,
            message_id=message.id,
            unarchived=unarchived,
        )
        await self._event_bus.publish(
            ConversationUpdated(
                conversation_id=conversation.id,
                change="unarchived" if unarchived else "inbound",
                team_id=tenant.team_id,
            )
        )

        if participant is not None and self._group_relay_enabled:
            await self._relay(conversation, message, participant)
        return message

    async def _driver_sender(self, tenant: TenantContext, command: ReceiveMessageCommand) -> Driver:
        phone = normalize_phone(extract_phone_from_wa_id(command.from_phone), tenant.country_code)
        if not phone:
            raise InvalidPhoneNumberError(f"Unusable sender number {command.from_phone!r}")
        driver = await self._drivers.get_by_phone(tenant.team_id, phone)
        if driver is None:
            driver = await self._drivers.add(
                Driver(team_id=tenant.team_id, name=command.sender_name or f"Driver {phone}", phone_number=phone)
            )
            logger.info("driver_auto_registered", driver_id=driver.id, phone=phone)
        return driver

    async def _group_sender(
        self,
        tenant: TenantContext,
        command: ReceiveMessageCommand,
    ) -> Optional[Tuple[Conversation, GroupParticipant]]:
        group = await self._groups.get_by_whatsapp_group_id(tenant.team_id, command.whatsapp_group_id)
        if group is None:
            logger.warning("inbound_for_unknown_group", whatsapp_group_id=command.whatsapp_group_id)
            return None
        raw = command.participant_phone or command.from_phone
        phone = normalize_phone(extract_phone_from_wa_id(raw), tenant.country_code)
        participant = None
        for candidate in await self._groups.list_participants(group.id):
            candidate_phone = candidate.phone_number
            if candidate.driver_id is not None:
                driver = await self._drivers.get(candidate.driver_id)
                candidate_phone = driver.phone_number if driver else None
            if candidate_phone == phone and candidate.is_active:
                participant = candidate
                break
        if participant is None:
            participant = await self._groups.add_participant(
                GroupParticipant(
                    group_id=group.id,
                    phone_number=phone,
                    participant_name=command.sender_name,
                    joined_at=self._clock(),
                )
            )
            logger.info("group_participant_auto_added", group_id=group.id, participant_id=participant.id)
        conversation = await self.ensure_group_conversation(tenant, group.id)
        return conversation, participant

    async def _relay(self, conversation: Conversation, message: Message, sender: GroupParticipant) -> None:
        destinations = await self._resolver.resolve(conversation, sender_participant_id=sender.id)
        if not destinations:
            return
        await self._delivery.attach_recipients(message.id, destinations)
        await self._delivery.send(message.id)

    # ------------------------------------------------------------------- send

    async def send(self, tenant: TenantContext, command: SendMessageCommand) -> Message:
        """
        Staff send.

        Raises:
            TenantInactiveError: team deactivated
            TenantMismatchError / TenantNotConfiguredError: conversation not this team's
            ConversationArchivedError: conversation archived
            WindowClosedError: free-form content outside an open window
            NoDriverAssignedError / NoRecipientsError: broken counterpart reference
            InvalidReplyTargetError: reply into another conversation
            RateLimitExceededError: team over its per-minute or per-day limit
        """
        if not tenant.is_active:
            raise TenantInactiveError(f"Team {tenant.team_id} is deactivated")
        bind_context(team_id=tenant.team_id, conversation_id=command.conversation_id)
        conversation = await self._load_owned(tenant, command.conversation_id)

        async with self._locks.conversation(conversation.id):
            if conversation.is_archived:
                raise ConversationArchivedError(f"Conversation {conversation.id} is archived")
            now = self._clock()
            window = self._window_policy.evaluate(conversation.last_inbound_message_at, now)
            self._window_policy.ensure_can_send(window, command.is_template)

            destinations = await self._resolver.resolve(conversation)
            reply_snapshot = await self._reply_snapshot(conversation, command.reply_to_message_id)

            # content is validated here, before any quota is consumed
            message = Message(
                team_id=tenant.team_id,
                conversation_id=conversation.id,
                content=command.content,
                message_type=command.message_type,
                direction=MessageDirection.OUTBOUND,
                sender_user_id=command.sender_user_id,
                sender_name=command.sender_name,
                payload=command.payload,
                sent_at=now,
                template_name=command.template_name,
                template_language=command.template_language,
                template_parameters=command.template_parameters,
                reply_to_message_id=command.reply_to_message_id if reply_snapshot else None,
                reply_snapshot=reply_snapshot,
                forwarded_from_message_id=command.forwarded_from_message_id,
                created_at=now,
            )

            verdict = await self._rate_limits.check_and_consume(tenant, len(destinations), now)
            if not verdict.allowed:
                logger.warning(
                    "rate_limit_exceeded",
                    window=verdict.window,
                    current=verdict.current_count,
                    limit=verdict.limit,
                )
                raise RateLimitExceededError(
                    f"Team {tenant.team_id} exceeded {verdict.limit} messages per {verdict.window}",
                    retry_after_seconds=verdict.retry_after_seconds or 0,
                    window=verdict.window,
                )

            message, _ = await self._delivery.create(message, destinations)
            conversation.record_outbound(now)
            await self._conversations.save(conversation)

        return await self._delivery.send(message.id)

    async def _reply_snapshot(self, conversation: Conversation, reply_to_message_id: Optional[int]) -> Optional[ReplySnapshot]:
        if reply_to_message_id is None:
            return None
        target = await self._messages.get(reply_to_message_id)
        if target is None:
            raise MessageNotFoundError(f"Message {reply_to_message_id} not found")
        if target.conversation_id != conversation.id:
            raise InvalidReplyTargetError(
                f"Message {reply_to_message_id} is not in conversation {conversation.id}"
            )
        return target.snapshot()

    # ---------------------------------------------------------- housekeeping

    async def window_status(self, tenant: TenantContext, conversation_id: int) -> WindowStatus:
        conversation = await self._load_owned(tenant, conversation_id)
        return self._window_policy.evaluate(conversation.last_inbound_message_at, self._clock())

    async def archive(self, tenant: TenantContext, conversation_id: int, user_id: Optional[str]) -> Conversation:
        """In-flight retries of existing messages keep running."""
        return await self._mutate(
            tenant, conversation_id, "archived", lambda c, now: c.archive(user_id, now)
        )

    async def unarchive(self, tenant: TenantContext, conversation_id: int) -> Conversation:
        return await self._mutate(tenant, conversation_id, "unarchived", lambda c, now: c.unarchive(now))

    async def assign(self, tenant: TenantContext, conversation_id: int, user_id: Optional[str]) -> Conversation:
        return await self._mutate(tenant, conversation_id, "assigned", lambda c, now: c.assign(user_id, now))

    async def abandon(self, tenant: TenantContext, message_id: int, actor_id: Optional[str]) -> Message:
        """Administrative stop of a stuck retry chain."""
        message = await self._messages.get(message_id)
        if message is None:
            raise MessageNotFoundError(f"Message {message_id} not found")
        self._check_owner(tenant, message.team_id)
        return await self._delivery.abandon(message_id, actor_id)

    async def ensure_driver_conversation(self, tenant: TenantContext, driver_id: int) -> Conversation:
        driver = await self._drivers.get(driver_id)
        if driver is None:
            raise ConversationNotFoundError(f"Driver {driver_id} not found")
        self._check_owner(tenant, driver.team_id)
        conversation = await self._conversations.find_for_driver(tenant.team_id, driver_id)
        if conversation is None:
            conversation = await self._conversations.add(
                Conversation(team_id=tenant.team_id, kind=ConversationKind.INDIVIDUAL, driver_id=driver_id)
            )
            logger.info("conversation_opened", conversation_id=conversation.id, driver_id=driver_id)
        return conversation

    async def ensure_group_conversation(self, tenant: TenantContext, group_id: int) -> Conversation:
        group = await self._groups.get(group_id)
        if group is None:
            raise ConversationNotFoundError(f"Group {group_id} not found")
        self._check_owner(tenant, group.team_id)
        conversation = await self._conversations.find_for_group(tenant.team_id, group_id)
        if conversation is None:
            conversation = await self._conversations.add(
                Conversation(team_id=tenant.team_id, kind=ConversationKind.GROUP, group_id=group_id, topic=group.name)
            )
            logger.info("conversation_opened", conversation_id=conversation.id, group_id=group_id)
        return conversation

    # ---------------------------------------------------------------- helpers

    async def get_conversation(self, tenant: TenantContext, conversation_id: int) -> Conversation:
        return await self._load_owned(tenant, conversation_id)

    async def _mutate(self, tenant, conversation_id, change, apply) -> Conversation:
        conversation = await self._load_owned(tenant, conversation_id)
        async with self._locks.conversation(conversation.id):
            apply(conversation, self._clock())
            await self._conversations.save(conversation)
        logger.info("conversation_updated", conversation_id=conversation.id, change=change)
        await self._event_bus.publish(
            ConversationUpdated(conversation_id=conversation.id, change=change, team_id=tenant.team_id)
        )
        return conversation

    async def _load_owned(self, tenant: TenantContext, conversation_id: int) -> Conversation:
        conversation = await self._conversations.get(conversation_id)
        if conversation is None:
            raise ConversationNotFoundError(f"Conversation {conversation_id} not found")
        self._check_owner(tenant, conversation.team_id)
        return conversation

    async def find_by_provider_message_id(self, tenant: TenantContext, provider_message_id: str) -> Optional[Message]:
        message = await self._messages.get_by_provider_message_id(tenant.team_id, provider_message_id)
        if message is not None:
            return message
        recipient = await self._delivery.recipient_by_provider_id(tenant.team_id, provider_message_id)
        return await self._messages.get(recipient.message_id) if recipient is not None else None

    @staticmethod
    def _check_owner(tenant: TenantContext, team_id: Optional[int]) -> None:
        if team_id is None:
            raise TenantNotConfiguredError("Record belongs to no team; sending is unavailable")
        if team_id != tenant.team_id:
            raise TenantMismatchError("Resource belongs to another team")
