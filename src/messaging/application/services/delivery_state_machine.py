"""
Delivery State Machine
Owns message/recipient status transitions, provider attempts and retry scheduling.
"""
from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Callable, List, Optional, Sequence, Tuple

from src.messaging.domain.entities.message import Message
from src.messaging.domain.entities.recipient import MessageRecipient
from src.messaging.domain.events import MessageCreated, MessageDeliveryExhausted, MessageStatusChanged
from src.messaging.domain.exceptions import (
    InvalidStatusTransitionError,
    MessageNotFoundError,
    ProviderError,
    TransientProviderError,
)
from src.messaging.domain.protocols import (
    ErrorClassifier,
    MessageRepository,
    ProviderClient,
    RecipientRepository,
)
from src.messaging.domain.services.retry_policy import RetryPolicy
from src.messaging.domain.value_objects.destination import Destination
from src.messaging.domain.value_objects.message_status import MessageStatus, aggregate_status
from src.messaging.domain.value_objects.payload import OutboundPayload
from src.messaging.infrastructure.entity_locks import EntityLockManager
from src.shared.domain.base_entity import utc_now
from src.shared.domain.domain_event import DomainEvent
from src.shared.infrastructure.messaging.event_bus import EventBus
from src.shared.infrastructure.observability.logger import get_logger
from src.tenancy.application.tenant_registry import TenantRegistry
from src.tenancy.domain.entities.team import ProviderCredentials
from src.tenancy.domain.exceptions import TenantInactiveError, TenantNotConfiguredError, TenantNotFoundError

logger = get_logger(__name__)

Failure = Tuple[MessageRecipient, ProviderError]


class DeliveryStateMachine:
    """
    Drives messages through pending → sent → delivered → read.

    Every transition on a message happens under that message's lock, and
    every recipient transition additionally under the recipient's lock, so
    a webhook acknowledgement racing a send (or a retry pass) is applied
    after it, never interleaved. Provider errors never propagate to the
    caller: they become Failed (retry scheduled) or Failed-Exhausted.

    Example:
        message = await delivery.create(message, destinations)
        await delivery.send(message.id)
    """

    def __init__(
        self,
        messages: MessageRepository,
        recipients: RecipientRepository,
        provider: ProviderClient,
        classifier: ErrorClassifier,
        tenants: TenantRegistry,
        retry_policy: RetryPolicy,
        locks: EntityLockManager,
        event_bus: EventBus,
        attempt_timeout_seconds: float = 15.0,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._messages = messages
        self._recipients = recipients
        self._provider = provider
        self._classifier = classifier
        self._tenants = tenants
        self._retry_policy = retry_policy
        self._locks = locks
        self._event_bus = event_bus
        self._attempt_timeout = attempt_timeout_seconds
        self._clock = clock

    @property
    def retry_policy(self) -> RetryPolicy:
        return self._retry_policy

    # ----------------------------------------------------------------- create

    async def create(
        self,
        message: Message,
        destinations: Sequence[Destination],
    ) -> Tuple[Message, List[MessageRecipient]]:
        """
        Store a new message with one Pending recipient per destination.

        A message without destinations is stored as Sent.
        """
        message = await self._messages.add(message)
        recipients = await self._recipients.add_many(
            [MessageRecipient(message_id=message.id, destination=d, created_at=message.created_at) for d in destinations]
        )
        message.refresh_status((r.status for r in recipients), message.created_at)
        await self._messages.save(message)
        logger.info(
            "message_created",
            message_id=message.id,
            conversation_id=message.conversation_id,
            team_id=message.team_id,
            direction=message.direction.value,
            recipients=len(recipients),
        )
        await self._event_bus.publish(
            MessageCreated(
                message_id=message.id,
                conversation_id=message.conversation_id,
                direction=message.direction,
                recipient_count=len(recipients),
                team_id=message.team_id,
            )
        )
        return message, recipients

    async def attach_recipients(self, message_id: int, destinations: Sequence[Destination]) -> List[MessageRecipient]:
        """Add recipients to a stored message that has none yet (group relay of an inbound message)."""
        events: List[DomainEvent] = []
        async with self._locks.message(message_id):
            message = await self._load(message_id)
            existing = await self._recipients.list_for_message(message_id)
            if existing:
                raise InvalidStatusTransitionError(f"Message {message_id} already has recipients")
            now = self._clock()
            recipients = await self._recipients.add_many(
                [MessageRecipient(message_id=message_id, destination=d, created_at=now) for d in destinations]
            )
            self._refresh(message, recipients, now, events)
            await self._messages.save(message)
        await self._event_bus.publish_many(events)
        return recipients

    # ------------------------------------------------------------------- send

    async def send(self, message_id: int) -> Message:
        """
        Attempt delivery to every Pending/Failed recipient.

        Idempotent: a message already Sent or further, or Failed-Exhausted,
        is returned untouched, so a late retry after a callback is a no-op.
        """
        events: List[DomainEvent] = []
        async with self._locks.message(message_id):
            message = await self._load(message_id)
            if message.status.is_accepted or message.status is MessageStatus.FAILED_EXHAUSTED:
                logger.debug("send_skipped", message_id=message_id, status=message.status.value)
                return message

            recipients = await self._recipients.list_for_message(message_id)
            due = [r for r in recipients if r.needs_attempt]
            now = self._clock()
            if not due:
                self._refresh(message, recipients, now, events)
                await self._messages.save(message)
            else:
                try:
                    tenant = await self._tenants.require_active(message.team_id)
                except (TenantInactiveError, TenantNotConfiguredError, TenantNotFoundError) as exc:
                    # deactivated or unconfigured team: nothing will ever deliver these
                    for recipient in due:
                        await self._exhaust_recipient(recipient, exc.code, exc.message, now)
                    message.record_failure(exc.code, exc.message)
                    self._refresh(message, recipients, now, events, reason=exc.code)
                    await self._messages.save(message)
                    logger.warning("send_refused_for_tenant", message_id=message_id, team_id=message.team_id, reason=exc.code)
                else:
                    payload = OutboundPayload.from_message(message, await self._reply_context(message))
                    for recipient in due:
                        async with self._locks.recipient(recipient.id):
                            recipient.mark_pending(now)
                            await self._recipients.save(recipient)
                    self._refresh(message, recipients, now, events)

                    outcomes = await asyncio.gather(
                        *(self._attempt(r, payload, tenant.credentials) for r in due)
                    )
                    failures = [(r, err) for r, err in zip(due, outcomes) if err is not None]
                    now = self._clock()
                    if failures:
                        await self._apply_failures(message, failures, now)
                    self._refresh(message, recipients, now, events)
                    await self._messages.save(message)
                    logger.info(
                        "send_attempted",
                        message_id=message_id,
                        team_id=message.team_id,
                        attempted=len(due),
                        failed=len(failures),
                        status=message.status.value,
                        retry_count=message.retry_count,
                    )
        await self._event_bus.publish_many(events)
        return message

    async def _attempt(
        self,
        recipient: MessageRecipient,
        payload: OutboundPayload,
        credentials: ProviderCredentials,
    ) -> Optional[ProviderError]:
        try:
            provider_message_id = await asyncio.wait_for(
                self._provider.attempt_send(recipient.destination, payload, credentials),
                timeout=self._attempt_timeout,
            )
        except ProviderError as exc:
            return exc
        except asyncio.TimeoutError:
            return TransientProviderError("timeout", f"No provider response within {self._attempt_timeout}s")

        async with self._locks.recipient(recipient.id):
            recipient.mark_sent(provider_message_id, self._clock())
            await self._recipients.save(recipient)
        return None

    async def _apply_failures(self, message: Message, failures: List[Failure], now: datetime) -> None:
        """
        Permanent failures go straight to Failed-Exhausted. Retryable ones
        spend one retry for the message: Failed with a backoff, or
        Failed-Exhausted once the budget is gone.
        """
        retryable = [(r, e) for r, e in failures if self._classifier.is_retryable(e)]
        permanent = [(r, e) for r, e in failures if not self._classifier.is_retryable(e)]
        last = failures[-1][1]
        message.record_failure(last.error_code, last.error_message)

        for recipient, error in permanent:
            logger.warning(
                "provider_permanent_failure",
                message_id=message.id,
                recipient_id=recipient.id,
                error_code=error.error_code,
                error=error.error_message,
            )
            await self._exhaust_recipient(recipient, error.error_code, error.error_message, now)

        if not retryable:
            return
        message.retry_count += 1
        if self._retry_policy.is_exhausted(message.retry_count):
            for recipient, error in retryable:
                await self._exhaust_recipient(recipient, "retry_budget_exhausted", error.error_message, now)
            message.record_failure("retry_budget_exhausted", last.error_message)
            message.next_retry_at = None
            return
        for recipient, error in retryable:
            async with self._locks.recipient(recipient.id):
                recipient.mark_failed(error.error_code, error.error_message, now)
                await self._recipients.save(recipient)
        message.next_retry_at = self._retry_policy.next_retry_at(message.retry_count, now)
        logger.info(
            "retry_scheduled",
            message_id=message.id,
            retry_count=message.retry_count,
            next_retry_at=message.next_retry_at.isoformat(),
            error_code=last.error_code,
        )

    # ---------------------------------------------------------- acknowledgements

    async def acknowledge_sent(self, recipient_id: int, provider_message_id: Optional[str], at: datetime) -> bool:
        return await self._acknowledge(
            recipient_id, lambda r: r.mark_sent(provider_message_id, at), "sent", at
        )

    async def acknowledge_delivery(self, recipient_id: int, at: datetime) -> bool:
        """Forward-only; a Read recipient stays Read."""
        return await self._acknowledge(recipient_id, lambda r: r.acknowledge_delivered(at), "delivered", at)

    async def acknowledge_read(self, recipient_id: int, at: datetime) -> bool:
        """Backfills sent/delivered timestamps when those acks never arrived."""
        return await self._acknowledge(recipient_id, lambda r: r.acknowledge_read(at), "read", at)

    async def _acknowledge(
        self,
        recipient_id: int,
        apply: Callable[[MessageRecipient], bool],
        kind: str,
        at: datetime,
    ) -> bool:
        recipient = await self._recipients.get(recipient_id)
        if recipient is None:
            logger.warning("ack_for_unknown_recipient", recipient_id=recipient_id, ack=kind)
            return False
        events: List[DomainEvent] = []
        async with self._locks.message(recipient.message_id):
            message = await self._load(recipient.message_id)
            async with self._locks.recipient(recipient_id):
                if recipient.status is MessageStatus.FAILED_EXHAUSTED:
                    logger.warning(
                        "ack_ignored_for_exhausted_recipient",
                        message_id=message.id,
                        recipient_id=recipient_id,
                        ack=kind,
                    )
                    return False
                changed = apply(recipient)
                if changed:
                    await self._recipients.save(recipient)
            if changed:
                recipients = await self._recipients.list_for_message(message.id)
                self._refresh(message, recipients, at, events)
                await self._messages.save(message)
        await self._event_bus.publish_many(events)
        return changed

    async def record_async_failure(self, recipient_id: int, error: ProviderError, at: datetime) -> bool:
        """Failure reported after acceptance (provider "failed" status webhook)."""
        recipient = await self._recipients.get(recipient_id)
        if recipient is None:
            logger.warning("failure_for_unknown_recipient", recipient_id=recipient_id, error_code=error.error_code)
            return False
        events: List[DomainEvent] = []
        async with self._locks.message(recipient.message_id):
            message = await self._load(recipient.message_id)
            if recipient.status not in (MessageStatus.PENDING, MessageStatus.SENT):
                logger.info(
                    "late_failure_ignored",
                    message_id=message.id,
                    recipient_id=recipient_id,
                    status=recipient.status.value,
                )
                return False
            failures = [(recipient, error)]
            await self._apply_failures(message, failures, at)
            recipients = await self._recipients.list_for_message(message.id)
            self._refresh(message, recipients, at, events)
            await self._messages.save(message)
        await self._event_bus.publish_many(events)
        return True

    # ------------------------------------------------------------------ admin

    async def abandon(self, message_id: int, actor_id: Optional[str], reason: str = "abandoned") -> Message:
        """Stop a stuck retry chain: unfinished recipients become Failed-Exhausted."""
        events: List[DomainEvent] = []
        async with self._locks.message(message_id):
            message = await self._load(message_id)
            if message.status is MessageStatus.FAILED_EXHAUSTED:
                return message
            if message.status.is_accepted:
                raise InvalidStatusTransitionError(
                    f"Message {message_id} is already {message.status.value}; nothing to abandon"
                )
            now = self._clock()
            recipients = await self._recipients.list_for_message(message_id)
            for recipient in recipients:
                if recipient.needs_attempt:
                    await self._exhaust_recipient(recipient, reason, f"Abandoned by {actor_id}", now)
            message.record_failure(reason, f"Abandoned by {actor_id}")
            if recipients:
                self._refresh(message, recipients, now, events, reason=reason)
            else:
                self._set_status(message, MessageStatus.FAILED_EXHAUSTED, now, events, reason=reason)
            await self._messages.save(message)
            logger.warning("message_abandoned", message_id=message_id, actor_id=actor_id, team_id=message.team_id)
        await self._event_bus.publish_many(events)
        return message

    async def recipient_by_provider_id(self, team_id: Optional[int], provider_message_id: str) -> Optional[MessageRecipient]:
        """Recipient holding a provider message id, only if its message belongs to ``team_id``."""
        recipient = await self._recipients.get_by_provider_message_id(provider_message_id)
        if recipient is None:
            return None
        message = await self._messages.get(recipient.message_id)
        if message is None or message.team_id != team_id:
            logger.warning(
                "provider_id_owned_by_other_team",
                provider_message_id=provider_message_id,
                team_id=team_id,
            )
            return None
        return recipient

    # ---------------------------------------------------------------- helpers

    async def _load(self, message_id: int) -> Message:
        message = await self._messages.get(message_id)
        if message is None:
            raise MessageNotFoundError(f"Message {message_id} not found")
        return message

    async def _exhaust_recipient(
        self,
        recipient: MessageRecipient,
        error_code: Optional[str],
        error_message: Optional[str],
        at: datetime,
    ) -> None:
        async with self._locks.recipient(recipient.id):
            if recipient.mark_exhausted(error_code, error_message, at):
                await self._recipients.save(recipient)

    async def _reply_context(self, message: Message) -> Optional[str]:
        """Provider id of the replied-to message, for the quoted-reply context."""
        if message.reply_to_message_id is None:
            return None
        target = await self._messages.get(message.reply_to_message_id)
        if target is None:
            return None
        if target.provider_message_id:
            return target.provider_message_id
        for recipient in await self._recipients.list_for_message(target.id):
            if recipient.provider_message_id:
                return recipient.provider_message_id
        return None

    def _refresh(
        self,
        message: Message,
        recipients: Sequence[MessageRecipient],
        at: datetime,
        events: List[DomainEvent],
        reason: Optional[str] = None,
    ) -> None:
        self._set_status(message, aggregate_status(r.status for r in recipients), at, events, reason=reason)

    def _set_status(
        self,
        message: Message,
        status: MessageStatus,
        at: datetime,
        events: List[DomainEvent],
        reason: Optional[str] = None,
    ) -> None:
        old = message.status
        if not message.force_status(status, at):
            return
        events.append(
            MessageStatusChanged(
                message_id=message.id,
                conversation_id=message.conversation_id,
                old_status=old,
                new_status=status,
                team_id=message.team_id,
            )
        )
        if status is MessageStatus.FAILED_EXHAUSTED:
            logger.error(
                "message_delivery_exhausted",
                message_id=message.id,
                team_id=message.team_id,
                reason=reason or message.last_error_code,
                error_code=message.last_error_code,
                retry_count=message.retry_count,
            )
            events.append(
                MessageDeliveryExhausted(
                    message_id=message.id,
                    conversation_id=message.conversation_id,
                    reason=reason or message.last_error_code or "failed",
                    error_code=message.last_error_code,
                    retry_count=message.retry_count,
                    team_id=message.team_id,
                )
            )
