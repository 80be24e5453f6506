"""
Webhook Service
Processes WhatsApp Cloud API webhooks: inbound messages and delivery statuses.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from src.messaging.application.commands import ReceiveMessageCommand
from src.messaging.application.services.conversation_orchestrator import ConversationOrchestrator
from src.messaging.application.services.delivery_state_machine import DeliveryStateMachine
from src.messaging.application.services.message_interactions import MessageInteractionEngine
from src.messaging.domain.exceptions import (
    InvalidWebhookSignatureError,
    ProviderError,
    WebhookVerificationError,
)
from src.messaging.domain.protocols import DriverRepository
from src.messaging.domain.value_objects.message_status import MessageType
from src.messaging.domain.value_objects.phone_number import extract_phone_from_wa_id, normalize_phone
from src.messaging.domain.value_objects.reactor import Reactor
from src.messaging.domain.value_objects.webhook_signature import WebhookSignature
from src.shared.domain.base_entity import utc_now
from src.shared.exceptions import DomainError
from src.shared.infrastructure.observability.logger import bind_context, get_logger
from src.tenancy.application.tenant_registry import TenantRegistry
from src.tenancy.domain.entities.team import TenantContext

logger = get_logger(__name__)

_MEDIA_TYPES = {
    "image": MessageType.IMAGE,
    "document": MessageType.DOCUMENT,
    "audio": MessageType.AUDIO,
    "voice": MessageType.AUDIO,
    "video": MessageType.VIDEO,
}


@dataclass
class WebhookResult:
    """Counts for one webhook delivery."""
    messages: int = 0
    reactions: int = 0
    statuses: int = 0
    ignored: int = 0


class WebhookService:
    """
    Service for processing WhatsApp webhooks.

    Handles verification, envelope parsing and routing: messages go to the
    orchestrator, reactions to the interaction engine, statuses to the
    delivery state machine (by provider message id). A bad item is logged
    and skipped so one malformed entry cannot make the provider redeliver
    the whole batch forever; redelivery is safe anyway since inbound
    messages are deduplicated on their provider id.
    """

    def __init__(
        self,
        tenants: TenantRegistry,
        orchestrator: ConversationOrchestrator,
        interactions: MessageInteractionEngine,
        delivery: DeliveryStateMachine,
        drivers: DriverRepository,
        app_secret: str,
        verify_token: str,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._tenants = tenants
        self._orchestrator = orchestrator
        self._interactions = interactions
        self._delivery = delivery
        self._drivers = drivers
        self._app_secret = app_secret
        self._verify_token = verify_token
        self._clock = clock

    # ----------------------------------------------------------- verification

    def verify_subscription(self, mode: Optional[str], token: Optional[str], challenge: Optional[str]) -> str:
        """hub.mode / hub.verify_token / hub.challenge handshake."""
        if mode == "subscribe" and token and token == self._verify_token and challenge is not None:
            return challenge
        logger.warning("webhook_verification_failed", mode=mode)
        raise WebhookVerificationError("Webhook verification token mismatch")

    def verify_signature(self, payload: bytes, signature: Optional[str]) -> None:
        """
        Verify WhatsApp webhook signature.

        Args:
            payload: Raw request body
            signature: X-Hub-Signature-256 header value

        Raises:
            InvalidWebhookSignatureError: missing or wrong signature
        """
        if not signature or not WebhookSignature(signature).is_valid(payload, self._app_secret):
            logger.warning("webhook_signature_invalid")
            raise InvalidWebhookSignatureError("Webhook signature missing or invalid")

    # ------------------------------------------------------------- processing

    async def process_webhook(self, payload: Dict[str, Any]) -> WebhookResult:
        """Process incoming webhook payload (entry[].changes[].value)."""
        result = WebhookResult()
        for entry in payload.get("entry") or []:
            for change in (entry or {}).get("changes") or []:
                value = (change or {}).get("value") or {}
                phone_number_id = (value.get("metadata") or {}).get("phone_number_id")
                tenant = await self._tenants.get_by_phone_number_id(phone_number_id) if phone_number_id else None
                if tenant is None:
                    logger.warning("webhook_for_unknown_phone_number", phone_number_id=phone_number_id)
                    result.ignored += len(value.get("messages") or []) + len(value.get("statuses") or [])
                    continue
                bind_context(team_id=tenant.team_id)
                names = {
                    c.get("wa_id"): (c.get("profile") or {}).get("name")
                    for c in value.get("contacts") or []
                    if isinstance(c, dict)
                }
                for message in value.get("messages") or []:
                    await self._guarded(result, self._process_message, tenant, message, names)
                for status in value.get("statuses") or []:
                    await self._guarded(result, self._process_status_update, tenant, status)
        logger.info(
            "webhook_processed",
            messages=result.messages,
            reactions=result.reactions,
            statuses=result.statuses,
            ignored=result.ignored,
        )
        return result

    async def _guarded(self, result: WebhookResult, handler, *args) -> None:
        try:
            kind = await handler(*args)
        except DomainError as exc:
            logger.warning("webhook_item_rejected", code=exc.code, error=exc.message)
            kind = None
        except Exception as exc:
            logger.exception("webhook_item_failed", error_type=exc.__class__.__name__)
            kind = None
        if kind is None:
            result.ignored += 1
        else:
            setattr(result, kind, getattr(result, kind) + 1)

    async def _process_message(
        self,
        tenant: TenantContext,
        message: Dict[str, Any],
        names: Dict[str, Optional[str]],
    ) -> Optional[str]:
        """Returns the WebhookResult counter to bump, or None when skipped."""
        wa_message_id = message.get("id")
        message_type = message.get("type")
        from_number = str(message.get("from", ""))
        timestamp = self._timestamp(message.get("timestamp"))

        if message_type == "reaction":
            return await self._process_reaction(tenant, from_number, message.get("reaction") or {})

        extracted = self._extract_content(str(message_type), message)
        if extracted is None:
            logger.info("inbound_type_unsupported", type=message_type, wa_message_id=wa_message_id)
            return None
        content_type, content, extra = extracted

        command = ReceiveMessageCommand(
            from_phone=from_number,
            timestamp=timestamp,
            content=content,
            message_type=content_type,
            provider_message_id=wa_message_id,
            sender_name=names.get(from_number),
            whatsapp_group_id=message.get("group_id"),
            participant_phone=message.get("participant"),
            reply_to_provider_message_id=(message.get("context") or {}).get("id"),
            payload=extra,
        )
        stored = await self._orchestrator.receive_inbound(tenant, command)
        return "messages" if stored is not None else None

    async def _process_reaction(self, tenant: TenantContext, from_number: str, reaction: Dict[str, Any]) -> Optional[str]:
        target_id = reaction.get("message_id")
        target = await self._orchestrator.find_by_provider_message_id(tenant, target_id) if target_id else None
        phone = normalize_phone(extract_phone_from_wa_id(from_number), tenant.country_code)
        driver = await self._drivers.get_by_phone(tenant.team_id, phone) if phone else None
        if target is None or driver is None:
            logger.info("inbound_reaction_unmatched", target=target_id, known_sender=driver is not None)
            return None
        reactor = Reactor.driver(driver.id)
        emoji = reaction.get("emoji") or ""
        if emoji:
            await self._interactions.react(tenant, target.id, reactor, emoji)
        else:
            # an empty emoji is the provider's "reaction removed"
            await self._interactions.remove_reaction(tenant, target.id, reactor)
        return "reactions"

    @staticmethod
    def _extract_content(message_type: str, message: Dict[str, Any]):
        """Map a Cloud API message to (type, content, payload); None if unsupported."""
        if message_type == "text":
            body = (message.get("text") or {}).get("body") or ""
            return (MessageType.TEXT, body, {}) if body.strip() else None

        if message_type in _MEDIA_TYPES:
            media = message.get(message_type) or {}
            extra = {
                "media_id": media.get("id"),
                "mime_type": media.get("mime_type"),
            }
            if media.get("filename"):
                extra["filename"] = media["filename"]
            return _MEDIA_TYPES[message_type], media.get("caption", "") or "", extra

        if message_type == "location":
            location = message.get("location") or {}
            label = location.get("name") or location.get("address") or ""
            extra = {k: location.get(k) for k in ("latitude", "longitude", "name", "address") if k in location}
            return MessageType.LOCATION, label, extra

        if message_type == "contacts":
            contacts = message.get("contacts") or []
            first = (contacts[0].get("name") or {}).get("formatted_name", "") if contacts else ""
            return MessageType.CONTACTS, first, {"contacts": contacts}

        if message_type == "button":
            button = message.get("button") or {}
            text = button.get("text") or ""
            return (MessageType.TEXT, text, {"button_payload": button.get("payload")}) if text else None

        if message_type == "interactive":
            interactive = message.get("interactive") or {}
            reply = interactive.get(interactive.get("type") or "") or {}
            title = reply.get("title") or ""
            return (MessageType.TEXT, title, {"reply_id": reply.get("id")}) if title else None

        return None

    async def _process_status_update(self, tenant: TenantContext, status: Dict[str, Any]) -> Optional[str]:
        """Process delivery status update (sent, delivered, read, failed)."""
        wa_message_id = status.get("id")
        status_type = status.get("status")
        at = self._timestamp(status.get("timestamp"))

        recipient = await self._delivery.recipient_by_provider_id(tenant.team_id, wa_message_id) if wa_message_id else None
        if recipient is None:
            logger.info("status_for_unknown_message", wa_message_id=wa_message_id, status=status_type)
            return None

        if status_type == "sent":
            changed = await self._delivery.acknowledge_sent(recipient.id, wa_message_id, at)
        elif status_type == "delivered":
            changed = await self._delivery.acknowledge_delivery(recipient.id, at)
        elif status_type == "read":
            changed = await self._delivery.acknowledge_read(recipient.id, at)
        elif status_type == "failed":
            first_error = (status.get("errors") or [{}])[0] or {}
            error = ProviderError(
                str(first_error.get("code", "unknown")),
                first_error.get("title") or first_error.get("message") or "Delivery failed",
            )
            changed = await self._delivery.record_async_failure(recipient.id, error, at)
        else:
            logger.info("status_type_unsupported", status=status_type)
            return None
        logger.debug("status_applied", recipient_id=recipient.id, status=status_type, changed=changed)
        return "statuses"

    def _timestamp(self, raw: Any) -> datetime:
        try:
            return datetime.fromtimestamp(int(raw), tz=timezone.utc)
        except (TypeError, ValueError):
            return self._clock()
