# src/dependencies.py
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Callable, Optional

import redis.asyncio as redis
from fastapi import Depends, Header, Request

from src.config import Settings
from src.messaging.application.services.conversation_orchestrator import ConversationOrchestrator
from src.messaging.application.services.delivery_state_machine import DeliveryStateMachine
from src.messaging.application.services.message_interactions import MessageInteractionEngine
from src.messaging.application.services.webhook_service import WebhookService
from src.messaging.application.worker.retry_scheduler import RetryScheduler
from src.messaging.domain.protocols import ErrorClassifier, ProviderClient
from src.messaging.domain.services import RecipientResolver, SessionWindowPolicy, WhatsAppErrorClassifier
from src.messaging.infrastructure.entity_locks import EntityLockManager
from src.messaging.infrastructure.repositories.in_memory import (
    InMemoryConversationRepository,
    InMemoryDriverRepository,
    InMemoryGroupRepository,
    InMemoryMessageRepository,
    InMemoryReactionRepository,
    InMemoryRecipientRepository,
)
from src.messaging.infrastructure.whatsapp_client import WhatsAppCloudClient
from src.shared.domain.base_entity import utc_now
from src.shared.infrastructure.messaging.event_bus import EventBus
from src.shared.infrastructure.security.encryption import EncryptionManager
from src.tenancy.application.tenant_registry import TenantRegistry
from src.tenancy.domain.entities.team import TenantContext
from src.tenancy.domain.protocols import RateLimitCounter
from src.tenancy.domain.services.rate_limit_policy import RateLimitPolicy
from src.tenancy.infrastructure.cache import InMemoryTTLCache
from src.tenancy.infrastructure.rate_limit_counter import InMemoryRateLimitCounter, RedisRateLimitCounter
from src.tenancy.infrastructure.team_repository import InMemoryTeamRepository


class Container:
    """
    Application object graph.

    One instance per process, stored on `app.state.container`. Tests build
    their own with a scripted provider client and a fixed clock.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        provider: Optional[ProviderClient] = None,
        classifier: Optional[ErrorClassifier] = None,
        counter: Optional[RateLimitCounter] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.settings = settings
        self.clock = clock
        self.event_bus = EventBus()
        self.locks = EntityLockManager()
        self.redis: Optional[redis.Redis] = None

        # tenancy
        self.teams = InMemoryTeamRepository()
        self.tenants = TenantRegistry(
            self.teams,
            EncryptionManager(settings.ENCRYPTION_KEY),
            InMemoryTTLCache(ttl_seconds=settings.TENANT_CACHE_TTL_SECONDS),
            default_api_version=settings.WHATSAPP_DEFAULT_API_VERSION,
        )
        if counter is None:
            if settings.REDIS_URL:
                self.redis = redis.from_url(settings.REDIS_URL, decode_responses=True)
                counter = RedisRateLimitCounter(self.redis)
            else:
                counter = InMemoryRateLimitCounter()
        self.rate_limits = RateLimitPolicy(counter)

        # messaging stores
        self.conversations = InMemoryConversationRepository()
        self.messages = InMemoryMessageRepository()
        self.recipients = InMemoryRecipientRepository()
        self.reactions = InMemoryReactionRepository()
        self.drivers = InMemoryDriverRepository()
        self.groups = InMemoryGroupRepository()

        # messaging services
        self.provider = provider or WhatsAppCloudClient(
            base_url=settings.WHATSAPP_API_BASE_URL,
            timeout=settings.PROVIDER_TIMEOUT_SECONDS,
        )
        self.delivery = DeliveryStateMachine(
            messages=self.messages,
            recipients=self.recipients,
            provider=self.provider,
            classifier=classifier or WhatsAppErrorClassifier(),
            tenants=self.tenants,
            retry_policy=settings.retry_policy(),
            locks=self.locks,
            event_bus=self.event_bus,
            attempt_timeout_seconds=settings.PROVIDER_TIMEOUT_SECONDS,
            clock=clock,
        )
        self.orchestrator = ConversationOrchestrator(
            conversations=self.conversations,
            messages=self.messages,
            drivers=self.drivers,
            groups=self.groups,
            window_policy=SessionWindowPolicy(timedelta(hours=settings.SESSION_WINDOW_HOURS)),
            resolver=RecipientResolver(self.drivers, self.groups),
            delivery=self.delivery,
            rate_limits=self.rate_limits,
            locks=self.locks,
            event_bus=self.event_bus,
            group_relay_enabled=settings.GROUP_RELAY_ENABLED,
            clock=clock,
        )
        self.interactions = MessageInteractionEngine(
            messages=self.messages,
            reactions=self.reactions,
            orchestrator=self.orchestrator,
            locks=self.locks,
            event_bus=self.event_bus,
            clock=clock,
        )
        self.webhooks = WebhookService(
            tenants=self.tenants,
            orchestrator=self.orchestrator,
            interactions=self.interactions,
            delivery=self.delivery,
            drivers=self.drivers,
            app_secret=settings.WHATSAPP_APP_SECRET,
            verify_token=settings.WHATSAPP_VERIFY_TOKEN,
            clock=clock,
        )
        self.retry_scheduler = RetryScheduler(
            messages=self.messages,
            delivery=self.delivery,
            poll_interval=settings.RETRY_POLL_INTERVAL_SECONDS,
            batch_size=settings.RETRY_BATCH_SIZE,
            clock=clock,
        )

    async def aclose(self) -> None:
        await self.retry_scheduler.stop()
        close = getattr(self.provider, "aclose", None)
        if close is not None:
            await close()
        if self.redis is not None:
            await self.redis.aclose()


# --- FastAPI dependencies ---
def get_container(request: Request) -> Container:
    return request.app.state.container


async def get_tenant(
    x_team_id: Optional[int] = Header(None, alias="X-Team-Id"),
    container: Container = Depends(get_container),
) -> TenantContext:
    """Tenant from the X-Team-Id header; a missing header means no team (403)."""
    return await container.tenants.get(x_team_id)


def get_orchestrator(container: Container = Depends(get_container)) -> ConversationOrchestrator:
    return container.orchestrator


def get_interactions(container: Container = Depends(get_container)) -> MessageInteractionEngine:
    return container.interactions


def get_webhook_service(container: Container = Depends(get_container)) -> WebhookService:
    return container.webhooks
