"""
Domain Event Bus
In-memory bus that fans state-change events out to subscribers
(live-update transport, operator alerts, audit sinks)
"""
from __future__ import annotations

from collections import defaultdict
from typing import Awaitable, Callable

from src.shared.domain.domain_event import DomainEvent
from src.shared.infrastructure.observability.logger import get_logger

logger = get_logger(__name__)

EventHandler = Callable[[DomainEvent], Awaitable[None]]

ALL_EVENTS = "*"


class EventBus:
    """
    In-memory event bus for domain event publication and subscription.

    Delivery is best-effort: a failing handler is logged and the remaining
    handlers still run. Publishers never see handler errors, so no state
    transition depends on a subscriber succeeding.

    Attributes:
        _handlers: Dictionary mapping event type names to handler lists
    """

    def __init__(self) -> None:
        self._handlers: dict[str, list[EventHandler]] = defaultdict(list)

    def subscribe(self, event_type: str, handler: EventHandler) -> None:
        """
        Subscribe a handler to an event type.

        Args:
            event_type: Event class name, or "*" for every event
            handler: Async callable that accepts the event

        Example:
            async def push_to_clients(event: MessageStatusChanged): ...

            event_bus.subscribe("MessageStatusChanged", push_to_clients)
        """
        self._handlers[event_type].append(handler)
        logger.debug("handler_subscribed", event_type=event_type, handler=getattr(handler, "__name__", repr(handler)))

    def unsubscribe(self, event_type: str, handler: EventHandler) -> None:
        if handler in self._handlers.get(event_type, []):
            self._handlers[event_type].remove(handler)

    async def publish(self, event: DomainEvent) -> None:
        """Publish a domain event to all subscribed handlers."""
        event_type = event.event_type
        handlers = [*self._handlers.get(event_type, []), *self._handlers.get(ALL_EVENTS, [])]

        if not handlers:
            logger.debug("no_handlers_for_event", event_type=event_type, event_id=str(event.event_id))
            return

        for handler in handlers:
            try:
                await handler(event)
            except Exception as e:
                # Continue processing other handlers even if one fails
                logger.error(
                    "event_handler_failed",
                    handler=getattr(handler, "__name__", repr(handler)),
                    event_type=event_type,
                    event_id=str(event.event_id),
                    error=str(e),
                )

    async def publish_many(self, events: list[DomainEvent]) -> None:
        for event in events:
            await self.publish(event)

    def clear_handlers(self, event_type: str | None = None) -> None:
        if event_type:
            self._handlers[event_type].clear()
        else:
            self._handlers.clear()
