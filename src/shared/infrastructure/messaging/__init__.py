"""
Shared Messaging Infrastructure
"""
from src.shared.infrastructure.messaging.event_bus import ALL_EVENTS, EventBus

__all__ = ["ALL_EVENTS", "EventBus"]
