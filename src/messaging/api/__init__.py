"""Messaging HTTP surface."""

from src.messaging.api.routes import router

__all__ = ["router"]
