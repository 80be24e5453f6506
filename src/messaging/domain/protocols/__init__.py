# src/messaging/domain/protocols/__init__.py
"""
Messaging Domain Protocols (Repository and Collaborator Interfaces)
"""
from .external_services import ErrorClassifier, ProviderClient
from .repositories import (
    ConversationRepository,
    DriverRepository,
    GroupRepository,
    MessageRepository,
    ReactionRepository,
    RecipientRepository,
)

__all__ = [
    "ConversationRepository",
    "DriverRepository",
    "ErrorClassifier",
    "GroupRepository",
    "MessageRepository",
    "ProviderClient",
    "ReactionRepository",
    "RecipientRepository",
]
