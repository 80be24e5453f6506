# src/messaging/domain/entities/__init__.py
"""
Messaging Domain Entities
"""
from .conversation import Conversation
from .driver import Driver
from .group import Group, GroupParticipant
from .message import Message, ReplySnapshot
from .reaction import Reaction
from .recipient import MessageRecipient

__all__ = [
    "Conversation",
    "Driver",
    "Group",
    "GroupParticipant",
    "Message",
    "MessageRecipient",
    "Reaction",
    "ReplySnapshot",
]
