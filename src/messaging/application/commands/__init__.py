"""Application commands for messaging."""
from .receive_message_command import ReceiveMessageCommand
from .send_message_command import SendMessageCommand

__all__ = ["ReceiveMessageCommand", "SendMessageCommand"]
