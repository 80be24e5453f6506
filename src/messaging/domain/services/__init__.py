"""Domain services for messaging module."""

from .error_classification import WhatsAppErrorClassifier
from .recipient_resolver import RecipientResolver
from .retry_policy import RetryPolicy
from .session_window_policy import SessionWindowPolicy

__all__ = [
    'RecipientResolver',
    'RetryPolicy',
    'SessionWindowPolicy',
    'WhatsAppErrorClassifier',
]
