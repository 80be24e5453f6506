# src/messaging/domain/exceptions.py
"""
Messaging Domain Exceptions
"""
from __future__ import annotations

from typing import Any, Optional

from fastapi import status

from src.shared.exceptions import ConflictError, DomainError, ForbiddenError, NotFoundError, ValidationError


class WindowClosedError(ConflictError):
    """Raised when a free-form send targets a conversation without an open 24h window."""
    code = "window_closed"


class ConversationArchivedError(ConflictError):
    """Raised when staff send into an archived conversation."""
    code = "conversation_archived"


class NoDriverAssignedError(ValidationError):
    """Individual conversation without a driver reference (data integrity)."""
    code = "no_driver_assigned"


class NoRecipientsError(ValidationError):
    """Raised when a send has nothing to deliver to."""
    code = "no_recipients"


class MessageDeletedError(ConflictError):
    """Raised when react/pin/star/forward targets a soft-deleted message."""
    code = "message_deleted"


class MessageNotFoundError(NotFoundError):
    code = "message_not_found"


class ConversationNotFoundError(NotFoundError):
    code = "conversation_not_found"


class InvalidReplyTargetError(ValidationError):
    """Raised when a reply points at a message of another conversation."""
    code = "invalid_reply_target"


class InvalidMessageContentError(ValidationError):
    """Raised when message content is invalid."""


class InvalidPhoneNumberError(ValidationError):
    """Raised for a phone number that normalizes to nothing."""


class InvalidStatusTransitionError(ConflictError):
    """Raised when a delivery status would move backwards."""


class RetryBudgetExhaustedError(ConflictError):
    """Raised when a message has used up its retry budget."""
    code = "retry_budget_exhausted"


class InvalidWebhookSignatureError(DomainError):
    """Raised when webhook signature is invalid."""
    code = "invalid_signature"
    status_code = status.HTTP_401_UNAUTHORIZED


class WebhookVerificationError(ForbiddenError):
    """Raised when the hub.verify_token handshake fails."""
    code = "verification_failed"


# ───────────────────────────── Provider errors ─────────────────────────────

class ProviderError(DomainError):
    """
    Failure reported by the messaging provider for one send attempt.

    Whether it is retried is decided by an ErrorClassifier, not by the
    raising site; the Transient/Permanent subclasses carry the client's own
    verdict for failures it can judge locally (timeouts, transport errors).
    """
    code = "provider_error"
    status_code = status.HTTP_502_BAD_GATEWAY

    def __init__(
        self,
        error_code: str,
        error_message: str,
        http_status: Optional[int] = None,
        error_data: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(
            f"WhatsApp API Error {error_code}: {error_message}",
            details={"error_code": error_code, "http_status": http_status},
        )
        self.error_code = error_code
        self.error_message = error_message
        self.http_status = http_status
        self.error_data = error_data or {}


class TransientProviderError(ProviderError):
    """Raised on transient failures that may recover (timeouts, throttling, 5xx)."""
    code = "provider_transient"


class PermanentProviderError(ProviderError):
    """Raised on permanent failures that won't recover with retry."""
    code = "provider_permanent"
