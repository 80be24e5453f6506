# src/tenancy/domain/exceptions.py
"""
Tenancy Domain Exceptions
"""
from src.shared.exceptions import ForbiddenError, NotFoundError, RateLimitedError, ValidationError


class TenantNotFoundError(NotFoundError):
    """Raised when no team exists for the given id or phone number id."""
    code = "tenant_not_found"


class TenantInactiveError(ForbiddenError):
    """Raised when a deactivated team attempts to send."""
    code = "tenant_inactive"


class TenantNotConfiguredError(ForbiddenError):
    """Raised for legacy records that belong to no team (no sending capability)."""
    code = "tenant_not_configured"


class TenantMismatchError(ForbiddenError):
    """Raised when a caller touches a conversation or message of another team."""
    code = "tenant_mismatch"


class RateLimitExceededError(RateLimitedError):
    """Raised when a team exceeds its messages/minute or messages/day limit."""

    def __init__(self, message: str, *, retry_after_seconds: int, window: str) -> None:
        super().__init__(
            message,
            details={"retry_after_seconds": retry_after_seconds, "window": window},
        )
        self.retry_after_seconds = retry_after_seconds
        self.window = window


class InvalidTenantConfigError(ValidationError):
    """Raised when team credentials or limits are malformed."""
