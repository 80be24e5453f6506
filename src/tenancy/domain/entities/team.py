"""
Team (tenant) Entity
A team owns its drivers, groups and conversations, and holds exactly one
active set of WhatsApp Business credentials.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from src.shared.domain.base_entity import BaseEntity
from src.tenancy.domain.exceptions import InvalidTenantConfigError


@dataclass(frozen=True, slots=True)
class RateLimits:
    """Per-team outbound limits."""
    messages_per_minute: int = 60
    messages_per_day: int = 1000

    def __post_init__(self) -> None:
        if self.messages_per_minute <= 0 or self.messages_per_day <= 0:
            raise InvalidTenantConfigError("Rate limits must be positive")


@dataclass(frozen=True, slots=True)
class ProviderCredentials:
    """Decrypted credential set handed to the provider client."""
    phone_number_id: str
    access_token: str = field(repr=False)
    business_account_id: Optional[str] = None
    api_version: str = "v18.0"


@dataclass(frozen=True, slots=True)
class TenantContext:
    """
    Immutable snapshot of a team, passed explicitly into every orchestrator
    call. Never cached process-wide outside the registry.
    """
    team_id: int
    name: str
    credentials: ProviderCredentials
    country_code: str
    rate_limits: RateLimits
    is_active: bool
    credentials_version: int

    @property
    def can_send(self) -> bool:
        return self.is_active and bool(self.credentials.access_token)


class Team(BaseEntity):
    """
    Tenant aggregate.

    The access token is stored encrypted; the registry decrypts it when it
    builds a TenantContext. Credential fields are only ever replaced together
    (see rotate_credentials) so a reader never observes a mixed set.
    """

    def __init__(
        self,
        name: str,
        phone_number_id: str,
        encrypted_access_token: str,
        business_account_id: Optional[str] = None,
        api_version: str = "v18.0",
        country_code: str = "44",
        whatsapp_phone_number: Optional[str] = None,
        rate_limits: RateLimits | None = None,
        is_active: bool = True,
        credentials_version: int = 1,
        id: int | None = None,
        created_at: datetime | None = None,
        updated_at: datetime | None = None,
    ) -> None:
        super().__init__(id, created_at, updated_at)
        if not phone_number_id:
            raise InvalidTenantConfigError("phone_number_id is required")
        if not country_code.isdigit() or len(country_code) > 3:
            raise InvalidTenantConfigError(f"Invalid country code: {country_code!r}")
        self.name = name
        self.phone_number_id = phone_number_id
        self.encrypted_access_token = encrypted_access_token
        self.business_account_id = business_account_id
        self.api_version = _normalize_api_version(api_version)
        self.country_code = country_code
        self.whatsapp_phone_number = whatsapp_phone_number
        self.rate_limits = rate_limits or RateLimits()
        self.is_active = is_active
        self.credentials_version = credentials_version

    def rotate_credentials(
        self,
        *,
        phone_number_id: str,
        encrypted_access_token: str,
        business_account_id: Optional[str],
        api_version: str,
        at: datetime | None = None,
    ) -> None:
        """Replace the whole credential set and bump its version."""
        if not phone_number_id:
            raise InvalidTenantConfigError("phone_number_id is required")
        self.phone_number_id = phone_number_id
        self.encrypted_access_token = encrypted_access_token
        self.business_account_id = business_account_id
        self.api_version = _normalize_api_version(api_version)
        self.credentials_version += 1
        self.mark_updated(at)

    def deactivate(self, at: datetime | None = None) -> None:
        self.is_active = False
        self.mark_updated(at)

    def activate(self, at: datetime | None = None) -> None:
        self.is_active = True
        self.mark_updated(at)


def _normalize_api_version(value: str) -> str:
    # stored values like "18. 0" or "18.0" become "v18.0"
    cleaned = value.replace(" ", "").lstrip("vV")
    if not cleaned:
        raise InvalidTenantConfigError("api_version is required")
    return f"v{cleaned}"
