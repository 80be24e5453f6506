"""
Tenant Registry
Keyed lookup of team credentials, country code and rate limits.
"""
from __future__ import annotations

import asyncio
from typing import Optional

from src.shared.infrastructure.observability.logger import get_logger
from src.shared.infrastructure.security.encryption import EncryptionManager
from src.tenancy.domain.entities.team import ProviderCredentials, RateLimits, Team, TenantContext
from src.tenancy.domain.exceptions import (
    TenantInactiveError,
    TenantNotConfiguredError,
    TenantNotFoundError,
)
from src.tenancy.domain.protocols import TeamRepository
from src.tenancy.infrastructure.cache import InMemoryTTLCache

logger = get_logger(__name__)

_BY_ID = "team"
_BY_PHONE_NUMBER_ID = "phone_number_id"


class TenantRegistry:
    """
    Source of TenantContext snapshots for every send and webhook.

    Snapshots are cached per team id and per provider phone-number id for
    `ttl_seconds`; every write invalidates both keys so a credential rotation
    or deactivation is visible to the next lookup in this process.
    """

    def __init__(
        self,
        repository: TeamRepository,
        encryption: EncryptionManager,
        cache: InMemoryTTLCache | None = None,
        default_api_version: str = "v18.0",
    ) -> None:
        self._repo = repository
        self._encryption = encryption
        self._cache = cache or InMemoryTTLCache()
        self._default_api_version = default_api_version
        self._write_lock = asyncio.Lock()

    # ------------------------------------------------------------------ reads

    async def get(self, team_id: Optional[int]) -> TenantContext:
        """
        Resolve a team snapshot.

        Raises:
            TenantNotConfiguredError: team_id is None (legacy/global record)
            TenantNotFoundError: no such team
        """
        if team_id is None:
            raise TenantNotConfiguredError("Record belongs to no team; sending is unavailable")
        cached = self._cache.get(_BY_ID, team_id)
        if cached is not None:
            return cached
        team = await self._repo.get(team_id)
        if team is None:
            raise TenantNotFoundError(f"Team {team_id} not found")
        return self._remember(team)

    async def require_active(self, team_id: Optional[int]) -> TenantContext:
        """Like get(), but refuses deactivated teams."""
        tenant = await self.get(team_id)
        if not tenant.is_active:
            raise TenantInactiveError(f"Team {tenant.team_id} is deactivated")
        return tenant

    async def get_by_phone_number_id(self, phone_number_id: str) -> Optional[TenantContext]:
        """Webhook lookup: which team owns this provider phone number."""
        cached = self._cache.get(_BY_PHONE_NUMBER_ID, phone_number_id)
        if cached is not None:
            return cached
        team = await self._repo.get_by_phone_number_id(phone_number_id)
        if team is None:
            return None
        return self._remember(team)

    # ----------------------------------------------------------------- writes

    async def register(
        self,
        *,
        name: str,
        phone_number_id: str,
        access_token: str,
        business_account_id: Optional[str] = None,
        api_version: Optional[str] = None,
        country_code: str = "44",
        whatsapp_phone_number: Optional[str] = None,
        rate_limits: RateLimits | None = None,
    ) -> TenantContext:
        async with self._write_lock:
            team = Team(
                name=name,
                phone_number_id=phone_number_id,
                encrypted_access_token=self._encryption.encrypt(access_token),
                business_account_id=business_account_id,
                api_version=api_version or self._default_api_version,
                country_code=country_code,
                whatsapp_phone_number=whatsapp_phone_number,
                rate_limits=rate_limits,
            )
            team = await self._repo.add(team)
            logger.info("team_registered", team_id=team.id, phone_number_id=phone_number_id)
            return self._remember(team)

    async def rotate_credentials(
        self,
        team_id: int,
        *,
        phone_number_id: str,
        access_token: str,
        business_account_id: Optional[str] = None,
        api_version: Optional[str] = None,
    ) -> TenantContext:
        """Swap the team's single credential set for a new one."""
        async with self._write_lock:
            team = await self._load(team_id)
            old_phone_number_id = team.phone_number_id
            team.rotate_credentials(
                phone_number_id=phone_number_id,
                encrypted_access_token=self._encryption.encrypt(access_token),
                business_account_id=business_account_id or team.business_account_id,
                api_version=api_version or team.api_version,
            )
            await self._repo.save(team)
            self._cache.invalidate(_BY_PHONE_NUMBER_ID, old_phone_number_id)
            self.invalidate(team)
            logger.info(
                "team_credentials_rotated",
                team_id=team.id,
                credentials_version=team.credentials_version,
            )
            return self._remember(team)

    async def update_rate_limits(self, team_id: int, rate_limits: RateLimits) -> TenantContext:
        async with self._write_lock:
            team = await self._load(team_id)
            team.rate_limits = rate_limits
            team.mark_updated()
            await self._repo.save(team)
            self.invalidate(team)
            return self._remember(team)

    async def deactivate(self, team_id: int) -> TenantContext:
        """Halt all sends for the team; history is preserved."""
        async with self._write_lock:
            team = await self._load(team_id)
            team.deactivate()
            await self._repo.save(team)
            self.invalidate(team)
            logger.warning("team_deactivated", team_id=team.id)
            return self._remember(team)

    async def activate(self, team_id: int) -> TenantContext:
        async with self._write_lock:
            team = await self._load(team_id)
            team.activate()
            await self._repo.save(team)
            self.invalidate(team)
            logger.info("team_activated", team_id=team.id)
            return self._remember(team)

    def invalidate(self, team: Team) -> None:
        self._cache.invalidate(_BY_ID, team.id)
        self._cache.invalidate(_BY_PHONE_NUMBER_ID, team.phone_number_id)

    # ---------------------------------------------------------------- helpers

    async def _load(self, team_id: int) -> Team:
        team = await self._repo.get(team_id)
        if team is None:
            raise TenantNotFoundError(f"Team {team_id} not found")
        return team

    def _remember(self, team: Team) -> TenantContext:
        context = TenantContext(
            team_id=team.id,
            name=team.name,
            credentials=ProviderCredentials(
                phone_number_id=team.phone_number_id,
                access_token=self._encryption.decrypt(team.encrypted_access_token),
                business_account_id=team.business_account_id,
                api_version=team.api_version,
            ),
            country_code=team.country_code,
            rate_limits=team.rate_limits,
            is_active=team.is_active,
            credentials_version=team.credentials_version,
        )
        self._cache.set(_BY_ID, team.id, context)
        self._cache.set(_BY_PHONE_NUMBER_ID, team.phone_number_id, context)
        return context
