import pytest

from src.shared.infrastructure.security.encryption import EncryptionManager
from src.tenancy.application.tenant_registry import TenantRegistry
from src.tenancy.domain.entities.team import RateLimits
from src.tenancy.domain.exceptions import (
    InvalidTenantConfigError,
    TenantInactiveError,
    TenantNotConfiguredError,
    TenantNotFoundError,
)
from src.tenancy.infrastructure.team_repository import InMemoryTeamRepository


@pytest.fixture
def repo():
    return InMemoryTeamRepository()


@pytest.fixture
def registry(repo):
    return TenantRegistry(repo, EncryptionManager(EncryptionManager.generate_key()), default_api_version="v19.0")


async def test_register_stores_token_encrypted(registry, repo):
    tenant = await registry.register(name="Acme", phone_number_id="PNID1", access_token="token-acme", api_version="18. 0")

    team = await repo.get(tenant.team_id)
    assert team.encrypted_access_token != "token-acme"
    assert tenant.credentials.access_token == "token-acme"
    assert tenant.credentials.api_version == "v18.0"
    assert "token-acme" not in repr(tenant)


async def test_default_api_version_and_limits(registry):
    tenant = await registry.register(name="Acme", phone_number_id="PNID1", access_token="t")

    assert tenant.credentials.api_version == "v19.0"
    assert tenant.rate_limits == RateLimits(messages_per_minute=60, messages_per_day=1000)


async def test_lookup_by_phone_number_id(registry):
    tenant = await registry.register(name="Acme", phone_number_id="PNID1", access_token="t")

    assert (await registry.get_by_phone_number_id("PNID1")).team_id == tenant.team_id
    assert await registry.get_by_phone_number_id("PNID9") is None


async def test_missing_and_legacy_teams(registry):
    with pytest.raises(TenantNotFoundError):
        await registry.get(42)
    with pytest.raises(TenantNotConfiguredError):
        await registry.get(None)


async def test_rotation_is_visible_immediately(registry):
    tenant = await registry.register(name="Acme", phone_number_id="PNID1", access_token="old")
    await registry.get(tenant.team_id)

    rotated = await registry.rotate_credentials(tenant.team_id, phone_number_id="PNID1B", access_token="new")

    assert rotated.credentials_version == 2
    assert (await registry.get(tenant.team_id)).credentials.access_token == "new"
    assert (await registry.get_by_phone_number_id("PNID1B")).team_id == tenant.team_id
    assert await registry.get_by_phone_number_id("PNID1") is None


async def test_deactivate_and_reactivate(registry):
    tenant = await registry.register(name="Acme", phone_number_id="PNID1", access_token="t")

    await registry.deactivate(tenant.team_id)
    assert (await registry.get(tenant.team_id)).is_active is False
    with pytest.raises(TenantInactiveError):
        await registry.require_active(tenant.team_id)

    await registry.activate(tenant.team_id)
    assert (await registry.require_active(tenant.team_id)).can_send


async def test_invalid_configuration_is_rejected(registry):
    with pytest.raises(InvalidTenantConfigError):
        await registry.register(name="Acme", phone_number_id="", access_token="t")
    with pytest.raises(InvalidTenantConfigError):
        await registry.register(name="Acme", phone_number_id="PNID1", access_token="t", country_code="+44")
    with pytest.raises(InvalidTenantConfigError):
        RateLimits(messages_per_minute=0)
