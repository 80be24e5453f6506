from src.tenancy.domain.entities.team import ProviderCredentials, RateLimits, Team, TenantContext

__all__ = ["ProviderCredentials", "RateLimits", "Team", "TenantContext"]
