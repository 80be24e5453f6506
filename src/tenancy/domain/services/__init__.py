from src.tenancy.domain.services.rate_limit_policy import RateLimitPolicy, RateLimitResult

__all__ = ["RateLimitPolicy", "RateLimitResult"]
