# src/config.py

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings

from src.messaging.domain.services.retry_policy import RetryPolicy


class Settings(BaseSettings):
    """
    Central application settings (Pydantic v2).

    - Aliases match the .env keys: APP_NAME, ENV, CONFIG_TTL_SECONDS
    - Everything else is read by field name.
    """

    # ------------------------------------------------------------------------------------
    # App / API
    # ------------------------------------------------------------------------------------
    PROJECT_NAME: str = Field(default="driverconnect-bridge", alias="APP_NAME")
    ENVIRONMENT: str = Field(default="dev", alias="ENV")  # dev|staging|prod
    PROJECT_VERSION: str = Field(default="1.0.0")
    LOG_LEVEL: str = Field(default="INFO")
    LOG_JSON: bool = Field(default=True)

    # ------------------------------------------------------------------------------------
    # Redis (optional; rate-limit counters fall back to process memory)
    # ------------------------------------------------------------------------------------
    REDIS_URL: Optional[str] = Field(default=None)

    # ------------------------------------------------------------------------------------
    # WhatsApp Cloud API
    # ------------------------------------------------------------------------------------
    WHATSAPP_API_BASE_URL: str = Field(default="https://graph.facebook.com")
    WHATSAPP_DEFAULT_API_VERSION: str = Field(default="v18.0")
    WHATSAPP_APP_SECRET: str = Field(default="change-me-app-secret")
    WHATSAPP_VERIFY_TOKEN: str = Field(default="change-me-verify-token")
    PROVIDER_TIMEOUT_SECONDS: float = Field(default=15.0)

    # ------------------------------------------------------------------------------------
    # Delivery retries
    # ------------------------------------------------------------------------------------
    RETRY_MAX_ATTEMPTS: int = Field(default=3, description="Retry budget before Failed-Exhausted")
    RETRY_BASE_SECONDS: float = Field(default=30.0)
    RETRY_MAX_SECONDS: float = Field(default=3600.0)
    RETRY_POLL_INTERVAL_SECONDS: float = Field(default=60.0)
    RETRY_BATCH_SIZE: int = Field(default=50)

    # ------------------------------------------------------------------------------------
    # Conversations
    # ------------------------------------------------------------------------------------
    SESSION_WINDOW_HOURS: int = Field(default=24)
    GROUP_RELAY_ENABLED: bool = Field(default=False)

    # ------------------------------------------------------------------------------------
    # Tenancy / Security
    # ------------------------------------------------------------------------------------
    TENANT_CACHE_TTL_SECONDS: int = Field(default=60, alias="CONFIG_TTL_SECONDS")
    ENCRYPTION_KEY: Optional[str] = Field(default=None, description="Fernet key for stored access tokens")

    # ------------------------------------------------------------------------------------
    # Feature Flags / Misc
    # ------------------------------------------------------------------------------------
    TESTING: bool = Field(default=False)
    ENABLE_RETRY_WORKER: bool = Field(default=True)

    # ------------------------------------------------------------------------------------
    # Helper properties
    # ------------------------------------------------------------------------------------
    @property
    def is_dev(self) -> bool:
        return self.ENVIRONMENT.lower() in {"dev", "development", "local"}

    @property
    def is_prod(self) -> bool:
        return self.ENVIRONMENT.lower() in {"prod", "production"}

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.RETRY_MAX_ATTEMPTS,
            base_seconds=self.RETRY_BASE_SECONDS,
            max_seconds=self.RETRY_MAX_SECONDS,
        )

    # ------------------------------------------------------------------------------------
    # Pydantic v2 settings config
    # ------------------------------------------------------------------------------------
    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": True,
        "populate_by_name": True,   # enable aliases
        "extra": "ignore",          # don't crash on unrelated env keys
    }


@lru_cache()
def get_settings() -> Settings:
    return Settings()
