"""
Configuration Utility - Environment Variables Management

Centralized configuration loading from .env files using pydantic-settings.
Type-safe access to credentials, journal location, polling and retry defaults.

Usage:
    from iojournal.utils.config import settings

    journal_url = settings.JOURNAL_URL
    retry_budget = settings.RETRY_MAX_ELAPSED_MS
"""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings


# Hosts per environment (prod / stage)
CSM_HOST = {
    "prod": "https://csm.adobe.io",
    "stage": "https://csm-stage.adobe.io",
}
INGRESS_HOST = {
    "prod": "https://eg-ingress.adobe.io",
    "stage": "https://eg-ingress-stage.adobe.io",
}
IO_API_HOST = {
    "prod": "https://api.adobe.io",
    "stage": "https://api-stage.adobe.io",
}

# Fallbacks used when no explicit retry / polling configuration is given
DEFAULT_IDLE_INTERVAL_MS = 2000
DEFAULT_SOCKET_TIMEOUT_MS = 30000
DEFAULT_RETRY_MAX_ELAPSED_MS = 60000
DEFAULT_RETRY_INITIAL_DELAY_MS = 100
DEFAULT_RETRY_BACKOFF_MULTIPLIER = 2.0


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Credentials
    IMS_ORG_ID: str = Field(default="")
    ACCESS_TOKEN: str = Field(default="")
    CLIENT_ID: str = Field(default="")
    DELETE_JOURNAL_API_KEY: str | None = Field(default=None)

    # Default ids used by the registration calls
    PROVIDER_ID: str | None = Field(default=None)
    CONSUMER_ID: str | None = Field(default=None)
    APPLICATION_ID: str | None = Field(default=None)

    # Journal
    IO_ENVIRONMENT: str = Field(default="prod")
    JOURNAL_URL: str = Field(default="")

    # Poller Configuration
    POLL_INTERVAL_MS: int | None = Field(default=None, ge=0)
    POLL_LATEST: bool = Field(default=False)
    POLL_RESTART_URL: str | None = Field(default=None)
    DEFAULT_IDLE_INTERVAL_MS: int = Field(default=DEFAULT_IDLE_INTERVAL_MS, ge=0)

    # HTTP / Retry Configuration
    HTTP_TIMEOUT_MS: int = Field(default=DEFAULT_SOCKET_TIMEOUT_MS, gt=0)
    RETRY_MAX_ELAPSED_MS: int = Field(default=DEFAULT_RETRY_MAX_ELAPSED_MS, ge=0)
    RETRY_INITIAL_DELAY_MS: int = Field(default=DEFAULT_RETRY_INITIAL_DELAY_MS, ge=0)
    RETRY_BACKOFF_MULTIPLIER: float = Field(default=DEFAULT_RETRY_BACKOFF_MULTIPLIER, ge=1.0)

    # Logging Configuration
    LOG_LEVEL: str = Field(default="INFO")
    LOG_FORMAT: str = Field(default="json")

    # Application Metadata
    APP_NAME: str = Field(default="iojournal")
    APP_VERSION: str = Field(default="0.1.0")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True

    @property
    def csm_host(self) -> str:
        return CSM_HOST.get(self.IO_ENVIRONMENT, CSM_HOST["prod"])

    @property
    def ingress_host(self) -> str:
        return INGRESS_HOST.get(self.IO_ENVIRONMENT, INGRESS_HOST["prod"])

    @property
    def io_api_host(self) -> str:
        return IO_API_HOST.get(self.IO_ENVIRONMENT, IO_API_HOST["prod"])


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance.

    Returns:
        Singleton Settings instance
    """
    return Settings()


# Global settings instance
settings = get_settings()
