"""
App Configuration.

This module defines the process settings using Pydantic Settings.
It loads configuration variables from environment variables and/or a .env file,
ensuring typed and validated settings for the gates service.

Settings are loaded once per process through ``get_settings()`` and passed
explicitly to the clients, the work queue and the processing pipeline.
"""

from functools import lru_cache
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Gates Settings.

    Attributes:
        PROJECT_NAME: The name of the service.
        LOG_LEVEL: Root log level.
        GHAPP_ID: The GitHub App id used as JWT issuer.
        GHAPP_PEMCERTIFICATE: The GitHub App private key (PEM).
        GHAPP_WEBHOOKSECRET: Webhook secret. Signatures are only checked when set.
        GITHUB_API_URL: Base url of the GitHub REST/GraphQL API.
        VALKEY_URL: Connection string of the Valkey server holding the work queues.
        GATES_MAX_TRIES: Remaining-tries budget given to a new envelope (at least 1).
        GATES_RATE_LIMIT_DEFAULT_DELAY_SECONDS: Requeue delay when a rate limit
            response carries no usable reset header.
        GATES_HTTP_MAX_RETRIES: Transport level retries for transient statuses.
        GATES_HTTP_RETRY_SLEEP_BASE: Base of the exponential transport backoff.
        GATES_WORKER_POLL_SECONDS: How often workers poll their queue.
        GATES_QUEUE_VISIBILITY_SECONDS: How long a claimed message stays hidden
            before it is delivered again unless acknowledged.
        GATES_ENABLED: Comma separated names of the gates whose workers start.
    """

    # Core
    PROJECT_NAME: str = "Deployment Gates"
    LOG_LEVEL: str = "INFO"

    # GitHub App
    GHAPP_ID: Optional[str] = None
    GHAPP_PEMCERTIFICATE: Optional[str] = None
    GHAPP_WEBHOOKSECRET: Optional[str] = None
    GITHUB_API_URL: str = "https://api.github.com"

    # Work queue
    VALKEY_URL: str = "valkey://localhost:6379/0"

    # Processing
    GATES_MAX_TRIES: int = Field(10, ge=1)
    GATES_RATE_LIMIT_DEFAULT_DELAY_SECONDS: int = 30
    GATES_HTTP_MAX_RETRIES: int = 3
    GATES_HTTP_RETRY_SLEEP_BASE: float = 2
    GATES_WORKER_POLL_SECONDS: float = 5.0
    GATES_QUEUE_VISIBILITY_SECONDS: float = Field(300, gt=0)
    GATES_ENABLED: str = "deployhours,issues"

    model_config = SettingsConfigDict(
        env_file=".env", env_ignore_empty=True, extra="ignore"
    )

    @property
    def enabled_gates(self) -> List[str]:
        return [name.strip() for name in self.GATES_ENABLED.split(",") if name.strip()]


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load the settings once per process."""
    return Settings()
