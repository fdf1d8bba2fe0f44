"""Application Configuration — environment-driven settings via pydantic-settings.

Invariants:
    - The API token comes from the environment (never hardcoded)
    - get_settings() is cached (lru_cache): single instance per process

Design Decisions:
    - pydantic-settings over raw os.environ: validation, type coercion, .env file support
    - CURRICULUM_SYNC_ prefix: the engine is embedded in larger apps with their own env
"""

from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Sync engine settings from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="CURRICULUM_SYNC_", env_file=".env", case_sensitive=False,
        extra="ignore",
    )

    # Persistence service
    api_base_url: str = "http://localhost:8000/api/v1"

    @field_validator("api_base_url", mode="before")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        if isinstance(v, str):
            return v.rstrip("/")
        return v

    api_token: str | None = None
    request_timeout_seconds: float = 30
    max_retries: int = 3
    base_delay_ms: int = 500
    max_delay_ms: int = 10_000

    # Commit behaviour
    prune_succeeded_on_partial_failure: bool = True

    # Observability
    log_level: str = "INFO"
    log_format: str = "json"


@lru_cache
def get_settings() -> Settings:
    return Settings()
