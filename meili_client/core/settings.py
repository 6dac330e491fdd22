"""Client settings and lazy settings loader."""

from __future__ import annotations

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration for `MeiliClient.from_settings()`.

    The task and token services never read this directly; they take explicit
    arguments so they stay usable without an environment.
    """

    model_config = SettingsConfigDict(
        env_file=(".env", "env.example"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    MEILI_URL: str
    MEILI_API_KEY: str | None = None
    LOG_LEVEL: str = "INFO"

    # Task waiting
    TASK_POLL_INTERVAL_MS: int = 50
    TASK_WAIT_TIMEOUT_S: float | None = None

    # HTTP transport
    HTTP_TIMEOUT_S: float = 10.0
    HTTP_MAX_RETRIES: int = 3
    HTTP_RETRY_ON_STATUS: list[int] = [502, 503, 504]
    HTTP_DISABLE_RETRY: bool = False

    # Tenant tokens: name used to find the signing key when none is passed
    DEFAULT_ADMIN_KEY_NAME: str = "Default Admin API Key"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached Settings instance (lazy-loaded)."""
    # Lazy-load to avoid import-time crashes in tooling/tests when env isn't set yet.
    return Settings()
