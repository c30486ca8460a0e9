"""
Library Configuration - Pydantic Settings for type-safe config.

NO DICTIONARIES - All configuration is strongly typed.
FAIL FAST - Invalid config is rejected when Settings is built.
"""

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_BASE_URL = "https://aircrew24-admin.vercel.app"


class ConfigurationError(Exception):
    """Raised when configuration is missing or invalid."""

    pass


class Settings(BaseSettings):
    """SubscriptionKit settings loaded from SUBSCRIPTIONKIT_* environment variables."""

    # Remote API
    base_url: str = DEFAULT_BASE_URL
    # None leaves the httpx transport default in place
    request_timeout_seconds: float | None = None

    # Local cache
    cache_ttl_seconds: int = 300  # 5 minutes

    # Identity
    anonymous_id_prefix: str = "$anonymous_"

    # Persistent storage (None = in-memory only)
    storage_path: str | None = None

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"  # json or console
    library_name: str = "subscriptionkit"

    model_config = SettingsConfigDict(
        env_prefix="SUBSCRIPTIONKIT_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @model_validator(mode="after")
    def validate_config(self) -> "Settings":
        """
        FAIL FAST: Collect every configuration problem and raise once.
        """
        errors: list[str] = []

        if not self.base_url.startswith(("https://", "http://")):
            errors.append(f"base_url must be an http(s) URL, got: {self.base_url[:40]}")

        if self.request_timeout_seconds is not None and self.request_timeout_seconds <= 0:
            errors.append(
                f"request_timeout_seconds must be positive, got: {self.request_timeout_seconds}"
            )

        if self.cache_ttl_seconds <= 0:
            errors.append(f"cache_ttl_seconds must be positive, got: {self.cache_ttl_seconds}")

        if not self.anonymous_id_prefix:
            errors.append("anonymous_id_prefix cannot be empty")

        if self.log_format not in ("json", "console"):
            errors.append(f"log_format must be 'json' or 'console', got: {self.log_format}")

        if self.log_level.upper() not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            errors.append(f"log_level is not a logging level: {self.log_level}")

        if errors:
            raise ConfigurationError(
                "Invalid SubscriptionKit configuration:\n"
                + "\n".join(f"  - {e}" for e in errors)
            )

        return self

    @property
    def normalized_base_url(self) -> str:
        """Base URL without a trailing slash."""
        return self.base_url.rstrip("/")


def get_settings(**overrides: object) -> Settings:
    """Build settings from the environment, with explicit keyword overrides."""
    return Settings(**overrides)  # type: ignore[arg-type]
