"""
Configuration Management for the Billing Engine

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All tunables of the engine are centralized here.
Fallback card parameters, range caps and projection horizons are
policy, not magic constants buried in the computation.
"""

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class EngineSettings(BaseSettings):
    """Billing computation defaults."""

    model_config = SettingsConfigDict(
        env_prefix="BILLING_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Used when a purchase points to a card that no longer exists
    fallback_best_purchase_day: int = Field(
        default=1,
        ge=1,
        le=31,
        description="Best purchase day assumed for an unknown card"
    )
    fallback_due_day: int = Field(
        default=10,
        ge=1,
        le=31,
        description="Due day assumed for an unknown card"
    )
    fallback_card_name: str = Field(
        default="Card",
        min_length=1,
        description="Display name for statements of an unknown card"
    )

    month_range_cap: int = Field(
        default=120,
        ge=1,
        description="Maximum number of months produced by a month range"
    )
    projection_horizon_months: int = Field(
        default=12,
        ge=1,
        le=120,
        description="How many months recurring items are projected forward"
    )

    virtual_id_prefix: str = Field(
        default="VIRTUAL-",
        min_length=1,
        description="Prefix of ids given to projected entries"
    )


class LoggingSettings(BaseSettings):
    """Structured logging configuration."""

    model_config = SettingsConfigDict(
        env_prefix="BILLING_LOG_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    level: str = Field(
        default="INFO",
        description="Minimum log level"
    )
    json_logs: bool = Field(
        default=True,
        description="Render log lines as JSON (console renderer otherwise)"
    )

    @field_validator('level')
    @classmethod
    def validate_level(cls, v: str) -> str:
        """Normalize and check the level name."""
        level = v.strip().upper()
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if level not in allowed:
            raise ValueError(f"Unsupported log level: {v}. Allowed: {sorted(allowed)}")
        return level


class StoreSettings(BaseSettings):
    """Retry policy for reads and writes against the external store."""

    model_config = SettingsConfigDict(
        env_prefix="BILLING_STORE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    retry_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Attempts made before a connection error is raised"
    )
    retry_min_wait_seconds: float = Field(
        default=0.5,
        ge=0.0,
        description="Lower bound of the exponential backoff"
    )
    retry_max_wait_seconds: float = Field(
        default=5.0,
        ge=0.0,
        description="Upper bound of the exponential backoff"
    )


class Settings(BaseSettings):
    """
    Root settings container.

    Aggregates all sub-settings for easy access.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    @property
    def engine(self) -> EngineSettings:
        return EngineSettings()

    @property
    def logging(self) -> LoggingSettings:
        return LoggingSettings()

    @property
    def store(self) -> StoreSettings:
        return StoreSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}.
    Useful for startup checks.
    """
    results = {}

    settings = get_settings()

    for name in ("engine", "logging", "store"):
        try:
            _ = getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
