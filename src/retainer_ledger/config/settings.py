"""Process-level configuration for the retainer ledger engine.

Business settings (currency, threshold, invoice day, ...) live in the
settings ledger and are resolved by ``retainer_ledger.settings_resolver``.
This module only covers how the engine process itself is wired up.
"""

from decimal import Decimal
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class EngineSettings(BaseSettings):
    """Flat settings loaded from environment variables or ``.env``."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Storage
    ledger_dir: Path = Field(
        default=Path("ledger"), validation_alias="RETAINER_LEDGER_DIR"
    )
    lock_filename: str = Field(
        default=".reconcile.lock", validation_alias="RETAINER_LOCK_FILENAME"
    )

    # Default target balance rule for clients without an explicit target
    default_target_policy: Literal["highest_rate", "threshold"] = Field(
        default="highest_rate", validation_alias="RETAINER_DEFAULT_TARGET_POLICY"
    )
    default_target_multiplier: Decimal = Field(
        default=Decimal("1"), ge=0, validation_alias="RETAINER_DEFAULT_TARGET_MULTIPLIER"
    )

    # Notifications
    notify_webhook_url: str | None = Field(
        default=None, validation_alias="RETAINER_NOTIFY_WEBHOOK_URL"
    )
    notify_timeout: float = Field(default=10.0, validation_alias="RETAINER_NOTIFY_TIMEOUT")

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO", validation_alias="LOG_LEVEL"
    )
    log_format: Literal["json", "console"] = Field(
        default="console", validation_alias="LOG_FORMAT"
    )


@lru_cache
def get_settings() -> EngineSettings:
    """Get cached settings instance."""
    return EngineSettings()
