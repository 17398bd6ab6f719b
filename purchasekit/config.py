"""
Configuration - Pydantic Settings for type-safe config.

NO DICTIONARIES - All configuration is strongly typed.
FAIL FAST - Invalid config is rejected when settings are built.
"""

import sys

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigurationError(Exception):
    """Raised when critical configuration is missing or invalid."""

    pass


class Settings(BaseSettings):
    """Purchase tracking settings loaded from environment variables."""

    # Ledger persistence
    ledger_storage_key: str = "purchasedSkProductIds"
    database_url: str = "sqlite:///purchasekit.db"

    # Identity
    service_name: str = "purchasekit"
    version: str = "0.1.0"

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"  # json or console

    # Observability - Metrics
    metrics_enabled: bool = True

    # Payment capability check. None = cache for the lifetime of the process
    payments_recheck_seconds: float | None = None

    # Platform error code meaning "the user cancelled the payment sheet"
    user_cancelled_error_code: int = 2

    model_config = SettingsConfigDict(
        env_prefix="PURCHASEKIT_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @model_validator(mode="after")
    def validate_critical_config(self) -> "Settings":
        """
        FAIL FAST: Validate critical configuration when settings are built.

        A ledger without a storage key would silently lose purchases
        between launches, so it is rejected up front.
        """
        errors: list[str] = []

        if not self.ledger_storage_key.strip():
            errors.append("LEDGER_STORAGE_KEY is required but empty")

        if self.log_format not in ("json", "console"):
            errors.append(f"LOG_FORMAT must be 'json' or 'console', got: {self.log_format}")

        if self.payments_recheck_seconds is not None and self.payments_recheck_seconds < 0:
            errors.append(
                f"PAYMENTS_RECHECK_SECONDS cannot be negative: {self.payments_recheck_seconds}"
            )

        if errors:
            error_msg = "\n".join(
                [
                    "",
                    "=" * 60,
                    "PURCHASEKIT CONFIGURATION ERROR",
                    "=" * 60,
                    *[f"  ✗ {e}" for e in errors],
                    "=" * 60,
                    "",
                ]
            )
            print(error_msg, file=sys.stderr)
            raise ConfigurationError(error_msg)

        return self


# Global settings instance - validates at import time
settings = Settings()


def get_settings() -> Settings:
    """Get settings instance."""
    return settings
