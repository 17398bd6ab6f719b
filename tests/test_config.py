"""
Tests for Settings.
"""

import pytest

from purchasekit.config import ConfigurationError, Settings, get_settings


class TestSettingsDefaults:
    """Tests for default configuration."""

    def test_default_storage_key(self):
        assert Settings().ledger_storage_key == "purchasedSkProductIds"

    def test_default_cancellation_code(self):
        assert Settings().user_cancelled_error_code == 2

    def test_capability_cached_forever_by_default(self):
        assert Settings().payments_recheck_seconds is None

    def test_get_settings_returns_global(self):
        assert get_settings() is get_settings()


class TestSettingsEnvironment:
    """Tests for environment overrides."""

    def test_env_prefix(self, monkeypatch):
        monkeypatch.setenv("PURCHASEKIT_LEDGER_STORAGE_KEY", "ownedProducts")
        monkeypatch.setenv("PURCHASEKIT_PAYMENTS_RECHECK_SECONDS", "300")

        settings = Settings()

        assert settings.ledger_storage_key == "ownedProducts"
        assert settings.payments_recheck_seconds == 300.0


class TestSettingsValidation:
    """Tests for fail-fast validation."""

    def test_blank_storage_key_rejected(self):
        with pytest.raises(ConfigurationError, match="LEDGER_STORAGE_KEY"):
            Settings(ledger_storage_key="   ")

    def test_unknown_log_format_rejected(self):
        with pytest.raises(ConfigurationError, match="LOG_FORMAT"):
            Settings(log_format="xml")

    def test_negative_recheck_rejected(self):
        with pytest.raises(ConfigurationError, match="PAYMENTS_RECHECK_SECONDS"):
            Settings(payments_recheck_seconds=-1)
