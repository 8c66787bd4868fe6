"""Tests for shared/config.py."""

import os
from decimal import Decimal
from unittest.mock import patch

from shared.config import Settings, get_settings


class TestSettings:
    def test_default_values(self):
        """Settings should have sensible defaults."""
        settings = Settings(_env_file=None)
        assert settings.app_name == "Courier Billing Ledger"
        assert settings.debug is False
        assert settings.default_currency == "USD"
        assert settings.default_payment_terms == "NET_30"
        assert settings.tax_rate_percent == Decimal("8.5")
        assert settings.dispute_review_days == 7
        assert settings.gateway_timeout_seconds == 10.0
        assert settings.gateway_failure_threshold == 5
        assert settings.billing_worker_count == 4
        assert settings.subscription_auto_finalize is True
        assert settings.enable_notifications is True

    def test_loads_from_env(self):
        """Settings should load from environment variables."""
        with patch.dict(os.environ, {
            "DEBUG": "true",
            "TAX_RATE_PERCENT": "20",
            "GATEWAY_TIMEOUT_SECONDS": "2.5",
        }):
            settings = Settings(_env_file=None)
            assert settings.debug is True
            assert settings.tax_rate_percent == Decimal("20")
            assert settings.gateway_timeout_seconds == 2.5

    def test_loads_supabase_config_from_env(self):
        """Settings should load Supabase configuration from environment variables."""
        with patch.dict(os.environ, {
            "SUPABASE_URL": "https://test.supabase.co",
            "SUPABASE_SERVICE_ROLE_KEY": "test-service-key",
        }):
            settings = Settings(_env_file=None)
            assert settings.supabase_url == "https://test.supabase.co"
            assert settings.supabase_service_role_key == "test-service-key"

    def test_env_names_are_case_insensitive(self):
        with patch.dict(os.environ, {"billing_worker_count": "9"}):
            assert Settings(_env_file=None).billing_worker_count == 9


class TestGetSettings:
    def test_get_settings_returns_settings_instance(self):
        """get_settings should return a Settings instance."""
        get_settings.cache_clear()
        settings = get_settings()
        assert isinstance(settings, Settings)

    def test_get_settings_is_cached(self):
        """get_settings should return the same instance."""
        get_settings.cache_clear()
        assert get_settings() is get_settings()
