"""
Centralized configuration for the billing ledger.

All settings are loaded from environment variables with sensible defaults.
Module-specific settings should be namespaced (e.g., GATEWAY_*, SUPABASE_*).
"""

from decimal import Decimal
from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "Courier Billing Ledger"
    app_version: str = "0.1.0"
    debug: bool = False
    log_level: str = "INFO"

    # Supabase
    supabase_url: str = ""
    supabase_service_role_key: str = ""
    supabase_db_url: str = ""  # direct Postgres URL, used by run_migrations.py

    # Invoicing
    default_currency: str = "USD"
    default_payment_terms: str = "NET_30"
    invoice_prefix: str = "INV"
    tax_rate_percent: Decimal = Decimal("8.5")

    # Pricing
    default_discount_percent: Decimal = Decimal("0")
    pricing_tier_cache_ttl: int = 300  # seconds

    # Disputes
    dispute_prefix: str = "DSP"
    dispute_review_days: int = 7

    # Payment gateway
    gateway_url: str = ""  # empty = automatic payments disabled
    gateway_api_key: str = ""
    gateway_timeout_seconds: float = 10.0
    gateway_failure_threshold: int = 5
    gateway_reset_seconds: float = 60.0

    # Subscription billing
    billing_worker_count: int = 4
    subscription_auto_finalize: bool = True

    # Feature Flags
    enable_notifications: bool = True


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    """
    return Settings()
