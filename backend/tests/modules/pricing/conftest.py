"""Pricing module test fixtures."""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from modules.pricing import PricingEngine, PricingTier, StaticTierSource


EPOCH = datetime(2020, 1, 1, tzinfo=timezone.utc)


@pytest.fixture
def two_tiers() -> list[PricingTier]:
    """[0, 999] at 0% and [1000, unbounded) at 10%."""
    return [
        PricingTier(
            name="BASIC",
            min_monthly_volume=0,
            max_monthly_volume=999,
            effective_from=EPOCH,
            discount_percentage=Decimal("0"),
        ),
        PricingTier(
            name="VOLUME",
            min_monthly_volume=1000,
            max_monthly_volume=None,
            effective_from=EPOCH,
            discount_percentage=Decimal("10"),
        ),
    ]


@pytest.fixture
def engine() -> PricingEngine:
    return PricingEngine(StaticTierSource(), tax_rate_percent=Decimal("8.5"))
