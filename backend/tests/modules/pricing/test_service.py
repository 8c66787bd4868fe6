"""Tests for the pricing engine."""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from modules.pricing import (
    IPricingEngine,
    NoTierFoundError,
    PricingEngine,
    PricingTier,
    ShipmentDetails,
    StaticTierSource,
    parse_dimensions,
)
from shared.exceptions import InvalidAmountError


EPOCH = datetime(2020, 1, 1, tzinfo=timezone.utc)
NOW = datetime(2024, 6, 15, tzinfo=timezone.utc)


class TestResolveTier:
    @pytest.fixture
    def engine(self, two_tiers):
        return PricingEngine(StaticTierSource(two_tiers))

    @pytest.mark.asyncio
    async def test_volume_inside_first_band(self, engine):
        tier = await engine.resolve_tier(500, NOW)
        assert tier.name == "BASIC"

    @pytest.mark.asyncio
    async def test_volume_inside_open_band(self, engine):
        tier = await engine.resolve_tier(1500, NOW)
        assert tier.name == "VOLUME"
        assert tier.discount_percentage == Decimal("10")

    @pytest.mark.asyncio
    async def test_band_edges_are_inclusive(self, engine):
        assert (await engine.resolve_tier(999, NOW)).name == "BASIC"
        assert (await engine.resolve_tier(1000, NOW)).name == "VOLUME"

    @pytest.mark.asyncio
    async def test_inactive_and_expired_tiers_are_ignored(self):
        tiers = [
            PricingTier(
                name="OLD",
                min_monthly_volume=0,
                effective_from=EPOCH,
                effective_until=datetime(2023, 12, 31, tzinfo=timezone.utc),
                discount_percentage=Decimal("50"),
            ),
            PricingTier(
                name="OFF",
                min_monthly_volume=0,
                active=False,
                effective_from=EPOCH,
                discount_percentage=Decimal("40"),
            ),
        ]
        engine = PricingEngine(StaticTierSource(tiers))
        with pytest.raises(NoTierFoundError) as exc_info:
            await engine.resolve_tier(5, NOW)
        assert exc_info.value.code == "NO_TIER_FOUND"

    @pytest.mark.asyncio
    async def test_future_tier_is_not_effective_yet(self):
        tiers = [
            PricingTier(
                name="LATER",
                min_monthly_volume=0,
                effective_from=datetime(2025, 1, 1, tzinfo=timezone.utc),
            )
        ]
        with pytest.raises(NoTierFoundError):
            await PricingEngine(StaticTierSource(tiers)).resolve_tier(1, NOW)

    @pytest.mark.asyncio
    async def test_overlapping_bands_pick_highest_minimum(self, two_tiers):
        overlapping = two_tiers + [
            PricingTier(
                name="PROMO",
                min_monthly_volume=1200,
                effective_from=EPOCH,
                discount_percentage=Decimal("12"),
            )
        ]
        engine = PricingEngine(StaticTierSource(overlapping))
        assert (await engine.resolve_tier(1500, NOW)).name == "PROMO"

    @pytest.mark.asyncio
    async def test_naive_timestamps_are_read_as_utc(self):
        tiers = [
            PricingTier(
                name="BASIC",
                min_monthly_volume=0,
                max_monthly_volume=999,
                effective_from=datetime(2024, 1, 1),
            ),
            PricingTier(
                name="VOLUME",
                min_monthly_volume=1000,
                effective_from=datetime(2024, 1, 1),
            ),
        ]
        assert tiers[0].effective_from.tzinfo == timezone.utc
        engine = PricingEngine(StaticTierSource(tiers))

        assert (await engine.resolve_tier(500, datetime(2024, 6, 1))).name == "BASIC"
        assert (await engine.resolve_tier(1500, NOW)).name == "VOLUME"


class TestCalculateCharges:
    def test_implements_interface(self, engine):
        assert isinstance(engine, IPricingEngine)

    @pytest.mark.asyncio
    async def test_local_standard_shipment(self, engine):
        shipment = ShipmentDetails(
            service_type="STANDARD",
            weight=Decimal("2"),
            origin="Leeds",
            destination="leeds ",
        )
        charges = await engine.calculate_charges(shipment, 0, NOW)

        assert charges.subtotal == Decimal("35.00")
        assert charges.discount_amount == Decimal("0.00")
        assert charges.tax_amount == Decimal("2.98")
        assert charges.total_amount == Decimal("37.98")
        assert charges.tier_name == "STANDARD"

    @pytest.mark.asyncio
    async def test_same_day_with_dimensions_and_insurance(self, engine):
        shipment = ShipmentDetails(
            service_type="same_day",
            weight=Decimal("1"),
            dimensions="30x20x10",
            origin="Leeds",
            destination="York",
            declared_value=Decimal("200"),
        )
        charges = await engine.calculate_charges(shipment, 25, NOW)

        assert charges.components == {
            "weight_charge": Decimal("60.00"),
            "dimension_charge": Decimal("5.00"),
            "distance_charge": Decimal("10.00"),
            "insurance": Decimal("2.00"),
            "service_fee": Decimal("15.00"),
        }
        assert charges.subtotal == Decimal("92.00")
        assert charges.tier_name == "BRONZE"
        assert charges.discount_amount == Decimal("4.60")
        assert charges.tax_amount == Decimal("7.43")
        assert charges.total_amount == Decimal("94.83")
        assert charges.total_amount == (
            charges.subtotal - charges.discount_amount + charges.tax_amount
        )

    @pytest.mark.asyncio
    async def test_falls_back_to_default_discount_without_tier(self):
        engine = PricingEngine(
            StaticTierSource([]),
            tax_rate_percent=Decimal("0"),
            default_discount_percent=Decimal("5"),
        )
        shipment = ShipmentDetails(
            service_type="STANDARD", weight=Decimal("2"), origin="A", destination="A"
        )
        charges = await engine.calculate_charges(shipment, 3, NOW)

        assert charges.tier_name is None
        assert charges.discount_percentage == Decimal("5")
        assert charges.discount_amount == Decimal("1.75")
        assert charges.total_amount == Decimal("33.25")

    @pytest.mark.asyncio
    async def test_rejects_non_positive_weight(self, engine):
        shipment = ShipmentDetails(
            service_type="STANDARD", weight=Decimal("0"), origin="A", destination="B"
        )
        with pytest.raises(InvalidAmountError):
            await engine.calculate_charges(shipment, 0, NOW)


class TestExplicitAmounts:
    def test_total_is_derived(self, engine):
        charges = engine.price_explicit_amounts(
            Decimal("25.00"), Decimal("2.50"), Decimal("1.91")
        )
        assert charges.total_amount == Decimal("24.41")

    def test_negative_amount_rejected(self, engine):
        with pytest.raises(InvalidAmountError) as exc_info:
            engine.price_explicit_amounts(Decimal("25.00"), Decimal("0"), Decimal("-1"))
        assert exc_info.value.details["field"] == "tax_amount"

    def test_discount_above_subtotal_rejected(self, engine):
        with pytest.raises(InvalidAmountError):
            engine.price_explicit_amounts(Decimal("10.00"), Decimal("10.01"), Decimal("0"))


class TestSubscriptionCharges:
    def test_plan_discount_then_tax(self, engine):
        charges = engine.calculate_subscription_charges(Decimal("100.00"), Decimal("10"))
        assert charges.discount_amount == Decimal("10.00")
        assert charges.tax_amount == Decimal("7.65")
        assert charges.total_amount == Decimal("97.65")

    def test_no_discount(self, engine):
        charges = engine.calculate_subscription_charges(Decimal("50.00"))
        assert charges.discount_amount == Decimal("0.00")


class TestParseDimensions:
    def test_valid(self):
        assert parse_dimensions("30 x 20 x 10") == (Decimal("30"), Decimal("20"), Decimal("10"))

    @pytest.mark.parametrize("value", [None, "", "30x20", "axbxc", "0x1x1", "-1x2x3"])
    def test_invalid_returns_none(self, value):
        assert parse_dimensions(value) is None
