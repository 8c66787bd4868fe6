"""
Pricing module data models.

These models define volume tiers, shipment inputs, and the charge
breakdown returned by the pricing engine.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from shared.clock import ensure_utc, optional_utc


class PricingTier(BaseModel):
    """
    A volume-based pricing band.

    A tier applies to a monthly volume in [min_monthly_volume,
    max_monthly_volume] (max None = unbounded) while it is active and
    `effective_from <= as_of <= effective_until` (until None = open-ended).
    """

    name: str = Field(..., description="Tier name (unique)")
    min_monthly_volume: int = Field(..., description="Lowest monthly volume covered")
    max_monthly_volume: Optional[int] = Field(
        None,
        description="Highest monthly volume covered (None = unbounded)",
    )
    active: bool = Field(default=True, description="Whether the tier can be selected")
    effective_from: datetime = Field(..., description="Start of validity window")
    effective_until: Optional[datetime] = Field(
        None,
        description="End of validity window (None = open-ended)",
    )
    discount_percentage: Decimal = Field(
        default=Decimal("0"),
        description="Discount applied to the subtotal, in percent",
    )
    description: Optional[str] = Field(None, description="Tier description")

    model_config = {"frozen": True}

    @field_validator("effective_from", "effective_until")
    @classmethod
    def as_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return optional_utc(value)

    def is_effective(self, as_of: datetime) -> bool:
        """Check whether the tier is active and within its window at `as_of`."""
        as_of = ensure_utc(as_of)
        if not self.active or self.effective_from > as_of:
            return False
        return self.effective_until is None or self.effective_until >= as_of

    def covers(self, monthly_volume: int) -> bool:
        """Check whether a monthly volume falls inside the tier's band."""
        if monthly_volume < self.min_monthly_volume:
            return False
        return self.max_monthly_volume is None or monthly_volume <= self.max_monthly_volume


class ShipmentDetails(BaseModel):
    """Inputs for pricing one shipment."""

    service_type: str = Field(..., description="Service level (e.g. STANDARD, SAME_DAY)")
    weight: Decimal = Field(..., description="Actual weight in kg")
    dimensions: Optional[str] = Field(
        None,
        description="Parcel dimensions in cm as 'LxWxH'",
    )
    origin: str = Field(..., description="Pickup location")
    destination: str = Field(..., description="Delivery location")
    declared_value: Optional[Decimal] = Field(
        None,
        description="Declared value for insurance",
    )


class RateCard(BaseModel):
    """
    Heuristic rate parameters for shipment pricing.

    This is advisory pricing, not a tax-authority-grade calculation.
    """

    base_rates: dict[str, Decimal] = Field(
        default_factory=lambda: {
            "SAME_DAY": Decimal("50.00"),
            "NEXT_DAY": Decimal("25.00"),
            "STANDARD": Decimal("15.00"),
        },
        description="Per-kg base rate by service type",
    )
    default_base_rate: Decimal = Field(default=Decimal("20.00"))
    volumetric_divisor: Decimal = Field(
        default=Decimal("5000"),
        description="cm^3 per volumetric kg",
    )
    dimension_handling_charge: Decimal = Field(default=Decimal("5.00"))
    local_distance_charge: Decimal = Field(default=Decimal("5.00"))
    intercity_distance_charge: Decimal = Field(default=Decimal("10.00"))
    insurance_rate_percent: Decimal = Field(default=Decimal("1"))
    service_fees: dict[str, Decimal] = Field(
        default_factory=lambda: {
            "SAME_DAY": Decimal("15.00"),  # rush fee
            "SIGNATURE_REQUIRED": Decimal("5.00"),
        },
        description="Flat fee by service type",
    )

    model_config = {"frozen": True}

    def base_rate_for(self, service_type: str) -> Decimal:
        return self.base_rates.get(service_type.upper(), self.default_base_rate)


class ChargeBreakdown(BaseModel):
    """
    Result of a charge calculation.

    Invariant: total_amount = subtotal - discount_amount + tax_amount.
    """

    subtotal: Decimal = Field(..., description="Amount before discount and tax")
    discount_amount: Decimal = Field(default=Decimal("0"), description="Discount")
    tax_amount: Decimal = Field(default=Decimal("0"), description="Tax")
    total_amount: Decimal = Field(..., description="Amount owed")
    currency: str = Field(default="USD", description="Currency code")
    tier_name: Optional[str] = Field(None, description="Volume tier applied, if any")
    discount_percentage: Decimal = Field(default=Decimal("0"))
    tax_rate_percent: Decimal = Field(default=Decimal("0"))
    components: dict[str, Decimal] = Field(
        default_factory=dict,
        description="Subtotal components (weight, dimension, distance, fees)",
    )


# Default volume tiers, open-ended from the epoch
DEFAULT_TIER_EFFECTIVE_FROM = datetime.fromisoformat("2000-01-01T00:00:00+00:00")

DEFAULT_PRICING_TIERS = [
    PricingTier(
        name="STANDARD",
        min_monthly_volume=0,
        max_monthly_volume=19,
        effective_from=DEFAULT_TIER_EFFECTIVE_FROM,
        discount_percentage=Decimal("0"),
        description="Standard customer pricing",
    ),
    PricingTier(
        name="BRONZE",
        min_monthly_volume=20,
        max_monthly_volume=49,
        effective_from=DEFAULT_TIER_EFFECTIVE_FROM,
        discount_percentage=Decimal("5"),
        description="5% for 20+ shipments a month",
    ),
    PricingTier(
        name="SILVER",
        min_monthly_volume=50,
        max_monthly_volume=99,
        effective_from=DEFAULT_TIER_EFFECTIVE_FROM,
        discount_percentage=Decimal("10"),
        description="10% for 50+ shipments a month",
    ),
    PricingTier(
        name="GOLD",
        min_monthly_volume=100,
        max_monthly_volume=None,
        effective_from=DEFAULT_TIER_EFFECTIVE_FROM,
        discount_percentage=Decimal("15"),
        description="15% for 100+ shipments a month",
    ),
]
