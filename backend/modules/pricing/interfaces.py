"""
Pricing module interfaces.

Other modules should depend on IPricingEngine, not the concrete engine.
Tier storage is abstracted behind ITierSource so tiers can come from
static defaults, the ledger store, or a cache in front of either.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional, Protocol, runtime_checkable

from .models import ChargeBreakdown, PricingTier, ShipmentDetails


@runtime_checkable
class ITierSource(Protocol):
    """Supplies the configured pricing tiers."""

    async def list_tiers(self) -> list[PricingTier]:
        """
        Get all configured tiers, active or not.

        Raises:
            TierSourceError: If tiers cannot be loaded
        """
        ...

    async def refresh_cache(self) -> None:
        """Drop any cached tiers so the next read reloads them."""
        ...


@runtime_checkable
class IPricingEngine(Protocol):
    """
    Interface for charge computation.

    Pure calculation: no ledger state is read or written.
    """

    async def resolve_tier(self, monthly_volume: int, as_of: datetime) -> PricingTier:
        """
        Pick the tier for a monthly volume at an instant.

        Among tiers that are active, effective at `as_of` and whose volume
        band contains `monthly_volume`, the one with the greatest
        `min_monthly_volume` wins.

        Raises:
            NoTierFoundError: If no tier matches
        """
        ...

    async def calculate_charges(
        self,
        shipment: ShipmentDetails,
        monthly_volume: int,
        as_of: datetime,
        currency: str = "USD",
    ) -> ChargeBreakdown:
        """
        Price one shipment.

        Falls back to the configured default discount when no tier matches.

        Raises:
            InvalidAmountError: If weight or declared value is invalid
        """
        ...

    def price_explicit_amounts(
        self,
        subtotal: Decimal,
        discount_amount: Decimal,
        tax_amount: Decimal,
        currency: str = "USD",
    ) -> ChargeBreakdown:
        """
        Build a breakdown from caller-supplied amounts.

        Raises:
            InvalidAmountError: If any amount is negative or discount exceeds subtotal
        """
        ...

    def calculate_subscription_charges(
        self,
        plan_amount: Decimal,
        discount_percentage: Optional[Decimal] = None,
        currency: str = "USD",
    ) -> ChargeBreakdown:
        """
        Price one subscription period: plan amount, plan discount, tax.
        """
        ...
