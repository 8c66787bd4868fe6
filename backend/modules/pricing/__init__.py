"""
Pricing module.

Resolves volume tiers and computes invoice charges. Leaf component: it
depends on no other ledger module.

Public API:
- IPricingEngine: Interface for charge computation
- ITierSource: Interface for tier storage
- PricingTier: Volume pricing band
- ShipmentDetails: Shipment pricing inputs
- ChargeBreakdown: subtotal / discount / tax / total
"""

from .interfaces import IPricingEngine, ITierSource
from .models import (
    ChargeBreakdown,
    DEFAULT_PRICING_TIERS,
    PricingTier,
    RateCard,
    ShipmentDetails,
)
from .exceptions import NoTierFoundError, PricingError, TierSourceError
from .tiers import CachedTierSource, PricingTierRepository, StaticTierSource
from .service import PricingEngine, parse_dimensions

__all__ = [
    # Interfaces
    "IPricingEngine",
    "ITierSource",
    # Models
    "ChargeBreakdown",
    "DEFAULT_PRICING_TIERS",
    "PricingTier",
    "RateCard",
    "ShipmentDetails",
    # Exceptions
    "NoTierFoundError",
    "PricingError",
    "TierSourceError",
    # Tier sources
    "CachedTierSource",
    "PricingTierRepository",
    "StaticTierSource",
    # Implementation
    "PricingEngine",
    "parse_dimensions",
]
