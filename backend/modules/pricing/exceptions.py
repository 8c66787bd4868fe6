"""
Pricing module exceptions.
"""

from datetime import datetime

from shared.exceptions import LedgerError, NotFoundError


class PricingError(LedgerError):
    """Base exception for pricing-related errors."""

    pass


class NoTierFoundError(NotFoundError):
    """
    Raised when no active tier covers a monthly volume at an instant.

    Callers fall back to the configured default discount rate.
    """

    def __init__(self, monthly_volume: int, as_of: datetime):
        super().__init__(
            f"No pricing tier for monthly volume {monthly_volume} at {as_of.isoformat()}",
            code="NO_TIER_FOUND",
            details={"monthly_volume": monthly_volume, "as_of": as_of.isoformat()},
        )


class TierSourceError(PricingError):
    """Raised when pricing tiers cannot be loaded."""

    def __init__(self, message: str):
        super().__init__(
            f"Failed to load pricing tiers: {message}",
            code="TIER_SOURCE_ERROR",
            details={"error": message},
        )
