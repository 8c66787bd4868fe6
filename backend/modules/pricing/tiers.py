"""
Pricing tier sources.

Sources:
1. StaticTierSource: fixed tiers (defaults to the standard volume bands)
2. PricingTierRepository: tiers stored in the ledger store
3. CachedTierSource: TTL cache in front of any other source
"""

import logging
from datetime import datetime
from typing import Optional

from shared.clock import utc_now
from shared.exceptions import LedgerError
from shared.repository import BaseRepository

from .exceptions import TierSourceError
from .interfaces import ITierSource
from .models import DEFAULT_PRICING_TIERS, PricingTier

logger = logging.getLogger(__name__)


class StaticTierSource:
    """Tier source over a fixed list."""

    def __init__(self, tiers: Optional[list[PricingTier]] = None):
        self._tiers = list(DEFAULT_PRICING_TIERS if tiers is None else tiers)

    async def list_tiers(self) -> list[PricingTier]:
        return list(self._tiers)

    async def refresh_cache(self) -> None:
        pass


class PricingTierRepository(BaseRepository[PricingTier]):
    """Tiers kept in the pricing_tiers table, keyed by name."""

    table = "pricing_tiers"
    model = PricingTier

    async def list_tiers(self) -> list[PricingTier]:
        try:
            return await self._select(order_by="min_monthly_volume")
        except LedgerError as e:
            raise TierSourceError(str(e)) from e

    async def refresh_cache(self) -> None:
        pass

    async def save(self, tier: PricingTier) -> PricingTier:
        return await self._insert(tier)


class CachedTierSource:
    """
    TTL cache in front of another tier source.

    Tiers change administratively and rarely, so reads within the TTL are
    served from memory. `refresh_cache()` forces a reload on next read.
    """

    def __init__(self, source: ITierSource, ttl_seconds: int = 300):
        self._source = source
        self._ttl = ttl_seconds
        self._cache: list[PricingTier] = []
        self._cache_timestamp: Optional[datetime] = None

    def _is_cache_valid(self) -> bool:
        """Check if cache is still valid."""
        if not self._cache_timestamp:
            return False
        age = (utc_now() - self._cache_timestamp).total_seconds()
        return age < self._ttl

    async def list_tiers(self) -> list[PricingTier]:
        if not self._is_cache_valid():
            self._cache = await self._source.list_tiers()
            self._cache_timestamp = utc_now()
            logger.debug(f"Loaded {len(self._cache)} pricing tiers")
        return list(self._cache)

    async def refresh_cache(self) -> None:
        self._cache_timestamp = None
        await self._source.refresh_cache()
