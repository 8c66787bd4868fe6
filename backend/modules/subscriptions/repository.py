"""
Subscription repository.
"""

from datetime import datetime
from typing import Optional

from shared.repository import BaseRepository
from shared.store import eq, lte

from .models import Subscription, SubscriptionStatus


class SubscriptionRepository(BaseRepository[Subscription]):
    """Data access for the subscriptions table, keyed by subscription ID."""

    table = "subscriptions"
    model = Subscription

    async def find_by_subscription_id(self, subscription_id: str) -> Optional[Subscription]:
        return await self._get(subscription_id)

    async def create(self, subscription: Subscription) -> Subscription:
        return await self._insert(subscription)

    async def save(self, subscription: Subscription) -> Subscription:
        return await self._update(subscription)

    async def find_due(self, as_of: datetime) -> list[Subscription]:
        return await self._select(
            eq("status", SubscriptionStatus.ACTIVE),
            lte("next_billing_date", as_of),
            order_by="next_billing_date",
        )
