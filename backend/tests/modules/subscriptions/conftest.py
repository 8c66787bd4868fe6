"""Subscriptions module test fixtures."""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from modules.subscriptions import BillingPeriod, Subscription, SubscriptionRepository


JUNE_1 = datetime(2024, 6, 1, tzinfo=timezone.utc)


@pytest.fixture
def add_subscription(store):
    """Factory: store a subscription, ACTIVE and due on June 1 by default."""

    async def add(subscription_id: str = "sub-1", **fields) -> Subscription:
        values = {
            "subscription_id": subscription_id,
            "customer_id": "cust-001",
            "plan_name": "Business Monthly",
            "amount": Decimal("100.00"),
            "discount_percentage": Decimal("10"),
            "billing_period": BillingPeriod.MONTHLY,
            "start_date": JUNE_1,
            "next_billing_date": JUNE_1,
        }
        values.update(fields)
        return await SubscriptionRepository(store).create(Subscription(**values))

    return add
