"""
Subscription module interface.
"""

from datetime import datetime
from typing import Optional, Protocol, runtime_checkable

from .models import BillingCycleResult, Subscription


@runtime_checkable
class ISubscriptionBiller(Protocol):
    """
    Interface for recurring subscription billing.
    """

    async def run_billing_cycle(self, as_of: Optional[datetime] = None) -> BillingCycleResult:
        """
        Invoice every ACTIVE subscription whose next billing date is at or
        before `as_of`.

        Best effort: a failure on one subscription is reported in the
        result and does not stop the others.
        """
        ...

    async def get_subscription(self, subscription_id: str) -> Subscription:
        """
        Raises:
            SubscriptionNotFoundError: If the subscription does not exist
        """
        ...
