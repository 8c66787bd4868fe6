"""
Subscriptions module.

Periodic billing of ACTIVE subscriptions into SUBSCRIPTION invoices.

Public API:
- ISubscriptionBiller: Interface for billing cycles
- Subscription: Subscription snapshot
- BillingCycleResult / BillingFailure: Cycle report
"""

from .interfaces import ISubscriptionBiller
from .models import (
    BillingCycleResult,
    BillingFailure,
    BillingPeriod,
    Subscription,
    SubscriptionStatus,
)
from .exceptions import SubscriptionError, SubscriptionNotFoundError
from .repository import SubscriptionRepository
from .service import BILLER_ACTOR, SubscriptionBiller

__all__ = [
    "ISubscriptionBiller",
    "BillingCycleResult",
    "BillingFailure",
    "BillingPeriod",
    "Subscription",
    "SubscriptionStatus",
    "SubscriptionError",
    "SubscriptionNotFoundError",
    "SubscriptionRepository",
    "BILLER_ACTOR",
    "SubscriptionBiller",
]
