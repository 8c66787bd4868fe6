"""
Subscription module exceptions.
"""

from shared.exceptions import LedgerError, NotFoundError


class SubscriptionError(LedgerError):
    """Base exception for subscription-related errors."""

    pass


class SubscriptionNotFoundError(NotFoundError):
    """Raised when a subscription ID is unknown."""

    def __init__(self, subscription_id: str):
        super().__init__(
            f"Subscription not found: {subscription_id}",
            code="SUBSCRIPTION_NOT_FOUND",
            details={"subscription_id": subscription_id},
        )
