"""
Subscription module data models.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from dateutil.relativedelta import relativedelta
from pydantic import BaseModel, Field, field_validator

from shared.clock import optional_utc, utc_now


class SubscriptionStatus(str, Enum):
    """Subscription states. Only ACTIVE subscriptions are billed."""

    ACTIVE = "ACTIVE"
    PAUSED = "PAUSED"
    CANCELLED = "CANCELLED"
    EXPIRED = "EXPIRED"


class BillingPeriod(str, Enum):
    """How often a subscription is invoiced."""

    MONTHLY = "MONTHLY"
    QUARTERLY = "QUARTERLY"
    ANNUAL = "ANNUAL"

    @property
    def delta(self) -> relativedelta:
        return {
            BillingPeriod.MONTHLY: relativedelta(months=1),
            BillingPeriod.QUARTERLY: relativedelta(months=3),
            BillingPeriod.ANNUAL: relativedelta(years=1),
        }[self]

    def advance(self, billing_date: datetime) -> datetime:
        """Next billing date; month ends clamp (Jan 31 -> Feb 28)."""
        return billing_date + self.delta


class Subscription(BaseModel):
    """
    A recurring billing plan for a customer.

    Administered outside the ledger; the biller only advances
    `next_billing_date` and moves it to EXPIRED past `end_date`.
    """

    subscription_id: str = Field(..., description="Subscription ID")
    customer_id: str = Field(..., description="Subscribed customer")
    customer_name: Optional[str] = Field(None, description="Name for invoices")
    customer_email: Optional[str] = Field(None, description="Email for invoices")
    plan_name: str = Field(..., description="Plan name")
    amount: Decimal = Field(..., description="Plan price per period")
    discount_percentage: Optional[Decimal] = Field(None, description="Plan discount")
    currency: str = Field(default="USD")
    billing_period: BillingPeriod = Field(default=BillingPeriod.MONTHLY)
    payment_terms: Optional[str] = Field(None, description="Terms for its invoices")
    status: SubscriptionStatus = Field(default=SubscriptionStatus.ACTIVE)
    start_date: datetime = Field(..., description="First billing date")
    end_date: Optional[datetime] = Field(None, description="Last date covered")
    next_billing_date: datetime = Field(..., description="When the next invoice is due")
    last_billed_at: Optional[datetime] = None
    last_invoice_number: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    version: int = Field(default=0, description="Optimistic concurrency version")

    @field_validator(
        "start_date",
        "end_date",
        "next_billing_date",
        "last_billed_at",
        "created_at",
        "updated_at",
    )
    @classmethod
    def as_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return optional_utc(value)


class BillingFailure(BaseModel):
    """One subscription that could not be billed in a cycle."""

    subscription_id: str
    error_code: str
    message: str
    invoice_number: Optional[str] = Field(
        None,
        description="Set when the invoice was created but a later step failed",
    )


class BillingCycleResult(BaseModel):
    """Outcome of one billing cycle run."""

    as_of: datetime
    due: int = 0
    invoiced: list[str] = Field(default_factory=list, description="Invoice numbers created")
    expired: list[str] = Field(default_factory=list, description="Subscriptions expired")
    skipped: list[str] = Field(default_factory=list, description="No longer due when processed")
    failures: list[BillingFailure] = Field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return not self.failures
