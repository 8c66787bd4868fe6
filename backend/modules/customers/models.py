"""
Customer directory data models.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

from shared.clock import utc_now


class CustomerProfile(BaseModel):
    """
    Read-only customer snapshot source.

    Invoices copy name/email/address at creation time; later changes to
    the profile never alter existing invoices.
    """

    customer_id: str = Field(..., description="Customer ID")
    name: str = Field(..., description="Display name")
    email: Optional[str] = Field(None, description="Billing email")
    billing_address: Optional[str] = Field(None, description="Billing address")
    payment_terms: Optional[str] = Field(
        None,
        description="Payment terms (e.g. NET_30); None = configured default",
    )
    payment_method: Optional[str] = Field(
        None,
        description="Gateway token for the customer's stored payment method",
    )

    model_config = {"frozen": True}


class CustomerCredit(BaseModel):
    """
    A customer's credit balance, one per customer.

    Raised by dispute resolutions in the customer's favour and drawn down
    when credit is redeemed against an invoice.
    """

    customer_id: str = Field(..., description="Customer ID (unique)")
    balance: Decimal = Field(default=Decimal("0"), description="Available credit")
    currency: str = Field(default="USD", description="Currency code")
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    version: int = Field(default=0, description="Optimistic concurrency version")
