"""
Dispute module data models.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from shared.clock import optional_utc, utc_now


class DisputeStatus(str, Enum):
    """
    Dispute lifecycle states.

    UNDER_REVIEW -> AWAITING_CUSTOMER_RESPONSE | AWAITING_INTERNAL_RESPONSE
    -> RESOLVED_CUSTOMER_FAVOR | RESOLVED_MERCHANT_FAVOR | CLOSED_NO_RESOLUTION
    """

    UNDER_REVIEW = "UNDER_REVIEW"
    AWAITING_CUSTOMER_RESPONSE = "AWAITING_CUSTOMER_RESPONSE"
    AWAITING_INTERNAL_RESPONSE = "AWAITING_INTERNAL_RESPONSE"
    RESOLVED_CUSTOMER_FAVOR = "RESOLVED_CUSTOMER_FAVOR"
    RESOLVED_MERCHANT_FAVOR = "RESOLVED_MERCHANT_FAVOR"
    CLOSED_NO_RESOLUTION = "CLOSED_NO_RESOLUTION"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_DISPUTE_STATUSES


TERMINAL_DISPUTE_STATUSES = (
    DisputeStatus.RESOLVED_CUSTOMER_FAVOR,
    DisputeStatus.RESOLVED_MERCHANT_FAVOR,
    DisputeStatus.CLOSED_NO_RESOLUTION,
)

AWAITING_STATUSES = (
    DisputeStatus.AWAITING_CUSTOMER_RESPONSE,
    DisputeStatus.AWAITING_INTERNAL_RESPONSE,
)


class DisputeOutcome(str, Enum):
    """How a dispute ends."""

    CUSTOMER_FAVOR = "CUSTOMER_FAVOR"
    MERCHANT_FAVOR = "MERCHANT_FAVOR"
    NO_RESOLUTION = "NO_RESOLUTION"

    @property
    def final_status(self) -> DisputeStatus:
        return {
            DisputeOutcome.CUSTOMER_FAVOR: DisputeStatus.RESOLVED_CUSTOMER_FAVOR,
            DisputeOutcome.MERCHANT_FAVOR: DisputeStatus.RESOLVED_MERCHANT_FAVOR,
            DisputeOutcome.NO_RESOLUTION: DisputeStatus.CLOSED_NO_RESOLUTION,
        }[self]


class DisputeRemedy(str, Enum):
    """What a customer-favour resolution gives the customer."""

    CREDIT = "CREDIT"
    REFUND = "REFUND"


class BillingDispute(BaseModel):
    """A customer's contest of an invoice charge."""

    dispute_id: str = Field(..., description="Dispute ID (UUID)")
    dispute_number: str = Field(..., description="Human-readable unique number")
    customer_id: str = Field(..., description="Disputing customer")
    invoice_number: str = Field(..., description="Disputed invoice")
    payment_id: Optional[str] = Field(None, description="Disputed payment, if any")
    reason: str = Field(..., description="Customer's reason")
    status: DisputeStatus = Field(default=DisputeStatus.UNDER_REVIEW)
    due_date: datetime = Field(..., description="When the next action is due")

    outcome: Optional[DisputeOutcome] = None
    remedy: Optional[DisputeRemedy] = None
    resolution_amount: Optional[Decimal] = None
    resolution_notes: Optional[str] = None
    refund_payment_id: Optional[str] = None

    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    resolved_at: Optional[datetime] = None
    created_by: str = Field(default="SYSTEM")
    updated_by: Optional[str] = None
    version: int = Field(default=0, description="Optimistic concurrency version")

    @field_validator("due_date", "created_at", "updated_at", "resolved_at")
    @classmethod
    def as_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return optional_utc(value)
