"""
Payment module data models.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel, Field

from shared.clock import utc_now


class PaymentStatus(str, Enum):
    """Payment row states."""

    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"


class PaymentMethod(str, Enum):
    """How a payment was made."""

    MANUAL = "MANUAL"
    CREDIT_CARD = "CREDIT_CARD"
    BANK_TRANSFER = "BANK_TRANSFER"
    AUTOMATIC = "AUTOMATIC"
    CUSTOMER_CREDIT = "CUSTOMER_CREDIT"
    REFUND = "REFUND"


class Payment(BaseModel):
    """
    A payment or refund against an invoice.

    Refund rows carry `original_payment_id` and a positive amount that
    reduces the invoice's net paid amount. Rows are never deleted.
    """

    payment_id: str = Field(..., description="Payment ID (UUID)")
    payment_reference: str = Field(..., description="Human-readable reference")
    invoice_number: str = Field(..., description="Invoice paid (lookup reference)")
    customer_id: str = Field(..., description="Paying customer")
    amount: Decimal = Field(..., description="Amount (always positive)")
    currency: str = Field(..., description="Currency code")
    method: PaymentMethod = Field(..., description="Payment method")
    status: PaymentStatus = Field(..., description="Payment status")
    gateway_transaction_id: Optional[str] = Field(None, description="Gateway transaction ID")
    failure_reason: Optional[str] = Field(None, description="Why the payment failed")
    memo: Optional[str] = Field(None, description="Free-text memo or refund reason")
    original_payment_id: Optional[str] = Field(None, description="Refunded payment")
    processed_at: Optional[datetime] = Field(None, description="When the payment completed")
    created_at: datetime = Field(default_factory=utc_now)
    created_by: str = Field(default="SYSTEM")

    @property
    def is_refund(self) -> bool:
        return self.original_payment_id is not None


class GatewaySuccess(BaseModel):
    """Gateway accepted the charge."""

    transaction_id: str


class GatewayFailure(BaseModel):
    """Gateway declined the charge or could not process it."""

    reason: str
    retryable: bool = True


GatewayResult = Union[GatewaySuccess, GatewayFailure]
