"""
Invoice module data models.

These models define invoices, their lifecycle states, payment terms, and
the requests that create or change them.
"""

from datetime import datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from modules.pricing.models import ShipmentDetails
from shared.clock import optional_utc, utc_now


class InvoiceStatus(str, Enum):
    """
    Invoice lifecycle states.

    DRAFT -> SENT -> {PARTIALLY_PAID -> PAID} | CANCELLED
    """

    DRAFT = "DRAFT"
    SENT = "SENT"
    PARTIALLY_PAID = "PARTIALLY_PAID"
    PAID = "PAID"
    CANCELLED = "CANCELLED"

    @property
    def is_terminal(self) -> bool:
        return self in (InvoiceStatus.PAID, InvoiceStatus.CANCELLED)


# Statuses that can still receive a settlement
SETTLEABLE_STATUSES = (InvoiceStatus.SENT, InvoiceStatus.PARTIALLY_PAID)


class InvoiceType(str, Enum):
    """What an invoice bills for."""

    SHIPMENT = "SHIPMENT"
    SUBSCRIPTION = "SUBSCRIPTION"


class PaymentTerms(str, Enum):
    """Payment terms that determine an invoice's due date."""

    NET_15 = "NET_15"
    NET_30 = "NET_30"
    NET_45 = "NET_45"
    NET_60 = "NET_60"
    COD = "COD"
    IMMEDIATE = "IMMEDIATE"

    @classmethod
    def parse(cls, value: Optional[str]) -> "PaymentTerms":
        """Parse terms, treating unknown or missing values as NET_30."""
        if value:
            try:
                return cls(value.strip().upper())
            except ValueError:
                pass
        return cls.NET_30

    def due_date(self, issued_at: datetime) -> datetime:
        if self is PaymentTerms.COD:
            return issued_at
        if self is PaymentTerms.IMMEDIATE:
            return issued_at + timedelta(hours=24)
        days = int(self.value.split("_")[1])
        return issued_at + timedelta(days=days)


class Invoice(BaseModel):
    """
    A billing record for a shipment or subscription period.

    Amounts satisfy total_amount = subtotal - discount_amount + tax_amount
    and are fixed once the invoice leaves DRAFT. Customer fields are a
    point-in-time snapshot taken at creation.
    """

    id: str = Field(..., description="Invoice ID (UUID)")
    invoice_number: str = Field(..., description="Human-readable unique number")
    customer_id: str = Field(..., description="Billed customer")
    customer_name: str = Field(..., description="Customer name at creation")
    customer_email: Optional[str] = Field(None, description="Customer email at creation")
    billing_address: Optional[str] = Field(None, description="Billing address")
    description: Optional[str] = Field(None, description="Free-text description")

    subtotal: Decimal = Field(..., description="Amount before discount and tax")
    discount_amount: Decimal = Field(default=Decimal("0"))
    tax_amount: Decimal = Field(default=Decimal("0"))
    total_amount: Decimal = Field(..., description="Amount owed")
    currency: str = Field(default="USD", description="Currency code")
    tier_name: Optional[str] = Field(None, description="Volume tier used for pricing")

    status: InvoiceStatus = Field(default=InvoiceStatus.DRAFT)
    invoice_type: InvoiceType = Field(default=InvoiceType.SHIPMENT)
    payment_terms: PaymentTerms = Field(default=PaymentTerms.NET_30)
    due_date: datetime = Field(..., description="When payment is due")

    shipment_id: Optional[str] = Field(None, description="Billed shipment")
    subscription_id: Optional[str] = Field(None, description="Billed subscription")

    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    sent_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None

    created_by: str = Field(default="SYSTEM")
    updated_by: Optional[str] = None
    version: int = Field(default=0, description="Optimistic concurrency version")

    @field_validator("due_date", "created_at", "updated_at", "sent_at", "paid_at", "cancelled_at")
    @classmethod
    def as_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return optional_utc(value)

    def is_overdue(self, as_of: datetime) -> bool:
        return self.status in SETTLEABLE_STATUSES and self.due_date < as_of


class ChargeRequest(BaseModel):
    """
    Request to create an invoice.

    Charges come either from `shipment` (priced by the pricing engine) or
    from explicit `subtotal`/`discount_amount`/`tax_amount`. Customer
    snapshot fields left empty are filled from the customer directory.
    """

    customer_id: Optional[str] = None
    customer_name: Optional[str] = None
    customer_email: Optional[str] = None
    billing_address: Optional[str] = None
    description: Optional[str] = None
    currency: Optional[str] = None

    shipment: Optional[ShipmentDetails] = None
    subtotal: Optional[Decimal] = None
    discount_amount: Optional[Decimal] = None
    tax_amount: Optional[Decimal] = None

    invoice_type: InvoiceType = InvoiceType.SHIPMENT
    shipment_id: Optional[str] = None
    subscription_id: Optional[str] = None
    payment_terms: Optional[str] = None
    due_date: Optional[datetime] = None
    created_by: str = "SYSTEM"


class UpdateInvoiceRequest(BaseModel):
    """
    Descriptive fields that may change while an invoice is DRAFT or SENT.

    None means "leave unchanged". Amounts are deliberately absent.
    """

    customer_name: Optional[str] = None
    customer_email: Optional[str] = None
    billing_address: Optional[str] = None
    description: Optional[str] = None
    due_date: Optional[datetime] = None
    currency: Optional[str] = None
