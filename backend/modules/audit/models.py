"""
Audit module data models.

Audit entries are append-only: they are created once and never updated or
deleted by normal operation.
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from shared.clock import utc_now


class AuditEntityType(str, Enum):
    """Kinds of entity an audit entry can describe."""

    INVOICE = "INVOICE"
    PAYMENT = "PAYMENT"
    DISPUTE = "DISPUTE"
    CUSTOMER_CREDIT = "CUSTOMER_CREDIT"
    SUBSCRIPTION = "SUBSCRIPTION"


class AuditAction(str, Enum):
    """State-changing actions recorded in the audit trail."""

    INVOICE_CREATED = "INVOICE_CREATED"
    INVOICE_FINALIZED = "INVOICE_FINALIZED"
    INVOICE_UPDATED = "INVOICE_UPDATED"
    INVOICE_CANCELLED = "INVOICE_CANCELLED"
    INVOICE_SETTLED = "INVOICE_SETTLED"
    SETTLEMENT_REVERTED = "SETTLEMENT_REVERTED"
    MANUAL_PAYMENT = "MANUAL_PAYMENT"
    AUTOMATIC_PAYMENT = "AUTOMATIC_PAYMENT"
    PAYMENT_FAILED = "PAYMENT_FAILED"
    CREDIT_REDEEMED = "CREDIT_REDEEMED"
    REFUND_PROCESSED = "REFUND_PROCESSED"
    DISPUTE_OPENED = "DISPUTE_OPENED"
    DISPUTE_STATUS_CHANGED = "DISPUTE_STATUS_CHANGED"
    DISPUTE_RESOLVED = "DISPUTE_RESOLVED"
    CREDIT_ISSUED = "CREDIT_ISSUED"
    SUBSCRIPTION_BILLED = "SUBSCRIPTION_BILLED"
    SUBSCRIPTION_EXPIRED = "SUBSCRIPTION_EXPIRED"


class BillingAudit(BaseModel):
    """
    An immutable record of a state-changing action.

    `entity_id` is a lookup reference (invoice number, payment id, dispute
    id, ...), not an ownership link.
    """

    id: str = Field(..., description="Audit entry ID (UUID)")
    entity_type: AuditEntityType = Field(..., description="Kind of entity")
    entity_id: str = Field(..., description="Identifier of the affected entity")
    action: AuditAction = Field(..., description="Action performed")
    details: str = Field(default="", description="Free-text details")
    performed_by: str = Field(..., description="Who performed the action")
    created_at: datetime = Field(default_factory=utc_now, description="When it happened")

    model_config = {"frozen": True}
