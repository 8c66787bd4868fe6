"""
Notification events.
"""

from enum import Enum


class NotificationEvent(str, Enum):
    """Events announced to customers after a ledger change commits."""

    INVOICE_FINALIZED = "invoice.finalized"
    INVOICE_CANCELLED = "invoice.cancelled"
    INVOICE_PARTIALLY_PAID = "invoice.partially_paid"
    INVOICE_PAID = "invoice.paid"
    PAYMENT_FAILED = "payment.failed"
    PAYMENT_REFUNDED = "payment.refunded"
    DISPUTE_OPENED = "dispute.opened"
    DISPUTE_RESOLVED = "dispute.resolved"
