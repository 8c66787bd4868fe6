"""
Invoices module.

Owns the invoice state machine (DRAFT -> SENT -> PARTIALLY_PAID -> PAID,
or CANCELLED) and the settlement arithmetic that keeps the paid amount at
or below the invoice total.

Public API:
- IInvoiceLedger: Interface for invoice operations
- IPaymentHistory: Interface the ledger reads payment totals through
- Invoice: Invoice snapshot
- ChargeRequest / UpdateInvoiceRequest: Inputs
- InvoiceStatus / InvoiceType / PaymentTerms: Enumerations
"""

from .interfaces import IInvoiceLedger, IPaymentHistory
from .models import (
    SETTLEABLE_STATUSES,
    ChargeRequest,
    Invoice,
    InvoiceStatus,
    InvoiceType,
    PaymentTerms,
    UpdateInvoiceRequest,
)
from .exceptions import (
    InvoiceError,
    InvoiceNotFoundError,
    InvalidInvoiceStateError,
    OverpaymentError,
)
from .repository import InvoiceRepository
from .service import InvoiceLedger

__all__ = [
    # Interfaces
    "IInvoiceLedger",
    "IPaymentHistory",
    # Models
    "SETTLEABLE_STATUSES",
    "ChargeRequest",
    "Invoice",
    "InvoiceStatus",
    "InvoiceType",
    "PaymentTerms",
    "UpdateInvoiceRequest",
    # Exceptions
    "InvoiceError",
    "InvoiceNotFoundError",
    "InvalidInvoiceStateError",
    "OverpaymentError",
    # Implementation
    "InvoiceLedger",
    "InvoiceRepository",
]
