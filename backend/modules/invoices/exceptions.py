"""
Invoice module exceptions.
"""

from decimal import Decimal
from typing import Iterable

from shared.exceptions import InvalidStateError, LedgerError, NotFoundError


class InvoiceError(LedgerError):
    """Base exception for invoice-related errors."""

    pass


class InvoiceNotFoundError(NotFoundError):
    """Raised when an invoice number is unknown."""

    def __init__(self, invoice_number: str):
        super().__init__(
            f"Invoice not found: {invoice_number}",
            code="INVOICE_NOT_FOUND",
            details={"invoice_number": invoice_number},
        )


class InvalidInvoiceStateError(InvalidStateError):
    """Raised when an operation is illegal in the invoice's current status."""

    def __init__(
        self,
        invoice_number: str,
        status: str,
        operation: str,
        allowed: Iterable[str] = (),
    ):
        allowed = [getattr(s, "value", s) for s in allowed]
        status = getattr(status, "value", status)
        message = f"Cannot {operation} invoice {invoice_number} in status {status}"
        if allowed:
            message += f" (allowed: {', '.join(allowed)})"
        super().__init__(
            message,
            code="INVALID_INVOICE_STATE",
            details={
                "invoice_number": invoice_number,
                "status": status,
                "operation": operation,
                "allowed": allowed,
            },
        )


class OverpaymentError(InvoiceError):
    """Raised when a settlement would take the paid amount above the total."""

    def __init__(
        self,
        invoice_number: str,
        total: Decimal,
        already_paid: Decimal,
        attempted: Decimal,
    ):
        super().__init__(
            f"Payment of {attempted} on invoice {invoice_number} exceeds "
            f"outstanding balance {total - already_paid}",
            code="OVERPAYMENT",
            details={
                "invoice_number": invoice_number,
                "total": str(total),
                "already_paid": str(already_paid),
                "attempted": str(attempted),
            },
        )
