"""
Invoice module interfaces.

Other modules should depend on IInvoiceLedger, not the concrete ledger.
The ledger reads payment totals through IPaymentHistory so it does not
depend on the payments module that depends on it.
"""

from contextlib import AbstractAsyncContextManager
from datetime import datetime
from decimal import Decimal
from typing import Optional, Protocol, runtime_checkable

from .models import ChargeRequest, Invoice, InvoiceStatus, UpdateInvoiceRequest


@runtime_checkable
class IPaymentHistory(Protocol):
    """Read access to settled amounts for an invoice."""

    async def net_paid(self, invoice_number: str) -> Decimal:
        """
        Completed payments minus completed refunds for an invoice.
        """
        ...


@runtime_checkable
class IInvoiceLedger(Protocol):
    """
    Interface for the invoice lifecycle and balance bookkeeping.

    Every state-changing method writes its audit entry in the same
    transaction as the change.
    """

    def locked(self, invoice_number: str) -> AbstractAsyncContextManager[None]:
        """
        Hold the per-invoice lock.

        Reentrant for the current task, so callers holding it may call
        ledger methods that take it again.
        """
        ...

    async def create_invoice(self, request: ChargeRequest) -> Invoice:
        """
        Create a DRAFT invoice with computed charges.

        Raises:
            MissingFieldError: If a required field is absent
            InvalidAmountError: If a monetary input is negative
        """
        ...

    async def finalize_invoice(self, invoice_number: str, performed_by: str = "SYSTEM") -> Invoice:
        """
        DRAFT -> SENT.

        Raises:
            InvoiceNotFoundError: If the invoice does not exist
            InvalidInvoiceStateError: If the invoice is not DRAFT
        """
        ...

    async def update_invoice(
        self,
        invoice_number: str,
        changes: UpdateInvoiceRequest,
        performed_by: str = "SYSTEM",
    ) -> Invoice:
        """
        Change descriptive fields while DRAFT or SENT.

        Raises:
            InvalidInvoiceStateError: If the invoice is part-paid, paid or cancelled
        """
        ...

    async def cancel_invoice(
        self,
        invoice_number: str,
        reason: str,
        performed_by: str = "SYSTEM",
    ) -> Invoice:
        """
        DRAFT/SENT -> CANCELLED.

        Raises:
            InvalidInvoiceStateError: If the invoice is part-paid, paid or cancelled
        """
        ...

    async def apply_settlement(
        self,
        invoice_number: str,
        payment_amount: Decimal,
        performed_by: str = "SYSTEM",
    ) -> Invoice:
        """
        Apply a payment amount to the outstanding balance.

        Must be called with the invoice lock held and inside the
        transaction that also writes the payment row.

        Raises:
            InvalidInvoiceStateError: If the invoice is not SENT or PARTIALLY_PAID
            OverpaymentError: If the amount exceeds the outstanding balance
        """
        ...

    async def revert_settlement(
        self,
        invoice_number: str,
        reason: str,
        performed_by: str = "SYSTEM",
    ) -> Invoice:
        """
        Recompute a PAID/PARTIALLY_PAID status from the net paid amount.

        Explicit follow-up to a refund; never triggered automatically.
        """
        ...

    async def get_invoice(self, invoice_number: str) -> Invoice:
        ...

    async def outstanding_balance(self, invoice_number: str) -> Decimal:
        ...

    async def get_overdue_invoices(self, as_of: Optional[datetime] = None) -> list[Invoice]:
        ...

    async def list_customer_invoices(
        self,
        customer_id: str,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Invoice]:
        ...

    async def list_invoices_by_status(
        self,
        status: InvoiceStatus,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> list[Invoice]:
        ...

    async def is_invoice_overdue(
        self,
        invoice_number: str,
        as_of: Optional[datetime] = None,
    ) -> bool:
        ...
