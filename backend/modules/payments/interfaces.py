"""
Payment module interfaces.
"""

from decimal import Decimal
from typing import Optional, Protocol, runtime_checkable

from modules.invoices.models import Invoice

from .models import GatewayResult, Payment


@runtime_checkable
class IPaymentGateway(Protocol):
    """
    External payment gateway.

    Declines are returned as GatewayFailure; transport problems raise.
    """

    async def charge(
        self,
        amount: Decimal,
        currency: str,
        payment_method: Optional[str],
    ) -> GatewayResult:
        ...


@runtime_checkable
class IPaymentProcessor(Protocol):
    """
    Interface for applying payments and refunds to invoices.
    """

    async def record_manual_payment(
        self,
        invoice_number: str,
        amount: Decimal,
        currency: str,
        memo: Optional[str] = None,
        performed_by: str = "SYSTEM",
    ) -> tuple[Payment, Invoice]:
        """
        Record an offline payment and settle it against the invoice.

        Amounts are applied exactly as given.

        Raises:
            InvoiceNotFoundError: If the invoice does not exist
            CurrencyMismatchError: If currency differs from the invoice
            InvalidAmountError: If amount is not positive
            InvalidInvoiceStateError: If the invoice cannot take payments
            OverpaymentError: If amount exceeds the outstanding balance
        """
        ...

    async def initiate_automatic_payment(
        self,
        invoice_number: str,
        performed_by: str = "SYSTEM",
    ) -> tuple[Payment, Invoice]:
        """
        Charge the outstanding balance through the gateway.

        Raises:
            GatewayError: If the gateway declines, fails or times out
        """
        ...

    async def refund_payment(
        self,
        payment_id: str,
        amount: Decimal,
        reason: str,
        performed_by: str = "SYSTEM",
        notify: bool = True,
    ) -> Payment:
        """
        Record a refund of a completed payment.

        Does not change the invoice status; see revert_settlement. Pass
        notify=False when refunding inside a larger transaction whose
        caller sends its own notification after commit.

        Raises:
            RefundExceedsPaymentError: If amount exceeds the refundable remainder
        """
        ...

    async def apply_customer_credit(
        self,
        invoice_number: str,
        performed_by: str = "SYSTEM",
        amount: Optional[Decimal] = None,
    ) -> tuple[Payment, Invoice]:
        """
        Redeem customer credit against an invoice.
        """
        ...

    async def list_payments(self, invoice_number: str) -> list[Payment]:
        """All payments for an invoice, most recent first."""
        ...

    async def get_payment(self, payment_id: str) -> Payment:
        ...

    async def list_customer_payments(
        self,
        customer_id: str,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Payment]:
        ...
