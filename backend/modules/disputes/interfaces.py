"""
Dispute module interface.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional, Protocol, runtime_checkable

from modules.customers import CustomerCredit

from .models import BillingDispute, DisputeOutcome, DisputeRemedy


@runtime_checkable
class IDisputeManager(Protocol):
    """
    Interface for the billing dispute workflow.
    """

    async def open_dispute(
        self,
        invoice_number: str,
        reason: str,
        customer_id: str,
        payment_id: Optional[str] = None,
        performed_by: Optional[str] = None,
    ) -> BillingDispute:
        """
        Open a dispute against a finalized invoice.

        Raises:
            InvoiceNotFoundError: If the invoice does not exist
            InvalidInvoiceStateError: If the invoice is still DRAFT
        """
        ...

    async def request_customer_response(
        self,
        dispute_id: str,
        note: Optional[str] = None,
        performed_by: str = "SYSTEM",
    ) -> BillingDispute:
        ...

    async def escalate_internally(
        self,
        dispute_id: str,
        note: Optional[str] = None,
        performed_by: str = "SYSTEM",
    ) -> BillingDispute:
        ...

    async def resolve_dispute(
        self,
        dispute_id: str,
        outcome: DisputeOutcome,
        amount: Optional[Decimal] = None,
        remedy: DisputeRemedy = DisputeRemedy.CREDIT,
        notes: Optional[str] = None,
        performed_by: str = "SYSTEM",
    ) -> BillingDispute:
        """
        Close a dispute awaiting a response.

        A customer-favour outcome issues `amount` as customer credit or
        refunds it, in the same transaction as the status change.

        Raises:
            InvalidDisputeStateError: If the dispute is not awaiting a response
        """
        ...

    async def find_disputes_due_for_review(
        self,
        as_of: Optional[datetime] = None,
    ) -> list[BillingDispute]:
        """Non-terminal disputes whose due date is before `as_of`."""
        ...

    async def get_dispute(self, dispute_id: str) -> BillingDispute:
        ...

    async def list_customer_disputes(
        self,
        customer_id: str,
        limit: int = 50,
        offset: int = 0,
    ) -> list[BillingDispute]:
        ...

    async def get_customer_credit(self, customer_id: str) -> CustomerCredit:
        ...
