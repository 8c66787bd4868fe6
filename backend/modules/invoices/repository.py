"""
Invoice repository.
"""

from datetime import datetime
from typing import Optional

from shared.repository import BaseRepository
from shared.store import eq, gte, in_, lt, lte, neq

from .models import SETTLEABLE_STATUSES, Invoice, InvoiceStatus, InvoiceType


class InvoiceRepository(BaseRepository[Invoice]):
    """Data access for the invoices table, keyed by invoice number."""

    table = "invoices"
    model = Invoice

    async def find_by_invoice_number(self, invoice_number: str) -> Optional[Invoice]:
        return await self._get(invoice_number)

    async def create(self, invoice: Invoice) -> Invoice:
        return await self._insert(invoice)

    async def save(self, invoice: Invoice) -> Invoice:
        """Write a changed invoice; fails if its version is stale."""
        return await self._update(invoice)

    async def find_overdue(self, as_of: datetime) -> list[Invoice]:
        return await self._select(
            in_("status", SETTLEABLE_STATUSES),
            lt("due_date", as_of),
            order_by="due_date",
        )

    async def find_by_customer(
        self,
        customer_id: str,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Invoice]:
        return await self._select(
            eq("customer_id", customer_id),
            order_by="created_at",
            descending=True,
            limit=limit,
            offset=offset,
        )

    async def find_by_status(
        self,
        status: InvoiceStatus,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> list[Invoice]:
        filters = [eq("status", status)]
        if start is not None:
            filters.append(gte("created_at", start))
        if end is not None:
            filters.append(lte("created_at", end))
        return await self._select(*filters, order_by="created_at")

    async def count_shipment_invoices_since(self, customer_id: str, since: datetime) -> int:
        """Non-cancelled SHIPMENT invoices created for a customer since `since`."""
        rows = await self._select(
            eq("customer_id", customer_id),
            eq("invoice_type", InvoiceType.SHIPMENT),
            neq("status", InvoiceStatus.CANCELLED),
            gte("created_at", since),
        )
        return len(rows)
