"""
Dispute repository.
"""

from datetime import datetime
from typing import Optional

from shared.repository import BaseRepository
from shared.store import eq, in_, lt

from .models import BillingDispute, DisputeStatus, TERMINAL_DISPUTE_STATUSES


_OPEN_STATUSES = [s for s in DisputeStatus if s not in TERMINAL_DISPUTE_STATUSES]


class DisputeRepository(BaseRepository[BillingDispute]):
    """Data access for the billing_disputes table, keyed by dispute ID."""

    table = "billing_disputes"
    model = BillingDispute

    async def find_by_dispute_id(self, dispute_id: str) -> Optional[BillingDispute]:
        return await self._get(dispute_id)

    async def create(self, dispute: BillingDispute) -> BillingDispute:
        return await self._insert(dispute)

    async def save(self, dispute: BillingDispute) -> BillingDispute:
        return await self._update(dispute)

    async def find_due_for_review(self, as_of: datetime) -> list[BillingDispute]:
        return await self._select(
            in_("status", _OPEN_STATUSES),
            lt("due_date", as_of),
            order_by="due_date",
        )

    async def find_by_customer(
        self,
        customer_id: str,
        limit: int = 50,
        offset: int = 0,
    ) -> list[BillingDispute]:
        return await self._select(
            eq("customer_id", customer_id),
            order_by="created_at",
            descending=True,
            limit=limit,
            offset=offset,
        )
