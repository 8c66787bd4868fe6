"""
Customer credit balances.
"""

from typing import Optional

from shared.repository import BaseRepository

from .models import CustomerCredit


class CustomerCreditRepository(BaseRepository[CustomerCredit]):
    """Data access for the customer_credits table, keyed by customer ID."""

    table = "customer_credits"
    model = CustomerCredit

    async def find_by_customer(self, customer_id: str) -> Optional[CustomerCredit]:
        return await self._get(customer_id)

    async def create(self, credit: CustomerCredit) -> CustomerCredit:
        return await self._insert(credit)

    async def save(self, credit: CustomerCredit) -> CustomerCredit:
        return await self._update(credit)
