"""
Customer directory implementations.
"""

from typing import Iterable, Optional

from shared.repository import BaseRepository

from .models import CustomerProfile


class InMemoryCustomerDirectory:
    """Directory over a dict of profiles. Used by tests and local runs."""

    def __init__(self, profiles: Optional[Iterable[CustomerProfile]] = None):
        self._profiles: dict[str, CustomerProfile] = {}
        for profile in profiles or ():
            self.add(profile)

    def add(self, profile: CustomerProfile) -> None:
        self._profiles[profile.customer_id] = profile

    async def get_customer(self, customer_id: str) -> Optional[CustomerProfile]:
        """Profile for the customer, or None if unknown."""
        return self._profiles.get(customer_id)


class CustomerRepository(BaseRepository[CustomerProfile]):
    """Directory backed by the customers table, maintained outside the ledger."""

    table = "customers"
    model = CustomerProfile

    async def get_customer(self, customer_id: str) -> Optional[CustomerProfile]:
        return await self._get(customer_id)
