"""
Customer directory interface.

The directory is an external collaborator; the ledger only reads from it.
"""

from typing import Optional, Protocol, runtime_checkable

from .models import CustomerProfile


@runtime_checkable
class ICustomerDirectory(Protocol):
    """Read-only customer lookup."""

    async def get_customer(self, customer_id: str) -> Optional[CustomerProfile]:
        """
        Look up a customer.

        Returns:
            CustomerProfile, or None if the customer is unknown
        """
        ...
