"""Payments module test fixtures."""

from decimal import Decimal

import pytest

from modules.customers import CustomerCredit, CustomerCreditRepository


@pytest.fixture
def grant_credit(store):
    """Factory: give a customer a credit balance directly in the store."""

    async def grant(customer_id: str = "cust-001", balance: str = "10.00", currency: str = "USD"):
        return await CustomerCreditRepository(store).create(
            CustomerCredit(customer_id=customer_id, balance=Decimal(balance), currency=currency)
        )

    return grant
