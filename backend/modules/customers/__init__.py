"""
Customers module.

Read-only customer directory used to snapshot billing details onto
invoices and to find a customer's stored payment method and terms, plus
the customer credit balances written by disputes and credit redemption.
"""

from .interfaces import ICustomerDirectory
from .models import CustomerCredit, CustomerProfile
from .credits import CustomerCreditRepository
from .service import CustomerRepository, InMemoryCustomerDirectory

__all__ = [
    "ICustomerDirectory",
    "CustomerCredit",
    "CustomerProfile",
    "CustomerCreditRepository",
    "CustomerRepository",
    "InMemoryCustomerDirectory",
]
