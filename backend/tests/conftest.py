"""
Shared test fixtures and utilities.

Every test gets a fresh in-memory store and a container wired to it, so
the ledger components run exactly as in production minus Supabase.
"""

from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from container import ServiceContainer, reset_container
from modules.customers import CustomerProfile, InMemoryCustomerDirectory
from modules.invoices import ChargeRequest, Invoice
from modules.payments import GatewaySuccess
from shared.config import Settings
from shared.store import InMemoryLedgerStore


TEST_CUSTOMER_ID = "cust-001"


@pytest.fixture(autouse=True)
def reset_container_singleton():
    """Reset the container singleton before and after each test."""
    reset_container()
    yield
    reset_container()


@pytest.fixture
def settings() -> Settings:
    """Settings independent of the environment and any .env file."""
    return Settings(
        _env_file=None,
        supabase_url="",
        supabase_service_role_key="",
        tax_rate_percent=Decimal("8.5"),
        default_currency="USD",
        default_payment_terms="NET_30",
        gateway_url="",
        gateway_timeout_seconds=0.2,
        gateway_failure_threshold=3,
        gateway_reset_seconds=60.0,
        billing_worker_count=2,
        subscription_auto_finalize=True,
        enable_notifications=True,
    )


@pytest.fixture
def store() -> InMemoryLedgerStore:
    return InMemoryLedgerStore()


@pytest.fixture
def customer_profile() -> CustomerProfile:
    return CustomerProfile(
        customer_id=TEST_CUSTOMER_ID,
        name="Acme Couriers Ltd",
        email="billing@acme.test",
        billing_address="1 Dock Road, Leeds",
        payment_terms="NET_15",
        payment_method="pm_card_visa",
    )


@pytest.fixture
def customers(customer_profile) -> InMemoryCustomerDirectory:
    return InMemoryCustomerDirectory([customer_profile])


@pytest.fixture
def gateway() -> AsyncMock:
    """Payment gateway that approves every charge."""
    mock = AsyncMock()
    mock.charge.return_value = GatewaySuccess(transaction_id="txn_123")
    return mock


@pytest.fixture
def container(settings, store, gateway, customers) -> ServiceContainer:
    return ServiceContainer(
        settings=settings,
        store=store,
        gateway=gateway,
        customers=customers,
    )


@pytest.fixture
def audit(container):
    return container.audit


@pytest.fixture
def ledger(container):
    return container.invoices


@pytest.fixture
def processor(container):
    return container.payments


@pytest.fixture
def disputes(container):
    return container.disputes


@pytest.fixture
def biller(container):
    return container.subscriptions


@pytest.fixture
def make_invoice(ledger):
    """Factory: create an invoice with explicit amounts, optionally finalized."""

    async def make(
        subtotal: str = "25.00",
        discount: str = "2.50",
        tax: str = "1.91",
        finalize: bool = True,
        customer_id: str = TEST_CUSTOMER_ID,
        **fields,
    ) -> Invoice:
        invoice = await ledger.create_invoice(
            ChargeRequest(
                customer_id=customer_id,
                subtotal=Decimal(subtotal),
                discount_amount=Decimal(discount),
                tax_amount=Decimal(tax),
                currency="USD",
                **fields,
            )
        )
        if finalize:
            invoice = await ledger.finalize_invoice(invoice.invoice_number)
        return invoice

    return make
