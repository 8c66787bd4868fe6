"""
Composition root for the billing ledger.

This module provides the "container" that wires together all module
implementations. Each component exposes its service through an
interface, and this file creates the concrete implementations.

The store is Supabase when SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY are
set, otherwise an in-memory store (local runs and tests). All components
share one store, one lock registry and one notification dispatcher.
"""

from typing import TYPE_CHECKING, Optional

from shared.config import Settings, get_settings
from shared.database import get_supabase_client, is_supabase_configured
from shared.locks import KeyedLock
from shared.store import InMemoryLedgerStore, LedgerStore, SupabaseLedgerStore

# Type checking imports for interfaces (avoids import cycles at load time)
if TYPE_CHECKING:
    from modules.audit.interfaces import IAuditRecorder
    from modules.customers.interfaces import ICustomerDirectory
    from modules.disputes.interfaces import IDisputeManager
    from modules.invoices.interfaces import IInvoiceLedger
    from modules.notifications.service import NotificationDispatcher
    from modules.payments.interfaces import IPaymentGateway, IPaymentProcessor
    from modules.pricing.interfaces import IPricingEngine
    from modules.subscriptions.interfaces import ISubscriptionBiller


class ServiceContainer:
    """
    Container for all service instances.

    Services are created lazily on first access and cached as singletons
    within the container. Pass `store`, `gateway` or `customers` to
    override the defaults (tests do).
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        store: Optional[LedgerStore] = None,
        gateway: "IPaymentGateway | None" = None,
        customers: "ICustomerDirectory | None" = None,
    ) -> None:
        self.settings = settings or get_settings()
        self._store = store
        self._gateway = gateway
        self._customers = customers
        self.locks = KeyedLock()
        self._notifications: "NotificationDispatcher | None" = None
        self._audit: "IAuditRecorder | None" = None
        self._pricing: "IPricingEngine | None" = None
        self._invoices: "IInvoiceLedger | None" = None
        self._payments: "IPaymentProcessor | None" = None
        self._disputes: "IDisputeManager | None" = None
        self._subscriptions: "ISubscriptionBiller | None" = None

    @property
    def store(self) -> LedgerStore:
        """Get the ledger store (Supabase if configured)."""
        if self._store is None:
            if is_supabase_configured():
                self._store = SupabaseLedgerStore(get_supabase_client())
            else:
                self._store = InMemoryLedgerStore()
        return self._store

    @property
    def customers(self) -> "ICustomerDirectory":
        if self._customers is None:
            if isinstance(self.store, SupabaseLedgerStore):
                from modules.customers.service import CustomerRepository
                self._customers = CustomerRepository(self.store)
            else:
                from modules.customers.service import InMemoryCustomerDirectory
                self._customers = InMemoryCustomerDirectory()
        return self._customers

    @property
    def gateway(self) -> "IPaymentGateway":
        if self._gateway is None:
            from modules.payments.gateway import HttpPaymentGateway, UnconfiguredPaymentGateway
            if self.settings.gateway_url:
                self._gateway = HttpPaymentGateway(
                    self.settings.gateway_url, self.settings.gateway_api_key
                )
            else:
                self._gateway = UnconfiguredPaymentGateway()
        return self._gateway

    @property
    def notifications(self) -> "NotificationDispatcher":
        if self._notifications is None:
            from modules.notifications.service import NotificationDispatcher
            self._notifications = NotificationDispatcher(
                enabled=self.settings.enable_notifications
            )
        return self._notifications

    @property
    def audit(self) -> "IAuditRecorder":
        """Get the audit recorder instance."""
        if self._audit is None:
            from modules.audit.service import AuditRecorder
            self._audit = AuditRecorder(self.store)
        return self._audit

    @property
    def pricing(self) -> "IPricingEngine":
        """Get the pricing engine instance."""
        if self._pricing is None:
            from modules.pricing.service import PricingEngine
            from modules.pricing.tiers import (
                CachedTierSource,
                PricingTierRepository,
                StaticTierSource,
            )
            if isinstance(self.store, SupabaseLedgerStore):
                source = CachedTierSource(
                    PricingTierRepository(self.store),
                    ttl_seconds=self.settings.pricing_tier_cache_ttl,
                )
            else:
                source = StaticTierSource()
            self._pricing = PricingEngine(
                source,
                tax_rate_percent=self.settings.tax_rate_percent,
                default_discount_percent=self.settings.default_discount_percent,
            )
        return self._pricing

    @property
    def invoices(self) -> "IInvoiceLedger":
        """Get the invoice ledger instance."""
        if self._invoices is None:
            from modules.invoices.service import InvoiceLedger
            from modules.payments.repository import PaymentRepository
            self._invoices = InvoiceLedger(
                self.store,
                pricing=self.pricing,
                audit=self.audit,
                payments=PaymentRepository(self.store),
                customers=self.customers,
                notifications=self.notifications,
                locks=self.locks,
                settings=self.settings,
            )
        return self._invoices

    @property
    def payments(self) -> "IPaymentProcessor":
        """Get the payment processor instance."""
        if self._payments is None:
            from modules.payments.service import PaymentProcessor
            self._payments = PaymentProcessor(
                self.store,
                ledger=self.invoices,
                audit=self.audit,
                gateway=self.gateway,
                customers=self.customers,
                notifications=self.notifications,
                settings=self.settings,
            )
        return self._payments

    @property
    def disputes(self) -> "IDisputeManager":
        """Get the dispute manager instance."""
        if self._disputes is None:
            from modules.disputes.service import DisputeManager
            self._disputes = DisputeManager(
                self.store,
                ledger=self.invoices,
                payments=self.payments,
                audit=self.audit,
                notifications=self.notifications,
                locks=self.locks,
                settings=self.settings,
            )
        return self._disputes

    @property
    def subscriptions(self) -> "ISubscriptionBiller":
        """Get the subscription biller instance."""
        if self._subscriptions is None:
            from modules.subscriptions.service import SubscriptionBiller
            self._subscriptions = SubscriptionBiller(
                self.store,
                ledger=self.invoices,
                pricing=self.pricing,
                audit=self.audit,
                locks=self.locks,
                settings=self.settings,
            )
        return self._subscriptions

    async def shutdown(self) -> None:
        """Wait for pending notifications."""
        if self._notifications is not None:
            await self._notifications.drain()


# Module-level container singleton
_container: ServiceContainer | None = None


def get_container() -> ServiceContainer:
    """Get the singleton service container."""
    global _container
    if _container is None:
        _container = ServiceContainer()
    return _container


def reset_container() -> None:
    """
    Reset the service container.

    The next call to get_container() creates a fresh container.
    Primarily used for testing.
    """
    global _container
    _container = None
