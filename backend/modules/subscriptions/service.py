"""
Subscription biller implementation.

Due subscriptions are billed concurrently by a bounded pool of workers.
Each subscription is billed in its own transaction: invoice creation,
the next-billing-date advance and the audit entry commit together.
Finalization runs after that commit, so a finalization failure leaves a
DRAFT invoice and a reported failure, never a double bill.
"""

import asyncio
import logging
from datetime import datetime
from typing import Optional

from modules.audit import AuditAction, AuditEntityType, IAuditRecorder
from modules.invoices import ChargeRequest, IInvoiceLedger, InvoiceType
from modules.pricing import IPricingEngine
from shared.clock import ensure_utc, utc_now
from shared.config import Settings, get_settings
from shared.locks import KeyedLock
from shared.store import LedgerStore

from .exceptions import SubscriptionNotFoundError
from .models import (
    BillingCycleResult,
    BillingFailure,
    Subscription,
    SubscriptionStatus,
)
from .repository import SubscriptionRepository

logger = logging.getLogger(__name__)

BILLER_ACTOR = "SUBSCRIPTION_BILLER"


class SubscriptionBiller:
    """
    Creates recurring invoices for due subscriptions.
    """

    def __init__(
        self,
        store: LedgerStore,
        ledger: IInvoiceLedger,
        pricing: IPricingEngine,
        audit: IAuditRecorder,
        locks: Optional[KeyedLock] = None,
        settings: Optional[Settings] = None,
    ):
        self._store = store
        self._ledger = ledger
        self._pricing = pricing
        self._audit = audit
        self._locks = locks or KeyedLock()
        self._settings = settings or get_settings()
        self._repository = SubscriptionRepository(store)

    async def get_subscription(self, subscription_id: str) -> Subscription:
        """Get a subscription by ID; raises SubscriptionNotFoundError."""
        subscription = await self._repository.find_by_subscription_id(subscription_id)
        if subscription is None:
            raise SubscriptionNotFoundError(subscription_id)
        return subscription

    async def run_billing_cycle(self, as_of: Optional[datetime] = None) -> BillingCycleResult:
        """
        Invoice every ACTIVE subscription whose next billing date has come.

        Subscriptions are billed concurrently under a worker limit. One
        failing subscription is reported in the result and does not stop
        the others.

        Args:
            as_of: Billing instant (defaults to now)

        Returns:
            BillingCycleResult with the invoices created and any failures
        """
        as_of = ensure_utc(as_of) if as_of else utc_now()
        due = await self._repository.find_due(as_of)
        result = BillingCycleResult(as_of=as_of, due=len(due))
        logger.info(f"Billing cycle at {as_of.isoformat()}: {len(due)} subscription(s) due")

        semaphore = asyncio.Semaphore(max(1, self._settings.billing_worker_count))

        async def worker(subscription: Subscription) -> None:
            async with semaphore:
                await self._bill_one(subscription.subscription_id, as_of, result)

        await asyncio.gather(*(worker(s) for s in due))

        logger.info(
            f"Billing cycle done: {len(result.invoiced)} invoiced, "
            f"{len(result.expired)} expired, {len(result.failures)} failed"
        )
        return result

    async def _bill_one(
        self,
        subscription_id: str,
        as_of: datetime,
        result: BillingCycleResult,
    ) -> None:
        invoice_number: Optional[str] = None
        try:
            async with self._locks.hold(f"subscription:{subscription_id}"):
                outcome, invoice_number = await self._bill_locked(subscription_id, as_of)
            if outcome == "expired":
                result.expired.append(subscription_id)
            elif outcome == "skipped":
                result.skipped.append(subscription_id)
            else:
                result.invoiced.append(invoice_number)
                if self._settings.subscription_auto_finalize:
                    await self._ledger.finalize_invoice(invoice_number, BILLER_ACTOR)
        except Exception as e:
            logger.exception(f"Billing failed for subscription {subscription_id}")
            result.failures.append(
                BillingFailure(
                    subscription_id=subscription_id,
                    error_code=getattr(e, "code", type(e).__name__),
                    message=str(e),
                    invoice_number=invoice_number,
                )
            )

    async def _bill_locked(
        self,
        subscription_id: str,
        as_of: datetime,
    ) -> tuple[str, Optional[str]]:
        async with self._store.transaction():
            subscription = await self.get_subscription(subscription_id)
            if (
                subscription.status != SubscriptionStatus.ACTIVE
                or subscription.next_billing_date > as_of
            ):
                return "skipped", None

            now = utc_now()
            period_start = subscription.next_billing_date
            if subscription.end_date is not None and period_start > subscription.end_date:
                await self._repository.save(
                    subscription.model_copy(
                        update={"status": SubscriptionStatus.EXPIRED, "updated_at": now}
                    )
                )
                await self._audit.record(
                    AuditEntityType.SUBSCRIPTION,
                    subscription_id,
                    AuditAction.SUBSCRIPTION_EXPIRED,
                    f"Expired: billing date {period_start.date().isoformat()} "
                    f"is past end date {subscription.end_date.date().isoformat()}",
                    BILLER_ACTOR,
                )
                logger.info(f"Subscription {subscription_id} expired")
                return "expired", None

            period_end = subscription.billing_period.advance(period_start)
            charges = self._pricing.calculate_subscription_charges(
                subscription.amount,
                subscription.discount_percentage,
                subscription.currency,
            )
            invoice = await self._ledger.create_invoice(
                ChargeRequest(
                    customer_id=subscription.customer_id,
                    customer_name=subscription.customer_name,
                    customer_email=subscription.customer_email,
                    description=(
                        f"{subscription.plan_name} ({subscription.billing_period.value.lower()}) "
                        f"{period_start.date().isoformat()} to {period_end.date().isoformat()}"
                    ),
                    currency=subscription.currency,
                    subtotal=charges.subtotal,
                    discount_amount=charges.discount_amount,
                    tax_amount=charges.tax_amount,
                    invoice_type=InvoiceType.SUBSCRIPTION,
                    subscription_id=subscription_id,
                    payment_terms=subscription.payment_terms,
                    created_by=BILLER_ACTOR,
                )
            )

            update = {
                "next_billing_date": period_end,
                "last_billed_at": now,
                "last_invoice_number": invoice.invoice_number,
                "updated_at": now,
            }
            if subscription.end_date is not None and period_end > subscription.end_date:
                update["status"] = SubscriptionStatus.EXPIRED
            await self._repository.save(subscription.model_copy(update=update))
            await self._audit.record(
                AuditEntityType.SUBSCRIPTION,
                subscription_id,
                AuditAction.SUBSCRIPTION_BILLED,
                f"Invoice {invoice.invoice_number} for {invoice.total_amount} "
                f"{invoice.currency}; next billing {period_end.date().isoformat()}",
                BILLER_ACTOR,
            )

        logger.info(f"Billed subscription {subscription_id}: invoice {invoice.invoice_number}")
        return "invoiced", invoice.invoice_number
