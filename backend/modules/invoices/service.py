"""
Invoice ledger implementation.

Every mutation runs under the invoice's lock and inside one store
transaction that also holds its audit entry, so a failed audit write
rolls the mutation back. Notifications are sent only after commit.
"""

import logging
from contextlib import AbstractAsyncContextManager
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from modules.audit import AuditAction, AuditEntityType, IAuditRecorder
from modules.customers import CustomerProfile, ICustomerDirectory
from modules.notifications import NotificationDispatcher, NotificationEvent
from modules.pricing import ChargeBreakdown, IPricingEngine
from shared.clock import ensure_utc, utc_now
from shared.config import Settings, get_settings
from shared.exceptions import DuplicateKeyError, InvalidAmountError, MissingFieldError
from shared.identifiers import generate_reference, new_id
from shared.locks import KeyedLock
from shared.money import ZERO
from shared.store import LedgerStore

from .exceptions import InvalidInvoiceStateError, InvoiceNotFoundError, OverpaymentError
from .interfaces import IPaymentHistory
from .models import (
    SETTLEABLE_STATUSES,
    ChargeRequest,
    Invoice,
    InvoiceStatus,
    InvoiceType,
    PaymentTerms,
    UpdateInvoiceRequest,
)
from .repository import InvoiceRepository

logger = logging.getLogger(__name__)

# Invoice number collisions are retried this many times
_NUMBER_ATTEMPTS = 3

_EDITABLE_STATUSES = (InvoiceStatus.DRAFT, InvoiceStatus.SENT)
_REVERTIBLE_STATUSES = (InvoiceStatus.PAID, InvoiceStatus.PARTIALLY_PAID)


def start_of_month(as_of: datetime) -> datetime:
    return ensure_utc(as_of).replace(day=1, hour=0, minute=0, second=0, microsecond=0)


class InvoiceLedger:
    """
    Owns the invoice lifecycle and balance bookkeeping.

    Collaborators are injected; see container.py for production wiring.
    """

    def __init__(
        self,
        store: LedgerStore,
        pricing: IPricingEngine,
        audit: IAuditRecorder,
        payments: IPaymentHistory,
        customers: Optional[ICustomerDirectory] = None,
        notifications: Optional[NotificationDispatcher] = None,
        locks: Optional[KeyedLock] = None,
        settings: Optional[Settings] = None,
    ):
        self._store = store
        self._repository = InvoiceRepository(store)
        self._pricing = pricing
        self._audit = audit
        self._payments = payments
        self._customers = customers
        self._notifications = notifications
        self._locks = locks or KeyedLock()
        self._settings = settings or get_settings()

    def locked(self, invoice_number: str) -> AbstractAsyncContextManager[None]:
        """Serialize work on one invoice; shared with the payment processor."""
        return self._locks.hold(f"invoice:{invoice_number}")

    def _notify(self, event: NotificationEvent, invoice: Invoice, **extra: Any) -> None:
        if self._notifications is None:
            return
        payload = {
            "invoice_number": invoice.invoice_number,
            "customer_id": invoice.customer_id,
            "customer_email": invoice.customer_email,
            "status": invoice.status.value,
            "total_amount": str(invoice.total_amount),
            "currency": invoice.currency,
        }
        payload.update(extra)
        self._notifications.notify(event, payload)

    async def _require(self, invoice_number: str) -> Invoice:
        invoice = await self._repository.find_by_invoice_number(invoice_number)
        if invoice is None:
            raise InvoiceNotFoundError(invoice_number)
        return invoice

    def _reject(self, invoice: Invoice, operation: str, allowed: tuple) -> None:
        logger.warning(
            f"Rejected {operation} on invoice {invoice.invoice_number} "
            f"in status {invoice.status.value}"
        )
        raise InvalidInvoiceStateError(
            invoice.invoice_number, invoice.status, operation, allowed
        )

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    async def monthly_shipment_volume(self, customer_id: str, as_of: datetime) -> int:
        """Shipment invoices created for the customer in `as_of`'s calendar month."""
        return await self._repository.count_shipment_invoices_since(
            customer_id, start_of_month(as_of)
        )

    async def _price(self, request: ChargeRequest, currency: str, now: datetime) -> ChargeBreakdown:
        if request.shipment is not None:
            volume = await self.monthly_shipment_volume(request.customer_id, now)
            return await self._pricing.calculate_charges(
                request.shipment, volume, now, currency
            )
        if request.subtotal is None:
            raise MissingFieldError("subtotal")
        return self._pricing.price_explicit_amounts(
            request.subtotal,
            request.discount_amount if request.discount_amount is not None else ZERO,
            request.tax_amount if request.tax_amount is not None else ZERO,
            currency,
        )

    async def create_invoice(self, request: ChargeRequest) -> Invoice:
        """
        Price a charge request and store it as a new invoice.

        Args:
            request: Shipment details to price, or explicit amounts

        Returns:
            The new DRAFT invoice
        """
        if not request.customer_id or not request.customer_id.strip():
            raise MissingFieldError("customer_id")

        profile: Optional[CustomerProfile] = None
        if self._customers is not None:
            profile = await self._customers.get_customer(request.customer_id)

        customer_name = request.customer_name or (profile.name if profile else None)
        if not customer_name:
            raise MissingFieldError("customer_name")

        currency = (request.currency or self._settings.default_currency).strip().upper()
        if not currency:
            raise MissingFieldError("currency")

        if request.invoice_type == InvoiceType.SUBSCRIPTION and not request.subscription_id:
            raise MissingFieldError("subscription_id")

        now = utc_now()
        charges = await self._price(request, currency, now)
        if charges.total_amount < 0:
            raise InvalidAmountError(charges.total_amount, "Total must not be negative")

        terms = PaymentTerms.parse(
            request.payment_terms
            or (profile.payment_terms if profile else None)
            or self._settings.default_payment_terms
        )
        due_date = ensure_utc(request.due_date) if request.due_date else terms.due_date(now)

        for attempt in range(1, _NUMBER_ATTEMPTS + 1):
            invoice = Invoice(
                id=new_id(),
                invoice_number=generate_reference(self._settings.invoice_prefix, now),
                customer_id=request.customer_id,
                customer_name=customer_name,
                customer_email=request.customer_email or (profile.email if profile else None),
                billing_address=request.billing_address
                or (profile.billing_address if profile else None),
                description=request.description,
                subtotal=charges.subtotal,
                discount_amount=charges.discount_amount,
                tax_amount=charges.tax_amount,
                total_amount=charges.total_amount,
                currency=currency,
                tier_name=charges.tier_name,
                status=InvoiceStatus.DRAFT,
                invoice_type=request.invoice_type,
                payment_terms=terms,
                due_date=due_date,
                shipment_id=request.shipment_id,
                subscription_id=request.subscription_id,
                created_at=now,
                updated_at=now,
                created_by=request.created_by,
            )
            try:
                async with self._store.transaction():
                    invoice = await self._repository.create(invoice)
                    await self._audit.record(
                        AuditEntityType.INVOICE,
                        invoice.invoice_number,
                        AuditAction.INVOICE_CREATED,
                        f"{invoice.invoice_type.value} invoice for customer "
                        f"{invoice.customer_id}: total {invoice.total_amount} {invoice.currency}",
                        request.created_by,
                    )
            except DuplicateKeyError:
                if attempt == _NUMBER_ATTEMPTS:
                    raise
                logger.warning(f"Invoice number collision on {invoice.invoice_number}, retrying")
                continue
            break

        logger.info(
            f"Created invoice {invoice.invoice_number} for {invoice.customer_id}: "
            f"{invoice.total_amount} {invoice.currency}"
        )
        return invoice

    # ------------------------------------------------------------------
    # Lifecycle transitions
    # ------------------------------------------------------------------

    async def finalize_invoice(self, invoice_number: str, performed_by: str = "SYSTEM") -> Invoice:
        """
        Move a DRAFT invoice to SENT.

        Args:
            invoice_number: Invoice to finalize
            performed_by: Actor recorded in the audit trail

        Returns:
            The SENT invoice
        """
        async with self.locked(invoice_number):
            async with self._store.transaction():
                invoice = await self._require(invoice_number)
                if invoice.status != InvoiceStatus.DRAFT:
                    self._reject(invoice, "finalize", (InvoiceStatus.DRAFT,))

                now = utc_now()
                invoice = await self._repository.save(
                    invoice.model_copy(
                        update={
                            "status": InvoiceStatus.SENT,
                            "sent_at": now,
                            "updated_at": now,
                            "updated_by": performed_by,
                        }
                    )
                )
                await self._audit.record(
                    AuditEntityType.INVOICE,
                    invoice_number,
                    AuditAction.INVOICE_FINALIZED,
                    f"Invoice finalized and sent, due {invoice.due_date.date().isoformat()}",
                    performed_by,
                )

        logger.info(f"Finalized invoice {invoice_number}")
        self._notify(NotificationEvent.INVOICE_FINALIZED, invoice)
        return invoice

    async def update_invoice(
        self,
        invoice_number: str,
        changes: UpdateInvoiceRequest,
        performed_by: str = "SYSTEM",
    ) -> Invoice:
        """
        Edit the descriptive fields of a DRAFT or SENT invoice.

        Amounts are never edited here. An empty change set returns the
        invoice untouched and writes no audit entry.

        Args:
            invoice_number: Invoice to edit
            changes: Fields to overwrite; None means keep
            performed_by: Actor recorded in the audit trail

        Returns:
            The updated invoice
        """
        fields = changes.model_dump(exclude_none=True)
        if "currency" in fields:
            fields["currency"] = fields["currency"].strip().upper()
            if not fields["currency"]:
                raise MissingFieldError("currency")
        if "customer_name" in fields and not fields["customer_name"].strip():
            raise MissingFieldError("customer_name")
        if "due_date" in fields:
            fields["due_date"] = ensure_utc(fields["due_date"])

        async with self.locked(invoice_number):
            async with self._store.transaction():
                invoice = await self._require(invoice_number)
                if invoice.status not in _EDITABLE_STATUSES:
                    self._reject(invoice, "update", _EDITABLE_STATUSES)
                if not fields:
                    return invoice

                fields.update({"updated_at": utc_now(), "updated_by": performed_by})
                invoice = await self._repository.save(invoice.model_copy(update=fields))
                changed = sorted(k for k in fields if k not in ("updated_at", "updated_by"))
                await self._audit.record(
                    AuditEntityType.INVOICE,
                    invoice_number,
                    AuditAction.INVOICE_UPDATED,
                    f"Updated fields: {', '.join(changed)}",
                    performed_by,
                )

        logger.info(f"Updated invoice {invoice_number}")
        return invoice

    async def cancel_invoice(
        self,
        invoice_number: str,
        reason: str,
        performed_by: str = "SYSTEM",
    ) -> Invoice:
        """
        Cancel a DRAFT or SENT invoice.

        Args:
            invoice_number: Invoice to cancel
            reason: Why it is cancelled; required
            performed_by: Actor recorded in the audit trail

        Returns:
            The CANCELLED invoice
        """
        if not reason or not reason.strip():
            raise MissingFieldError("reason")

        async with self.locked(invoice_number):
            async with self._store.transaction():
                invoice = await self._require(invoice_number)
                if invoice.status not in _EDITABLE_STATUSES:
                    self._reject(invoice, "cancel", _EDITABLE_STATUSES)

                now = utc_now()
                invoice = await self._repository.save(
                    invoice.model_copy(
                        update={
                            "status": InvoiceStatus.CANCELLED,
                            "cancelled_at": now,
                            "cancellation_reason": reason,
                            "updated_at": now,
                            "updated_by": performed_by,
                        }
                    )
                )
                await self._audit.record(
                    AuditEntityType.INVOICE,
                    invoice_number,
                    AuditAction.INVOICE_CANCELLED,
                    f"Invoice cancelled: {reason}",
                    performed_by,
                )

        logger.info(f"Cancelled invoice {invoice_number}: {reason}")
        self._notify(NotificationEvent.INVOICE_CANCELLED, invoice, reason=reason)
        return invoice

    # ------------------------------------------------------------------
    # Settlement
    # ------------------------------------------------------------------

    async def apply_settlement(
        self,
        invoice_number: str,
        payment_amount: Decimal,
        performed_by: str = "SYSTEM",
    ) -> Invoice:
        """
        Move the invoice status for a payment that is being recorded.

        Call inside the payment's transaction, before the payment row is
        written; the new amount is added to what is already paid.

        Args:
            invoice_number: Invoice being paid
            payment_amount: Amount of the new payment
            performed_by: Actor recorded in the audit trail

        Returns:
            The invoice as PARTIALLY_PAID or PAID
        """
        if payment_amount <= 0:
            raise InvalidAmountError(payment_amount, "Payment amount must be positive")

        async with self.locked(invoice_number):
            async with self._store.transaction():
                invoice = await self._require(invoice_number)
                if invoice.status not in SETTLEABLE_STATUSES:
                    self._reject(invoice, "settle", SETTLEABLE_STATUSES)

                already_paid = await self._payments.net_paid(invoice_number)
                paid_after = already_paid + payment_amount
                if paid_after > invoice.total_amount:
                    logger.warning(
                        f"Overpayment rejected on {invoice_number}: "
                        f"{payment_amount} with {already_paid} of {invoice.total_amount} paid"
                    )
                    raise OverpaymentError(
                        invoice_number, invoice.total_amount, already_paid, payment_amount
                    )

                now = utc_now()
                update: dict[str, Any] = {"updated_at": now, "updated_by": performed_by}
                if paid_after == invoice.total_amount:
                    update.update({"status": InvoiceStatus.PAID, "paid_at": now})
                else:
                    update["status"] = InvoiceStatus.PARTIALLY_PAID

                invoice = await self._repository.save(invoice.model_copy(update=update))
                await self._audit.record(
                    AuditEntityType.INVOICE,
                    invoice_number,
                    AuditAction.INVOICE_SETTLED,
                    f"Applied {payment_amount} {invoice.currency}; paid {paid_after} of "
                    f"{invoice.total_amount}, status {invoice.status.value}",
                    performed_by,
                )

        logger.info(
            f"Settled {payment_amount} on invoice {invoice_number}, now {invoice.status.value}"
        )
        return invoice

    async def revert_settlement(
        self,
        invoice_number: str,
        reason: str,
        performed_by: str = "SYSTEM",
    ) -> Invoice:
        """
        Step a settled invoice back after a refund or a reversed payment.

        The invoice goes to PARTIALLY_PAID while any net payment remains,
        otherwise to SENT. A fully paid invoice cannot be reverted.

        Args:
            invoice_number: Invoice to revert
            reason: Recorded in the audit trail
            performed_by: Actor recorded in the audit trail

        Returns:
            The reverted invoice
        """
        async with self.locked(invoice_number):
            async with self._store.transaction():
                invoice = await self._require(invoice_number)
                if invoice.status not in _REVERTIBLE_STATUSES:
                    self._reject(invoice, "revert settlement of", _REVERTIBLE_STATUSES)

                net_paid = await self._payments.net_paid(invoice_number)
                if net_paid >= invoice.total_amount:
                    self._reject(invoice, "revert settlement of fully paid", ())

                target = InvoiceStatus.SENT if net_paid <= 0 else InvoiceStatus.PARTIALLY_PAID
                if target == invoice.status:
                    return invoice

                previous = invoice.status
                invoice = await self._repository.save(
                    invoice.model_copy(
                        update={
                            "status": target,
                            "paid_at": None,
                            "updated_at": utc_now(),
                            "updated_by": performed_by,
                        }
                    )
                )
                await self._audit.record(
                    AuditEntityType.INVOICE,
                    invoice_number,
                    AuditAction.SETTLEMENT_REVERTED,
                    f"{previous.value} -> {target.value}, net paid {net_paid}: {reason}",
                    performed_by,
                )

        logger.info(f"Reverted settlement on {invoice_number} to {invoice.status.value}")
        return invoice

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_invoice(self, invoice_number: str) -> Invoice:
        """Get an invoice by number; raises InvoiceNotFoundError."""
        return await self._require(invoice_number)

    async def outstanding_balance(self, invoice_number: str) -> Decimal:
        """Total minus completed payments net of refunds."""
        invoice = await self._require(invoice_number)
        return invoice.total_amount - await self._payments.net_paid(invoice_number)

    async def get_overdue_invoices(self, as_of: Optional[datetime] = None) -> list[Invoice]:
        """
        Find SENT or PARTIALLY_PAID invoices past their due date.

        Args:
            as_of: Point in time to compare against (defaults to now)

        Returns:
            Overdue invoices, oldest due date first
        """
        return await self._repository.find_overdue(ensure_utc(as_of) if as_of else utc_now())

    async def list_customer_invoices(
        self,
        customer_id: str,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Invoice]:
        return await self._repository.find_by_customer(customer_id, limit=limit, offset=offset)

    async def list_invoices_by_status(
        self,
        status: InvoiceStatus,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> list[Invoice]:
        """List invoices in a status, optionally created between start and end inclusive."""
        return await self._repository.find_by_status(
            status,
            ensure_utc(start) if start else None,
            ensure_utc(end) if end else None,
        )

    async def is_invoice_overdue(
        self,
        invoice_number: str,
        as_of: Optional[datetime] = None,
    ) -> bool:
        invoice = await self._require(invoice_number)
        return invoice.is_overdue(ensure_utc(as_of) if as_of else utc_now())
