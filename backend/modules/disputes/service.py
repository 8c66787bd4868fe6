"""
Dispute manager implementation.

Dispute mutations are serialised per dispute. A resolution that refunds
also takes the invoice lock (through the payment processor); locks are
always taken dispute first, invoice second.
"""

import logging
from contextlib import AbstractAsyncContextManager
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Optional

from modules.audit import AuditAction, AuditEntityType, IAuditRecorder
from modules.customers import CustomerCredit, CustomerCreditRepository
from modules.invoices import IInvoiceLedger, InvalidInvoiceStateError, Invoice, InvoiceStatus
from modules.notifications import NotificationDispatcher, NotificationEvent
from modules.payments import CurrencyMismatchError, IPaymentProcessor, PaymentStatus
from shared.clock import ensure_utc, utc_now
from shared.config import Settings, get_settings
from shared.exceptions import InvalidAmountError, MissingFieldError, ValidationError
from shared.identifiers import generate_reference, new_id
from shared.locks import KeyedLock
from shared.store import LedgerStore

from .exceptions import DisputeNotFoundError, InvalidDisputeStateError
from .models import (
    AWAITING_STATUSES,
    BillingDispute,
    DisputeOutcome,
    DisputeRemedy,
    DisputeStatus,
)
from .repository import DisputeRepository

logger = logging.getLogger(__name__)


class DisputeManager:
    """
    Opens, moves and resolves billing disputes.
    """

    def __init__(
        self,
        store: LedgerStore,
        ledger: IInvoiceLedger,
        payments: IPaymentProcessor,
        audit: IAuditRecorder,
        notifications: Optional[NotificationDispatcher] = None,
        locks: Optional[KeyedLock] = None,
        settings: Optional[Settings] = None,
    ):
        self._store = store
        self._ledger = ledger
        self._payments = payments
        self._audit = audit
        self._notifications = notifications
        self._locks = locks or KeyedLock()
        self._settings = settings or get_settings()
        self._repository = DisputeRepository(store)
        self._credits = CustomerCreditRepository(store)

    def _locked(self, dispute_id: str) -> AbstractAsyncContextManager[None]:
        return self._locks.hold(f"dispute:{dispute_id}")

    def _next_due(self, now: datetime) -> datetime:
        return now + timedelta(days=self._settings.dispute_review_days)

    def _notify(self, event: NotificationEvent, dispute: BillingDispute, **extra: Any) -> None:
        if self._notifications is None:
            return
        payload = {
            "dispute_id": dispute.dispute_id,
            "dispute_number": dispute.dispute_number,
            "invoice_number": dispute.invoice_number,
            "customer_id": dispute.customer_id,
            "status": dispute.status.value,
        }
        payload.update(extra)
        self._notifications.notify(event, payload)

    async def _require(self, dispute_id: str) -> BillingDispute:
        dispute = await self._repository.find_by_dispute_id(dispute_id)
        if dispute is None:
            raise DisputeNotFoundError(dispute_id)
        return dispute

    # ------------------------------------------------------------------
    # Opening and workflow
    # ------------------------------------------------------------------

    async def open_dispute(
        self,
        invoice_number: str,
        reason: str,
        customer_id: str,
        payment_id: Optional[str] = None,
        performed_by: Optional[str] = None,
    ) -> BillingDispute:
        """
        Open a dispute on any invoice that has left DRAFT.

        Args:
            invoice_number: Invoice being disputed
            reason: Customer's complaint; required
            customer_id: Must own the invoice
            payment_id: Optional payment on the same invoice the dispute is about
            performed_by: Actor for the audit trail (defaults to customer_id)

        Returns:
            The dispute, UNDER_REVIEW with a review due date set
        """
        if not reason or not reason.strip():
            raise MissingFieldError("reason")
        if not customer_id:
            raise MissingFieldError("customer_id")

        invoice = await self._ledger.get_invoice(invoice_number)
        if invoice.status == InvoiceStatus.DRAFT:
            logger.warning(f"Rejected dispute on draft invoice {invoice_number}")
            raise InvalidInvoiceStateError(
                invoice_number,
                invoice.status,
                "dispute",
                [s for s in InvoiceStatus if s != InvoiceStatus.DRAFT],
            )
        if invoice.customer_id != customer_id:
            raise ValidationError(
                f"Invoice {invoice_number} does not belong to customer {customer_id}",
                code="CUSTOMER_MISMATCH",
                details={"invoice_number": invoice_number, "customer_id": customer_id},
            )
        if payment_id is not None:
            payment = await self._payments.get_payment(payment_id)
            if payment.invoice_number != invoice_number:
                raise ValidationError(
                    f"Payment {payment_id} is not on invoice {invoice_number}",
                    code="PAYMENT_INVOICE_MISMATCH",
                    details={"payment_id": payment_id, "invoice_number": invoice_number},
                )

        now = utc_now()
        actor = performed_by or customer_id
        dispute = BillingDispute(
            dispute_id=new_id(),
            dispute_number=generate_reference(self._settings.dispute_prefix, now),
            customer_id=customer_id,
            invoice_number=invoice_number,
            payment_id=payment_id,
            reason=reason,
            status=DisputeStatus.UNDER_REVIEW,
            due_date=self._next_due(now),
            created_at=now,
            updated_at=now,
            created_by=actor,
        )
        async with self._store.transaction():
            dispute = await self._repository.create(dispute)
            await self._audit.record(
                AuditEntityType.DISPUTE,
                dispute.dispute_id,
                AuditAction.DISPUTE_OPENED,
                f"Dispute {dispute.dispute_number} opened on invoice {invoice_number}: {reason}",
                actor,
            )

        logger.info(f"Opened dispute {dispute.dispute_number} on invoice {invoice_number}")
        self._notify(NotificationEvent.DISPUTE_OPENED, dispute, reason=reason)
        return dispute

    async def _move(
        self,
        dispute_id: str,
        target: DisputeStatus,
        allowed: tuple,
        operation: str,
        note: Optional[str],
        performed_by: str,
    ) -> BillingDispute:
        async with self._locked(dispute_id):
            async with self._store.transaction():
                dispute = await self._require(dispute_id)
                if dispute.status not in allowed:
                    logger.warning(
                        f"Rejected {operation} on dispute {dispute_id} "
                        f"in status {dispute.status.value}"
                    )
                    raise InvalidDisputeStateError(dispute_id, dispute.status, operation, allowed)

                now = utc_now()
                previous = dispute.status
                dispute = await self._repository.save(
                    dispute.model_copy(
                        update={
                            "status": target,
                            "due_date": self._next_due(now),
                            "updated_at": now,
                            "updated_by": performed_by,
                        }
                    )
                )
                details = f"{previous.value} -> {target.value}"
                if note:
                    details += f": {note}"
                await self._audit.record(
                    AuditEntityType.DISPUTE,
                    dispute_id,
                    AuditAction.DISPUTE_STATUS_CHANGED,
                    details,
                    performed_by,
                )

        logger.info(f"Dispute {dispute.dispute_number} moved to {target.value}")
        return dispute

    async def request_customer_response(
        self,
        dispute_id: str,
        note: Optional[str] = None,
        performed_by: str = "SYSTEM",
    ) -> BillingDispute:
        """Wait on the customer; the review due date moves forward."""
        return await self._move(
            dispute_id,
            DisputeStatus.AWAITING_CUSTOMER_RESPONSE,
            (DisputeStatus.UNDER_REVIEW, DisputeStatus.AWAITING_INTERNAL_RESPONSE),
            "request customer response on",
            note,
            performed_by,
        )

    async def escalate_internally(
        self,
        dispute_id: str,
        note: Optional[str] = None,
        performed_by: str = "SYSTEM",
    ) -> BillingDispute:
        """Hand the dispute to internal review; the review due date moves forward."""
        return await self._move(
            dispute_id,
            DisputeStatus.AWAITING_INTERNAL_RESPONSE,
            (DisputeStatus.UNDER_REVIEW, DisputeStatus.AWAITING_CUSTOMER_RESPONSE),
            "escalate",
            note,
            performed_by,
        )

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    async def _issue_credit(
        self,
        dispute: BillingDispute,
        invoice: Invoice,
        amount: Decimal,
        performed_by: str,
    ) -> CustomerCredit:
        now = utc_now()
        credit = await self._credits.find_by_customer(dispute.customer_id)
        if credit is None:
            credit = await self._credits.create(
                CustomerCredit(
                    customer_id=dispute.customer_id,
                    balance=amount,
                    currency=invoice.currency,
                    created_at=now,
                    updated_at=now,
                )
            )
        else:
            if credit.currency != invoice.currency:
                raise CurrencyMismatchError(invoice.invoice_number, credit.currency, invoice.currency)
            credit = await self._credits.save(
                credit.model_copy(update={"balance": credit.balance + amount, "updated_at": now})
            )

        await self._audit.record(
            AuditEntityType.CUSTOMER_CREDIT,
            dispute.customer_id,
            AuditAction.CREDIT_ISSUED,
            f"Credit of {amount} {credit.currency} from dispute {dispute.dispute_number} "
            f"on invoice {invoice.invoice_number}; balance {credit.balance}",
            performed_by,
        )
        return credit

    async def _refund_target(self, dispute: BillingDispute) -> str:
        if dispute.payment_id:
            return dispute.payment_id
        for payment in await self._payments.list_payments(dispute.invoice_number):
            if payment.status == PaymentStatus.COMPLETED and not payment.is_refund:
                return payment.payment_id
        raise ValidationError(
            f"No completed payment on invoice {dispute.invoice_number} to refund",
            code="NO_REFUNDABLE_PAYMENT",
            details={"dispute_id": dispute.dispute_id, "invoice_number": dispute.invoice_number},
        )

    async def resolve_dispute(
        self,
        dispute_id: str,
        outcome: DisputeOutcome,
        amount: Optional[Decimal] = None,
        remedy: DisputeRemedy = DisputeRemedy.CREDIT,
        notes: Optional[str] = None,
        performed_by: str = "SYSTEM",
    ) -> BillingDispute:
        """
        Close a dispute that is awaiting a response.

        A CUSTOMER_FAVOR outcome issues a credit or refunds a payment in
        the same transaction as the resolution.

        Args:
            dispute_id: Dispute to resolve
            outcome: How the dispute ended
            amount: Remedy amount; required for CUSTOMER_FAVOR, at most the
                invoice total
            remedy: CREDIT or REFUND
            notes: Kept on the dispute
            performed_by: Actor recorded in the audit trail

        Returns:
            The resolved dispute
        """
        if outcome == DisputeOutcome.CUSTOMER_FAVOR:
            if amount is None:
                raise MissingFieldError("amount")
            if amount <= 0:
                raise InvalidAmountError(amount, "Resolution amount must be positive")

        refund_payment_id: Optional[str] = None
        async with self._locked(dispute_id):
            async with self._store.transaction():
                dispute = await self._require(dispute_id)
                if dispute.status not in AWAITING_STATUSES:
                    logger.warning(
                        f"Rejected resolve on dispute {dispute_id} in status {dispute.status.value}"
                    )
                    raise InvalidDisputeStateError(
                        dispute_id, dispute.status, "resolve", AWAITING_STATUSES
                    )

                invoice = await self._ledger.get_invoice(dispute.invoice_number)
                remedy_detail = ""
                if outcome == DisputeOutcome.CUSTOMER_FAVOR:
                    if amount > invoice.total_amount:
                        raise InvalidAmountError(
                            amount, f"Exceeds invoice total {invoice.total_amount}"
                        )
                    if remedy == DisputeRemedy.REFUND:
                        refund = await self._payments.refund_payment(
                            await self._refund_target(dispute),
                            amount,
                            f"Dispute {dispute.dispute_number} resolved in customer's favour",
                            performed_by,
                            notify=False,
                        )
                        refund_payment_id = refund.payment_id
                        remedy_detail = f"; refund payment {refund.payment_id}"
                    else:
                        credit = await self._issue_credit(dispute, invoice, amount, performed_by)
                        remedy_detail = f"; credit balance now {credit.balance} {credit.currency}"

                now = utc_now()
                dispute = await self._repository.save(
                    dispute.model_copy(
                        update={
                            "status": outcome.final_status,
                            "outcome": outcome,
                            "remedy": remedy if outcome == DisputeOutcome.CUSTOMER_FAVOR else None,
                            "resolution_amount": amount
                            if outcome == DisputeOutcome.CUSTOMER_FAVOR
                            else None,
                            "resolution_notes": notes,
                            "refund_payment_id": refund_payment_id,
                            "resolved_at": now,
                            "updated_at": now,
                            "updated_by": performed_by,
                        }
                    )
                )
                await self._audit.record(
                    AuditEntityType.DISPUTE,
                    dispute_id,
                    AuditAction.DISPUTE_RESOLVED,
                    f"Dispute {dispute.dispute_number} on invoice {dispute.invoice_number} "
                    f"resolved {outcome.value}{remedy_detail}",
                    performed_by,
                )

        logger.info(f"Resolved dispute {dispute.dispute_number}: {outcome.value}")
        self._notify(
            NotificationEvent.DISPUTE_RESOLVED,
            dispute,
            outcome=outcome.value,
            amount=str(amount) if dispute.resolution_amount is not None else None,
            refund_payment_id=refund_payment_id,
        )
        return dispute

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def find_disputes_due_for_review(
        self,
        as_of: Optional[datetime] = None,
    ) -> list[BillingDispute]:
        """Open disputes whose review due date has passed (defaults to now)."""
        return await self._repository.find_due_for_review(ensure_utc(as_of) if as_of else utc_now())

    async def get_dispute(self, dispute_id: str) -> BillingDispute:
        """Get a dispute by ID; raises DisputeNotFoundError."""
        return await self._require(dispute_id)

    async def list_customer_disputes(
        self,
        customer_id: str,
        limit: int = 50,
        offset: int = 0,
    ) -> list[BillingDispute]:
        return await self._repository.find_by_customer(customer_id, limit=limit, offset=offset)

    async def get_customer_credit(self, customer_id: str) -> CustomerCredit:
        """Current credit; a zero balance if the customer has never had credit."""
        credit = await self._credits.find_by_customer(customer_id)
        if credit is None:
            return CustomerCredit(
                customer_id=customer_id,
                balance=Decimal("0"),
                currency=self._settings.default_currency,
            )
        return credit
