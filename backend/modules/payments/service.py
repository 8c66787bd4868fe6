"""
Payment processor implementation.

Settlement always runs as: take the invoice lock, open one transaction,
let the ledger check and move the invoice status, write the payment row,
write the audit entry. Any failure rolls all of it back.

The gateway call of an automatic payment happens under the invoice lock
but outside any transaction; it is bounded by `gateway_timeout_seconds`
and guarded by a circuit breaker.
"""

import asyncio
import logging
from decimal import Decimal
from typing import Optional

from modules.audit import AuditAction, AuditEntityType, IAuditRecorder
from modules.customers import CustomerCreditRepository, ICustomerDirectory
from modules.invoices import (
    SETTLEABLE_STATUSES,
    IInvoiceLedger,
    InvalidInvoiceStateError,
    Invoice,
    InvoiceStatus,
)
from modules.notifications import NotificationDispatcher, NotificationEvent
from shared.clock import utc_now
from shared.config import Settings, get_settings
from shared.exceptions import (
    ExternalServiceError,
    InvalidAmountError,
    InvalidStateError,
    MissingFieldError,
)
from shared.identifiers import generate_reference, new_id
from shared.store import LedgerStore

from .exceptions import (
    CircuitOpenError,
    CurrencyMismatchError,
    GatewayError,
    GatewayTimeoutError,
    NoCreditAvailableError,
    PaymentNotFoundError,
    RefundExceedsPaymentError,
)
from .gateway import CircuitBreaker, UnconfiguredPaymentGateway
from .interfaces import IPaymentGateway
from .models import GatewayFailure, Payment, PaymentMethod, PaymentStatus
from .repository import PaymentRepository

logger = logging.getLogger(__name__)

PAYMENT_PREFIX = "PAY"


class PaymentProcessor:
    """
    Applies manual, automatic and credit payments to invoices and records
    refunds.
    """

    def __init__(
        self,
        store: LedgerStore,
        ledger: IInvoiceLedger,
        audit: IAuditRecorder,
        gateway: Optional[IPaymentGateway] = None,
        customers: Optional[ICustomerDirectory] = None,
        notifications: Optional[NotificationDispatcher] = None,
        breaker: Optional[CircuitBreaker] = None,
        settings: Optional[Settings] = None,
    ):
        self._store = store
        self._ledger = ledger
        self._audit = audit
        self._gateway = gateway or UnconfiguredPaymentGateway()
        self._customers = customers
        self._notifications = notifications
        self._settings = settings or get_settings()
        self._breaker = breaker or CircuitBreaker(
            failure_threshold=self._settings.gateway_failure_threshold,
            reset_seconds=self._settings.gateway_reset_seconds,
        )
        self._payments = PaymentRepository(store)
        self._credits = CustomerCreditRepository(store)

    @property
    def breaker(self) -> CircuitBreaker:
        return self._breaker

    def _new_payment(
        self,
        invoice: Invoice,
        amount: Decimal,
        method: PaymentMethod,
        status: PaymentStatus,
        performed_by: str,
        **fields,
    ) -> Payment:
        now = utc_now()
        return Payment(
            payment_id=new_id(),
            payment_reference=generate_reference(PAYMENT_PREFIX, now),
            invoice_number=invoice.invoice_number,
            customer_id=invoice.customer_id,
            amount=amount,
            currency=invoice.currency,
            method=method,
            status=status,
            processed_at=now if status == PaymentStatus.COMPLETED else None,
            created_at=now,
            created_by=performed_by,
            **fields,
        )

    def _notify(self, event: NotificationEvent, invoice: Invoice, payment: Payment) -> None:
        if self._notifications is None:
            return
        self._notifications.notify(
            event,
            {
                "invoice_number": invoice.invoice_number,
                "customer_id": invoice.customer_id,
                "customer_email": invoice.customer_email,
                "payment_id": payment.payment_id,
                "amount": str(payment.amount),
                "currency": payment.currency,
                "invoice_status": invoice.status.value,
            },
        )

    def _notify_settlement(self, invoice: Invoice, payment: Payment) -> None:
        event = (
            NotificationEvent.INVOICE_PAID
            if invoice.status == InvoiceStatus.PAID
            else NotificationEvent.INVOICE_PARTIALLY_PAID
        )
        self._notify(event, invoice, payment)

    @staticmethod
    def _require_payable(invoice: Invoice, operation: str) -> None:
        if invoice.status in (InvoiceStatus.PAID, InvoiceStatus.CANCELLED):
            logger.warning(
                f"Rejected {operation} on invoice {invoice.invoice_number} "
                f"in status {invoice.status.value}"
            )
            raise InvalidInvoiceStateError(
                invoice.invoice_number, invoice.status, operation, SETTLEABLE_STATUSES
            )

    async def _settle(
        self,
        invoice: Invoice,
        amount: Decimal,
        method: PaymentMethod,
        action: AuditAction,
        performed_by: str,
        **fields,
    ) -> tuple[Payment, Invoice]:
        """Settle and write the payment row. Caller holds the lock and transaction."""
        invoice = await self._ledger.apply_settlement(
            invoice.invoice_number, amount, performed_by
        )
        payment = await self._payments.create(
            self._new_payment(
                invoice, amount, method, PaymentStatus.COMPLETED, performed_by, **fields
            )
        )
        await self._audit.record(
            AuditEntityType.PAYMENT,
            payment.payment_id,
            action,
            f"{method.value} payment of {amount} {payment.currency} on invoice "
            f"{invoice.invoice_number}; invoice now {invoice.status.value}",
            performed_by,
        )
        return payment, invoice

    # ------------------------------------------------------------------
    # Manual payments
    # ------------------------------------------------------------------

    async def record_manual_payment(
        self,
        invoice_number: str,
        amount: Decimal,
        currency: str,
        memo: Optional[str] = None,
        performed_by: str = "SYSTEM",
        method: PaymentMethod = PaymentMethod.MANUAL,
    ) -> tuple[Payment, Invoice]:
        """
        Record an offline payment and settle it against the invoice.

        Args:
            invoice_number: Invoice being paid
            amount: Amount received, applied exactly as given
            currency: Must match the invoice currency
            memo: Free text kept on the payment
            performed_by: Actor recorded in the audit trail
            method: How the money arrived

        Returns:
            Tuple of (payment, settled invoice)
        """
        if amount <= 0:
            raise InvalidAmountError(amount, "Payment amount must be positive")
        if not currency or not currency.strip():
            raise MissingFieldError("currency")

        async with self._ledger.locked(invoice_number):
            async with self._store.transaction():
                invoice = await self._ledger.get_invoice(invoice_number)
                self._require_payable(invoice, "record payment on")
                if currency.strip().upper() != invoice.currency:
                    raise CurrencyMismatchError(invoice_number, invoice.currency, currency)

                payment, invoice = await self._settle(
                    invoice,
                    amount,
                    method,
                    AuditAction.MANUAL_PAYMENT,
                    performed_by,
                    memo=memo,
                )

        logger.info(
            f"Recorded {method.value} payment {payment.payment_id} of {amount} "
            f"on {invoice_number}, invoice {invoice.status.value}"
        )
        self._notify_settlement(invoice, payment)
        return payment, invoice

    # ------------------------------------------------------------------
    # Automatic payments
    # ------------------------------------------------------------------

    async def _record_failure(
        self,
        invoice: Invoice,
        amount: Decimal,
        reason: str,
        performed_by: str,
    ) -> Payment:
        async with self._store.transaction():
            payment = await self._payments.create(
                self._new_payment(
                    invoice,
                    amount,
                    PaymentMethod.AUTOMATIC,
                    PaymentStatus.FAILED,
                    performed_by,
                    failure_reason=reason,
                )
            )
            await self._audit.record(
                AuditEntityType.PAYMENT,
                payment.payment_id,
                AuditAction.PAYMENT_FAILED,
                f"Automatic payment of {amount} {invoice.currency} on invoice "
                f"{invoice.invoice_number} failed: {reason}",
                performed_by,
            )
        logger.warning(f"Automatic payment on {invoice.invoice_number} failed: {reason}")
        self._notify(NotificationEvent.PAYMENT_FAILED, invoice, payment)
        return payment

    async def initiate_automatic_payment(
        self,
        invoice_number: str,
        performed_by: str = "SYSTEM",
    ) -> tuple[Payment, Invoice]:
        """
        Charge the outstanding balance through the gateway.

        A decline, an error or a timeout is recorded as a FAILED payment
        before GatewayError is raised. The call is refused while the
        gateway circuit is open.

        Args:
            invoice_number: Invoice to charge
            performed_by: Actor recorded in the audit trail

        Returns:
            Tuple of (payment, settled invoice)
        """
        timeout = self._settings.gateway_timeout_seconds

        async with self._ledger.locked(invoice_number):
            invoice = await self._ledger.get_invoice(invoice_number)
            self._require_payable(invoice, "charge")
            if invoice.status not in SETTLEABLE_STATUSES:
                raise InvalidInvoiceStateError(
                    invoice_number, invoice.status, "charge", SETTLEABLE_STATUSES
                )

            balance = await self._ledger.outstanding_balance(invoice_number)
            if balance <= 0:
                raise InvalidAmountError(balance, "Nothing outstanding to charge")

            payment_method = None
            if self._customers is not None:
                profile = await self._customers.get_customer(invoice.customer_id)
                payment_method = profile.payment_method if profile else None

            if not self._breaker.allow_request():
                logger.warning(f"Gateway circuit open, not charging {invoice_number}")
                raise CircuitOpenError(invoice_number, self._breaker.retry_after())

            try:
                result = await asyncio.wait_for(
                    self._gateway.charge(balance, invoice.currency, payment_method),
                    timeout=timeout,
                )
            except asyncio.TimeoutError:
                self._breaker.record_failure()
                failed = await self._record_failure(
                    invoice, balance, f"timed out after {timeout}s", performed_by
                )
                raise GatewayTimeoutError(invoice_number, timeout, failed.payment_id) from None
            except ExternalServiceError as e:
                self._breaker.record_failure()
                failed = await self._record_failure(invoice, balance, e.message, performed_by)
                raise GatewayError(
                    invoice_number,
                    e.message,
                    retryable=e.retryable,
                    payment_id=failed.payment_id,
                ) from e
            except asyncio.CancelledError:
                self._breaker.release_trial()
                raise
            except Exception as e:
                # Gateway adapters are external code; anything else is a failed charge
                logger.exception(f"Unexpected payment gateway error on {invoice_number}")
                self._breaker.record_failure()
                reason = f"unexpected gateway error: {e}"
                failed = await self._record_failure(invoice, balance, reason, performed_by)
                raise GatewayError(
                    invoice_number,
                    reason,
                    retryable=False,
                    payment_id=failed.payment_id,
                ) from e

            # A decline still means the gateway answered
            self._breaker.record_success()
            if isinstance(result, GatewayFailure):
                failed = await self._record_failure(invoice, balance, result.reason, performed_by)
                raise GatewayError(
                    invoice_number,
                    result.reason,
                    retryable=result.retryable,
                    payment_id=failed.payment_id,
                )

            async with self._store.transaction():
                payment, invoice = await self._settle(
                    invoice,
                    balance,
                    PaymentMethod.AUTOMATIC,
                    AuditAction.AUTOMATIC_PAYMENT,
                    performed_by,
                    gateway_transaction_id=result.transaction_id,
                )

        logger.info(
            f"Automatic payment {payment.payment_id} of {balance} on {invoice_number} "
            f"(gateway txn {result.transaction_id})"
        )
        self._notify_settlement(invoice, payment)
        return payment, invoice

    # ------------------------------------------------------------------
    # Credits and refunds
    # ------------------------------------------------------------------

    async def apply_customer_credit(
        self,
        invoice_number: str,
        performed_by: str = "SYSTEM",
        amount: Optional[Decimal] = None,
    ) -> tuple[Payment, Invoice]:
        """
        Pay an invoice from the customer's credit balance.

        Args:
            invoice_number: Invoice to pay
            performed_by: Actor recorded in the audit trail
            amount: Credit to redeem (defaults to the smaller of the balance
                and the amount outstanding)

        Returns:
            Tuple of (payment, settled invoice)
        """
        if amount is not None and amount <= 0:
            raise InvalidAmountError(amount, "Credit amount must be positive")

        async with self._ledger.locked(invoice_number):
            async with self._store.transaction():
                invoice = await self._ledger.get_invoice(invoice_number)
                self._require_payable(invoice, "redeem credit on")

                credit = await self._credits.find_by_customer(invoice.customer_id)
                if credit is None or credit.balance <= 0:
                    raise NoCreditAvailableError(invoice.customer_id)
                if credit.currency != invoice.currency:
                    raise CurrencyMismatchError(invoice_number, invoice.currency, credit.currency)

                if amount is None:
                    outstanding = await self._ledger.outstanding_balance(invoice_number)
                    amount = min(credit.balance, outstanding)
                elif amount > credit.balance:
                    raise InvalidAmountError(
                        amount, f"Exceeds available credit {credit.balance}"
                    )

                payment, invoice = await self._settle(
                    invoice,
                    amount,
                    PaymentMethod.CUSTOMER_CREDIT,
                    AuditAction.CREDIT_REDEEMED,
                    performed_by,
                    memo="Customer credit redemption",
                )
                await self._credits.save(
                    credit.model_copy(
                        update={"balance": credit.balance - amount, "updated_at": utc_now()}
                    )
                )

        logger.info(f"Redeemed {amount} credit on {invoice_number} for {invoice.customer_id}")
        self._notify_settlement(invoice, payment)
        return payment, invoice

    async def refund_payment(
        self,
        payment_id: str,
        amount: Decimal,
        reason: str,
        performed_by: str = "SYSTEM",
        notify: bool = True,
    ) -> Payment:
        """
        Record a refund of a completed payment.

        Refunds never change the invoice status; see
        InvoiceLedger.revert_settlement.

        Args:
            payment_id: Payment being refunded
            amount: Up to what is left unrefunded on that payment
            reason: Required
            performed_by: Actor recorded in the audit trail
            notify: Send PAYMENT_REFUNDED after commit

        Returns:
            The refund payment
        """
        if amount <= 0:
            raise InvalidAmountError(amount, "Refund amount must be positive")
        if not reason or not reason.strip():
            raise MissingFieldError("reason")

        original = await self.get_payment(payment_id)
        if original.is_refund or original.status != PaymentStatus.COMPLETED:
            raise InvalidStateError(
                f"Payment {payment_id} is not a completed payment and cannot be refunded",
                code="PAYMENT_NOT_REFUNDABLE",
                details={"payment_id": payment_id, "status": original.status.value},
            )

        async with self._ledger.locked(original.invoice_number):
            async with self._store.transaction():
                refunded = sum(
                    (r.amount for r in await self._payments.find_refunds_of(payment_id)),
                    Decimal("0"),
                )
                refundable = original.amount - refunded
                if amount > refundable:
                    raise RefundExceedsPaymentError(payment_id, refundable, amount)

                now = utc_now()
                refund = await self._payments.create(
                    Payment(
                        payment_id=new_id(),
                        payment_reference=generate_reference(PAYMENT_PREFIX, now),
                        invoice_number=original.invoice_number,
                        customer_id=original.customer_id,
                        amount=amount,
                        currency=original.currency,
                        method=PaymentMethod.REFUND,
                        status=PaymentStatus.COMPLETED,
                        memo=reason,
                        original_payment_id=payment_id,
                        processed_at=now,
                        created_at=now,
                        created_by=performed_by,
                    )
                )
                await self._audit.record(
                    AuditEntityType.PAYMENT,
                    refund.payment_id,
                    AuditAction.REFUND_PROCESSED,
                    f"Refund of {amount} {refund.currency} against payment {payment_id} "
                    f"on invoice {original.invoice_number}: {reason}",
                    performed_by,
                )

        logger.info(f"Refunded {amount} of payment {payment_id} on {original.invoice_number}")
        if notify and self._notifications is not None:
            self._notifications.notify(
                NotificationEvent.PAYMENT_REFUNDED,
                {
                    "invoice_number": refund.invoice_number,
                    "customer_id": refund.customer_id,
                    "payment_id": refund.payment_id,
                    "original_payment_id": payment_id,
                    "amount": str(amount),
                    "currency": refund.currency,
                },
            )
        return refund

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def list_payments(self, invoice_number: str) -> list[Payment]:
        """All payments on an invoice, including failures and refunds."""
        return await self._payments.find_by_invoice(invoice_number)

    async def get_payment(self, payment_id: str) -> Payment:
        """Get a payment by ID; raises PaymentNotFoundError."""
        payment = await self._payments.find_by_payment_id(payment_id)
        if payment is None:
            raise PaymentNotFoundError(payment_id)
        return payment

    async def list_customer_payments(
        self,
        customer_id: str,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Payment]:
        return await self._payments.find_by_customer(customer_id, limit=limit, offset=offset)
