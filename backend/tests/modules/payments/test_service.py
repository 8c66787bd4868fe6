"""Tests for the payment processor."""

import asyncio
from decimal import Decimal
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from modules.audit import AuditAction, AuditPersistenceError
from modules.customers import CustomerCreditRepository
from modules.invoices import InvalidInvoiceStateError, InvoiceStatus, OverpaymentError
from modules.payments import (
    CircuitBreaker,
    CircuitOpenError,
    CircuitState,
    CurrencyMismatchError,
    GatewayError,
    GatewayFailure,
    GatewayTimeoutError,
    HttpPaymentGateway,
    IPaymentProcessor,
    NoCreditAvailableError,
    PaymentMethod,
    PaymentNotFoundError,
    PaymentProcessor,
    PaymentStatus,
    RefundExceedsPaymentError,
)
from shared.exceptions import (
    ExternalServiceError,
    InvalidAmountError,
    InvalidStateError,
    MissingFieldError,
)


class TestManualPayments:
    def test_implements_interface(self, processor):
        assert isinstance(processor, IPaymentProcessor)

    @pytest.mark.asyncio
    async def test_two_halves_pay_the_invoice(self, processor, ledger, make_invoice):
        invoice = await make_invoice("25.00", "2.50", "1.91")

        _, after_first = await processor.record_manual_payment(
            invoice.invoice_number, Decimal("12.205"), "USD"
        )
        assert after_first.status == InvoiceStatus.PARTIALLY_PAID

        payment, after_second = await processor.record_manual_payment(
            invoice.invoice_number, Decimal("12.205"), "USD", memo="cheque 42"
        )
        assert after_second.status == InvoiceStatus.PAID
        assert payment.memo == "cheque 42"
        assert payment.method == PaymentMethod.MANUAL
        assert payment.status == PaymentStatus.COMPLETED
        assert payment.processed_at is not None

        payments = await processor.list_payments(invoice.invoice_number)
        assert len(payments) == 2
        assert sum(p.amount for p in payments) == Decimal("24.41")
        assert await ledger.outstanding_balance(invoice.invoice_number) == Decimal("0")

    @pytest.mark.asyncio
    async def test_payment_on_paid_invoice_rejected(self, processor, make_invoice):
        invoice = await make_invoice()
        for _ in range(2):
            await processor.record_manual_payment(
                invoice.invoice_number, Decimal("12.205"), "USD"
            )

        with pytest.raises(InvalidStateError):
            await processor.record_manual_payment(invoice.invoice_number, Decimal("1"), "USD")
        assert len(await processor.list_payments(invoice.invoice_number)) == 2

    @pytest.mark.asyncio
    async def test_payment_on_cancelled_invoice_rejected(self, processor, ledger, make_invoice):
        invoice = await make_invoice()
        await ledger.cancel_invoice(invoice.invoice_number, "duplicate")

        with pytest.raises(InvalidInvoiceStateError):
            await processor.record_manual_payment(invoice.invoice_number, Decimal("1"), "USD")

    @pytest.mark.asyncio
    async def test_payment_on_draft_invoice_rejected(self, processor, make_invoice):
        invoice = await make_invoice(finalize=False)

        with pytest.raises(InvalidInvoiceStateError):
            await processor.record_manual_payment(invoice.invoice_number, Decimal("1"), "USD")
        assert await processor.list_payments(invoice.invoice_number) == []

    @pytest.mark.asyncio
    async def test_currency_mismatch(self, processor, make_invoice):
        invoice = await make_invoice()

        with pytest.raises(CurrencyMismatchError) as exc_info:
            await processor.record_manual_payment(invoice.invoice_number, Decimal("1"), "EUR")
        assert exc_info.value.details == {
            "invoice_number": invoice.invoice_number,
            "expected": "USD",
            "actual": "EUR",
        }
        assert await processor.list_payments(invoice.invoice_number) == []

    @pytest.mark.asyncio
    async def test_currency_is_case_insensitive(self, processor, make_invoice):
        invoice = await make_invoice()
        payment, _ = await processor.record_manual_payment(
            invoice.invoice_number, Decimal("1"), "usd"
        )
        assert payment.currency == "USD"

    @pytest.mark.asyncio
    async def test_overpayment_leaves_no_payment_row(self, processor, ledger, make_invoice):
        invoice = await make_invoice()
        await processor.record_manual_payment(invoice.invoice_number, Decimal("20"), "USD")

        with pytest.raises(OverpaymentError):
            await processor.record_manual_payment(invoice.invoice_number, Decimal("5"), "USD")

        assert len(await processor.list_payments(invoice.invoice_number)) == 1
        stored = await ledger.get_invoice(invoice.invoice_number)
        assert stored.status == InvoiceStatus.PARTIALLY_PAID

    @pytest.mark.asyncio
    async def test_concurrent_payments_never_overpay(self, processor, ledger, make_invoice):
        invoice = await make_invoice()

        results = await asyncio.gather(
            processor.record_manual_payment(invoice.invoice_number, Decimal("20"), "USD"),
            processor.record_manual_payment(invoice.invoice_number, Decimal("20"), "USD"),
            return_exceptions=True,
        )

        assert sum(isinstance(r, OverpaymentError) for r in results) == 1
        assert len(await processor.list_payments(invoice.invoice_number)) == 1
        assert await ledger.outstanding_balance(invoice.invoice_number) == Decimal("4.41")

    @pytest.mark.asyncio
    async def test_input_validation(self, processor, make_invoice):
        invoice = await make_invoice()
        with pytest.raises(InvalidAmountError):
            await processor.record_manual_payment(invoice.invoice_number, Decimal("0"), "USD")
        with pytest.raises(MissingFieldError):
            await processor.record_manual_payment(invoice.invoice_number, Decimal("1"), " ")

    @pytest.mark.asyncio
    async def test_payment_is_audited(self, processor, make_invoice, audit):
        invoice = await make_invoice()
        payment, _ = await processor.record_manual_payment(
            invoice.invoice_number, Decimal("24.41"), "USD", performed_by="clerk"
        )

        trail = await audit.get_audit_trail(payment.payment_id)
        assert [e.action for e in trail] == [AuditAction.MANUAL_PAYMENT]
        assert trail[0].performed_by == "clerk"
        invoice_trail = await audit.get_audit_trail(invoice.invoice_number)
        assert invoice_trail[-1].action == AuditAction.INVOICE_SETTLED


class TestAutomaticPayments:
    @pytest.mark.asyncio
    async def test_success_charges_outstanding_balance(self, processor, gateway, make_invoice):
        invoice = await make_invoice()
        await processor.record_manual_payment(invoice.invoice_number, Decimal("4.41"), "USD")

        payment, settled = await processor.initiate_automatic_payment(invoice.invoice_number)

        gateway.charge.assert_awaited_once_with(Decimal("20.00"), "USD", "pm_card_visa")
        assert payment.method == PaymentMethod.AUTOMATIC
        assert payment.gateway_transaction_id == "txn_123"
        assert payment.amount == Decimal("20.00")
        assert settled.status == InvoiceStatus.PAID

    @pytest.mark.asyncio
    async def test_decline_records_failed_payment(
        self, processor, gateway, ledger, make_invoice, audit
    ):
        gateway.charge.return_value = GatewayFailure(reason="card declined", retryable=False)
        invoice = await make_invoice()

        with pytest.raises(GatewayError) as exc_info:
            await processor.initiate_automatic_payment(invoice.invoice_number)
        assert exc_info.value.retryable is False

        payments = await processor.list_payments(invoice.invoice_number)
        assert len(payments) == 1
        assert payments[0].status == PaymentStatus.FAILED
        assert payments[0].failure_reason == "card declined"
        assert exc_info.value.details["payment_id"] == payments[0].payment_id

        trail = await audit.get_audit_trail(payments[0].payment_id)
        assert trail[0].action == AuditAction.PAYMENT_FAILED
        assert (await ledger.get_invoice(invoice.invoice_number)).status == InvoiceStatus.SENT
        # A decline is an answer, not an outage
        assert processor.breaker.state == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_failed_rows_do_not_count_as_paid(self, processor, gateway, ledger, make_invoice):
        gateway.charge.return_value = GatewayFailure(reason="insufficient funds")
        invoice = await make_invoice()
        with pytest.raises(GatewayError):
            await processor.initiate_automatic_payment(invoice.invoice_number)

        assert await ledger.outstanding_balance(invoice.invoice_number) == Decimal("24.41")

    @pytest.mark.asyncio
    async def test_timeout_records_failure_and_keeps_invoice(
        self, processor, gateway, ledger, make_invoice
    ):
        async def slow_charge(*args):
            await asyncio.sleep(5)

        gateway.charge.side_effect = slow_charge
        invoice = await make_invoice()

        with pytest.raises(GatewayTimeoutError) as exc_info:
            await processor.initiate_automatic_payment(invoice.invoice_number)

        assert exc_info.value.code == "GATEWAY_TIMEOUT"
        assert exc_info.value.retryable is True
        payments = await processor.list_payments(invoice.invoice_number)
        assert [p.status for p in payments] == [PaymentStatus.FAILED]
        assert (await ledger.get_invoice(invoice.invoice_number)).status == InvoiceStatus.SENT

    @pytest.mark.asyncio
    async def test_transport_error_is_retryable(self, processor, gateway, make_invoice):
        gateway.charge.side_effect = ExternalServiceError(
            "connection reset", service="payment_gateway", retryable=True
        )
        invoice = await make_invoice()

        with pytest.raises(GatewayError) as exc_info:
            await processor.initiate_automatic_payment(invoice.invoice_number)
        assert exc_info.value.retryable is True

    @pytest.mark.asyncio
    async def test_circuit_opens_after_repeated_failures(self, processor, gateway, make_invoice):
        gateway.charge.side_effect = ExternalServiceError("down", service="payment_gateway")
        invoice = await make_invoice()

        # Threshold is 3 in the test settings
        for _ in range(3):
            with pytest.raises(GatewayError):
                await processor.initiate_automatic_payment(invoice.invoice_number)
        assert processor.breaker.state == CircuitState.OPEN

        with pytest.raises(CircuitOpenError) as exc_info:
            await processor.initiate_automatic_payment(invoice.invoice_number)

        assert exc_info.value.retryable is True
        assert gateway.charge.await_count == 3
        assert len(await processor.list_payments(invoice.invoice_number)) == 3

    @pytest.mark.asyncio
    async def test_paid_invoice_is_not_charged(self, processor, gateway, make_invoice):
        invoice = await make_invoice()
        await processor.record_manual_payment(invoice.invoice_number, Decimal("24.41"), "USD")

        with pytest.raises(InvalidInvoiceStateError):
            await processor.initiate_automatic_payment(invoice.invoice_number)
        gateway.charge.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_draft_invoice_is_not_charged(self, processor, gateway, make_invoice):
        invoice = await make_invoice(finalize=False)
        with pytest.raises(InvalidInvoiceStateError):
            await processor.initiate_automatic_payment(invoice.invoice_number)
        gateway.charge.assert_not_awaited()


class TestGatewayFailureModes:
    """The breaker is half-open in every test: one trial call is allowed."""

    @pytest.fixture
    def breaker(self):
        breaker = CircuitBreaker(failure_threshold=1, reset_seconds=0)
        breaker.record_failure()
        return breaker

    @pytest.fixture
    def build_processor(self, store, ledger, audit, customers, settings, breaker):
        def build(gateway) -> PaymentProcessor:
            return PaymentProcessor(
                store,
                ledger=ledger,
                audit=audit,
                gateway=gateway,
                customers=customers,
                breaker=breaker,
                settings=settings,
            )

        return build

    @pytest.mark.asyncio
    async def test_html_reply_records_failure_and_frees_trial(
        self, build_processor, breaker, ledger, make_invoice
    ):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(403, text="<html>Forbidden</html>")

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        processor = build_processor(
            HttpPaymentGateway("https://gateway.test", "sk_test", client=client)
        )
        invoice = await make_invoice()
        assert breaker.state == CircuitState.HALF_OPEN

        with pytest.raises(GatewayError) as exc_info:
            await processor.initiate_automatic_payment(invoice.invoice_number)

        assert exc_info.value.retryable is False
        payments = await processor.list_payments(invoice.invoice_number)
        assert [p.status for p in payments] == [PaymentStatus.FAILED]
        assert "unreadable 403" in payments[0].failure_reason
        assert (await ledger.get_invoice(invoice.invoice_number)).status == InvoiceStatus.SENT
        assert breaker.allow_request()

    @pytest.mark.asyncio
    async def test_unexpected_adapter_error_is_a_failed_charge(
        self, build_processor, gateway, breaker, make_invoice
    ):
        gateway.charge.side_effect = AttributeError("'list' object has no attribute 'get'")
        processor = build_processor(gateway)
        invoice = await make_invoice()

        with pytest.raises(GatewayError) as exc_info:
            await processor.initiate_automatic_payment(invoice.invoice_number)
        assert exc_info.value.retryable is False
        failed = await processor.list_payments(invoice.invoice_number)
        assert failed[0].status == PaymentStatus.FAILED
        assert failed[0].failure_reason.startswith("unexpected gateway error")

        gateway.charge.side_effect = None
        payment, settled = await processor.initiate_automatic_payment(invoice.invoice_number)
        assert payment.status == PaymentStatus.COMPLETED
        assert settled.status == InvoiceStatus.PAID
        assert breaker.state == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_cancelled_charge_frees_trial(
        self, build_processor, gateway, breaker, make_invoice
    ):
        started = asyncio.Event()

        async def hanging_charge(*args):
            started.set()
            await asyncio.sleep(5)

        gateway.charge.side_effect = hanging_charge
        processor = build_processor(gateway)
        invoice = await make_invoice()

        task = asyncio.create_task(processor.initiate_automatic_payment(invoice.invoice_number))
        await started.wait()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert await processor.list_payments(invoice.invoice_number) == []
        assert breaker.allow_request()


class TestCustomerCredit:
    @pytest.mark.asyncio
    async def test_redeems_up_to_outstanding(self, processor, store, make_invoice, grant_credit):
        await grant_credit(balance="50.00")
        invoice = await make_invoice()

        payment, settled = await processor.apply_customer_credit(invoice.invoice_number)

        assert payment.method == PaymentMethod.CUSTOMER_CREDIT
        assert payment.amount == Decimal("24.41")
        assert settled.status == InvoiceStatus.PAID
        credit = await CustomerCreditRepository(store).find_by_customer("cust-001")
        assert credit.balance == Decimal("25.59")

    @pytest.mark.asyncio
    async def test_small_credit_partially_pays(self, processor, store, make_invoice, grant_credit):
        await grant_credit(balance="10.00")
        invoice = await make_invoice()

        payment, settled = await processor.apply_customer_credit(invoice.invoice_number)

        assert payment.amount == Decimal("10.00")
        assert settled.status == InvoiceStatus.PARTIALLY_PAID
        credit = await CustomerCreditRepository(store).find_by_customer("cust-001")
        assert credit.balance == Decimal("0.00")

    @pytest.mark.asyncio
    async def test_explicit_amount_above_balance_rejected(
        self, processor, make_invoice, grant_credit
    ):
        await grant_credit(balance="5.00")
        invoice = await make_invoice()
        with pytest.raises(InvalidAmountError):
            await processor.apply_customer_credit(invoice.invoice_number, amount=Decimal("6"))

    @pytest.mark.asyncio
    async def test_no_credit(self, processor, make_invoice):
        invoice = await make_invoice()
        with pytest.raises(NoCreditAvailableError):
            await processor.apply_customer_credit(invoice.invoice_number)

    @pytest.mark.asyncio
    async def test_credit_currency_must_match(self, processor, make_invoice, grant_credit):
        await grant_credit(balance="5.00", currency="EUR")
        invoice = await make_invoice()
        with pytest.raises(CurrencyMismatchError):
            await processor.apply_customer_credit(invoice.invoice_number)


class TestRefunds:
    @pytest.mark.asyncio
    async def test_partial_refunds_up_to_payment(self, processor, ledger, make_invoice, audit):
        invoice = await make_invoice()
        payment, _ = await processor.record_manual_payment(
            invoice.invoice_number, Decimal("24.41"), "USD"
        )

        refund = await processor.refund_payment(payment.payment_id, Decimal("4.41"), "damaged")
        assert refund.method == PaymentMethod.REFUND
        assert refund.original_payment_id == payment.payment_id
        assert refund.is_refund
        await processor.refund_payment(payment.payment_id, Decimal("20.00"), "lost parcel")

        with pytest.raises(RefundExceedsPaymentError) as exc_info:
            await processor.refund_payment(payment.payment_id, Decimal("0.01"), "more")
        assert exc_info.value.details["refundable"] == "0.00"

        assert await ledger.outstanding_balance(invoice.invoice_number) == Decimal("24.41")
        # Refunds never move the invoice status by themselves
        assert (await ledger.get_invoice(invoice.invoice_number)).status == InvoiceStatus.PAID
        trail = await audit.get_audit_trail(refund.payment_id)
        assert trail[0].action == AuditAction.REFUND_PROCESSED

    @pytest.mark.asyncio
    async def test_refund_of_refund_rejected(self, processor, make_invoice):
        invoice = await make_invoice()
        payment, _ = await processor.record_manual_payment(
            invoice.invoice_number, Decimal("10"), "USD"
        )
        refund = await processor.refund_payment(payment.payment_id, Decimal("1"), "x")

        with pytest.raises(InvalidStateError) as exc_info:
            await processor.refund_payment(refund.payment_id, Decimal("1"), "y")
        assert exc_info.value.code == "PAYMENT_NOT_REFUNDABLE"

    @pytest.mark.asyncio
    async def test_refund_of_failed_payment_rejected(self, processor, gateway, make_invoice):
        gateway.charge.return_value = GatewayFailure(reason="declined")
        invoice = await make_invoice()
        with pytest.raises(GatewayError) as exc_info:
            await processor.initiate_automatic_payment(invoice.invoice_number)

        with pytest.raises(InvalidStateError):
            await processor.refund_payment(
                exc_info.value.details["payment_id"], Decimal("1"), "x"
            )

    @pytest.mark.asyncio
    async def test_refund_validation(self, processor):
        with pytest.raises(InvalidAmountError):
            await processor.refund_payment("p", Decimal("-1"), "x")
        with pytest.raises(MissingFieldError):
            await processor.refund_payment("p", Decimal("1"), "")
        with pytest.raises(PaymentNotFoundError):
            await processor.refund_payment("p-404", Decimal("1"), "x")

    @pytest.mark.asyncio
    async def test_refund_then_repay_never_exceeds_total(self, processor, ledger, make_invoice):
        invoice = await make_invoice()
        payment, _ = await processor.record_manual_payment(
            invoice.invoice_number, Decimal("24.41"), "USD"
        )
        await processor.refund_payment(payment.payment_id, Decimal("4.41"), "damaged")

        reopened = await ledger.revert_settlement(invoice.invoice_number, "partial refund")
        assert reopened.status == InvoiceStatus.PARTIALLY_PAID
        assert await ledger.outstanding_balance(invoice.invoice_number) == Decimal("4.41")

        with pytest.raises(OverpaymentError):
            await processor.record_manual_payment(invoice.invoice_number, Decimal("4.42"), "USD")
        _, settled = await processor.record_manual_payment(
            invoice.invoice_number, Decimal("4.41"), "USD"
        )
        assert settled.status == InvoiceStatus.PAID
        with pytest.raises(InvalidInvoiceStateError):
            await processor.record_manual_payment(invoice.invoice_number, Decimal("0.01"), "USD")

        payments = await processor.list_payments(invoice.invoice_number)
        completed = [p for p in payments if p.status == PaymentStatus.COMPLETED]
        collected = sum(p.amount for p in completed if not p.is_refund)
        refunded = sum(p.amount for p in completed if p.is_refund)
        assert collected - refunded == invoice.total_amount


def failing_audit():
    return patch(
        "modules.audit.service.AuditRepository.append",
        AsyncMock(side_effect=RuntimeError("audit table unavailable")),
    )


class TestAuditFailureLeavesPaymentsUnchanged:
    @pytest.mark.asyncio
    async def test_refund(self, processor, make_invoice):
        invoice = await make_invoice()
        payment, _ = await processor.record_manual_payment(
            invoice.invoice_number, Decimal("24.41"), "USD"
        )

        with failing_audit(), pytest.raises(AuditPersistenceError):
            await processor.refund_payment(payment.payment_id, Decimal("4.41"), "damaged")

        payments = await processor.list_payments(invoice.invoice_number)
        assert [p.payment_id for p in payments] == [payment.payment_id]
        # The whole payment is still refundable
        refund = await processor.refund_payment(payment.payment_id, Decimal("24.41"), "lost")
        assert refund.amount == Decimal("24.41")

    @pytest.mark.asyncio
    async def test_credit_redemption(
        self, processor, store, ledger, make_invoice, grant_credit
    ):
        await grant_credit(balance="50.00")
        invoice = await make_invoice()

        with failing_audit(), pytest.raises(AuditPersistenceError):
            await processor.apply_customer_credit(invoice.invoice_number)

        credit = await CustomerCreditRepository(store).find_by_customer("cust-001")
        assert credit.balance == Decimal("50.00")
        assert await processor.list_payments(invoice.invoice_number) == []
        assert (await ledger.get_invoice(invoice.invoice_number)).status == InvoiceStatus.SENT


class TestReads:
    @pytest.mark.asyncio
    async def test_get_and_list(self, processor, make_invoice):
        invoice = await make_invoice()
        payment, _ = await processor.record_manual_payment(
            invoice.invoice_number, Decimal("1"), "USD"
        )

        assert (await processor.get_payment(payment.payment_id)).amount == Decimal("1")
        customer_payments = await processor.list_customer_payments("cust-001")
        assert [p.payment_id for p in customer_payments] == [payment.payment_id]
        assert await processor.list_customer_payments("cust-002") == []
