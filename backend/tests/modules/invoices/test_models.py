"""Tests for invoice models."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from modules.invoices import Invoice, InvoiceStatus, PaymentTerms


ISSUED = datetime(2024, 6, 1, 9, 30, tzinfo=timezone.utc)


class TestPaymentTerms:
    @pytest.mark.parametrize(
        "terms, expected",
        [
            (PaymentTerms.NET_15, ISSUED + timedelta(days=15)),
            (PaymentTerms.NET_30, ISSUED + timedelta(days=30)),
            (PaymentTerms.NET_45, ISSUED + timedelta(days=45)),
            (PaymentTerms.NET_60, ISSUED + timedelta(days=60)),
            (PaymentTerms.COD, ISSUED),
            (PaymentTerms.IMMEDIATE, ISSUED + timedelta(hours=24)),
        ],
    )
    def test_due_date(self, terms, expected):
        assert terms.due_date(ISSUED) == expected

    def test_parse_is_lenient(self):
        assert PaymentTerms.parse(" net_45 ") == PaymentTerms.NET_45
        assert PaymentTerms.parse("NET_90") == PaymentTerms.NET_30
        assert PaymentTerms.parse(None) == PaymentTerms.NET_30


class TestInvoiceStatus:
    def test_terminal_statuses(self):
        assert InvoiceStatus.PAID.is_terminal
        assert InvoiceStatus.CANCELLED.is_terminal
        assert not InvoiceStatus.PARTIALLY_PAID.is_terminal


class TestInvoiceOverdue:
    def _invoice(self, status: InvoiceStatus) -> Invoice:
        return Invoice(
            id="1",
            invoice_number="INV-1",
            customer_id="c",
            customer_name="C",
            subtotal=Decimal("10"),
            total_amount=Decimal("10"),
            status=status,
            due_date=ISSUED,
        )

    def test_open_invoice_past_due(self):
        assert self._invoice(InvoiceStatus.SENT).is_overdue(ISSUED + timedelta(seconds=1))
        assert self._invoice(InvoiceStatus.PARTIALLY_PAID).is_overdue(ISSUED + timedelta(days=1))

    def test_due_instant_is_not_overdue(self):
        assert not self._invoice(InvoiceStatus.SENT).is_overdue(ISSUED)

    @pytest.mark.parametrize(
        "status", [InvoiceStatus.DRAFT, InvoiceStatus.PAID, InvoiceStatus.CANCELLED]
    )
    def test_closed_or_draft_never_overdue(self, status):
        assert not self._invoice(status).is_overdue(ISSUED + timedelta(days=100))
