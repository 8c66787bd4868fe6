"""Disputes module test fixtures."""

from decimal import Decimal

import pytest


@pytest.fixture
def disputed(make_invoice, processor, disputes):
    """Factory: a SENT invoice (optionally paid) with an open dispute on it."""

    async def make(paid: str = None, awaiting: bool = True, with_payment: bool = False):
        invoice = await make_invoice()
        payment = None
        if paid is not None:
            payment, _ = await processor.record_manual_payment(
                invoice.invoice_number, Decimal(paid), "USD"
            )
        dispute = await disputes.open_dispute(
            invoice.invoice_number,
            "Charged for a failed delivery",
            "cust-001",
            payment_id=payment.payment_id if with_payment and payment else None,
        )
        if awaiting:
            dispute = await disputes.escalate_internally(dispute.dispute_id)
        return invoice, payment, dispute

    return make
