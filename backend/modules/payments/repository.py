"""
Payment repository.
"""

from decimal import Decimal
from typing import Optional

from shared.money import ZERO
from shared.repository import BaseRepository
from shared.store import eq

from .models import Payment, PaymentStatus


class PaymentRepository(BaseRepository[Payment]):
    """
    Data access for the payments table, keyed by payment ID.

    Also serves as the invoice ledger's payment history.
    """

    table = "payments"
    model = Payment

    async def create(self, payment: Payment) -> Payment:
        return await self._insert(payment)

    async def find_by_payment_id(self, payment_id: str) -> Optional[Payment]:
        return await self._get(payment_id)

    async def find_by_invoice(self, invoice_number: str) -> list[Payment]:
        return await self._select(
            eq("invoice_number", invoice_number),
            order_by="created_at",
            descending=True,
        )

    async def find_by_customer(
        self,
        customer_id: str,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Payment]:
        return await self._select(
            eq("customer_id", customer_id),
            order_by="created_at",
            descending=True,
            limit=limit,
            offset=offset,
        )

    async def find_refunds_of(self, payment_id: str) -> list[Payment]:
        return await self._select(
            eq("original_payment_id", payment_id),
            eq("status", PaymentStatus.COMPLETED),
        )

    async def net_paid(self, invoice_number: str) -> Decimal:
        completed = await self._select(
            eq("invoice_number", invoice_number),
            eq("status", PaymentStatus.COMPLETED),
        )
        total = ZERO
        for payment in completed:
            total += -payment.amount if payment.is_refund else payment.amount
        return total
