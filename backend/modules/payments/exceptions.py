"""
Payment module exceptions.
"""

from decimal import Decimal
from typing import Optional

from shared.exceptions import ExternalServiceError, LedgerError, NotFoundError, ValidationError


class PaymentError(LedgerError):
    """Base exception for payment-related errors."""

    pass


class PaymentNotFoundError(NotFoundError):
    """Raised when a payment ID is unknown."""

    def __init__(self, payment_id: str):
        super().__init__(
            f"Payment not found: {payment_id}",
            code="PAYMENT_NOT_FOUND",
            details={"payment_id": payment_id},
        )


class CurrencyMismatchError(ValidationError):
    """Raised when a payment currency differs from the invoice currency."""

    def __init__(self, invoice_number: str, expected: str, actual: str):
        super().__init__(
            f"Currency {actual} does not match invoice {invoice_number} currency {expected}",
            code="CURRENCY_MISMATCH",
            details={"invoice_number": invoice_number, "expected": expected, "actual": actual},
        )


class RefundExceedsPaymentError(ValidationError):
    """Raised when a refund exceeds the refundable remainder of a payment."""

    def __init__(self, payment_id: str, refundable: Decimal, requested: Decimal):
        super().__init__(
            f"Refund of {requested} exceeds refundable amount {refundable} of payment {payment_id}",
            code="REFUND_EXCEEDS_PAYMENT",
            details={
                "payment_id": payment_id,
                "refundable": str(refundable),
                "requested": str(requested),
            },
        )


class NoCreditAvailableError(ValidationError):
    """Raised when a customer has no credit balance to redeem."""

    def __init__(self, customer_id: str):
        super().__init__(
            f"No credit balance available for customer {customer_id}",
            code="NO_CREDIT_AVAILABLE",
            details={"customer_id": customer_id},
        )


class GatewayError(ExternalServiceError):
    """
    The payment gateway did not confirm a charge.

    A FAILED payment row has been recorded (unless the circuit was open)
    and the invoice is unchanged. Retry with backoff when `retryable`.
    """

    def __init__(
        self,
        invoice_number: str,
        reason: str,
        retryable: bool = True,
        payment_id: Optional[str] = None,
        code: str = "GATEWAY_ERROR",
    ):
        super().__init__(
            f"Payment gateway failed for invoice {invoice_number}: {reason}",
            service="payment_gateway",
            code=code,
            details={
                "invoice_number": invoice_number,
                "reason": reason,
                "payment_id": payment_id,
            },
            retryable=retryable,
        )


class GatewayTimeoutError(GatewayError):
    """The gateway call exceeded the configured timeout."""

    def __init__(self, invoice_number: str, timeout: float, payment_id: Optional[str] = None):
        super().__init__(
            invoice_number,
            f"timed out after {timeout}s",
            retryable=True,
            payment_id=payment_id,
            code="GATEWAY_TIMEOUT",
        )


class CircuitOpenError(GatewayError):
    """The circuit breaker is open; the gateway was not called."""

    def __init__(self, invoice_number: str, retry_after: float):
        super().__init__(
            invoice_number,
            f"circuit open, retry after {retry_after:.0f}s",
            retryable=True,
            code="GATEWAY_CIRCUIT_OPEN",
        )
        self.details["retry_after"] = retry_after
