"""
Payments module.

Applies payments (manual, gateway, customer credit) against invoice
balances and records refunds.

Public API:
- IPaymentProcessor: Interface for payment operations
- IPaymentGateway: External gateway contract
- Payment: Payment or refund row
- PaymentStatus / PaymentMethod: Enumerations
- GatewaySuccess / GatewayFailure: Gateway result union
"""

from .interfaces import IPaymentGateway, IPaymentProcessor
from .models import (
    GatewayFailure,
    GatewayResult,
    GatewaySuccess,
    Payment,
    PaymentMethod,
    PaymentStatus,
)
from .exceptions import (
    CircuitOpenError,
    CurrencyMismatchError,
    GatewayError,
    GatewayTimeoutError,
    NoCreditAvailableError,
    PaymentError,
    PaymentNotFoundError,
    RefundExceedsPaymentError,
)
from .gateway import CircuitBreaker, CircuitState, HttpPaymentGateway, UnconfiguredPaymentGateway
from .repository import PaymentRepository
from .service import PaymentProcessor

__all__ = [
    # Interfaces
    "IPaymentGateway",
    "IPaymentProcessor",
    # Models
    "GatewayFailure",
    "GatewayResult",
    "GatewaySuccess",
    "Payment",
    "PaymentMethod",
    "PaymentStatus",
    # Exceptions
    "CircuitOpenError",
    "CurrencyMismatchError",
    "GatewayError",
    "GatewayTimeoutError",
    "NoCreditAvailableError",
    "PaymentError",
    "PaymentNotFoundError",
    "RefundExceedsPaymentError",
    # Gateway
    "CircuitBreaker",
    "CircuitState",
    "HttpPaymentGateway",
    "UnconfiguredPaymentGateway",
    # Implementation
    "PaymentProcessor",
    "PaymentRepository",
]
