"""
Payment gateway adapters and the circuit breaker in front of them.

The gateway contract returns GatewaySuccess or GatewayFailure instead of
raising for declines. Transport errors and timeouts are raised and
counted by the circuit breaker.
"""

import logging
import time
from decimal import Decimal
from enum import Enum
from typing import Callable, Optional

import httpx

from shared.exceptions import ExternalServiceError

from .models import GatewayFailure, GatewayResult, GatewaySuccess

logger = logging.getLogger(__name__)


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """
    Consecutive-failure circuit breaker.

    Opens after `failure_threshold` consecutive failures. Once
    `reset_seconds` have passed it lets one trial call through
    (half-open); success closes it, failure re-opens it.
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        reset_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._threshold = failure_threshold
        self._reset_seconds = reset_seconds
        self._clock = clock
        self._failures = 0
        self._opened_at: Optional[float] = None
        self._trial_in_flight = False

    @property
    def state(self) -> CircuitState:
        if self._opened_at is None:
            return CircuitState.CLOSED
        if self._clock() - self._opened_at >= self._reset_seconds:
            return CircuitState.HALF_OPEN
        return CircuitState.OPEN

    def retry_after(self) -> float:
        if self._opened_at is None:
            return 0.0
        return max(0.0, self._reset_seconds - (self._clock() - self._opened_at))

    def allow_request(self) -> bool:
        state = self.state
        if state == CircuitState.CLOSED:
            return True
        if state == CircuitState.HALF_OPEN and not self._trial_in_flight:
            self._trial_in_flight = True
            return True
        return False

    def record_success(self) -> None:
        if self._opened_at is not None:
            logger.info("Payment gateway circuit closed")
        self._failures = 0
        self._opened_at = None
        self._trial_in_flight = False

    def release_trial(self) -> None:
        """Give back a half-open trial that ended without an outcome."""
        self._trial_in_flight = False

    def record_failure(self) -> None:
        self._failures += 1
        self._trial_in_flight = False
        if self._opened_at is not None or self._failures >= self._threshold:
            self._opened_at = self._clock()
            logger.warning(f"Payment gateway circuit opened after {self._failures} failure(s)")


class HttpPaymentGateway:
    """
    Gateway client over a JSON HTTP API.

    POST {base_url}/charges with amount, currency and payment method.
    2xx with `status == "succeeded"` is a success; other 2xx/4xx JSON
    answers are declines. 5xx, transport errors and bodies that are not a
    JSON object raise ExternalServiceError.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._client = client

    async def charge(
        self,
        amount: Decimal,
        currency: str,
        payment_method: Optional[str],
    ) -> GatewayResult:
        payload = {
            "amount": str(amount),
            "currency": currency,
            "payment_method": payment_method,
        }
        headers = {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }
        try:
            if self._client is not None:
                response = await self._client.post(
                    f"{self._base_url}/charges", json=payload, headers=headers
                )
            else:
                async with httpx.AsyncClient() as client:
                    response = await client.post(
                        f"{self._base_url}/charges", json=payload, headers=headers
                    )
        except httpx.HTTPError as e:
            raise ExternalServiceError(
                f"Payment gateway request failed: {e}",
                service="payment_gateway",
                code="GATEWAY_TRANSPORT_ERROR",
                retryable=True,
            ) from e

        if response.status_code >= 500:
            raise ExternalServiceError(
                f"Payment gateway returned {response.status_code}",
                service="payment_gateway",
                code="GATEWAY_UNAVAILABLE",
                retryable=True,
            )

        try:
            data = response.json()
        except ValueError:
            data = None
        succeeded = (
            isinstance(data, dict)
            and response.is_success
            and data.get("status") == "succeeded"
        )
        if not isinstance(data, dict) or (succeeded and not data.get("id")):
            # On a 2xx the charge outcome is unknown, so this is not retryable
            raise ExternalServiceError(
                f"Payment gateway returned an unreadable {response.status_code} response",
                service="payment_gateway",
                code="GATEWAY_BAD_RESPONSE",
                details={"status_code": response.status_code},
                retryable=False,
            )

        if succeeded:
            return GatewaySuccess(transaction_id=str(data["id"]))
        return GatewayFailure(
            reason=data.get("failure_message") or data.get("error") or "declined",
            retryable=False,
        )


class UnconfiguredPaymentGateway:
    """Gateway used when no gateway URL is configured: declines everything."""

    async def charge(
        self,
        amount: Decimal,
        currency: str,
        payment_method: Optional[str],
    ) -> GatewayResult:
        return GatewayFailure(reason="No payment gateway configured", retryable=False)
