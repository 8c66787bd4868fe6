"""
Base exception classes for the billing ledger.

Each module should define its own exceptions that inherit from these bases.
This enables consistent error handling across the application.
"""

from typing import Optional, Any


class LedgerError(Exception):
    """
    Base exception for all ledger errors.

    All custom exceptions should inherit from this class.
    """

    retryable: bool = False

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to a dictionary for caller-facing responses."""
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
            "retryable": self.retryable,
        }


class NotFoundError(LedgerError):
    """Resource not found."""

    pass


class ValidationError(LedgerError):
    """Input validation failed."""

    pass


class InvalidAmountError(ValidationError):
    """Raised when a monetary amount is invalid (negative, zero, malformed)."""

    def __init__(self, amount: Any, reason: str, field: Optional[str] = None):
        details = {"amount": str(amount), "reason": reason}
        if field:
            details["field"] = field
        super().__init__(
            f"Invalid amount: {amount}. {reason}",
            code="INVALID_AMOUNT",
            details=details,
        )


class MissingFieldError(ValidationError):
    """Raised when a required input field is absent or blank."""

    def __init__(self, field: str):
        super().__init__(
            f"Missing required field: {field}",
            code="MISSING_FIELD",
            details={"field": field},
        )


class InvalidStateError(LedgerError):
    """Operation is not legal in the entity's current lifecycle state."""

    pass


class ConcurrentModificationError(LedgerError):
    """
    A versioned row changed between read and write.

    Raised by the store when an optimistic version check fails. The whole
    transaction has been rolled back, so the caller may retry.
    """

    retryable = True

    def __init__(self, table: str, key: str, expected_version: int):
        super().__init__(
            f"Concurrent modification of {table}/{key}",
            code="CONCURRENT_MODIFICATION",
            details={
                "table": table,
                "key": key,
                "expected_version": expected_version,
            },
        )


class DuplicateKeyError(LedgerError):
    """A row with the same unique key already exists."""

    def __init__(self, table: str, key: str):
        super().__init__(
            f"Duplicate key in {table}: {key}",
            code="DUPLICATE_KEY",
            details={"table": table, "key": key},
        )


class ExternalServiceError(LedgerError):
    """Error communicating with an external service."""

    def __init__(
        self,
        message: str,
        service: str,
        code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
        retryable: bool = False,
    ):
        super().__init__(message, code, details)
        self.service = service
        self.retryable = retryable
        self.details["service"] = service


class ConfigurationError(LedgerError):
    """Required settings are missing or unusable."""

    def __init__(self, message: str, settings: list[str]):
        super().__init__(
            message,
            code="CONFIGURATION_ERROR",
            details={"settings": settings},
        )
