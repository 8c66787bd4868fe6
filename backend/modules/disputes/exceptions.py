"""
Dispute module exceptions.
"""

from typing import Iterable

from shared.exceptions import InvalidStateError, LedgerError, NotFoundError


class DisputeError(LedgerError):
    """Base exception for dispute-related errors."""

    pass


class DisputeNotFoundError(NotFoundError):
    """Raised when a dispute ID is unknown."""

    def __init__(self, dispute_id: str):
        super().__init__(
            f"Dispute not found: {dispute_id}",
            code="DISPUTE_NOT_FOUND",
            details={"dispute_id": dispute_id},
        )


class InvalidDisputeStateError(InvalidStateError):
    """Raised when a dispute transition is illegal from its current status."""

    def __init__(self, dispute_id: str, status: str, operation: str, allowed: Iterable[str] = ()):
        allowed = [getattr(s, "value", s) for s in allowed]
        status = getattr(status, "value", status)
        super().__init__(
            f"Cannot {operation} dispute {dispute_id} in status {status}",
            code="INVALID_DISPUTE_STATE",
            details={
                "dispute_id": dispute_id,
                "status": status,
                "operation": operation,
                "allowed": allowed,
            },
        )
