"""
Audit module exceptions.
"""

from typing import Optional

from shared.exceptions import LedgerError


class AuditError(LedgerError):
    """Base exception for audit-related errors."""

    pass


class AuditPersistenceError(AuditError):
    """
    Raised when an audit entry cannot be written.

    An unaudited financial mutation is not acceptable, so this error is
    fatal to the enclosing transaction: the triggering state change is
    rolled back with it.
    """

    def __init__(self, entity_id: str, action: str, cause: Optional[str] = None):
        super().__init__(
            f"Failed to persist audit entry {action} for {entity_id}",
            code="AUDIT_PERSISTENCE_FAILED",
            details={"entity_id": entity_id, "action": action, "cause": cause},
        )
