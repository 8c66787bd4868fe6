"""
Audit module interface.

Every ledger component depends on IAuditRecorder; the recorder depends on
nothing but the store.
"""

from typing import Protocol, runtime_checkable

from .models import AuditAction, AuditEntityType, BillingAudit


@runtime_checkable
class IAuditRecorder(Protocol):
    """Append-only audit trail."""

    async def record(
        self,
        entity_type: AuditEntityType,
        entity_id: str,
        action: AuditAction,
        details: str,
        performed_by: str,
    ) -> BillingAudit:
        """
        Append one audit entry.

        Must be called inside the transaction of the state change it
        describes, so both commit or roll back together.

        Raises:
            AuditPersistenceError: If the entry cannot be written
        """
        ...

    async def get_audit_trail(
        self,
        entity_id: str,
        limit: int = 100,
        offset: int = 0,
    ) -> list[BillingAudit]:
        """
        Get audit entries for an entity, oldest first.
        """
        ...
