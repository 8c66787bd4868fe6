"""
Audit recorder implementation.
"""

import logging

from shared.identifiers import new_id
from shared.clock import utc_now
from shared.exceptions import LedgerError
from shared.repository import BaseRepository
from shared.store import LedgerStore, Row, eq

from .exceptions import AuditPersistenceError
from .models import AuditAction, AuditEntityType, BillingAudit

logger = logging.getLogger(__name__)


class AuditRepository(BaseRepository[BillingAudit]):
    """Append-only access to the billing_audit table."""

    table = "billing_audit"
    model = BillingAudit

    async def append(self, entry: BillingAudit) -> BillingAudit:
        return await self._insert(entry)

    async def find_by_entity(
        self,
        entity_id: str,
        limit: int = 100,
        offset: int = 0,
    ) -> list[BillingAudit]:
        return await self._select(
            eq("entity_id", entity_id),
            order_by="created_at",
            limit=limit,
            offset=offset,
        )


class AuditRecorder:
    """
    Writes audit entries through the ledger store.

    Any failure to write is re-raised as AuditPersistenceError so callers
    can tell it apart from the business errors of the primary operation.
    """

    def __init__(self, store: LedgerStore):
        self._repository = AuditRepository(store)
        # Stores that defer writes to commit report audit rows through this
        store.on_write_error(AuditRepository.table, self._commit_failure)

    @staticmethod
    def _commit_failure(row: Row, cause: Exception) -> AuditPersistenceError:
        logger.error(f"Audit write failed at commit for {row.get('entity_id')}: {cause}")
        return AuditPersistenceError(
            str(row.get("entity_id", "")), str(row.get("action", "")), str(cause)
        )

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

        Args:
            entity_type: Kind of entity the entry describes
            entity_id: Invoice number, payment ID, dispute ID or similar
            action: What happened
            details: Human-readable description
            performed_by: Actor; an empty value is stored as SYSTEM

        Returns:
            The stored entry
        """
        entry = BillingAudit(
            id=new_id(),
            entity_type=entity_type,
            entity_id=entity_id,
            action=action,
            details=details,
            performed_by=performed_by or "SYSTEM",
            created_at=utc_now(),
        )
        try:
            saved = await self._repository.append(entry)
        except (LedgerError, OSError, RuntimeError) as e:
            logger.error(f"Audit write failed for {entity_type.value}/{entity_id} {action.value}: {e}")
            raise AuditPersistenceError(entity_id, action.value, str(e)) from e

        logger.debug(f"Audit {action.value} recorded for {entity_type.value}/{entity_id}")
        return saved

    async def get_audit_trail(
        self,
        entity_id: str,
        limit: int = 100,
        offset: int = 0,
    ) -> list[BillingAudit]:
        """Entries for one entity, oldest first."""
        return await self._repository.find_by_entity(entity_id, limit=limit, offset=offset)
