"""
Audit module.

Append-only trail of every state-changing ledger operation.

Public API:
- IAuditRecorder: Interface for recording and reading audit entries
- BillingAudit: Audit entry
- AuditAction / AuditEntityType: Enumerations
- AuditPersistenceError: Fatal audit write failure
"""

from .interfaces import IAuditRecorder
from .models import AuditAction, AuditEntityType, BillingAudit
from .exceptions import AuditError, AuditPersistenceError
from .service import AuditRecorder, AuditRepository

__all__ = [
    # Interface
    "IAuditRecorder",
    # Models
    "AuditAction",
    "AuditEntityType",
    "BillingAudit",
    # Exceptions
    "AuditError",
    "AuditPersistenceError",
    # Implementation
    "AuditRecorder",
    "AuditRepository",
]
