"""
Disputes module.

Tracks customer disputes of invoice charges and issues credit or refunds
when a dispute is resolved in the customer's favour.

Public API:
- IDisputeManager: Interface for dispute operations
- BillingDispute: Dispute snapshot
- DisputeStatus / DisputeOutcome / DisputeRemedy: Enumerations
"""

from .interfaces import IDisputeManager
from .models import (
    AWAITING_STATUSES,
    TERMINAL_DISPUTE_STATUSES,
    BillingDispute,
    DisputeOutcome,
    DisputeRemedy,
    DisputeStatus,
)
from .exceptions import DisputeError, DisputeNotFoundError, InvalidDisputeStateError
from .repository import DisputeRepository
from .service import DisputeManager

__all__ = [
    "IDisputeManager",
    "AWAITING_STATUSES",
    "TERMINAL_DISPUTE_STATUSES",
    "BillingDispute",
    "DisputeOutcome",
    "DisputeRemedy",
    "DisputeStatus",
    "DisputeError",
    "DisputeNotFoundError",
    "InvalidDisputeStateError",
    "DisputeRepository",
    "DisputeManager",
]
