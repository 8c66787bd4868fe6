"""
Shared infrastructure for the billing ledger.

This package contains cross-cutting concerns used by multiple modules:
- config: Centralized settings management
- database: Supabase client factory
- exceptions: Base exception classes
- store: Transactional row store (in-memory and Supabase)
- locks: Per-key async locks
- money / clock / identifiers: Small value helpers

Note: Business logic should NOT go here. This is for infrastructure only.
"""

from .config import Settings, get_settings
from .database import get_supabase_client, is_supabase_configured, reset_client_cache
from .exceptions import (
    LedgerError,
    NotFoundError,
    ValidationError,
    InvalidAmountError,
    MissingFieldError,
    InvalidStateError,
    ConcurrentModificationError,
    DuplicateKeyError,
    ExternalServiceError,
    ConfigurationError,
)
from .locks import KeyedLock
from .store import InMemoryLedgerStore, LedgerStore, SupabaseLedgerStore

__all__ = [
    "Settings",
    "get_settings",
    "get_supabase_client",
    "is_supabase_configured",
    "reset_client_cache",
    "LedgerError",
    "NotFoundError",
    "ValidationError",
    "InvalidAmountError",
    "MissingFieldError",
    "InvalidStateError",
    "ConcurrentModificationError",
    "DuplicateKeyError",
    "ExternalServiceError",
    "ConfigurationError",
    "KeyedLock",
    "InMemoryLedgerStore",
    "LedgerStore",
    "SupabaseLedgerStore",
]
