"""
Ledger components for the courier billing backend.

Each module is self-contained with its own:
- interfaces.py: Protocol definitions for the module's public API
- models.py: Pydantic models for data transfer
- service.py: Business logic implementation
- repository.py: Row mapping over the shared LedgerStore (where it persists)
- exceptions.py: Module-specific exceptions

Modules communicate through interfaces, not concrete implementations.
"""
