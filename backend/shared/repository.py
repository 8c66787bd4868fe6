"""
Base repository class for ledger data access.

Provides a common abstraction layer for all repositories, encapsulating
LedgerStore access and providing shared utilities for row mapping.
"""

from typing import Any, Generic, TypeVar

from pydantic import BaseModel

from .store import LedgerStore, Row


T = TypeVar("T", bound=BaseModel)


class BaseRepository(Generic[T]):
    """
    Base class for all repositories.

    Provides common functionality for database operations:
    - Store access via self._db
    - Generic type parameter for model type hints
    - Model <-> row mapping via `_to_row` / `_from_row`

    Subclasses set `table` and `model` and implement domain-specific
    lookups on top of the store's get/select primitives.

    Example:
        class InvoiceRepository(BaseRepository[Invoice]):
            table = "invoices"
            model = Invoice

            async def find_by_invoice_number(self, number: str) -> Optional[Invoice]:
                return await self._get(number)
    """

    table: str = ""
    model: type[T]

    def __init__(self, db: LedgerStore) -> None:
        """
        Initialize the repository with a ledger store.

        Args:
            db: LedgerStore instance for row operations.
        """
        self._db = db

    def _to_row(self, entity: T) -> Row:
        return entity.model_dump()

    def _from_row(self, row: Row) -> T:
        return self.model.model_validate(row)

    async def _get(self, key: str) -> "T | None":
        row = await self._db.get(self.table, key)
        if row is None:
            return None
        return self._from_row(row)

    async def _select(self, *filters: Any, **options: Any) -> list[T]:
        rows = await self._db.select(self.table, filters, **options)
        return [self._from_row(r) for r in rows]

    async def _insert(self, entity: T) -> T:
        return self._from_row(await self._db.insert(self.table, self._to_row(entity)))

    async def _update(self, entity: T) -> T:
        return self._from_row(await self._db.update(self.table, self._to_row(entity)))
