"""
Transactional row store behind the ledger repositories.

Repositories never talk to a database client directly; they read and write
plain dict rows through a LedgerStore. Two implementations exist:

- InMemoryLedgerStore: dict tables with an undo log per transaction. Used by
  tests and local runs.
- SupabaseLedgerStore: reads through PostgREST, stages writes inside a
  transaction and commits them with a single `ledger_commit` RPC so the
  whole batch lands in one Postgres transaction.

Transactions nest by joining: an inner `transaction()` reuses the
enclosing one, so a failure anywhere rolls back every write made since the
outermost block was entered.
"""

import copy
import json
import logging
from contextlib import asynccontextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, AsyncIterator, Callable, Optional, Protocol, Sequence, runtime_checkable

from postgrest.exceptions import APIError
from pydantic_core import to_jsonable_python

from .clock import ensure_utc
from .exceptions import ConcurrentModificationError, DuplicateKeyError, NotFoundError

logger = logging.getLogger(__name__)

Row = dict[str, Any]

# Builds the exception raised for a failed write, given the row and the cause
WriteErrorTranslator = Callable[[Row, Exception], Exception]

# Unique key column for each ledger table
DEFAULT_TABLE_KEYS: dict[str, str] = {
    "invoices": "invoice_number",
    "payments": "payment_id",
    "pricing_tiers": "name",
    "subscriptions": "subscription_id",
    "billing_disputes": "dispute_id",
    "customer_credits": "customer_id",
    "billing_audit": "id",
    "customers": "customer_id",
}


@dataclass(frozen=True)
class Filter:
    """A single column predicate. Supported ops: eq, neq, in, lt, lte, gt, gte."""

    field: str
    op: str
    value: Any


def eq(column: str, value: Any) -> Filter:
    return Filter(column, "eq", value)


def neq(column: str, value: Any) -> Filter:
    return Filter(column, "neq", value)


def in_(column: str, values: Sequence[Any]) -> Filter:
    return Filter(column, "in", list(values))


def lt(column: str, value: Any) -> Filter:
    return Filter(column, "lt", value)


def lte(column: str, value: Any) -> Filter:
    return Filter(column, "lte", value)


def gte(column: str, value: Any) -> Filter:
    return Filter(column, "gte", value)


def _plain(value: Any) -> Any:
    """Unwrap str-based enums so they compare with raw column values."""
    return getattr(value, "value", value)


def _coerce(raw: Any, like: Any) -> Any:
    """Coerce a stored column value to the type of the filter operand."""
    if raw is None:
        return None
    if isinstance(like, datetime):
        if isinstance(raw, str):
            raw = datetime.fromisoformat(raw.replace("Z", "+00:00"))
        if isinstance(raw, datetime):
            return ensure_utc(raw)
    if isinstance(like, Decimal) and not isinstance(raw, Decimal):
        return Decimal(str(raw))
    return _plain(raw)


def row_matches(row: Row, filters: Sequence[Filter]) -> bool:
    """Evaluate filters against a row (python-native or JSON-decoded)."""
    for f in filters:
        operand = _plain(f.value)
        if isinstance(operand, datetime):
            operand = ensure_utc(operand)
        if f.op == "in":
            if _plain(row.get(f.field)) not in [_plain(v) for v in operand]:
                return False
            continue

        value = _coerce(row.get(f.field), operand)
        if f.op == "eq":
            ok = value == operand
        elif f.op == "neq":
            ok = value != operand
        elif value is None:
            ok = False
        elif f.op == "lt":
            ok = value < operand
        elif f.op == "lte":
            ok = value <= operand
        elif f.op == "gt":
            ok = value > operand
        elif f.op == "gte":
            ok = value >= operand
        else:
            raise ValueError(f"Unsupported filter op: {f.op}")
        if not ok:
            return False
    return True


def _sort_value(value: Any) -> Any:
    if isinstance(value, str):
        try:
            return ensure_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))
        except ValueError:
            return value
    if isinstance(value, datetime):
        return ensure_utc(value)
    return _plain(value)


def sort_rows(rows: list[Row], order_by: Optional[str], descending: bool) -> list[Row]:
    if not order_by:
        return rows
    present = [r for r in rows if r.get(order_by) is not None]
    missing = [r for r in rows if r.get(order_by) is None]
    present.sort(key=lambda r: _sort_value(r[order_by]), reverse=descending)
    return present + missing


@runtime_checkable
class LedgerStore(Protocol):
    """
    Interface for the ledger's row storage.

    Versioned rows carry an integer `version` column. `update` compares the
    version on the passed row with the stored one and writes version + 1.
    """

    def key_column(self, table: str) -> str:
        ...

    async def get(self, table: str, key: str) -> Optional[Row]:
        ...

    async def select(
        self,
        table: str,
        filters: Sequence[Filter] = (),
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> list[Row]:
        ...

    async def insert(self, table: str, row: Row) -> Row:
        ...

    async def update(self, table: str, row: Row) -> Row:
        ...

    def transaction(self) -> Any:
        """Async context manager; joins an enclosing transaction if present."""
        ...

    def on_write_error(self, table: str, translate: "WriteErrorTranslator") -> None:
        """Report a failed write to `table` as `translate(row, cause)`."""
        ...


class _BaseStore:
    """Shared key bookkeeping and transaction context."""

    def __init__(self, table_keys: Optional[dict[str, str]] = None) -> None:
        self._keys = dict(DEFAULT_TABLE_KEYS)
        if table_keys:
            self._keys.update(table_keys)
        self._current: ContextVar[Optional["_Transaction"]] = ContextVar(
            f"ledger_tx_{id(self)}", default=None
        )
        self._write_errors: dict[str, WriteErrorTranslator] = {}

    def key_column(self, table: str) -> str:
        try:
            return self._keys[table]
        except KeyError:
            raise ValueError(f"Unknown ledger table: {table}") from None

    def on_write_error(self, table: str, translate: "WriteErrorTranslator") -> None:
        self.key_column(table)
        self._write_errors[table] = translate

    @property
    def in_transaction(self) -> bool:
        return self._current.get() is not None

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator["_Transaction"]:
        current = self._current.get()
        if current is not None:
            yield current
            return

        tx = _Transaction()
        token = self._current.set(tx)
        try:
            yield tx
        except BaseException:
            self._current.reset(token)
            await self._rollback(tx)
            raise
        self._current.reset(token)
        await self._commit(tx)

    async def _commit(self, tx: "_Transaction") -> None:
        raise NotImplementedError

    async def _rollback(self, tx: "_Transaction") -> None:
        raise NotImplementedError


@dataclass
class _Transaction:
    # (table, key) -> row before the transaction first touched it (None = absent)
    undo: dict[tuple[str, str], Optional[Row]] = field(default_factory=dict)
    # ordered staged changes for stores that commit in one batch
    staged: list[dict[str, Any]] = field(default_factory=list)
    # (table, key) -> latest staged row, for read-your-writes
    overlay: dict[tuple[str, str], Row] = field(default_factory=dict)


class InMemoryLedgerStore(_BaseStore):
    """
    Dict-backed store for tests and local development.

    Rows are kept as python-native dicts (Decimal, datetime). Every write
    inside a transaction records the prior row once, so a rollback restores
    exactly the rows that transaction touched.
    """

    def __init__(self, table_keys: Optional[dict[str, str]] = None) -> None:
        super().__init__(table_keys)
        self._tables: dict[str, dict[str, Row]] = {}

    def _table(self, table: str) -> dict[str, Row]:
        self.key_column(table)
        return self._tables.setdefault(table, {})

    def _remember(self, table: str, key: str) -> None:
        tx = self._current.get()
        if tx is None or (table, key) in tx.undo:
            return
        previous = self._table(table).get(key)
        tx.undo[(table, key)] = copy.deepcopy(previous)

    async def get(self, table: str, key: str) -> Optional[Row]:
        row = self._table(table).get(key)
        return copy.deepcopy(row) if row is not None else None

    async def select(
        self,
        table: str,
        filters: Sequence[Filter] = (),
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> list[Row]:
        rows = [
            copy.deepcopy(r) for r in self._table(table).values() if row_matches(r, filters)
        ]
        rows = sort_rows(rows, order_by, descending)
        end = None if limit is None else offset + limit
        return rows[offset:end]

    async def insert(self, table: str, row: Row) -> Row:
        key = str(row[self.key_column(table)])
        rows = self._table(table)
        if key in rows:
            raise DuplicateKeyError(table, key)
        self._remember(table, key)
        rows[key] = copy.deepcopy(row)
        return copy.deepcopy(row)

    async def update(self, table: str, row: Row) -> Row:
        key = str(row[self.key_column(table)])
        rows = self._table(table)
        stored = rows.get(key)
        if stored is None:
            raise NotFoundError(f"No row {table}/{key}", code="ROW_NOT_FOUND")

        expected = row.get("version", 0)
        if stored.get("version", 0) != expected:
            raise ConcurrentModificationError(table, key, expected)

        self._remember(table, key)
        written = copy.deepcopy(row)
        written["version"] = expected + 1
        rows[key] = written
        return copy.deepcopy(written)

    async def _commit(self, tx: _Transaction) -> None:
        return None

    async def _rollback(self, tx: _Transaction) -> None:
        for (table, key), previous in tx.undo.items():
            rows = self._table(table)
            if previous is None:
                rows.pop(key, None)
            else:
                rows[key] = previous
        logger.debug(f"Rolled back {len(tx.undo)} row change(s)")

    def clear(self) -> None:
        """Drop all tables (for testing)."""
        self._tables.clear()


class SupabaseLedgerStore(_BaseStore):
    """
    Store backed by Supabase.

    Reads go through the PostgREST query builder. Writes are staged on the
    transaction and flushed with the `ledger_commit` RPC, a Postgres
    function that applies the batch atomically and enforces version checks
    (SQLSTATE 40001) and unique keys (SQLSTATE 23505). A write outside a
    transaction is committed immediately as a batch of one.
    """

    COMMIT_RPC = "ledger_commit"

    def __init__(self, client: Any, table_keys: Optional[dict[str, str]] = None) -> None:
        super().__init__(table_keys)
        self._db = client

    def _apply_filters(self, query: Any, filters: Sequence[Filter]) -> Any:
        for f in filters:
            value = _plain(f.value)
            if isinstance(value, datetime):
                value = ensure_utc(value)
            value = to_jsonable_python(value)
            if f.op == "in":
                query = query.in_(f.field, [to_jsonable_python(_plain(v)) for v in f.value])
            elif f.op in ("eq", "neq", "lt", "lte", "gt", "gte"):
                query = getattr(query, f.op)(f.field, value)
            else:
                raise ValueError(f"Unsupported filter op: {f.op}")
        return query

    async def get(self, table: str, key: str) -> Optional[Row]:
        tx = self._current.get()
        if tx is not None and (table, key) in tx.overlay:
            return copy.deepcopy(tx.overlay[(table, key)])

        result = (
            self._db.table(table)
            .select("*")
            .eq(self.key_column(table), key)
            .limit(1)
            .execute()
        )
        if not result.data:
            return None
        return result.data[0]

    async def select(
        self,
        table: str,
        filters: Sequence[Filter] = (),
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> list[Row]:
        tx = self._current.get()
        staged = {} if tx is None else {
            key: row for (t, key), row in tx.overlay.items() if t == table
        }

        query = self._apply_filters(self._db.table(table).select("*"), filters)
        if order_by:
            query = query.order(order_by, desc=descending)
        if limit is not None and not staged:
            query = query.range(offset, offset + limit - 1)
        rows: list[Row] = query.execute().data or []

        if not staged:
            return rows

        key_col = self.key_column(table)
        merged = {str(r[key_col]): r for r in rows}
        for key, row in staged.items():
            if row_matches(row, filters):
                merged[key] = to_jsonable_python(row)
            else:
                merged.pop(key, None)

        result = sort_rows(list(merged.values()), order_by, descending)
        end = None if limit is None else offset + limit
        return result[offset:end]

    async def insert(self, table: str, row: Row) -> Row:
        key = str(row[self.key_column(table)])
        await self._stage(table, key, "insert", row, expected_version=None)
        return copy.deepcopy(row)

    async def update(self, table: str, row: Row) -> Row:
        key = str(row[self.key_column(table)])
        expected = row.get("version", 0)
        written = copy.deepcopy(row)
        written["version"] = expected + 1
        await self._stage(table, key, "update", written, expected_version=expected)
        return copy.deepcopy(written)

    async def _stage(
        self,
        table: str,
        key: str,
        op: str,
        row: Row,
        expected_version: Optional[int],
    ) -> None:
        change = {
            "table": table,
            "op": op,
            "key_column": self.key_column(table),
            "key": key,
            "row": to_jsonable_python(row),
            "expected_version": expected_version,
        }
        tx = self._current.get()
        if tx is None:
            self._flush([change])
            return
        tx.staged.append(change)
        tx.overlay[(table, key)] = copy.deepcopy(row)

    async def _commit(self, tx: _Transaction) -> None:
        if tx.staged:
            self._flush(tx.staged)

    async def _rollback(self, tx: _Transaction) -> None:
        # Nothing reached the database; dropping the staged batch is enough.
        logger.debug(f"Discarded {len(tx.staged)} staged change(s)")

    def _flush(self, changes: list[dict[str, Any]]) -> None:
        try:
            self._db.rpc(self.COMMIT_RPC, {"p_changes": changes}).execute()
        except APIError as e:
            change = failed_change(e, changes)
            if change is None:
                logger.error(f"{self.COMMIT_RPC} failed without naming a change: {e.message}")
                raise

            translate = self._write_errors.get(change["table"])
            if translate is not None:
                raise translate(change["row"], e) from e
            if e.code == "40001":
                raise ConcurrentModificationError(
                    change["table"], change["key"], change["expected_version"] or 0
                ) from e
            if e.code == "23505":
                raise DuplicateKeyError(change["table"], change["key"]) from e
            raise


def failed_change(error: APIError, changes: list[dict[str, Any]]) -> Optional[dict[str, Any]]:
    """
    Find the staged change a `ledger_commit` error refers to.

    The function re-raises every failure with a JSON DETAIL of
    `{"index": n, "table": ..., "key": ...}`; n is the change's position
    in the batch. A batch of one needs no detail.
    """
    if len(changes) == 1:
        return changes[0]
    try:
        detail = json.loads(error.details or "")
    except (TypeError, ValueError):
        return None
    index = detail.get("index") if isinstance(detail, dict) else None
    if isinstance(index, int) and 0 <= index < len(changes):
        return changes[index]
    return None
