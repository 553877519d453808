"""Datastore contract, an in-memory implementation and the owner scope.

Handlers never talk to a datastore directly. They go through an
``OwnerScope``, which stamps the owner on every insert and refuses any query
that is not filtered by the owner, so tenant isolation cannot be forgotten
by a single handler.
"""

from __future__ import annotations

import asyncio
import itertools
import re
import uuid
from abc import ABC, abstractmethod
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional, TypeVar

import structlog

from .errors import DatastoreError, EngineError

logger = structlog.get_logger()

T = TypeVar("T")

OWNER_COLUMN = "user_id"


# ============================================================================
# Query builder
# ============================================================================


@dataclass(frozen=True)
class Filter:
    op: str
    column: str
    value: Any = None


class Query:
    """Fluent builder for a filtered, ordered selection over one collection.

    Example::

        query = (Query("invoices")
            .eq("user_id", owner_id)
            .ilike("invoice_number", "%003")
            .order("created_at", descending=True)
            .limit(5))
    """

    def __init__(self, collection: str):
        self.collection = collection
        self.filters: list[Filter] = []
        self.ordering: list[tuple[str, bool]] = []
        self.max_rows: Optional[int] = None

    def eq(self, column: str, value: Any) -> "Query":
        self.filters.append(Filter("eq", column, value))
        return self

    def neq(self, column: str, value: Any) -> "Query":
        self.filters.append(Filter("neq", column, value))
        return self

    def in_(self, column: str, values) -> "Query":
        self.filters.append(Filter("in", column, tuple(values)))
        return self

    def ilike(self, column: str, pattern: str) -> "Query":
        """Case-insensitive match where ``%`` is any run and ``_`` any char.

        A backslash makes the next character literal; see ``escape_like``.
        """
        self.filters.append(Filter("ilike", column, pattern))
        return self

    def gte(self, column: str, value: Any) -> "Query":
        self.filters.append(Filter("gte", column, value))
        return self

    def lte(self, column: str, value: Any) -> "Query":
        self.filters.append(Filter("lte", column, value))
        return self

    def is_null(self, column: str) -> "Query":
        self.filters.append(Filter("is_null", column))
        return self

    def order(self, column: str, descending: bool = False) -> "Query":
        self.ordering.append((column, descending))
        return self

    def limit(self, count: int) -> "Query":
        self.max_rows = count
        return self

    def has_filter(self, op: str, column: str, value: Any) -> bool:
        return Filter(op, column, value) in self.filters

    def __repr__(self) -> str:
        parts = [f"{f.column} {f.op} {f.value!r}" for f in self.filters]
        return f"Query({self.collection}: {', '.join(parts)})"


def escape_like(value: str) -> str:
    """Quote ``%``, ``_`` and ``\\`` so an ilike pattern matches them literally."""
    return re.sub(r"([\\%_])", r"\\\1", value)


def _like_to_regex(pattern: str) -> re.Pattern:
    out = []
    chars = iter(pattern)
    for ch in chars:
        if ch == "\\":
            out.append(re.escape(next(chars, "\\")))
        elif ch == "%":
            out.append(".*")
        elif ch == "_":
            out.append(".")
        else:
            out.append(re.escape(ch))
    return re.compile("".join(out), re.IGNORECASE | re.DOTALL)


def matches(row: dict, flt: Filter) -> bool:
    """Evaluate one filter against a row."""
    value = row.get(flt.column)
    if flt.op == "is_null":
        return value is None
    if flt.op == "eq":
        return value == flt.value
    if flt.op == "neq":
        return value != flt.value
    if flt.op == "in":
        return value in flt.value
    if value is None:
        return False
    if flt.op == "ilike":
        return _like_to_regex(flt.value).fullmatch(str(value)) is not None
    if flt.op == "gte":
        return value >= flt.value
    if flt.op == "lte":
        return value <= flt.value
    raise DatastoreError(f"Unsupported filter operator: {flt.op}")


# ============================================================================
# Datastore contract
# ============================================================================


class Datastore(ABC):
    """Persistence collaborator: named collections of rows.

    Every method is a suspension point. Implementations assign ``id`` and
    ``created_at`` on insert when the row does not carry them.
    """

    @abstractmethod
    async def select(self, query: Query) -> list[dict]:
        """Return rows matching the query, ordered and limited."""

    @abstractmethod
    async def insert(self, collection: str, rows: list[dict]) -> list[dict]:
        """Insert rows and return them as stored."""

    @abstractmethod
    async def update(self, query: Query, changes: dict) -> list[dict]:
        """Apply changes to every matching row and return the updated rows."""

    @abstractmethod
    async def delete(self, query: Query) -> int:
        """Delete matching rows and return how many were removed."""

    async def upsert(self, collection: str, row: dict, key: str = "id") -> dict:
        """Update the row sharing ``row[key]`` or insert it."""
        existing = []
        if row.get(key) is not None:
            existing = await self.update(Query(collection).eq(key, row[key]), row)
        if existing:
            return existing[0]
        return (await self.insert(collection, [row]))[0]

    async def count(self, query: Query) -> int:
        return len(await self.select(query))


@dataclass
class _Record:
    seq: int
    row: dict


class InMemoryDatastore(Datastore):
    """Dict-backed datastore.

    ``latency`` adds a sleep to every call, which makes the suspension points
    of the real collaborator observable to concurrent tasks.
    """

    def __init__(
        self,
        latency: float = 0.0,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.latency = latency
        self._clock = clock
        self._tables: dict[str, list[_Record]] = defaultdict(list)
        self._seq = itertools.count(1)

    async def _pause(self) -> None:
        await asyncio.sleep(self.latency)

    def _matching(self, query: Query) -> list[_Record]:
        return [
            rec
            for rec in self._tables[query.collection]
            if all(matches(rec.row, f) for f in query.filters)
        ]

    async def select(self, query: Query) -> list[dict]:
        await self._pause()
        records = self._matching(query)
        if query.ordering and query.ordering[0][1]:
            # Newest insertion first among equal keys of a descending sort.
            records.reverse()
        for column, descending in reversed(query.ordering):
            records.sort(key=lambda rec: _sort_key(rec.row.get(column)), reverse=descending)
        if query.max_rows is not None:
            records = records[: query.max_rows]
        return [dict(rec.row) for rec in records]

    async def insert(self, collection: str, rows: list[dict]) -> list[dict]:
        await self._pause()
        stored = []
        for row in rows:
            now = self._clock().isoformat()
            record = dict(row)
            record.setdefault("id", str(uuid.uuid4()))
            record.setdefault("created_at", now)
            record.setdefault("updated_at", now)
            self._tables[collection].append(_Record(next(self._seq), record))
            stored.append(dict(record))
        return stored

    async def update(self, query: Query, changes: dict) -> list[dict]:
        await self._pause()
        updated = []
        for rec in self._matching(query):
            rec.row.update(changes)
            rec.row["updated_at"] = self._clock().isoformat()
            updated.append(dict(rec.row))
        return updated

    async def delete(self, query: Query) -> int:
        await self._pause()
        doomed = {id(rec) for rec in self._matching(query)}
        table = self._tables[query.collection]
        self._tables[query.collection] = [rec for rec in table if id(rec) not in doomed]
        return len(doomed)

    def rows(self, collection: str) -> list[dict]:
        """Snapshot of a whole collection, across owners."""
        return [dict(rec.row) for rec in self._tables[collection]]


def _sort_key(value: Any) -> tuple:
    return (value is None, value if value is not None else 0)


# ============================================================================
# Owner scope
# ============================================================================


class OwnerScope:
    """Datastore view restricted to a single owner.

    Queries must be started from ``query()`` (or otherwise carry the owner
    filter); inserts are stamped with the owner; updates cannot reassign
    ownership. Collaborator failures surface as ``DatastoreError``.
    """

    def __init__(self, datastore: Datastore, owner_id: str):
        self.datastore = datastore
        self.owner_id = owner_id

    def query(self, collection: str) -> Query:
        return Query(collection).eq(OWNER_COLUMN, self.owner_id)

    def _check(self, query: Query) -> None:
        if not query.has_filter("eq", OWNER_COLUMN, self.owner_id):
            raise DatastoreError(f"Query on {query.collection} is not scoped to the owner")

    async def _run(self, operation: str, collection: str, call: Awaitable[T]) -> T:
        try:
            return await call
        except EngineError:
            raise
        except Exception as e:
            logger.error(
                "datastore_call_failed",
                operation=operation,
                collection=collection,
                owner_id=self.owner_id,
                error=str(e),
            )
            raise DatastoreError(f"Could not {operation} {collection}", cause=e) from e

    async def select(self, query: Query) -> list[dict]:
        self._check(query)
        return await self._run("read", query.collection, self.datastore.select(query))

    async def first(self, query: Query) -> Optional[dict]:
        rows = await self.select(query.limit(1))
        return rows[0] if rows else None

    async def count(self, query: Query) -> int:
        self._check(query)
        return await self._run("count", query.collection, self.datastore.count(query))

    async def insert(self, collection: str, rows: list[dict]) -> list[dict]:
        owned = [{**row, OWNER_COLUMN: self.owner_id} for row in rows]
        return await self._run("insert into", collection, self.datastore.insert(collection, owned))

    async def insert_one(self, collection: str, row: dict) -> dict:
        return (await self.insert(collection, [row]))[0]

    async def update(self, query: Query, changes: dict) -> list[dict]:
        self._check(query)
        changes = {k: v for k, v in changes.items() if k != OWNER_COLUMN}
        return await self._run("update", query.collection, self.datastore.update(query, changes))

    async def delete(self, query: Query) -> int:
        self._check(query)
        return await self._run("delete from", query.collection, self.datastore.delete(query))

    async def singleton(self, collection: str) -> Optional[dict]:
        """Return the owner's single row in a per-owner collection."""
        return await self.first(self.query(collection).order("created_at"))

    async def save_singleton(self, collection: str, changes: dict) -> dict:
        """Update the owner's single row, creating it when absent."""
        existing = await self.singleton(collection)
        if existing is None:
            return await self.insert_one(collection, changes)
        updated = await self.update(self.query(collection).eq("id", existing["id"]), changes)
        return updated[0]
