"""Shared test fixtures: owners, dates, argument builders and a datastore
that can be told to fail.
"""

import asyncio
from datetime import date, datetime, timezone
from typing import Callable, Optional

from invoice_engine.config import EngineConfig
from invoice_engine.dispatcher import CommandDispatcher
from invoice_engine.result import Result
from invoice_engine.service import build_dispatcher
from invoice_engine.store import InMemoryDatastore, Query

# =============================================================================
# Owners and dates
# =============================================================================

OWNER_A = "owner-a"
OWNER_B = "owner-b"

TODAY = date(2024, 3, 15)
FIXED_NOW = datetime(2024, 3, 15, 9, 30, tzinfo=timezone.utc)


# =============================================================================
# Engine builders
# =============================================================================


def make_engine(
    datastore: Optional[InMemoryDatastore] = None,
    today: date = TODAY,
    **config,
) -> CommandDispatcher:
    """Dispatcher over an in-memory datastore with a fixed calendar date."""
    return build_dispatcher(
        datastore if datastore is not None else InMemoryDatastore(),
        EngineConfig(**config),
        today=lambda: today,
    )


def call(
    engine: CommandDispatcher,
    function_name: str,
    arguments=None,
    owner_id: str = OWNER_A,
) -> Result:
    """Run one function to completion on a fresh event loop."""
    return asyncio.run(engine.execute(function_name, arguments or {}, owner_id))


# =============================================================================
# Argument builders
# =============================================================================


def line_item(name: str = "Consulting", quantity=1, unit_price="100") -> dict:
    return {"item_name": name, "quantity": quantity, "unit_price": unit_price}


def invoice_args(client: str = "Acme Corp", items: Optional[list] = None, **extra) -> dict:
    args = {"client_name": client, "line_items": items or [line_item()]}
    args.update(extra)
    return args


def estimate_args(client: str = "Beta Ltd", items: Optional[list] = None, **extra) -> dict:
    return invoice_args(client, items, **extra)


# =============================================================================
# Failing datastore
# =============================================================================

FailWhen = Callable[[str, str, Optional[dict]], bool]


class FlakyDatastore(InMemoryDatastore):
    """In-memory datastore that raises on the calls ``fail_when`` selects.

    ``fail_when(operation, collection, payload)`` is asked before every call;
    ``payload`` is the update changes, or None for other operations.
    """

    def __init__(self, fail_when: FailWhen, **kwargs):
        super().__init__(**kwargs)
        self.fail_when = fail_when
        self.failures = 0

    def _maybe_fail(self, operation: str, collection: str, payload: Optional[dict] = None):
        if self.fail_when(operation, collection, payload):
            self.failures += 1
            raise RuntimeError(f"{operation} on {collection} failed")

    async def select(self, query: Query) -> list[dict]:
        self._maybe_fail("select", query.collection)
        return await super().select(query)

    async def insert(self, collection: str, rows: list[dict]) -> list[dict]:
        self._maybe_fail("insert", collection)
        return await super().insert(collection, rows)

    async def update(self, query: Query, changes: dict) -> list[dict]:
        self._maybe_fail("update", query.collection, changes)
        return await super().update(query, changes)

    async def delete(self, query: Query) -> int:
        self._maybe_fail("delete", query.collection)
        return await super().delete(query)


def fail_on(operation: str, collection: str) -> FailWhen:
    return lambda op, coll, payload: op == operation and coll == collection
