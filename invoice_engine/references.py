"""Reference number allocation.

Invoices and estimates draw from one per-owner sequence so that an estimate
can be converted into an invoice without changing its reference.
"""

from __future__ import annotations

import asyncio
import re
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import date
from typing import AsyncIterator, Callable, Optional

import structlog

from .config import DEFAULT_REFERENCE_FORMAT
from .documents import ESTIMATE, INVOICE, DocumentKind, trailing_number
from .store import OwnerScope

logger = structlog.get_logger()

_PREFIX = re.compile(r"^[A-Za-z]+")
_TRAILING = re.compile(r"(\d+)$")
_YEAR = re.compile(r"(?<!\d)\d{4}(?!\d)")
_MONTH = re.compile(r"(?<!\d)\d{2}(?!\d)")


@dataclass(frozen=True)
class ReferenceFormat:
    """A parsed reference template such as ``INV-001`` or ``EST-YYYY-MM-0001``."""

    prefix: str = "INV"
    include_year: bool = False
    include_month: bool = False
    width: int = 3

    @classmethod
    def parse(cls, template: Optional[str]) -> ReferenceFormat:
        """Extract prefix, date markers and counter width from a template.

        The prefix is the leading run of letters. The counter width is the
        length of the trailing digits. Between them, ``YYYY`` or a standalone
        four-digit group marks the year, and ``MM`` or a standalone two-digit
        group after a year marks the month.
        """
        template = (template or DEFAULT_REFERENCE_FORMAT).strip()
        prefix_match = _PREFIX.match(template)
        prefix = prefix_match.group(0).upper() if prefix_match else "INV"

        body = template[prefix_match.end() if prefix_match else 0 :]
        trailing = _TRAILING.search(body)
        width = len(trailing.group(1)) if trailing else 3
        middle = body[: trailing.start()] if trailing else body

        year_match = _YEAR.search(middle)
        include_year = "YYYY" in middle.upper() or year_match is not None
        after_year = middle[year_match.end() :] if year_match else middle
        include_month = "MM" in middle.upper() or (
            include_year and _MONTH.search(after_year) is not None
        )
        return cls(prefix, include_year, include_month, width)

    def render(self, number: int, today: date) -> str:
        parts = [self.prefix]
        if self.include_year:
            parts.append(f"{today.year:04d}")
        if self.include_month:
            parts.append(f"{today.month:02d}")
        parts.append(str(number).zfill(self.width))
        return "-".join(parts)


class ReferenceSequencer:
    """Allocates the next reference number for an owner.

    The next number is one more than the highest trailing number found across
    the owner's invoices and estimates, rendered in the owner's configured
    format. If anything goes wrong the sequencer falls back to a
    timestamp-derived reference instead of failing the creation.

    Callers that store a document under a new reference do so inside
    ``reserve``, which holds one lock per owner across allocation and the
    insert. Invoices and estimates share the lock.
    """

    def __init__(
        self,
        default_format: str = DEFAULT_REFERENCE_FORMAT,
        today: Callable[[], date] = date.today,
        clock: Callable[[], float] = time.time,
    ):
        self.default_format = default_format
        self._today = today
        self._clock = clock
        self._owner_locks: dict[str, asyncio.Lock] = {}

    async def reference_format(self, store: OwnerScope) -> ReferenceFormat:
        settings = await store.singleton("business_settings")
        template = (settings or {}).get("invoice_reference_format") or self.default_format
        return ReferenceFormat.parse(template)

    async def highest_number(self, store: OwnerScope) -> int:
        highest = 0
        for kind in (INVOICE, ESTIMATE):
            for row in await store.select(store.query(kind.table)):
                number = trailing_number(row.get(kind.number_field))
                if number is not None and number > highest:
                    highest = number
        return highest

    async def next_reference(self, store: OwnerScope, kind: DocumentKind) -> str:
        try:
            fmt = await self.reference_format(store)
            highest = await self.highest_number(store)
            reference = fmt.render(highest + 1, self._today())
        except Exception as e:
            reference = self.fallback_reference(kind)
            logger.error(
                "reference_allocation_failed",
                owner_id=store.owner_id,
                document=kind.name,
                fallback=reference,
                error=str(e),
            )
            return reference

        logger.info(
            "reference_allocated",
            owner_id=store.owner_id,
            document=kind.name,
            reference=reference,
        )
        return reference

    def owner_lock(self, owner_id: str) -> asyncio.Lock:
        return self._owner_locks.setdefault(owner_id, asyncio.Lock())

    @asynccontextmanager
    async def reserve(self, store: OwnerScope, kind: DocumentKind) -> AsyncIterator[str]:
        """Allocate the next reference and keep it reserved for the block.

        The document carrying the reference must be inserted before the
        block exits.
        """
        async with self.owner_lock(store.owner_id):
            yield await self.next_reference(store, kind)

    def fallback_reference(self, kind: DocumentKind) -> str:
        millis = str(int(self._clock() * 1000))
        return f"{kind.fallback_prefix}-{millis[-6:]}"

    @staticmethod
    def same_reference(reference: str) -> str:
        """Reference an invoice converted from an estimate carries."""
        return reference

    async def reference_exists(self, store: OwnerScope, reference: str) -> bool:
        for kind in (INVOICE, ESTIMATE):
            found = await store.first(store.query(kind.table).eq(kind.number_field, reference))
            if found is not None:
                return True
        return False
