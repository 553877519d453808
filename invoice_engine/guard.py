"""Concurrent creation deduplication.

A language model occasionally emits the same create call twice in quick
succession. The guard lets one creation per (owner, document type) run at a
time; a second request waits a short grace period for the first to finish
and is refused if it has not.
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import time
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncIterator, Callable, Optional

import structlog

from .errors import ConflictError

logger = structlog.get_logger()


def fingerprint_arguments(arguments: dict) -> str:
    """Stable short hash of a call's arguments."""
    encoded = json.dumps(arguments, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(encoded.encode("utf-8")).hexdigest()[:16]


@dataclass(frozen=True)
class CreationTicket:
    key: str
    owner_id: str
    doc_type: str
    fingerprint: Optional[str] = None


@dataclass
class _InFlight:
    ticket: CreationTicket
    deadline: float
    done: asyncio.Event = field(default_factory=asyncio.Event)


class CreationGuard:
    """Process-local registry of in-flight document creations.

    One instance is owned by the service root and shared by every dispatch.
    All bookkeeping happens under a single ``asyncio.Lock``. Entries that
    were never released expire after ``stale_after`` seconds. A creation that
    completed with a fingerprint is remembered for ``grace_period`` seconds so
    an identical call arriving just after it is refused as well.
    """

    def __init__(
        self,
        grace_period: float = 1.0,
        stale_after: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.grace_period = grace_period
        self.stale_after = stale_after
        self._clock = clock
        self._lock = asyncio.Lock()
        self._entries: dict[str, _InFlight] = {}
        self._completed: dict[str, float] = {}

    def _sweep(self) -> None:
        now = self._clock()
        for key, expires in list(self._completed.items()):
            if expires <= now:
                del self._completed[key]
        for key, entry in list(self._entries.items()):
            if entry.deadline <= now:
                del self._entries[key]
                entry.done.set()
                logger.warning(
                    "stale_creation_lock_swept",
                    owner_id=entry.ticket.owner_id,
                    document=entry.ticket.doc_type,
                    key=key,
                )

    def _holder(self, owner_id: str, doc_type: str) -> Optional[_InFlight]:
        for entry in self._entries.values():
            if entry.ticket.owner_id == owner_id and entry.ticket.doc_type == doc_type:
                return entry
        return None

    def _recently_completed(self, owner_id: str, doc_type: str, fingerprint: Optional[str]) -> bool:
        return fingerprint is not None and f"{owner_id}:{doc_type}:{fingerprint}" in self._completed

    def _register(self, owner_id: str, doc_type: str, fingerprint: Optional[str]) -> CreationTicket:
        key = f"{owner_id}:{doc_type}:{fingerprint or uuid.uuid4().hex}"
        while key in self._entries:
            key = f"{owner_id}:{doc_type}:{uuid.uuid4().hex}"
        ticket = CreationTicket(key, owner_id, doc_type, fingerprint)
        self._entries[key] = _InFlight(ticket, self._clock() + self.stale_after)
        return ticket

    def in_flight(self, owner_id: str, doc_type: str) -> bool:
        return self._holder(owner_id, doc_type) is not None

    async def acquire(
        self, owner_id: str, doc_type: str, fingerprint: Optional[str] = None
    ) -> Optional[CreationTicket]:
        """Register a creation, or return None if another one holds the slot.

        When the slot is taken the caller waits up to ``grace_period`` for the
        holder to finish before checking once more.
        """
        async with self._lock:
            self._sweep()
            if self._recently_completed(owner_id, doc_type, fingerprint):
                logger.warning("duplicate_creation_refused", owner_id=owner_id, document=doc_type)
                return None
            holder = self._holder(owner_id, doc_type)
            if holder is None:
                return self._register(owner_id, doc_type, fingerprint)

        logger.info("creation_waiting", owner_id=owner_id, document=doc_type)
        try:
            await asyncio.wait_for(holder.done.wait(), timeout=self.grace_period)
        except asyncio.TimeoutError:
            pass

        async with self._lock:
            self._sweep()
            if self._holder(owner_id, doc_type) is not None or self._recently_completed(
                owner_id, doc_type, fingerprint
            ):
                logger.warning("creation_locked", owner_id=owner_id, document=doc_type)
                return None
            return self._register(owner_id, doc_type, fingerprint)

    def release(self, ticket: CreationTicket, completed: bool = False) -> None:
        # Never awaits, so it cannot interleave with acquire's critical sections.
        entry = self._entries.pop(ticket.key, None)
        if completed and ticket.fingerprint:
            key = f"{ticket.owner_id}:{ticket.doc_type}:{ticket.fingerprint}"
            self._completed[key] = self._clock() + self.grace_period
        if entry is not None:
            entry.done.set()

    @asynccontextmanager
    async def creation(
        self, owner_id: str, doc_type: str, fingerprint: Optional[str] = None
    ) -> AsyncIterator[CreationTicket]:
        """Hold the creation slot for the body of the ``async with`` block.

        Raises:
            ConflictError: If another creation of the same document type is
                still running for this owner after the grace period, or an
                identical one has only just completed.
        """
        ticket = await self.acquire(owner_id, doc_type, fingerprint)
        if ticket is None:
            raise ConflictError(
                f"Another {doc_type} is already being created or was just created "
                "with the same details. "
                "Please wait a moment and try again.",
                reason="Creation in progress",
            )
        try:
            yield ticket
        except BaseException:
            self.release(ticket)
            raise
        self.release(ticket, completed=True)
