"""Document lifecycle: compensated writes, status changes, edit targeting and
estimate conversion.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from typing import Callable, Optional

import structlog

from .calculator import ZERO, Discount, Totals, calculate_totals
from .documents import (
    CARRIED_COLUMNS,
    CONVERTIBLE_ESTIMATE_STATUSES,
    ESTIMATE,
    INVOICE,
    DocumentKind,
    trailing_number,
)
from .errors import (
    CommandRejectedError,
    ConflictError,
    EngineError,
    NotFoundError,
    PartialFailureError,
)
from .references import ReferenceSequencer
from .store import OwnerScope, escape_like
from .validation import require_found, require_status_in

logger = structlog.get_logger()

ITEM_COLUMNS = ("item_name", "item_description", "quantity", "unit_price", "total_price")


@dataclass(frozen=True)
class EditTarget:
    """The document an edit applies to and how it was picked.

    ``matched_by`` is ``exact``, ``digits`` or ``most_recent``.
    """

    document: dict
    matched_by: str
    requested: Optional[str] = None

    @property
    def fell_back(self) -> bool:
        return self.matched_by == "most_recent" and self.requested is not None

    def note(self, kind: DocumentKind) -> str:
        """Clause explaining the choice when it was not an exact match."""
        number = self.document.get(kind.number_field)
        if self.fell_back:
            return (
                f" I couldn't find {kind.name} {self.requested}, so I used your "
                f"most recent {kind.name}, {number}."
            )
        if self.matched_by == "digits":
            return f" (Matched {self.requested} to {number}.)"
        return ""


@dataclass(frozen=True)
class Conversion:
    invoice: dict
    line_items: list[dict]
    estimate: dict
    totals: Totals
    warning: Optional[str] = None


def document_totals(document: dict, items: list[dict]) -> Totals:
    """Totals for a document from its own line items, discount and tax."""
    discount = Discount.from_fields(document.get("discount_type"), document.get("discount_value"))
    return calculate_totals(items, discount, document.get("tax_percentage"))


def item_row(item: dict) -> dict:
    """Copy the portable columns of a line item and recompute its total."""
    row = {column: item.get(column) for column in ITEM_COLUMNS}
    row["total_price"] = row["quantity"] * row["unit_price"]
    return row


class DocumentLifecycle:
    """Operations on stored invoices and estimates that span several writes."""

    def __init__(
        self,
        sequencer: ReferenceSequencer,
        recent_window: int = 5,
        payment_terms_days: int = 30,
        today: Callable[[], date] = date.today,
    ):
        self.sequencer = sequencer
        self.recent_window = recent_window
        self.payment_terms_days = payment_terms_days
        self._today = today

    def today(self) -> date:
        return self._today()

    # ------------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------------

    async def find_by_number(
        self, store: OwnerScope, kind: DocumentKind, number: str
    ) -> Optional[dict]:
        return await store.first(
            store.query(kind.table).ilike(kind.number_field, escape_like(number.strip()))
        )

    async def require_by_number(
        self, store: OwnerScope, kind: DocumentKind, number: str
    ) -> dict:
        return require_found(
            await self.find_by_number(store, kind, number),
            f"{kind.label} {number} not found.",
        )

    async def load_items(
        self, store: OwnerScope, kind: DocumentKind, document_id: str
    ) -> list[dict]:
        return await store.select(
            store.query(kind.items_table).eq(kind.items_fk, document_id).order("position")
        )

    async def recent(
        self,
        store: OwnerScope,
        kind: DocumentKind,
        limit: int,
        status: Optional[str] = None,
    ) -> list[dict]:
        query = store.query(kind.table)
        if status:
            query = query.eq("status", status)
        return await store.select(query.order("created_at", descending=True).limit(limit))

    async def resolve_target(
        self, store: OwnerScope, kind: DocumentKind, number: Optional[str] = None
    ) -> EditTarget:
        """Pick the document an edit should apply to.

        An explicit number is tried as an exact reference first, then by its
        trailing digits among the most recent documents. When neither
        matches, or no number was given, the most recent document is used.

        Raises:
            NotFoundError: If the owner has no documents of this kind.
        """
        recent = await self.recent(store, kind, self.recent_window)
        if not recent:
            raise NotFoundError(f"You don't have any {kind.plural} yet.")

        requested = number.strip() if number and number.strip() else None
        if requested is None:
            return EditTarget(recent[0], "most_recent")

        exact = await self.find_by_number(store, kind, requested)
        if exact is not None:
            return EditTarget(exact, "exact", requested)

        wanted = trailing_number(requested)
        if wanted is not None:
            for document in recent:
                if trailing_number(document.get(kind.number_field)) == wanted:
                    logger.info(
                        "edit_target_matched_digits",
                        owner_id=store.owner_id,
                        requested=requested,
                        reference=document.get(kind.number_field),
                    )
                    return EditTarget(document, "digits", requested)

        logger.warning(
            "edit_target_fallback",
            owner_id=store.owner_id,
            document=kind.name,
            requested=requested,
            reference=recent[0].get(kind.number_field),
        )
        return EditTarget(recent[0], "most_recent", requested)

    async def resolve_named_target(
        self, store: OwnerScope, kind: DocumentKind, number: Optional[str] = None
    ) -> EditTarget:
        """Like ``resolve_target`` but a named document must exist.

        Used by operations that cannot be undone, where acting on the most
        recent document instead of the one asked for is worse than asking
        again.
        """
        target = await self.resolve_target(store, kind, number)
        if target.fell_back:
            raise NotFoundError(f"{kind.label} {target.requested} not found.")
        return target

    # ------------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------------

    async def insert_with_items(
        self, store: OwnerScope, kind: DocumentKind, row: dict, items: list[dict]
    ) -> tuple[dict, list[dict]]:
        """Insert a document and its line items as one logical write.

        If the line items cannot be stored the document is deleted again so
        no half-written document is left behind.

        Raises:
            PartialFailureError: If the line items failed and the document
                was rolled back.
        """
        document = await store.insert_one(kind.table, row)
        if not items:
            return document, []

        rows = [
            {**item, kind.items_fk: document["id"], "position": position}
            for position, item in enumerate(items)
        ]
        try:
            stored = await store.insert(kind.items_table, rows)
        except EngineError as e:
            await self._discard(store, kind, document)
            raise PartialFailureError(
                f"Could not save the line items, so {kind.name} "
                f"{document.get(kind.number_field)} was not created.",
                cause=e,
            ) from e
        return document, stored

    async def _discard(self, store: OwnerScope, kind: DocumentKind, document: dict) -> None:
        try:
            await store.delete(store.query(kind.items_table).eq(kind.items_fk, document["id"]))
            await store.delete(store.query(kind.table).eq("id", document["id"]))
        except EngineError as e:
            logger.error(
                "compensation_failed",
                owner_id=store.owner_id,
                document=kind.name,
                document_id=document["id"],
                error=str(e),
            )
            return
        logger.warning(
            "document_rolled_back",
            owner_id=store.owner_id,
            document=kind.name,
            reference=document.get(kind.number_field),
        )

    async def update_document(
        self, store: OwnerScope, kind: DocumentKind, document: dict, changes: dict
    ) -> dict:
        updated = await store.update(store.query(kind.table).eq("id", document["id"]), changes)
        return require_found(
            updated[0] if updated else None,
            f"{kind.label} {document.get(kind.number_field)} no longer exists.",
        )

    async def recalculate(
        self, store: OwnerScope, kind: DocumentKind, document: dict
    ) -> tuple[dict, Totals]:
        """Recompute and persist totals from the document's current items."""
        items = await self.load_items(store, kind, document["id"])
        totals = document_totals(document, items)
        updated = await self.update_document(
            store,
            kind,
            document,
            {"subtotal_amount": totals.subtotal, "total_amount": totals.total},
        )
        return updated, totals

    async def transition(
        self,
        store: OwnerScope,
        kind: DocumentKind,
        document: dict,
        target: str,
        changes: Optional[dict] = None,
    ) -> dict:
        """Move a document to ``target`` if the status table allows it.

        Raises:
            CommandRejectedError: If the transition is not allowed.
            ConflictError: If the status changed underneath us.
        """
        current = document.get("status") or "draft"
        number = document.get(kind.number_field)
        if current == target and not changes:
            return document
        if current != target and not kind.can_transition(current, target):
            allowed = ", ".join(kind.allowed_from(current)) or "none"
            raise CommandRejectedError(
                f"{kind.label} {number} is {current} and cannot be marked {target}. "
                f"Allowed next statuses: {allowed}."
            )

        updated = await store.update(
            store.query(kind.table).eq("id", document["id"]).eq("status", document.get("status")),
            {"status": target, **(changes or {})},
        )
        if not updated:
            raise ConflictError(
                f"{kind.label} {number} was changed by another request. Please try again."
            )
        logger.info(
            "document_status_changed",
            owner_id=store.owner_id,
            document=kind.name,
            reference=number,
            from_status=current,
            to_status=target,
        )
        return updated[0]

    async def delete(self, store: OwnerScope, kind: DocumentKind, document: dict) -> None:
        await store.delete(store.query(kind.items_table).eq(kind.items_fk, document["id"]))
        await store.delete(store.query(kind.table).eq("id", document["id"]))

    # ------------------------------------------------------------------------
    # Estimate conversion
    # ------------------------------------------------------------------------

    async def convert_estimate(self, store: OwnerScope, estimate: dict) -> Conversion:
        """Turn an estimate into an invoice carrying the same reference.

        The invoice and its line items are written first. Only once both are
        stored is the estimate marked accepted and linked, and then converted.
        A failure before that point leaves the estimate untouched.

        Raises:
            CommandRejectedError: If the estimate was already converted or is
                in a status that cannot be converted.
            ConflictError: If an invoice with the same reference exists.
            PartialFailureError: If the write failed and was rolled back.
        """
        number = estimate.get(ESTIMATE.number_field)
        status = estimate.get("status") or "draft"
        if status == "converted" or estimate.get("converted_to_invoice_id"):
            raise CommandRejectedError(
                f"Estimate {number} has already been converted to an invoice."
            )
        require_status_in(
            status,
            CONVERTIBLE_ESTIMATE_STATUSES,
            f"Estimate {number} is {status} and cannot be converted. "
            "Only draft, sent or accepted estimates can be converted.",
        )

        reference = self.sequencer.same_reference(number)
        items = [item_row(item) for item in await self.load_items(store, ESTIMATE, estimate["id"])]
        totals = document_totals(estimate, items)
        invoice_date = estimate.get("estimate_date") or self.today().isoformat()
        due_date = date.fromisoformat(invoice_date) + timedelta(days=self.payment_terms_days)

        row = {column: estimate.get(column) for column in CARRIED_COLUMNS}
        row.update(
            invoice_number=reference,
            status="draft",
            invoice_date=invoice_date,
            due_date=due_date.isoformat(),
            invoice_design=estimate.get(ESTIMATE.design_field),
            subtotal_amount=totals.subtotal,
            total_amount=totals.total,
            paid_amount=ZERO,
        )
        async with self.sequencer.owner_lock(store.owner_id):
            if await self.find_by_number(store, INVOICE, reference) is not None:
                raise ConflictError(f"An invoice numbered {reference} already exists.")
            invoice, invoice_items = await self.insert_with_items(store, INVOICE, row, items)

        # Phase 1: record acceptance and the link.
        try:
            linked = await store.update(
                store.query(ESTIMATE.table).eq("id", estimate["id"]).eq("status", estimate.get("status")),
                {"status": "accepted", "is_accepted": True, "converted_to_invoice_id": invoice["id"]},
            )
        except EngineError as e:
            await self._discard(store, INVOICE, invoice)
            raise PartialFailureError(
                f"Could not update estimate {number}, so the invoice was not kept.", cause=e
            ) from e
        if not linked:
            await self._discard(store, INVOICE, invoice)
            raise ConflictError(
                f"Estimate {number} was changed by another request. Please try again."
            )

        # Phase 2: mark converted.
        warning = None
        estimate_row = linked[0]
        try:
            converted = await store.update(
                store.query(ESTIMATE.table).eq("id", estimate["id"]), {"status": "converted"}
            )
            estimate_row = converted[0] if converted else estimate_row
        except EngineError as e:
            warning = f"Estimate {number} is linked to the invoice but is still marked accepted."
            logger.error(
                "estimate_conversion_status_failed",
                owner_id=store.owner_id,
                reference=number,
                invoice_id=invoice["id"],
                error=str(e),
            )

        logger.info(
            "estimate_converted",
            owner_id=store.owner_id,
            reference=reference,
            invoice_id=invoice["id"],
            line_items=len(invoice_items),
        )
        return Conversion(invoice, invoice_items, estimate_row, totals, warning)
