"""Handlers shared by invoices and estimates.

Each implementation takes the DocumentKind as its second argument and is
bound to a concrete function name with ``common.for_kind``.
"""

from __future__ import annotations

from datetime import date, timedelta
from typing import Optional

from ..calculator import ZERO, DiscountType, calculate_totals, format_money, to_decimal
from ..context import HandlerContext
from ..documents import (
    CARRIED_COLUMNS,
    DEFAULT_ACCENT_COLOR,
    DEFAULT_DESIGN,
    ESTIMATE,
    INVOICE,
    DocumentKind,
)
from ..errors import ConflictError, InvalidArgumentError, NotFoundError
from ..guard import fingerprint_arguments
from ..lifecycle import EditTarget, document_totals, item_row
from ..params import (
    CreateDocumentParams,
    DeleteDocumentParams,
    DocumentNumberParams,
    DuplicateDocumentParams,
    LineItemPatch,
    PaymentMethodsParams,
    RecentDocumentsParams,
    SearchDocumentsParams,
    UpdateAppearanceParams,
    UpdateDocumentDetailsParams,
    UpdateLineItemsParams,
)
from ..resolver import ClientDetails
from ..result import Result
from ..store import escape_like
from ..validation import require_confirmed, require_status_not
from . import usage
from .common import (
    CLIENTS,
    business_settings,
    client_for,
    clients_by_id,
    currency_symbol,
    gate_payment_methods,
    payment_options,
    present_document,
    public,
    skipped_note,
    summary_line,
    validate_color,
    validate_design,
)


def _kind_specific_defaults(kind: DocumentKind, acceptance_terms: Optional[str] = None) -> dict:
    if kind is INVOICE:
        return {"paid_amount": ZERO}
    return {
        "acceptance_terms": acceptance_terms,
        "is_accepted": False,
        "converted_to_invoice_id": None,
    }


def _notes(params: CreateDocumentParams) -> Optional[str]:
    parts = []
    if params.payment_terms:
        parts.append(f"Payment terms: {params.payment_terms}")
    if params.notes:
        parts.append(params.notes)
    return "\n\n".join(parts) or None


async def create_document(
    ctx: HandlerContext, kind: DocumentKind, params: CreateDocumentParams
) -> Result:
    fingerprint = fingerprint_arguments(params.model_dump(mode="json"))
    async with ctx.guard.creation(ctx.owner_id, kind.name, fingerprint):
        if ctx.config.enforce_usage_limits:
            await usage.ensure_within_plan(ctx)

        settings = await business_settings(ctx)
        options = await payment_options(ctx)
        resolution = await ctx.resolver.resolve(
            ctx.store,
            ClientDetails(
                name=params.client_name,
                email=params.client_email,
                phone=params.client_phone,
                address=params.client_address,
                tax_number=params.client_tax_number,
            ),
        )

        tax = params.tax_percentage
        if tax is None and settings.get("auto_apply_tax") and settings.get("default_tax_rate"):
            tax = to_decimal(settings["default_tax_rate"], "default_tax_rate")
        discount = params.discount()
        items = [item.as_row() for item in params.line_items]
        totals = calculate_totals(items, discount, tax)

        issued = params.issued_on or ctx.lifecycle.today()
        default_days = (
            ctx.config.payment_terms_days if kind is INVOICE else ctx.config.estimate_validity_days
        )
        days = params.term_days if params.term_days is not None else default_days
        ends = params.ends_on or issued + timedelta(days=days)

        flags, skipped = gate_payment_methods(
            params.requested_payment_methods(), options, default_to_configured=True
        )
        design = validate_design(
            params.design or settings.get("default_invoice_design") or DEFAULT_DESIGN
        )
        color = validate_color(
            params.accent_color or settings.get("default_accent_color") or DEFAULT_ACCENT_COLOR
        )

        row = {
            "client_id": resolution.client["id"],
            "status": "draft",
            kind.date_field: issued.isoformat(),
            kind.end_date_field: ends.isoformat(),
            "custom_headline": params.custom_headline,
            "po_number": params.po_number,
            "notes": _notes(params),
            "subtotal_amount": totals.subtotal,
            "discount_type": discount.type.value if discount else None,
            "discount_value": discount.value if discount else None,
            "tax_percentage": tax if tax is not None else ZERO,
            "total_amount": totals.total,
            kind.design_field: design,
            "accent_color": color,
            **flags,
            **_kind_specific_defaults(kind, getattr(params, "acceptance_terms", None)),
        }
        async with ctx.sequencer.reserve(ctx.store, kind) as reference:
            row[kind.number_field] = reference
            document, stored = await ctx.lifecycle.insert_with_items(ctx.store, kind, row, items)

    client = resolution.client
    ctx.log.info(
        "document_created",
        document=kind.name,
        reference=reference,
        client_id=client["id"],
        client_matched_by=resolution.matched_by,
        total=str(totals.total),
    )
    symbol = currency_symbol(settings)
    message = (
        f"Created {kind.name} {reference} for {client['name']} with "
        f"{len(stored)} line item{'s' if len(stored) != 1 else ''}. "
        f"Subtotal {format_money(totals.subtotal, symbol)}"
    )
    if totals.discount_amount:
        message += f", discount {format_money(totals.discount_amount, symbol)}"
    if totals.tax_amount:
        message += f", tax {format_money(totals.tax_amount, symbol)}"
    message += f", total {format_money(totals.total, symbol)}."
    if resolution.created:
        message += f" {client['name']} was added as a new client."
    message += skipped_note(skipped)

    return Result.ok(
        message,
        {
            kind.name: present_document(kind, document, client, stored),
            "client": public(client),
            "client_matched_by": resolution.matched_by,
            "calculations": totals.as_dict(),
        },
    )


async def search_documents(
    ctx: HandlerContext, kind: DocumentKind, params: SearchDocumentsParams
) -> Result:
    query = ctx.store.query(kind.table)
    if params.client_name:
        clients = await ctx.store.select(
            ctx.store.query(CLIENTS).ilike("name", f"%{escape_like(params.client_name)}%")
        )
        if not clients:
            return Result.ok(
                f"No clients match '{params.client_name}', so no {kind.plural} were found.",
                {kind.plural: [], "count": 0},
            )
        query = query.in_("client_id", [c["id"] for c in clients])
    if params.status:
        query = query.eq("status", params.status.lower())
    if params.date_from:
        query = query.gte(kind.date_field, params.date_from.isoformat())
    if params.date_to:
        query = query.lte(kind.date_field, params.date_to.isoformat())
    if params.min_amount is not None:
        query = query.gte("total_amount", params.min_amount)
    if params.max_amount is not None:
        query = query.lte("total_amount", params.max_amount)

    documents = await ctx.store.select(
        query.order("created_at", descending=True).limit(params.limit)
    )
    return await _listing(ctx, kind, documents, f"Found {len(documents)} {kind.plural}")


async def _listing(
    ctx: HandlerContext, kind: DocumentKind, documents: list[dict], heading: str
) -> Result:
    clients = await clients_by_id(ctx, [d.get("client_id") for d in documents])
    symbol = currency_symbol(await business_settings(ctx))
    lines = [
        summary_line(kind, d, clients.get(d.get("client_id"), {}).get("name"), symbol)
        for d in documents
    ]
    message = f"{heading}." if not lines else f"{heading}:\n" + "\n".join(lines)
    return Result.ok(
        message,
        {
            kind.plural: [
                present_document(kind, d, clients.get(d.get("client_id"))) for d in documents
            ],
            "count": len(documents),
        },
    )


async def get_document_details(
    ctx: HandlerContext, kind: DocumentKind, params: DocumentNumberParams
) -> Result:
    document = await ctx.lifecycle.require_by_number(ctx.store, kind, params.number)
    items = await ctx.lifecycle.load_items(ctx.store, kind, document["id"])
    client = await client_for(ctx, document)
    totals = document_totals(document, items)
    symbol = currency_symbol(await business_settings(ctx))

    lines = [
        f"{kind.label} {document[kind.number_field]} for "
        f"{client['name'] if client else 'Unknown client'} ({document.get('status')})",
        f"Date: {document.get(kind.date_field)}  {kind.end_date_field.replace('_', ' ').capitalize()}: "
        f"{document.get(kind.end_date_field)}",
    ]
    for position, item in enumerate(items, start=1):
        lines.append(
            f"{position}. {item['item_name']} x{item['quantity']} @ "
            f"{format_money(item['unit_price'], symbol)} = {format_money(item['total_price'], symbol)}"
        )
    lines.append(f"Total: {format_money(totals.total, symbol)}")

    return Result.ok(
        "\n".join(lines),
        {
            kind.name: present_document(kind, document, client, items),
            "client": public(client),
            "calculations": totals.as_dict(),
        },
    )


async def get_recent_documents(
    ctx: HandlerContext, kind: DocumentKind, params: RecentDocumentsParams
) -> Result:
    status = params.status_filter
    if status and status.lower() == "all":
        status = None
    documents = await ctx.lifecycle.recent(
        ctx.store, kind, params.limit, status.lower() if status else None
    )
    if not documents:
        return Result.ok(f"You don't have any {kind.plural} yet.", {kind.plural: [], "count": 0})
    return await _listing(ctx, kind, documents, f"Your {len(documents)} most recent {kind.plural}")


def _reject_converted(kind: DocumentKind, document: dict) -> None:
    if kind is ESTIMATE:
        require_status_not(
            document.get("status"),
            "converted",
            f"Estimate {document.get(kind.number_field)} has been converted to an invoice "
            "and can no longer be edited. Edit the invoice instead.",
        )


def _edited_message(kind: DocumentKind, target: EditTarget, document: dict, what: str) -> str:
    return f"Updated {kind.name} {document.get(kind.number_field)}: {what}.{target.note(kind)}"


async def update_document_details(
    ctx: HandlerContext, kind: DocumentKind, params: UpdateDocumentDetailsParams
) -> Result:
    target = await ctx.lifecycle.resolve_target(ctx.store, kind, params.number)
    document = target.document
    _reject_converted(kind, document)

    changes: dict = {}
    changed: list[str] = []
    client = None

    if params.client_name:
        resolution = await ctx.resolver.resolve(ctx.store, ClientDetails(name=params.client_name))
        client = resolution.client
        changes["client_id"] = client["id"]
        changed.append(f"client {client['name']}")
    if params.document_date:
        changes[kind.date_field] = params.document_date.isoformat()
        changed.append("date")
    if params.end_date:
        changes[kind.end_date_field] = params.end_date.isoformat()
        changed.append("due date" if kind is INVOICE else "valid until date")
    if params.new_number and params.new_number != document.get(kind.number_field):
        if await ctx.sequencer.reference_exists(ctx.store, params.new_number):
            raise ConflictError(f"Reference {params.new_number} is already in use.")
        changes[kind.number_field] = params.new_number
        changed.append(f"reference {params.new_number}")
    for column in ("notes", "custom_headline", "po_number"):
        value = getattr(params, column)
        if value is not None:
            changes[column] = value or None
            changed.append(column.replace("_", " "))
    if kind is ESTIMATE and params.acceptance_terms is not None:
        changes["acceptance_terms"] = params.acceptance_terms or None
        changed.append("acceptance terms")

    money_changed = False
    if params.tax_percentage is not None:
        changes["tax_percentage"] = params.tax_percentage
        changed.append(f"tax {params.tax_percentage}%")
        money_changed = True
    if params.discount_value is not None:
        if params.discount_value == ZERO:
            changes.update(discount_type=None, discount_value=None)
            changed.append("discount removed")
        else:
            discount_type = params.discount_type or DiscountType(
                document.get("discount_type") or DiscountType.PERCENTAGE.value
            )
            changes.update(discount_type=discount_type.value, discount_value=params.discount_value)
            changed.append("discount")
        money_changed = True
    elif params.discount_type is not None:
        changes["discount_type"] = params.discount_type.value
        changed.append("discount type")
        money_changed = True

    if not changes:
        raise InvalidArgumentError(f"Nothing to update on {kind.name} {document.get(kind.number_field)}.")

    document = await ctx.lifecycle.update_document(ctx.store, kind, document, changes)
    totals = None
    if money_changed:
        document, totals = await ctx.lifecycle.recalculate(ctx.store, kind, document)

    ctx.log.info(
        "document_updated",
        document=kind.name,
        reference=document.get(kind.number_field),
        matched_by=target.matched_by,
        fields=sorted(changes),
    )
    message = _edited_message(kind, target, document, ", ".join(changed))
    if totals is not None:
        symbol = currency_symbol(await business_settings(ctx))
        message += f" New total {format_money(totals.total, symbol)}."
    return Result.ok(
        message,
        {
            kind.name: present_document(kind, document, client or await client_for(ctx, document)),
            "matched_by": target.matched_by,
            "calculations": totals.as_dict() if totals else None,
        },
    )


def _locate_item(items: list[dict], patch: LineItemPatch) -> dict:
    if patch.item_index is not None:
        if patch.item_index > len(items):
            raise NotFoundError(
                f"There is no line item {patch.item_index}; the document has {len(items)}."
            )
        return items[patch.item_index - 1]
    if not patch.item_name:
        raise InvalidArgumentError("Give either item_index or item_name for each line item.")
    wanted = patch.item_name.lower()
    for matcher in (
        lambda name: name == wanted,
        lambda name: wanted in name or name in wanted,
    ):
        for item in items:
            if matcher((item.get("item_name") or "").lower()):
                return item
    raise NotFoundError(f"No line item named '{patch.item_name}'.")


async def update_line_items(
    ctx: HandlerContext, kind: DocumentKind, params: UpdateLineItemsParams
) -> Result:
    target = await ctx.lifecycle.resolve_target(ctx.store, kind, params.number)
    document = target.document
    _reject_converted(kind, document)
    items = await ctx.lifecycle.load_items(ctx.store, kind, document["id"])
    store = ctx.store

    if params.action == "add":
        rows = []
        for position, patch in enumerate(params.line_items, start=len(items)):
            if not patch.item_name or patch.unit_price is None:
                raise InvalidArgumentError("New line items need an item_name and a unit_price.")
            quantity = patch.quantity or to_decimal(1)
            rows.append(
                {
                    "item_name": patch.item_name,
                    "item_description": patch.item_description,
                    "quantity": quantity,
                    "unit_price": patch.unit_price,
                    "total_price": quantity * patch.unit_price,
                    kind.items_fk: document["id"],
                    "position": position,
                }
            )
        await store.insert(kind.items_table, rows)
        what = f"added {len(rows)} line item{'s' if len(rows) != 1 else ''}"
    elif params.action == "update":
        for patch in params.line_items:
            item = _locate_item(items, patch)
            changes = {}
            if patch.new_item_name:
                changes["item_name"] = patch.new_item_name
            if patch.item_description is not None:
                changes["item_description"] = patch.item_description or None
            if patch.quantity is not None:
                changes["quantity"] = patch.quantity
            if patch.unit_price is not None:
                changes["unit_price"] = patch.unit_price
            if not changes:
                raise InvalidArgumentError(f"Nothing to change on line item '{item['item_name']}'.")
            merged = {**item, **changes}
            changes["total_price"] = merged["quantity"] * merged["unit_price"]
            await store.update(store.query(kind.items_table).eq("id", item["id"]), changes)
        what = f"updated {len(params.line_items)} line item{'s' if len(params.line_items) != 1 else ''}"
    else:
        doomed = {_locate_item(items, patch)["id"] for patch in params.line_items}
        for item_id in doomed:
            await store.delete(store.query(kind.items_table).eq("id", item_id))
        what = f"removed {len(doomed)} line item{'s' if len(doomed) != 1 else ''}"

    document, totals = await ctx.lifecycle.recalculate(store, kind, document)
    items = await ctx.lifecycle.load_items(store, kind, document["id"])
    symbol = currency_symbol(await business_settings(ctx))
    ctx.log.info(
        "line_items_changed",
        document=kind.name,
        reference=document.get(kind.number_field),
        action=params.action,
        matched_by=target.matched_by,
        total=str(totals.total),
    )
    return Result.ok(
        _edited_message(kind, target, document, what)
        + f" New total {format_money(totals.total, symbol)}.",
        {
            kind.name: present_document(kind, document, await client_for(ctx, document), items),
            "matched_by": target.matched_by,
            "calculations": totals.as_dict(),
        },
    )


async def duplicate_document(
    ctx: HandlerContext, kind: DocumentKind, params: DuplicateDocumentParams
) -> Result:
    source = await ctx.lifecycle.require_by_number(ctx.store, kind, params.number)
    async with ctx.guard.creation(ctx.owner_id, kind.name, f"duplicate-{source['id']}"):
        client = await client_for(ctx, source)
        if params.new_client_name:
            client = (
                await ctx.resolver.resolve(ctx.store, ClientDetails(name=params.new_client_name))
            ).client

        items = [
            item_row(item) for item in await ctx.lifecycle.load_items(ctx.store, kind, source["id"])
        ]
        totals = document_totals(source, items)

        issued = params.new_date or ctx.lifecycle.today()
        span = ctx.config.payment_terms_days if kind is INVOICE else ctx.config.estimate_validity_days
        if source.get(kind.date_field) and source.get(kind.end_date_field):
            span = (
                date.fromisoformat(source[kind.end_date_field])
                - date.fromisoformat(source[kind.date_field])
            ).days

        row = {column: source.get(column) for column in CARRIED_COLUMNS}
        row.update(
            {
                "client_id": client["id"] if client else source.get("client_id"),
                "status": "draft",
                kind.date_field: issued.isoformat(),
                kind.end_date_field: (issued + timedelta(days=span)).isoformat(),
                kind.design_field: source.get(kind.design_field),
                "subtotal_amount": totals.subtotal,
                "total_amount": totals.total,
                **_kind_specific_defaults(kind, source.get("acceptance_terms")),
            }
        )
        async with ctx.sequencer.reserve(ctx.store, kind) as reference:
            row[kind.number_field] = reference
            document, stored = await ctx.lifecycle.insert_with_items(ctx.store, kind, row, items)

    symbol = currency_symbol(await business_settings(ctx))
    ctx.log.info(
        "document_duplicated",
        document=kind.name,
        source=source.get(kind.number_field),
        reference=reference,
    )
    return Result.ok(
        f"Duplicated {kind.name} {source.get(kind.number_field)} as {reference}"
        f"{' for ' + client['name'] if client else ''}, total {format_money(totals.total, symbol)}.",
        {kind.name: present_document(kind, document, client, stored)},
    )


async def delete_document(
    ctx: HandlerContext, kind: DocumentKind, params: DeleteDocumentParams
) -> Result:
    require_confirmed(
        params.confirm,
        f"Deleting {kind.name} {params.number} is permanent. "
        "Call again with confirm set to true to go ahead.",
    )
    document = await ctx.lifecycle.require_by_number(ctx.store, kind, params.number)
    await ctx.lifecycle.delete(ctx.store, kind, document)
    ctx.log.info("document_deleted", document=kind.name, reference=document.get(kind.number_field))
    return Result.ok(
        f"Deleted {kind.name} {document.get(kind.number_field)}.",
        {"deleted": document.get(kind.number_field)},
    )


async def update_payment_methods(
    ctx: HandlerContext, kind: DocumentKind, params: PaymentMethodsParams
) -> Result:
    target = await ctx.lifecycle.resolve_target(ctx.store, kind, params.number)
    options = await payment_options(ctx)
    flags, skipped = gate_payment_methods(params.requested(), options, default_to_configured=False)
    if not flags and not skipped:
        raise InvalidArgumentError("Say which payment methods to turn on or off.")

    document = target.document
    if flags:
        document = await ctx.lifecycle.update_document(ctx.store, kind, document, flags)
    on = [column for column, value in flags.items() if value]
    off = [column for column, value in flags.items() if not value]
    parts = []
    if on:
        parts.append("enabled " + ", ".join(_method_name(c) for c in on))
    if off:
        parts.append("disabled " + ", ".join(_method_name(c) for c in off))
    what = "; ".join(parts) or "no changes"
    return Result.ok(
        _edited_message(kind, target, document, what) + skipped_note(skipped),
        {
            kind.name: present_document(kind, document),
            "matched_by": target.matched_by,
            "skipped": skipped,
        },
    )


def _method_name(column: str) -> str:
    return {
        "paypal_active": "PayPal",
        "stripe_active": "card payments",
        "bank_account_active": "bank transfer",
    }[column]


async def update_appearance(
    ctx: HandlerContext, kind: DocumentKind, params: UpdateAppearanceParams
) -> Result:
    if not params.design and not params.color:
        raise InvalidArgumentError("Give a design, a color, or both.")
    changes = {}
    parts = []
    if params.design:
        changes[kind.design_field] = validate_design(params.design)
        parts.append(f"design {changes[kind.design_field]}")
    if params.color:
        changes["accent_color"] = validate_color(params.color)
        parts.append(f"color {changes['accent_color']}")

    target = await ctx.lifecycle.resolve_target(ctx.store, kind, params.number)
    document = await ctx.lifecycle.update_document(ctx.store, kind, target.document, changes)
    return Result.ok(
        _edited_message(kind, target, document, ", ".join(parts)),
        {kind.name: present_document(kind, document), "matched_by": target.matched_by},
    )
