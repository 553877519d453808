"""Client management operations."""

from __future__ import annotations

from typing import Optional

from ..calculator import ZERO, format_money, round_money
from ..context import HandlerContext
from ..dispatcher import command_handler
from ..documents import INVOICE, KINDS
from ..errors import ConflictError, NotFoundError
from ..params import (
    ClientNameParams,
    CreateClientParams,
    DeleteClientParams,
    DuplicateClientParams,
    SearchClientsParams,
    UpdateClientParams,
)
from ..result import Result
from ..store import escape_like
from ..validation import require_confirmed
from .common import CLIENTS, business_settings, currency_symbol, public
from .invoices import OPEN_STATUSES, balance_due

CONTACT_COLUMNS = ("email", "phone", "address_client", "tax_number", "notes")


async def _name_taken(ctx: HandlerContext, name: str, exclude_id: Optional[str] = None) -> bool:
    rows = await ctx.store.select(ctx.store.query(CLIENTS).ilike("name", escape_like(name)))
    return any(row["id"] != exclude_id and row["name"].lower() == name.lower() for row in rows)


async def _require_client(ctx: HandlerContext, name: str) -> dict:
    found = await ctx.resolver.find(ctx.store, name)
    if found is None:
        raise NotFoundError(f"No client matching '{name}'.")
    return found.client


def _describe(client: dict) -> str:
    details = [client[c] for c in ("email", "phone") if client.get(c)]
    return client["name"] + (f" ({', '.join(details)})" if details else "")


@command_handler(CreateClientParams)
async def create_client(ctx: HandlerContext, params: CreateClientParams) -> Result:
    if await _name_taken(ctx, params.name):
        raise ConflictError(f"A client named {params.name} already exists.")
    if params.email:
        same_email = await ctx.store.first(ctx.store.query(CLIENTS).eq("email", params.email))
        if same_email is not None:
            raise ConflictError(
                f"{same_email['name']} already uses the e-mail address {params.email}."
            )

    client = await ctx.store.insert_one(
        CLIENTS,
        {
            "name": params.name,
            "email": params.email or None,
            "phone": params.phone or None,
            "address_client": params.address or None,
            "tax_number": params.tax_number or None,
            "notes": params.notes or None,
        },
    )
    ctx.log.info("client_created", client_id=client["id"], name=client["name"])
    return Result.ok(f"Added client {_describe(client)}.", {"client": public(client)})


@command_handler(SearchClientsParams)
async def search_clients(ctx: HandlerContext, params: SearchClientsParams) -> Result:
    query = ctx.store.query(CLIENTS)
    if params.name:
        query = query.ilike("name", f"%{escape_like(params.name)}%")
    if params.email:
        query = query.ilike("email", escape_like(params.email))
    clients = await ctx.store.select(query.order("name").limit(params.limit))
    if not clients:
        return Result.ok("No clients found.", {"clients": [], "count": 0})
    return Result.ok(
        f"Found {len(clients)} client{'s' if len(clients) != 1 else ''}:\n"
        + "\n".join(_describe(c) for c in clients),
        {"clients": [public(c) for c in clients], "count": len(clients)},
    )


@command_handler(UpdateClientParams)
async def update_client(ctx: HandlerContext, params: UpdateClientParams) -> Result:
    client = await _require_client(ctx, params.client_name)
    changes = {}
    if params.new_name and params.new_name != client["name"]:
        if await _name_taken(ctx, params.new_name, exclude_id=client["id"]):
            raise ConflictError(f"A client named {params.new_name} already exists.")
        changes["name"] = params.new_name
    for column, value in (
        ("email", params.email),
        ("phone", params.phone),
        ("address_client", params.address),
        ("tax_number", params.tax_number),
        ("notes", params.notes),
    ):
        if value is not None:
            changes[column] = value or None
    if not changes:
        return Result.ok(f"Nothing to change for {client['name']}.", {"client": public(client)})

    updated = await ctx.store.update(ctx.store.query(CLIENTS).eq("id", client["id"]), changes)
    client = updated[0] if updated else {**client, **changes}
    ctx.log.info("client_updated", client_id=client["id"], fields=sorted(changes))
    return Result.ok(
        f"Updated {client['name']}: {', '.join(sorted(changes))}.", {"client": public(client)}
    )


@command_handler(DuplicateClientParams)
async def duplicate_client(ctx: HandlerContext, params: DuplicateClientParams) -> Result:
    source = await _require_client(ctx, params.client_name)
    if await _name_taken(ctx, params.new_client_name):
        raise ConflictError(f"A client named {params.new_client_name} already exists.")
    client = await ctx.store.insert_one(
        CLIENTS,
        {"name": params.new_client_name, **{c: source.get(c) for c in CONTACT_COLUMNS}},
    )
    return Result.ok(
        f"Created {client['name']} as a copy of {source['name']}.", {"client": public(client)}
    )


@command_handler(DeleteClientParams)
async def delete_client(ctx: HandlerContext, params: DeleteClientParams) -> Result:
    """Delete a client with all their invoices, estimates and line items."""
    client = await _require_client(ctx, params.client_name)
    counts = {}
    for kind in KINDS:
        counts[kind.name] = await ctx.store.count(
            ctx.store.query(kind.table).eq("client_id", client["id"])
        )
    require_confirmed(
        params.confirm_delete_invoices,
        f"Deleting {client['name']} also deletes {counts['invoice']} invoices and "
        f"{counts['estimate']} estimates. Call again with confirm_delete_invoices "
        "set to true to go ahead.",
    )

    for kind in KINDS:
        documents = await ctx.store.select(ctx.store.query(kind.table).eq("client_id", client["id"]))
        for document in documents:
            await ctx.lifecycle.delete(ctx.store, kind, document)
    await ctx.store.delete(ctx.store.query(CLIENTS).eq("id", client["id"]))
    ctx.log.info("client_deleted", client_id=client["id"], **counts)
    return Result.ok(
        f"Deleted {client['name']} together with {counts['invoice']} invoices and "
        f"{counts['estimate']} estimates.",
        {
            "deleted": client["name"],
            "deleted_invoices": counts["invoice"],
            "deleted_estimates": counts["estimate"],
        },
    )


@command_handler(ClientNameParams)
async def get_client_outstanding_amount(ctx: HandlerContext, params: ClientNameParams) -> Result:
    client = await _require_client(ctx, params.client_name)
    invoices = await ctx.store.select(
        ctx.store.query(INVOICE.table)
        .eq("client_id", client["id"])
        .in_("status", OPEN_STATUSES)
        .order(INVOICE.date_field)
    )
    outstanding = ZERO
    for invoice in invoices:
        outstanding += balance_due(invoice)
    symbol = currency_symbol(await business_settings(ctx))

    if not invoices:
        message = f"{client['name']} has no unpaid invoices."
    else:
        lines = [
            f"{inv.get(INVOICE.number_field)} - {format_money(balance_due(inv), symbol)} "
            f"({inv.get('status')})"
            for inv in invoices
        ]
        message = (
            f"{client['name']} owes {format_money(outstanding, symbol)} across "
            f"{len(invoices)} invoice{'s' if len(invoices) != 1 else ''}:\n" + "\n".join(lines)
        )
    return Result.ok(
        message,
        {
            "client": public(client),
            "outstanding_amount": round_money(outstanding),
            "invoice_count": len(invoices),
            "invoices": [public(inv) for inv in invoices],
        },
    )
