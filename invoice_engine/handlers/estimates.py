"""Estimate-only operations: status changes and conversion to an invoice."""

from __future__ import annotations

from ..calculator import format_money
from ..context import HandlerContext
from ..dispatcher import command_handler
from ..documents import ESTIMATE, INVOICE
from ..errors import CommandRejectedError
from ..params import TargetParams, UpdateEstimateStatusParams
from ..result import Result
from .common import (
    business_settings,
    client_for,
    currency_symbol,
    present_document,
    public,
)


@command_handler(UpdateEstimateStatusParams)
async def update_estimate_status(ctx: HandlerContext, params: UpdateEstimateStatusParams) -> Result:
    if params.status == "converted":
        raise CommandRejectedError(
            "Estimates are marked converted by converting them. "
            "Use convert_estimate_to_invoice instead."
        )
    target = await ctx.lifecycle.resolve_target(ctx.store, ESTIMATE, params.number)
    changes = None
    if params.status == "accepted":
        changes = {"is_accepted": True}
    elif params.status in ("declined", "cancelled"):
        changes = {"is_accepted": False}
    estimate = await ctx.lifecycle.transition(
        ctx.store, ESTIMATE, target.document, params.status, changes
    )
    return Result.ok(
        f"Estimate {estimate.get(ESTIMATE.number_field)} is now {params.status}."
        f"{target.note(ESTIMATE)}",
        {"estimate": present_document(ESTIMATE, estimate), "matched_by": target.matched_by},
    )


@command_handler(TargetParams)
async def convert_estimate_to_invoice(ctx: HandlerContext, params: TargetParams) -> Result:
    """Create an invoice from an estimate under the estimate's own reference.

    A named estimate that cannot be found is an error rather than a reason
    to convert the most recent one.
    """
    target = await ctx.lifecycle.resolve_named_target(ctx.store, ESTIMATE, params.number)
    estimate = target.document

    async with ctx.guard.creation(ctx.owner_id, INVOICE.name, f"convert-{estimate['id']}"):
        conversion = await ctx.lifecycle.convert_estimate(ctx.store, estimate)

    invoice = conversion.invoice
    client = await client_for(ctx, invoice)
    symbol = currency_symbol(await business_settings(ctx))
    reference = invoice.get(INVOICE.number_field)
    message = (
        f"Converted estimate {estimate.get(ESTIMATE.number_field)} to invoice {reference}"
        f"{' for ' + client['name'] if client else ''} with "
        f"{len(conversion.line_items)} line item{'s' if len(conversion.line_items) != 1 else ''}, "
        f"total {format_money(conversion.totals.total, symbol)}.{target.note(ESTIMATE)}"
    )
    if conversion.warning:
        message += f" {conversion.warning}"

    return Result.ok(
        message,
        {
            "invoice": present_document(INVOICE, invoice, client, conversion.line_items),
            "estimate": present_document(ESTIMATE, conversion.estimate, client),
            "client": public(client),
            "calculations": conversion.totals.as_dict(),
            "warning": conversion.warning,
        },
    )
