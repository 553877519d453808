"""Owner-wide payment method setup."""

from __future__ import annotations

from typing import Optional

from ..context import HandlerContext
from ..dispatcher import command_handler
from ..documents import INVOICE, PAYMENT_METHOD_COLUMNS
from ..errors import NotFoundError
from ..params import NoParams, SetupBankTransferParams, SetupPaypalParams
from ..result import Result
from .common import (
    PAYMENT_METHOD_LABELS,
    PAYMENT_OPTIONS,
    payment_options,
    present_document,
    public,
)


async def _enable_on_invoice(
    ctx: HandlerContext, method: str, number: Optional[str]
) -> tuple[Optional[dict], str]:
    """Switch a freshly set up method on for one invoice.

    Returns the updated invoice (None when the owner has no invoices yet)
    and a sentence describing what happened.
    """
    label = PAYMENT_METHOD_LABELS[method]
    try:
        target = await ctx.lifecycle.resolve_target(ctx.store, INVOICE, number)
    except NotFoundError:
        return None, f" {label[0].upper()}{label[1:]} will be offered on your next invoice."
    invoice = await ctx.lifecycle.update_document(
        ctx.store, INVOICE, target.document, {PAYMENT_METHOD_COLUMNS[method]: True}
    )
    return (
        invoice,
        f" Enabled it on invoice {invoice.get(INVOICE.number_field)}.{target.note(INVOICE)}",
    )


@command_handler(NoParams)
async def get_payment_options(ctx: HandlerContext, params: NoParams) -> Result:
    options = await payment_options(ctx)
    lines = []
    for method, label in PAYMENT_METHOD_LABELS.items():
        state = "set up" if options.get(f"{method}_enabled") else "not set up"
        lines.append(f"{label[0].upper()}{label[1:]}: {state}")
    return Result.ok(
        "Payment options:\n" + "\n".join(lines),
        {"payment_options": public(options) if options else None},
    )


@command_handler(SetupPaypalParams)
async def setup_paypal_payments(ctx: HandlerContext, params: SetupPaypalParams) -> Result:
    options = await ctx.store.save_singleton(
        PAYMENT_OPTIONS, {"paypal_enabled": True, "paypal_email": params.paypal_email}
    )
    invoice, note = await _enable_on_invoice(ctx, "paypal", params.number)
    ctx.log.info("payment_method_configured", method="paypal")
    return Result.ok(
        f"PayPal payments are set up with {params.paypal_email}.{note}",
        {
            "payment_options": public(options),
            "invoice": present_document(INVOICE, invoice) if invoice else None,
        },
    )


@command_handler(SetupBankTransferParams)
async def setup_bank_transfer_payments(
    ctx: HandlerContext, params: SetupBankTransferParams
) -> Result:
    options = await ctx.store.save_singleton(
        PAYMENT_OPTIONS, {"bank_transfer_enabled": True, "bank_details": params.bank_details}
    )
    invoice, note = await _enable_on_invoice(ctx, "bank_transfer", params.number)
    ctx.log.info("payment_method_configured", method="bank_transfer")
    return Result.ok(
        f"Bank transfer payments are set up.{note}",
        {
            "payment_options": public(options),
            "invoice": present_document(INVOICE, invoice) if invoice else None,
        },
    )
