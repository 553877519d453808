"""Invoice-only operations: summary, payment and status changes."""

from __future__ import annotations

from datetime import date, timedelta
from typing import Optional

from ..calculator import ZERO, format_money, round_money, to_decimal
from ..context import HandlerContext
from ..dispatcher import command_handler
from ..documents import INVOICE
from ..errors import CommandRejectedError, InvalidArgumentError
from ..lifecycle import EditTarget
from ..params import (
    CancelDocumentParams,
    InvoiceSummaryParams,
    MarkPaidParams,
    MarkSentParams,
    TargetParams,
)
from ..result import Result
from .common import business_settings, client_for, currency_symbol, present_document

OPEN_STATUSES = ("sent", "partial", "overdue")

PERIOD_LABELS = {
    "this_month": "this month",
    "last_month": "last month",
    "this_year": "this year",
    "all_time": "all time",
}


def period_bounds(period: str, today: date) -> tuple[Optional[date], Optional[date]]:
    """First and last invoice date included in a summary period."""
    month_start = today.replace(day=1)
    if period == "this_month":
        next_month = (month_start + timedelta(days=32)).replace(day=1)
        return month_start, next_month - timedelta(days=1)
    if period == "last_month":
        end = month_start - timedelta(days=1)
        return end.replace(day=1), end
    if period == "this_year":
        return date(today.year, 1, 1), date(today.year, 12, 31)
    return None, None


def balance_due(invoice: dict):
    total = to_decimal(invoice.get("total_amount") or ZERO, "total_amount")
    paid = to_decimal(invoice.get("paid_amount") or ZERO, "paid_amount")
    return total - paid


def _status_message(target: EditTarget, invoice: dict, what: str) -> str:
    return f"Invoice {invoice.get(INVOICE.number_field)} {what}.{target.note(INVOICE)}"


@command_handler(InvoiceSummaryParams)
async def get_invoice_summary(ctx: HandlerContext, params: InvoiceSummaryParams) -> Result:
    start, end = period_bounds(params.period, ctx.lifecycle.today())
    query = ctx.store.query(INVOICE.table)
    if start is not None:
        query = query.gte(INVOICE.date_field, start.isoformat())
    if end is not None:
        query = query.lte(INVOICE.date_field, end.isoformat())
    invoices = await ctx.store.select(query)

    invoiced = paid = outstanding = ZERO
    counts: dict[str, int] = {}
    for invoice in invoices:
        status = invoice.get("status") or "draft"
        counts[status] = counts.get(status, 0) + 1
        if status == "cancelled":
            continue
        total = to_decimal(invoice.get("total_amount") or ZERO, "total_amount")
        invoiced += total
        if status == "paid":
            paid += total
        elif status in OPEN_STATUSES:
            paid += to_decimal(invoice.get("paid_amount") or ZERO, "paid_amount")
            outstanding += balance_due(invoice)

    symbol = currency_symbol(await business_settings(ctx))
    label = PERIOD_LABELS[params.period]
    message = (
        f"Invoice summary for {label}: {len(invoices)} invoices, "
        f"{format_money(invoiced, symbol)} invoiced, {format_money(paid, symbol)} paid, "
        f"{format_money(outstanding, symbol)} outstanding."
    )
    if counts.get("overdue"):
        message += f" {counts['overdue']} overdue."
    if counts.get("draft"):
        message += f" {counts['draft']} still in draft."

    return Result.ok(
        message,
        {
            "period": params.period,
            "date_from": start.isoformat() if start else None,
            "date_to": end.isoformat() if end else None,
            "invoice_count": len(invoices),
            "total_invoiced": round_money(invoiced),
            "total_paid": round_money(paid),
            "total_outstanding": round_money(outstanding),
            "status_counts": counts,
        },
    )


@command_handler(MarkSentParams)
async def mark_invoice_sent(ctx: HandlerContext, params: MarkSentParams) -> Result:
    target = await ctx.lifecycle.resolve_target(ctx.store, INVOICE, params.number)
    invoice = target.document
    if invoice.get("status") == "sent":
        return Result.ok(
            _status_message(target, invoice, "is already marked as sent"),
            {"invoice": present_document(INVOICE, invoice), "matched_by": target.matched_by},
        )
    sent_on = params.sent_date or ctx.lifecycle.today()
    invoice = await ctx.lifecycle.transition(
        ctx.store, INVOICE, invoice, "sent", {"sent_at": sent_on.isoformat()}
    )
    return Result.ok(
        _status_message(target, invoice, f"marked as sent on {sent_on.isoformat()}"),
        {
            "invoice": present_document(INVOICE, invoice, await client_for(ctx, invoice)),
            "matched_by": target.matched_by,
        },
    )


@command_handler(MarkPaidParams)
async def mark_invoice_paid(ctx: HandlerContext, params: MarkPaidParams) -> Result:
    """Record a full or partial payment against an invoice.

    Without an amount the outstanding balance is paid. A payment that leaves
    a balance moves the invoice to ``partial``.
    """
    target = await ctx.lifecycle.resolve_named_target(ctx.store, INVOICE, params.number)
    invoice = target.document
    number = invoice.get(INVOICE.number_field)
    if invoice.get("status") == "paid":
        raise CommandRejectedError(f"Invoice {number} is already paid in full.")

    symbol = currency_symbol(await business_settings(ctx))
    balance = balance_due(invoice)
    amount = params.payment_amount if params.payment_amount is not None else balance
    if amount > balance:
        raise InvalidArgumentError(
            f"A payment of {format_money(amount, symbol)} is more than the "
            f"{format_money(balance, symbol)} still due on invoice {number}."
        )

    paid_total = to_decimal(invoice.get("paid_amount") or ZERO, "paid_amount") + amount
    remaining = balance - amount
    status = "paid" if remaining <= ZERO else "partial"
    paid_on = params.payment_date or ctx.lifecycle.today()
    changes = {"paid_amount": paid_total, "payment_date": paid_on.isoformat()}
    if params.payment_method:
        changes["payment_method"] = params.payment_method
    invoice = await ctx.lifecycle.transition(ctx.store, INVOICE, invoice, status, changes)

    if status == "paid":
        what = f"is now paid in full ({format_money(amount, symbol)} received)"
    else:
        what = (
            f"received {format_money(amount, symbol)}; "
            f"{format_money(remaining, symbol)} is still outstanding"
        )
    ctx.log.info(
        "payment_recorded",
        reference=number,
        amount=str(amount),
        status=status,
        matched_by=target.matched_by,
    )
    return Result.ok(
        _status_message(target, invoice, what),
        {
            "invoice": present_document(INVOICE, invoice, await client_for(ctx, invoice)),
            "matched_by": target.matched_by,
            "payment_amount": round_money(amount),
            "balance_due": round_money(remaining),
        },
    )


@command_handler(TargetParams)
async def mark_invoice_overdue(ctx: HandlerContext, params: TargetParams) -> Result:
    target = await ctx.lifecycle.resolve_target(ctx.store, INVOICE, params.number)
    invoice = await ctx.lifecycle.transition(ctx.store, INVOICE, target.document, "overdue")
    return Result.ok(
        _status_message(target, invoice, "marked as overdue"),
        {"invoice": present_document(INVOICE, invoice), "matched_by": target.matched_by},
    )


@command_handler(CancelDocumentParams)
async def cancel_invoice(ctx: HandlerContext, params: CancelDocumentParams) -> Result:
    target = await ctx.lifecycle.resolve_named_target(ctx.store, INVOICE, params.number)
    changes = {"cancellation_reason": params.reason} if params.reason else None
    invoice = await ctx.lifecycle.transition(
        ctx.store, INVOICE, target.document, "cancelled", changes
    )
    return Result.ok(
        _status_message(target, invoice, "cancelled"),
        {"invoice": present_document(INVOICE, invoice), "matched_by": target.matched_by},
    )
