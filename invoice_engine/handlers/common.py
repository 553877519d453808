"""Helpers shared by handler modules: owner settings, presentation and
payment-method gating.
"""

from __future__ import annotations

from typing import Callable, Optional

from ..calculator import format_money
from ..context import HandlerContext
from ..dispatcher import command_handler
from ..documents import DESIGNS, PAYMENT_METHOD_COLUMNS, DocumentKind, resolve_color
from ..errors import InvalidArgumentError
from ..params import CommandParams
from ..result import Result
from ..store import OWNER_COLUMN

BUSINESS_SETTINGS = "business_settings"
PAYMENT_OPTIONS = "payment_options"
CLIENTS = "clients"

CURRENCY_OPTIONS = [
    {"currency_code": "USD", "currency_name": "US Dollar", "symbol": "$"},
    {"currency_code": "EUR", "currency_name": "Euro", "symbol": "€"},
    {"currency_code": "GBP", "currency_name": "British Pound", "symbol": "£"},
    {"currency_code": "CAD", "currency_name": "Canadian Dollar", "symbol": "C$"},
    {"currency_code": "AUD", "currency_name": "Australian Dollar", "symbol": "A$"},
    {"currency_code": "JPY", "currency_name": "Japanese Yen", "symbol": "¥"},
    {"currency_code": "CHF", "currency_name": "Swiss Franc", "symbol": "Fr"},
    {"currency_code": "CNY", "currency_name": "Chinese Yuan", "symbol": "¥"},
    {"currency_code": "INR", "currency_name": "Indian Rupee", "symbol": "₹"},
    {"currency_code": "NZD", "currency_name": "New Zealand Dollar", "symbol": "NZ$"},
    {"currency_code": "SEK", "currency_name": "Swedish Krona", "symbol": "kr"},
    {"currency_code": "NOK", "currency_name": "Norwegian Krone", "symbol": "kr"},
    {"currency_code": "DKK", "currency_name": "Danish Krone", "symbol": "kr"},
    {"currency_code": "SGD", "currency_name": "Singapore Dollar", "symbol": "S$"},
    {"currency_code": "HKD", "currency_name": "Hong Kong Dollar", "symbol": "HK$"},
]
CURRENCY_SYMBOLS = {c["currency_code"]: c["symbol"] for c in CURRENCY_OPTIONS}

PAYMENT_METHOD_LABELS = {
    "paypal": "PayPal",
    "stripe": "card payments",
    "bank_transfer": "bank transfer",
}


def for_kind(kind: DocumentKind, params_type: type[CommandParams], func: Callable):
    """Bind a ``func(ctx, kind, params)`` implementation to one document kind."""

    @command_handler(params_type)
    async def handler(ctx: HandlerContext, params: CommandParams) -> Result:
        return await func(ctx, kind, params)

    handler.__name__ = f"{func.__name__}[{kind.name}]"
    return handler


async def business_settings(ctx: HandlerContext) -> dict:
    return await ctx.store.singleton(BUSINESS_SETTINGS) or {}


async def payment_options(ctx: HandlerContext) -> dict:
    return await ctx.store.singleton(PAYMENT_OPTIONS) or {}


def currency_symbol(settings: dict) -> str:
    return CURRENCY_SYMBOLS.get((settings.get("currency_code") or "USD").upper(), "$")


def public(row: Optional[dict]) -> Optional[dict]:
    """Row without the owner column, for result payloads."""
    if row is None:
        return None
    return {k: v for k, v in row.items() if k != OWNER_COLUMN}


async def clients_by_id(ctx: HandlerContext, client_ids) -> dict[str, dict]:
    ids = {cid for cid in client_ids if cid}
    if not ids:
        return {}
    rows = await ctx.store.select(ctx.store.query(CLIENTS).in_("id", ids))
    return {row["id"]: row for row in rows}


async def client_for(ctx: HandlerContext, document: dict) -> Optional[dict]:
    return (await clients_by_id(ctx, [document.get("client_id")])).get(document.get("client_id"))


def present_document(
    kind: DocumentKind,
    document: dict,
    client: Optional[dict] = None,
    items: Optional[list[dict]] = None,
) -> dict:
    data = public(document)
    data["client_name"] = client.get("name") if client else None
    if items is not None:
        data["line_items"] = [public(item) for item in items]
    return data


def summary_line(kind: DocumentKind, document: dict, client_name: Optional[str], symbol: str) -> str:
    return (
        f"{document.get(kind.number_field)} - {client_name or 'Unknown client'} - "
        f"{format_money(document.get('total_amount') or 0, symbol)} ({document.get('status')})"
    )


def validate_design(design: str) -> str:
    key = design.strip().lower()
    if key not in DESIGNS:
        raise InvalidArgumentError(
            f"Unknown design '{design}'. Choose one of: {', '.join(DESIGNS)}."
        )
    return key


def validate_color(color: str) -> str:
    resolved = resolve_color(color)
    if resolved is None:
        raise InvalidArgumentError(
            f"Unknown color '{color}'. Use a #RRGGBB value or one of: "
            "navy, blue, green, teal, purple, orange, red, gray, black."
        )
    return resolved


def gate_payment_methods(
    requested: dict[str, Optional[bool]],
    options: dict,
    default_to_configured: bool,
) -> tuple[dict, list[str]]:
    """Work out payment flags a document may carry.

    A method can only be switched on when the owner has set it up in their
    payment options. Unset requests either follow the configured state
    (new documents) or leave the document as it is (edits).

    Returns:
        Tuple of (document column changes, labels of methods that were
        requested but are not set up).
    """
    flags: dict[str, bool] = {}
    skipped: list[str] = []
    for method, column in PAYMENT_METHOD_COLUMNS.items():
        configured = bool(options.get(f"{method}_enabled"))
        wanted = requested.get(method)
        if wanted is None:
            if default_to_configured:
                flags[column] = configured
            continue
        if wanted and not configured:
            skipped.append(PAYMENT_METHOD_LABELS[method])
            if default_to_configured:
                flags[column] = False
            continue
        flags[column] = wanted
    return flags, skipped


def skipped_note(skipped: list[str]) -> str:
    if not skipped:
        return ""
    methods = " and ".join(skipped)
    return (
        f" {methods[0].upper()}{methods[1:]} could not be enabled because "
        f"{'it is' if len(skipped) == 1 else 'they are'} not set up yet."
    )
