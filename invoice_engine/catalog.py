"""Function catalog published to the language model.

Each entry is ``{name, description, parameters}`` where ``parameters`` is a
JSON schema object. The catalog is data: it changes only together with
``CATALOG_VERSION`` and every name in it has a registered handler.
"""

from __future__ import annotations

import copy
from typing import Any, Optional

CATALOG_VERSION = "1.0.0"


def _string(description: str, **extra: Any) -> dict:
    return {"type": "string", "description": description, **extra}


def _number(description: str, **extra: Any) -> dict:
    return {"type": "number", "description": description, **extra}


def _integer(description: str, **extra: Any) -> dict:
    return {"type": "integer", "description": description, **extra}


def _boolean(description: str) -> dict:
    return {"type": "boolean", "description": description}


def _date(description: str) -> dict:
    return {"type": "string", "format": "date", "description": f"{description} (YYYY-MM-DD)"}


def _object(properties: dict, required: Optional[list[str]] = None) -> dict:
    return {"type": "object", "properties": properties, "required": required or []}


def _function(name: str, description: str, parameters: Optional[dict] = None) -> dict:
    return {"name": name, "description": description, "parameters": parameters or _object({})}


LINE_ITEM_SCHEMA = _object(
    {
        "item_name": _string("Name of the product or service"),
        "item_description": _string("Optional longer description"),
        "quantity": _number("Quantity, greater than zero", exclusiveMinimum=0, default=1),
        "unit_price": _number("Price per unit", minimum=0),
    },
    ["item_name", "unit_price"],
)

LINE_ITEM_PATCH_SCHEMA = _object(
    {
        "item_index": _integer("1-based position of the line item", minimum=1),
        "item_name": _string("Name of the line item to add, change or remove"),
        "new_item_name": _string("New name when renaming an item"),
        "item_description": _string("Description"),
        "quantity": _number("Quantity, greater than zero", exclusiveMinimum=0),
        "unit_price": _number("Price per unit", minimum=0),
    }
)

DISCOUNT_PROPERTIES = {
    "tax_percentage": _number("Tax rate in percent, e.g. 20 for 20%", minimum=0),
    "discount_type": _string("How discount_value applies", enum=["percentage", "fixed"]),
    "discount_value": _number("Discount percentage or fixed amount", minimum=0),
}

PAYMENT_FLAG_PROPERTIES = {
    "enable_paypal": _boolean("Accept PayPal on this document (only if PayPal is set up)"),
    "enable_stripe": _boolean("Accept card payments (only if Stripe is set up)"),
    "enable_bank_transfer": _boolean("Accept bank transfer (only if bank details are set up)"),
}


def _document_functions(kind: str, end_date: str, end_label: str) -> list[dict]:
    number = f"{kind}_number"
    date_field = f"{kind}_date"
    plural = f"{kind}s"
    number_prop = _string(f"{kind.capitalize()} reference, e.g. INV-003")
    target_prop = _string(
        f"{kind.capitalize()} reference. Omit to use the most recent {kind}"
    )
    create_extra = (
        {
            "payment_terms_days": _integer("Days until due, default 30", minimum=0),
        }
        if kind == "invoice"
        else {
            "validity_days": _integer("Days the estimate stays valid, default 30", minimum=0),
            "acceptance_terms": _string("Terms the client accepts"),
        }
    )
    return [
        _function(
            f"create_{kind}",
            f"Create a new {kind} for a client. The client is matched by name "
            "(or created if new), the reference number is assigned automatically "
            "and totals are calculated from the line items.",
            _object(
                {
                    "client_name": _string("Client or company name"),
                    "client_email": _string("Client e-mail"),
                    "client_phone": _string("Client phone"),
                    "client_address": _string("Client address"),
                    "client_tax_number": _string("Client tax/VAT number"),
                    "line_items": {"type": "array", "items": LINE_ITEM_SCHEMA, "minItems": 1},
                    date_field: _date(f"{kind.capitalize()} date, default today"),
                    end_date: _date(end_label),
                    "notes": _string("Notes shown on the document"),
                    "custom_headline": _string("Headline/title of the document"),
                    "po_number": _string("Client purchase order number"),
                    "payment_terms": _string("Payment terms text"),
                    "design": _string("Design: classic, modern, clean or simple"),
                    "accent_color": _string("Accent colour name or #RRGGBB"),
                    **DISCOUNT_PROPERTIES,
                    **PAYMENT_FLAG_PROPERTIES,
                    **create_extra,
                },
                ["client_name", "line_items"],
            ),
        ),
        _function(
            f"search_{plural}",
            f"Search {plural} by client, status, date range or amount.",
            _object(
                {
                    "client_name": _string("Client name or part of it"),
                    "status": _string("Status to filter by"),
                    "date_from": _date("Earliest document date"),
                    "date_to": _date("Latest document date"),
                    "min_amount": _number("Minimum total", minimum=0),
                    "max_amount": _number("Maximum total", minimum=0),
                    "limit": _integer("Maximum results, default 10", minimum=1, maximum=50),
                }
            ),
        ),
        _function(
            f"get_{kind}_details",
            f"Get a {kind} with its client, line items and totals.",
            _object({number: number_prop}, [number]),
        ),
        _function(
            f"get_recent_{plural}",
            f"List the most recently created {plural}.",
            _object(
                {
                    "limit": _integer("How many, default 5", minimum=1, maximum=20),
                    "status_filter": _string("Only this status, or 'all'"),
                }
            ),
        ),
        _function(
            f"update_{kind}_details",
            f"Change dates, client, tax, discount, notes or reference of a {kind}. "
            f"Applies to the most recent {kind} when no reference is given.",
            _object(
                {
                    number: target_prop,
                    "client_name": _string("Move the document to this client"),
                    date_field: _date(f"New {kind} date"),
                    end_date: _date(f"New {end_label.lower()}"),
                    "reference_number": _string("New reference number"),
                    "notes": _string("Notes"),
                    "custom_headline": _string("Headline/title"),
                    "po_number": _string("Purchase order number"),
                    **DISCOUNT_PROPERTIES,
                    **(
                        {"acceptance_terms": _string("Acceptance terms")}
                        if kind == "estimate"
                        else {}
                    ),
                }
            ),
        ),
        _function(
            f"update_{kind}_line_items",
            f"Add, update or remove line items on a {kind}; totals are recalculated. "
            f"Applies to the most recent {kind} when no reference is given.",
            _object(
                {
                    number: target_prop,
                    "action": _string("What to do", enum=["add", "update", "remove"]),
                    "line_items": {"type": "array", "items": LINE_ITEM_PATCH_SCHEMA, "minItems": 1},
                },
                ["action", "line_items"],
            ),
        ),
        _function(
            f"duplicate_{kind}",
            f"Copy a {kind} with a new reference number, optionally for another client.",
            _object(
                {
                    number: number_prop,
                    "new_client_name": _string("Client for the copy"),
                    "new_date": _date("Date of the copy, default today"),
                },
                [number],
            ),
        ),
        _function(
            f"delete_{kind}",
            f"Permanently delete a {kind} and its line items. Requires confirm=true.",
            _object(
                {number: number_prop, "confirm": _boolean("Must be true to delete")},
                [number, "confirm"],
            ),
        ),
        _function(
            f"update_{kind}_payment_methods",
            f"Turn payment methods on or off for a {kind}. Only methods set up "
            "in payment options can be enabled.",
            _object(
                {
                    number: target_prop,
                    "paypal_active": _boolean("PayPal"),
                    "stripe_active": _boolean("Card payments"),
                    "bank_transfer_active": _boolean("Bank transfer"),
                }
            ),
        ),
        _function(
            f"update_{kind}_appearance",
            f"Change the design and/or accent colour of a {kind}.",
            _object(
                {
                    number: target_prop,
                    "design": _string("classic, modern, clean or simple"),
                    "color": _string("Colour name or #RRGGBB"),
                }
            ),
        ),
    ]


INVOICE_FUNCTIONS = _document_functions("invoice", "due_date", "Due date") + [
    _function(
        "get_invoice_summary",
        "Summarise invoiced, paid and outstanding amounts for a period.",
        _object(
            {
                "period": _string(
                    "Period", enum=["this_month", "last_month", "this_year", "all_time"]
                )
            }
        ),
    ),
    _function(
        "mark_invoice_sent",
        "Mark an invoice as sent. Uses the most recent invoice when no reference is given.",
        _object(
            {
                "invoice_number": _string("Invoice reference"),
                "sent_date": _date("When it was sent, default today"),
            }
        ),
    ),
    _function(
        "mark_invoice_paid",
        "Record a payment. A partial amount marks the invoice partially paid.",
        _object(
            {
                "invoice_number": _string("Invoice reference"),
                "payment_date": _date("Payment date, default today"),
                "payment_amount": _number("Amount paid, default the full balance", exclusiveMinimum=0),
                "payment_method": _string("How it was paid"),
            }
        ),
    ),
    _function(
        "mark_invoice_overdue",
        "Mark a sent invoice as overdue.",
        _object({"invoice_number": _string("Invoice reference")}),
    ),
    _function(
        "cancel_invoice",
        "Cancel an invoice.",
        _object(
            {
                "invoice_number": _string("Invoice reference"),
                "reason": _string("Why it was cancelled"),
            }
        ),
    ),
    _function(
        "update_invoice_design",
        "Change the design of an invoice.",
        _object(
            {
                "invoice_number": _string("Invoice reference, default the most recent"),
                "design": _string("classic, modern, clean or simple"),
            },
            ["design"],
        ),
    ),
    _function(
        "update_invoice_color",
        "Change the accent colour of an invoice.",
        _object(
            {
                "invoice_number": _string("Invoice reference, default the most recent"),
                "color": _string("Colour name or #RRGGBB"),
            },
            ["color"],
        ),
    ),
]

ESTIMATE_FUNCTIONS = _document_functions("estimate", "valid_until_date", "Valid until date") + [
    _function(
        "update_estimate_status",
        "Move an estimate to another status: sent, accepted, declined, expired, "
        "cancelled or back to draft.",
        _object(
            {
                "estimate_number": _string("Estimate reference, default the most recent"),
                "status": _string(
                    "New status",
                    enum=["draft", "sent", "accepted", "declined", "expired", "cancelled"],
                ),
            },
            ["status"],
        ),
    ),
    _function(
        "convert_estimate_to_invoice",
        "Convert an estimate into an invoice with the same reference number and "
        "line items.",
        _object({"estimate_number": _string("Estimate reference, default the most recent")}),
    ),
]

CLIENT_FUNCTIONS = [
    _function(
        "create_client",
        "Add a new client. Fails if a client with that name already exists.",
        _object(
            {
                "name": _string("Client or company name"),
                "email": _string("E-mail"),
                "phone": _string("Phone"),
                "address": _string("Postal address"),
                "tax_number": _string("Tax/VAT number"),
                "notes": _string("Internal notes"),
            },
            ["name"],
        ),
    ),
    _function(
        "search_clients",
        "Find clients by name or e-mail.",
        _object(
            {
                "name": _string("Name or part of it"),
                "email": _string("Exact e-mail"),
                "limit": _integer("Maximum results, default 10", minimum=1, maximum=50),
            }
        ),
    ),
    _function(
        "update_client",
        "Update a client's contact details.",
        _object(
            {
                "client_name": _string("Current client name"),
                "new_name": _string("New name"),
                "email": _string("E-mail"),
                "phone": _string("Phone"),
                "address": _string("Postal address"),
                "tax_number": _string("Tax/VAT number"),
                "notes": _string("Internal notes"),
            },
            ["client_name"],
        ),
    ),
    _function(
        "duplicate_client",
        "Create a new client with the same details under a different name.",
        _object(
            {
                "client_name": _string("Client to copy"),
                "new_client_name": _string("Name of the new client"),
            },
            ["client_name", "new_client_name"],
        ),
    ),
    _function(
        "delete_client",
        "Permanently delete a client together with all their invoices and estimates. "
        "Requires confirm_delete_invoices=true.",
        _object(
            {
                "client_name": _string("Client to delete"),
                "confirm_delete_invoices": _boolean("Must be true"),
            },
            ["client_name", "confirm_delete_invoices"],
        ),
    ),
    _function(
        "get_client_outstanding_amount",
        "How much a client still owes across unpaid invoices.",
        _object({"client_name": _string("Client name")}, ["client_name"]),
    ),
]

SETTINGS_FUNCTIONS = [
    _function("get_business_settings", "Show the business profile and defaults."),
    _function(
        "update_business_settings",
        "Update the business profile, tax defaults, reference format or design defaults.",
        _object(
            {
                "business_name": _string("Business name"),
                "business_address": _string("Business address"),
                "business_email": _string("Business e-mail"),
                "business_phone": _string("Business phone"),
                "business_website": _string("Website"),
                "currency_code": _string("ISO currency code, e.g. USD"),
                "default_tax_rate": _number("Default tax rate in percent", minimum=0, maximum=100),
                "tax_name": _string("Tax label, e.g. VAT"),
                "tax_number": _string("Business tax/VAT number"),
                "auto_apply_tax": _boolean("Apply the default tax rate to new documents"),
                "region": _string("Business region"),
                "invoice_reference_format": _string(
                    "Reference template, e.g. INV-001 or INV-YYYY-MM-0001"
                ),
                "default_invoice_design": _string("classic, modern, clean or simple"),
                "default_accent_color": _string("Colour name or #RRGGBB"),
            }
        ),
    ),
    _function("get_setup_progress", "Show which business setup steps are complete."),
    _function(
        "set_currency",
        "Set the business currency.",
        _object({"currency_code": _string("ISO currency code, e.g. EUR")}, ["currency_code"]),
    ),
    _function(
        "set_region",
        "Set the business region.",
        _object({"region": _string("Region or country")}, ["region"]),
    ),
    _function("get_currency_options", "List supported currencies."),
]

PAYMENT_FUNCTIONS = [
    _function("get_payment_options", "Show which payment methods are set up."),
    _function(
        "setup_paypal_payments",
        "Enable PayPal with the given account e-mail and switch it on for an invoice "
        "(the most recent one unless a reference is given).",
        _object(
            {
                "paypal_email": _string("PayPal account e-mail"),
                "invoice_number": _string("Invoice reference, default the most recent"),
            },
            ["paypal_email"],
        ),
    ),
    _function(
        "setup_bank_transfer_payments",
        "Enable bank transfer with the given bank details and switch it on for an "
        "invoice (the most recent one unless a reference is given).",
        _object(
            {
                "bank_details": _string("Account name, number, sort code/IBAN"),
                "invoice_number": _string("Invoice reference, default the most recent"),
            },
            ["bank_details"],
        ),
    ),
]

APPEARANCE_FUNCTIONS = [
    _function("get_design_options", "List available document designs."),
    _function("get_color_options", "List the accent colour palette."),
]

USAGE_FUNCTIONS = [
    _function(
        "check_usage_limits",
        "Check how many documents the current plan allows and how many are used.",
    ),
]

FUNCTION_CATALOG: list[dict] = (
    INVOICE_FUNCTIONS
    + ESTIMATE_FUNCTIONS
    + CLIENT_FUNCTIONS
    + SETTINGS_FUNCTIONS
    + PAYMENT_FUNCTIONS
    + APPEARANCE_FUNCTIONS
    + USAGE_FUNCTIONS
)

_BY_NAME = {entry["name"]: entry for entry in FUNCTION_CATALOG}


def function_names() -> list[str]:
    return [entry["name"] for entry in FUNCTION_CATALOG]


def get_function(name: str) -> Optional[dict]:
    """Return a copy of a catalog entry, or None for an unknown name."""
    entry = _BY_NAME.get(name)
    return copy.deepcopy(entry) if entry is not None else None


def required_parameters(name: str) -> list[str]:
    entry = _BY_NAME.get(name)
    if entry is None:
        return []
    return list(entry["parameters"].get("required", []))


def as_tools() -> list[dict]:
    """Catalog in the ``{"type": "function", "function": ...}`` tool format."""
    return [{"type": "function", "function": copy.deepcopy(entry)} for entry in FUNCTION_CATALOG]
