"""Invoice and estimate descriptors, statuses and appearance options.

Invoices and estimates share one shape: a numbered document owning line
items. A ``DocumentKind`` names the columns that differ between the two so
that creation, editing and lookup code is written once.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Optional


INVOICE_TRANSITIONS: dict[str, frozenset[str]] = {
    "draft": frozenset({"sent", "paid", "partial", "cancelled"}),
    "sent": frozenset({"paid", "partial", "overdue", "cancelled"}),
    "partial": frozenset({"paid", "overdue", "cancelled"}),
    "overdue": frozenset({"paid", "partial", "cancelled"}),
    "paid": frozenset(),
    "cancelled": frozenset({"draft"}),
}

ESTIMATE_TRANSITIONS: dict[str, frozenset[str]] = {
    "draft": frozenset({"sent", "cancelled"}),
    "sent": frozenset({"accepted", "declined", "expired", "cancelled"}),
    "accepted": frozenset({"converted", "cancelled"}),
    "declined": frozenset({"sent", "cancelled"}),
    "expired": frozenset({"sent", "cancelled"}),
    "converted": frozenset(),
    "cancelled": frozenset({"draft"}),
}

# Conversion is allowed before formal acceptance; it records the acceptance.
CONVERTIBLE_ESTIMATE_STATUSES = frozenset({"draft", "sent", "accepted"})


@dataclass(frozen=True)
class DocumentKind:
    name: str
    label: str
    table: str
    items_table: str
    items_fk: str
    number_field: str
    date_field: str
    end_date_field: str
    design_field: str
    fallback_prefix: str
    transitions: dict[str, frozenset[str]] = field(compare=False, repr=False)

    @property
    def plural(self) -> str:
        return f"{self.name}s"

    def can_transition(self, current: str, target: str) -> bool:
        return target in self.transitions.get(current, frozenset())

    def allowed_from(self, current: str) -> list[str]:
        return sorted(self.transitions.get(current, frozenset()))


INVOICE = DocumentKind(
    name="invoice",
    label="Invoice",
    table="invoices",
    items_table="invoice_line_items",
    items_fk="invoice_id",
    number_field="invoice_number",
    date_field="invoice_date",
    end_date_field="due_date",
    design_field="invoice_design",
    fallback_prefix="INV",
    transitions=INVOICE_TRANSITIONS,
)

ESTIMATE = DocumentKind(
    name="estimate",
    label="Estimate",
    table="estimates",
    items_table="estimate_line_items",
    items_fk="estimate_id",
    number_field="estimate_number",
    date_field="estimate_date",
    end_date_field="valid_until_date",
    design_field="estimate_template",
    fallback_prefix="EST",
    transitions=ESTIMATE_TRANSITIONS,
)

KINDS = (INVOICE, ESTIMATE)

# Document columns that carry one payment method each, keyed by the method
# name used in payment_options (``<method>_enabled``).
PAYMENT_METHOD_COLUMNS = {
    "paypal": "paypal_active",
    "stripe": "stripe_active",
    "bank_transfer": "bank_account_active",
}

# Columns copied verbatim when a document is duplicated or converted.
CARRIED_COLUMNS = (
    "client_id",
    "custom_headline",
    "po_number",
    "discount_type",
    "discount_value",
    "tax_percentage",
    "notes",
    "accent_color",
    "paypal_active",
    "stripe_active",
    "bank_account_active",
)

DESIGNS = {
    "classic": "Traditional business layout with a strong header band",
    "modern": "Contemporary layout with generous spacing",
    "clean": "Minimal layout that keeps attention on the numbers",
    "simple": "Plain single-column layout, printer friendly",
}
DEFAULT_DESIGN = "clean"

COLORS = {
    "navy": "#1E40AF",
    "blue": "#2563EB",
    "green": "#059669",
    "teal": "#0D9488",
    "purple": "#7C3AED",
    "orange": "#EA580C",
    "red": "#DC2626",
    "gray": "#374151",
    "black": "#000000",
}
DEFAULT_ACCENT_COLOR = COLORS["navy"]

_HEX_COLOR = re.compile(r"^#[0-9A-Fa-f]{6}$")
_TRAILING_DIGITS = re.compile(r"(\d+)\D*$")


def resolve_color(value: str) -> Optional[str]:
    """Map a palette name or a ``#RRGGBB`` value to a hex color."""
    value = value.strip()
    if _HEX_COLOR.match(value):
        return value.upper()
    return COLORS.get(value.lower())


def trailing_number(reference: Optional[str]) -> Optional[int]:
    """Return the last run of digits in a reference, e.g. 7 for INV-2024-007."""
    if not reference:
        return None
    m = _TRAILING_DIGITS.search(str(reference))
    return int(m.group(1)) if m else None
