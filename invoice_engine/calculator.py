"""Deterministic document totals.

The pipeline is fixed: subtotal, then discount, then tax on the discounted
amount, then total. All arithmetic is ``Decimal`` and nothing is rounded
until presentation, so recalculating after repeated edits never drifts.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum
from typing import Any, Optional, Union

import structlog

from .errors import InvalidArgumentError

logger = structlog.get_logger()

ZERO = Decimal("0")
HUNDRED = Decimal("100")
CENTS = Decimal("0.01")

Number = Union[Decimal, int, float, str]


class DiscountType(str, Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


@dataclass(frozen=True)
class Discount:
    """A percentage of the subtotal or a fixed amount off it."""

    type: DiscountType
    value: Decimal

    @classmethod
    def from_fields(
        cls, discount_type: Optional[str], value: Optional[Number]
    ) -> Optional[Discount]:
        """Build a discount from stored columns, or None when there is none."""
        if not discount_type or value is None:
            return None
        amount = to_decimal(value, "discount_value")
        if amount == ZERO:
            return None
        try:
            kind = DiscountType(discount_type)
        except ValueError as e:
            raise InvalidArgumentError(
                f"Unknown discount type '{discount_type}'. Use 'percentage' or 'fixed'."
            ) from e
        return cls(kind, amount)


@dataclass(frozen=True)
class Totals:
    subtotal: Decimal
    discount_amount: Decimal
    taxable_amount: Decimal
    tax_amount: Decimal
    total: Decimal

    def rounded(self) -> Totals:
        """Copy with every amount rounded for display."""
        return Totals(
            subtotal=round_money(self.subtotal),
            discount_amount=round_money(self.discount_amount),
            taxable_amount=round_money(self.taxable_amount),
            tax_amount=round_money(self.tax_amount),
            total=round_money(self.total),
        )

    def as_dict(self) -> dict[str, Decimal]:
        return {
            "subtotal": self.subtotal,
            "discount_amount": self.discount_amount,
            "taxable_amount": self.taxable_amount,
            "tax_amount": self.tax_amount,
            "total": self.total,
        }


def to_decimal(value: Number, field: str = "amount") -> Decimal:
    """Convert a stored or supplied number to Decimal without float noise."""
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise InvalidArgumentError(f"{field} must be a number, got {value!r}") from e


def line_total(quantity: Number, unit_price: Number) -> Decimal:
    """Return quantity × unit price for one line item."""
    qty = to_decimal(quantity, "quantity")
    if qty <= ZERO:
        raise InvalidArgumentError("Line item quantity must be greater than zero")
    return qty * to_decimal(unit_price, "unit_price")


def subtotal_of(items: Iterable[Mapping[str, Any]]) -> Decimal:
    """Sum quantity × unit price over line items.

    Items are mappings with ``quantity`` and ``unit_price`` keys, which is
    the shape both stored line item rows and incoming arguments have.
    """
    return sum(
        (line_total(item["quantity"], item["unit_price"]) for item in items), ZERO
    )


def discount_amount(subtotal: Decimal, discount: Optional[Discount]) -> Decimal:
    if discount is None:
        return ZERO
    if discount.value < ZERO:
        raise InvalidArgumentError("Discount value cannot be negative")
    if discount.type is DiscountType.PERCENTAGE:
        return subtotal * discount.value / HUNDRED
    return discount.value


def calculate_totals(
    items: Iterable[Mapping[str, Any]],
    discount: Optional[Discount] = None,
    tax_percentage: Optional[Number] = None,
) -> Totals:
    """Run the totals pipeline over a set of line items.

    Args:
        items: Line items with ``quantity`` and ``unit_price``.
        discount: Optional percentage or fixed discount.
        tax_percentage: Tax rate applied to the discounted amount.

    Returns:
        Unrounded Totals satisfying total == (subtotal - discount) + tax.

    Raises:
        InvalidArgumentError: On a negative rate, negative discount or a
            non-positive quantity.
    """
    tax_rate = to_decimal(tax_percentage, "tax_percentage") if tax_percentage else ZERO
    if tax_rate < ZERO:
        raise InvalidArgumentError("Tax percentage cannot be negative")

    subtotal = subtotal_of(items)
    discounted = discount_amount(subtotal, discount)
    if discounted > subtotal:
        # Not clamped: the taxable amount and total go negative.
        logger.warning(
            "discount_exceeds_subtotal",
            subtotal=str(subtotal),
            discount_amount=str(discounted),
        )
    taxable = subtotal - discounted
    tax = taxable * tax_rate / HUNDRED

    return Totals(
        subtotal=subtotal,
        discount_amount=discounted,
        taxable_amount=taxable,
        tax_amount=tax,
        total=taxable + tax,
    )


def round_money(value: Number) -> Decimal:
    """Round to cents, half up. Presentation only."""
    return to_decimal(value).quantize(CENTS, rounding=ROUND_HALF_UP)


def format_money(value: Number, symbol: str = "$") -> str:
    """Format an amount for a chat message, e.g. ``$1,234.50``."""
    amount = round_money(value)
    sign = "-" if amount < ZERO else ""
    return f"{sign}{symbol}{abs(amount):,.2f}"
