"""Parameter records for every operation.

Arguments chosen by the language model are validated into one of these
models at the dispatcher boundary, so handlers only ever see typed, checked
values. Unknown keys are ignored because models routinely add extras.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from .calculator import Discount, DiscountType

ESTIMATE_STATUS_VALUES = Literal[
    "draft", "sent", "accepted", "declined", "expired", "converted", "cancelled"
]


class CommandParams(BaseModel):
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)


class NoParams(CommandParams):
    pass


# ============================================================================
# Documents (shared by invoices and estimates)
# ============================================================================


def _number_field(required: bool):
    alias = AliasChoices("invoice_number", "estimate_number", "number")
    if required:
        return Field(min_length=1, validation_alias=alias)
    return Field(default=None, validation_alias=alias)


class LineItemInput(CommandParams):
    item_name: str = Field(min_length=1, validation_alias=AliasChoices("item_name", "name"))
    item_description: Optional[str] = None
    quantity: Decimal = Field(default=Decimal("1"), gt=0)
    unit_price: Decimal = Field(ge=0, validation_alias=AliasChoices("unit_price", "price"))

    def as_row(self) -> dict:
        return {
            "item_name": self.item_name,
            "item_description": self.item_description or None,
            "quantity": self.quantity,
            "unit_price": self.unit_price,
            "total_price": self.quantity * self.unit_price,
        }


class DiscountFields(CommandParams):
    tax_percentage: Optional[Decimal] = Field(default=None, ge=0)
    discount_type: Optional[DiscountType] = None
    discount_value: Optional[Decimal] = Field(default=None, ge=0)

    def discount(self) -> Optional[Discount]:
        if not self.discount_value:
            return None
        return Discount(self.discount_type or DiscountType.PERCENTAGE, self.discount_value)


class CreateDocumentParams(DiscountFields):
    client_name: str = Field(min_length=1)
    client_email: Optional[str] = None
    client_phone: Optional[str] = None
    client_address: Optional[str] = None
    client_tax_number: Optional[str] = None
    line_items: list[LineItemInput] = Field(min_length=1)
    notes: Optional[str] = None
    custom_headline: Optional[str] = None
    po_number: Optional[str] = None
    payment_terms: Optional[str] = None
    enable_paypal: Optional[bool] = None
    enable_stripe: Optional[bool] = None
    enable_bank_transfer: Optional[bool] = None
    design: Optional[str] = None
    accent_color: Optional[str] = None

    def requested_payment_methods(self) -> dict[str, Optional[bool]]:
        return {
            "paypal": self.enable_paypal,
            "stripe": self.enable_stripe,
            "bank_transfer": self.enable_bank_transfer,
        }

    @property
    def issued_on(self) -> Optional[date]:
        raise NotImplementedError

    @property
    def ends_on(self) -> Optional[date]:
        raise NotImplementedError

    @property
    def term_days(self) -> Optional[int]:
        raise NotImplementedError


class CreateInvoiceParams(CreateDocumentParams):
    invoice_date: Optional[date] = None
    due_date: Optional[date] = None
    payment_terms_days: Optional[int] = Field(default=None, ge=0)

    @property
    def issued_on(self) -> Optional[date]:
        return self.invoice_date

    @property
    def ends_on(self) -> Optional[date]:
        return self.due_date

    @property
    def term_days(self) -> Optional[int]:
        return self.payment_terms_days


class CreateEstimateParams(CreateDocumentParams):
    estimate_date: Optional[date] = None
    valid_until_date: Optional[date] = None
    validity_days: Optional[int] = Field(default=None, ge=0)
    acceptance_terms: Optional[str] = None

    @property
    def issued_on(self) -> Optional[date]:
        return self.estimate_date

    @property
    def ends_on(self) -> Optional[date]:
        return self.valid_until_date

    @property
    def term_days(self) -> Optional[int]:
        return self.validity_days


class SearchDocumentsParams(CommandParams):
    client_name: Optional[str] = None
    status: Optional[str] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    min_amount: Optional[Decimal] = Field(default=None, ge=0)
    max_amount: Optional[Decimal] = Field(default=None, ge=0)
    limit: int = Field(default=10, ge=1, le=50)


class DocumentNumberParams(CommandParams):
    number: str = _number_field(required=True)


class TargetParams(CommandParams):
    """Operations that edit one document, the most recent when unnamed."""

    number: Optional[str] = _number_field(required=False)


class RecentDocumentsParams(CommandParams):
    limit: int = Field(default=5, ge=1, le=20)
    status_filter: Optional[str] = None


class InvoiceSummaryParams(CommandParams):
    period: Literal["this_month", "last_month", "this_year", "all_time"] = "this_month"


class UpdateDocumentDetailsParams(TargetParams, DiscountFields):
    client_name: Optional[str] = None
    document_date: Optional[date] = Field(
        default=None, validation_alias=AliasChoices("invoice_date", "estimate_date", "document_date")
    )
    end_date: Optional[date] = Field(
        default=None, validation_alias=AliasChoices("due_date", "valid_until_date", "end_date")
    )
    new_number: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("reference_number", "new_number")
    )
    notes: Optional[str] = None
    custom_headline: Optional[str] = None
    po_number: Optional[str] = None
    acceptance_terms: Optional[str] = None


class LineItemPatch(CommandParams):
    item_index: Optional[int] = Field(default=None, ge=1)
    item_name: Optional[str] = Field(default=None, validation_alias=AliasChoices("item_name", "name"))
    new_item_name: Optional[str] = None
    item_description: Optional[str] = None
    quantity: Optional[Decimal] = Field(default=None, gt=0)
    unit_price: Optional[Decimal] = Field(
        default=None, ge=0, validation_alias=AliasChoices("unit_price", "price")
    )


class UpdateLineItemsParams(TargetParams):
    action: Literal["add", "update", "remove"]
    line_items: list[LineItemPatch] = Field(min_length=1)


class DuplicateDocumentParams(DocumentNumberParams):
    new_client_name: Optional[str] = None
    new_date: Optional[date] = None


class DeleteDocumentParams(DocumentNumberParams):
    confirm: bool = False


class MarkSentParams(TargetParams):
    sent_date: Optional[date] = None


class MarkPaidParams(TargetParams):
    payment_date: Optional[date] = None
    payment_amount: Optional[Decimal] = Field(default=None, gt=0)
    payment_method: Optional[str] = None


class CancelDocumentParams(TargetParams):
    reason: Optional[str] = None


class UpdateEstimateStatusParams(TargetParams):
    status: ESTIMATE_STATUS_VALUES


class PaymentMethodsParams(TargetParams):
    paypal_active: Optional[bool] = None
    stripe_active: Optional[bool] = None
    bank_transfer_active: Optional[bool] = None

    def requested(self) -> dict[str, Optional[bool]]:
        return {
            "paypal": self.paypal_active,
            "stripe": self.stripe_active,
            "bank_transfer": self.bank_transfer_active,
        }


class UpdateAppearanceParams(TargetParams):
    design: Optional[str] = None
    color: Optional[str] = Field(default=None, validation_alias=AliasChoices("color", "accent_color"))


class UpdateDesignParams(UpdateAppearanceParams):
    design: str = Field(min_length=1)


class UpdateColorParams(UpdateAppearanceParams):
    color: str = Field(min_length=1, validation_alias=AliasChoices("color", "accent_color"))


# ============================================================================
# Clients
# ============================================================================


class CreateClientParams(CommandParams):
    name: str = Field(min_length=1, validation_alias=AliasChoices("name", "client_name"))
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    tax_number: Optional[str] = None
    notes: Optional[str] = None


class SearchClientsParams(CommandParams):
    name: Optional[str] = Field(default=None, validation_alias=AliasChoices("name", "client_name"))
    email: Optional[str] = None
    limit: int = Field(default=10, ge=1, le=50)


class ClientNameParams(CommandParams):
    client_name: str = Field(min_length=1)


class UpdateClientParams(ClientNameParams):
    new_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    tax_number: Optional[str] = None
    notes: Optional[str] = None


class DuplicateClientParams(ClientNameParams):
    new_client_name: str = Field(min_length=1)


class DeleteClientParams(ClientNameParams):
    confirm_delete_invoices: bool = False


# ============================================================================
# Business settings and payments
# ============================================================================


class UpdateBusinessSettingsParams(CommandParams):
    business_name: Optional[str] = None
    business_address: Optional[str] = None
    business_email: Optional[str] = None
    business_phone: Optional[str] = None
    business_website: Optional[str] = None
    currency_code: Optional[str] = Field(default=None, pattern=r"^[A-Za-z]{3}$")
    default_tax_rate: Optional[Decimal] = Field(default=None, ge=0, le=100)
    tax_name: Optional[str] = None
    tax_number: Optional[str] = None
    auto_apply_tax: Optional[bool] = None
    region: Optional[str] = None
    invoice_reference_format: Optional[str] = None
    default_invoice_design: Optional[str] = None
    default_accent_color: Optional[str] = None


class SetCurrencyParams(CommandParams):
    currency_code: str = Field(pattern=r"^[A-Za-z]{3}$")


class SetRegionParams(CommandParams):
    region: str = Field(min_length=1)


class SetupPaypalParams(TargetParams):
    paypal_email: str = Field(pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class SetupBankTransferParams(TargetParams):
    bank_details: str = Field(min_length=1)
