"""Handlers for every function in the catalog."""

from __future__ import annotations

from ..dispatcher import CommandDispatcher
from ..documents import ESTIMATE, INVOICE
from ..params import (
    CreateEstimateParams,
    CreateInvoiceParams,
    DeleteDocumentParams,
    DocumentNumberParams,
    DuplicateDocumentParams,
    PaymentMethodsParams,
    RecentDocumentsParams,
    SearchDocumentsParams,
    UpdateAppearanceParams,
    UpdateColorParams,
    UpdateDesignParams,
    UpdateDocumentDetailsParams,
    UpdateLineItemsParams,
)
from . import appearance, clients, documents, estimates, invoices, payments, settings, usage
from .common import for_kind


def _document_routes(kind, create_params) -> dict:
    return {
        f"create_{kind.name}": for_kind(kind, create_params, documents.create_document),
        f"search_{kind.plural}": for_kind(kind, SearchDocumentsParams, documents.search_documents),
        f"get_{kind.name}_details": for_kind(
            kind, DocumentNumberParams, documents.get_document_details
        ),
        f"get_recent_{kind.plural}": for_kind(
            kind, RecentDocumentsParams, documents.get_recent_documents
        ),
        f"update_{kind.name}_details": for_kind(
            kind, UpdateDocumentDetailsParams, documents.update_document_details
        ),
        f"update_{kind.name}_line_items": for_kind(
            kind, UpdateLineItemsParams, documents.update_line_items
        ),
        f"duplicate_{kind.name}": for_kind(
            kind, DuplicateDocumentParams, documents.duplicate_document
        ),
        f"delete_{kind.name}": for_kind(kind, DeleteDocumentParams, documents.delete_document),
        f"update_{kind.name}_payment_methods": for_kind(
            kind, PaymentMethodsParams, documents.update_payment_methods
        ),
        f"update_{kind.name}_appearance": for_kind(
            kind, UpdateAppearanceParams, documents.update_appearance
        ),
    }


def build_routes() -> dict:
    """Map every function name to its handler."""
    routes = {}
    routes.update(_document_routes(INVOICE, CreateInvoiceParams))
    routes.update(
        {
            "get_invoice_summary": invoices.get_invoice_summary,
            "mark_invoice_sent": invoices.mark_invoice_sent,
            "mark_invoice_paid": invoices.mark_invoice_paid,
            "mark_invoice_overdue": invoices.mark_invoice_overdue,
            "cancel_invoice": invoices.cancel_invoice,
            "update_invoice_design": for_kind(
                INVOICE, UpdateDesignParams, documents.update_appearance
            ),
            "update_invoice_color": for_kind(
                INVOICE, UpdateColorParams, documents.update_appearance
            ),
        }
    )
    routes.update(_document_routes(ESTIMATE, CreateEstimateParams))
    routes.update(
        {
            "update_estimate_status": estimates.update_estimate_status,
            "convert_estimate_to_invoice": estimates.convert_estimate_to_invoice,
            "create_client": clients.create_client,
            "search_clients": clients.search_clients,
            "update_client": clients.update_client,
            "duplicate_client": clients.duplicate_client,
            "delete_client": clients.delete_client,
            "get_client_outstanding_amount": clients.get_client_outstanding_amount,
            "get_business_settings": settings.get_business_settings,
            "update_business_settings": settings.update_business_settings,
            "get_setup_progress": settings.get_setup_progress,
            "set_currency": settings.set_currency,
            "set_region": settings.set_region,
            "get_currency_options": settings.get_currency_options,
            "get_payment_options": payments.get_payment_options,
            "setup_paypal_payments": payments.setup_paypal_payments,
            "setup_bank_transfer_payments": payments.setup_bank_transfer_payments,
            "get_design_options": appearance.get_design_options,
            "get_color_options": appearance.get_color_options,
            "check_usage_limits": usage.check_usage_limits,
        }
    )
    return routes


def register_handlers(dispatcher: CommandDispatcher) -> CommandDispatcher:
    for name, handler in build_routes().items():
        dispatcher.on(name, handler)
    return dispatcher
