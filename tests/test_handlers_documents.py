"""Tests for the handlers shared by invoices and estimates."""

import asyncio
from decimal import Decimal

from invoice_engine.documents import INVOICE
from invoice_engine.store import InMemoryDatastore

from .fixtures import (
    OWNER_A,
    OWNER_B,
    FlakyDatastore,
    call,
    estimate_args,
    fail_on,
    invoice_args,
    line_item,
    make_engine,
)


class TestCreateDocument:
    def test_create_invoice(self, engine) -> None:
        result = call(engine, "create_invoice", invoice_args(tax_percentage=10))

        assert result.success, result.message
        assert result.message == (
            "Created invoice INV-001 for Acme Corp with 1 line item. "
            "Subtotal $100.00, tax $10.00, total $110.00. "
            "Acme Corp was added as a new client."
        )
        invoice = result.data["invoice"]
        assert invoice["invoice_number"] == "INV-001"
        assert invoice["status"] == "draft"
        assert invoice["invoice_date"] == "2024-03-15"
        assert invoice["due_date"] == "2024-04-14"
        assert invoice["client_name"] == "Acme Corp"
        assert "user_id" not in invoice
        assert result.data["client_matched_by"] == "created"
        assert result.data["calculations"]["total"] == Decimal("110")

    def test_existing_client_is_reused(self, engine, datastore) -> None:
        call(engine, "create_invoice", invoice_args())

        result = call(engine, "create_invoice", invoice_args("acme corp", [line_item(unit_price="50")]))

        assert result.data["invoice"]["invoice_number"] == "INV-002"
        assert result.data["client_matched_by"] == "exact"
        assert "new client" not in result.message
        assert len(datastore.rows("clients")) == 1

    def test_estimate_shares_the_invoice_sequence(self, engine) -> None:
        call(engine, "create_invoice", invoice_args())

        result = call(engine, "create_estimate", estimate_args())

        estimate = result.data["estimate"]
        assert estimate["estimate_number"] == "INV-002"
        assert estimate["valid_until_date"] == "2024-04-14"
        assert estimate["is_accepted"] is False

    def test_each_owner_has_its_own_sequence(self, engine) -> None:
        call(engine, "create_invoice", invoice_args(), owner_id=OWNER_A)

        result = call(engine, "create_invoice", invoice_args(), owner_id=OWNER_B)

        assert result.data["invoice"]["invoice_number"] == "INV-001"

    def test_discount_and_tax(self, engine) -> None:
        result = call(
            engine,
            "create_invoice",
            invoice_args(
                items=[line_item("Design", 2, "50"), line_item("Build", 1, "100")],
                discount_type="percentage",
                discount_value=10,
                tax_percentage=10,
            ),
        )

        assert "Subtotal $200.00, discount $20.00, tax $18.00, total $198.00." in result.message
        assert result.data["invoice"]["discount_type"] == "percentage"

    def test_default_tax_applied_from_settings(self, engine) -> None:
        call(engine, "update_business_settings", {"default_tax_rate": 20, "auto_apply_tax": True})

        result = call(engine, "create_invoice", invoice_args())

        assert result.data["calculations"]["total"] == Decimal("120")

    def test_payment_method_not_set_up_is_skipped(self, engine) -> None:
        result = call(engine, "create_invoice", invoice_args(enable_paypal=True))

        assert result.success
        assert result.data["invoice"]["paypal_active"] is False
        assert "PayPal could not be enabled because it is not set up yet." in result.message

    def test_invalid_line_item(self, engine) -> None:
        result = call(engine, "create_invoice", invoice_args(items=[line_item(quantity=0)]))

        assert not result.success
        assert result.error == "Invalid arguments"

    def test_unknown_design(self, engine, datastore) -> None:
        result = call(engine, "create_invoice", invoice_args(design="baroque"))

        assert not result.success
        assert "Unknown design" in result.message
        assert datastore.rows(INVOICE.table) == []

    def test_item_failure_leaves_nothing_behind(self) -> None:
        datastore = FlakyDatastore(fail_on("insert", INVOICE.items_table))
        engine = make_engine(datastore)

        result = call(engine, "create_invoice", invoice_args())

        assert not result.success
        assert result.error == "Partial failure"
        assert datastore.rows(INVOICE.table) == []

    def test_failed_creation_can_be_retried_at_once(self) -> None:
        datastore = FlakyDatastore(fail_on("insert", INVOICE.items_table))
        engine = make_engine(datastore)
        call(engine, "create_invoice", invoice_args())

        datastore.fail_when = lambda op, coll, payload: False
        result = call(engine, "create_invoice", invoice_args())

        assert result.success
        assert result.data["invoice"]["invoice_number"] == "INV-001"

    def test_usage_limit_enforced_when_enabled(self) -> None:
        engine = make_engine(enforce_usage_limits=True, free_plan_limit=1)
        call(engine, "create_invoice", invoice_args())

        result = call(engine, "create_estimate", estimate_args())

        assert not result.success
        assert result.error == "Usage limit reached"


class TestConcurrentCreation:
    """Two identical creates racing on one loop yield one document."""

    def test_duplicate_call_is_refused(self) -> None:
        datastore = InMemoryDatastore(latency=0.01)
        engine = make_engine(datastore)

        async def race():
            return await asyncio.gather(
                engine.execute("create_invoice", invoice_args(), OWNER_A),
                engine.execute("create_invoice", invoice_args(), OWNER_A),
            )

        results = asyncio.run(race())

        succeeded = [r for r in results if r.success]
        refused = [r for r in results if not r.success]
        assert len(succeeded) == 1
        assert len(refused) == 1
        assert refused[0].error == "Creation in progress"
        assert "already being created" in refused[0].message
        assert len(datastore.rows(INVOICE.table)) == 1

    def test_different_documents_get_distinct_numbers(self) -> None:
        datastore = InMemoryDatastore(latency=0.005)
        engine = make_engine(datastore)

        async def race():
            return await asyncio.gather(
                engine.execute("create_invoice", invoice_args("Acme Corp"), OWNER_A),
                engine.execute("create_invoice", invoice_args("Beta Ltd"), OWNER_A),
            )

        results = asyncio.run(race())

        assert all(r.success for r in results)
        numbers = sorted(r.data["invoice"]["invoice_number"] for r in results)
        assert numbers == ["INV-001", "INV-002"]

    def test_invoice_and_estimate_never_share_a_number(self) -> None:
        datastore = InMemoryDatastore(latency=0.005)
        engine = make_engine(datastore)

        async def race():
            return await asyncio.gather(
                engine.execute("create_invoice", invoice_args("Acme Corp"), OWNER_A),
                engine.execute("create_estimate", estimate_args("Beta Ltd"), OWNER_A),
            )

        invoice_result, estimate_result = asyncio.run(race())

        assert invoice_result.success and estimate_result.success
        numbers = sorted([
            invoice_result.data["invoice"]["invoice_number"],
            estimate_result.data["estimate"]["estimate_number"],
        ])
        assert numbers == ["INV-001", "INV-002"]


class TestReadDocuments:
    def test_get_details(self, engine) -> None:
        call(engine, "create_invoice", invoice_args(tax_percentage=10))

        result = call(engine, "get_invoice_details", {"invoice_number": "INV-001"})

        assert result.message.startswith("Invoice INV-001 for Acme Corp (draft)")
        assert "1. Consulting x1 @ $100.00 = $100.00" in result.message
        assert result.message.endswith("Total: $110.00")
        assert len(result.data["invoice"]["line_items"]) == 1

    def test_get_details_unknown(self, engine) -> None:
        result = call(engine, "get_invoice_details", {"invoice_number": "INV-404"})
        assert result.error == "Not found"

    def test_get_details_wildcard_is_literal(self, engine) -> None:
        call(engine, "create_invoice", invoice_args("Acme Corp"))
        call(engine, "create_invoice", invoice_args("Beta Ltd"))

        result = call(engine, "get_invoice_details", {"invoice_number": "INV-00_"})

        assert result.error == "Not found"

    def test_search_by_client(self, engine) -> None:
        call(engine, "create_invoice", invoice_args("Acme Corp"))
        call(engine, "create_invoice", invoice_args("Beta Ltd"))

        result = call(engine, "search_invoices", {"client_name": "acme"})

        assert result.data["count"] == 1
        assert result.data["invoices"][0]["client_name"] == "Acme Corp"

    def test_search_unknown_client(self, engine) -> None:
        result = call(engine, "search_invoices", {"client_name": "Zeta"})
        assert result.message == "No clients match 'Zeta', so no invoices were found."

    def test_search_by_amount(self, engine) -> None:
        call(engine, "create_invoice", invoice_args(items=[line_item(unit_price="50")]))
        call(engine, "create_invoice", invoice_args(items=[line_item(unit_price="500")]))

        result = call(engine, "search_invoices", {"min_amount": 100})

        assert [i["invoice_number"] for i in result.data["invoices"]] == ["INV-002"]

    def test_recent_empty(self, engine) -> None:
        result = call(engine, "get_recent_estimates")
        assert result.message == "You don't have any estimates yet."

    def test_recent_newest_first(self, engine) -> None:
        call(engine, "create_invoice", invoice_args("Acme Corp"))
        call(engine, "create_invoice", invoice_args("Beta Ltd"))

        result = call(engine, "get_recent_invoices", {"limit": 5, "status_filter": "all"})

        assert [i["invoice_number"] for i in result.data["invoices"]] == ["INV-002", "INV-001"]
        assert result.message.startswith("Your 2 most recent invoices:")


class TestEditDocuments:
    def test_update_details_recalculates(self, engine) -> None:
        call(engine, "create_invoice", invoice_args())

        result = call(engine, "update_invoice_details", {"invoice_number": "INV-001", "tax_percentage": 20})

        assert result.success
        assert result.message == "Updated invoice INV-001: tax 20%. New total $120.00."
        assert result.data["matched_by"] == "exact"

    def test_unknown_reference_falls_back_to_most_recent(self, engine) -> None:
        call(engine, "create_invoice", invoice_args("Acme Corp"))
        call(engine, "create_invoice", invoice_args("Beta Ltd"))

        result = call(engine, "update_invoice_details", {"invoice_number": "INV-999", "po_number": "PO-7"})

        assert result.success
        assert result.data["matched_by"] == "most_recent"
        assert result.data["invoice"]["invoice_number"] == "INV-002"
        assert "couldn't find invoice INV-999" in result.message

    def test_new_reference_must_be_free(self, engine) -> None:
        call(engine, "create_invoice", invoice_args("Acme Corp"))
        call(engine, "create_invoice", invoice_args("Beta Ltd"))

        result = call(
            engine, "update_invoice_details", {"invoice_number": "INV-002", "reference_number": "INV-001"}
        )

        assert result.error == "Conflict"

    def test_nothing_to_update(self, engine) -> None:
        call(engine, "create_invoice", invoice_args())
        result = call(engine, "update_invoice_details", {})
        assert result.error == "Invalid arguments"

    def test_add_update_and_remove_line_items(self, engine) -> None:
        call(engine, "create_invoice", invoice_args(tax_percentage=10))

        added = call(
            engine,
            "update_invoice_line_items",
            {"action": "add", "line_items": [{"item_name": "Hosting", "unit_price": 20, "quantity": 5}]},
        )
        assert "added 1 line item" in added.message
        assert added.data["calculations"]["total"] == Decimal("220")

        updated = call(
            engine,
            "update_invoice_line_items",
            {"action": "update", "line_items": [{"item_name": "consult", "quantity": 2}]},
        )
        assert updated.data["calculations"]["subtotal"] == Decimal("300")

        removed = call(
            engine, "update_invoice_line_items", {"action": "remove", "line_items": [{"item_index": 2}]}
        )
        assert removed.message.endswith("New total $220.00.")
        assert [i["item_name"] for i in removed.data["invoice"]["line_items"]] == ["Consulting"]

    def test_unknown_line_item(self, engine) -> None:
        call(engine, "create_invoice", invoice_args())

        result = call(
            engine,
            "update_invoice_line_items",
            {"action": "remove", "line_items": [{"item_name": "Catering"}]},
        )

        assert result.error == "Not found"

    def test_duplicate(self, engine) -> None:
        call(engine, "create_invoice", invoice_args(tax_percentage=10))

        result = call(engine, "duplicate_invoice", {"invoice_number": "INV-001", "new_client_name": "Beta Ltd"})

        assert result.success
        assert result.message == "Duplicated invoice INV-001 as INV-002 for Beta Ltd, total $110.00."
        assert len(result.data["invoice"]["line_items"]) == 1

    def test_delete_requires_confirmation(self, engine, datastore) -> None:
        call(engine, "create_invoice", invoice_args())

        refused = call(engine, "delete_invoice", {"invoice_number": "INV-001", "confirm": False})
        assert refused.error == "Confirmation required"

        deleted = call(engine, "delete_invoice", {"invoice_number": "INV-001", "confirm": True})
        assert deleted.message == "Deleted invoice INV-001."
        assert datastore.rows(INVOICE.table) == []
        assert datastore.rows(INVOICE.items_table) == []

    def test_delete_wildcard_matches_nothing(self, engine, datastore) -> None:
        call(engine, "create_invoice", invoice_args("Acme Corp"))
        call(engine, "create_invoice", invoice_args("Beta Ltd"))

        result = call(engine, "delete_invoice", {"invoice_number": "%", "confirm": True})

        assert result.error == "Not found"
        assert len(datastore.rows(INVOICE.table)) == 2

    def test_payment_methods_need_setup(self, engine) -> None:
        call(engine, "create_invoice", invoice_args())

        result = call(engine, "update_invoice_payment_methods", {"paypal_active": True, "stripe_active": False})

        assert "disabled card payments" in result.message
        assert result.data["skipped"] == ["PayPal"]

    def test_design_and_color(self, engine) -> None:
        call(engine, "create_invoice", invoice_args())

        design = call(engine, "update_invoice_design", {"design": "Modern"})
        color = call(engine, "update_invoice_color", {"color": "teal"})
        bad = call(engine, "update_invoice_appearance", {"color": "#12345"})

        assert design.data["invoice"]["invoice_design"] == "modern"
        assert color.data["invoice"]["accent_color"] == "#0D9488"
        assert bad.error == "Invalid arguments"

    def test_converted_estimate_is_read_only(self, engine) -> None:
        call(engine, "create_estimate", estimate_args())
        call(engine, "convert_estimate_to_invoice", {"estimate_number": "INV-001"})

        result = call(engine, "update_estimate_details", {"estimate_number": "INV-001", "notes": "late"})

        assert result.error == "Command rejected"
        assert "can no longer be edited" in result.message
