"""Tests for reference formats and the shared per-owner sequence."""

import asyncio
from datetime import date

import pytest
from structlog.testing import capture_logs

from invoice_engine.documents import ESTIMATE, INVOICE
from invoice_engine.references import ReferenceFormat, ReferenceSequencer
from invoice_engine.store import InMemoryDatastore, OwnerScope

from .fixtures import OWNER_A, OWNER_B, TODAY, FlakyDatastore, fail_on


def run(coro):
    return asyncio.run(coro)


def sequencer(**kwargs) -> ReferenceSequencer:
    return ReferenceSequencer(today=lambda: TODAY, **kwargs)


class TestReferenceFormat:
    @pytest.mark.parametrize(
        "template,expected",
        [
            ("INV-001", ReferenceFormat("INV", False, False, 3)),
            ("INV-YYYY-MM-0001", ReferenceFormat("INV", True, True, 4)),
            ("inv-yyyy-001", ReferenceFormat("INV", True, False, 3)),
            ("INV-2024-001", ReferenceFormat("INV", True, False, 3)),
            ("EST-2024-03-001", ReferenceFormat("EST", True, True, 3)),
            ("Q1", ReferenceFormat("Q", False, False, 1)),
        ],
    )
    def test_parse(self, template, expected) -> None:
        assert ReferenceFormat.parse(template) == expected

    def test_empty_template_uses_default(self) -> None:
        assert ReferenceFormat.parse(None) == ReferenceFormat("INV", False, False, 3)

    def test_render(self) -> None:
        fmt = ReferenceFormat.parse("INV-YYYY-MM-0001")
        assert fmt.render(7, date(2024, 3, 15)) == "INV-2024-03-0007"

    def test_render_grows_past_width(self) -> None:
        assert ReferenceFormat.parse("INV-001").render(1234, TODAY) == "INV-1234"


class TestReferenceSequencer:
    def test_first_reference(self, datastore) -> None:
        scope = OwnerScope(datastore, OWNER_A)
        assert run(sequencer().next_reference(scope, INVOICE)) == "INV-001"

    def test_sequence_is_shared_by_invoices_and_estimates(self, datastore) -> None:
        scope = OwnerScope(datastore, OWNER_A)
        run(scope.insert_one(INVOICE.table, {INVOICE.number_field: "INV-003"}))
        run(scope.insert_one(ESTIMATE.table, {ESTIMATE.number_field: "INV-007"}))

        assert run(sequencer().next_reference(scope, INVOICE)) == "INV-008"
        assert run(sequencer().next_reference(scope, ESTIMATE)) == "INV-008"

    def test_other_owners_do_not_advance_the_sequence(self, datastore) -> None:
        other = OwnerScope(datastore, OWNER_B)
        run(other.insert_one(INVOICE.table, {INVOICE.number_field: "INV-050"}))

        scope = OwnerScope(datastore, OWNER_A)
        assert run(sequencer().next_reference(scope, INVOICE)) == "INV-001"

    def test_owner_format_from_business_settings(self, datastore) -> None:
        scope = OwnerScope(datastore, OWNER_A)
        run(scope.save_singleton("business_settings", {"invoice_reference_format": "INV-YYYY-MM-0001"}))
        run(scope.insert_one(INVOICE.table, {INVOICE.number_field: "INV-2024-02-0012"}))

        assert run(sequencer().next_reference(scope, INVOICE)) == "INV-2024-03-0013"

    def test_failure_falls_back_to_clock_reference(self) -> None:
        datastore = FlakyDatastore(fail_on("select", "invoices"))
        scope = OwnerScope(datastore, OWNER_A)
        seq = sequencer(clock=lambda: 1700000123.5)

        with capture_logs() as logs:
            reference = run(seq.next_reference(scope, ESTIMATE))

        assert reference == "EST-123500"
        failures = [entry for entry in logs if entry["event"] == "reference_allocation_failed"]
        assert failures and failures[0]["fallback"] == "EST-123500"

    def test_reference_exists_checks_both_kinds(self, datastore) -> None:
        scope = OwnerScope(datastore, OWNER_A)
        run(scope.insert_one(ESTIMATE.table, {ESTIMATE.number_field: "INV-004"}))

        assert run(sequencer().reference_exists(scope, "INV-004"))
        assert not run(sequencer().reference_exists(scope, "INV-005"))


class TestReserve:
    """Allocation and insert inside ``reserve`` are serialised per owner."""

    @staticmethod
    async def store_under_new_reference(seq, scope, kind) -> str:
        async with seq.reserve(scope, kind) as reference:
            await scope.insert_one(kind.table, {kind.number_field: reference})
        return reference

    def test_invoice_and_estimate_get_distinct_references(self) -> None:
        scope = OwnerScope(InMemoryDatastore(latency=0.005), OWNER_A)
        seq = sequencer()

        async def race():
            return await asyncio.gather(
                self.store_under_new_reference(seq, scope, INVOICE),
                self.store_under_new_reference(seq, scope, ESTIMATE),
            )

        assert sorted(run(race())) == ["INV-001", "INV-002"]

    def test_owners_do_not_share_a_lock(self) -> None:
        datastore = InMemoryDatastore(latency=0.005)
        seq = sequencer()

        async def race():
            return await asyncio.gather(
                self.store_under_new_reference(seq, OwnerScope(datastore, OWNER_A), INVOICE),
                self.store_under_new_reference(seq, OwnerScope(datastore, OWNER_B), INVOICE),
            )

        assert run(race()) == ["INV-001", "INV-001"]
        assert seq.owner_lock(OWNER_A) is not seq.owner_lock(OWNER_B)
