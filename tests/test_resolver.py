"""Tests for client name resolution."""

import asyncio

import pytest

from invoice_engine.errors import InvalidArgumentError
from invoice_engine.resolver import (
    ClientDetails,
    ClientResolver,
    match_normalized,
    normalize_name,
)
from invoice_engine.store import OwnerScope

from .fixtures import OWNER_A, OWNER_B


def run(coro):
    return asyncio.run(coro)


@pytest.fixture
def scope(datastore):
    return OwnerScope(datastore, OWNER_A)


def add_client(scope: OwnerScope, name: str, **columns) -> dict:
    return run(scope.insert_one("clients", {"name": name, **columns}))


class TestNormalizeName:
    @pytest.mark.parametrize(
        "name,expected",
        [
            ("Acme Corp", "acme"),
            ("ACME Corp.", "acme"),
            ("  Beta   Limited ", "beta"),
            ("Smith & Sons LLC", "smith & sons"),
            ("Consulting", "consulting"),
        ],
    )
    def test_normalize(self, name, expected) -> None:
        assert normalize_name(name) == expected

    def test_only_one_suffix_is_dropped(self) -> None:
        assert normalize_name("Gamma Solutions Ltd") == "gamma solutions"

    def test_match_normalized(self) -> None:
        clients = [{"name": "Beta Ltd"}]
        assert match_normalized("beta limited", clients) is clients[0]


class TestClientResolver:
    def test_exact_match_ignores_case(self, scope) -> None:
        acme = add_client(scope, "Acme Corp")

        found = run(ClientResolver().resolve(scope, ClientDetails("acme corp")))

        assert found.client["id"] == acme["id"]
        assert found.matched_by == "exact"
        assert not found.created

    def test_substring_match(self, scope) -> None:
        acme = add_client(scope, "Acme Corporation")

        found = run(ClientResolver().find(scope, "Acme"))

        assert found.client["id"] == acme["id"]
        assert found.matched_by == "substring"

    def test_normalized_match(self, scope) -> None:
        beta = add_client(scope, "Beta Ltd")

        found = run(ClientResolver().find(scope, "beta limited"))

        assert found.client["id"] == beta["id"]
        assert found.matched_by == "normalized"

    def test_email_wins_over_name(self, scope) -> None:
        add_client(scope, "Acme Corp")
        billing = add_client(scope, "Acme Billing", email="ap@acme.test")

        found = run(ClientResolver().find(scope, "Acme Corp", email="ap@acme.test"))

        assert found.client["id"] == billing["id"]
        assert found.matched_by == "email"

    def test_oldest_client_wins_a_tie(self, scope) -> None:
        first = add_client(scope, "Acme North")
        add_client(scope, "Acme South")

        found = run(ClientResolver().find(scope, "Acme"))

        assert found.client["id"] == first["id"]

    def test_no_match(self, scope) -> None:
        add_client(scope, "Acme Corp")
        assert run(ClientResolver().find(scope, "Zeta")) is None

    def test_unknown_client_is_created(self, scope, datastore) -> None:
        resolution = run(
            ClientResolver().resolve(
                scope, ClientDetails("Zeta GmbH", email=" zeta@example.com ", phone="  ")
            )
        )

        assert resolution.created
        assert resolution.matched_by == "created"
        assert resolution.client["name"] == "Zeta GmbH"
        assert resolution.client["email"] == "zeta@example.com"
        assert resolution.client["phone"] is None
        assert len(datastore.rows("clients")) == 1

    def test_other_owners_clients_are_invisible(self, datastore) -> None:
        other = OwnerScope(datastore, OWNER_B)
        run(other.insert_one("clients", {"name": "Acme Corp"}))

        scope = OwnerScope(datastore, OWNER_A)
        resolution = run(ClientResolver().resolve(scope, ClientDetails("Acme Corp")))

        assert resolution.created

    def test_blank_contact_fields_are_filled_in(self, scope) -> None:
        add_client(scope, "Acme Corp", email="old@acme.test", phone=None)

        resolution = run(
            ClientResolver().resolve(
                scope, ClientDetails("Acme Corp", email="new@acme.test", phone="555-0100")
            )
        )

        assert resolution.client["phone"] == "555-0100"
        # Existing values are never overwritten.
        assert resolution.client["email"] == "old@acme.test"

    def test_empty_name_is_rejected(self, scope) -> None:
        with pytest.raises(InvalidArgumentError) as exc_info:
            run(ClientResolver().find(scope, "   "))
        assert exc_info.value.reason == "Missing required parameter: client_name"


class TestSuffixVariants:
    """Resolving 'Acme Corp' when stored names differ by suffix or extension."""

    def test_matches_longer_suffix_by_substring(self, scope) -> None:
        corporation = add_client(scope, "acme corporation")

        found = run(ClientResolver().find(scope, "Acme Corp"))

        assert found.client["id"] == corporation["id"]
        # Substring runs before normalized, and "acme corp" is inside "acme corporation".
        assert found.matched_by == "substring"

    def test_older_suffix_variant_beats_extended_name(self, scope) -> None:
        corporation = add_client(scope, "acme corporation")
        add_client(scope, "Acme Corp East")

        found = run(ClientResolver().find(scope, "Acme Corp"))

        assert found.client["id"] == corporation["id"]
        assert found.matched_by == "substring"

    def test_older_extended_name_wins_when_created_first(self, scope) -> None:
        east = add_client(scope, "Acme Corp East")
        add_client(scope, "acme corporation")

        found = run(ClientResolver().find(scope, "Acme Corp"))

        assert found.client["id"] == east["id"]
        assert found.matched_by == "substring"

    def test_exact_name_beats_both(self, scope) -> None:
        add_client(scope, "acme corporation")
        add_client(scope, "Acme Corp East")
        acme = add_client(scope, "ACME CORP")

        found = run(ClientResolver().find(scope, "Acme Corp"))

        assert found.client["id"] == acme["id"]
        assert found.matched_by == "exact"

    def test_resolve_reuses_match_instead_of_creating(self, scope, datastore) -> None:
        add_client(scope, "acme corporation")
        add_client(scope, "Acme Corp East")

        resolution = run(ClientResolver().resolve(scope, ClientDetails("Acme Corp")))

        assert not resolution.created
        assert resolution.client["name"] == "acme corporation"
        assert len(datastore.rows("clients")) == 2
