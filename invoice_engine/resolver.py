"""Client resolution: map a free-text name to an existing client or a new one.

Names arrive from a language model, so "Acme", "ACME Corp" and "acme corp."
must all land on the same client. Resolution runs a cascade of matching
strategies, strictest first, over the owner's clients and only creates a new
client when none of them matches.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, Optional

import structlog

from .errors import InvalidArgumentError
from .store import OwnerScope

logger = structlog.get_logger()

CLIENTS = "clients"

_SUFFIX = re.compile(
    r"\s+(corp|corporation|inc|incorporated|llc|ltd|limited|co|company|sales"
    r"|group|enterprises|solutions|services|consulting)\.?$"
)
_WHITESPACE = re.compile(r"\s+")

# Contact columns a request may fill in on a matched client.
CONTACT_FIELDS = ("email", "phone", "address_client", "tax_number")


def normalize_name(name: str) -> str:
    """Lowercase, drop one trailing company suffix, collapse whitespace."""
    normalized = name.lower().strip()
    normalized = _SUFFIX.sub("", normalized)
    return _WHITESPACE.sub(" ", normalized).strip()


# ============================================================================
# Name matching strategies
# ============================================================================

Strategy = Callable[[str, list[dict]], Optional[dict]]


def match_exact(name: str, candidates: list[dict]) -> Optional[dict]:
    wanted = name.strip().lower()
    for client in candidates:
        if (client.get("name") or "").strip().lower() == wanted:
            return client
    return None


def match_substring(name: str, candidates: list[dict]) -> Optional[dict]:
    wanted = name.strip().lower()
    for client in candidates:
        existing = (client.get("name") or "").strip().lower()
        if existing and (wanted in existing or existing in wanted):
            return client
    return None


def match_normalized(name: str, candidates: list[dict]) -> Optional[dict]:
    wanted = normalize_name(name)
    for client in candidates:
        if normalize_name(client.get("name") or "") == wanted:
            return client
    return None


NAME_STRATEGIES: tuple[tuple[str, Strategy], ...] = (
    ("exact", match_exact),
    ("substring", match_substring),
    ("normalized", match_normalized),
)


# ============================================================================
# Resolver
# ============================================================================


@dataclass(frozen=True)
class ClientDetails:
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    tax_number: Optional[str] = None

    def contact_columns(self) -> dict:
        return dict(zip(CONTACT_FIELDS, (self.email, self.phone, self.address, self.tax_number)))


@dataclass(frozen=True)
class ClientResolution:
    client: dict
    matched_by: str
    created: bool = False


class ClientResolver:
    """Resolves client names for one owner through a fixed strategy cascade.

    Order: exact e-mail, exact name (case-insensitive), substring in either
    direction, then normalized equality. The first strategy to return a
    client wins. Candidates are read oldest first so a tie always resolves
    to the same client.
    """

    def __init__(self, strategies: tuple[tuple[str, Strategy], ...] = NAME_STRATEGIES):
        self.strategies = strategies

    async def find(
        self, store: OwnerScope, name: str, email: Optional[str] = None
    ) -> Optional[ClientResolution]:
        """Run the cascade without creating anything."""
        if not name or not name.strip():
            raise InvalidArgumentError(
                "Client name is required",
                reason="Missing required parameter: client_name",
            )

        if email:
            by_email = await store.first(
                store.query(CLIENTS).eq("email", email.strip()).order("created_at")
            )
            if by_email is not None:
                return ClientResolution(by_email, "email")

        candidates = await store.select(store.query(CLIENTS).order("created_at"))
        for tag, strategy in self.strategies:
            found = strategy(name, candidates)
            if found is not None:
                return ClientResolution(found, tag)
        return None

    async def resolve(self, store: OwnerScope, details: ClientDetails) -> ClientResolution:
        """Find the client named in a request, creating it when unknown."""
        found = await self.find(store, details.name, details.email)
        if found is not None:
            client = await self._fill_blanks(store, found.client, details)
            logger.info(
                "client_resolved",
                owner_id=store.owner_id,
                requested=details.name,
                client_id=client["id"],
                matched_by=found.matched_by,
            )
            return ClientResolution(client, found.matched_by)

        client = await store.insert_one(
            CLIENTS,
            {
                "name": details.name.strip(),
                **{k: _blank_to_none(v) for k, v in details.contact_columns().items()},
                "notes": None,
            },
        )
        logger.info(
            "client_created",
            owner_id=store.owner_id,
            name=client["name"],
            client_id=client["id"],
        )
        return ClientResolution(client, "created", created=True)

    async def _fill_blanks(
        self, store: OwnerScope, client: dict, details: ClientDetails
    ) -> dict:
        changes = {
            column: value.strip()
            for column, value in details.contact_columns().items()
            if value and value.strip() and not client.get(column)
        }
        if not changes:
            return client
        updated = await store.update(store.query(CLIENTS).eq("id", client["id"]), changes)
        return updated[0] if updated else client


def _blank_to_none(value: Optional[str]) -> Optional[str]:
    if value is None or not value.strip():
        return None
    return value.strip()
