"""Validation helpers for handler precondition checks.

Eliminates repeated validation boilerplate across command handlers.
"""

from collections.abc import Collection
from typing import Any, Optional

from .errors import CommandRejectedError, InvalidArgumentError, NotFoundError


def require_present(value: Any, field: str) -> None:
    """Require that an argument was supplied and is not blank."""
    if value is None or (isinstance(value, str) and not value.strip()):
        raise InvalidArgumentError(
            f"Missing required parameter: {field}",
            reason=f"Missing required parameter: {field}",
        )


def require_found(row: Optional[dict], error_msg: str) -> dict:
    """Require that a lookup returned a row, and return it."""
    if row is None:
        raise NotFoundError(error_msg)
    return row


def require_confirmed(flag: Optional[bool], error_msg: str) -> None:
    """Require an explicit confirmation flag for destructive operations."""
    if flag is not True:
        raise CommandRejectedError(error_msg, reason="Confirmation required")


def require_status_in(actual: str, allowed: Collection[str], error_msg: str) -> None:
    """Require that the current status is one of the allowed values."""
    if actual not in allowed:
        raise CommandRejectedError(error_msg)


def require_status_not(actual: str, forbidden: str, error_msg: str) -> None:
    """Require that the current status is NOT the forbidden value."""
    if actual == forbidden:
        raise CommandRejectedError(error_msg)
