"""Error types for the invoice engine.

Every failure a handler can produce is one of these. The dispatcher turns
them into failed result envelopes; nothing escapes to the caller.
"""

from typing import Optional

import grpc


class EngineError(Exception):
    """Base class for engine errors.

    ``message`` is the user-facing text placed in the result envelope and
    ``reason`` is the short error code that accompanies it.
    """

    reason = "Engine error"

    def __init__(
        self,
        message: str,
        cause: Optional[Exception] = None,
        reason: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.cause = cause
        if reason is not None:
            self.reason = reason

    def __str__(self) -> str:
        if self.cause:
            return f"{self.message}: {self.cause}"
        return self.message


class InvalidArgumentError(EngineError):
    """Invalid or missing argument provided by the caller."""

    reason = "Invalid arguments"


class NotFoundError(EngineError):
    """Referenced document or client does not exist for this owner."""

    reason = "Not found"


class ConflictError(EngineError):
    """Duplicate or in-flight creation. Safe to retry later."""

    reason = "Conflict"


class CommandRejectedError(EngineError):
    """Command was rejected due to business rule violation."""

    reason = "Command rejected"


class PartialFailureError(EngineError):
    """A multi-step write failed part way and was compensated."""

    reason = "Partial failure"


class DatastoreError(EngineError):
    """The persistence collaborator failed."""

    reason = "Datastore error"


class TransportError(EngineError):
    """Transport-level error."""

    def __init__(self, cause: Exception):
        super().__init__("transport error", cause)


class GRPCError(EngineError):
    """gRPC error from the server."""

    def __init__(self, cause: grpc.RpcError):
        super().__init__("grpc error", cause)
        self._rpc_error = cause

    @property
    def code(self) -> grpc.StatusCode:
        """Return the gRPC status code."""
        return self._rpc_error.code()

    @property
    def details(self) -> str:
        """Return the error details."""
        return self._rpc_error.details()

    def is_unavailable(self) -> bool:
        """Return True if the server could not be reached."""
        return self.code == grpc.StatusCode.UNAVAILABLE

    def is_invalid_argument(self) -> bool:
        """Return True if this is an INVALID_ARGUMENT error."""
        return self.code == grpc.StatusCode.INVALID_ARGUMENT
