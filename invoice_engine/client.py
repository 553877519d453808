"""Client for the command engine's gRPC service."""

import os
from typing import Optional, Union

import grpc

from .codec import EXECUTE_METHOD, LIST_FUNCTIONS_METHOD, decode_json, encode_json
from .errors import GRPCError
from .result import Result

DEFAULT_ENDPOINT = "localhost:50052"


def _create_channel(endpoint: str) -> grpc.Channel:
    """Create a gRPC channel for the given endpoint.

    Supports both TCP (host:port) and Unix Domain Sockets (file paths).
    UDS paths are detected by leading '/' or './' and converted to unix: URIs.
    Note: grpc-python uses unix:path for relative, unix:///path for absolute.
    """
    if endpoint.startswith("./"):
        return grpc.insecure_channel(f"unix:{endpoint}")
    elif endpoint.startswith("/"):
        return grpc.insecure_channel(f"unix://{endpoint}")
    return grpc.insecure_channel(endpoint)


class CommandClient:
    """Runs catalog functions on a remote engine."""

    def __init__(self, channel: grpc.Channel):
        self._channel = channel
        self._execute = channel.unary_unary(
            EXECUTE_METHOD,
            request_serializer=encode_json,
            response_deserializer=decode_json,
        )
        self._list_functions = channel.unary_unary(
            LIST_FUNCTIONS_METHOD,
            request_serializer=encode_json,
            response_deserializer=decode_json,
        )

    @classmethod
    def connect(cls, endpoint: str) -> "CommandClient":
        """Connect to an engine at the given endpoint."""
        return cls(_create_channel(endpoint))

    @classmethod
    def from_env(
        cls, env_var: str = "INVOICE_ENGINE_ENDPOINT", default: str = DEFAULT_ENDPOINT
    ) -> "CommandClient":
        """Connect using an environment variable with fallback."""
        return cls.connect(os.environ.get(env_var, default))

    def execute(
        self,
        function_name: str,
        arguments: Union[dict, str, None],
        owner_id: str,
        timeout: Optional[float] = None,
    ) -> Result:
        """Run one function for one owner."""
        request = {"function_name": function_name, "arguments": arguments, "owner_id": owner_id}
        try:
            response = self._execute(request, timeout=timeout)
        except grpc.RpcError as e:
            raise GRPCError(e) from e
        return Result.from_dict(response)

    def list_functions(self) -> list[dict]:
        """Return the function catalog in tool format."""
        try:
            response = self._list_functions({})
        except grpc.RpcError as e:
            raise GRPCError(e) from e
        return response.get("functions", [])

    def close(self) -> None:
        """Close the underlying channel."""
        self._channel.close()
