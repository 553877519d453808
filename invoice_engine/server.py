"""gRPC server for the command engine.

Supports both TCP and Unix Domain Socket (UDS) transports. The service is
registered through a generic handler with JSON bodies, so no generated stubs
are needed. The dispatcher runs on one background asyncio loop shared by all
gRPC worker threads.
"""

import asyncio
import logging
import os
import threading
from concurrent import futures
from typing import Callable, Optional

import grpc
import structlog
from grpc_health.v1 import health, health_pb2, health_pb2_grpc

from .catalog import CATALOG_VERSION, as_tools
from .codec import SERVICE_NAME, decode_json, encode_json
from .config import EngineConfig, load_config
from .dispatcher import CommandDispatcher
from .service import build_dispatcher
from .store import Datastore, InMemoryDatastore

logger = structlog.get_logger()


def configure_logging(level: str = "info") -> None:
    """Configure structlog with JSON rendering and ISO timestamps."""
    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, level.upper(), logging.INFO)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
    )


def get_transport_config() -> tuple[str, str]:
    """Get transport configuration from environment.

    Returns:
        Tuple of (transport_type, address)
        - For TCP: ("tcp", "[::]:{port}")
        - For UDS: ("uds", "unix:{socket_path}")

    Environment variables:
        TRANSPORT_TYPE: "tcp" (default) or "uds"
        UDS_BASE_PATH: Base directory for sockets (default: /tmp/invoice-engine)
        SERVICE_NAME: Socket file name (default: invoice-engine)
        PORT: TCP port (default: 50052)
    """
    transport = os.environ.get("TRANSPORT_TYPE", "tcp").lower()

    if transport == "uds":
        base_path = os.environ.get("UDS_BASE_PATH", "/tmp/invoice-engine")
        service_name = os.environ.get("SERVICE_NAME", "invoice-engine")
        socket_path = f"{base_path}/{service_name}.sock"

        os.makedirs(os.path.dirname(socket_path), exist_ok=True)

        # Remove stale socket file if exists
        if os.path.exists(socket_path):
            os.remove(socket_path)

        return ("uds", f"unix:{socket_path}")

    port = os.environ.get("PORT", "50052")
    return ("tcp", f"[::]:{port}")


# ============================================================================
# Event loop bridge
# ============================================================================


class BackgroundLoop:
    """An asyncio event loop running on its own daemon thread.

    gRPC handlers run on pool threads; they submit coroutines here so every
    dispatch shares one loop and one creation guard.
    """

    def __init__(self) -> None:
        self.loop = asyncio.new_event_loop()
        self._thread = threading.Thread(
            target=self._run, name="invoice-engine-loop", daemon=True
        )

    def _run(self) -> None:
        asyncio.set_event_loop(self.loop)
        self.loop.run_forever()

    def start(self) -> "BackgroundLoop":
        self._thread.start()
        return self

    def run(self, coro, timeout: Optional[float] = None):
        """Run a coroutine on the loop and block for its result."""
        return asyncio.run_coroutine_threadsafe(coro, self.loop).result(timeout)

    def stop(self) -> None:
        self.loop.call_soon_threadsafe(self.loop.stop)
        self._thread.join()
        self.loop.close()


# ============================================================================
# Servicer
# ============================================================================


class CommandServicer:
    """Exposes the dispatcher and the function catalog over gRPC.

    Execute takes ``{function_name, arguments, owner_id}`` and always answers
    with a result envelope; failed operations are reported inside the
    envelope, not as gRPC errors. Only a request without a function name is
    rejected at the transport level.
    """

    def __init__(
        self,
        dispatcher: CommandDispatcher,
        loop: BackgroundLoop,
        timeout: Optional[float] = None,
    ) -> None:
        self.dispatcher = dispatcher
        self.loop = loop
        self.timeout = timeout

    def Execute(self, request: dict, context: grpc.ServicerContext) -> dict:
        function_name = request.get("function_name")
        if not function_name:
            context.abort(grpc.StatusCode.INVALID_ARGUMENT, "function_name is required")
        result = self.loop.run(
            self.dispatcher.execute(
                function_name, request.get("arguments"), request.get("owner_id")
            ),
            self.timeout,
        )
        return result.to_dict()

    def ListFunctions(self, request: dict, context: grpc.ServicerContext) -> dict:
        return {"version": CATALOG_VERSION, "functions": as_tools()}


def add_command_servicer_to_server(servicer: CommandServicer, server: grpc.Server) -> None:
    """Register the command service on a gRPC server."""
    handlers = {
        "Execute": grpc.unary_unary_rpc_method_handler(
            servicer.Execute,
            request_deserializer=decode_json,
            response_serializer=encode_json,
        ),
        "ListFunctions": grpc.unary_unary_rpc_method_handler(
            servicer.ListFunctions,
            request_deserializer=decode_json,
            response_serializer=encode_json,
        ),
    }
    server.add_generic_rpc_handlers(
        (grpc.method_handlers_generic_handler(SERVICE_NAME, handlers),)
    )


# ============================================================================
# Server lifecycle
# ============================================================================


def create_server(
    add_servicer_func: Callable,
    servicer: object,
    service_name: str = "",
    max_workers: int = 10,
) -> tuple[grpc.Server, str]:
    """Create a gRPC server with health checking.

    Args:
        add_servicer_func: The add_*_to_server function
        servicer: The servicer instance
        service_name: Service name for health checking
        max_workers: Maximum thread pool workers

    Returns:
        Tuple of (server, address) where address includes the transport prefix
    """
    _, address = get_transport_config()

    server = grpc.server(futures.ThreadPoolExecutor(max_workers=max_workers))

    add_servicer_func(servicer, server)

    health_servicer = health.HealthServicer()
    health_pb2_grpc.add_HealthServicer_to_server(health_servicer, server)
    health_servicer.set("", health_pb2.HealthCheckResponse.SERVING)
    if service_name:
        health_servicer.set(service_name, health_pb2.HealthCheckResponse.SERVING)

    server.add_insecure_port(address)

    return server, address


def run_server(
    add_servicer_func: Callable,
    servicer: object,
    service_name: str = "",
    default_port: str = "50052",
) -> None:
    """Run a gRPC server until termination.

    Args:
        add_servicer_func: The add_*_to_server function
        servicer: The servicer instance
        service_name: Service name for logging and health checking
        default_port: Default TCP port if PORT env not set
    """
    if "PORT" not in os.environ:
        os.environ["PORT"] = default_port

    server, address = create_server(add_servicer_func, servicer, service_name)
    transport_type = os.environ.get("TRANSPORT_TYPE", "tcp").lower()

    logger.info(
        "server_started",
        service=service_name,
        transport=transport_type,
        address=address,
    )
    server.start()
    server.wait_for_termination()


def serve(
    datastore: Optional[Datastore] = None,
    config: Optional[EngineConfig] = None,
) -> None:
    """Build the engine and serve it until the process is stopped.

    Without a datastore the engine keeps its data in memory, which is only
    useful for trying it out.
    """
    config = config or load_config()
    configure_logging(config.log_level)
    if datastore is None:
        logger.warning("using_in_memory_datastore")
        datastore = InMemoryDatastore()

    loop = BackgroundLoop().start()
    servicer = CommandServicer(build_dispatcher(datastore, config), loop)
    try:
        run_server(add_command_servicer_to_server, servicer, SERVICE_NAME)
    finally:
        loop.stop()
