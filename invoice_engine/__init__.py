"""Command execution engine for conversational invoicing and estimating."""

from .calculator import Discount, DiscountType, Totals, calculate_totals, format_money
from .catalog import CATALOG_VERSION, FUNCTION_CATALOG, as_tools, function_names, get_function
from .client import CommandClient
from .config import EngineConfig, load_config
from .dispatcher import (
    ERRMSG_INTERNAL,
    ERRMSG_UNKNOWN_FUNCTION,
    CommandDispatcher,
    command_handler,
    validate_command_handler,
)
from .documents import ESTIMATE, INVOICE, DocumentKind
from .errors import (
    CommandRejectedError,
    ConflictError,
    DatastoreError,
    EngineError,
    GRPCError,
    InvalidArgumentError,
    NotFoundError,
    PartialFailureError,
    TransportError,
)
from .guard import CreationGuard
from .lifecycle import DocumentLifecycle
from .references import ReferenceFormat, ReferenceSequencer
from .resolver import ClientResolver
from .result import Result
from .server import (
    CommandServicer,
    add_command_servicer_to_server,
    configure_logging,
    create_server,
    get_transport_config,
    run_server,
    serve,
)
from .service import build_dispatcher, build_services
from .store import Datastore, InMemoryDatastore, OwnerScope, Query

__all__ = [
    "CATALOG_VERSION",
    "ERRMSG_INTERNAL",
    "ERRMSG_UNKNOWN_FUNCTION",
    "ESTIMATE",
    "FUNCTION_CATALOG",
    "INVOICE",
    "ClientResolver",
    "CommandClient",
    "CommandDispatcher",
    "CommandRejectedError",
    "CommandServicer",
    "ConflictError",
    "CreationGuard",
    "Datastore",
    "DatastoreError",
    "Discount",
    "DiscountType",
    "DocumentKind",
    "DocumentLifecycle",
    "EngineConfig",
    "EngineError",
    "GRPCError",
    "InMemoryDatastore",
    "InvalidArgumentError",
    "NotFoundError",
    "OwnerScope",
    "PartialFailureError",
    "Query",
    "ReferenceFormat",
    "ReferenceSequencer",
    "Result",
    "Totals",
    "TransportError",
    "add_command_servicer_to_server",
    "as_tools",
    "build_dispatcher",
    "build_services",
    "calculate_totals",
    "command_handler",
    "configure_logging",
    "create_server",
    "format_money",
    "function_names",
    "get_function",
    "get_transport_config",
    "load_config",
    "run_server",
    "serve",
    "validate_command_handler",
]
