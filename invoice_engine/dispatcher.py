"""Name-based dispatch of model-chosen functions to handlers.

CommandDispatcher maps a function name to a registered handler, validates
the arguments into the handler's parameter record and wraps whatever
happens in a Result. It never raises.

The @command_handler decorator declares which parameter record a handler
takes and checks the handler's signature when the module is imported.
"""

from __future__ import annotations

import inspect
import json
import typing
from functools import wraps
from typing import Any, Awaitable, Callable, Optional, Union

import pydantic
import structlog

from .catalog import required_parameters
from .context import HandlerContext, Services
from .errors import EngineError, InvalidArgumentError
from .params import CommandParams
from .result import Result
from .store import Datastore, OwnerScope

logger = structlog.get_logger()

# Error message constants.
ERRMSG_UNKNOWN_FUNCTION = "Function not found"
ERRMSG_INTERNAL = "An error occurred while executing the function"
ERRMSG_MISSING_OWNER = "Missing owner id"

Handler = Callable[[HandlerContext, CommandParams], Awaitable[Result]]


# ============================================================================
# @command_handler decorator
# ============================================================================


def validate_command_handler(
    func: Callable,
    params_type: type,
    params_index: int,
    decorator_name: str,
) -> str:
    """Validate a command handler's signature.

    The hinted type must be ``params_type`` or one of its bases, so one
    handler can serve several functions whose records share a base.

    Args:
        func: The function being decorated.
        params_type: Parameter record from the decorator argument.
        params_index: Index of the params parameter.
        decorator_name: Name of decorator for error messages.

    Returns:
        The name of the params parameter.

    Raises:
        TypeError: If validation fails.
    """
    hints = typing.get_type_hints(func)
    sig = inspect.signature(func)
    params = list(sig.parameters.keys())

    if len(params) < params_index + 1:
        raise TypeError(f"{func.__name__}: must have a params parameter")

    params_name = params[params_index]
    if params_name not in hints:
        raise TypeError(f"{func.__name__}: missing type hint for '{params_name}'")

    hint_type = hints[params_name]
    if not (isinstance(hint_type, type) and issubclass(params_type, hint_type)):
        raise TypeError(
            f"{func.__name__}: @{decorator_name}({params_type.__name__}) "
            f"doesn't match type hint {getattr(hint_type, '__name__', hint_type)}"
        )

    if not inspect.iscoroutinefunction(func):
        raise TypeError(f"{func.__name__}: handlers must be async")

    return params_name


def command_handler(params_type: type[CommandParams]):
    """Decorator for handler functions.

    Signature of the decorated function:
        async handler(ctx: HandlerContext, params: ParamsRecord) -> Result

    Example:
        @command_handler(CreateClientParams)
        async def handle_create_client(ctx: HandlerContext, params: CreateClientParams) -> Result:
            ...

        dispatcher.on("create_client", handle_create_client)

    Args:
        params_type: The pydantic record the arguments are validated into.

    Raises:
        TypeError: If the type hint is missing or doesn't match params_type.
    """

    def decorator(func: Callable) -> Handler:
        validate_command_handler(func, params_type, params_index=1, decorator_name="command_handler")

        @wraps(func)
        async def wrapper(ctx: HandlerContext, params: CommandParams) -> Result:
            return await func(ctx, params)

        wrapper._params_type = params_type
        return wrapper

    return decorator


def describe_validation_error(exc: pydantic.ValidationError) -> InvalidArgumentError:
    """Turn the first pydantic error into a message the model can act on."""
    first = exc.errors()[0]
    field = ".".join(str(part) for part in first["loc"]) or "arguments"
    if first["type"] == "missing":
        message = f"Missing required parameter: {field}"
        return InvalidArgumentError(message, reason=message)
    return InvalidArgumentError(f"Invalid value for {field}: {first['msg']}")


# ============================================================================
# CommandDispatcher
# ============================================================================


class CommandDispatcher:
    """Routes ``(function name, arguments, owner id)`` to a handler.

    Stateless apart from its routing table, so a single instance serves
    every owner and every concurrent call.

    Example::

        dispatcher = (CommandDispatcher(datastore, services)
            .on("create_client", handle_create_client)
            .on("search_clients", handle_search_clients))

        result = await dispatcher.execute("create_client", {"name": "Acme"}, owner_id)
    """

    def __init__(self, datastore: Datastore, services: Services) -> None:
        self.datastore = datastore
        self.services = services
        self._handlers: dict[str, Handler] = {}

    def on(self, name: str, handler: Handler) -> CommandDispatcher:
        """Register a handler decorated with @command_handler under a name."""
        if not hasattr(handler, "_params_type"):
            raise TypeError(
                f"{getattr(handler, '__name__', handler)}: must be decorated with @command_handler"
            )
        if name in self._handlers:
            raise ValueError(f"Handler already registered for {name}")
        self._handlers[name] = handler
        return self

    def functions(self) -> list[str]:
        return list(self._handlers)

    def handles(self, name: str) -> bool:
        return name in self._handlers

    def _parse_arguments(
        self, function_name: str, params_type: type[CommandParams], arguments: Any
    ) -> CommandParams:
        if arguments is None or arguments == "":
            arguments = {}
        elif isinstance(arguments, (str, bytes)):
            try:
                arguments = json.loads(arguments)
            except ValueError as e:
                raise InvalidArgumentError("Arguments are not valid JSON", cause=e) from e
        if not isinstance(arguments, dict):
            raise InvalidArgumentError("Arguments must be a JSON object")

        for field in required_parameters(function_name):
            value = arguments.get(field)
            if value is None or value == "" or value == []:
                message = f"Missing required parameter: {field}"
                raise InvalidArgumentError(message, reason=message)

        try:
            return params_type.model_validate(arguments)
        except pydantic.ValidationError as e:
            raise describe_validation_error(e) from e

    async def execute(
        self,
        function_name: str,
        arguments: Union[dict, str, None],
        owner_id: Optional[str],
    ) -> Result:
        """Run one function for one owner and always return a Result."""
        log = logger.bind(function=function_name, owner_id=owner_id)

        handler = self._handlers.get(function_name)
        if handler is None:
            log.warning("unknown_function")
            return Result.fail(f"Unknown function: {function_name}", ERRMSG_UNKNOWN_FUNCTION)

        try:
            if not owner_id:
                raise InvalidArgumentError(
                    "An owner id is required to run functions.", reason=ERRMSG_MISSING_OWNER
                )
            params = self._parse_arguments(function_name, handler._params_type, arguments)
            ctx = HandlerContext(
                owner_id=owner_id,
                function_name=function_name,
                store=OwnerScope(self.datastore, owner_id),
                services=self.services,
                log=log,
            )
            log.info("function_started")
            result = await handler(ctx, params)
        except EngineError as e:
            log.warning("function_failed", reason=e.reason, error=str(e))
            return Result.fail(e.message, e.reason)
        except Exception as e:
            log.exception("function_crashed", error=str(e))
            return Result.fail(ERRMSG_INTERNAL, str(e))

        log.info("function_completed", success=result.success)
        return result
