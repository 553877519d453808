"""JSON wire format for the command service.

Requests and responses are plain JSON objects. Decimals travel as strings so
money amounts keep their exact value; dates use ISO 8601.
"""

import json
from datetime import date, datetime
from decimal import Decimal
from enum import Enum

SERVICE_NAME = "invoice_engine.CommandService"
EXECUTE_METHOD = f"/{SERVICE_NAME}/Execute"
LIST_FUNCTIONS_METHOD = f"/{SERVICE_NAME}/ListFunctions"


def _default(value):
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (set, frozenset)):
        return list(value)
    raise TypeError(f"{type(value).__name__} is not JSON serializable")


def encode_json(value) -> bytes:
    return json.dumps(value, default=_default, separators=(",", ":")).encode("utf-8")


def decode_json(payload: bytes) -> dict:
    """Decode a message body; an empty body is an empty object."""
    if not payload:
        return {}
    return json.loads(payload.decode("utf-8"))
