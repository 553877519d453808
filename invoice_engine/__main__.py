"""Command line entry point.

Usage:
    invoice-engine serve
    invoice-engine catalog
    invoice-engine exec --owner OWNER_ID FUNCTION [ARGUMENTS_JSON]

Example:
    invoice-engine exec --owner user-1 create_client '{"name": "Acme Corp"}'
"""

import argparse
import json
import sys

from .catalog import as_tools
from .client import CommandClient
from .codec import encode_json
from .errors import GRPCError
from .server import serve


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="invoice-engine",
        description="Conversational invoicing command engine.",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("serve", help="Run the gRPC command service")
    commands.add_parser("catalog", help="Print the function catalog as JSON")

    run = commands.add_parser("exec", help="Run one function on a running service")
    run.add_argument("--owner", required=True, help="Owner id the call runs for")
    run.add_argument(
        "--endpoint",
        default=None,
        help="Service endpoint (default: $INVOICE_ENGINE_ENDPOINT or localhost:50052)",
    )
    run.add_argument("function", help="Function name from the catalog")
    run.add_argument("arguments", nargs="?", default="{}", help="Arguments as a JSON object")
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    if args.command == "serve":
        serve()
        return 0

    if args.command == "catalog":
        print(json.dumps(as_tools(), indent=2))
        return 0

    client = CommandClient.connect(args.endpoint) if args.endpoint else CommandClient.from_env()
    try:
        result = client.execute(args.function, args.arguments, args.owner)
    except GRPCError as e:
        print(f"Error: {e.details or e}", file=sys.stderr)
        return 1
    finally:
        client.close()

    print(encode_json(result.to_dict()).decode("utf-8"))
    return 0 if result.success else 2


if __name__ == "__main__":
    sys.exit(main())
