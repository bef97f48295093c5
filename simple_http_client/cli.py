"""CLI entry point for simple-http-client.

Sends one request and prints the status code, response headers and body.
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from dataclasses import dataclass
from pathlib import Path

from simple_http_client.client import Client
from simple_http_client.config_loader import ConfigError, load_client_settings
from simple_http_client.models import ClientSettings

DEFAULT_URL = "https://httpbin.org/get"
URL_ENV_VAR = "API_URL"

METHODS = ("get", "post", "put", "delete")


def positive_float(value: str) -> float:
    """Parse and validate a positive float value.

    Raises:
        argparse.ArgumentTypeError: If value is not a positive number.
    """
    try:
        result = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid number '{value}'.")
    if result <= 0:
        raise argparse.ArgumentTypeError(f"Value must be positive, got {result}.")
    return result


def parse_query_param(value: str) -> tuple[str, str]:
    """Parse KEY=VALUE format. The value may be empty or contain '='."""
    if "=" not in value:
        raise argparse.ArgumentTypeError(
            f"Invalid query parameter '{value}'. Expected KEY=VALUE (e.g., 'name=John Doe')"
        )
    key, _, param_value = value.partition("=")
    if not key:
        raise argparse.ArgumentTypeError(f"Invalid query parameter '{value}'. Key cannot be empty.")
    return (key, param_value)


def parse_header(value: str) -> tuple[str, str]:
    """Parse "Key: Value" format."""
    if ":" not in value:
        raise argparse.ArgumentTypeError(
            f"Invalid header '{value}'. Expected 'Key: Value' (e.g., 'Accept: application/json')"
        )
    key, _, header_value = value.partition(":")
    key = key.strip()
    if not key:
        raise argparse.ArgumentTypeError(f"Invalid header '{value}'. Key cannot be empty.")
    return (key, header_value.strip())


@dataclass
class RequestArgs:
    """Parsed arguments for a single request."""

    method: str
    url: str
    query: list[tuple[str, str]]
    headers: list[tuple[str, str]]
    data: str | None
    data_file: Path | None
    timeout: float | None
    debug: bool
    config: Path | None
    json_output: bool
    verbose: bool


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with one subcommand per HTTP method."""
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "url",
        nargs="?",
        default=None,
        help=f"Target URL (default: ${URL_ENV_VAR}, then {DEFAULT_URL})",
    )
    common.add_argument(
        "-q", "--query",
        type=parse_query_param,
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Query parameter (can be repeated; order is kept)",
    )
    common.add_argument(
        "-H", "--header",
        type=parse_header,
        action="append",
        default=[],
        metavar="'KEY: VALUE'",
        dest="headers",
        help="Request header (can be repeated)",
    )
    common.add_argument(
        "--timeout",
        type=positive_float,
        default=None,
        metavar="SECONDS",
        help="Request timeout in seconds (default: 0.5, or the config file value)",
    )
    common.add_argument(
        "--debug",
        action="store_true",
        help="Print the full request/response debug trace",
    )
    common.add_argument(
        "--config",
        type=Path,
        default=None,
        help="YAML client configuration file",
    )
    common.add_argument(
        "--json",
        action="store_true",
        dest="json_output",
        help="Pretty-print the response body as JSON",
    )
    common.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging",
    )

    body_parent = argparse.ArgumentParser(add_help=False)
    body_group = body_parent.add_mutually_exclusive_group()
    body_group.add_argument("-d", "--data", default=None, help="Request body")
    body_group.add_argument(
        "--data-file",
        type=Path,
        default=None,
        help="Read the request body from a file",
    )

    parser = argparse.ArgumentParser(
        prog="simple-http-client",
        description="Send an HTTP request and show the status, headers and body.",
    )
    subparsers = parser.add_subparsers(dest="method", required=True, help="HTTP method")

    subparsers.add_parser("get", parents=[common], help="Send a GET request")
    for method in METHODS[1:]:
        subparsers.add_parser(
            method,
            parents=[common, body_parent],
            help=f"Send a {method.upper()} request",
        )

    return parser


def parse_args(args: list[str] | None = None) -> RequestArgs:
    """Parse command-line arguments.

    Raises:
        SystemExit: If arguments are invalid (argparse behavior).
    """
    namespace = build_parser().parse_args(args)
    url = namespace.url or os.environ.get(URL_ENV_VAR) or DEFAULT_URL

    return RequestArgs(
        method=namespace.method.upper(),
        url=url,
        query=namespace.query,
        headers=namespace.headers,
        data=getattr(namespace, "data", None),
        data_file=getattr(namespace, "data_file", None),
        timeout=namespace.timeout,
        debug=namespace.debug,
        config=namespace.config,
        json_output=namespace.json_output,
        verbose=namespace.verbose,
    )


def main() -> int:
    """Main entry point."""
    try:
        args = parse_args()
        logging.basicConfig(
            level=logging.DEBUG if args.verbose else logging.WARNING,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )
        return run_request(args)
    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        return 1


def run_request(args: RequestArgs) -> int:
    """Send the request described by args and print the outcome.

    Returns:
        0 if the exchange completed (any status code), 1 otherwise.
    """
    try:
        settings = load_client_settings(args.config) if args.config else ClientSettings()
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if args.timeout is not None:
        settings.client.timeout = args.timeout
    if args.debug:
        settings.client.debug = True

    body: bytes | str | None = args.data
    if args.data_file is not None:
        try:
            body = args.data_file.read_bytes()
        except OSError as e:
            print(f"Error: Cannot read {args.data_file}: {e}", file=sys.stderr)
            return 1

    with Client.from_settings(settings) as client:
        client.do(args.method, args.url, args.query, body, args.headers)

        if client.error is not None:
            print(f"Error: {client.error}", file=sys.stderr)
            return 1

        if settings.client.debug:
            print(client.get_debug_info())

        print(f"Status: {client.status_code}")
        print("\nResponse Headers")
        for name, value in client.response_headers.items():
            print(f"  {name}: {value}")

        print("\nBody")
        print(_format_body(client, args.json_output))

    return 0


def _format_body(client: Client, json_output: bool) -> str:
    """Return the body, pretty-printed if requested and it parses as JSON."""
    if not json_output:
        return client.body
    try:
        return json.dumps(json.loads(client.body), indent=2, sort_keys=True)
    except json.JSONDecodeError:
        return client.body


if __name__ == "__main__":
    sys.exit(main())
