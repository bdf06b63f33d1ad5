"""CLI entry point for api-explorer.

Handles argument parsing and dispatches to list, show, url, send or
validate mode.
"""

from __future__ import annotations

import argparse
import asyncio
import base64
import logging
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from api_explorer.models import Catalog, CatalogEntry, ExplorerConfig, Notification, ResponseRecord


DEFAULT_TIMEOUT = 30.0


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


def parameter_arg(value: str) -> tuple[str, str]:
    """Parse NAME=VALUE for --param."""
    from api_explorer.config_loader import parse_key_value

    try:
        return parse_key_value(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e))


def header_arg(value: str) -> tuple[str, str]:
    """Parse 'Name: value' for --header."""
    from api_explorer.config_loader import parse_header

    try:
        return parse_header(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e))


def basic_auth_arg(value: str) -> str:
    """Parse USER:PASSWORD and return the matching Authorization header value."""
    user, sep, password = value.partition(":")
    if not sep or not user:
        raise argparse.ArgumentTypeError(
            f"Invalid credentials '{value}'. Expected USER:PASSWORD"
        )
    token = base64.b64encode(f"{user}:{password}".encode("utf-8")).decode("ascii")
    return f"Basic {token}"


@dataclass
class ListArgs:
    """Parsed arguments for list mode."""

    config: Path | None
    catalog: Path | None
    search: str = ""


@dataclass
class ShowArgs:
    """Parsed arguments for show mode."""

    config: Path | None
    catalog: Path | None
    endpoint: str


@dataclass
class UrlArgs:
    """Parsed arguments for url mode."""

    config: Path | None
    catalog: Path | None
    endpoint: str
    params: dict[str, str] = field(default_factory=dict)
    base_url: str | None = None


@dataclass
class SendArgs:
    """Parsed arguments for send mode."""

    config: Path | None
    catalog: Path | None
    endpoint: str
    params: dict[str, str] = field(default_factory=dict)
    headers: dict[str, str] = field(default_factory=dict)
    body: str | None = None
    body_file: Path | None = None
    authorization: str | None = None
    base_url: str | None = None
    timeout: float | None = None
    verbose: bool = False


@dataclass
class ValidateArgs:
    """Parsed arguments for validate mode."""

    config: Path | None
    catalog: Path | None


def _add_source_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to runtime configuration file (YAML)",
    )
    parser.add_argument(
        "--catalog",
        type=Path,
        default=None,
        help="Path to an endpoint catalog (JSON or YAML). Default: bundled Facturama sandbox catalog",
    )


def _add_request_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "endpoint",
        help="Endpoint title or 'METHOD /path' key (see 'list')",
    )
    parser.add_argument(
        "--param",
        type=parameter_arg,
        action="append",
        default=[],
        metavar="NAME=VALUE",
        dest="params",
        help="Parameter value (can be repeated). Names in the path template fill it; others go to the query string",
    )
    parser.add_argument(
        "--base-url",
        type=str,
        default=None,
        dest="base_url",
        help="Override the origin requests are sent to",
    )


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with list, show, url, send and validate subcommands."""
    parser = argparse.ArgumentParser(
        prog="api-explorer",
        description="Explore a catalog of REST endpoints and send live requests to a sandbox API.",
    )

    subparsers = parser.add_subparsers(dest="command", required=True, help="Mode")

    list_parser = subparsers.add_parser("list", help="List catalog endpoints by category")
    _add_source_arguments(list_parser)
    list_parser.add_argument(
        "--search",
        type=str,
        default="",
        help="Only show endpoints whose title, description or path contains this text",
    )

    show_parser = subparsers.add_parser("show", help="Show one endpoint's parameters and example body")
    _add_source_arguments(show_parser)
    show_parser.add_argument("endpoint", help="Endpoint title or 'METHOD /path' key")

    url_parser = subparsers.add_parser("url", help="Print the URL a request would be sent to")
    _add_source_arguments(url_parser)
    _add_request_arguments(url_parser)

    send_parser = subparsers.add_parser("send", help="Send a request and print the formatted response")
    _add_source_arguments(send_parser)
    _add_request_arguments(send_parser)
    send_parser.add_argument(
        "--header",
        type=header_arg,
        action="append",
        default=[],
        metavar="'NAME: VALUE'",
        dest="headers",
        help="Request header (can be repeated). Content-Type is always application/json",
    )
    body_group = send_parser.add_mutually_exclusive_group()
    body_group.add_argument(
        "--body",
        type=str,
        default=None,
        help="JSON request body (default: the endpoint's example body). Ignored for GET",
    )
    body_group.add_argument(
        "--body-file",
        type=Path,
        default=None,
        dest="body_file",
        help="Read the JSON request body from a file",
    )
    send_parser.add_argument(
        "--basic-auth",
        type=basic_auth_arg,
        default=None,
        metavar="USER:PASSWORD",
        dest="authorization",
        help="Set the Authorization header to HTTP Basic credentials",
    )
    send_parser.add_argument(
        "--timeout",
        type=positive_float,
        default=None,
        metavar="SECONDS",
        help=f"Request timeout (default: config value or {DEFAULT_TIMEOUT}s)",
    )
    send_parser.add_argument(
        "--verbose",
        action="store_true",
        default=False,
        help="Log request details to stderr",
    )

    validate_parser = subparsers.add_parser("validate", help="Check a catalog for problems")
    _add_source_arguments(validate_parser)

    return parser


def _build_mapping(pairs: list[tuple[str, str]], flag: str) -> dict[str, str]:
    """Build a dict from repeated NAME/VALUE pairs, warning on duplicates."""
    result: dict[str, str] = {}
    for name, value in pairs:
        if name in result:
            print(
                f"Warning: {flag} '{name}' specified multiple times, using last value",
                file=sys.stderr,
            )
        result[name] = value
    return result


def parse_args(args: list[str] | None = None) -> ListArgs | ShowArgs | UrlArgs | SendArgs | ValidateArgs:
    """Parse command-line arguments and return typed args dataclass.

    Args:
        args: Command-line arguments to parse. If None, uses sys.argv[1:].

    Raises:
        SystemExit: If arguments are invalid (argparse behavior).
    """
    parser = build_parser()
    namespace = parser.parse_args(args)

    if namespace.command == "list":
        return ListArgs(config=namespace.config, catalog=namespace.catalog, search=namespace.search)
    elif namespace.command == "show":
        return ShowArgs(config=namespace.config, catalog=namespace.catalog, endpoint=namespace.endpoint)
    elif namespace.command == "url":
        return UrlArgs(
            config=namespace.config,
            catalog=namespace.catalog,
            endpoint=namespace.endpoint,
            params=_build_mapping(namespace.params, "--param"),
            base_url=namespace.base_url,
        )
    elif namespace.command == "send":
        return SendArgs(
            config=namespace.config,
            catalog=namespace.catalog,
            endpoint=namespace.endpoint,
            params=_build_mapping(namespace.params, "--param"),
            headers=_build_mapping(namespace.headers, "--header"),
            body=namespace.body,
            body_file=namespace.body_file,
            authorization=namespace.authorization,
            base_url=namespace.base_url,
            timeout=namespace.timeout,
            verbose=namespace.verbose,
        )
    elif namespace.command == "validate":
        return ValidateArgs(config=namespace.config, catalog=namespace.catalog)
    else:
        # Should not happen with required=True on subparsers
        parser.error(f"Unknown command: {namespace.command}")


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    try:
        return dispatch(parse_args(argv))
    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        return 1


def dispatch(parsed: ListArgs | ShowArgs | UrlArgs | SendArgs | ValidateArgs) -> int:
    """Run the mode matching the parsed args."""
    if isinstance(parsed, ListArgs):
        return run_list(parsed)
    elif isinstance(parsed, ShowArgs):
        return run_show(parsed)
    elif isinstance(parsed, UrlArgs):
        return run_url(parsed)
    elif isinstance(parsed, SendArgs):
        return run_send(parsed)
    else:
        return run_validate(parsed)


# =============================================================================
# Shared loading
# =============================================================================


@dataclass
class LoadedSources:
    """Config and catalog resolved for one CLI invocation."""

    config: ExplorerConfig
    catalog: Catalog
    config_given: bool


def _load_sources(config_path: Path | None, catalog_path: Path | None) -> LoadedSources | None:
    """Load config and catalog, printing errors to stderr. Returns None on failure.

    Catalog precedence: --catalog, then the config's catalog entry, then the
    bundled catalog.
    """
    from api_explorer.config_loader import ConfigError, load_catalog, load_config, resolve_catalog_path
    from api_explorer.models import ExplorerConfig

    if config_path is not None:
        try:
            config = load_config(config_path)
        except ConfigError as e:
            print(f"Error loading config: {e}", file=sys.stderr)
            return None
    else:
        config = ExplorerConfig()

    if catalog_path is None and config_path is not None and config.catalog:
        catalog_path = resolve_catalog_path(config_path, config.catalog)

    try:
        catalog = load_catalog(catalog_path)
    except ConfigError as e:
        print(f"Error loading catalog: {e}", file=sys.stderr)
        return None

    return LoadedSources(config=config, catalog=catalog, config_given=config_path is not None)


def _resolve_base_url(sources: LoadedSources, override: str | None) -> str:
    """--base-url, then an explicit config base_url, then the catalog's, then the default."""
    if override:
        return override.rstrip("/")
    if sources.config_given and "base_url" in sources.config.model_fields_set:
        return sources.config.base_url
    if sources.catalog.base_url:
        return sources.catalog.base_url.rstrip("/")
    return sources.config.base_url


def _find_entry(catalog: Catalog, ref: str) -> CatalogEntry | None:
    entry = catalog.find(ref)
    if entry is None:
        print(
            f"Error: endpoint '{ref}' not found. Use 'api-explorer list' to see titles and keys.",
            file=sys.stderr,
        )
    return entry


# =============================================================================
# Modes
# =============================================================================


def run_list(args: ListArgs) -> int:
    """Run list mode: categories and their endpoints, optionally filtered."""
    sources = _load_sources(args.config, args.catalog)
    if sources is None:
        return 1

    categories = sources.catalog.search(args.search)
    total = 0
    for category in categories:
        print(f"{category.name}")
        if category.description:
            print(f"  {category.description}")
        for entry in category.endpoints:
            print(f"    {entry.endpoint.method.value:<6} {entry.endpoint.path}  {entry.title}")
            total += 1
        print()

    print(f"Total: {total} endpoints")
    return 0


def run_show(args: ShowArgs) -> int:
    """Run show mode: one endpoint's details."""
    from api_explorer.binder import classify

    sources = _load_sources(args.config, args.catalog)
    if sources is None:
        return 1
    entry = _find_entry(sources.catalog, args.endpoint)
    if entry is None:
        return 1

    endpoint = entry.endpoint
    print(f"{entry.title}")
    print(f"  {endpoint.method.value} {endpoint.path}")
    if entry.description:
        print(f"  {entry.description}")
    if endpoint.description and endpoint.description != entry.description:
        print(f"  {endpoint.description}")

    if endpoint.parameters:
        print()
        print("Parameters:")
        for param in endpoint.parameters:
            marker = "*" if param.required else " "
            location = classify(endpoint.path, param.name).value
            description = param.description or param.type
            print(f"  {param.name}{marker} ({param.type}, {location})  {description}")

    if endpoint.example_body:
        print()
        print("Example body:")
        print(endpoint.example_body)
    return 0


def run_url(args: UrlArgs) -> int:
    """Run url mode: print the composed URL without sending anything."""
    from api_explorer.composer import ComposerError, compose_url

    sources = _load_sources(args.config, args.catalog)
    if sources is None:
        return 1
    entry = _find_entry(sources.catalog, args.endpoint)
    if entry is None:
        return 1

    try:
        url = compose_url(entry.endpoint, args.params, _resolve_base_url(sources, args.base_url))
    except ComposerError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    print(url)
    return 0


class StderrNotifier:
    """Prints a one-line completion notice to stderr."""

    def notify(self, notification: Notification) -> None:
        if notification.success:
            print(f"Request completed ({notification.message})", file=sys.stderr)
        elif notification.status_code is not None:
            print(f"Request completed with an error ({notification.message})", file=sys.stderr)
        else:
            print(f"Request failed: {notification.message}", file=sys.stderr)


def run_send(args: SendArgs) -> int:
    """Run send mode: one live request, formatted response on stdout.

    Returns 0 for a 2xx response, 1 for anything else.
    """
    if args.verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            stream=sys.stderr,
            format="%(levelname)s %(name)s: %(message)s",
        )

    sources = _load_sources(args.config, args.catalog)
    if sources is None:
        return 1
    entry = _find_entry(sources.catalog, args.endpoint)
    if entry is None:
        return 1

    body = args.body
    if args.body_file is not None:
        try:
            body = args.body_file.read_text(encoding="utf-8")
        except OSError as e:
            print(f"Error reading body file: {e}", file=sys.stderr)
            return 1

    headers = dict(sources.config.headers)
    if args.authorization is not None:
        headers["Authorization"] = args.authorization
    headers.update(args.headers)

    timeout = args.timeout or sources.config.timeout
    base_url = _resolve_base_url(sources, args.base_url)

    record = asyncio.run(_send(entry, args.params, headers, body, base_url, timeout))
    from api_explorer.formatter import format_record

    print(format_record(record))
    return 1 if record.is_error else 0


async def _send(
    entry: CatalogEntry,
    params: dict[str, str],
    headers: dict[str, str],
    body: str | None,
    base_url: str,
    timeout: float,
) -> ResponseRecord:
    from api_explorer.session import EndpointSession
    from api_explorer.transport import HttpxTransport

    async with HttpxTransport(timeout=timeout) as transport:
        session = EndpointSession.for_entry(
            entry, transport, base_url=base_url, headers=headers, notifier=StderrNotifier()
        )
        for name, value in params.items():
            session.set_parameter(name, value)
        if body is not None:
            session.set_body(body)

        missing = session.missing_required()
        if missing:
            print(f"Warning: required parameters not set: {', '.join(missing)}", file=sys.stderr)

        return await session.send()


def run_validate(args: ValidateArgs) -> int:
    """Run validate mode: report catalog warnings and errors."""
    from api_explorer.config_loader import validate_catalog

    sources = _load_sources(args.config, args.catalog)
    if sources is None:
        return 1

    catalog = sources.catalog
    entries = catalog.entries()
    print(f"Catalog: {catalog.name or '(unnamed)'}")
    print(f"  Categories: {len(catalog.categories)}")
    print(f"  Endpoints: {len(entries)}")

    result = validate_catalog(catalog)

    if result.warnings:
        print()
        print("Warnings:")
        for warning in result.warnings:
            print(f"  WARNING: {warning}")

    if result.errors:
        print()
        print("Errors:")
        for error in result.errors:
            print(f"  ERROR: {error}")
        print()
        print("Validation failed")
        return 1

    print()
    print("Validation successful")
    return 0


if __name__ == "__main__":
    sys.exit(main())
