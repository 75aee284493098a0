"""
CLI entry point for DNS Orchestrator.

Every subcommand except ``serve`` builds an `AppContext`, restores the
stored accounts, runs one service call and prints the result as a table
or as JSON. ``serve`` starts the HTTP adapter.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Any, TypeVar

import uvicorn
from pydantic import BaseModel, ValidationError

from dns_orchestrator import __version__
from dns_orchestrator.accounts import (
    CreateAccountRequest,
    ExportAccountsRequest,
    ImportAccountsRequest,
    UpdateAccountRequest,
)
from dns_orchestrator.app import AppContext
from dns_orchestrator.config import ConfigValidationError, load_config
from dns_orchestrator.credentials import credentials_from_map
from dns_orchestrator.errors import DnsOrchestratorError, InvalidInputError, ParseError
from dns_orchestrator.logging_config import build_uvicorn_log_config, setup_logging
from dns_orchestrator.models import (
    BatchDeleteRequest,
    CreateDnsRecordRequest,
    DnsRecordType,
    ProviderType,
    UpdateDnsRecordRequest,
)
from dns_orchestrator.providers.common import record_data_from_value
from dns_orchestrator.server import set_preloaded_config

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Sequence

    import httpx

    from dns_orchestrator.config import Config
    from dns_orchestrator.models import RecordData

    Handler = Callable[[AppContext, argparse.Namespace], Awaitable[Any]]


RequestT = TypeVar("RequestT", bound=CreateDnsRecordRequest)


def parse_key_value(value: str) -> tuple[str, str]:
    """
    Parse a ``KEY=VALUE`` credential argument.

    This function is intended to be used as a `type` converter in `argparse`.

    Raises
    ------
    argparse.ArgumentTypeError
        If the value has no ``=`` or an empty key.
    """
    key, sep, val = value.partition("=")
    if not sep or not key.strip():
        msg = f'Expected KEY=VALUE, got "{value}".'
        raise argparse.ArgumentTypeError(msg)
    return key.strip(), val


def _add_record_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--name", required=True, help='Record name ("@" for the apex)')
    parser.add_argument(
        "--type",
        dest="record_type",
        required=True,
        type=str.upper,
        choices=[t.value for t in DnsRecordType],
        help="Record type",
    )
    parser.add_argument(
        "--value",
        required=True,
        help='Record value; SRV as "priority weight port target", CAA as "flags tag value"',
    )
    parser.add_argument("--priority", type=int, default=None, help="MX priority")
    parser.add_argument("--ttl", type=int, default=600, help="Time to live in seconds")
    parser.add_argument(
        "--proxied",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="CloudFlare proxy flag",
    )


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with every subcommand."""
    parser = argparse.ArgumentParser(
        prog="dns-orchestrator",
        description="DNS Orchestrator - unified DNS record management across cloud providers",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to configuration file (default: config.toml)",
    )
    parser.add_argument(
        "--data-dir",
        type=Path,
        dest="data_dir",
        default=None,
        help="Directory holding accounts and credentials",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=None,
        help="Log level",
    )
    parser.add_argument(
        "--output",
        choices=["table", "json"],
        default="table",
        help="Output format",
    )

    commands = parser.add_subparsers(dest="command", required=True)

    # providers
    providers = commands.add_parser("providers", help="Supported providers")
    providers_cmd = providers.add_subparsers(dest="action", required=True)
    providers_cmd.add_parser("list", help="List supported providers")

    # accounts
    accounts = commands.add_parser("accounts", help="Manage accounts")
    accounts_cmd = accounts.add_subparsers(dest="action", required=True)
    accounts_cmd.add_parser("list", help="List accounts")
    add = accounts_cmd.add_parser("add", help="Add an account")
    add.add_argument("--name", required=True, help="Account name")
    add.add_argument(
        "--provider",
        required=True,
        choices=[p.value for p in ProviderType],
        help="Provider",
    )
    add.add_argument(
        "--cred",
        dest="creds",
        type=parse_key_value,
        nargs="+",
        action="extend",
        required=True,
        metavar="KEY=VALUE",
        help="Credential field, e.g. apiToken=... (camelCase or snake_case keys)",
    )
    update = accounts_cmd.add_parser("update", help="Rename an account or replace its credentials")
    update.add_argument("account_id", help="Account ID")
    update.add_argument("--name", default=None, help="New name")
    update.add_argument(
        "--cred",
        dest="creds",
        type=parse_key_value,
        nargs="+",
        action="extend",
        default=None,
        metavar="KEY=VALUE",
        help="New credential fields (all fields are required)",
    )
    remove = accounts_cmd.add_parser("remove", help="Remove accounts")
    remove.add_argument("account_ids", nargs="+", help="Account IDs")

    # domains
    domains = commands.add_parser("domains", help="Query domains")
    domains_cmd = domains.add_subparsers(dest="action", required=True)
    domains_list = domains_cmd.add_parser("list", help="List an account's domains")
    domains_list.add_argument("account_id", help="Account ID")
    domains_list.add_argument("--page", type=int, default=1)
    domains_list.add_argument("--page-size", type=int, dest="page_size", default=20)
    domains_get = domains_cmd.add_parser("get", help="Show one domain")
    domains_get.add_argument("account_id", help="Account ID")
    domains_get.add_argument("domain_id", help="Domain ID")

    # records
    records = commands.add_parser("records", help="Manage DNS records")
    records_cmd = records.add_subparsers(dest="action", required=True)
    records_list = records_cmd.add_parser("list", help="List a domain's records")
    records_list.add_argument("account_id", help="Account ID")
    records_list.add_argument("domain_id", help="Domain ID")
    records_list.add_argument("--page", type=int, default=1)
    records_list.add_argument("--page-size", type=int, dest="page_size", default=20)
    records_list.add_argument("--keyword", default=None, help="Name filter")
    records_list.add_argument(
        "--type",
        dest="record_type",
        type=str.upper,
        choices=[t.value for t in DnsRecordType],
        default=None,
        help="Record type filter",
    )
    records_add = records_cmd.add_parser("add", help="Create a record")
    records_add.add_argument("account_id", help="Account ID")
    records_add.add_argument("domain_id", help="Domain ID")
    _add_record_arguments(records_add)
    records_update = records_cmd.add_parser("update", help="Replace a record")
    records_update.add_argument("account_id", help="Account ID")
    records_update.add_argument("domain_id", help="Domain ID")
    records_update.add_argument("record_id", help="Record ID")
    _add_record_arguments(records_update)
    records_remove = records_cmd.add_parser("remove", help="Delete records")
    records_remove.add_argument("account_id", help="Account ID")
    records_remove.add_argument("domain_id", help="Domain ID")
    records_remove.add_argument("record_ids", nargs="+", help="Record IDs")

    # import / export
    import_ = commands.add_parser("import", help="Import accounts from an export file")
    import_.add_argument("file", type=Path, help="Export file")
    import_.add_argument("--password", default=None, help="Password of an encrypted file")
    import_.add_argument(
        "--preview",
        action="store_true",
        help="Only show what would be imported",
    )
    export = commands.add_parser("export", help="Export accounts to a file")
    export.add_argument(
        "--account",
        dest="account_ids",
        nargs="+",
        action="extend",
        required=True,
        metavar="ID",
        help="Accounts to export",
    )
    export.add_argument("--encrypt", action="store_true", help="Encrypt the file")
    export.add_argument("--password", default=None, help="Encryption password")
    export.add_argument(
        "--output-file",
        type=Path,
        dest="output_file",
        default=None,
        help="Destination (default: the suggested filename)",
    )

    # serve
    serve = commands.add_parser("serve", help="Start the HTTP API")
    serve.add_argument("--host", type=str, default=None, help="Host address to bind to")
    serve.add_argument("--port", type=int, default=None, help="Port number to listen on")

    return parser


def parse_args(args: Sequence[str] | None = None) -> argparse.Namespace:
    """
    Parse command-line arguments.

    Parameters
    ----------
    args : Sequence[str] | None, optional
        Command-line arguments. If None, uses sys.argv.

    Returns
    -------
    argparse.Namespace
        Parsed arguments.
    """
    return build_parser().parse_args(args)


# Output


def _dump(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json", by_alias=True)
    if isinstance(value, list):
        return [_dump(v) for v in value]
    return value


def print_table(headers: Sequence[str], rows: Sequence[Sequence[Any]]) -> None:
    """Print rows as left-aligned columns."""
    cells = [[str(h) for h in headers]] + [
        ["" if c is None else str(c) for c in row] for row in rows
    ]
    widths = [max(len(row[i]) for row in cells) for i in range(len(headers))]
    for row in cells:
        print("  ".join(c.ljust(w) for c, w in zip(row, widths, strict=True)).rstrip())  # noqa: T201


def _print_result(result: Any, output: str) -> None:
    data = _dump(result)
    if output == "json" or not isinstance(data, (dict, list)):
        print(json.dumps(data, indent=2, ensure_ascii=False))  # noqa: T201
        return

    if isinstance(data, dict) and "items" in data:
        items = data["items"]
        footer = f"page {data['page']}, {len(items)} of {data['totalCount']}"
    elif isinstance(data, list):
        items, footer = data, None
    else:
        items, footer = [data], None

    if not items:
        print("(none)")  # noqa: T201
        return

    headers = [k for k, v in items[0].items() if not isinstance(v, (dict, list))]
    rows = [[item.get(h) for h in headers] for item in items]
    for i, item in enumerate(items):
        data_value = item.get("data")
        if isinstance(data_value, dict):
            rows[i].append(" ".join(str(v) for k, v in data_value.items() if k != "type"))
    if any(isinstance(item.get("data"), dict) for item in items):
        headers = [*headers, "value"]
    print_table(headers, rows)
    if footer:
        print(footer)  # noqa: T201


# Command handlers


def _record_data(args: argparse.Namespace) -> RecordData:
    try:
        return record_data_from_value(args.record_type, args.value, "cli", args.priority)
    except ParseError as e:
        raise InvalidInputError(e.detail) from e


def _build_record_request(cls: type[RequestT], args: argparse.Namespace) -> RequestT:
    try:
        return cls(
            domain_id=args.domain_id,
            name=args.name,
            ttl=args.ttl,
            data=_record_data(args),
            proxied=args.proxied,
        )
    except ValidationError as e:
        raise InvalidInputError(str(e)) from e


async def _providers_list(app: AppContext, _args: argparse.Namespace) -> Any:
    return app.providers.list_providers()


async def _accounts_list(app: AppContext, _args: argparse.Namespace) -> Any:
    return await app.accounts.list_accounts()


async def _accounts_add(app: AppContext, args: argparse.Namespace) -> Any:
    credentials = credentials_from_map(args.provider, dict(args.creds))
    try:
        request = CreateAccountRequest(
            name=args.name,
            provider=args.provider,
            credentials=credentials,
        )
    except ValidationError as e:
        raise InvalidInputError(str(e)) from e
    return await app.accounts.create_account(request)


async def _accounts_update(app: AppContext, args: argparse.Namespace) -> Any:
    credentials = None
    if args.creds:
        account = await app.accounts.get_account(args.account_id)
        credentials = credentials_from_map(account.provider, dict(args.creds))
    try:
        request = UpdateAccountRequest(
            id=args.account_id,
            name=args.name,
            credentials=credentials,
        )
    except ValidationError as e:
        raise InvalidInputError(str(e)) from e
    return await app.accounts.update_account(request)


async def _accounts_remove(app: AppContext, args: argparse.Namespace) -> Any:
    if len(args.account_ids) == 1:
        await app.accounts.delete_account(args.account_ids[0])
        return {"deleted": args.account_ids[0]}
    return await app.accounts.batch_delete_accounts(args.account_ids)


async def _domains_list(app: AppContext, args: argparse.Namespace) -> Any:
    return await app.domains.list_domains(args.account_id, args.page, args.page_size)


async def _domains_get(app: AppContext, args: argparse.Namespace) -> Any:
    return await app.domains.get_domain(args.account_id, args.domain_id)


async def _records_list(app: AppContext, args: argparse.Namespace) -> Any:
    return await app.dns.list_records(
        args.account_id,
        args.domain_id,
        args.page,
        args.page_size,
        args.keyword,
        DnsRecordType(args.record_type) if args.record_type else None,
    )


async def _records_add(app: AppContext, args: argparse.Namespace) -> Any:
    request = _build_record_request(CreateDnsRecordRequest, args)
    return await app.dns.create_record(args.account_id, request)


async def _records_update(app: AppContext, args: argparse.Namespace) -> Any:
    request = _build_record_request(UpdateDnsRecordRequest, args)
    return await app.dns.update_record(args.account_id, args.record_id, request)


async def _records_remove(app: AppContext, args: argparse.Namespace) -> Any:
    if len(args.record_ids) == 1:
        await app.dns.delete_record(args.account_id, args.record_ids[0], args.domain_id)
        return {"deleted": args.record_ids[0]}
    return await app.dns.batch_delete_records(
        args.account_id,
        BatchDeleteRequest(domain_id=args.domain_id, record_ids=args.record_ids),
    )


async def _import(app: AppContext, args: argparse.Namespace) -> Any:
    try:
        content = args.file.read_text(encoding="utf-8")
    except OSError as e:
        raise InvalidInputError(f'Cannot read "{args.file}": {e}') from e
    if args.preview:
        return await app.import_export.preview_import(content, args.password)
    return await app.import_export.import_accounts(
        ImportAccountsRequest(content=content, password=args.password),
    )


async def _export(app: AppContext, args: argparse.Namespace) -> Any:
    response = await app.import_export.export_accounts(
        ExportAccountsRequest(
            account_ids=args.account_ids,
            encrypt=args.encrypt,
            password=args.password,
        ),
    )
    path = args.output_file or Path(response.suggested_filename)
    try:
        path.write_text(response.content, encoding="utf-8")
    except OSError as e:
        raise InvalidInputError(f'Cannot write "{path}": {e}') from e
    return {"file": str(path)}


HANDLERS: dict[tuple[str, str | None], Handler] = {
    ("providers", "list"): _providers_list,
    ("accounts", "list"): _accounts_list,
    ("accounts", "add"): _accounts_add,
    ("accounts", "update"): _accounts_update,
    ("accounts", "remove"): _accounts_remove,
    ("domains", "list"): _domains_list,
    ("domains", "get"): _domains_get,
    ("records", "list"): _records_list,
    ("records", "add"): _records_add,
    ("records", "update"): _records_update,
    ("records", "remove"): _records_remove,
    ("import", None): _import,
    ("export", None): _export,
}


async def run_command(
    args: argparse.Namespace,
    config: Config,
    transport: httpx.AsyncBaseTransport | None = None,
) -> int:
    """
    Run one non-``serve`` command.

    Parameters
    ----------
    args : argparse.Namespace
        Parsed arguments.
    config : Config
        Loaded configuration.
    transport : httpx.AsyncBaseTransport | None, optional
        Custom transport for every provider, used by tests.

    Returns
    -------
    int
        Exit code: 0 on success, 1 on any package error (printed to
        stderr as ``"<Code>: <message>"``).
    """
    handler = HANDLERS[(args.command, getattr(args, "action", None))]
    app = AppContext.from_config(config, transport)
    try:
        await app.startup()
        result = await handler(app, args)
    except DnsOrchestratorError as e:
        print(f"{e.code}: {e.message}", file=sys.stderr)  # noqa: T201
        return 1
    finally:
        await app.aclose()

    _print_result(result, args.output)
    return 0


def serve(config: Config) -> None:
    """Start the HTTP adapter with uvicorn."""
    # Inject the loaded configuration into the server module to prevent
    # re-parsing arguments when the app starts.
    set_preloaded_config(config)

    uvicorn.run(
        "dns_orchestrator.server:app",
        host=config.server.host,
        port=config.server.port,
        log_level=config.logging.level.lower(),
        access_log=True,
        log_config=build_uvicorn_log_config(config.logging),
    )


def main(argv: Sequence[str] | None = None) -> None:
    """
    Run the DNS Orchestrator CLI.

    Parse command-line arguments, load configuration, and run the command.
    """
    args = parse_args(argv)
    try:
        config = load_config(args)
    except ConfigValidationError as e:
        print(e, file=sys.stderr)  # noqa: T201
        sys.exit(1)

    setup_logging(config.logging)

    if args.command == "serve":
        serve(config)
        return

    sys.exit(asyncio.run(run_command(args, config)))


if __name__ == "__main__":
    main()
