"""CLI for container-secrets."""

import argparse
import getpass
import json
import logging
import sys
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from . import __version__
from .config import get_default_driver, get_log_level
from .errors import SecretsError
from .filters import filter_secrets, parse_filters
from .secrets import SecretsManager, StoreOptions

console = Console()
err_console = Console(stderr=True)


def _parse_pairs(values, what):
    """Turn ['k=v', ...] into a dict."""
    pairs = {}
    for item in values or []:
        key, sep, value = item.partition("=")
        if not sep or not key:
            raise ValueError(f"Invalid {what} format: {item} (use KEY=VALUE)")
        pairs[key] = value
    return pairs


def _read_data(args):
    """Read secret data from a file, stdin, or a hidden prompt."""
    if args.file == "-":
        return sys.stdin.buffer.read()

    if args.file:
        file_path = Path(args.file).expanduser()
        if not file_path.exists():
            raise FileNotFoundError(f"File not found: {file_path}")
        return file_path.read_bytes()

    # Interactive hidden input
    value = getpass.getpass(f"Enter value for {args.name} (hidden): ")
    confirm = getpass.getpass("Confirm value (hidden): ")
    if value != confirm:
        raise ValueError("Values don't match")
    return value.encode()


def cmd_create(manager, args):
    """Create a secret."""
    try:
        data = _read_data(args)
        options = StoreOptions(
            driver_options=_parse_pairs(args.driver_opt, "driver option"),
            labels=_parse_pairs(args.label, "label"),
            replace=args.replace,
            ignore_if_exists=args.ignore,
        )
    except (OSError, ValueError) as e:
        err_console.print(f"[red]Error:[/red] {escape(str(e))}")
        return 1

    secret_id = manager.store(args.name, data, args.driver, options)
    print(secret_id)
    return 0


def cmd_ls(manager, args):
    """List secrets (data never shown)."""
    try:
        filters = parse_filters(args.filter)
    except ValueError as e:
        err_console.print(f"[red]Error:[/red] {escape(str(e))}")
        return 1

    secrets = filter_secrets(manager.list(), filters)

    if args.quiet:
        for secret in secrets:
            print(secret.id)
        return 0

    if not secrets:
        console.print("[dim]No secrets found.[/dim]")
        return 0

    table = Table(title="Secrets", show_header=True)
    table.add_column("ID", style="cyan")
    table.add_column("Name")
    table.add_column("Driver", style="green")
    table.add_column("Created", style="dim")
    table.add_column("Updated", style="dim")

    for secret in secrets:
        table.add_row(
            secret.id,
            secret.name,
            secret.driver,
            secret.created_at.strftime("%Y-%m-%d %H:%M:%S"),
            secret.updated_at.strftime("%Y-%m-%d %H:%M:%S"),
        )

    console.print(table)
    console.print(f"\n[dim]Total: {len(secrets)} secrets[/dim]")
    return 0


def cmd_inspect(manager, args):
    """
    Show secret metadata as JSON.

    With --show-secret the data is included too (UNSAFE - scripts only).
    """
    records = []
    status = 0
    for name in args.names:
        try:
            if args.show_secret:
                secret, data = manager.lookup_secret_data(name)
                record = secret.to_dict()
                record["secret_data"] = data.decode(errors="replace")
            else:
                record = manager.lookup(name).to_dict()
            records.append(record)
        except SecretsError as e:
            err_console.print(f"[red]Error:[/red] {escape(str(e))}")
            status = 1

    if records:
        print(json.dumps(records, indent=2))
    return status


def cmd_rm(manager, args):
    """Remove secrets."""
    status = 0
    for name in args.names:
        try:
            removed = manager.delete(name)
            print(removed)
        except SecretsError as e:
            err_console.print(f"[red]Error:[/red] {escape(str(e))}")
            status = 1
    return status


def cmd_exists(manager, args):
    """Exit 0 if the secret exists, 1 otherwise."""
    return 0 if manager.exists(args.name) else 1


def build_parser():
    parser = argparse.ArgumentParser(
        prog="container-secrets",
        description="Named secret storage for container tooling",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  container-secrets create db_password ./password.txt
  printf 's3cret' | container-secrets create api_key -
  container-secrets create --replace api_key ./new_key.txt
  container-secrets create --driver shell \\
      --driver-opt 'store=cat - > /srv/s/$SECRET_ID' \\
      --driver-opt 'lookup=cat /srv/s/$SECRET_ID' \\
      --driver-opt 'list=ls /srv/s' \\
      --driver-opt 'delete=rm /srv/s/$SECRET_ID' token ./token.txt
  container-secrets ls --filter label=env=prod
  container-secrets inspect db_password
  container-secrets rm db_password

Environment:
  CONTAINER_SECRETS_DIR        Override metadata directory
  CONTAINER_SECRETS_DRIVER     Default driver (file, pass, shell)
  CONTAINER_SECRETS_TIMEOUT    Driver command timeout in seconds
  CONTAINER_SECRETS_LOG_LEVEL  Log level (default: WARNING)
        """
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--path", type=Path, help="Metadata directory (default: ~/.local/share/container-secrets)")
    parser.add_argument("--log-level", default=None, help="Log level (DEBUG, INFO, WARNING, ERROR)")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # create
    create_parser = subparsers.add_parser("create", help="Create a secret")
    create_parser.add_argument("name", help="Secret name")
    create_parser.add_argument("file", nargs="?", help="File with the secret data, '-' for stdin (default: prompt)")
    create_parser.add_argument("-d", "--driver", default=get_default_driver(), help="Driver (default: %(default)s)")
    create_parser.add_argument("--driver-opt", action="append", default=[], metavar="KEY=VALUE",
                               help="Driver option (can repeat)")
    create_parser.add_argument("-l", "--label", action="append", default=[], metavar="KEY=VALUE",
                               help="Label (can repeat)")
    create_parser.add_argument("--replace", action="store_true", help="Replace an existing secret of the same name")
    create_parser.add_argument("--ignore", action="store_true", help="Do nothing if the name is already in use")

    # ls
    ls_parser = subparsers.add_parser("ls", help="List secrets")
    ls_parser.add_argument("-f", "--filter", action="append", default=[], metavar="KEY=VALUE",
                           help="Filter: name=, id=, driver=, label=KEY[=VALUE] (can repeat)")
    ls_parser.add_argument("-q", "--quiet", action="store_true", help="Print IDs only")

    # inspect
    inspect_parser = subparsers.add_parser("inspect", help="Show secret metadata")
    inspect_parser.add_argument("names", nargs="+", help="Secret names or IDs")
    inspect_parser.add_argument("--show-secret", action="store_true", help="Include secret data (UNSAFE)")

    # rm
    rm_parser = subparsers.add_parser("rm", help="Remove secrets")
    rm_parser.add_argument("names", nargs="+", help="Secret names or IDs")

    # exists
    exists_parser = subparsers.add_parser("exists", help="Check whether a secret exists")
    exists_parser.add_argument("name", help="Secret name or ID")

    return parser


COMMANDS = {
    "create": cmd_create,
    "ls": cmd_ls,
    "inspect": cmd_inspect,
    "rm": cmd_rm,
    "exists": cmd_exists,
}


def main(argv=None):
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 0

    level = (args.log_level or get_log_level()).upper()
    if not isinstance(logging.getLevelName(level), int):
        err_console.print(f"[red]Error:[/red] unknown log level {escape(repr(level))}")
        return 2

    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=err_console, show_path=False)],
    )

    try:
        manager = SecretsManager(args.path)
        return COMMANDS[args.command](manager, args)
    except SecretsError as e:
        err_console.print(f"[red]Error:[/red] {escape(str(e))}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
