"""Command-line interface for the PolicyVault service."""

from __future__ import annotations

import argparse
import logging
import sys
from getpass import getpass
from pathlib import Path
from typing import Sequence

from policyvault.application import configure_logging
from policyvault.config import Settings, load_settings
from policyvault.database import Database
from policyvault.errors import PolicyVaultError

logger = logging.getLogger("policyvault.main")

_MIN_PASSWORD_LENGTH = 8


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="PolicyVault service utilities")
    parser.add_argument(
        "--config",
        default=None,
        help="Path to a YAML settings file (default: POLICYVAULT_CONFIG)",
    )
    subparsers = parser.add_subparsers(dest="command")

    parser.set_defaults(command="serve")

    subparsers.add_parser("init-db", help="Initialise the PolicyVault database")

    serve_parser = subparsers.add_parser("serve", help="Start the HTTP API")
    serve_parser.add_argument("--host", default="127.0.0.1", help="Bind address for the API")
    serve_parser.add_argument(
        "--port",
        type=int,
        default=3000,
        help="Port for the HTTP API (default: 3000)",
    )
    serve_parser.add_argument(
        "--reload",
        action="store_true",
        help="Reload the server when source files change",
    )

    user_parser = subparsers.add_parser("create-user", help="Register an account from the shell")
    user_parser.add_argument("email", help="Unique email address for login")
    user_parser.add_argument("--name", default=None, help="Display name (defaults to the email local part)")

    args_list = list(argv) if argv is not None else sys.argv[1:]
    known_commands = {"serve", "init-db", "create-user"}

    global_args: list[str] = []
    while args_list and args_list[0] == "--config" and len(args_list) > 1:
        global_args.extend(args_list[:2])
        args_list = args_list[2:]

    if not args_list:
        args_list = ["serve"]
    else:
        first = args_list[0]
        if first in ("-h", "--help"):
            return parser.parse_args([*global_args, *args_list])
        if first not in known_commands:
            args_list = ["serve", *args_list]

    return parser.parse_args([*global_args, *args_list])


def _load_settings(config: str | None) -> Settings:
    config_path = Path(config).expanduser() if config else None
    return load_settings(config_path=config_path)


def _initialise_database(settings: Settings) -> Database:
    database = Database(settings.database_path)
    database.initialize()
    logger.info("Database initialised at %s", settings.database_path)
    return database


def _serve(settings: Settings, *, host: str, port: int, reload: bool) -> None:
    import uvicorn

    from policyvault.application import create_application

    logger.info("Starting PolicyVault API on http://%s:%s/api", host, port)
    if reload:
        uvicorn.run(
            "policyvault.application:create_application",
            factory=True,
            host=host,
            port=port,
            reload=True,
            log_level=settings.log_level.lower(),
        )
        return

    uvicorn.run(
        create_application(settings=settings),
        host=host,
        port=port,
        log_level=settings.log_level.lower(),
    )


def _prompt_for_password() -> str | None:
    for _ in range(3):
        password = getpass(f"Password (min {_MIN_PASSWORD_LENGTH} characters): ")
        if len(password) < _MIN_PASSWORD_LENGTH:
            print("Password is too short. Please try again.")
            continue
        confirmation = getpass("Confirm password: ")
        if password != confirmation:
            print("Passwords do not match. Please try again.")
            continue
        return password
    return None


def _create_user(database: Database, email: str, name: str | None) -> int:
    password = _prompt_for_password()
    if password is None:
        print("Failed to set password after three attempts.", file=sys.stderr)
        return 1
    try:
        account = database.create_account(name, email, password)
    except PolicyVaultError as exc:
        print(f"Error: {exc.message}", file=sys.stderr)
        return 1
    print(f"Created account {account.id}: {account.name} <{account.email}>")
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)
    settings = _load_settings(args.config)
    configure_logging(settings.log_level)

    if args.command == "init-db":
        _initialise_database(settings)
        return 0

    if args.command == "create-user":
        database = _initialise_database(settings)
        return _create_user(database, args.email, args.name)

    _serve(settings, host=args.host, port=args.port, reload=args.reload)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
