"""Command-line interface for the user administration service."""

from __future__ import annotations
import argparse
import logging
import os
import sys
from getpass import getpass
from typing import Sequence

from useradmin.database import Database, resolve_database_path
from useradmin.users import UsersEditor

logger = logging.getLogger("useradmin.main")


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="User administration utilities")
    subparsers = parser.add_subparsers(dest="command")

    parser.set_defaults(command="serve")

    subparsers.add_parser("init-db", help="Initialise the user database")
    subparsers.add_parser("list-users", help="Print every stored user")

    create_parser = subparsers.add_parser("create-user", help="Create a user from the terminal")
    create_parser.add_argument("name", help="Display name for the user")
    create_parser.add_argument("email", help="Unique email address for the user")

    serve_parser = subparsers.add_parser("serve", help="Start the HTTP service")
    serve_parser.add_argument("--host", default="127.0.0.1", help="Bind address for the service")
    serve_parser.add_argument(
        "--port",
        type=int,
        default=8000,
        help="Port for the HTTP service (default: 8000)",
    )
    serve_parser.add_argument(
        "--ssl-certfile",
        default=None,
        help="Path to the TLS certificate chain in PEM format",
    )
    serve_parser.add_argument(
        "--ssl-keyfile",
        default=None,
        help="Path to the TLS private key in PEM format",
    )

    args_list = list(argv) if argv is not None else sys.argv[1:]
    known_commands = {"serve", "init-db", "list-users", "create-user"}

    if not args_list:
        args_list = ["serve"]
    else:
        first = args_list[0]
        if first in ("-h", "--help"):
            return parser.parse_args(args_list)
        if first not in known_commands:
            if any(flag in args_list for flag in ("-h", "--help")):
                return parser.parse_args(args_list)
            args_list = ["serve", *args_list]

    return parser.parse_args(args_list)


def _initialise_database() -> Database:
    db_path = resolve_database_path(os.getenv("USERADMIN_DB_PATH"))
    database = Database(db_path)
    database.initialize()
    logger.info("Database initialised at %s", db_path)
    return database


def _serve(
    *,
    database: Database,
    host: str,
    port: int,
    ssl_certfile: str | None,
    ssl_keyfile: str | None,
) -> None:
    from useradmin.service import create_app
    import uvicorn

    if bool(ssl_certfile) ^ bool(ssl_keyfile):
        raise SystemExit("Both --ssl-certfile and --ssl-keyfile must be provided together.")

    protocol = "https" if ssl_certfile and ssl_keyfile else "http"
    logger.info("Starting user administration service on %s://%s:%s", protocol, host, port)

    app = create_app(database=database)
    uvicorn.run(
        app,
        host=host,
        port=port,
        log_level="info",
        ssl_certfile=ssl_certfile,
        ssl_keyfile=ssl_keyfile,
    )


def _list_users(database: Database) -> None:
    users = database.list_users()
    if not users:
        print("No users are currently registered.")
        return

    print(f"{len(users)} user(s) found:")
    print(f"{'ID':>4}  {'Name':<24}  {'Email':<32}  Created")
    print("-" * 80)
    for user in users:
        created = user.created_at.strftime("%Y-%m-%d %H:%M:%S %Z")
        print(f"{user.id:>4}  {user.name:<24}  {user.email:<32}  {created}")


def _create_user(database: Database, name: str, email: str) -> int:
    password = getpass("Password: ")
    confirmation = getpass("Confirm password: ")

    editor = UsersEditor(database)
    result = editor.process(
        {
            "action": "create",
            "data": {
                "0": {
                    "name": name,
                    "email": email,
                    "password": password,
                    "password_confirmation": confirmation,
                }
            },
        }
    )

    if "fieldErrors" in result:
        for error in result["fieldErrors"]:
            print(f"{error['name']}: {error['status']}", file=sys.stderr)
        return 1
    if "error" in result:
        print(f"Error: {result['error']}", file=sys.stderr)
        return 1

    row = result["data"][0]
    print(f"Created user #{row['id']}: {row['name']} <{row['email']}>")
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for CLI usage."""

    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")

    args = _parse_args(argv)
    database = _initialise_database()

    if args.command == "serve":
        _serve(
            database=database,
            host=args.host,
            port=args.port,
            ssl_certfile=args.ssl_certfile,
            ssl_keyfile=args.ssl_keyfile,
        )
    elif args.command == "list-users":
        _list_users(database)
    elif args.command == "create-user":
        return _create_user(database, args.name, args.email)
    elif args.command == "init-db":
        print("Database initialisation complete.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
