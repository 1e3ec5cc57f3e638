#!/usr/bin/env python3
"""
Nexus -- Studio project and document management.

Administrative command line for bootstrapping and inspecting accounts. The
HTTP API is the normal way to manage users; this exists for the first admin
and for operators with shell access.

Usage:
  python main.py create-user admin admin@studio.test --role ADMIN
  python main.py create-user alice alice@studio.test --first-name Alice
  python main.py list-users
  python main.py serve --port 8000

Environment variables:
  DATABASE_URL   SQLAlchemy URL of the user/project database (default: nexus.db)
  SECRET_KEY     Token signing key, at least 32 characters (required unless DEBUG=true)
"""

import argparse
import getpass
import logging
import sys
from typing import Optional

from sqlalchemy.exc import IntegrityError

from auth.models import User
from auth.passwords import MAX_PASSWORD_BYTES, hash_password, password_too_long
from auth.roles import Role
from auth.store import UserStore

logger = logging.getLogger("nexus.cli")

_MIN_PASSWORD_LENGTH = 8
_MAX_PASSWORD_LENGTH = 72


def _prompt_password() -> Optional[str]:
    """Read a new password twice without echo. Returns None if they differ or are invalid."""
    password = getpass.getpass("  Password: ")
    confirm = getpass.getpass("  Confirm password: ")
    if password != confirm:
        print("  [!] Passwords do not match.")
        return None
    if not _MIN_PASSWORD_LENGTH <= len(password) <= _MAX_PASSWORD_LENGTH:
        print(f"  [!] Password must be {_MIN_PASSWORD_LENGTH}-{_MAX_PASSWORD_LENGTH} characters.")
        return None
    if password_too_long(password):
        print(f"  [!] Password must be at most {MAX_PASSWORD_BYTES} bytes when UTF-8 encoded.")
        return None
    return password


def create_user(store: UserStore, args: argparse.Namespace) -> int:
    if store.username_exists(args.username):
        print(f"  [!] Username '{args.username}' already exists.")
        return 1
    if store.email_exists(args.email):
        print(f"  [!] Email '{args.email}' already exists.")
        return 1

    password = _prompt_password()
    if password is None:
        return 1

    user = User(
        username=args.username,
        email=args.email,
        role=Role(args.role),
        first_name=args.first_name,
        last_name=args.last_name,
        hashed_password=hash_password(password),
    )
    try:
        user_id = store.create_user(user)
    except IntegrityError:
        print("  [!] Username or email already exists.")
        return 1
    logger.info("User created from CLI -- user_id=%s role=%s", user_id, user.role.value)
    print(f"  Created {user.role.display_name} '{user.username}' (id {user_id}).")
    return 0


def list_users(store: UserStore, args: argparse.Namespace) -> int:
    users = store.list_users()
    if not users:
        print("  No users. Create the first admin with: python main.py create-user <name> <email> --role ADMIN")
        return 0
    print(f"  {'ID':>4}  {'USERNAME':<20} {'ROLE':<14} {'ACTIVE':<6} EMAIL")
    print("  " + "─" * 64)
    for user in users:
        print(
            f"  {user.id:>4}  {user.username:<20} {user.role.value:<14} {'yes' if user.is_active else 'no':<6} {user.email}"
        )
    return 0


def serve(args: argparse.Namespace) -> int:
    import uvicorn

    uvicorn.run("api.main:app", host=args.host, port=args.port, reload=args.reload)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="nexus",
        description="Nexus account administration and server launcher.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py create-user admin admin@studio.test --role ADMIN
  python main.py list-users
  python main.py serve --reload
        """,
    )
    parser.add_argument("--db", metavar="URL", default=None, help="Database URL (default: DATABASE_URL setting)")
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    create = sub.add_parser("create-user", help="Create an account (password is prompted, never echoed)")
    create.add_argument("username")
    create.add_argument("email")
    create.add_argument(
        "--role",
        choices=[r.value for r in Role],
        default=Role.DEVELOPER.value,
        help="Account role (default: DEVELOPER)",
    )
    create.add_argument("--first-name", default=None)
    create.add_argument("--last-name", default=None)

    sub.add_parser("list-users", help="List all accounts")

    run = sub.add_parser("serve", help="Run the HTTP API with uvicorn")
    run.add_argument("--host", default="127.0.0.1")
    run.add_argument("--port", type=int, default=8000)
    run.add_argument("--reload", action="store_true", help="Reload on code changes (development)")
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0
    if args.command == "serve":
        return serve(args)

    store = UserStore(db_url=args.db)
    try:
        if args.command == "create-user":
            return create_user(store, args)
        return list_users(store, args)
    finally:
        store.close()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(levelname)-5s %(name)s %(message)s")
    sys.exit(main())
