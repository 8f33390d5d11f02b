#!/usr/bin/env python3
"""
RestAuth -- out-of-band provisioning and server launcher.

Clients and the first users are created here, not over HTTP: the token
endpoint only reads client records, and user registration over the API needs
an Admin token to begin with.

Usage:
  python main.py create-client
  python main.py create-client --client-id web-app
  python main.py create-user alice --name "Alice Liddell" --email alice@example.com --role Admin
  python main.py serve --port 8000

Environment variables:
  DATABASE_URL   SQLAlchemy URL of the credential store (default: auth/restauth.db)
  BCRYPT_ROUNDS  bcrypt cost factor for new password hashes (default: 10)
"""

import argparse
import getpass
import logging
import secrets
import sys
from typing import Optional

from sqlalchemy.exc import IntegrityError

from auth.models import Role, new_user_with_password
from auth.passwords import PasswordHasher
from auth.store import SQLCredentialStore, StoreError, UsernameTakenError
from auth.validation import UserValidationError
from core.config import get_settings

logger = logging.getLogger("restauth.cli")


def cmd_create_client(store: SQLCredentialStore, client_id: Optional[str]) -> int:
    """Provision a client and print its credentials once. The secret is not recoverable."""
    client_id = client_id or f"client_{secrets.token_hex(8)}"
    client_secret = secrets.token_urlsafe(32)
    try:
        store.create_client(client_id, client_secret)
    except IntegrityError:
        print(f"  [!] Client '{client_id}' already exists.", file=sys.stderr)
        return 1
    print(f"  client_id:     {client_id}")
    print(f"  client_secret: {client_secret}")
    print("  Save the secret now -- it will not be shown again.")
    return 0


def cmd_create_user(store: SQLCredentialStore, args: argparse.Namespace) -> int:
    password = args.password
    if password is None:
        password = getpass.getpass("Password: ")
        if password != getpass.getpass("Repeat password: "):
            print("  [!] Passwords do not match.", file=sys.stderr)
            return 1

    settings = get_settings()
    user = new_user_with_password(
        {"username": args.username, "name": args.name, "email": args.email, "role": args.role},
        password,
        hasher=PasswordHasher(rounds=settings.bcrypt_rounds),
    )
    try:
        store.save_user(user)
    except UserValidationError as exc:
        for violation in exc.violations:
            print(f"  [!] {violation}", file=sys.stderr)
        return 1
    except UsernameTakenError:
        print(f"  [!] User '{user.username}' already exists.", file=sys.stderr)
        return 1
    print(f"  Created user '{user.username}' with role '{user.role}'.")
    return 0


def cmd_serve(args: argparse.Namespace) -> int:
    import uvicorn

    uvicorn.run("api.main:app", host=args.host, port=args.port, reload=args.reload)
    return 0


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="restauth",
        description="RestAuth -- provisioning and server launcher.",
    )
    parser.add_argument("--db", metavar="URL", help="Override DATABASE_URL for this command")
    sub = parser.add_subparsers(dest="command", required=True)

    p_client = sub.add_parser("create-client", help="Provision an API client (id + secret)")
    p_client.add_argument("--client-id", help="Client id to use (generated when omitted)")

    p_user = sub.add_parser("create-user", help="Create a user account")
    p_user.add_argument("username")
    p_user.add_argument("--name", default="")
    p_user.add_argument("--email", default="")
    p_user.add_argument("--role", default=Role.USER.value, choices=[r.value for r in Role])
    p_user.add_argument("--password", help="Password (prompted when omitted)")

    p_serve = sub.add_parser("serve", help="Run the HTTP API with uvicorn")
    p_serve.add_argument("--host", default="127.0.0.1")
    p_serve.add_argument("--port", type=int, default=8000)
    p_serve.add_argument("--reload", action="store_true")
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    args = _build_parser().parse_args(argv)
    logging.basicConfig(level=get_settings().log_level, format="%(levelname)-5s %(name)s %(message)s")

    if args.command == "serve":
        return cmd_serve(args)

    try:
        store = SQLCredentialStore(args.db)
    except StoreError as exc:
        print(f"  [!] Could not open credential store: {exc}", file=sys.stderr)
        return 2
    try:
        if args.command == "create-client":
            return cmd_create_client(store, args.client_id)
        return cmd_create_user(store, args)
    except StoreError as exc:
        print(f"  [!] Credential store error: {exc}", file=sys.stderr)
        return 2
    finally:
        store.close()


if __name__ == "__main__":
    sys.exit(main())
