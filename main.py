#!/usr/bin/env python3
"""
AccessGate -- administration CLI.

Usage:
  python main.py create-user admin --role admin
  python main.py create-user ana
  python main.py login ana
  python main.py verify-token eyJhbGciOi...
  python main.py count-users --role admin

Passwords are read with getpass (never from argv). Pass --password-stdin to
read one line from stdin instead, e.g. in provisioning scripts.

Environment variables: see core/config.py. SECRET_KEY is required unless
DEBUG=true; DATABASE_URL selects the identity database.
"""

import argparse
import getpass
import sys

from auth.errors import (
    AuthenticationFailedError,
    DuplicateLoginIdError,
    IdentityStoreUnavailableError,
    InvalidCredentialsFormatError,
    InvalidInputError,
    TokenError,
)
from auth.models import ALL_ROLES, Credentials, Role
from auth.services import AuthServices, build_auth_services
from core.config import get_settings


def _read_password(args: argparse.Namespace, confirm: bool = False) -> str:
    if args.password_stdin:
        return sys.stdin.readline().rstrip("\n")
    password = getpass.getpass("  Password: ")
    if confirm and getpass.getpass("  Confirm password: ") != password:
        print("  [!] Passwords do not match.")
        sys.exit(1)
    return password


def cmd_create_user(services: AuthServices, args: argparse.Namespace) -> int:
    credentials = Credentials(login_id=args.login_id, password=_read_password(args, confirm=True))
    try:
        identity = services.users.sign_up(credentials, role=args.role)
    except InvalidCredentialsFormatError as e:
        print(f"  [!] {e.message}")
        return 1
    except DuplicateLoginIdError:
        print(f"  [!] Login id '{args.login_id}' is already taken.")
        return 1
    print(f"  Created user {identity.login_id} (id={identity.id}, role={identity.role})")
    return 0


def cmd_login(services: AuthServices, args: argparse.Namespace) -> int:
    credentials = Credentials(login_id=args.login_id, password=_read_password(args))
    try:
        identity = services.users.authenticate(credentials)
    except (AuthenticationFailedError, InvalidCredentialsFormatError):
        print("  [!] Invalid login id or password.")
        return 1
    print(services.tokens.issue(services.users.to_principal(identity)))
    return 0


def cmd_verify_token(services: AuthServices, args: argparse.Namespace) -> int:
    try:
        principal = services.tokens.verify(args.token)
    except TokenError as e:
        print(f"  [!] Token rejected: {type(e).__name__}")
        return 1
    print(f"  subject_id={principal.subject_id} role={principal.role}")
    return 0


def cmd_count_users(services: AuthServices, args: argparse.Namespace) -> int:
    print(services.store.count(args.role))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="accessgate",
        description="AccessGate administration: manage identities and inspect tokens.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    create = sub.add_parser("create-user", help="Create an identity")
    create.add_argument("login_id")
    create.add_argument("--role", choices=sorted(ALL_ROLES), default=Role.user.value)
    create.add_argument("--password-stdin", action="store_true", help="Read the password from stdin")
    create.set_defaults(func=cmd_create_user)

    login = sub.add_parser("login", help="Authenticate and print an access token")
    login.add_argument("login_id")
    login.add_argument("--password-stdin", action="store_true", help="Read the password from stdin")
    login.set_defaults(func=cmd_login)

    verify = sub.add_parser("verify-token", help="Verify a token and print its principal")
    verify.add_argument("token")
    verify.set_defaults(func=cmd_verify_token)

    count = sub.add_parser("count-users", help="Print the number of identities")
    count.add_argument("--role", choices=sorted(ALL_ROLES))
    count.set_defaults(func=cmd_count_users)

    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        services = build_auth_services(get_settings())
    except ValueError as e:
        print(f"  [!] Configuration error: {e}")
        return 2
    try:
        return args.func(services, args)
    except IdentityStoreUnavailableError:
        print("  [!] Identity store unavailable.")
        return 3
    except InvalidInputError as e:
        print(f"  [!] {e}")
        return 1
    finally:
        services.store.close()


if __name__ == "__main__":
    sys.exit(main())
