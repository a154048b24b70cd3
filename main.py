#!/usr/bin/env python3
"""
Game Auth -- admin command line for the launcher auth store.

Usage:
  python main.py create-user alice alice@example.com
  python main.py create-user bob bob@example.com --password secret123
  python main.py ban alice --reason "Cheating"
  python main.py unban alice@example.com
  python main.py enable-2fa alice
  python main.py disable-2fa alice
  python main.py audit alice --limit 20

USER arguments resolve like a login identifier: anything containing "@" is an
email, everything else a user name.

Environment variables:
  DATABASE_URL  SQLAlchemy URL of the auth store (default: auth/gameauth.db)
  SECRET_KEY    Required unless DEBUG=true; keys recovery-code hashes
"""

import argparse
import getpass
import sys

from sqlalchemy.exc import IntegrityError

from auth.audit import AuditLogger
from auth.credentials import hash_password
from auth.models import User
from auth.store import UserStore
from auth.two_factor import TOTP, TwoFactorVerifier
from core.config import Settings, get_settings


def _resolve(store: UserStore, identifier: str) -> User | None:
    user = store.get_by_identifier(identifier)
    if user is None:
        print(f"  [!] No user matches '{identifier}'.")
    return user


def cmd_create_user(store: UserStore, settings: Settings, args: argparse.Namespace) -> int:
    password = args.password or getpass.getpass("Password: ")
    if not password:
        print("  [!] Password must not be empty.")
        return 1
    try:
        user_id = store.create_user(User(name=args.name, email=args.email, password=hash_password(password)))
    except IntegrityError:
        print(f"  [!] A user named '{args.name}' or with email '{args.email}' already exists.")
        return 1
    print(f"  Created user {args.name} (id {user_id}).")
    return 0


def cmd_ban(store: UserStore, settings: Settings, args: argparse.Namespace) -> int:
    user = _resolve(store, args.user)
    if user is None:
        return 1
    store.create_ban(user.id, args.reason)
    # A banned user keeps failing verify anyway, but there is no reason to
    # leave a live token lying around.
    if user.access_token:
        store.clear_access_token(user.access_token)
    print(f"  Banned {user.name}: {args.reason}")
    return 0


def cmd_unban(store: UserStore, settings: Settings, args: argparse.Namespace) -> int:
    user = _resolve(store, args.user)
    if user is None:
        return 1
    if not store.remove_ban(user.id):
        print(f"  {user.name} is not banned.")
        return 1
    print(f"  Unbanned {user.name}.")
    return 0


def cmd_enable_2fa(store: UserStore, settings: Settings, args: argparse.Namespace) -> int:
    user = _resolve(store, args.user)
    if user is None:
        return 1
    totp = TOTP(window=settings.totp_window)
    secret, codes = TwoFactorVerifier(store, settings.secret_key, totp).enable(user.id)
    print(f"  2FA enabled for {user.name}.")
    print(f"  Secret:       {secret}")
    print(f"  Provisioning: {totp.provisioning_uri(secret, user.email)}")
    print("  Recovery codes (shown once, each works a single time):")
    for code in codes:
        print(f"    {code}")
    return 0


def cmd_disable_2fa(store: UserStore, settings: Settings, args: argparse.Namespace) -> int:
    user = _resolve(store, args.user)
    if user is None:
        return 1
    TwoFactorVerifier(store, settings.secret_key).disable(user.id)
    print(f"  2FA disabled for {user.name}.")
    return 0


def cmd_audit(store: UserStore, settings: Settings, args: argparse.Namespace) -> int:
    user = _resolve(store, args.user)
    if user is None:
        return 1
    entries = AuditLogger(store).entries(user.id, limit=args.limit)
    if not entries:
        print(f"  No audit entries for {user.name}.")
        return 0
    for entry in entries:
        data = " ".join(f"{k}={v}" for k, v in entry.data.items())
        print(f"  {entry.created_at}  {entry.action.value:<24} {data}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="gameauth",
        description="Manage players of the game launcher auth API.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    p = sub.add_parser("create-user", help="Create a player account")
    p.add_argument("name", help="Unique user name")
    p.add_argument("email", help="Unique email address")
    p.add_argument("--password", help="Password (prompted for when omitted)")
    p.set_defaults(func=cmd_create_user)

    p = sub.add_parser("ban", help="Ban a player; authenticate and verify fail until unbanned")
    p.add_argument("user", metavar="USER", help="User name or email")
    p.add_argument("--reason", required=True, help="Reason shown to the player")
    p.set_defaults(func=cmd_ban)

    p = sub.add_parser("unban", help="Lift a player's ban")
    p.add_argument("user", metavar="USER", help="User name or email")
    p.set_defaults(func=cmd_unban)

    p = sub.add_parser("enable-2fa", help="Enable TOTP 2FA and print fresh recovery codes")
    p.add_argument("user", metavar="USER", help="User name or email")
    p.set_defaults(func=cmd_enable_2fa)

    p = sub.add_parser("disable-2fa", help="Disable 2FA and drop recovery codes")
    p.add_argument("user", metavar="USER", help="User name or email")
    p.set_defaults(func=cmd_disable_2fa)

    p = sub.add_parser("audit", help="Show a player's recent authentication events")
    p.add_argument("user", metavar="USER", help="User name or email")
    p.add_argument("--limit", type=int, default=20, help="Maximum entries to show (default: 20)")
    p.set_defaults(func=cmd_audit)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not getattr(args, "func", None):
        parser.print_help()
        return 1

    settings = get_settings()
    store = UserStore(settings.database_url)
    try:
        return args.func(store, settings, args)
    finally:
        store.close()


if __name__ == "__main__":
    sys.exit(main())
