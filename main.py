#!/usr/bin/env python3
"""
Agora -- operator command line.

The HTTP API never grants the admin role. Operators do it here, against the
same DATABASE_URL the server uses.

Usage:
  python main.py init-db
  python main.py add-user alice@example.com
  python main.py add-user alice@example.com --admin --name "Alice"
  python main.py promote alice@example.com
  python main.py demote alice@example.com
  python main.py users
  python main.py serve --port 8000

Environment variables:
  DATABASE_URL  SQLAlchemy URL (default: sqlite file agora.db in the project root)
  SECRET_KEY    Session signing key; required unless DEBUG=true
"""

import argparse
import sys
from typing import Optional

from sqlalchemy.exc import IntegrityError

from auth.models import Role, User
from auth.store import UserStore, normalize_email


def _open_store(db_url: Optional[str]) -> UserStore:
    return UserStore(db_url=db_url)


def cmd_init_db(args: argparse.Namespace) -> int:
    # ForumStore shares the MetaData, so one create_all covers every table.
    store = _open_store(args.database_url)
    try:
        accounts = store.count_users()
    finally:
        store.close()
    print(f"  Database schema is up to date ({accounts} accounts).")
    return 0


def cmd_add_user(args: argparse.Namespace) -> int:
    """Pre-create an email-only account. The first Google login links it."""
    email = normalize_email(args.email)
    if "@" not in email:
        print(f"  [!] '{args.email}' doesn't look like an email address.")
        return 2
    role = Role.admin.value if args.admin else Role.user.value
    store = _open_store(args.database_url)
    try:
        user_id = store.create_user(User(email=email, name=args.name or email.split("@", 1)[0], role=role))
    except IntegrityError:
        print(f"  [!] An account for {email} already exists.")
        return 1
    finally:
        store.close()
    print(f"  Created {role} account #{user_id} for {email}.")
    return 0


def _set_role(args: argparse.Namespace, role: Role) -> int:
    store = _open_store(args.database_url)
    try:
        user = store.get_by_email(args.email)
        if user is None:
            print(f"  [!] No account for {normalize_email(args.email)}.")
            return 1
        if user.role == role.value:
            print(f"  {user.email} is already {role.value}.")
            return 0
        store.set_role(user.id, role)
    finally:
        store.close()
    print(f"  {user.email}: {user.role} -> {role.value}")
    return 0


def cmd_promote(args: argparse.Namespace) -> int:
    return _set_role(args, Role.admin)


def cmd_demote(args: argparse.Namespace) -> int:
    return _set_role(args, Role.user)


def cmd_users(args: argparse.Namespace) -> int:
    store = _open_store(args.database_url)
    try:
        accounts = store.list_users()
    finally:
        store.close()
    if not accounts:
        print("  No accounts yet.")
        return 0
    for u in accounts:
        linked = "linked" if u.google_id else "unlinked"
        print(f"  #{u.id:<5} {u.role:<6} {linked:<9} {u.email}")
    return 0


def cmd_serve(args: argparse.Namespace) -> int:
    import uvicorn

    uvicorn.run("asgi:app", host=args.host, port=args.port, reload=args.reload)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="agora",
        description="Operator tools for the Agora forum backend.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py init-db
  python main.py add-user admin@example.com --admin
  python main.py promote moderator@example.com
  DATABASE_URL=postgresql://agora@db/agora python main.py users
        """,
    )
    parser.add_argument(
        "--database-url",
        metavar="URL",
        default=None,
        help="SQLAlchemy database URL (default: DATABASE_URL from the environment)",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("init-db", help="Create any missing tables")
    p.set_defaults(func=cmd_init_db)

    p = sub.add_parser("add-user", help="Pre-create an account by email")
    p.add_argument("email")
    p.add_argument("--name", default=None, help="Display name until the first Google login")
    p.add_argument("--admin", action="store_true", help="Create the account with the admin role")
    p.set_defaults(func=cmd_add_user)

    p = sub.add_parser("promote", help="Grant the admin role")
    p.add_argument("email")
    p.set_defaults(func=cmd_promote)

    p = sub.add_parser("demote", help="Revoke the admin role")
    p.add_argument("email")
    p.set_defaults(func=cmd_demote)

    p = sub.add_parser("users", help="List accounts")
    p.set_defaults(func=cmd_users)

    p = sub.add_parser("serve", help="Run the API with uvicorn")
    p.add_argument("--host", default="127.0.0.1")
    p.add_argument("--port", type=int, default=8000)
    p.add_argument("--reload", action="store_true")
    p.set_defaults(func=cmd_serve)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
