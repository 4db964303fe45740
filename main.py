#!/usr/bin/env python3
"""
Portal administration CLI.

Usage:
  python main.py init-db
  python main.py issue-root-code --email root@example.com
  python main.py drop-tables
  python main.py drop-tables --yes
  python main.py permissions

Environment variables:
  DATABASE_URL   SQLAlchemy URL of the store (default: sqlite file next to this script)
  See core/config.py for the full list.
"""

from __future__ import annotations

import argparse
import logging

from auth.permissions import PERMISSION_DATA
from core.config import get_settings
from db.engine import build_engine, create_schema, drop_schema
from db.gateway import Gateway
from services.invitations import issue_bootstrap_code

logger = logging.getLogger("portal.cli")


def _init_db(args: argparse.Namespace) -> int:
    engine = build_engine()
    create_schema(engine)
    engine.dispose()
    print("  Schema created (existing tables were left untouched).")
    return 0


def _issue_root_code(args: argparse.Namespace) -> int:
    """Issue the system code for the first account. Refused once the store has data."""
    engine = build_engine()
    create_schema(engine)
    gateway = Gateway(engine)
    try:
        result = issue_bootstrap_code(gateway, args.email)
    finally:
        gateway.dispose()
    if not result.success:
        logger.info("Root code refused: %s", result.error.code)
        print(f"  [!] {result.error.message}")
        return 1
    code = result.result
    minutes = get_settings().bootstrap_code_expiry_minutes
    print(f"  Root account creation code for {code.email}: {code.code}")
    print(f"  Expires in {minutes} minute(s). Grants: {', '.join(code.permission_names)}")
    return 0


def _drop_tables(args: argparse.Namespace) -> int:
    if not args.yes:
        answer = input("  This deletes every user, token and code. Type 'drop' to continue: ")
        if answer.strip() != "drop":
            print("  Aborted.")
            return 1
    engine = build_engine()
    drop_schema(engine)
    engine.dispose()
    print("  All tables dropped.")
    return 0


def _permissions(args: argparse.Namespace) -> int:
    width = max(len(p.value) for p in PERMISSION_DATA)
    for permission, info in PERMISSION_DATA.items():
        flag = "!" if info.is_privileged else " "
        print(f"  {flag} {permission.value:<{width}}  {info.description}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="portal",
        description="Portal store administration.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py init-db
  python main.py issue-root-code --email root@example.com
  DATABASE_URL=postgresql+psycopg2://portal@db/portal python main.py init-db
        """,
    )
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    init_db = sub.add_parser("init-db", help="Create all tables and indexes (idempotent)")
    init_db.set_defaults(handler=_init_db)

    root_code = sub.add_parser(
        "issue-root-code",
        help="Issue the first account creation code (empty store only)",
    )
    root_code.add_argument("--email", required=True, help="Email address the code is bound to")
    root_code.set_defaults(handler=_issue_root_code)

    drop = sub.add_parser("drop-tables", help="Drop every portal table")
    drop.add_argument("--yes", action="store_true", help="Skip the confirmation prompt")
    drop.set_defaults(handler=_drop_tables)

    perms = sub.add_parser("permissions", help="Print the permission catalog (! = privileged)")
    perms.set_defaults(handler=_permissions)
    return parser


def main(argv: list[str] | None = None) -> int:
    logging.basicConfig(
        level=logging.DEBUG if get_settings().debug else logging.WARNING,
        format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    parser = build_parser()
    args = parser.parse_args(argv)
    if not getattr(args, "handler", None):
        parser.print_help()
        return 0
    return args.handler(args)


if __name__ == "__main__":
    raise SystemExit(main())
