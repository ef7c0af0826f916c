#!/usr/bin/env python3
"""
User and invitation administration from the shell.

This is also the only way to reactivate a deactivated account.

Usage:
    python scripts/manage_users.py list
    python scripts/manage_users.py invite someone@example.com
    python scripts/manage_users.py deactivate someone@example.com
    python scripts/manage_users.py reactivate someone@example.com
    python scripts/manage_users.py purge-sessions

Environment:
    DATABASE_URL: database connection string (default sqlite:///crm.db)
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from dotenv import load_dotenv

from app.crm.errors import CrmError
from app.crm.identity import get_user_by_email, list_users, set_user_active
from app.crm.invitations import SYSTEM_INVITER, create_invitation
from app.crm.sessions import purge_expired
from scripts._db_utils import database_url, script_session


def cmd_list(s, args) -> int:
    for u in list_users(s):
        state = "active" if u.is_active else "DEACTIVATED"
        print(f"{u.id:>5}  {u.email:<40} {u.name:<30} {state}")
    return 0


def cmd_invite(s, args) -> int:
    inv = create_invitation(s, args.email, invited_by=args.invited_by)
    print(f"Invitation id={inv.id} issued for {inv.email}")
    return 0


def _set_active(s, email: str, active: bool) -> int:
    user = get_user_by_email(s, email)
    if user is None:
        print(f"User not found: {email}")
        return 1
    if set_user_active(s, user, active):
        print(f"{email}: is_active={active}")
    else:
        print(f"{email}: already is_active={active}")
    return 0


def cmd_deactivate(s, args) -> int:
    return _set_active(s, args.email, False)


def cmd_reactivate(s, args) -> int:
    return _set_active(s, args.email, True)


def cmd_purge_sessions(s, args) -> int:
    n = purge_expired(s)
    print(f"Removed {n} expired session(s)")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Manage CRM users and invitations")
    parser.add_argument("--database-url", default=None, help="Overrides DATABASE_URL")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("list", help="List users").set_defaults(func=cmd_list)

    p = sub.add_parser("invite", help="Issue an invitation")
    p.add_argument("email")
    p.add_argument("--invited-by", default=SYSTEM_INVITER)
    p.set_defaults(func=cmd_invite)

    for name, func in (("deactivate", cmd_deactivate), ("reactivate", cmd_reactivate)):
        p = sub.add_parser(name, help=f"{name.capitalize()} a user by email")
        p.add_argument("email")
        p.set_defaults(func=func)

    sub.add_parser("purge-sessions", help="Delete expired sessions").set_defaults(func=cmd_purge_sessions)
    return parser


def main(argv: list[str] | None = None) -> int:
    load_dotenv()
    args = build_parser().parse_args(argv)
    try:
        with script_session(database_url(args.database_url)) as s:
            return args.func(s, args)
    except CrmError as e:
        print(f"ERROR: {e.to_payload().get('message')}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
