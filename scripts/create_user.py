#!/usr/bin/env python3
"""
Create a user account (and its activation token) directly in the database.

Usage:
  python scripts/create_user.py --email someone@example.com [--admin] [--moderator] [--group staff]
"""
from __future__ import annotations

import argparse
import sys

from kraal.core.log import configure_logging
from kraal.services.accounts import AccountsService


def main(argv: list[str] | None = None) -> int:
    ap = argparse.ArgumentParser(description="Create a user account")
    ap.add_argument("--email", required=True, help="Email address of the new user")
    ap.add_argument("--admin", action="store_true", help="Grant the admin role")
    ap.add_argument("--moderator", action="store_true", help="Grant the moderator role")
    ap.add_argument("--group", action="append", default=[], help="Group membership (repeatable)")
    args = ap.parse_args(argv)

    configure_logging()
    roles = {"admin": args.admin, "moderator": args.moderator, "groups": args.group}
    result = AccountsService().create_user({"email": args.email, "roles": roles})
    if not result.ok:
        for name, messages in result.errors.items():
            sys.stderr.write(f"{name}: {messages}\n")
        return 1
    user = result.record
    print("OK: user created")
    print(f"  ID: {user.id}")
    print(f"  Email: {user.email}")
    return 0


if __name__ == "__main__":
    try:
        raise SystemExit(main())
    except Exception as exc:  # pragma: no cover - CLI usage
        sys.stderr.write(f"Error: {exc}\n")
        raise SystemExit(1)
