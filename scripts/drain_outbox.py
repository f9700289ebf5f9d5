#!/usr/bin/env python3
"""
Retry queued emails (activation emails whose first delivery failed).

Usage:
  python scripts/drain_outbox.py [--limit 100]
"""
from __future__ import annotations

import argparse
import sys

from kraal.core.log import configure_logging
from kraal.services.notifications import drain_outbox, pending_messages


def main(argv: list[str] | None = None) -> int:
    ap = argparse.ArgumentParser(description="Deliver pending emails from the outbox")
    ap.add_argument("--limit", type=int, default=100, help="Maximum number of messages to attempt")
    args = ap.parse_args(argv)

    configure_logging()
    sent = drain_outbox(limit=args.limit)
    remaining = len(pending_messages())
    print(f"OK: {sent} sent, {remaining} still pending")
    return 0


if __name__ == "__main__":
    try:
        raise SystemExit(main())
    except Exception as exc:  # pragma: no cover - CLI usage
        sys.stderr.write(f"Error: {exc}\n")
        raise SystemExit(1)
