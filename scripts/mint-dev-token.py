#!/usr/bin/env python3
"""Mint a development access token for a user id.

Production tokens come from the identity provider; this is for local
testing against a backend that shares the same JWT_SECRET.
"""

from __future__ import annotations

import argparse
import os
import sys

# Allow running from repo root: add backend/ to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "backend"))

from app.auth import create_access_token


def main() -> int:
    parser = argparse.ArgumentParser(description="Mint a JWT access token.")
    parser.add_argument("user_id", help="Value of the sub claim")
    parser.add_argument(
        "--minutes",
        type=int,
        default=60,
        help="Token lifetime in minutes (default: 60)",
    )
    args = parser.parse_args()

    if args.minutes <= 0:
        print("Error: --minutes must be positive", file=sys.stderr)
        return 1
    print(create_access_token(args.user_id, expires_minutes=args.minutes))
    return 0


if __name__ == "__main__":
    sys.exit(main())
