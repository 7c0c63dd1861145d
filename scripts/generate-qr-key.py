#!/usr/bin/env python3
"""Print a fresh QR_SECRET_KEY for .env.

Without a persisted key the backend picks a random one per process and
share tokens stop validating after a restart once their stored record is
gone.
"""

from __future__ import annotations

import argparse
import os
import sys

# Allow running from repo root: add backend/ to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "backend"))

from app.utils.crypto import generate_token_key


def main() -> int:
    parser = argparse.ArgumentParser(description="Generate a 256-bit QR token key.")
    parser.add_argument(
        "--env",
        action="store_true",
        help="Print as a QR_SECRET_KEY=... line",
    )
    args = parser.parse_args()

    key_hex = generate_token_key().hex()
    print(f"QR_SECRET_KEY={key_hex}" if args.env else key_hex)
    return 0


if __name__ == "__main__":
    sys.exit(main())
