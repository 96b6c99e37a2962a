"""Utility script to create (or recreate) the relay's tables."""
from __future__ import annotations

import argparse
import sys

from hermes_relay.core.settings import settings
from hermes_relay.db.session import create_tables, drop_tables


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Ensure the relay schema exists.")
    parser.add_argument(
        "--drop",
        action="store_true",
        help="Drop all tables before creating them (destroys data).",
    )
    args = parser.parse_args(argv)

    if args.drop:
        drop_tables()
        print("Dropped all tables")
    create_tables()
    print(f"Schema ready on {settings.database_url_sync.split('@')[-1]}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
