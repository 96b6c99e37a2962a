# src/hermes_relay/scripts/tokens.py
"""Issue a signed identity token for an existing account.

Useful for local testing of the WebSocket relay:

    python -m hermes_relay.scripts.tokens <account-id> --minutes 60
"""

from __future__ import annotations

import argparse
import sys
from datetime import timedelta

from hermes_relay.core.security import create_access_token
from hermes_relay.db.session import session_scope
from hermes_relay.models import Account


def issue_token(account: Account, minutes: int | None = None) -> str:
    """Return a token carrying the account's identity claims."""
    return create_access_token(
        account.id,
        display_name=account.display_name,
        email=account.email,
        expires_delta=timedelta(minutes=minutes) if minutes else None,
    )


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("account_id", help="Identifier of the account to issue a token for")
    parser.add_argument("--minutes", type=int, default=None, help="Token lifetime override")
    args = parser.parse_args(argv)

    with session_scope() as db:
        account = db.get(Account, args.account_id)
        if account is None:
            print(f"Account {args.account_id} not found", file=sys.stderr)
            return 1
        print(issue_token(account, args.minutes))
    return 0


if __name__ == "__main__":
    sys.exit(main())
