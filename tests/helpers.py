"""Token and path helpers shared by the HTTP and WebSocket tests."""

from __future__ import annotations

from hermes_relay.core.security import create_access_token
from hermes_relay.models import Account


def token_for(account: Account) -> str:
    return create_access_token(
        account.id,
        display_name=account.display_name,
        email=account.email,
    )


def auth_headers(account: Account) -> dict[str, str]:
    return {"Authorization": f"Bearer {token_for(account)}"}


def ws_path(account: Account) -> str:
    return f"/api/v1/ws?token={token_for(account)}"
