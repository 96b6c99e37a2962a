# src/hermes_relay/api/v1/endpoints/accounts.py
"""Account key registry and account lookup endpoints."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, Query, status

from hermes_relay.api.v1.dependencies import CurrentAccountDep, StoreDep, persistence_unavailable
from hermes_relay.core.errors import PersistenceError
from hermes_relay.core.settings import settings
from hermes_relay.db.time import as_utc
from hermes_relay.schemas.chat import AccountSearchOut, MemberAccount, PublicKeyOut

router = APIRouter(prefix="/accounts", tags=["accounts"])
users_router = APIRouter(prefix="/users", tags=["accounts"])


@router.get("/{account_id}/public-key", response_model=PublicKeyOut)
async def get_public_key(
    account_id: str,
    current_account: CurrentAccountDep,
    store: StoreDep,
) -> PublicKeyOut:
    """Return an account's current wrapping public key."""
    account = store.get_account(account_id)
    if account is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Account not found",
        )
    return PublicKeyOut(
        account_id=account.id,
        public_key=account.public_key,
        updated_at=as_utc(account.public_key_updated_at),
    )


@users_router.get("/search", response_model=AccountSearchOut)
async def search_accounts(
    current_account: CurrentAccountDep,
    store: StoreDep,
    email: str | None = Query(None, description="Case-insensitive email fragment"),
) -> AccountSearchOut:
    """Find accounts to add to a chat by part of their email address."""
    if not email:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Email query parameter is required",
        )
    try:
        accounts = store.search_accounts_by_email(email, limit=settings.user_search_limit)
    except PersistenceError as err:
        raise persistence_unavailable(err) from err
    return AccountSearchOut(
        users=[
            MemberAccount(
                id=account.id,
                name=account.display_name,
                email=account.email,
                avatar=account.avatar,
            )
            for account in accounts
        ]
    )
