"""Resolution of verified token claims to persisted accounts."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from hermes_relay.core.errors import IdentityNotFoundError
from hermes_relay.core.security import TokenClaims
from hermes_relay.models import Account
from hermes_relay.services.ports import ChatStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AccountIdentity:
    """Snapshot of an account cached for the lifetime of a connection."""

    id: str
    display_name: str
    email: str
    avatar: str | None = None

    @classmethod
    def from_account(cls, account: Account) -> AccountIdentity:
        return cls(
            id=account.id,
            display_name=account.display_name,
            email=account.email,
            avatar=account.avatar,
        )


class IdentityResolver:
    """Maps verified claims onto an existing account row."""

    def __init__(self, store: ChatStore) -> None:
        self.store = store

    def resolve(self, claims: TokenClaims) -> AccountIdentity:
        """Return the account named by ``claims``.

        Raises:
            IdentityNotFoundError: If the account no longer exists even though
                the token itself verified.
        """
        account = self.store.get_account(claims.account_id)
        if account is None:
            logger.warning("Account %s from a valid token does not exist", claims.account_id)
            raise IdentityNotFoundError(f"Account {claims.account_id} not found")
        return AccountIdentity.from_account(account)
