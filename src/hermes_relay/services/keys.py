"""Wrapped chat keys and per-account wrapping public keys.

The server never transforms key material; both stores hold opaque blobs.
"""

from __future__ import annotations

import logging

from hermes_relay.models import Account, WrappedKey
from hermes_relay.services.ports import ChatStore

logger = logging.getLogger(__name__)


class KeyExchangeStore:
    """Append-only store of wrapped keys addressed by (chat, member, version)."""

    def __init__(self, store: ChatStore) -> None:
        self.store = store

    def register(self, chat_id: str, member_id: str, version: int, wrapped_key: str) -> WrappedKey:
        """Insert a new wrapped key version.

        Raises:
            ConflictError: If the version is already registered for the member;
                the stored record is left untouched.
        """
        record = self.store.add_wrapped_key(
            chat_id=chat_id,
            account_id=member_id,
            version=version,
            wrapped_key=wrapped_key,
        )
        logger.info("Registered key version %d for member %s in chat %s", version, member_id, chat_id)
        return record

    def list(self, chat_id: str, member_id: str) -> list[WrappedKey]:
        """Return every version visible to ``member_id``, oldest first."""
        return self.store.list_wrapped_keys(chat_id, member_id)


class KeyRegistry:
    """Single current wrapping public key per account, last write wins."""

    def __init__(self, store: ChatStore) -> None:
        self.store = store

    def set_public_key(self, account_id: str, public_key: str) -> Account:
        """Overwrite the account's public key.

        Raises:
            PersistenceError: If the write fails.
        """
        account = self.store.set_public_key(account_id, public_key)
        logger.info("Public key set for account %s", account_id)
        return account

    def get_public_key(self, account_id: str) -> str | None:
        """Return the account's current public key."""
        account = self.store.get_account(account_id)
        return account.public_key if account is not None else None
