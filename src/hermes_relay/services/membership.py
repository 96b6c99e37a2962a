"""Chat membership: authorization checks and fan-out group subscription."""

from __future__ import annotations

import logging

from hermes_relay.core.errors import AccessDeniedError
from hermes_relay.services.ports import ChatStore, FanoutTransport, Subscriber, chat_group

logger = logging.getLogger(__name__)


class AuthorizationGuard:
    """Authoritative check for an open membership of (account, chat).

    Always reads the store; nothing is cached between calls so a membership
    closed by another process takes effect on the next check.
    """

    def __init__(self, store: ChatStore) -> None:
        self.store = store

    def is_member(self, account_id: str, chat_id: str) -> bool:
        """Return True if the account holds an open membership in the chat."""
        return self.store.has_open_membership(account_id, chat_id)

    def require(self, account_id: str, chat_id: str) -> None:
        """Raise ``AccessDeniedError`` unless the account is an open member."""
        if not self.is_member(account_id, chat_id):
            raise AccessDeniedError()


class MembershipSynchronizer:
    """Keeps a connection's group subscriptions in step with its chats.

    ``join_group`` and ``leave_group`` are raw subscription primitives. They
    only consult the guard when ``guard_subscriptions`` is enabled.
    """

    def __init__(
        self,
        store: ChatStore,
        transport: FanoutTransport,
        guard: AuthorizationGuard,
        *,
        guard_subscriptions: bool = False,
    ) -> None:
        self.store = store
        self.transport = transport
        self.guard = guard
        self.guard_subscriptions = guard_subscriptions

    def sync(self, subscriber: Subscriber, account_id: str) -> list[str]:
        """Subscribe ``subscriber`` to every chat with an open membership."""
        chat_ids = self.store.list_open_chat_ids(account_id)
        for chat_id in chat_ids:
            self.transport.subscribe(chat_group(chat_id), subscriber)
        logger.debug("Connection %s subscribed to %d chats", subscriber.id, len(chat_ids))
        return chat_ids

    def join_group(self, subscriber: Subscriber, account_id: str, chat_id: str) -> None:
        """Subscribe to a single chat's group."""
        if self.guard_subscriptions:
            self.guard.require(account_id, chat_id)
        self.transport.subscribe(chat_group(chat_id), subscriber)

    def leave_group(self, subscriber: Subscriber, chat_id: str) -> None:
        """Unsubscribe from a single chat's group."""
        self.transport.unsubscribe(chat_group(chat_id), subscriber)

    def release(self, subscriber: Subscriber) -> None:
        """Remove every subscription of a closing connection."""
        self.transport.drop(subscriber)
