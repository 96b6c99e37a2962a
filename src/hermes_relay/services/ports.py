# src/hermes_relay/services/ports.py
"""Ports consumed by the relay components.

Components never reach for module-level database or socket handles; they are
handed a ``ChatStore`` and a ``FanoutTransport`` at construction time.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime
from typing import Any, Protocol

from hermes_relay.models import Account, Message, MessageKind, WrappedKey


class ChatStore(Protocol):
    """Persistence port: reads and writes the relay's rows."""

    def get_account(self, account_id: str) -> Account | None: ...

    def list_open_chat_ids(self, account_id: str) -> list[str]: ...

    def has_open_membership(self, account_id: str, chat_id: str) -> bool: ...

    def get_message(self, message_id: str) -> Message | None: ...

    def create_message(
        self,
        *,
        chat_id: str,
        sender_id: str,
        ciphertext: str,
        kind: MessageKind,
        reply_to_id: str | None,
    ) -> Message: ...

    def touch_chat(self, chat_id: str, at: datetime) -> None: ...

    def add_wrapped_key(
        self, *, chat_id: str, account_id: str, version: int, wrapped_key: str
    ) -> WrappedKey: ...

    def list_wrapped_keys(self, chat_id: str, account_id: str) -> list[WrappedKey]: ...

    def set_public_key(self, account_id: str, public_key: str) -> Account: ...


class Subscriber(Protocol):
    """A live connection that can receive outbound frames."""

    id: str

    def enqueue(self, frame: dict[str, Any]) -> bool: ...


class FanoutTransport(Protocol):
    """Transport port: delivers frames to groups of connections."""

    def subscribe(self, group: str, subscriber: Subscriber) -> None: ...

    def unsubscribe(self, group: str, subscriber: Subscriber) -> None: ...

    def drop(self, subscriber: Subscriber) -> None: ...

    def groups_of(self, subscriber: Subscriber) -> frozenset[str]: ...

    def broadcast(
        self,
        group: str,
        frame: dict[str, Any],
        *,
        exclude: Iterable[Subscriber] = (),
    ) -> int: ...

    def send(self, subscriber: Subscriber, frame: dict[str, Any]) -> bool: ...


def chat_group(chat_id: str) -> str:
    """Return the fan-out group name for a chat."""
    return f"chat_{chat_id}"
