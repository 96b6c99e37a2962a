"""Ephemeral typing indicators and read receipts."""

from __future__ import annotations

from hermes_relay.schemas.events import MarkReadPayload, MessageRead, UserTyping, server_frame
from hermes_relay.services.identity import AccountIdentity
from hermes_relay.services.ports import FanoutTransport, Subscriber, chat_group


class PresenceRelay:
    """Relays presence events to a chat's group, excluding the sender.

    Nothing is persisted and no membership check is made.
    """

    def __init__(self, transport: FanoutTransport) -> None:
        self.transport = transport

    def typing(
        self,
        subscriber: Subscriber,
        identity: AccountIdentity,
        chat_id: str,
        *,
        is_typing: bool,
    ) -> int:
        """Broadcast a ``user_typing`` event."""
        payload = UserTyping(
            account_id=identity.id,
            display_name=identity.display_name,
            is_typing=is_typing,
        )
        return self.transport.broadcast(
            chat_group(chat_id),
            server_frame("user_typing", payload),
            exclude=(subscriber,),
        )

    def mark_read(
        self,
        subscriber: Subscriber,
        identity: AccountIdentity,
        receipt: MarkReadPayload,
    ) -> int:
        """Broadcast a ``message_read`` receipt."""
        payload = MessageRead(
            message_id=receipt.message_id,
            account_id=identity.id,
            display_name=identity.display_name,
        )
        return self.transport.broadcast(
            chat_group(receipt.chat_id),
            server_frame("message_read", payload),
            exclude=(subscriber,),
        )
