"""Authorize, persist and broadcast new chat messages."""

from __future__ import annotations

import logging

from hermes_relay.core.errors import AccessDeniedError, InvalidEventError, PersistenceError
from hermes_relay.db.time import as_utc
from hermes_relay.models import Message
from hermes_relay.schemas.events import (
    ErrorPayload,
    NewMessage,
    ReplyPreview,
    ReplySender,
    SendMessagePayload,
    SenderProjection,
    server_frame,
)
from hermes_relay.services.identity import AccountIdentity
from hermes_relay.services.membership import AuthorizationGuard
from hermes_relay.services.ports import ChatStore, FanoutTransport, Subscriber, chat_group

# Configure logger for this module
logger = logging.getLogger(__name__)

SEND_FAILED_MESSAGE = "Failed to send message"


def build_new_message(
    message: Message,
    sender: SenderProjection,
    reply_to: Message | None = None,
) -> NewMessage:
    """Materialize the broadcast payload for a persisted message."""
    preview = None
    if reply_to is not None:
        preview = ReplyPreview(
            id=reply_to.id,
            ciphertext=reply_to.ciphertext,
            sender=ReplySender(name=reply_to.sender.display_name),
        )
    return NewMessage(
        id=message.id,
        chat_id=message.chat_id,
        sender_id=message.sender_id,
        ciphertext=message.ciphertext,
        kind=message.kind,
        reply_to_id=message.reply_to_id,
        is_edited=message.is_edited,
        edited_at=as_utc(message.edited_at),
        deleted_at=as_utc(message.deleted_at),
        created_at=as_utc(message.created_at),
        sender=sender,
        reply_to=preview,
    )


def sender_projection(message: Message) -> SenderProjection:
    """Return the denormalized sender of a loaded message."""
    return SenderProjection(
        id=message.sender.id,
        name=message.sender.display_name,
        email=message.sender.email,
        avatar=message.sender.avatar,
    )


class MessagePipeline:
    """Runs a ``send_message`` request through guard, store and transport.

    Steps are strictly ordered: nothing is written unless the guard passes,
    and nothing is broadcast unless the write committed. The broadcast goes
    to every subscriber of the chat, the sender's own connections included.
    """

    def __init__(
        self,
        store: ChatStore,
        transport: FanoutTransport,
        guard: AuthorizationGuard,
        *,
        enforce_reply_same_chat: bool = False,
    ) -> None:
        self.store = store
        self.transport = transport
        self.guard = guard
        self.enforce_reply_same_chat = enforce_reply_same_chat

    def _reply_target(self, payload: SendMessagePayload) -> Message | None:
        if payload.reply_to_id is None:
            return None
        target = self.store.get_message(payload.reply_to_id)
        if target is None:
            raise InvalidEventError("Reply target not found")
        if self.enforce_reply_same_chat and target.chat_id != payload.chat_id:
            raise InvalidEventError("Reply target belongs to another chat")
        return target

    def send(
        self,
        subscriber: Subscriber,
        sender: AccountIdentity,
        payload: SendMessagePayload,
    ) -> NewMessage | None:
        """Process one message; return the broadcast payload or None on failure.

        Failures are reported to ``subscriber`` alone as an ``error`` event.
        """
        try:
            self.guard.require(sender.id, payload.chat_id)
            reply_to = self._reply_target(payload)
            message = self.store.create_message(
                chat_id=payload.chat_id,
                sender_id=sender.id,
                ciphertext=payload.ciphertext,
                kind=payload.kind,
                reply_to_id=payload.reply_to_id,
            )
        except (AccessDeniedError, InvalidEventError) as err:
            logger.info("Rejected message from %s to chat %s: %s", sender.id, payload.chat_id, err)
            self.transport.send(subscriber, server_frame("error", ErrorPayload(message=str(err))))
            return None
        except PersistenceError as err:
            logger.error("Failed to persist message in chat %s: %s", payload.chat_id, err)
            self.transport.send(
                subscriber, server_frame("error", ErrorPayload(message=SEND_FAILED_MESSAGE))
            )
            return None

        try:
            self.store.touch_chat(payload.chat_id, message.created_at)
        except PersistenceError as err:
            # The message is durable; a stale freshness timestamp is tolerated.
            logger.warning("Could not touch chat %s: %s", payload.chat_id, err)

        new_message = build_new_message(
            message,
            SenderProjection(
                id=sender.id,
                name=sender.display_name,
                email=sender.email,
                avatar=sender.avatar,
            ),
            reply_to,
        )
        delivered = self.transport.broadcast(
            chat_group(payload.chat_id), server_frame("new_message", new_message)
        )
        logger.info(
            "Message %s sent in chat %s by %s (%d recipients)",
            message.id,
            payload.chat_id,
            sender.id,
            delivered,
        )
        return new_message
