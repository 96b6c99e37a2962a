"""Per-connection event dispatch for the realtime relay."""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from typing import Any

from hermes_relay.core.errors import AccessDeniedError, InvalidEventError, PersistenceError
from hermes_relay.schemas.events import (
    CLIENT_EVENT_TYPES,
    ClientEvent,
    ErrorPayload,
    JoinGroupEvent,
    LeaveGroupEvent,
    MarkReadEvent,
    SendMessageEvent,
    SetPublicKeyEvent,
    TypingStartEvent,
    TypingStopEvent,
    parse_client_event,
    server_frame,
)
from hermes_relay.services.identity import AccountIdentity
from hermes_relay.services.keys import KeyRegistry
from hermes_relay.services.membership import MembershipSynchronizer
from hermes_relay.services.message_pipeline import MessagePipeline
from hermes_relay.services.ports import FanoutTransport, Subscriber
from hermes_relay.services.presence import PresenceRelay

logger = logging.getLogger(__name__)

SET_KEY_FAILED_MESSAGE = "Failed to set public key"


class RelaySession:
    """Routes one connection's inbound events to the relay components.

    Events are handled one at a time in arrival order; the caller awaits the
    next frame only after ``handle_text`` returns. Errors are reported to
    this connection alone and never end the session, store failures
    included.
    """

    def __init__(
        self,
        subscriber: Subscriber,
        identity: AccountIdentity,
        *,
        transport: FanoutTransport,
        synchronizer: MembershipSynchronizer,
        pipeline: MessagePipeline,
        presence: PresenceRelay,
        key_registry: KeyRegistry,
    ) -> None:
        self.subscriber = subscriber
        self.identity = identity
        self.transport = transport
        self.synchronizer = synchronizer
        self.pipeline = pipeline
        self.presence = presence
        self.key_registry = key_registry

        self._handlers: dict[type[Any], Callable[[Any], None]] = {
            JoinGroupEvent: self._on_join_group,
            LeaveGroupEvent: self._on_leave_group,
            SendMessageEvent: self._on_send_message,
            TypingStartEvent: self._on_typing_start,
            TypingStopEvent: self._on_typing_stop,
            MarkReadEvent: self._on_mark_read,
            SetPublicKeyEvent: self._on_set_public_key,
        }
        unhandled = set(CLIENT_EVENT_TYPES) - set(self._handlers)
        if unhandled:
            raise RuntimeError(f"No handler for events: {sorted(t.__name__ for t in unhandled)}")

    def open(self) -> list[str]:
        """Subscribe the connection to all of its open chats."""
        chat_ids = self.synchronizer.sync(self.subscriber, self.identity.id)
        logger.info(
            "User %s connected (%s), %d chats",
            self.identity.display_name,
            self.subscriber.id,
            len(chat_ids),
        )
        return chat_ids

    def close(self) -> None:
        """Drop every subscription held by the connection."""
        self.synchronizer.release(self.subscriber)
        logger.info("User %s disconnected (%s)", self.identity.display_name, self.subscriber.id)

    def handle_text(self, text: str) -> None:
        """Decode, validate and dispatch one inbound text frame."""
        try:
            raw = json.loads(text)
        except ValueError:
            self._error(InvalidEventError.public_message)
            return
        self.handle(raw)

    def handle(self, raw: Any) -> None:
        """Validate and dispatch one decoded inbound frame."""
        try:
            event = parse_client_event(raw)
        except InvalidEventError as err:
            logger.debug("Invalid frame from %s: %s", self.subscriber.id, err)
            self._error(str(err))
            return
        try:
            self.dispatch(event)
        except PersistenceError as err:
            logger.error(
                "Store failure handling %s from %s: %s", event.event, self.subscriber.id, err
            )
            self._error(PersistenceError.public_message)

    def dispatch(self, event: ClientEvent) -> None:
        """Invoke the handler registered for the event's type."""
        self._handlers[type(event)](event)

    def _error(self, message: str) -> None:
        self.transport.send(self.subscriber, server_frame("error", ErrorPayload(message=message)))

    def _on_join_group(self, event: JoinGroupEvent) -> None:
        try:
            self.synchronizer.join_group(self.subscriber, self.identity.id, event.data)
        except AccessDeniedError as err:
            self._error(str(err))
            return
        logger.debug("User %s joined chat %s", self.identity.display_name, event.data)

    def _on_leave_group(self, event: LeaveGroupEvent) -> None:
        self.synchronizer.leave_group(self.subscriber, event.data)
        logger.debug("User %s left chat %s", self.identity.display_name, event.data)

    def _on_send_message(self, event: SendMessageEvent) -> None:
        self.pipeline.send(self.subscriber, self.identity, event.data)

    def _on_typing_start(self, event: TypingStartEvent) -> None:
        self.presence.typing(self.subscriber, self.identity, event.data, is_typing=True)

    def _on_typing_stop(self, event: TypingStopEvent) -> None:
        self.presence.typing(self.subscriber, self.identity, event.data, is_typing=False)

    def _on_mark_read(self, event: MarkReadEvent) -> None:
        self.presence.mark_read(self.subscriber, self.identity, event.data)

    def _on_set_public_key(self, event: SetPublicKeyEvent) -> None:
        try:
            self.key_registry.set_public_key(self.identity.id, event.data)
        except PersistenceError:
            self._error(SET_KEY_FAILED_MESSAGE)
            return
        self.transport.send(self.subscriber, server_frame("key_set_success"))
