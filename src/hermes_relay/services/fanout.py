"""In-process fan-out transport for live WebSocket connections.

Broadcasting never awaits a socket. Frames are pushed onto each
subscriber's bounded outbound queue and a per-connection writer task drains
the queue in order, so one slow client cannot stall a chat. A subscriber
whose queue overflows is disconnected with close code 1013.
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from collections.abc import Iterable
from typing import Any
from uuid import uuid4

from fastapi import WebSocket, WebSocketDisconnect

from hermes_relay.services.ports import Subscriber

# Configure logger for this module
logger = logging.getLogger(__name__)

OVERLOADED_CLOSE_CODE = 1013

_STOP: dict[str, Any] = {"__sentinel__": "stop"}
_OVERFLOW: dict[str, Any] = {"__sentinel__": "overflow"}


class Connection:
    """A live WebSocket plus its outbound queue and writer task."""

    def __init__(
        self,
        websocket: WebSocket,
        *,
        queue_size: int,
        connection_id: str | None = None,
    ) -> None:
        self.id = connection_id or uuid4().hex
        self.websocket = websocket
        self.closed = False
        self._queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue(maxsize=max(1, queue_size))
        self._writer: asyncio.Task[None] | None = None

    def __repr__(self) -> str:
        return f"Connection(id={self.id!r})"

    def start(self) -> None:
        """Start draining the outbound queue."""
        if self._writer is None:
            self._writer = asyncio.create_task(self._drain())

    def enqueue(self, frame: dict[str, Any]) -> bool:
        """Queue a frame for delivery; return False if the connection is gone."""
        if self.closed:
            return False
        try:
            self._queue.put_nowait(frame)
        except asyncio.QueueFull:
            self._overflow()
            return False
        return True

    def _overflow(self) -> None:
        logger.warning("Connection %s exceeded its outbound buffer; disconnecting", self.id)
        self.closed = True
        while not self._queue.empty():
            self._queue.get_nowait()
        self._queue.put_nowait(_OVERFLOW)

    async def _drain(self) -> None:
        while True:
            frame = await self._queue.get()
            if frame is _STOP:
                return
            if frame is _OVERFLOW:
                try:
                    await self.websocket.close(code=OVERLOADED_CLOSE_CODE)
                except (RuntimeError, OSError) as err:
                    logger.debug("Close after overflow failed on %s: %s", self.id, err)
                return
            try:
                await self.websocket.send_json(frame)
            except (WebSocketDisconnect, RuntimeError, OSError) as err:
                logger.info("Dropping connection %s after send failure: %s", self.id, err)
                self.closed = True
                return

    async def aclose(self) -> None:
        """Flush pending frames and stop the writer task."""
        was_closed = self.closed
        self.closed = True
        if self._writer is None:
            return
        if not was_closed:
            try:
                self._queue.put_nowait(_STOP)
            except asyncio.QueueFull:
                self._writer.cancel()
        try:
            await self._writer
        except asyncio.CancelledError:
            pass
        self._writer = None


class ConnectionHub:
    """Tracks which connections are subscribed to which fan-out groups.

    Subscription sets are only mutated from the event loop by the owning
    connection's handlers, so the methods are synchronous and need no lock.
    """

    def __init__(self) -> None:
        self._groups: dict[str, set[Subscriber]] = defaultdict(set)
        self._by_subscriber: dict[str, set[str]] = defaultdict(set)

    def subscribe(self, group: str, subscriber: Subscriber) -> None:
        """Add ``subscriber`` to ``group``."""
        self._groups[group].add(subscriber)
        self._by_subscriber[subscriber.id].add(group)

    def unsubscribe(self, group: str, subscriber: Subscriber) -> None:
        """Remove ``subscriber`` from ``group`` if present."""
        members = self._groups.get(group)
        if members is not None:
            members.discard(subscriber)
            if not members:
                self._groups.pop(group, None)
        groups = self._by_subscriber.get(subscriber.id)
        if groups is not None:
            groups.discard(group)
            if not groups:
                self._by_subscriber.pop(subscriber.id, None)

    def drop(self, subscriber: Subscriber) -> None:
        """Remove every subscription held by ``subscriber``."""
        for group in list(self._by_subscriber.get(subscriber.id, ())):
            self.unsubscribe(group, subscriber)

    def groups_of(self, subscriber: Subscriber) -> frozenset[str]:
        """Return the groups ``subscriber`` currently belongs to."""
        return frozenset(self._by_subscriber.get(subscriber.id, ()))

    def subscribers(self, group: str) -> frozenset[Subscriber]:
        """Return the current subscribers of ``group``."""
        return frozenset(self._groups.get(group, ()))

    def send(self, subscriber: Subscriber, frame: dict[str, Any]) -> bool:
        """Deliver a frame to a single connection."""
        if subscriber.enqueue(frame):
            return True
        self.drop(subscriber)
        return False

    def broadcast(
        self,
        group: str,
        frame: dict[str, Any],
        *,
        exclude: Iterable[Subscriber] = (),
    ) -> int:
        """Deliver ``frame`` to every subscriber of ``group`` not in ``exclude``.

        Returns:
            Number of subscribers the frame was queued for.
        """
        skipped = set(exclude)
        delivered = 0
        for subscriber in list(self._groups.get(group, ())):
            if subscriber in skipped:
                continue
            if subscriber.enqueue(frame):
                delivered += 1
            else:
                self.drop(subscriber)
        return delivered
