# src/hermes_relay/api/v1/endpoints/realtime.py
"""WebSocket endpoint carrying the realtime relay protocol."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect, status

from hermes_relay.api.v1.dependencies import SocketHubDep, StoreDep, VerifierDep
from hermes_relay.core.errors import AuthenticationError, IdentityNotFoundError, PersistenceError
from hermes_relay.core.security import extract_bearer
from hermes_relay.core.settings import settings
from hermes_relay.realtime.session import RelaySession
from hermes_relay.repositories.chat_repo import SqlChatStore
from hermes_relay.services.fanout import Connection, ConnectionHub
from hermes_relay.services.identity import AccountIdentity, IdentityResolver
from hermes_relay.services.keys import KeyRegistry
from hermes_relay.services.membership import AuthorizationGuard, MembershipSynchronizer
from hermes_relay.services.message_pipeline import MessagePipeline
from hermes_relay.services.presence import PresenceRelay

logger = logging.getLogger(__name__)

router = APIRouter(tags=["realtime"])

# Close code for a verified token whose account no longer exists.
IDENTITY_NOT_FOUND_CLOSE_CODE = 4404


def build_relay_session(
    connection: Connection,
    identity: AccountIdentity,
    store: SqlChatStore,
    hub: ConnectionHub,
) -> RelaySession:
    """Wire the relay components for one connection."""
    guard = AuthorizationGuard(store)
    return RelaySession(
        connection,
        identity,
        transport=hub,
        synchronizer=MembershipSynchronizer(
            store,
            hub,
            guard,
            guard_subscriptions=settings.guard_group_subscriptions,
        ),
        pipeline=MessagePipeline(
            store,
            hub,
            guard,
            enforce_reply_same_chat=settings.enforce_reply_same_chat,
        ),
        presence=PresenceRelay(hub),
        key_registry=KeyRegistry(store),
    )


@router.websocket("/ws")
async def relay_socket(
    websocket: WebSocket,
    verifier: VerifierDep,
    store: StoreDep,
    hub: SocketHubDep,
    token: str | None = Query(None, description="Signed identity token"),
) -> None:
    """Authenticate the handshake, then relay events until the client leaves."""
    try:
        claims = verifier.verify(token or extract_bearer(websocket.headers.get("authorization")))
    except AuthenticationError as err:
        logger.info("Refusing WebSocket handshake: %s", err)
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    try:
        identity = IdentityResolver(store).resolve(claims)
    except IdentityNotFoundError:
        await websocket.close(code=IDENTITY_NOT_FOUND_CLOSE_CODE)
        return
    except PersistenceError as err:
        logger.error("Could not resolve identity for %s: %s", claims.account_id, err)
        await websocket.close(code=status.WS_1011_INTERNAL_ERROR)
        return

    connection = Connection(websocket, queue_size=settings.outbound_queue_size)
    relay = build_relay_session(connection, identity, store, hub)
    connection.start()
    try:
        # Each unit of store work ends its transaction so an idle socket
        # holds no pooled database connection.
        try:
            relay.open()
        finally:
            store.release()
        while not connection.closed:
            text = await websocket.receive_text()
            try:
                relay.handle_text(text)
            finally:
                store.release()
    except WebSocketDisconnect:
        pass
    except PersistenceError as err:
        logger.error("Closing connection %s after store failure: %s", connection.id, err)
        await websocket.close(code=status.WS_1011_INTERNAL_ERROR)
    finally:
        relay.close()
        await connection.aclose()
