# tests/services/test_relay_session.py
from __future__ import annotations

import json

import pytest

from hermes_relay.realtime.session import SET_KEY_FAILED_MESSAGE, RelaySession
from hermes_relay.services.fanout import ConnectionHub
from hermes_relay.services.keys import KeyRegistry
from hermes_relay.services.membership import AuthorizationGuard, MembershipSynchronizer
from hermes_relay.services.message_pipeline import MessagePipeline
from hermes_relay.services.ports import chat_group
from hermes_relay.services.presence import PresenceRelay
from tests.fakes import FakeStore, RecordingSubscriber

INVALID = {"event": "error", "data": {"message": "Invalid event payload"}}


def build_session(store, hub, guard, subscriber, identity, **flags) -> RelaySession:
    return RelaySession(
        subscriber,
        identity,
        transport=hub,
        synchronizer=MembershipSynchronizer(
            store, hub, guard, guard_subscriptions=flags.get("guard_subscriptions", False)
        ),
        pipeline=MessagePipeline(store, hub, guard),
        presence=PresenceRelay(hub),
        key_registry=KeyRegistry(store),
    )


@pytest.fixture()
def alice_session(store, hub, guard, alice_phone, alice_identity) -> RelaySession:
    return build_session(store, hub, guard, alice_phone, alice_identity)


@pytest.fixture()
def bob_session(store, hub, guard, bob_phone, bob_identity) -> RelaySession:
    return build_session(store, hub, guard, bob_phone, bob_identity)


def send(session: RelaySession, event: str, data) -> None:
    session.handle_text(json.dumps({"event": event, "data": data}))


def test_open_and_close_manage_subscriptions(
    alice_session: RelaySession, hub: ConnectionHub, alice_phone: RecordingSubscriber
) -> None:
    assert alice_session.open() == ["c1"]
    assert hub.groups_of(alice_phone) == frozenset({chat_group("c1")})

    alice_session.close()
    assert hub.groups_of(alice_phone) == frozenset()


@pytest.mark.parametrize(
    "text",
    [
        "not json",
        json.dumps([1, 2, 3]),
        json.dumps({"event": "unknown", "data": None}),
        json.dumps({"event": "join_group"}),
        json.dumps({"event": "send_message", "data": {"chatId": "c1"}}),
        json.dumps({"event": "send_message", "data": {"chatId": "c1", "ciphertext": "x", "kind": "VIDEO"}}),
        json.dumps({"event": "mark_read", "data": {"chatId": "c1"}}),
        json.dumps({"event": "set_public_key", "data": ""}),
    ],
)
def test_malformed_frames_report_invalid_payload(
    alice_session: RelaySession, alice_phone: RecordingSubscriber, text: str
) -> None:
    alice_session.handle_text(text)
    assert alice_phone.frames == [INVALID]


def test_send_message_round_trip(
    alice_session: RelaySession, alice_phone: RecordingSubscriber, store: FakeStore
) -> None:
    alice_session.open()
    send(alice_session, "send_message", {"chatId": "c1", "ciphertext": "hello"})

    assert alice_phone.events() == ["new_message"]
    assert len(store.messages) == 1


def test_joined_outsider_receives_but_cannot_send(
    alice_session: RelaySession,
    bob_session: RelaySession,
    alice_phone: RecordingSubscriber,
    bob_phone: RecordingSubscriber,
    store: FakeStore,
) -> None:
    alice_session.open()
    bob_session.open()
    send(bob_session, "join_group", "c1")

    send(alice_session, "send_message", {"chatId": "c1", "ciphertext": "hi"})
    send(bob_session, "send_message", {"chatId": "c1", "ciphertext": "sneaky"})

    assert bob_phone.events() == ["new_message", "error"]
    assert bob_phone.frames[1]["data"]["message"] == "Access denied to this chat"
    assert alice_phone.events() == ["new_message"]
    assert len(store.messages) == 1


def test_guarded_join_reports_denial(
    store, hub, guard, bob_phone: RecordingSubscriber, bob_identity
) -> None:
    session = build_session(store, hub, guard, bob_phone, bob_identity, guard_subscriptions=True)

    send(session, "join_group", "c1")

    assert bob_phone.frames == [{"event": "error", "data": {"message": "Access denied to this chat"}}]
    assert hub.groups_of(bob_phone) == frozenset()


def test_store_failure_during_guarded_join_keeps_session(
    store: FakeStore, hub, guard, alice_phone: RecordingSubscriber, alice_identity
) -> None:
    session = build_session(store, hub, guard, alice_phone, alice_identity, guard_subscriptions=True)
    store.fail_reads = True

    send(session, "join_group", "c1")

    assert alice_phone.frames == [{"event": "error", "data": {"message": "Persistence failure"}}]
    assert hub.groups_of(alice_phone) == frozenset()

    store.fail_reads = False
    send(session, "join_group", "c1")
    assert hub.groups_of(alice_phone) == frozenset({chat_group("c1")})


def test_leave_group(alice_session: RelaySession, hub: ConnectionHub, alice_phone) -> None:
    alice_session.open()
    send(alice_session, "leave_group", "c1")
    assert hub.groups_of(alice_phone) == frozenset()
    assert alice_phone.frames == []


def test_typing_events(
    alice_session: RelaySession, bob_session: RelaySession, alice_phone, bob_phone
) -> None:
    alice_session.open()
    send(bob_session, "join_group", "c1")

    send(alice_session, "typing_start", "c1")
    send(alice_session, "typing_stop", "c1")
    send(alice_session, "mark_read", {"chatId": "c1", "messageId": "m-1"})

    assert bob_phone.events() == ["user_typing", "user_typing", "message_read"]
    assert [frame["data"].get("isTyping") for frame in bob_phone.frames[:2]] == [True, False]
    assert alice_phone.frames == []


def test_set_public_key(alice_session: RelaySession, alice_phone, store: FakeStore) -> None:
    send(alice_session, "set_public_key", "pk-1")

    assert alice_phone.frames == [{"event": "key_set_success", "data": None}]
    assert store.accounts["alice"].public_key == "pk-1"


def test_set_public_key_failure(alice_session: RelaySession, alice_phone, store: FakeStore) -> None:
    store.fail_set_key = True

    send(alice_session, "set_public_key", "pk-1")

    assert alice_phone.frames == [{"event": "error", "data": {"message": SET_KEY_FAILED_MESSAGE}}]


def test_errors_do_not_stop_the_session(alice_session: RelaySession, alice_phone) -> None:
    alice_session.open()
    alice_session.handle_text("garbage")
    send(alice_session, "send_message", {"chatId": "c1", "ciphertext": "still here"})

    assert alice_phone.events() == ["error", "new_message"]


def test_every_client_event_has_a_handler(alice_session: RelaySession) -> None:
    from hermes_relay.schemas.events import CLIENT_EVENT_TYPES

    assert set(alice_session._handlers) == set(CLIENT_EVENT_TYPES)


def test_handler_gap_is_detected(mocker, store, hub, guard, alice_phone, alice_identity) -> None:
    class OrphanEvent:
        pass

    mocker.patch(
        "hermes_relay.realtime.session.CLIENT_EVENT_TYPES",
        new=(OrphanEvent,),
    )
    with pytest.raises(RuntimeError, match="OrphanEvent"):
        build_session(store, hub, guard, alice_phone, alice_identity)
