# tests/services/conftest.py
from __future__ import annotations

import pytest

from hermes_relay.services.fanout import ConnectionHub
from hermes_relay.services.identity import AccountIdentity
from hermes_relay.services.membership import AuthorizationGuard
from tests.fakes import FakeStore, RecordingSubscriber


@pytest.fixture()
def store() -> FakeStore:
    store = FakeStore()
    store.add_account("alice", "Alice", "alice@example.com")
    store.add_account("bob", "Bob", "bob@example.com")
    store.add_member("alice", "c1")
    return store


@pytest.fixture()
def hub() -> ConnectionHub:
    return ConnectionHub()


@pytest.fixture()
def guard(store: FakeStore) -> AuthorizationGuard:
    return AuthorizationGuard(store)


@pytest.fixture()
def alice_identity(store: FakeStore) -> AccountIdentity:
    return AccountIdentity.from_account(store.accounts["alice"])


@pytest.fixture()
def bob_identity(store: FakeStore) -> AccountIdentity:
    return AccountIdentity.from_account(store.accounts["bob"])


@pytest.fixture()
def alice_phone() -> RecordingSubscriber:
    return RecordingSubscriber("alice-phone")


@pytest.fixture()
def alice_laptop() -> RecordingSubscriber:
    return RecordingSubscriber("alice-laptop")


@pytest.fixture()
def bob_phone() -> RecordingSubscriber:
    return RecordingSubscriber("bob-phone")
