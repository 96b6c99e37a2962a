# tests/services/test_membership.py
from __future__ import annotations

import pytest

from hermes_relay.core.errors import AccessDeniedError
from hermes_relay.services.fanout import ConnectionHub
from hermes_relay.services.membership import AuthorizationGuard, MembershipSynchronizer
from hermes_relay.services.ports import chat_group
from tests.fakes import FakeStore


class TestAuthorizationGuard:
    def test_open_member(self, guard: AuthorizationGuard) -> None:
        assert guard.is_member("alice", "c1")
        guard.require("alice", "c1")

    def test_non_member(self, guard: AuthorizationGuard) -> None:
        assert not guard.is_member("bob", "c1")
        with pytest.raises(AccessDeniedError, match="Access denied to this chat"):
            guard.require("bob", "c1")

    def test_reads_store_every_time(self, guard: AuthorizationGuard, store: FakeStore) -> None:
        assert guard.is_member("alice", "c1")
        store.memberships.discard(("alice", "c1"))
        assert not guard.is_member("alice", "c1")


class TestMembershipSynchronizer:
    @pytest.fixture()
    def synchronizer(self, store, hub, guard) -> MembershipSynchronizer:
        return MembershipSynchronizer(store, hub, guard)

    def test_sync_subscribes_open_chats(
        self, synchronizer: MembershipSynchronizer, store: FakeStore, hub: ConnectionHub, alice_phone
    ) -> None:
        store.add_member("alice", "c2")

        chat_ids = synchronizer.sync(alice_phone, "alice")

        assert chat_ids == ["c1", "c2"]
        assert hub.groups_of(alice_phone) == frozenset({chat_group("c1"), chat_group("c2")})

    def test_sync_without_memberships(
        self, synchronizer: MembershipSynchronizer, hub: ConnectionHub, bob_phone
    ) -> None:
        assert synchronizer.sync(bob_phone, "bob") == []
        assert hub.groups_of(bob_phone) == frozenset()

    def test_join_group_is_unguarded_by_default(
        self, synchronizer: MembershipSynchronizer, hub: ConnectionHub, bob_phone
    ) -> None:
        synchronizer.join_group(bob_phone, "bob", "c1")
        assert hub.groups_of(bob_phone) == frozenset({chat_group("c1")})

    def test_join_group_guarded_when_enabled(
        self, store, hub: ConnectionHub, guard, bob_phone, alice_phone
    ) -> None:
        synchronizer = MembershipSynchronizer(store, hub, guard, guard_subscriptions=True)

        with pytest.raises(AccessDeniedError):
            synchronizer.join_group(bob_phone, "bob", "c1")
        assert hub.groups_of(bob_phone) == frozenset()

        synchronizer.join_group(alice_phone, "alice", "c1")
        assert hub.groups_of(alice_phone) == frozenset({chat_group("c1")})

    def test_leave_and_release(
        self, synchronizer: MembershipSynchronizer, store: FakeStore, hub: ConnectionHub, alice_phone
    ) -> None:
        store.add_member("alice", "c2")
        synchronizer.sync(alice_phone, "alice")

        synchronizer.leave_group(alice_phone, "c1")
        assert hub.groups_of(alice_phone) == frozenset({chat_group("c2")})

        synchronizer.release(alice_phone)
        assert hub.groups_of(alice_phone) == frozenset()

    def test_leave_group_keeps_membership(
        self, synchronizer: MembershipSynchronizer, guard: AuthorizationGuard, alice_phone
    ) -> None:
        synchronizer.sync(alice_phone, "alice")
        synchronizer.leave_group(alice_phone, "c1")
        assert guard.is_member("alice", "c1")
