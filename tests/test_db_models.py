# tests/test_db_models.py
from __future__ import annotations

from datetime import UTC, datetime

import pytest
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from hermes_relay.db.time import as_utc
from hermes_relay.models import ChatMember, MemberRole, MembershipState


class TestChatMember:
    def test_membership_lifecycle(self, db_session: Session, alice, alice_chat) -> None:
        member = db_session.query(ChatMember).filter_by(account_id=alice.id).one()
        assert member.state is MembershipState.OPEN
        assert member.role is MemberRole.OWNER

        member.close()
        assert member.state is MembershipState.CLOSED
        assert member.left_at is not None

        with pytest.raises(ValueError):
            member.close()

    def test_second_open_membership_is_rejected(
        self, db_session: Session, alice, alice_chat
    ) -> None:
        db_session.add(ChatMember(chat_id=alice_chat.id, account_id=alice.id))
        with pytest.raises(IntegrityError):
            db_session.commit()
        db_session.rollback()

    def test_reopen_after_close(self, db_session: Session, alice, alice_chat) -> None:
        member = db_session.query(ChatMember).filter_by(account_id=alice.id).one()
        member.close()
        db_session.commit()

        db_session.add(ChatMember(chat_id=alice_chat.id, account_id=alice.id))
        db_session.commit()

        states = sorted(
            row.state for row in db_session.query(ChatMember).filter_by(account_id=alice.id)
        )
        assert states == [MembershipState.CLOSED, MembershipState.OPEN]


class TestMessage:
    def test_edit_and_soft_delete(self, db_session: Session, alice, alice_chat, message_factory) -> None:
        message = message_factory(alice_chat, alice, "v1")
        assert message.is_edited is False

        message.mark_edited("v2")
        assert message.ciphertext == "v2"
        assert message.is_edited is True
        assert message.edited_at is not None

        message.soft_delete()
        deleted_at = message.deleted_at
        message.soft_delete()
        assert message.deleted_at == deleted_at


def test_as_utc_marks_naive_timestamps() -> None:
    naive = datetime(2024, 5, 1, 12, 0)
    aware = datetime(2024, 5, 1, 12, 0, tzinfo=UTC)

    assert as_utc(naive) == aware
    assert as_utc(aware) is aware
    assert as_utc(None) is None
