"""Data access helpers for chats, messages and key material."""
from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from hermes_relay.core.errors import ConflictError, PersistenceError
from hermes_relay.db.time import utcnow
from hermes_relay.models import (
    Account,
    Chat,
    ChatKind,
    ChatMember,
    MemberRole,
    Message,
    MessageKind,
    WrappedKey,
)
from hermes_relay.models.account import new_id

__all__ = ["SqlChatStore"]

logger = logging.getLogger(__name__)


class SqlChatStore:
    """SQLAlchemy implementation of the ``ChatStore`` port.

    Write methods commit on success and roll back on failure; any
    ``SQLAlchemyError`` surfaces as ``PersistenceError`` so callers never see
    driver exceptions.
    """

    def __init__(self, session: Session) -> None:
        """Initialize the store with a SQLAlchemy session."""
        self.session = session

    def _commit(self, action: str) -> None:
        try:
            self.session.commit()
        except SQLAlchemyError as err:
            self.session.rollback()
            logger.error("Persistence failure during %s: %s", action, err, exc_info=True)
            raise PersistenceError(f"Failed to {action}") from err

    def release(self) -> None:
        """End the current transaction and hand its connection back to the pool."""
        self.session.rollback()

    # Accounts

    def get_account(self, account_id: str) -> Account | None:
        """Return an account by identifier."""
        try:
            return self.session.get(Account, account_id)
        except SQLAlchemyError as err:
            raise PersistenceError("Failed to load account") from err

    def get_accounts_by_email(self, emails: Sequence[str]) -> list[Account]:
        """Return accounts whose email matches one of ``emails`` (case-insensitive)."""
        lowered = {email.lower() for email in emails}
        stmt = select(Account).where(func.lower(Account.email).in_(lowered))
        try:
            return list(self.session.scalars(stmt))
        except SQLAlchemyError as err:
            raise PersistenceError("Failed to load accounts") from err

    def search_accounts_by_email(self, fragment: str, *, limit: int) -> list[Account]:
        """Return accounts whose email contains ``fragment`` (case-insensitive)."""
        stmt = (
            select(Account)
            .where(func.lower(Account.email).contains(fragment.lower(), autoescape=True))
            .order_by(Account.email.asc())
            .limit(limit)
        )
        try:
            return list(self.session.scalars(stmt))
        except SQLAlchemyError as err:
            raise PersistenceError("Failed to search accounts") from err

    def set_public_key(self, account_id: str, public_key: str) -> Account:
        """Overwrite the account's current wrapping public key."""
        account = self.get_account(account_id)
        if account is None:
            raise PersistenceError("Account disappeared")
        account.public_key = public_key
        account.public_key_updated_at = utcnow()
        self._commit("set public key")
        return account

    # Memberships

    def _open_membership_stmt(self, account_id: str, chat_id: str):
        return select(ChatMember).where(
            ChatMember.account_id == account_id,
            ChatMember.chat_id == chat_id,
            ChatMember.left_at.is_(None),
        )

    def get_open_membership(self, account_id: str, chat_id: str) -> ChatMember | None:
        """Return the open membership row for (account, chat), if any."""
        try:
            return self.session.scalars(self._open_membership_stmt(account_id, chat_id)).first()
        except SQLAlchemyError as err:
            raise PersistenceError("Failed to load membership") from err

    def has_open_membership(self, account_id: str, chat_id: str) -> bool:
        """Return True when an open membership row exists for the pair."""
        return self.get_open_membership(account_id, chat_id) is not None

    def list_open_chat_ids(self, account_id: str) -> list[str]:
        """Return the chat ids of every open membership held by the account."""
        stmt = select(ChatMember.chat_id).where(
            ChatMember.account_id == account_id,
            ChatMember.left_at.is_(None),
        )
        try:
            return list(self.session.scalars(stmt))
        except SQLAlchemyError as err:
            raise PersistenceError("Failed to load memberships") from err

    def open_membership(self, chat_id: str, account_id: str, role: MemberRole) -> ChatMember:
        """Open a membership unless one is already open; return the open row."""
        existing = self.get_open_membership(account_id, chat_id)
        if existing is not None:
            return existing
        member = ChatMember(chat_id=chat_id, account_id=account_id, role=role)
        self.session.add(member)
        self._commit("open membership")
        return member

    def close_membership(self, member: ChatMember) -> ChatMember:
        """Close an open membership, keeping the row for audit."""
        member.close()
        self._commit("close membership")
        return member

    # Chats

    def get_chat(self, chat_id: str) -> Chat | None:
        """Return a chat by identifier."""
        try:
            return self.session.get(Chat, chat_id)
        except SQLAlchemyError as err:
            raise PersistenceError("Failed to load chat") from err

    def create_chat(
        self,
        *,
        kind: ChatKind,
        name: str | None,
        owner_id: str,
        member_ids: Sequence[str],
    ) -> Chat:
        """Create a chat with the owner and members in a single commit."""
        chat = Chat(kind=kind, name=name if kind is ChatKind.GROUP else None)
        self.session.add(chat)
        self.session.flush()
        self.session.add(ChatMember(chat_id=chat.id, account_id=owner_id, role=MemberRole.OWNER))
        for member_id in dict.fromkeys(member_ids):
            if member_id == owner_id:
                continue
            self.session.add(
                ChatMember(chat_id=chat.id, account_id=member_id, role=MemberRole.MEMBER)
            )
        self._commit("create chat")
        try:
            self.session.refresh(chat)
        except SQLAlchemyError as err:
            raise PersistenceError("Failed to reload chat") from err
        return chat

    def list_chats_for(self, account_id: str) -> list[Chat]:
        """Return active chats where the account holds an open membership."""
        open_chat_ids = select(ChatMember.chat_id).where(
            ChatMember.account_id == account_id,
            ChatMember.left_at.is_(None),
        )
        stmt = (
            select(Chat)
            .where(Chat.id.in_(open_chat_ids), Chat.is_active.is_(True))
            .options(selectinload(Chat.members).selectinload(ChatMember.account))
            .order_by(Chat.updated_at.desc())
        )
        try:
            return list(self.session.scalars(stmt))
        except SQLAlchemyError as err:
            raise PersistenceError("Failed to load chats") from err

    def touch_chat(self, chat_id: str, at: datetime) -> None:
        """Advance the chat's freshness timestamp."""
        chat = self.get_chat(chat_id)
        if chat is None:
            return
        chat.updated_at = at
        self._commit("touch chat")

    # Messages

    def get_message(self, message_id: str) -> Message | None:
        """Return a message by identifier, deleted or not."""
        try:
            return self.session.get(Message, message_id)
        except SQLAlchemyError as err:
            raise PersistenceError("Failed to load message") from err

    def create_message(
        self,
        *,
        chat_id: str,
        sender_id: str,
        ciphertext: str,
        kind: MessageKind,
        reply_to_id: str | None,
    ) -> Message:
        """Append a message; ``created_at`` is assigned here, not by the client.

        The returned row is detached with every column populated, so building
        the broadcast from it never reads the database again. Relationships
        are not loaded.
        """
        message = Message(
            id=new_id(),
            chat_id=chat_id,
            sender_id=sender_id,
            ciphertext=ciphertext,
            kind=kind,
            reply_to_id=reply_to_id,
            is_edited=False,
            edited_at=None,
            deleted_at=None,
            created_at=utcnow(),
        )
        self.session.add(message)
        try:
            self.session.flush()
        except SQLAlchemyError as err:
            self.session.rollback()
            logger.error("Persistence failure during send message: %s", err, exc_info=True)
            raise PersistenceError("Failed to send message") from err
        # Commit expires attached rows; a detached row keeps its loaded state.
        self.session.expunge(message)
        self._commit("send message")
        return message

    def latest_message(self, chat_id: str) -> Message | None:
        """Return the most recent visible message of a chat."""
        stmt = (
            select(Message)
            .where(Message.chat_id == chat_id, Message.deleted_at.is_(None))
            .order_by(Message.created_at.desc())
            .limit(1)
        )
        try:
            return self.session.scalars(stmt).first()
        except SQLAlchemyError as err:
            raise PersistenceError("Failed to load latest message") from err

    def list_messages(self, chat_id: str, *, page: int, limit: int) -> list[Message]:
        """Return one page of visible messages, oldest first within the page."""
        stmt = (
            select(Message)
            .where(Message.chat_id == chat_id, Message.deleted_at.is_(None))
            .options(
                selectinload(Message.sender),
                selectinload(Message.reply_to).selectinload(Message.sender),
            )
            .order_by(Message.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        try:
            messages = list(self.session.scalars(stmt))
        except SQLAlchemyError as err:
            raise PersistenceError("Failed to load messages") from err
        messages.reverse()
        return messages

    def edit_message(self, message: Message, ciphertext: str) -> Message:
        """Replace a message's ciphertext in place."""
        message.mark_edited(ciphertext)
        self._commit("edit message")
        return message

    def soft_delete_message(self, message: Message) -> Message:
        """Flag a message as deleted."""
        message.soft_delete()
        self._commit("delete message")
        return message

    # Key exchange

    def add_wrapped_key(
        self, *, chat_id: str, account_id: str, version: int, wrapped_key: str
    ) -> WrappedKey:
        """Insert a wrapped key record.

        Raises:
            ConflictError: If (chat, account, version) already exists.
            PersistenceError: On any other database failure.
        """
        record = WrappedKey(
            chat_id=chat_id,
            account_id=account_id,
            version=version,
            wrapped_key=wrapped_key,
        )
        self.session.add(record)
        try:
            self.session.commit()
        except IntegrityError as err:
            self.session.rollback()
            raise ConflictError(
                f"Key version {version} already registered for this member"
            ) from err
        except SQLAlchemyError as err:
            self.session.rollback()
            logger.error("Persistence failure registering wrapped key: %s", err, exc_info=True)
            raise PersistenceError("Failed to register wrapped key") from err
        return record

    def list_wrapped_keys(self, chat_id: str, account_id: str) -> list[WrappedKey]:
        """Return every wrapped key version held by a member, oldest first."""
        stmt = (
            select(WrappedKey)
            .where(WrappedKey.chat_id == chat_id, WrappedKey.account_id == account_id)
            .order_by(WrappedKey.version.asc())
        )
        try:
            return list(self.session.scalars(stmt))
        except SQLAlchemyError as err:
            raise PersistenceError("Failed to load wrapped keys") from err
