# src/hermes_relay/models/chat.py
"""Models describing chats and their membership lifecycle."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, String, Text, text
from sqlalchemy import Enum as SqlEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from hermes_relay.db.session import Base
from hermes_relay.db.time import utcnow
from hermes_relay.models.account import Account, new_id


class ChatKind(str, Enum):
    """Conversation shape."""

    DIRECT = "DIRECT"
    GROUP = "GROUP"


class MemberRole(str, Enum):
    """Role a member holds inside a chat."""

    OWNER = "OWNER"
    ADMIN = "ADMIN"
    MEMBER = "MEMBER"


class MembershipState(str, Enum):
    """Lifecycle of a membership row."""

    OPEN = "OPEN"
    CLOSED = "CLOSED"


class Chat(Base):
    """Conversation container.

    ``updated_at`` is the freshness timestamp touched whenever a new message
    lands in the chat.
    """

    __tablename__ = "chat"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    kind: Mapped[ChatKind] = mapped_column(
        SqlEnum(ChatKind, native_enum=False, length=16),
        nullable=False,
        default=ChatKind.DIRECT,
    )
    name: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    members: Mapped[list[ChatMember]] = relationship(
        "ChatMember",
        back_populates="chat",
        order_by="ChatMember.joined_at",
    )


class ChatMember(Base):
    """Membership of an account in a chat.

    Rows are never deleted. Leaving sets ``left_at`` and the row stays for
    audit; only an open row (``left_at`` unset) grants access.
    """

    __tablename__ = "chat_member"
    __table_args__ = (
        # At most one open membership per (account, chat).
        Index(
            "uq_chat_member_open",
            "account_id",
            "chat_id",
            unique=True,
            sqlite_where=text("left_at IS NULL"),
            postgresql_where=text("left_at IS NULL"),
        ),
        Index("ix_chat_member_chat_id", "chat_id"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    account_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("account.id"), nullable=False
    )
    chat_id: Mapped[str] = mapped_column(String(64), ForeignKey("chat.id"), nullable=False)
    role: Mapped[MemberRole] = mapped_column(
        SqlEnum(MemberRole, native_enum=False, length=16),
        nullable=False,
        default=MemberRole.MEMBER,
    )
    joined_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    left_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    chat: Mapped[Chat] = relationship("Chat", back_populates="members")
    account: Mapped[Account] = relationship("Account")

    @property
    def state(self) -> MembershipState:
        """Return the lifecycle state derived from ``left_at``."""
        return MembershipState.OPEN if self.left_at is None else MembershipState.CLOSED

    def close(self, at: datetime | None = None) -> None:
        """Transition an open membership to closed.

        Raises:
            ValueError: If the membership is already closed.
        """
        if self.state is MembershipState.CLOSED:
            raise ValueError("Membership is already closed")
        self.left_at = at or utcnow()
