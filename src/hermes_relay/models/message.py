# src/hermes_relay/models/message.py
"""Append-only log of encrypted chat messages."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, String, Text
from sqlalchemy import Enum as SqlEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from hermes_relay.db.session import Base
from hermes_relay.db.time import utcnow
from hermes_relay.models.account import Account, new_id


class MessageKind(str, Enum):
    """Content type hint supplied by the sending client."""

    TEXT = "TEXT"
    IMAGE = "IMAGE"
    FILE = "FILE"
    SYSTEM = "SYSTEM"


class Message(Base):
    """Encrypted message posted to a chat.

    The server never decrypts ``ciphertext``. Edits and soft deletes are
    flags on the same row; rows are never removed.
    """

    __tablename__ = "message"
    __table_args__ = (Index("ix_message_chat_created", "chat_id", "created_at"),)

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    chat_id: Mapped[str] = mapped_column(String(64), ForeignKey("chat.id"), nullable=False)
    sender_id: Mapped[str] = mapped_column(String(64), ForeignKey("account.id"), nullable=False)
    ciphertext: Mapped[str] = mapped_column(Text, nullable=False)
    kind: Mapped[MessageKind] = mapped_column(
        SqlEnum(MessageKind, native_enum=False, length=16),
        nullable=False,
        default=MessageKind.TEXT,
    )
    # Not constrained to the same chat.
    reply_to_id: Mapped[str | None] = mapped_column(
        String(64), ForeignKey("message.id"), nullable=True
    )
    is_edited: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    edited_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    sender: Mapped[Account] = relationship("Account")
    reply_to: Mapped[Message | None] = relationship("Message", remote_side=[id])

    def mark_edited(self, ciphertext: str, at: datetime | None = None) -> None:
        """Replace the ciphertext and flag the row as edited."""
        self.ciphertext = ciphertext
        self.is_edited = True
        self.edited_at = at or utcnow()

    def soft_delete(self, at: datetime | None = None) -> None:
        """Flag the row as deleted without removing it."""
        if self.deleted_at is None:
            self.deleted_at = at or utcnow()
