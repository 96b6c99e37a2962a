# src/hermes_relay/models/key_exchange.py
"""Versioned wrapped chat keys distributed to members."""

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from hermes_relay.db.session import Base
from hermes_relay.db.time import utcnow
from hermes_relay.models.account import new_id


class WrappedKey(Base):
    """Symmetric chat key wrapped under one member's public key.

    Records are append-only; the unique constraint on
    (chat, member, version) is what rejects duplicate registrations.
    """

    __tablename__ = "key_exchange"
    __table_args__ = (
        UniqueConstraint("chat_id", "account_id", "version", name="uq_key_exchange_version"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    chat_id: Mapped[str] = mapped_column(String(64), ForeignKey("chat.id"), nullable=False)
    account_id: Mapped[str] = mapped_column(String(64), ForeignKey("account.id"), nullable=False)
    wrapped_key: Mapped[str] = mapped_column(Text, nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
