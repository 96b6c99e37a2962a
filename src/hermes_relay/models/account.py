# src/hermes_relay/models/account.py
"""SQLAlchemy model for chat accounts."""

from __future__ import annotations

from datetime import datetime
from uuid import uuid4

from sqlalchemy import DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from hermes_relay.db.session import Base
from hermes_relay.db.time import utcnow


def new_id() -> str:
    """Return a fresh opaque identifier for a row."""
    return uuid4().hex


class Account(Base):
    """Chat identity.

    Signup, verification and lockout metadata live in the external auth
    subsystem; the relay only reads the identity fields and owns the
    wrapping public key.
    """

    __tablename__ = "account"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    display_name: Mapped[str] = mapped_column(Text, nullable=False)
    email: Mapped[str] = mapped_column(String(320), unique=True, nullable=False)
    avatar: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Single current wrapping key; overwritten in place, no history.
    public_key: Mapped[str | None] = mapped_column(Text, nullable=True)
    public_key_updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
