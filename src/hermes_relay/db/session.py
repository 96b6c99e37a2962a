"""Engine, session factory and declarative base for the relay database."""

from __future__ import annotations

from collections.abc import Generator, Iterator
from contextlib import contextmanager
from typing import Any

from sqlalchemy import create_engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from hermes_relay.core.settings import settings


class Base(DeclarativeBase):
    """Declarative base for every relay table."""


# Models register themselves on Base.metadata when imported.
import hermes_relay.models  # noqa: E402,F401


def engine_options(url: str) -> dict[str, Any]:
    """Return ``create_engine`` keyword arguments suited to ``url``."""
    options: dict[str, Any] = {"echo": settings.sql_debug}
    if url.startswith("sqlite"):
        # Sync dependencies run in a threadpool while WebSocket handlers run
        # on the event loop, so one session can cross threads.
        options["connect_args"] = {"check_same_thread": False}
    else:
        options["pool_pre_ping"] = True
    return options


_url = settings.effective_database_url
engine = create_engine(_url, **engine_options(_url))

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Generator[Session, None, None]:
    """Yield a session that lives for one request or one WebSocket connection."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def session_scope() -> Iterator[Session]:
    """Provide a session for scripts outside the request cycle."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def create_tables() -> None:
    """Create every relay table that does not exist yet."""
    Base.metadata.create_all(bind=engine)


def drop_tables() -> None:
    """Drop every relay table."""
    Base.metadata.drop_all(bind=engine)
