# tests/conftest.py
from __future__ import annotations

import os
from collections.abc import Callable, Generator, Iterator
from itertools import count
from typing import Any

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("SECRET_KEY", "test-secret-key-for-the-relay")
os.environ.setdefault("DATABASE_URL", "sqlite://")

from hermes_relay.db.session import Base
from hermes_relay.db.session import get_db as app_get_session
from hermes_relay.main import app as fastapi_app
from hermes_relay.models import Account, Chat, ChatKind, ChatMember, MemberRole, Message
from hermes_relay.services.fanout import ConnectionHub

TEST_DB_URL = "sqlite://"

_ACCOUNT_COUNTER = count(1)


@pytest.fixture(scope="session")
def engine() -> Generator[Engine, None, None]:
    engine = create_engine(
        TEST_DB_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture()
def db_session(engine: Engine) -> Iterator[Session]:
    # Stores commit and roll back for real, so each test cleans up by deleting rows.
    SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()
        with engine.begin() as cleanup_conn:
            for table in reversed(Base.metadata.sorted_tables):
                cleanup_conn.execute(table.delete())


@pytest.fixture(scope="session")
def app() -> FastAPI:
    return fastapi_app


@pytest.fixture(autouse=True)
def override_session_dependency(app: FastAPI, db_session: Session) -> Iterator[None]:
    def _get_session_override() -> Generator[Session, None, None]:
        yield db_session

    app.dependency_overrides[app_get_session] = _get_session_override
    try:
        yield
    finally:
        app.dependency_overrides.pop(app_get_session, None)


@pytest.fixture(autouse=True)
def fresh_hub(app: FastAPI) -> ConnectionHub:
    """Give every test its own fan-out hub."""
    hub = ConnectionHub()
    app.state.hub = hub
    return hub


@pytest.fixture()
def client(app: FastAPI) -> Iterator[TestClient]:
    with TestClient(app, base_url="http://test") as test_client:
        yield test_client


@pytest.fixture()
def account_factory(db_session: Session) -> Callable[..., Account]:
    def _create(display_name: str | None = None, email: str | None = None) -> Account:
        index = next(_ACCOUNT_COUNTER)
        account = Account(
            display_name=display_name or f"user-{index}",
            email=email or f"user-{index}@example.com",
        )
        db_session.add(account)
        db_session.commit()
        return account

    return _create


@pytest.fixture()
def alice(account_factory: Callable[..., Account]) -> Account:
    return account_factory("Alice", "alice@example.com")


@pytest.fixture()
def bob(account_factory: Callable[..., Account]) -> Account:
    return account_factory("Bob", "bob@example.com")


@pytest.fixture()
def carol(account_factory: Callable[..., Account]) -> Account:
    return account_factory("Carol", "carol@example.com")


@pytest.fixture()
def chat_factory(db_session: Session) -> Callable[..., Chat]:
    def _create(
        owner: Account,
        *members: Account,
        kind: ChatKind = ChatKind.GROUP,
        name: str | None = "Test chat",
    ) -> Chat:
        chat = Chat(kind=kind, name=name)
        db_session.add(chat)
        db_session.flush()
        db_session.add(ChatMember(chat_id=chat.id, account_id=owner.id, role=MemberRole.OWNER))
        for member in members:
            db_session.add(
                ChatMember(chat_id=chat.id, account_id=member.id, role=MemberRole.MEMBER)
            )
        db_session.commit()
        return chat

    return _create


@pytest.fixture()
def alice_chat(chat_factory: Callable[..., Chat], alice: Account) -> Chat:
    """A chat where only Alice holds an open membership."""
    return chat_factory(alice)


@pytest.fixture()
def message_factory(db_session: Session) -> Callable[..., Message]:
    def _create(chat: Chat, sender: Account, ciphertext: str = "blob", **kwargs: Any) -> Message:
        message = Message(chat_id=chat.id, sender_id=sender.id, ciphertext=ciphertext, **kwargs)
        db_session.add(message)
        db_session.commit()
        return message

    return _create
