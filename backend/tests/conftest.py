"""Shared pytest fixtures for backend tests."""

from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import Any, Callable, Iterator

import pytest
from fastapi.testclient import TestClient
from fastapi.websockets import WebSocketState
from passlib.context import CryptContext
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

ROOT_DIR = Path(__file__).resolve().parents[1]
for path in (ROOT_DIR, ROOT_DIR / "src"):
    if str(path) not in sys.path:
        sys.path.insert(0, str(path))

os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")

from app import database
from app.core import security
from app.core.security import create_access_token, get_password_hash
from app.database import get_db
from app.main import app
from app.models import Base, User
from app.services.cache import get_cache
from lionsphere.realtime import MessageRelay, PresenceTable, TypingRelay

security.pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


class DummyWebSocket:
    """Connection double recording every JSON payload sent to it."""

    def __init__(self, name: str = "ws") -> None:
        self.name = name
        self.application_state = WebSocketState.CONNECTED
        self.sent: list[dict[str, Any]] = []

    async def send_json(self, payload: dict[str, Any]) -> None:
        self.sent.append(payload)

    def of_type(self, event: str) -> list[dict[str, Any]]:
        return [payload for payload in self.sent if payload.get("type") == event]

    def __repr__(self) -> str:  # pragma: no cover - debugging aid
        return f"DummyWebSocket({self.name!r})"


@pytest.fixture()
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture(autouse=True)
def reset_cache() -> Iterator[None]:
    get_cache.cache_clear()
    yield
    get_cache.cache_clear()


@pytest.fixture()
def test_engine() -> Iterator[Engine]:
    """Provide an in-memory SQLite engine for isolated tests."""

    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(engine)
        engine.dispose()


@pytest.fixture()
def session_factory(test_engine) -> sessionmaker[Session]:
    """Return a session factory bound to the test engine."""

    return sessionmaker(bind=test_engine, future=True, expire_on_commit=True)


@pytest.fixture()
def db_session(session_factory) -> Iterator[Session]:
    """Yield a SQLAlchemy session for unit tests."""

    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def presence_table() -> PresenceTable:
    return PresenceTable()


@pytest.fixture()
def client(session_factory, monkeypatch) -> Iterator[TestClient]:
    """Yield a TestClient with the database and realtime state isolated per test."""

    def override_get_db() -> Iterator[Session]:
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    monkeypatch.setattr(database, "SessionLocal", session_factory)
    presence = PresenceTable()
    monkeypatch.setattr(app.state, "presence_table", presence)
    monkeypatch.setattr(app.state, "message_relay", MessageRelay(presence))
    monkeypatch.setattr(app.state, "typing_relay", TypingRelay(presence))

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture()
def make_user(session_factory) -> Callable[..., User]:
    """Insert a user directly and return it detached from the session."""

    def _make_user(username: str, password: str = "password123", display_name: str | None = None) -> User:
        with session_factory() as session:
            user = User(
                username=username,
                hashed_password=get_password_hash(password),
                display_name=display_name,
            )
            session.add(user)
            session.commit()
            session.refresh(user)
            session.expunge(user)
            return user

    return _make_user


def auth_headers(user_id: int) -> dict[str, str]:
    token = create_access_token({"sub": str(user_id)})
    return {"Authorization": f"Bearer {token}"}
