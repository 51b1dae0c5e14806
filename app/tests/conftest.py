from datetime import datetime, timedelta, timezone
import os

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

# Ensure tests never touch a local database file, real LiveKit or a generated key.
os.environ["HUDDLE_DATABASE_URL"] = "sqlite:///:memory:"
os.environ["HUDDLE_MEDIA_USE_MOCK"] = "true"
os.environ.setdefault(
    "HUDDLE_SECRET_KEY", "test-secret-key-for-huddle-0123456789abcdef"
)

from app.config.loader import get_room_settings
from app.database import Base, get_db
from app.main import app
from app.services.media import MockMediaClient, get_media_client
from app.services.session_coordinator import SessionCoordinator

TEST_MEDIA_SETTINGS = {
    "url": "ws://media.test",
    "request_timeout_seconds": 1,
    "egress_identity_prefix": "EG_",
    "auto_recording": {"enabled": False},
}


class FakeClock:
    """Callable clock the tests move forward explicitly."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture(scope="function")
def engine():
    """A fresh in-memory database per test; commits are real."""
    test_engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=test_engine)
    yield test_engine
    test_engine.dispose()


@pytest.fixture(scope="function")
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="function")
def db_session(session_factory) -> Session:
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc))


@pytest.fixture
def media():
    return MockMediaClient()


@pytest.fixture
def coordinator(db_session, media, clock):
    return SessionCoordinator(
        db_session,
        media,
        clock=clock,
        room_settings=get_room_settings(),
        media_settings=dict(TEST_MEDIA_SETTINGS),
    )


@pytest.fixture(scope="function")
def client(session_factory, media):
    """TestClient wired to the per-test database and the mock media client."""

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_media_client] = lambda: media
    try:
        with TestClient(app) as c:
            yield c
    finally:
        app.dependency_overrides.clear()
