"""
Shared pytest fixtures.

Environment is set before any clientgate import so the cached settings and the module
engine pick up the test configuration.
"""
import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["JWT_SECRET_KEY"] = "test-secret-key-for-testing-only"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["MAILGUN_API_KEY"] = ""
os.environ["MAILGUN_DOMAIN"] = ""
os.environ["REQUIRE_PAYMENT_FOR_REGISTRATION"] = "false"

from collections.abc import Generator
from typing import Any

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from clientgate.config import get_settings
from clientgate.database import Base, build_engine, get_db
from clientgate.main import app
from clientgate.models.account import Account, AccountRole
from clientgate.services import notifications
from clientgate.services.auth import create_access_token, get_password_hash


# ==========================================================================
# Database
# ==========================================================================

@pytest.fixture
def engine():
    """In-memory SQLite shared by every session in the test."""
    engine = build_engine("sqlite://", 5.0, poolclass=StaticPool)
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory) -> Generator[Session, None, None]:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def file_session_factory(tmp_path):
    """File-backed SQLite so concurrent threads get real, separate connections."""
    engine = build_engine(f"sqlite:///{tmp_path / 'clientgate.db'}", 10.0)
    Base.metadata.create_all(engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


# ==========================================================================
# Notifications
# ==========================================================================

class RecordingDispatcher(notifications.LoggingDispatcher):
    """Logs like the default dispatcher and also keeps what it was asked to send."""

    def __init__(self):
        self.sent: list[notifications.NotificationEvent] = []

    def dispatch(self, event: notifications.NotificationEvent) -> bool:
        self.sent.append(event)
        return super().dispatch(event)


@pytest.fixture(autouse=True)
def outbox() -> Generator[RecordingDispatcher, None, None]:
    """Capture every emitted event instead of sending it."""
    dispatcher = RecordingDispatcher()
    notifications.set_dispatcher(dispatcher)
    yield dispatcher
    notifications.set_dispatcher(None)


@pytest.fixture
def settings():
    """Settings instance tests may tweak; restored afterwards."""
    s = get_settings()
    original = s.model_dump()
    yield s
    for key, value in original.items():
        setattr(s, key, value)


# ==========================================================================
# Data
# ==========================================================================

def make_intake(**overrides: Any) -> dict[str, Any]:
    data = {
        "full_name": "Ada Prospect",
        "email": "a@x.com",
        "phone": "+1 555 123 4567",
        "locale": "en-CA",
        "target_roles": ["Product Manager", "Program Manager"],
        "package_tier": "Tier 2",
        "availability_windows": ["Mon 10:00-12:00", "Wed 14:00-16:00"],
        "notes": "Looking to move into fintech.",
    }
    data.update(overrides)
    return data


@pytest.fixture
def intake() -> dict[str, Any]:
    return make_intake()


@pytest.fixture
def admin(db: Session) -> Account:
    account = Account(
        email="admin@example.com",
        hashed_password=get_password_hash("AdminPass123!"),
        full_name="Admin User",
        role=AccountRole.admin,
        is_active=True,
    )
    db.add(account)
    db.commit()
    db.refresh(account)
    return account


# ==========================================================================
# HTTP
# ==========================================================================

@pytest.fixture
def client(db: Session) -> Generator[TestClient, None, None]:
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def admin_headers(admin: Account) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(admin)}"}
