import io
import os

# The app reads its settings at import time
os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from fastapi.testclient import TestClient
from PIL import Image
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from civicpulse.infrastructure.database import Base, get_db
from civicpulse.infrastructure import models, storage
from civicpulse.domain.models import SessionContext
from civicpulse.domain.services.security import create_access_token
from civicpulse.api import deps
from civicpulse.main import app


@pytest.fixture(scope="function")
def test_engine():
    """Fresh in-memory SQLite database shared by every connection of one test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def test_db(test_engine):
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture(scope="function")
def client(test_db):
    """Create a test client with database override."""
    def override_get_db():
        try:
            yield test_db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture(scope="function")
def client_no_db():
    """Create a test client without database dependency for basic endpoint tests."""
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client


@pytest.fixture(autouse=True)
def reset_module_state(monkeypatch):
    """Rate limit counters and the storage singleton must not leak between tests."""
    deps._rate_limit_store.clear()
    monkeypatch.setattr(storage, "_storage_service", None)
    yield
    deps._rate_limit_store.clear()


@pytest.fixture
def make_user(test_db):
    """Factory for profiles: make_user("alice", is_admin=True)."""
    def _make_user(username, is_admin=False, is_banned=False, **fields):
        user = models.User(
            username=username,
            email=f"{username}@example.com",
            is_admin=is_admin,
            is_banned=is_banned,
            **fields
        )
        test_db.add(user)
        test_db.commit()
        test_db.refresh(user)
        return user
    return _make_user


@pytest.fixture
def session_for():
    def _session_for(user):
        return SessionContext.for_user(user)
    return _session_for


@pytest.fixture
def auth_headers():
    def _auth_headers(user):
        token = create_access_token(data={"sub": str(user.id)})
        return {"Authorization": f"Bearer {token}"}
    return _auth_headers


@pytest.fixture
def png_bytes():
    buffer = io.BytesIO()
    Image.new("RGB", (4, 4), color=(200, 30, 30)).save(buffer, format="PNG")
    return buffer.getvalue()
