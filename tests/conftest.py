import os
import uuid

# Must be set before postboard is imported; settings are read once at import.
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("JWT_SECRET", "test-secret-key-for-the-postboard-suite")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from postboard.api import app
from postboard.auth import create_token, hash_password
from postboard.database import Base, get_db
from postboard.models.user import User


@pytest.fixture
def session_local():
    """Provide an isolated in-memory database for each test."""
    engine = create_engine(
        "sqlite://",
        future=True,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    TestingSessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
    Base.metadata.create_all(bind=engine)
    yield TestingSessionLocal
    engine.dispose()


@pytest.fixture
def db(session_local):
    session = session_local()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client(session_local):
    def override_get_db():
        session = session_local()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(db):
    def _make(email=None, password="secret", role="student", name="Test User"):
        user = User(
            email=email or f"user_{uuid.uuid4().hex}@example.com",
            name=name,
            password_hash=hash_password(password),
            role=role,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make


@pytest.fixture
def auth_header():
    def _header(user):
        return {"Authorization": f"Bearer {create_token(user.id)}"}

    return _header
