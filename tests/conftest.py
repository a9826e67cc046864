"""Shared test fixtures for the DocVault test suite.

Every test runs against a fresh in-memory SQLite database (schema dropped and
recreated per test). Outbound webhook calls are patched at the ``requests``
boundary so no test reaches the network.
"""

import itertools
import os

# Configure the app before any docvault import reads settings.
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ENVIRONMENT"] = "development"
os.environ["LOG_FORMAT"] = "text"
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["JWT_SECRET_KEY"] = "test-secret-key"
os.environ["INGEST_UPLOAD_WEBHOOK_URL"] = "http://workflow.test/upload"
os.environ["INGEST_DELETE_WEBHOOK_URL"] = "http://workflow.test/delete"
os.environ["CHAT_WEBHOOK_URL"] = "http://workflow.test/chat"
os.environ["INGEST_CALLBACK_SECRET"] = "callback-secret"
os.environ["APP_BASE_URL"] = "http://app.test"
os.environ["SMTP_HOST"] = ""
os.environ["BOOTSTRAP_ADMIN_EMAIL"] = ""

from typing import Optional
from unittest.mock import MagicMock, patch

import pytest
from fastapi.testclient import TestClient
from passlib.hash import bcrypt

from docvault.core.auth import AuthContext
from docvault.core.config import settings
from docvault.core.roles import Role
from docvault.core.token_factory import create_token
from docvault.database import Base, SessionLocal, engine, get_db
from docvault.main import app
from docvault.middleware.request_context import _auth_buckets, _rate_buckets
from docvault.models.user import User, UserRole

PASSWORD = "correct-horse-battery"
# Hashed once: bcrypt is deliberately slow.
PASSWORD_HASH = bcrypt.hash(PASSWORD)


@pytest.fixture(autouse=True)
def _fresh_schema():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture(autouse=True)
def storage_dir(tmp_path, monkeypatch):
    path = tmp_path / "storage"
    monkeypatch.setattr(settings, "storage_dir", str(path))
    return path


@pytest.fixture(autouse=True)
def webhook_post():
    """Patched ``requests.post`` used by the ingestion client. Succeeds by default."""
    with patch("docvault.services.ingestion_client.requests.post") as mock_post:
        response = MagicMock()
        response.status_code = 200
        response.raise_for_status.return_value = None
        response.json.return_value = {"response": "ok"}
        mock_post.return_value = response
        yield mock_post


@pytest.fixture()
def db():
    """Per-test database session."""
    session = SessionLocal()
    yield session
    session.close()


@pytest.fixture()
def client(db):
    """FastAPI TestClient with the DB dependency overridden to use the test session."""

    def _override_get_db():
        yield db

    app.dependency_overrides[get_db] = _override_get_db
    _rate_buckets.clear()
    _auth_buckets.clear()
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture()
def make_user(db):
    """Factory: ``make_user(Role.EDITOR)`` creates and commits an account.

    Pass ``role=None`` for an account without a role row.
    """
    counter = itertools.count(1)

    def _make(
        role: Optional[Role] = Role.READER,
        *,
        email: Optional[str] = None,
        name: Optional[str] = None,
        active: bool = True,
    ) -> User:
        n = next(counter)
        user = User(
            user_id=f"user-{n}",
            display_name=name or f"User {n}",
            email=email or f"user{n}@example.com",
            password_hash=PASSWORD_HASH,
            is_active=active,
        )
        db.add(user)
        if role is not None:
            db.add(UserRole(user_id=user.user_id, role=role))
        db.commit()
        return user

    return _make


def auth_headers(user: User) -> dict:
    token = create_token(subject=user.user_id, secret=settings.jwt_secret_key)
    return {"Authorization": f"Bearer {token}"}


def as_auth(user: User) -> AuthContext:
    """AuthContext for service-level tests, resolved the same way require_auth does."""
    role = user.role_assignment.role if user.role_assignment is not None else None
    return AuthContext(
        user_id=user.user_id,
        role=role if user.is_active else None,
        is_active=user.is_active,
        assigned_role=role,
    )
