"""
Shared test fixtures: in-memory database, sessions, users and an API client.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from forum.db import get_db  # noqa: E402
from forum.main import app  # noqa: E402
from forum.models import Base, Role, User  # noqa: E402
from forum.services.access import Principal  # noqa: E402


@pytest.fixture
def db_engine():
    """In-memory SQLite engine shared by every thread of a test (StaticPool)."""
    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)

    yield engine

    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return sessionmaker(bind=db_engine, autoflush=False, autocommit=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def make_principal(db):
    """Create a user row and return its Principal."""

    def _make(username: str, role: Role = Role.user) -> Principal:
        user = User(
            username=username,
            email=f"{username}@example.com",
            password_hash="not-a-real-hash",
            role=role,
        )
        db.add(user)
        db.commit()
        return Principal.from_user(user)

    return _make


@pytest.fixture
def alice(make_principal):
    return make_principal("alice")


@pytest.fixture
def bob(make_principal):
    return make_principal("bob")


@pytest.fixture
def mod(make_principal):
    return make_principal("mod", role=Role.moderator)


@pytest.fixture
def client(session_factory):
    """TestClient whose requests use the in-memory database."""

    def override_get_db():
        session = session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client
    app.dependency_overrides.clear()
