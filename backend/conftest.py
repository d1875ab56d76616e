"""Pytest configuration: set test env before any app imports so DB and JWT use test values."""

import asyncio
import os
import tempfile
import uuid

import pytest

# Set before app.db.session or app.config are used so engine and settings use test paths
_tmp = tempfile.mkdtemp(prefix="sharelink_test_")
_db_path = os.path.join(_tmp, "test.db")
os.environ.setdefault("SHARELINK_DB_PATH", _db_path)
os.environ.setdefault("SHARELINK_JWT_SECRET", "test-jwt-secret-at-least-32-characters-long")


@pytest.fixture(scope="session")
def init_test_db():
    """Create tables once per test session."""
    from app.db.session import init_db

    asyncio.run(init_db())


@pytest.fixture
def session_factory(init_test_db):
    """Yield get_session so tests can use async with session_factory() as session."""
    from app.db.session import get_session
    return get_session


@pytest.fixture
def unique_email():
    """Return a factory for emails that no other test uses."""
    def make(prefix: str = "user") -> str:
        return f"{prefix}-{uuid.uuid4().hex[:10]}@example.com"
    return make
