"""
Pytest configuration and fixtures for the charging backend tests.

Every test gets its own in-memory SQLite database, so nothing leaks between
tests and nothing ever touches a dev/prod database.
"""
import os
import pathlib
import sys

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from tests.helpers.auth_helpers import TEST_JWT_SECRET, make_token  # noqa: E402

# Settings are read at import time, so the environment is fixed before any app import
os.environ["ENV"] = "test"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["JWT_SECRET"] = TEST_JWT_SECRET
os.environ["JWT_AUDIENCE"] = ""
os.environ["ENODE_STATE_SECRET"] = "test-state-secret"
os.environ["ENODE_REDIRECT_URI"] = "https://app.plogo.test/enode/callback"
os.environ["RUN_MIGRATIONS_ON_STARTUP"] = "false"

from tests.helpers.charging_helpers import FrozenClock, NOW  # noqa: E402
from tests.helpers.fake_enode import FakeEnodeClient  # noqa: E402


@pytest.fixture(scope="function")
def engine():
    from app.db import Base
    import app.models  # noqa: F401

    test_engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,  # Set to True for SQL debugging
    )
    Base.metadata.create_all(bind=test_engine)
    yield test_engine
    Base.metadata.drop_all(bind=test_engine)
    test_engine.dispose()


@pytest.fixture(scope="function")
def db(engine):
    """
    Provide a database session bound to this test's private database.

    Services commit and roll back on it exactly as they do in production.
    """
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def fake_enode():
    return FakeEnodeClient()


@pytest.fixture
def clock():
    return FrozenClock(NOW)


def override_get_db(db_session):
    def _override():
        yield db_session
    return _override


@pytest.fixture(scope="function")
def client(db, fake_enode):
    """
    FastAPI TestClient with the database and Enode dependencies overridden.
    """
    from fastapi.testclient import TestClient
    from app.db import get_db
    from app.main_simple import app
    from app.services.enode_client import get_enode_client

    app.dependency_overrides[get_db] = override_get_db(db)
    app.dependency_overrides[get_enode_client] = lambda: fake_enode
    try:
        # raise_server_exceptions=False so unhandled errors become 500 responses
        with TestClient(app, raise_server_exceptions=False) as test_client:
            yield test_client
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    """Build an Authorization header for a profile id."""
    def _headers(profile_id: str) -> dict:
        return {"Authorization": f"Bearer {make_token(profile_id)}"}
    return _headers
