"""
Pytest configuration and shared test helpers for backend tests.
"""
import os
import sys
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

# Skip MongoDB connection on app startup when running under pytest.
os.environ.setdefault("PYTEST_RUNNING", "1")

backend_root = Path(__file__).resolve().parent.parent
if str(backend_root) not in sys.path:
    sys.path.insert(0, str(backend_root))

import pytest
from fastapi.testclient import TestClient

from middleware import require_auth
from models import UserProfile
from server import app


STAFF_USER = UserProfile(id="uid-staff-1", name="موظف", email="staff@example.com", role="staff")


class FakeSession:
    """Stands in for a Motor client session: ``async with await start_session()``
    and ``async with session.start_transaction()``."""

    def __init__(self):
        self.committed = False
        self.aborted = False

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False

    def start_transaction(self):
        return FakeTransaction(self)


class FakeTransaction:
    def __init__(self, session):
        self.session = session

    async def __aenter__(self):
        return self.session

    async def __aexit__(self, exc_type, exc, tb):
        if exc_type is None:
            self.session.committed = True
        else:
            self.session.aborted = True
        return False


def cursor(items):
    """Mock of a Motor find() cursor supporting .sort() and .to_list()."""
    c = MagicMock()
    c.to_list = AsyncMock(return_value=list(items))
    c.sort = MagicMock(return_value=c)
    return c


@pytest.fixture
def session():
    return FakeSession()


@pytest.fixture
def mongo_client(session):
    client = MagicMock()
    client.start_session = AsyncMock(return_value=session)
    return client


@pytest.fixture
def client():
    """Return a TestClient for the main FastAPI app (server:app). Use for unit-style API tests."""
    return TestClient(app)


@pytest.fixture
def auth_client():
    """TestClient whose requests are already signed in as a staff member."""
    app.dependency_overrides[require_auth] = lambda: STAFF_USER
    yield TestClient(app)
    app.dependency_overrides.pop(require_auth, None)
