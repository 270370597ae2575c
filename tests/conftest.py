from __future__ import annotations

from datetime import timedelta

import pytest

from api import create_app
from models.base_model import utcnow
from models.memory_storage import MemoryStorage
from services.session_manager import SessionManager
from utils.security import JwtTokenIssuer, PasswordService

TEST_SECRET = "test-secret-key-for-testing-only-0123456789"
PASSWORD = "correct-horse-battery"


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start=None):
        self.current = start or utcnow()

    def __call__(self):
        return self.current

    def advance(self, **kwargs):
        self.current = self.current + timedelta(**kwargs)
        return self.current


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture(scope="session")
def passwords():
    # minimal argon2 cost keeps the suite fast
    return PasswordService(time_cost=1, memory_cost=8)


@pytest.fixture
def issuer():
    return JwtTokenIssuer(TEST_SECRET)


@pytest.fixture
def memory_store():
    return MemoryStorage()


@pytest.fixture
def sessions(memory_store, issuer, passwords, clock):
    return SessionManager(memory_store, issuer, passwords, refresh_ttl=timedelta(days=30), clock=clock)


@pytest.fixture
def app():
    app = create_app("testing")
    yield app
    app.extensions["store"].close()


@pytest.fixture
def client(app):
    return app.test_client()


def auth_header(token):
    return {"Authorization": f"Bearer {token}"}


def register(client, email, display_name="Test User", password=PASSWORD):
    resp = client.post(
        "/api/v1/auth/register",
        json={
            "email": email,
            "password": password,
            "confirm_password": password,
            "display_name": display_name,
        },
    )
    assert resp.status_code == 201, resp.get_json()
    return resp.get_json()


def login(client, email, password=PASSWORD):
    resp = client.post("/api/v1/auth/login", json={"email": email, "password": password})
    assert resp.status_code == 200, resp.get_json()
    return resp.get_json()


@pytest.fixture
def admin_tokens(app, client):
    app.extensions["user_service"].create_user(
        "admin@example.com", PASSWORD, "Admin", roles=("admin", "user")
    )
    return login(client, "admin@example.com")
