"""
tests/conftest.py -- Shared test fixtures for RestAuth.

This module provides:
  - store / hasher: a file-backed SQLCredentialStore per test and a cheap
    bcrypt hasher (4 rounds) for unit tests
  - seeded_store(): provisions one client and one user per role
  - _patch_lifespan(): wires a test store into app.state, bypassing real startup
  - api_client: TestClient plus bearer tokens for each role

Design: stores live in a tmp_path SQLite file rather than ':memory:' because
TestClient runs route handlers in a thread pool and the background token
writer uses its own thread. A plain ':memory:' DB is per-connection and would
present a blank schema to every other thread.

Environment must be set before any core/auth/api import so get_settings()
picks it up on its first (cached) call.
"""

from __future__ import annotations

import os
from collections.abc import Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass

# CRITICAL: set before importing anything that calls get_settings().
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("TOKEN_RATE_LIMIT", "1000/minute")
os.environ.setdefault("ALLOWED_HOSTS", '["testserver", "localhost"]')

import httpx
import pytest
from fastapi.testclient import TestClient

from api.main import app, unwire_auth, wire_auth
from auth.models import new_user_with_password
from auth.passwords import PasswordHasher
from auth.store import SQLCredentialStore

CLIENT_ID = "test-client"
CLIENT_SECRET = "test-client-secret"

# username -> (password, role)
USERS = {
    "root": ("rootpass123", "Admin"),
    "dev": ("devpass123", "Developer"),
    "alice": ("alicepass123", "User"),
}


def seeded_store(db_url: str, hasher: PasswordHasher) -> SQLCredentialStore:
    """Create a store holding CLIENT_ID and one user per role."""
    store = SQLCredentialStore(db_url)
    store.create_client(CLIENT_ID, CLIENT_SECRET)
    for username, (password, role) in USERS.items():
        store.save_user(
            new_user_with_password(
                {"username": username, "name": username.title(), "email": f"{username}@example.com", "role": role},
                password,
                hasher=hasher,
            )
        )
    return store


@pytest.fixture
def hasher() -> PasswordHasher:
    return PasswordHasher(rounds=4)


@pytest.fixture
def store(tmp_path) -> Generator[SQLCredentialStore, None, None]:
    s = SQLCredentialStore(f"sqlite:///{tmp_path / 'auth.db'}")
    yield s
    s.close()


def _patch_lifespan(store: SQLCredentialStore):
    """Return an async context manager that replaces the real lifespan.

    Wires the pre-created test store into app.state so TestClient routes see
    an isolated DB rather than the configured one.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        wire_auth(app, store)
        yield
        unwire_auth(app)

    return test_lifespan


@dataclass
class ApiHarness:
    client: TestClient
    store: SQLCredentialStore
    tokens: dict[str, str]

    def auth(self, username: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.tokens[username]}"}

    def request_token(self, username: str, password: str, **overrides) -> httpx.Response:
        return request_token(self.client, username, password, **overrides)


def request_token(client: TestClient, username: str, password: str, data=None, auth=(CLIENT_ID, CLIENT_SECRET)):
    """POST /api/v1/token as the seeded client (HTTP Basic) unless auth is overridden."""
    form = {"grant_type": "password", "username": username, "password": password}
    form.update(data or {})
    return client.post("/api/v1/token", data=form, auth=auth)


@pytest.fixture(scope="module")
def api_client(tmp_path_factory) -> Generator[ApiHarness, None, None]:
    """Yield an ApiHarness with a live TestClient and one bearer token per role.

    The tokens are obtained through the real token endpoint, so every test in
    the module starts from credentials issued the way clients get them.
    """
    db_path = tmp_path_factory.mktemp("api") / "auth.db"
    store = seeded_store(f"sqlite:///{db_path}", PasswordHasher(rounds=4))

    app.router.lifespan_context = _patch_lifespan(store)

    with TestClient(app, raise_server_exceptions=True) as client:
        tokens = {}
        for username, (password, _role) in USERS.items():
            resp = request_token(client, username, password)
            assert resp.status_code == 200, resp.text
            tokens[username] = resp.json()["access_token"]
        yield ApiHarness(client=client, store=store, tokens=tokens)
