"""
tests/conftest.py -- Shared test fixtures for the user directory.

This module provides:
  - make_user(): builds a domain User with a real bcrypt hash
  - store: a fresh in-memory UserStore for unit tests
  - api: a TestClient wired to an isolated store with two seeded organisations

Design: Named shared-memory SQLite URIs (not plain :memory:) are required for
the TestClient fixture because route handlers run in a thread pool. Plain
:memory: DBs are per-connection and would present a blank schema to each
worker thread. Each test gets a uniquely named DB so nothing leaks between
tests.

The DEBUG env var must be set before any auth module import so get_settings()
auto-generates SECRET_KEY in dev mode rather than raising ValueError.
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass

# CRITICAL: Set DEBUG before any auth/core import.
os.environ.setdefault("DEBUG", "true")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.models import User
from auth.service import AuthService
from auth.store import Success, UserStore
from auth.tokens import create_access_token, hash_password
from directory.service import DirectoryService

STRONG_PASSWORD = "Sup3rSecret"


def make_user(name: str, organisation: str, **overrides) -> User:
    """Return an unsaved User with a bcrypt hash of STRONG_PASSWORD."""
    fields = {
        "name": name,
        "organisation": organisation,
        "email": f"{name}@{organisation}.io",
        "hashed_password": hash_password(STRONG_PASSWORD),
    }
    fields.update(overrides)
    return User(**fields)


def seed(store: UserStore, user: User) -> User:
    outcome = store.create_user(user)
    assert isinstance(outcome, Success), outcome
    return outcome.user


@pytest.fixture
def store() -> Generator[UserStore, None, None]:
    s = UserStore("sqlite:///:memory:")
    yield s
    s.close()


def _patch_lifespan(user_store: UserStore):
    """Return an async context manager that replaces the real lifespan.

    Wires the test store and services into app.state so TestClient routes see
    the isolated DB rather than the default SQLite file.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        auth_service = AuthService(user_store)
        app.state.user_store = user_store
        app.state.auth_service = auth_service
        app.state.directory = DirectoryService(user_store, auth_service)
        yield

    return test_lifespan


@dataclass
class ApiContext:
    client: TestClient
    store: UserStore
    acme_admin: User
    acme_token: str
    globex_user: User
    globex_token: str

    def headers(self, token: str | None = None) -> dict[str, str]:
        return {"Authorization": f"Bearer {token or self.acme_token}"}


@pytest.fixture
def api() -> Generator[ApiContext, None, None]:
    """Yield an ApiContext backed by a fresh store.

    Seeds "acme-alice" (admin, organisation acme) and "globex-gus"
    (organisation globex), each with password STRONG_PASSWORD and a token.

    The signin/signup routes set an access_token cookie, which the TestClient
    keeps and which takes priority over Bearer headers. Tests that sign in and
    then act as someone else must call client.cookies.clear() in between.
    """
    db_url = f"sqlite:///file:test_userdir_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true"
    user_store = UserStore(db_url=db_url)
    acme_admin = seed(user_store, make_user("alice", "acme", role="admin"))
    globex_user = seed(user_store, make_user("gus", "globex"))

    app.router.lifespan_context = _patch_lifespan(user_store)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield ApiContext(
            client=client,
            store=user_store,
            acme_admin=acme_admin,
            acme_token=create_access_token(acme_admin),
            globex_user=globex_user,
            globex_token=create_access_token(globex_user),
        )

    user_store.close()
