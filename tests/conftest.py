"""
tests/conftest.py -- Shared test fixtures for the game auth tests.

This module provides:
  - store: isolated in-memory UserStore for unit tests
  - make_user: factory that creates users with a cheap bcrypt cost
  - service: AuthenticationService wired around the test store
  - api_client / disabled_client: TestClient on the real app with a patched lifespan

Design: Named shared-memory SQLite URIs (not plain :memory:) are required for
the TestClient fixtures because route handlers run in a thread pool. Plain
:memory: DBs are per-connection and would present a blank schema to each
worker thread. Each client gets a unique DB name so tests never share state.

The DEBUG env var must be set before any api/ or core/ import so get_settings()
auto-generates SECRET_KEY in dev mode rather than raising ValueError.
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Callable, Generator
from contextlib import asynccontextmanager

# CRITICAL: Set DEBUG before any core/api import so get_settings() can
# auto-generate SECRET_KEY in dev mode instead of raising ValueError.
os.environ.setdefault("DEBUG", "true")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.credentials import hash_password
from auth.models import User
from auth.service import AuthenticationService
from auth.store import UserStore
from core.config import Settings

TEST_SECRET_KEY = "test-secret-key-0123456789abcdef0123456789"

# Minimum bcrypt cost keeps the suite fast; production hashes use 12.
TEST_ROUNDS = 4


def make_settings(**overrides) -> Settings:
    values = {"secret_key": TEST_SECRET_KEY, "auth_api_enabled": True}
    values.update(overrides)
    return Settings(**values)


# ---------------------------------------------------------------------------
# Store + users
# ---------------------------------------------------------------------------


@pytest.fixture
def store() -> Generator[UserStore, None, None]:
    s = UserStore("sqlite:///:memory:")
    yield s
    s.close()


def _create_user(
    store: UserStore,
    name: str = "alice",
    email: str | None = None,
    password: str = "secret123",
    two_factor_secret: str | None = None,
) -> User:
    email = email or f"{name}@example.com"
    uid = store.create_user(
        User(
            name=name,
            email=email,
            password=hash_password(password, rounds=TEST_ROUNDS),
            two_factor_secret=two_factor_secret,
        )
    )
    return store.get_by_id(uid)


@pytest.fixture
def make_user(store: UserStore) -> Callable[..., User]:
    """Return a factory: make_user(name="alice", email=None, password="secret123", two_factor_secret=None)."""

    def factory(**kwargs) -> User:
        return _create_user(store, **kwargs)

    return factory


@pytest.fixture
def secret_key() -> str:
    return TEST_SECRET_KEY


@pytest.fixture
def service(store: UserStore) -> AuthenticationService:
    return AuthenticationService.from_settings(store, make_settings())


# ---------------------------------------------------------------------------
# HTTP clients
# ---------------------------------------------------------------------------


def _patch_lifespan(user_store: UserStore, auth_service: AuthenticationService):
    """Return an async context manager that replaces the real lifespan.

    Wires the test store and service into app.state so TestClient routes see
    an isolated DB rather than the production one.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.user_store = user_store
        app.state.auth_service = auth_service
        yield

    return test_lifespan


def _client(enabled: bool) -> Generator[tuple[TestClient, UserStore], None, None]:
    db_url = f"sqlite:///file:test_auth_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true"
    user_store = UserStore(db_url)
    auth_service = AuthenticationService.from_settings(user_store, make_settings(auth_api_enabled=enabled))

    app.router.lifespan_context = _patch_lifespan(user_store, auth_service)

    # raise_server_exceptions=False so 500 responses can be asserted on.
    with TestClient(app, raise_server_exceptions=False) as client:
        yield client, user_store

    user_store.close()


@pytest.fixture
def api_client() -> Generator[tuple[TestClient, UserStore], None, None]:
    """Yield (client, store) for an app with the auth API enabled."""
    yield from _client(enabled=True)


@pytest.fixture
def disabled_client() -> Generator[tuple[TestClient, UserStore], None, None]:
    """Yield (client, store) for an app with the auth API feature flag off."""
    yield from _client(enabled=False)


@pytest.fixture
def create_user() -> Callable[..., User]:
    """Return create_user(store, **kwargs) for tests that hold their own store."""
    return _create_user
