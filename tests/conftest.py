"""
tests/conftest.py -- Shared test fixtures for the Job Tracker auth core.

This module provides:
  - store / hasher / codec / sink / service: unit-level collaborators over an
    isolated in-memory SQLite DB, with bcrypt at its minimum cost (4) so the
    suite stays fast.
  - api_client: TestClient wired to a patched lifespan and a named
    shared-memory DB, yielding (client, service, sink).

Design: Named shared-memory SQLite URIs (not plain :memory:) are required for
the TestClient because sync route handlers run in a thread pool. Plain
:memory: DBs are per-connection and would present a blank schema to each
worker thread. The named URI format (file:name?mode=memory&cache=shared&uri=true)
shares one in-memory instance across all connections in the same process.

The DEBUG env var must be set before any api/core import so get_settings()
auto-generates SECRET_KEY in dev mode rather than raising ValueError.
"""

from __future__ import annotations

import os
from collections.abc import Generator
from contextlib import asynccontextmanager
from datetime import timedelta

# CRITICAL: Set DEBUG before any api/core import so get_settings() can
# auto-generate SECRET_KEY in dev mode instead of raising ValueError.
os.environ.setdefault("DEBUG", "true")

import pytest
from fastapi.testclient import TestClient

from api.limiter import limiter
from api.main import app
from auth.notify import MemoryNotificationSink
from auth.passwords import PasswordHasher
from auth.reset import ResetTokenManager
from auth.service import AuthService
from auth.store import UserStore
from auth.tokens import TokenCodec

TEST_SECRET = "test-signing-key-0123456789abcdef0123456789abcdef"
TEST_FRONTEND_URL = "http://app.test"


def make_codec(
    secret: str = TEST_SECRET,
    access_ttl: timedelta = timedelta(minutes=15),
    refresh_ttl: timedelta = timedelta(days=7),
    leeway: int = 0,
) -> TokenCodec:
    return TokenCodec(secret, access_ttl=access_ttl, refresh_ttl=refresh_ttl, leeway=leeway)


def make_service(store: UserStore, sink: MemoryNotificationSink, hasher: PasswordHasher | None = None) -> AuthService:
    return AuthService(
        store=store,
        hasher=hasher or PasswordHasher(rounds=4),
        codec=make_codec(),
        reset_tokens=ResetTokenManager(store),
        sink=sink,
        frontend_url=TEST_FRONTEND_URL,
    )


# ---------------------------------------------------------------------------
# Unit-level fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def store() -> Generator[UserStore, None, None]:
    s = UserStore("sqlite:///:memory:")
    yield s
    s.close()


@pytest.fixture(scope="session")
def hasher() -> PasswordHasher:
    return PasswordHasher(rounds=4)


@pytest.fixture
def codec() -> TokenCodec:
    return make_codec()


@pytest.fixture
def codec_factory():
    """Build a TokenCodec with overridden TTLs / leeway / key."""
    return make_codec


@pytest.fixture
def signing_key() -> str:
    return TEST_SECRET


@pytest.fixture
def sink() -> MemoryNotificationSink:
    return MemoryNotificationSink()


@pytest.fixture
def service(store: UserStore, sink: MemoryNotificationSink, hasher: PasswordHasher) -> AuthService:
    return make_service(store, sink, hasher)


# ---------------------------------------------------------------------------
# API fixture -- one TestClient per test module for speed
# ---------------------------------------------------------------------------


def _patch_lifespan(store: UserStore, service: AuthService):
    """Return a lifespan that installs pre-built test collaborators on app.state."""

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.user_store = store
        app.state.auth_service = service
        yield

    return test_lifespan


@pytest.fixture(scope="module")
def api_client(request) -> Generator[tuple[TestClient, AuthService, MemoryNotificationSink], None, None]:
    """Yield (client, service, sink) for API integration tests.

    Rate limiting is switched off: the suite logs in far more often than the
    production limit allows from one address.
    """
    suffix = request.module.__name__.rsplit(".", 1)[-1]
    store = UserStore(f"sqlite:///file:test_auth_{suffix}?mode=memory&cache=shared&uri=true")
    sink = MemoryNotificationSink()
    service = make_service(store, sink)

    app.router.lifespan_context = _patch_lifespan(store, service)
    limiter.enabled = False

    with TestClient(app, raise_server_exceptions=False) as client:
        yield client, service, sink

    limiter.enabled = True
    store.close()
