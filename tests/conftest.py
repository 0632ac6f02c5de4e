"""
tests/conftest.py -- Shared test fixtures for Keybound unit and integration tests.

This module provides:
  - db: a fresh in-memory AuthDatabase per test
  - client_key / session_secret: a client key pair and its hex public key
  - registered: a user registered through auth.sessions.register()
  - api_client: TestClient wired to an isolated database via a patched lifespan

Design: Named shared-memory SQLite URIs (not plain :memory:) are required for
the TestClient because it runs sync route handlers in a thread pool. Plain
:memory: DBs are per-connection and would present a blank schema to each
worker thread. Unit tests call the store from one thread, so :memory: is fine.
"""

from __future__ import annotations

import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager

import pytest
from cryptography.hazmat.primitives.asymmetric import ec
from fastapi.testclient import TestClient

from api.limiter import limiter
from api.main import app
from auth.keys import encode_session_key
from auth.models import User
from auth.sessions import register
from auth.store import AuthDatabase
from auth.tokens import generate_session_keypair

PASSWORD = "correct horse"


# ---------------------------------------------------------------------------
# Unit fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def db() -> Generator[AuthDatabase, None, None]:
    database = AuthDatabase("sqlite:///:memory:")
    yield database
    database.close()


@pytest.fixture
def client_key() -> ec.EllipticCurvePrivateKey:
    return generate_session_keypair()


@pytest.fixture
def session_secret(client_key: ec.EllipticCurvePrivateKey) -> str:
    return encode_session_key(client_key.public_key())


@pytest.fixture
def registered(db: AuthDatabase, session_secret: str) -> User:
    """A user named 'alice' whose first session is bound to client_key."""
    return register(
        db,
        email="Alice@Example.com",
        username="alice",
        nickname="",
        biography="hello",
        password=PASSWORD,
        session_secret=session_secret,
    )


# ---------------------------------------------------------------------------
# Integration fixtures
# ---------------------------------------------------------------------------


def _patch_lifespan(db: AuthDatabase):
    """Return a lifespan that wires the test database into app.state."""

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.db = db
        yield

    return test_lifespan


@pytest.fixture(scope="module")
def api_client() -> Generator[TestClient, None, None]:
    """Yield a TestClient backed by an isolated shared-memory database.

    Rate limiting is switched off so the suite can register as many users as
    it needs; the limiter itself is slowapi's concern, not ours.
    """
    db = AuthDatabase(f"sqlite:///file:test_auth_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true")
    app.router.lifespan_context = _patch_lifespan(db)
    limiter.enabled = False

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client

    limiter.enabled = True
    db.close()
