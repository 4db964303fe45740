"""
tests/conftest.py -- Shared test fixtures for the portal.

This module provides:
  - FakeClock: a settable clock injected into the Gateway so expiry is testable
  - engine / gateway: a fresh file-backed SQLite store per test
  - make_user / login_as: factories for seeded users and their tokens
  - _patch_lifespan(): wires the test gateway into app.state, bypassing startup
  - api_client: TestClient against the real app and the test gateway

Design: a file under tmp_path rather than an in-memory URL. TestClient and
the concurrency tests run queries from several threads, and only a file
database gives every pooled connection the same data plus real locking
(BEGIN IMMEDIATE, WAL).

Environment must be set before any project import: get_settings() is cached
on first call.
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone

# CRITICAL: set before any core/auth/db import so the cached Settings see them.
os.environ.setdefault("DEBUG", "true")
os.environ["BCRYPT_ROUNDS"] = "4"  # fastest legal work factor
os.environ["SECURE_COOKIES"] = "false"  # TestClient talks plain HTTP
os.environ["LOGIN_RATE_LIMIT"] = "1000/minute"
os.environ["DATABASE_URL"] = "sqlite://"  # never touch the default file store

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import update

from api.main import app
from auth.tokens import hash_password
from db import tokenless
from db.engine import build_engine, create_schema
from db.gateway import Gateway
from db.schema import users
from services.login import login

DEFAULT_PASSWORD = "correct horse battery"


class FakeClock:
    """Callable clock. Starts at a fixed instant and only moves when told to."""

    def __init__(self, start: datetime | None = None) -> None:
        self.current = start or datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> datetime:
        self.current += timedelta(**kwargs)
        return self.current


# ---------------------------------------------------------------------------
# Store fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def engine(tmp_path):
    eng = build_engine(database_url=f"sqlite:///{tmp_path / 'portal.db'}")
    create_schema(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def gateway(engine, clock) -> Gateway:
    return Gateway(engine, clock=clock)


@pytest.fixture
def make_user(gateway, engine):
    """Factory: create a user directly (as if a code had been redeemed).

    Returns the new user id.
    """

    def _make(
        username: str,
        permissions: list[str] | tuple[str, ...] = (),
        password: str = DEFAULT_PASSWORD,
        email: str | None = None,
        max_tokens: int | None = None,
        default_token_expiry_seconds: int = 3600,
    ) -> str:
        user_id = str(uuid.uuid4())
        result = gateway.execute_unauthenticated(
            tokenless.create_invited_user,
            user_id,
            username,
            email or f"{username}@example.com",
            hash_password(password),
            default_token_expiry_seconds,
            [getattr(p, "value", p) for p in permissions],
            gateway.now(),
        )
        assert result.success, result.error
        if max_tokens is not None:
            with engine.begin() as conn:
                conn.execute(update(users).where(users.c.id == user_id).values(max_tokens_at_a_time=max_tokens))
        return user_id

    return _make


@pytest.fixture
def login_as(gateway):
    """Factory: log in through the real login service and return the token."""

    def _login(username: str, password: str = DEFAULT_PASSWORD) -> str:
        result = login(gateway, username, password)
        assert result.success, result.error
        return result.result.token

    return _login


# ---------------------------------------------------------------------------
# API fixtures
# ---------------------------------------------------------------------------


def _patch_lifespan(gateway: Gateway):
    """Return an async context manager that replaces the real lifespan.

    Wires the pre-created test gateway into app.state so TestClient routes see
    the isolated test store rather than the configured database.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.gateway = gateway
        yield

    return test_lifespan


@pytest.fixture
def api_client(gateway) -> Generator[TestClient, None, None]:
    """TestClient against the real FastAPI app and the per-test store."""
    app.router.lifespan_context = _patch_lifespan(gateway)
    with TestClient(app, raise_server_exceptions=True) as client:
        yield client
