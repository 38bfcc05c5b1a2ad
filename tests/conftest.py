"""
tests/conftest.py -- Shared test fixtures for AccessGate.

This module provides:
  - hasher / validator / store / services: isolated unit-level collaborators
  - _make_test_store(): named shared-memory identity store for API tests
  - _patch_lifespan(): wires test services into app.state, bypassing real startup
  - api_client: TestClient plus seeded admin and user accounts and their tokens

Design: Named shared-memory SQLite URIs (not plain :memory:) are required for
the API fixture because TestClient runs route handlers in a thread pool. Plain
:memory: DBs are per-connection and would present a blank schema to each
worker thread. The named URI format shares one in-memory instance across all
connections in the same process.

Environment must be set before any core/auth/api import so get_settings()
sees it: DEBUG allows an auto-generated key, but a fixed SECRET_KEY keeps
tokens stable across the session; BCRYPT_ROUNDS=4 keeps hashing fast; the
login rate limit is raised so repeated logins in one module are not throttled.
"""

from __future__ import annotations

import os
from collections.abc import Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass

# CRITICAL: Set env before any core/auth/api import.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("SECRET_KEY", "test-secret-key-0123456789abcdef0123456789")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("LOGIN_RATE_LIMIT", "1000/minute")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.models import Credentials, Role
from auth.passwords import PasswordHasher
from auth.services import AuthServices, build_auth_services
from auth.store import SqlIdentityStore
from auth.validation import CredentialValidator
from core.config import get_settings

ADMIN_LOGIN = "testadmin"
ADMIN_PASSWORD = "adminpass123"
USER_LOGIN = "testuser"
USER_PASSWORD = "userpass123"


# ---------------------------------------------------------------------------
# Unit-level fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def hasher() -> PasswordHasher:
    """Cheapest legal bcrypt cost -- the tests check behaviour, not strength."""
    return PasswordHasher(rounds=4, max_concurrent=2)


@pytest.fixture
def validator() -> CredentialValidator:
    return CredentialValidator(min_login_length=3, min_password_length=8)


@pytest.fixture
def store() -> Generator[SqlIdentityStore, None, None]:
    s = SqlIdentityStore("sqlite:///:memory:")
    yield s
    s.close()


@pytest.fixture
def services(store: SqlIdentityStore) -> AuthServices:
    return build_auth_services(get_settings(), store=store)


# ---------------------------------------------------------------------------
# API fixtures
# ---------------------------------------------------------------------------


@dataclass
class ApiContext:
    client: TestClient
    services: AuthServices
    admin_id: int
    admin_token: str
    user_id: int
    user_token: str

    def auth(self, token: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {token}"}


def _make_test_store(db_suffix: str) -> SqlIdentityStore:
    """Create an isolated named shared-memory identity store.

    Args:
        db_suffix: Unique string appended to the DB name so test modules
                   don't share state.
    """
    return SqlIdentityStore(db_url=f"sqlite:///file:test_auth_{db_suffix}?mode=memory&cache=shared&uri=true")


def _patch_lifespan(services: AuthServices):
    """Return an async context manager that replaces the real lifespan.

    Wires pre-built test services into app.state so TestClient routes see an
    isolated store rather than the configured database.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.auth = services
        yield

    return test_lifespan


@pytest.fixture(scope="module")
def api_client(request: pytest.FixtureRequest) -> Generator[ApiContext, None, None]:
    """Yield an ApiContext with one admin and one regular user already stored.

    One TestClient per test module; the DB name is derived from the module so
    modules never see each other's records.
    """
    suffix = request.module.__name__.rsplit(".", 1)[-1]
    store = _make_test_store(suffix)
    services = build_auth_services(get_settings(), store=store)

    admin = services.users.sign_up(Credentials(ADMIN_LOGIN, ADMIN_PASSWORD), role=Role.admin.value)
    user = services.users.sign_up(
        Credentials(USER_LOGIN, USER_PASSWORD),
        role=Role.user.value,
        profile={"given_names": "Test", "email": "testuser@example.com"},
    )
    admin_token = services.tokens.issue(services.users.to_principal(admin))
    user_token = services.tokens.issue(services.users.to_principal(user))

    app.router.lifespan_context = _patch_lifespan(services)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield ApiContext(
            client=client,
            services=services,
            admin_id=admin.id,
            admin_token=admin_token,
            user_id=user.id,
            user_token=user_token,
        )

    store.close()
