"""
tests/conftest.py -- Shared test fixtures for Nexus integration tests.

This module provides:
  - _make_test_stores(): creates an isolated in-memory DB for users + projects
  - _patch_lifespan(): wires test stores into app.state, bypassing real startup
  - api_env: TestClient plus one seeded user (and bearer headers) per role

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs sync route handlers in a thread pool. Plain :memory:
DBs are per-connection and would present a blank schema to each worker
thread. The named URI format (file:name?mode=memory&cache=shared&uri=true)
shares one in-memory instance across all connections in the same process.

DEBUG, BCRYPT_ROUNDS, and LOGIN_RATE_LIMIT must be set before any app module
import so get_settings() picks them up when it is first called:
  - DEBUG=true auto-generates SECRET_KEY instead of raising ValueError.
  - BCRYPT_ROUNDS=4 keeps password hashing from dominating the suite.
  - A generous login limit lets many tests log in from the same client address.
"""

from __future__ import annotations

import os
from collections.abc import Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from pathlib import Path

# CRITICAL: Set before any auth/core import.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("LOGIN_RATE_LIMIT", "1000/minute")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.models import User
from auth.passwords import hash_password
from auth.roles import Role
from auth.session import SessionAuthenticator
from auth.store import UserStore
from auth.tokens import get_token_codec
from projects.files import DocumentStorage
from projects.store import ProjectStore

PASSWORD = "correct-horse-9"


# ---------------------------------------------------------------------------
# Store helpers
# ---------------------------------------------------------------------------


def _make_test_stores(db_suffix: str) -> tuple[UserStore, ProjectStore]:
    """Create isolated named shared-memory SQLite stores for test isolation.

    Both stores point at the same named database, as they do in production.

    Args:
        db_suffix: Unique string appended to the DB name so test modules
                   don't share state (e.g. 'projects', 'documents').
    """
    url = f"sqlite:///file:test_nexus_{db_suffix}?mode=memory&cache=shared&uri=true"
    return UserStore(db_url=url), ProjectStore(db_url=url)


def _patch_lifespan(user_store: UserStore, project_store: ProjectStore, storage: DocumentStorage):
    """Return an async context manager that replaces the real lifespan.

    Wires pre-created test stores into app.state so TestClient routes see
    isolated test DBs and a temporary upload directory.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.user_store = user_store
        app.state.project_store = project_store
        app.state.token_codec = get_token_codec()
        app.state.authenticator = SessionAuthenticator(user_store, app.state.token_codec)
        app.state.storage = storage
        yield

    return test_lifespan


def make_user(store: UserStore, username: str, role: Role, password: str = PASSWORD, active: bool = True) -> User:
    """Insert a user and return the stored record."""
    user_id = store.create_user(
        User(
            username=username,
            email=f"{username}@studio.test",
            role=role,
            first_name=username.capitalize(),
            last_name="Tester",
            hashed_password=hash_password(password),
            is_active=active,
        )
    )
    return store.get_by_id(user_id)


def bearer(user: User) -> dict[str, str]:
    """Authorization header with a fresh token for user."""
    token = get_token_codec().issue(user.username, user.role)
    return {"Authorization": f"Bearer {token.raw}"}


# ---------------------------------------------------------------------------
# Module-scoped environment -- one TestClient per test module for speed
# ---------------------------------------------------------------------------


@dataclass
class ApiEnv:
    client: TestClient
    user_store: UserStore
    project_store: ProjectStore
    storage: DocumentStorage
    users: dict[str, User] = field(default_factory=dict)
    password: str = PASSWORD

    def headers(self, name: str) -> dict[str, str]:
        return bearer(self.users[name])

    def add_user(self, username: str, role: Role = Role.DEVELOPER, active: bool = True) -> User:
        user = make_user(self.user_store, username, role, active=active)
        self.users[username] = user
        return user


def _seed_users(store: UserStore) -> dict[str, User]:
    return {
        "admin": make_user(store, "admin", Role.ADMIN),
        "lead": make_user(store, "lead", Role.PROJECT_LEAD),
        "lead2": make_user(store, "lead2", Role.PROJECT_LEAD),
        "dev": make_user(store, "dev", Role.DEVELOPER),
        "dev2": make_user(store, "dev2", Role.DEVELOPER),
    }


@pytest.fixture(scope="module")
def api_env(request, tmp_path_factory) -> Generator[ApiEnv, None, None]:
    """Yield an ApiEnv with seeded users: admin, lead, lead2, dev, dev2.

    The TestClient uses the real FastAPI app with a patched lifespan so tests
    hit real route handlers, dependencies, and exception handlers but use an
    isolated in-memory database and a temporary upload directory. Every seeded
    user's password is PASSWORD.
    """
    suffix = Path(request.module.__file__).stem
    user_store, project_store = _make_test_stores(suffix)
    storage = DocumentStorage(tmp_path_factory.mktemp(f"uploads_{suffix}"), max_bytes=1024 * 1024)
    users = _seed_users(user_store)

    app.router.lifespan_context = _patch_lifespan(user_store, project_store, storage)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield ApiEnv(client, user_store, project_store, storage, users)

    project_store.close()
    user_store.close()
