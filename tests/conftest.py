"""
tests/conftest.py -- Shared test fixtures for OrgWarden integration tests.

This module provides:
  - RecordingNotifier: Notifier that keeps sent mail in memory
  - _make_test_stores(): creates isolated in-memory DBs for identities + orgs
  - _patch_lifespan(): wires test stores into app.state, bypassing real startup
  - api_client: TestClient plus a root (SuperAdmin) session token

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs route handlers in a thread pool. Plain :memory: DBs
are per-connection and would present a blank schema to each worker thread.
The named URI format (file:name?mode=memory&cache=shared&uri=true) shares
one in-memory instance across all connections in the same process.

DEBUG must be set before any api/auth/core import so get_settings()
auto-generates SECRET_KEY and the bootstrap password instead of raising.
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager

# CRITICAL: environment first -- api.main reads get_settings() at import time.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("LOGIN_RATE_LIMIT", "1000/minute")

import pytest
from fastapi.testclient import TestClient

from api.main import app, init_app_state
from auth.models import Identity
from auth.store import IdentityStore
from core.config import get_settings
from orgs.store import OrganizationStore

ROOT_EMAIL = "test@yopmail.com"
ROOT_PASSWORD = "Yourpassword1"


class RecordingNotifier:
    """Notifier double: records (email, verify_link, locale) per send."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, str, str]] = []

    async def send_verification(self, identity: Identity, verify_link: str, locale: str) -> None:
        self.sent.append((identity.email, verify_link, locale))


class FailingNotifier:
    """Notifier double whose every send blows up."""

    async def send_verification(self, identity: Identity, verify_link: str, locale: str) -> None:
        raise ConnectionRefusedError("smtp down")


# ---------------------------------------------------------------------------
# Store helpers
# ---------------------------------------------------------------------------


def _make_test_stores(db_suffix: str) -> tuple[IdentityStore, OrganizationStore]:
    """Create isolated named shared-memory SQLite stores.

    Args:
        db_suffix: Unique string appended to the DB name so test modules
                   don't share state (e.g. 'api', 'health').
    """
    auth_url = f"sqlite:///file:test_auth_{db_suffix}?mode=memory&cache=shared&uri=true"
    orgs_url = f"sqlite:///file:test_orgs_{db_suffix}?mode=memory&cache=shared&uri=true"
    return IdentityStore(db_url=auth_url), OrganizationStore(db_url=orgs_url)


def _patch_lifespan(identity_store: IdentityStore, org_store: OrganizationStore, notifier):
    """Return an async context manager that replaces the real lifespan.

    Same wiring and bootstrap as production, but with the test stores and a
    notifier double so no SMTP connection is ever attempted.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        init_app_state(app, get_settings(), identity_store, org_store, notifier=notifier)
        await app.state.access_control.bootstrap()
        yield

    return test_lifespan


# ---------------------------------------------------------------------------
# Module-scoped fixtures -- one TestClient per test module for speed
# ---------------------------------------------------------------------------


@pytest.fixture(scope="module")
def api_client() -> Generator[tuple[TestClient, str, RecordingNotifier], None, None]:
    """Yield (client, root_token, notifier) for API integration tests.

    The root token belongs to the bootstrapped SuperAdmin and is obtained
    through the real POST /login route. The login cookie is dropped from the
    client's jar so each test chooses its own credentials explicitly.
    """
    identity_store, org_store = _make_test_stores("api")
    notifier = RecordingNotifier()
    app.router.lifespan_context = _patch_lifespan(identity_store, org_store, notifier)

    with TestClient(app, raise_server_exceptions=True) as client:
        resp = client.post("/api/v1/login", json={"email": ROOT_EMAIL, "password": ROOT_PASSWORD})
        assert resp.status_code == 200, resp.text
        client.cookies.clear()
        yield client, resp.json()["token"], notifier

    identity_store.close()
    org_store.close()


@pytest.fixture
def store() -> Generator[IdentityStore, None, None]:
    """Fresh in-memory IdentityStore for unit tests.

    Named shared-memory, because the auth service runs store calls on worker
    threads. A unique name per test keeps the databases apart.
    """
    s = IdentityStore(f"sqlite:///file:unit_auth_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true")
    yield s
    s.close()


@pytest.fixture
def recording_notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def failing_notifier() -> FailingNotifier:
    return FailingNotifier()
