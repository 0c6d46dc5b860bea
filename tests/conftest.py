"""
tests/conftest.py -- Shared test fixtures for Agora.

This module provides:
  - memory_db_url(): a fresh named shared-memory SQLite URL per call
  - user_store / forum_store: isolated stores over one shared database
  - key_set / verifier: a GoogleCredentialVerifier over the local key set
    from google_stub.py
  - api: TestClient over the real app with a patched lifespan, plus an
    admin and a member account and their session tokens

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs route handlers in a thread pool. Plain :memory: DBs
are per-connection and would present a blank schema to each worker thread.
The named URI format (file:name?mode=memory&cache=shared&uri=true) shares
one in-memory instance across all connections in the same process. UserStore
and ForumStore get the same URL because posts reference users.

Environment variables must be set before any auth/core import:
  DEBUG            so get_settings() auto-generates SECRET_KEY
  GOOGLE_CLIENT_ID the audience test ID tokens are minted for
  *_RATE_LIMIT     high enough that the suite never trips the limiter
  ALLOWED_HOSTS    TestClient sends Host: testserver
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path

from google_stub import TEST_CLIENT_ID, FakeKeySet, public_jwk

# CRITICAL: set before any auth/core import (get_settings() is cached).
os.environ.setdefault("DEBUG", "true")
os.environ["GOOGLE_CLIENT_ID"] = TEST_CLIENT_ID
os.environ["LOGIN_RATE_LIMIT"] = "1000/minute"
os.environ["WRITE_RATE_LIMIT"] = "1000/minute"
os.environ["ALLOWED_HOSTS"] = '["testserver", "localhost"]'

import pytest
from fastapi.testclient import TestClient

from api.limiter import limiter
from api.main import app
from auth.google import GoogleCredentialVerifier
from auth.models import Role, User
from auth.store import UserStore
from auth.tokens import create_session_token
from forum.store import ForumStore
from forum.uploads import AttachmentStorage

# ---------------------------------------------------------------------------
# Store fixtures
# ---------------------------------------------------------------------------


def memory_db_url(label: str) -> str:
    return f"sqlite:///file:agora_{label}_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true"


@pytest.fixture
def db_url() -> str:
    return memory_db_url("unit")


@pytest.fixture
def user_store(db_url: str) -> Generator[UserStore, None, None]:
    store = UserStore(db_url=db_url)
    yield store
    store.close()


@pytest.fixture
def forum_store(db_url: str, user_store: UserStore) -> Generator[ForumStore, None, None]:
    """ForumStore over the same database as user_store (posts reference users)."""
    store = ForumStore(db_url=db_url)
    yield store
    store.close()


@pytest.fixture
def key_set() -> FakeKeySet:
    return FakeKeySet([public_jwk()])


@pytest.fixture
def verifier(key_set: FakeKeySet) -> GoogleCredentialVerifier:
    return GoogleCredentialVerifier(client_id=TEST_CLIENT_ID, fetch_key_set=key_set)


# ---------------------------------------------------------------------------
# Application fixture
# ---------------------------------------------------------------------------


@dataclass
class ForumApi:
    """Everything an API test needs: the client, the stores behind it, and two accounts."""

    client: TestClient
    users: UserStore
    forum: ForumStore
    key_set: FakeKeySet
    attachments: AttachmentStorage
    admin: User
    member: User
    admin_token: str
    member_token: str

    @staticmethod
    def bearer(token: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {token}"}

    @property
    def as_admin(self) -> dict[str, str]:
        return self.bearer(self.admin_token)

    @property
    def as_member(self) -> dict[str, str]:
        return self.bearer(self.member_token)


def _patch_lifespan(
    user_store: UserStore,
    forum: ForumStore,
    verifier: GoogleCredentialVerifier | None,
    attachments: AttachmentStorage,
):
    """Return an async context manager that replaces the real lifespan.

    Wires pre-created test stores and a verifier backed by FakeKeySet into
    app.state, so no request reaches Google or the production database.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.user_store = user_store
        app.state.forum = forum
        app.state.credential_verifier = verifier
        app.state.attachments = attachments
        yield

    return test_lifespan


def _create_account(store: UserStore, email: str, name: str, role: Role) -> User:
    user_id = store.create_user(User(email=email, name=name, role=role.value))
    return store.get_by_id(user_id)


@pytest.fixture
def api(tmp_path: Path) -> Generator[ForumApi, None, None]:
    """Yield a ForumApi wired to a fresh database.

    The TestClient uses the real FastAPI app with a patched lifespan so tests
    hit real route handlers but use isolated in-memory stores. Attachments
    are capped at 1 KiB so the 413 path is cheap to reach.
    """
    url = memory_db_url("api")
    user_store = UserStore(db_url=url)
    forum = ForumStore(db_url=url)
    keys = FakeKeySet([public_jwk()])
    verifier = GoogleCredentialVerifier(client_id=TEST_CLIENT_ID, fetch_key_set=keys)
    attachments = AttachmentStorage(tmp_path / "uploads", max_bytes=1024)

    admin = _create_account(user_store, "admin@example.com", "Forum Admin", Role.admin)
    member = _create_account(user_store, "member@example.com", "Forum Member", Role.user)

    app.router.lifespan_context = _patch_lifespan(user_store, forum, verifier, attachments)
    limiter.reset()

    with TestClient(app, raise_server_exceptions=True) as client:
        yield ForumApi(
            client=client,
            users=user_store,
            forum=forum,
            key_set=keys,
            attachments=attachments,
            admin=admin,
            member=member,
            admin_token=create_session_token(admin),
            member_token=create_session_token(member),
        )

    user_store.close()
    forum.close()
