"""
tests/conftest.py -- Shared test fixtures for FollowGraph.

This module provides:
  - store / make_user: a real UserStore on a temp-file SQLite database
  - fake_store: FaultyStore, an in-memory stand-in with fault injection, for
    proving that a failed unit of work leaves both documents untouched
  - api_client: TestClient wired to an isolated store through a patched lifespan

Design: API tests use a temp-file SQLite database rather than a shared-memory
URI. TestClient runs sync handlers in worker threads, and a file database
keeps one schema visible to every pooled connection regardless of which
thread opened it.

The DEBUG env var must be set before any auth module import so get_settings()
auto-generates SECRET_KEY in dev mode rather than raising ValueError.
"""

from __future__ import annotations

import copy
import os
from collections.abc import Callable, Generator
from contextlib import asynccontextmanager
from types import SimpleNamespace

# CRITICAL: Set DEBUG before any auth/core import.
os.environ.setdefault("DEBUG", "true")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.policy import AuthorizationPolicy
from auth.tokens import create_access_token, hash_password
from users.graph import FollowGraphManager
from users.models import UserRecord
from users.store import RecordNotFound, StorageFailure, UserStore

# ---------------------------------------------------------------------------
# Real store
# ---------------------------------------------------------------------------


@pytest.fixture
def store(tmp_path) -> Generator[UserStore, None, None]:
    s = UserStore(f"sqlite:///{tmp_path / 'users.db'}")
    yield s
    s.close()


@pytest.fixture
def make_user(store: UserStore) -> Callable[..., str]:
    """Return a factory that inserts a user and returns its id."""

    def _make(name: str, role: str = "user") -> str:
        return store.create_user(UserRecord(email=f"{name}@example.com", full_name=name.title(), role=role))

    return _make


# ---------------------------------------------------------------------------
# In-memory store with fault injection
# ---------------------------------------------------------------------------


class FaultySession:
    """Unit of work over a private copy of the documents.

    Writes land in the copy and replace the store's documents only on commit,
    so an injected failure anywhere before that leaves the store untouched.
    """

    def __init__(self, owner: "FaultyStore") -> None:
        self._owner = owner
        self._staged: dict[str, UserRecord] | None = None
        self.committed = False

    def __enter__(self) -> "FaultySession":
        self.begin()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if not self.committed:
            self.abort()

    def begin(self) -> None:
        self._owner.check("begin")
        self._staged = copy.deepcopy(self._owner.docs)

    def get(self, user_id: str) -> UserRecord | None:
        self._owner.check("get")
        return self._staged.get(user_id)

    def add_to_set(self, user_id: str, field_name: str, value: str) -> None:
        self._owner.check("add_to_set")
        members = getattr(self._doc(user_id), field_name)
        if value not in members:
            members.append(value)

    def pull(self, user_id: str, field_name: str, value: str) -> None:
        self._owner.check("pull")
        members = getattr(self._doc(user_id), field_name)
        if value in members:
            members.remove(value)

    def delete(self, user_id: str) -> None:
        self._owner.check("delete")
        self._doc(user_id)
        del self._staged[user_id]

    def commit(self) -> None:
        self._owner.check("commit")
        self._owner.docs = self._staged
        self.committed = True
        self._owner.commits += 1

    def abort(self) -> None:
        self._staged = None
        self._owner.aborts += 1

    def _doc(self, user_id: str) -> UserRecord:
        doc = self._staged.get(user_id)
        if doc is None:
            raise RecordNotFound(user_id)
        return doc


class FaultyStore:
    """In-memory store. fail("add_to_set", after=1) lets one add succeed, then fails."""

    def __init__(self) -> None:
        self.docs: dict[str, UserRecord] = {}
        self.sessions_started = 0
        self.commits = 0
        self.aborts = 0
        self._fail_op: str | None = None
        self._fail_after = 0
        self._calls: dict[str, int] = {}

    def add(self, user_id: str) -> str:
        self.docs[user_id] = UserRecord(email=f"{user_id}@example.com", full_name=user_id.upper(), id=user_id)
        return user_id

    def fail(self, op: str, after: int = 0) -> None:
        self._fail_op = op
        self._fail_after = after
        self._calls = {}

    def check(self, op: str) -> None:
        count = self._calls.get(op, 0)
        self._calls[op] = count + 1
        if op == self._fail_op and count >= self._fail_after:
            raise StorageFailure(f"injected failure in {op}")

    def start_session(self) -> FaultySession:
        self.sessions_started += 1
        return FaultySession(self)

    def get_by_id(self, user_id: str) -> UserRecord | None:
        self.check("read")
        doc = self.docs.get(user_id)
        return copy.deepcopy(doc) if doc is not None else None

    def get_many(self, user_ids: list[str]) -> list[UserRecord]:
        self.check("read")
        return [copy.deepcopy(self.docs[uid]) for uid in user_ids if uid in self.docs]


@pytest.fixture
def fake_store() -> FaultyStore:
    return FaultyStore()


@pytest.fixture
def fake_graph(fake_store: FaultyStore) -> FollowGraphManager:
    return FollowGraphManager(fake_store)


# ---------------------------------------------------------------------------
# API client
# ---------------------------------------------------------------------------


def _patch_lifespan(user_store: UserStore):
    """Return an async context manager that replaces the real lifespan.

    Wires the test store into app.state so routes see an isolated database.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.user_store = user_store
        app.state.follow_graph = FollowGraphManager(user_store)
        app.state.policy = AuthorizationPolicy()
        yield

    return test_lifespan


@pytest.fixture(scope="module")
def api_client(tmp_path_factory) -> Generator[SimpleNamespace, None, None]:
    """Yield a namespace with the TestClient, the store, and an admin login.

    Attributes: client, store, admin_id, admin_token, new_user(name) -> (id, headers).
    The admin's password is "adminpass123" for login tests.
    """
    db_path = tmp_path_factory.mktemp("api") / "users.db"
    user_store = UserStore(f"sqlite:///{db_path}")

    admin_id = user_store.create_user(
        UserRecord(
            email="admin@example.com",
            full_name="Admin",
            role="admin",
            hashed_password=hash_password("adminpass123"),
        )
    )
    admin_token = create_access_token(admin_id, "admin@example.com", "admin", expire_seconds=3600)

    def new_user(name: str) -> tuple[str, dict[str, str]]:
        email = f"{name}@example.com"
        uid = user_store.create_user(UserRecord(email=email, full_name=name.title()))
        token = create_access_token(uid, email, "user", expire_seconds=3600)
        return uid, {"Authorization": f"Bearer {token}"}

    app.router.lifespan_context = _patch_lifespan(user_store)

    with TestClient(app, base_url="http://localhost", raise_server_exceptions=True) as client:
        yield SimpleNamespace(
            client=client,
            store=user_store,
            admin_id=admin_id,
            admin_token=admin_token,
            admin_headers={"Authorization": f"Bearer {admin_token}"},
            new_user=new_user,
        )

    user_store.close()
