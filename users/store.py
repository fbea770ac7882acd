"""
users/store.py -- SQLAlchemy Core persistence layer for user documents.

Pattern: Repository + Data Mapper. UserStore is the repository; _row_to_user
is the mapper. Route, CLI and graph code never touch SQL directly.

Each user row is a document: profile fields plus the two denormalized edge
sets (followers, following) stored as JSON arrays. The follow graph never
writes those columns through UserStore directly -- it opens a UserSession,
the narrow "atomic multi-record update" unit of work:

    with store.start_session() as session:    # begin()
        session.add_to_set(b, "followers", a)
        session.add_to_set(a, "following", b)
        session.commit()
    # leaving the block without commit() aborts

Any update that matches no row raises RecordNotFound, so a unit of work that
references a missing user can never commit half of an edge.

Concurrency:
  Rows are read with SELECT ... FOR UPDATE inside the transaction, so
  backends with row locks serialize read-modify-write on the same document.
  SQLite ignores FOR UPDATE; there a UserSession's transaction is opened
  with BEGIN IMMEDIATE instead, which takes the database write lock up front.
  Without it two concurrent sessions could both read the same stale set.
  Every other connection opens a plain deferred BEGIN, so in WAL mode reads
  see the last committed state and never wait on an open session.

Security:
  All queries use bound parameters. Set field names are checked against a
  whitelist before they reach a column lookup.

DB path: users/followgraph.db unless Settings.database_url is set.
"""

from __future__ import annotations

import logging
import time
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import asdict
from datetime import datetime, timezone
from pathlib import Path

from sqlalchemy import JSON, Column, MetaData, String, Table, Text, create_engine, event, select, text
from sqlalchemy.engine import Connection, Engine, RootTransaction
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from users.models import Preferences, SocialLinks, UserRecord

logger = logging.getLogger("followgraph.store")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).parent / 'followgraph.db'}"
_DEFAULT_TIMEOUT_SECONDS = 5.0

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", String(32), primary_key=True),  # uuid4 hex
    Column("email", String(255), nullable=False, unique=True),
    Column("full_name", String(255), nullable=False),
    Column("role", String(30), nullable=False, server_default="user"),
    Column("hashed_password", Text),
    Column("avatar", Text),
    Column("bio", Text),
    Column("social_links", JSON),
    Column("preferences", JSON),
    Column("followers", JSON, nullable=False),
    Column("following", JSON, nullable=False),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

# The only columns a UserSession may mutate as sets.
_SET_FIELDS = frozenset({"followers", "following"})

# Connection execution option marking a UserSession connection. On SQLite it
# makes the transaction start with BEGIN IMMEDIATE.
_WRITE_LOCK_OPTION = "followgraph_write_lock"


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class StorageFailure(Exception):
    """A storage operation could not be completed; nothing was committed."""


class RecordNotFound(StorageFailure):
    """An update or delete matched no user document."""

    def __init__(self, user_id: str) -> None:
        super().__init__(f"user {user_id!r} does not exist")
        self.user_id = user_id


class TransactionTimeout(StorageFailure):
    """The unit of work outlived its deadline and was not committed."""


@contextmanager
def _storage_errors(operation: str, passthrough: tuple = ()) -> Iterator[None]:
    """Translate SQLAlchemy errors into StorageFailure, except the passthrough types."""
    try:
        yield
    except passthrough:
        raise
    except SQLAlchemyError as exc:
        raise StorageFailure(f"{operation} failed: {exc}") from exc


# ---------------------------------------------------------------------------
# SQLite connection setup
# ---------------------------------------------------------------------------


def _configure_sqlite_connection(dbapi_conn, connection_record) -> None:
    """Hand transaction control to SQLAlchemy and enable WAL mode.

    isolation_level=None stops pysqlite from emitting its own BEGIN;
    _begin_transaction() below emits the real one. WAL is set per-connection
    because SQLite PRAGMAs are not inherited by new pooled connections.
    """
    dbapi_conn.isolation_level = None
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def _begin_transaction(conn: Connection) -> None:
    if conn.get_execution_options().get(_WRITE_LOCK_OPTION):
        conn.exec_driver_sql("BEGIN IMMEDIATE")
    else:
        conn.exec_driver_sql("BEGIN")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _set_column(field_name: str) -> Column:
    if field_name not in _SET_FIELDS:
        raise ValueError(f"Unknown set field: {field_name!r}")
    return _users.c[field_name]


# ---------------------------------------------------------------------------
# Unit of work
# ---------------------------------------------------------------------------


class UserSession:
    """One all-or-nothing unit of work over user documents.

    Holds a single pooled connection and one transaction from begin() until
    commit(), abort() or close(). Not thread-safe: one session per request.
    """

    def __init__(self, engine: Engine, timeout_seconds: float) -> None:
        self._engine = engine
        self._timeout_seconds = timeout_seconds
        self._conn: Connection | None = None
        self._txn: RootTransaction | None = None
        self._deadline = 0.0
        self.committed = False

    def __enter__(self) -> "UserSession":
        self.begin()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        try:
            if not self.committed:
                self.abort()
        finally:
            self.close()

    def begin(self) -> None:
        with _storage_errors("begin"):
            conn = self._engine.connect()
            try:
                conn.execution_options(**{_WRITE_LOCK_OPTION: True})
                self._txn = conn.begin()
            except SQLAlchemyError:
                conn.close()
                raise
            self._conn = conn
        self._deadline = time.monotonic() + self._timeout_seconds

    def _active(self) -> Connection:
        if self._conn is None or self._txn is None or not self._txn.is_active:
            raise StorageFailure("session is not active")
        if time.monotonic() > self._deadline:
            raise TransactionTimeout(f"transaction exceeded {self._timeout_seconds}s")
        return self._conn

    def get(self, user_id: str) -> UserRecord | None:
        """Read a document inside the transaction, locking it where supported."""
        conn = self._active()
        with _storage_errors("get"):
            row = conn.execute(_users.select().where(_users.c.id == user_id).with_for_update()).fetchone()
        return _row_to_user(row) if row is not None else None

    def add_to_set(self, user_id: str, field_name: str, value: str) -> None:
        """Add value to the named set field. A value already present is a no-op."""
        column = _set_column(field_name)
        conn = self._active()
        with _storage_errors("add_to_set"):
            members = self._read_set(conn, user_id, column)
            if value in members:
                return
            members.append(value)
            self._write_set(conn, user_id, field_name, members)

    def pull(self, user_id: str, field_name: str, value: str) -> None:
        """Remove value from the named set field. A missing value is a no-op."""
        column = _set_column(field_name)
        conn = self._active()
        with _storage_errors("pull"):
            members = self._read_set(conn, user_id, column)
            if value not in members:
                return
            self._write_set(conn, user_id, field_name, [m for m in members if m != value])

    def delete(self, user_id: str) -> None:
        conn = self._active()
        with _storage_errors("delete"):
            result = conn.execute(_users.delete().where(_users.c.id == user_id))
        if result.rowcount == 0:
            raise RecordNotFound(user_id)

    def commit(self) -> None:
        self._active()
        with _storage_errors("commit"):
            self._txn.commit()
        self.committed = True

    def abort(self) -> None:
        if self._txn is not None and self._txn.is_active:
            with _storage_errors("abort"):
                self._txn.rollback()

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None
            self._txn = None

    @staticmethod
    def _read_set(conn: Connection, user_id: str, column: Column) -> list[str]:
        row = conn.execute(select(column).where(_users.c.id == user_id).with_for_update()).fetchone()
        if row is None:
            raise RecordNotFound(user_id)
        return list(row[0] or [])

    @staticmethod
    def _write_set(conn: Connection, user_id: str, field_name: str, members: list[str]) -> None:
        conn.execute(_users.update().where(_users.c.id == user_id).values({field_name: members, "updated_at": _now_iso()}))


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for user documents.

    Usage:
        store = UserStore()
        uid = store.create_user(UserRecord(email="ada@example.com", full_name="Ada"))
        user = store.get_by_id(uid)
        store.close()
    """

    # Profile fields update_profile() accepts. Edge sets and identity fields
    # are absent: edges change only through UserSession.
    _PROFILE_FIELDS: frozenset = frozenset({"full_name", "avatar", "bio", "social_links", "preferences"})

    def __init__(self, db_url: str = _DEFAULT_DB_URL, transaction_timeout: float = _DEFAULT_TIMEOUT_SECONDS) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _configure_sqlite_connection)
            event.listen(self.engine, "begin", _begin_transaction)
        self.transaction_timeout = transaction_timeout
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Unit of work
    # ------------------------------------------------------------------

    def start_session(self) -> UserSession:
        """Return a new, not yet begun, unit of work. Use it as a context manager."""
        return UserSession(self.engine, self.transaction_timeout)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except SQLAlchemyError:
            logger.exception("Database ping failed")
            return False
        return True

    def has_users(self) -> bool:
        with _storage_errors("has_users"), self.engine.connect() as conn:
            result = conn.execute(text("SELECT COUNT(*) FROM users")).scalar()
        return (result or 0) > 0

    def create_user(self, user: UserRecord) -> str:
        """Insert a new user document and return its assigned id.

        The edge sets always start empty regardless of what the caller passed.
        Raises sqlalchemy.exc.IntegrityError if the email already exists and
        StorageFailure on any other database error.
        """
        user_id = uuid.uuid4().hex
        now = _now_iso()
        with _storage_errors("create_user", passthrough=(IntegrityError,)), self.engine.connect() as conn:
            conn.execute(
                _users.insert().values(
                    id=user_id,
                    email=user.email,
                    full_name=user.full_name,
                    role=user.role,
                    hashed_password=user.hashed_password,
                    avatar=user.avatar,
                    bio=user.bio,
                    social_links=asdict(user.social_links),
                    preferences=asdict(user.preferences),
                    followers=[],
                    following=[],
                    created_at=now,
                    updated_at=now,
                )
            )
            conn.commit()
        return user_id

    def get_by_id(self, user_id: str) -> UserRecord | None:
        """Look up a user by id. Returns None if not found."""
        with _storage_errors("get_by_id"), self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_email(self, email: str) -> UserRecord | None:
        """Look up a user by exact email (case-sensitive). Returns None if not found."""
        with _storage_errors("get_by_email"), self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == email)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_many(self, user_ids: list[str]) -> list[UserRecord]:
        """Return the users whose ids are listed, in the order given.

        Ids that do not resolve to a record are skipped.
        """
        if not user_ids:
            return []
        with _storage_errors("get_many"), self.engine.connect() as conn:
            rows = conn.execute(_users.select().where(_users.c.id.in_(user_ids))).fetchall()
        by_id = {row.id: _row_to_user(row) for row in rows}
        return [by_id[uid] for uid in user_ids if uid in by_id]

    def update_profile(self, user_id: str, **fields) -> bool:
        """Update mutable profile fields on an existing user.

        Accepted fields: full_name, avatar, bio, social_links (SocialLinks),
        preferences (Preferences). Unknown keys raise ValueError.

        Returns True if a row was updated, False if user_id was not found.
        """
        unknown = set(fields) - self._PROFILE_FIELDS
        if unknown:
            raise ValueError(f"Unknown profile fields: {unknown!r}")
        values = dict(fields)
        for key in ("social_links", "preferences"):
            if key in values:
                values[key] = asdict(values[key])
        values["updated_at"] = _now_iso()
        with _storage_errors("update_profile"), self.engine.connect() as conn:
            result = conn.execute(_users.update().where(_users.c.id == user_id).values(**values))
            conn.commit()
        return result.rowcount > 0

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> UserRecord:
    return UserRecord(
        id=row.id,
        email=row.email,
        full_name=row.full_name,
        role=row.role,
        hashed_password=row.hashed_password,
        avatar=row.avatar,
        bio=row.bio or "",
        social_links=SocialLinks(**(row.social_links or {})),
        preferences=Preferences(**(row.preferences or {})),
        followers=list(row.followers or []),
        following=list(row.following or []),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
