"""
auth/store.py -- SQLAlchemy Core persistence layer for users and sessions.

Pattern: Repository + Data Mapper. UserStore and SessionStore are the
repositories; _row_to_user / _row_to_session are the mappers. Route and
issuer code never touches SQL directly.

Transactions:
  AuthDatabase owns the engine and the one transactional contract the rest
  of auth/ relies on: transaction() (a context manager) and run_in_transaction()
  (the same thing for a callback). Both commit on clean exit and roll back on
  any exception. SQLAlchemyError raised inside the scope, or by the commit
  itself, is logged and re-raised as PersistenceFailure; AuthError subclasses
  raised by the caller pass through untouched after the rollback.

  Repository methods that take a `conn` argument run inside the caller's
  transaction. That is how registration gets its user insert and session
  insert into one atomic unit.

Lookups are three-valued: a row, None for "not there", or a raised fault.
Nothing here collapses a fault into None.

Security:
  All queries use bound parameters. No f-strings in SQL.

  Username and email uniqueness is case-insensitive via unique indexes on
  lower(username) and lower(email). SQLite treats NULLs as distinct in unique
  indexes, so any number of users may have no email.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import TypeVar

from sqlalchemy import (
    BigInteger,
    Column,
    ForeignKey,
    Index,
    MetaData,
    String,
    Table,
    and_,
    create_engine,
    event,
    func,
    or_,
    select,
)
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError

from auth.errors import AuthError, PersistenceFailure
from auth.models import Session, User

logger = logging.getLogger("keybound.auth.store")

T = TypeVar("T")

PAGE_SIZE = 100

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

_users = Table(
    "users",
    metadata,
    Column("user_id", String(36), primary_key=True),
    Column("email", String(512)),
    Column("username", String(64), nullable=False),
    Column("nickname", String(64), nullable=False, server_default=""),
    Column("biography", String(2048), nullable=False, server_default=""),
    Column("encrypted_password", String(1024)),  # NULL for external-identity users
    Column("github_id", String(1024), unique=True),
    Column("groups_count", BigInteger, nullable=False, server_default="0"),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

Index("users_emailx", func.lower(_users.c.email), unique=True)
Index("users_usernamex", func.lower(_users.c.username), unique=True)
Index("users_createdx", _users.c.created_at)

_sessions = Table(
    "sessions",
    metadata,
    Column("session_id", String(36), primary_key=True),
    Column("user_id", String(36), ForeignKey("users.user_id"), nullable=False, index=True),
    Column("secret", String(1024), nullable=False),  # hex PKIX DER public key
    Column("created_at", String(32), nullable=False),
)


# ---------------------------------------------------------------------------
# SQLite connection setup
# ---------------------------------------------------------------------------


def _configure_sqlite(dbapi_conn, connection_record) -> None:
    """Enable WAL and foreign keys on every new SQLite connection.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool. foreign_keys keeps a session from pointing
    at a user that does not exist.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")
    dbapi_conn.execute("PRAGMA foreign_keys=ON")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def now_iso() -> str:
    # Fixed microsecond width keeps lexicographic order equal to time order.
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


def to_cursor(value: datetime | str | None) -> str:
    """Normalize a pagination cursor to the stored ISO 8601 UTC form."""
    if value is None:
        return now_iso()
    if isinstance(value, str):
        value = datetime.fromisoformat(value)
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def parse_uuid(value: str) -> uuid.UUID | None:
    """Return the UUID for value, or None if it is not a syntactically valid one."""
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None


def new_id() -> str:
    return str(uuid.uuid4())


# ---------------------------------------------------------------------------
# Transactional contract
# ---------------------------------------------------------------------------


class AuthDatabase:
    """Engine owner and transaction boundary.

    Usage:
        db = AuthDatabase("sqlite:///keybound.db")
        with db.transaction() as conn:
            db.users.insert(conn, user)
            db.sessions.insert(conn, session)
        db.close()
    """

    def __init__(self, db_url: str) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _configure_sqlite)
        metadata.create_all(self.engine)
        self.users = UserStore(self)
        self.sessions = SessionStore(self)

    @contextmanager
    def transaction(self) -> Iterator[Connection]:
        """Yield a connection inside BEGIN ... COMMIT, rolling back on any exception."""
        try:
            with self.engine.begin() as conn:
                yield conn
        except AuthError:
            raise
        except SQLAlchemyError as exc:
            logger.error("Transaction failed: %s", exc)
            raise PersistenceFailure(str(exc)) from exc

    def run_in_transaction(self, fn: Callable[[Connection], T]) -> T:
        """Run fn(conn) in one transaction and return its result."""
        with self.transaction() as conn:
            return fn(conn)

    def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        try:
            with self.engine.connect() as conn:
                conn.execute(select(1))
            return True
        except SQLAlchemyError:
            logger.exception("Database ping failed")
            return False

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Repositories
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User rows."""

    def __init__(self, db: AuthDatabase) -> None:
        self._db = db

    def insert(self, conn: Connection, user: User) -> None:
        """Insert a user inside the caller's transaction.

        Raises sqlalchemy.exc.IntegrityError on a duplicate username or email;
        the enclosing transaction() turns that into PersistenceFailure.
        """
        conn.execute(
            _users.insert().values(
                user_id=user.user_id,
                email=user.email,
                username=user.username,
                nickname=user.nickname,
                biography=user.biography,
                encrypted_password=user.encrypted_password,
                github_id=user.github_id,
                groups_count=user.groups_count,
                created_at=user.created_at,
                updated_at=user.updated_at,
            )
        )

    def find_by_id(self, conn: Connection, user_id: str) -> User | None:
        """Look up a user by id. Non-UUID ids return None without a query."""
        uid = parse_uuid(user_id)
        if uid is None:
            return None
        row = conn.execute(_users.select().where(_users.c.user_id == str(uid))).fetchone()
        return _row_to_user(row) if row is not None else None

    def find_by_identity(self, conn: Connection, identity: str) -> User | None:
        """Match identity case-insensitively against username or email.

        Identities shorter than 3 characters after trimming never match.
        """
        identity = identity.strip().lower()
        if len(identity) < 3:
            return None
        row = conn.execute(
            _users.select()
            .where(or_(func.lower(_users.c.username) == identity, func.lower(_users.c.email) == identity))
            .limit(1)
        ).fetchone()
        return _row_to_user(row) if row is not None else None

    def read(self, user_id: str) -> User | None:
        """Look up a user by id in its own transaction."""
        return self._db.run_in_transaction(lambda conn: self.find_by_id(conn, user_id))

    def list_page(
        self,
        before: datetime | str | None = None,
        limit: int = PAGE_SIZE,
        before_id: str | None = None,
    ) -> list[User]:
        """Return up to `limit` users created strictly before `before`, newest first.

        Cursor pagination: pass the created_at of the last user on one page as
        `before` to get the next (older) page. None means "now".

        Passing that user's id as `before_id` as well makes the cursor the pair
        (created_at, user_id), so users sharing a created_at across a page
        boundary are neither skipped nor repeated.
        """
        cursor = to_cursor(before)
        limit = max(1, min(limit, PAGE_SIZE))
        condition = _users.c.created_at < cursor
        if before_id is not None:
            condition = or_(condition, and_(_users.c.created_at == cursor, _users.c.user_id < before_id))
        with self._db.transaction() as conn:
            rows = conn.execute(
                _users.select()
                .where(condition)
                .order_by(_users.c.created_at.desc(), _users.c.user_id.desc())
                .limit(limit)
            ).fetchall()
        return [_row_to_user(r) for r in rows]

    def update_profile(self, user: User, nickname: str, biography: str) -> User:
        """Update nickname and/or biography. Blank values leave the field as is.

        Mutates and returns `user`. When both values are blank nothing is written.
        """
        nickname, biography = nickname.strip(), biography.strip()
        if not nickname and not biography:
            return user
        if nickname:
            user.nickname = nickname
        if biography:
            user.biography = biography
        user.updated_at = now_iso()
        with self._db.transaction() as conn:
            conn.execute(
                _users.update()
                .where(_users.c.user_id == user.user_id)
                .values(nickname=user.nickname, biography=user.biography, updated_at=user.updated_at)
            )
        return user

    def count(self) -> int:
        with self._db.transaction() as conn:
            return conn.execute(select(func.count()).select_from(_users)).scalar() or 0


class SessionStore:
    """Repository for Session rows."""

    def __init__(self, db: AuthDatabase) -> None:
        self._db = db

    def insert(self, conn: Connection, session: Session) -> None:
        """Insert a session inside the caller's transaction."""
        conn.execute(
            _sessions.insert().values(
                session_id=session.session_id,
                user_id=session.user_id,
                secret=session.secret,
                created_at=session.created_at,
            )
        )

    def find_by_user_and_session(self, conn: Connection, user_id: str, session_id: str) -> Session | None:
        """Look up the session for (user_id, session_id).

        Either id being malformed or the nil UUID returns None without a query,
        so an empty-but-well-formed token claim can never select a row.
        """
        uid, sid = parse_uuid(user_id), parse_uuid(session_id)
        if uid is None or sid is None or uid.int == 0 or sid.int == 0:
            return None
        row = conn.execute(
            _sessions.select().where((_sessions.c.user_id == str(uid)) & (_sessions.c.session_id == str(sid)))
        ).fetchone()
        return _row_to_session(row) if row is not None else None

    def list_for_user(self, conn: Connection, user_id: str) -> list[Session]:
        """Return all sessions of a user, newest first."""
        uid = parse_uuid(user_id)
        if uid is None:
            return []
        rows = conn.execute(
            _sessions.select().where(_sessions.c.user_id == str(uid)).order_by(_sessions.c.created_at.desc())
        ).fetchall()
        return [_row_to_session(r) for r in rows]


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        user_id=row.user_id,
        email=row.email,
        username=row.username,
        nickname=row.nickname,
        biography=row.biography,
        encrypted_password=row.encrypted_password,
        github_id=row.github_id,
        groups_count=row.groups_count,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _row_to_session(row) -> Session:
    return Session(
        session_id=row.session_id,
        user_id=row.user_id,
        secret=row.secret,
        created_at=row.created_at,
    )
