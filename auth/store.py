"""
auth/store.py -- SQLAlchemy Core persistence layer for directory users.

Pattern: Repository + Data Mapper. UserStore is the repository; _row_to_user
is the mapper. Services never touch SQL directly.

Error signalling:
  Writes (create_user, update_user) return a tagged outcome --
  Success(user) | Conflict() | Failure(detail) -- so callers never inspect
  driver-specific error codes to spot a duplicate key. Conflict comes only from
  the UNIQUE(organisation, name) constraint: the insert itself is the uniqueness
  check, so two concurrent signups for the same name cannot both succeed.

  identity ("acme-bob") is stored for display only. It is not a key: a hyphen
  in either part makes it ambiguous across tenants, so lookups always take the
  organisation and name separately.

  Reads and deletes raise RepositoryError, chained to the SQLAlchemy error.

Security:
  All queries use bound parameters. Column names used in dynamic filters and
  updates come from fixed whitelists, never from raw caller input.

DB path: auth/userdir.db unless DATABASE_URL is set.

Layer rule: no imports from api/ or directory/.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from sqlalchemy import (
    Column,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
    create_engine,
    event,
    text,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from auth.models import User

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).parent / 'userdir.db'}"

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("identity", String(511), nullable=False),  # "<organisation>-<name>", display only
    Column("name", String(255), nullable=False),
    Column("organisation", String(255), nullable=False, index=True),
    Column("email", String(320), nullable=False),
    Column("hashed_password", Text, nullable=False),
    Column("status", String(100)),
    Column("availability", String(30), nullable=False, server_default="available"),
    Column("role", String(30), nullable=False, server_default="user"),
    Column("last_login_at", String(32)),  # ISO 8601, NULL until first signin
    Column("created_at", String(32), nullable=False),
    UniqueConstraint("organisation", "name", name="uq_users_organisation_name"),
)

# Columns a caller of find_users() may filter on.
_QUERYABLE_COLUMNS = frozenset({"name", "organisation", "email", "status", "availability", "role"})

# Columns update_user() may write. id, organisation and created_at are immutable.
_MUTABLE_COLUMNS = frozenset(
    {"identity", "name", "email", "hashed_password", "status", "availability", "role", "last_login_at"}
)


# ---------------------------------------------------------------------------
# Outcomes and errors
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Success:
    user: User | None  # None when an update matched no row


@dataclass(frozen=True)
class Conflict:
    """The write would duplicate an existing name within the organisation."""


@dataclass(frozen=True)
class Failure:
    detail: str  # for logs only -- never returned to API clients


WriteOutcome = Success | Conflict | Failure


class RepositoryError(Exception):
    """A read or delete could not be completed by the storage engine."""


@contextmanager
def _repository_errors(operation: str) -> Iterator[None]:
    try:
        yield
    except SQLAlchemyError as exc:
        raise RepositoryError(f"{operation} failed") from exc


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User entities.

    Usage:
        store = UserStore()
        outcome = store.create_user(User(name="bob", organisation="acme", email="bob@acme.io", hashed_password=h))
        user = store.get_by_name("acme", "bob")
        store.close()

    Methods that take an ``organisation`` keyword restrict the statement to that
    tenant when it is given. The directory layer always passes it.
    """

    def __init__(self, db_url: str = _DEFAULT_DB_URL) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create_user(self, user: User) -> WriteOutcome:
        """Insert a new user and return Success with the stored record.

        Returns Conflict if the name is already taken in the organisation and
        Failure for any other storage error. Nothing is written in either failure case.
        """
        try:
            with self.engine.connect() as conn:
                result = conn.execute(
                    _users.insert().values(
                        identity=user.identity,
                        name=user.name,
                        organisation=user.organisation,
                        email=user.email,
                        hashed_password=user.hashed_password,
                        status=user.status,
                        availability=user.availability,
                        role=user.role,
                        created_at=_now_iso(),
                    )
                )
                conn.commit()
                user_id = result.inserted_primary_key[0]
                row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        except IntegrityError:
            return Conflict()
        except SQLAlchemyError as exc:
            return Failure(detail=f"{type(exc).__name__}: {exc}")
        return Success(_row_to_user(row))

    def update_user(self, user_id: int, *, organisation: str | None = None, **fields) -> WriteOutcome:
        """Update mutable fields and return Success with the fresh record.

        Success(None) means no row matched (missing id, or another tenant's
        record when organisation is given). A rename onto a name already taken
        in the organisation returns Conflict.

        Unknown field names raise ValueError rather than being silently
        ignored -- they indicate a bug in the caller, not bad user input.
        """
        unknown = set(fields) - _MUTABLE_COLUMNS
        if unknown:
            raise ValueError(f"Unknown or immutable user fields: {sorted(unknown)!r}")
        condition = _users.c.id == user_id
        if organisation is not None:
            condition = condition & (_users.c.organisation == organisation)
        try:
            with self.engine.connect() as conn:
                if fields:
                    result = conn.execute(_users.update().where(condition).values(**fields))
                    conn.commit()
                    if result.rowcount == 0:
                        return Success(None)
                row = conn.execute(_users.select().where(condition)).fetchone()
        except IntegrityError:
            return Conflict()
        except SQLAlchemyError as exc:
            return Failure(detail=f"{type(exc).__name__}: {exc}")
        return Success(_row_to_user(row) if row is not None else None)

    def update_last_login(self, user_id: int) -> None:
        """Stamp the current UTC timestamp as last_login_at. Called on every successful signin."""
        with _repository_errors("update_last_login"):
            with self.engine.connect() as conn:
                conn.execute(_users.update().where(_users.c.id == user_id).values(last_login_at=_now_iso()))
                conn.commit()

    def delete_user(self, user_id: int, *, organisation: str | None = None) -> bool:
        """Permanently delete a user record. Returns True if deleted, False if nothing matched."""
        condition = _users.c.id == user_id
        if organisation is not None:
            condition = condition & (_users.c.organisation == organisation)
        with _repository_errors("delete_user"):
            with self.engine.connect() as conn:
                result = conn.execute(_users.delete().where(condition))
                conn.commit()
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_by_id(self, user_id: int, *, organisation: str | None = None) -> User | None:
        """Look up a user by primary key. Returns None if not found."""
        condition = _users.c.id == user_id
        if organisation is not None:
            condition = condition & (_users.c.organisation == organisation)
        with _repository_errors("get_by_id"):
            with self.engine.connect() as conn:
                row = conn.execute(_users.select().where(condition)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_name(self, organisation: str, name: str) -> User | None:
        """Look up a user by exact organisation and name (case-sensitive). Served by the UNIQUE constraint."""
        condition = (_users.c.organisation == organisation) & (_users.c.name == name)
        with _repository_errors("get_by_name"):
            with self.engine.connect() as conn:
                row = conn.execute(_users.select().where(condition)).fetchone()
        return _row_to_user(row) if row is not None else None

    def find_users(self, where: Mapping[str, str], exclude: Mapping[str, str] | None = None) -> list[User]:
        """Return users matching every ``where`` equality and none of the ``exclude`` values.

        Ordered by last_login_at descending (most recently active first), users
        who never signed in last, ties broken by id. Column names must come from
        _QUERYABLE_COLUMNS; anything else raises ValueError.
        """
        exclude = exclude or {}
        unknown = (set(where) | set(exclude)) - _QUERYABLE_COLUMNS
        if unknown:
            raise ValueError(f"Unknown user filter fields: {sorted(unknown)!r}")
        stmt = _users.select()
        for column, value in where.items():
            stmt = stmt.where(_users.c[column] == value)
        for column, value in exclude.items():
            stmt = stmt.where(_users.c[column] != value)
        stmt = stmt.order_by(_users.c.last_login_at.desc().nulls_last(), _users.c.id)
        with _repository_errors("find_users"):
            with self.engine.connect() as conn:
                rows = conn.execute(stmt).fetchall()
        return [_row_to_user(r) for r in rows]

    def ping(self) -> bool:
        """Return True if the database answers a trivial query. Used by the health endpoint."""
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except SQLAlchemyError:
            return False
        return True

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        identity=row.identity,
        name=row.name,
        organisation=row.organisation,
        email=row.email,
        hashed_password=row.hashed_password,
        status=row.status,
        availability=row.availability,
        role=row.role,
        last_login_at=row.last_login_at,
        created_at=row.created_at,
    )
