"""
auth/store.py -- Credential persistence: the store protocol and its SQLAlchemy
Core implementation.

Pattern: Repository + Data Mapper. SQLCredentialStore is the repository;
_row_to_client / _row_to_user / _row_to_token are the mappers. Authenticators
and routes never touch SQL directly -- they depend on the CredentialStore
protocol and receive a concrete store through their constructor.

Error contract:
  StoreError          -- the database could not be reached or the query
                         failed. Authenticators turn this into a negative
                         result; provisioning callers see it raised.
  UserValidationError -- save_user() rejected the record before writing.
  UsernameTakenError  -- save_user() hit the UNIQUE(username) constraint.

Security:
  All queries use bound parameters. No f-strings in SQL. Usernames are
  stored lower-cased and compared with lower() on both sides, so the lookup
  is case-insensitive without interpreting user input as a pattern.

  count_tokens() is a diagnostic helper for operators and tests; the
  authenticators and routes never call it.

  tokens.username is not a foreign key. Deleting a user leaves its tokens in
  place; they keep resolving to the old username until removed.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime, timezone
from typing import Protocol

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, create_engine, event, func, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from auth.models import Client, Role, Token, User
from auth.validation import UserValidationError, validate_user
from core.config import get_settings

logger = logging.getLogger("restauth.store")

# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class StoreError(Exception):
    """The backing store failed (unreachable, locked, bad schema, ...)."""


class UsernameTakenError(Exception):
    """A different user already owns this (case-insensitive) username."""


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------


class CredentialStore(Protocol):
    """The five operations the authentication core consumes."""

    def find_client(self, client_id: str, client_secret: str) -> Client | None: ...

    def find_user_by_username_ci(self, username: str) -> User | None: ...

    def find_token_by_value(self, token: str) -> Token | None: ...

    def save_token(self, token: Token) -> int: ...

    def save_user(self, user: User) -> int: ...


# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_clients = Table(
    "clients",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("client_id", String(255), nullable=False, unique=True),
    Column("client_secret", String(255), nullable=False),
    Column("created_at", String(32), nullable=False),
)

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("username", String(255), nullable=False, unique=True),  # always lower-cased
    Column("name", String(255), nullable=False),
    Column("email", String(255), nullable=False),
    Column("hashed_password", Text, nullable=False),
    Column("role", String(30), nullable=False, server_default=Role.USER.value),
    Column("created_at", String(32), nullable=False),
)

_tokens = Table(
    "tokens",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("username", String(255), nullable=False, index=True),
    # Not UNIQUE: collisions are left to the 256-bit digest space.
    Column("token", String(64), nullable=False, index=True),
    Column("created_at", String(32), nullable=False),
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode so token lookups are not blocked by token writes.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@contextmanager
def _store_errors(operation: str) -> Iterator[None]:
    """Re-raise driver/SQL failures as StoreError. IntegrityError passes through."""
    try:
        yield
    except IntegrityError:
        raise
    except SQLAlchemyError as exc:
        raise StoreError(f"{operation} failed: {exc.__class__.__name__}") from exc


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class SQLCredentialStore:
    """SQLAlchemy Core implementation of CredentialStore.

    Usage:
        store = SQLCredentialStore("sqlite:///restauth.db")
        store.create_client("web-app", "s3cret")
        store.save_user(new_user_with_password({...}, "pw"))
        store.find_user_by_username_ci("Alice")
        store.close()
    """

    def __init__(self, db_url: str | None = None, validate_email_format: bool | None = None) -> None:
        settings = get_settings()
        db_url = db_url or settings.database_url
        self.validate_email_format = (
            settings.validate_email_format if validate_email_format is None else validate_email_format
        )
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite") and ":memory:" not in db_url and "mode=memory" not in db_url:
            event.listen(self.engine, "connect", _set_wal_mode)
        with _store_errors("schema creation"):
            _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Clients
    # ------------------------------------------------------------------

    def find_client(self, client_id: str, client_secret: str) -> Client | None:
        """Return the client matching both fields exactly, or None."""
        with _store_errors("find_client"), self.engine.connect() as conn:
            row = conn.execute(
                _clients.select().where(
                    (_clients.c.client_id == client_id) & (_clients.c.client_secret == client_secret)
                )
            ).fetchone()
        return _row_to_client(row) if row is not None else None

    def create_client(self, client_id: str, client_secret: str) -> int:
        """Provision a client. Raises IntegrityError if client_id is taken."""
        with _store_errors("create_client"), self.engine.connect() as conn:
            result = conn.execute(
                _clients.insert().values(client_id=client_id, client_secret=client_secret, created_at=_now_iso())
            )
            conn.commit()
        logger.info("Provisioned client %s", client_id)
        return result.inserted_primary_key[0]

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def find_user_by_username_ci(self, username: str) -> User | None:
        """Look up a user by username, ignoring case but not surrounding whitespace.

        Returns None if not found.
        """
        needle = (username or "").lower()
        if not needle:
            return None
        with _store_errors("find_user_by_username_ci"), self.engine.connect() as conn:
            row = conn.execute(_users.select().where(func.lower(_users.c.username) == needle)).fetchone()
        return _row_to_user(row) if row is not None else None

    def save_user(self, user: User) -> int:
        """Validate and persist a user; insert when user.id is None, else update.

        Validation runs first and nothing is written if it fails.

        Raises:
            UserValidationError: one or more fields are missing or invalid.
            UsernameTakenError:  the username already belongs to another user.
            StoreError:          the database failed.
        """
        is_new = user.id is None
        violations = validate_user(user, is_new=is_new, check_email_format=self.validate_email_format)
        if violations:
            raise UserValidationError(violations)

        role = user.role.value if isinstance(user.role, Role) else user.role
        values = {
            "username": user.username.strip().lower(),
            "name": user.name.strip(),
            "email": user.email.strip(),
            "role": role,
        }
        if user.hashed_password:
            values["hashed_password"] = user.hashed_password

        try:
            with _store_errors("save_user"), self.engine.connect() as conn:
                if is_new:
                    result = conn.execute(_users.insert().values(created_at=_now_iso(), **values))
                    user_id = result.inserted_primary_key[0]
                else:
                    result = conn.execute(_users.update().where(_users.c.id == user.id).values(**values))
                    if result.rowcount == 0:
                        raise StoreError(f"save_user failed: no user with id {user.id}")
                    user_id = user.id
                conn.commit()
        except IntegrityError as exc:
            raise UsernameTakenError(f"Username {values['username']!r} is already taken.") from exc
        return user_id

    def list_users(self) -> list[User]:
        """Return all users ordered by username."""
        with _store_errors("list_users"), self.engine.connect() as conn:
            rows = conn.execute(_users.select().order_by(_users.c.username)).fetchall()
        return [_row_to_user(r) for r in rows]

    def update_role(self, username: str, role: Role | str) -> User | None:
        """Change a user's role through save_user(). Returns the updated user,
        or None when no such user exists."""
        user = self.find_user_by_username_ci(username)
        if user is None:
            return None
        updated = replace(user, role=role.value if isinstance(role, Role) else role)
        self.save_user(updated)
        return updated

    # ------------------------------------------------------------------
    # Tokens
    # ------------------------------------------------------------------

    def find_token_by_value(self, token: str) -> Token | None:
        """Exact-match lookup of an issued token."""
        with _store_errors("find_token_by_value"), self.engine.connect() as conn:
            row = conn.execute(_tokens.select().where(_tokens.c.token == token)).fetchone()
        return _row_to_token(row) if row is not None else None

    def save_token(self, token: Token) -> int:
        """Insert a token row and return its ID. Tokens are never updated."""
        with _store_errors("save_token"), self.engine.connect() as conn:
            result = conn.execute(
                _tokens.insert().values(username=token.username, token=token.token, created_at=_now_iso())
            )
            conn.commit()
        return result.inserted_primary_key[0]

    def count_tokens(self, username: str) -> int:
        """Number of tokens issued to username (case-insensitive).

        Diagnostic helper for operators and tests; no request path calls it.
        """
        with _store_errors("count_tokens"), self.engine.connect() as conn:
            result = conn.execute(
                select(func.count())
                .select_from(_tokens)
                .where(func.lower(_tokens.c.username) == username.lower())
            ).scalar()
        return result or 0

    def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        try:
            with self.engine.connect() as conn:
                conn.execute(select(1))
            return True
        except SQLAlchemyError:
            logger.exception("Credential store ping failed")
            return False

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_client(row) -> Client:
    return Client(id=row.id, client_id=row.client_id, client_secret=row.client_secret)


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        username=row.username,
        name=row.name,
        email=row.email,
        hashed_password=row.hashed_password,
        role=row.role,
        created_at=row.created_at,
    )


def _row_to_token(row) -> Token:
    return Token(id=row.id, username=row.username, token=row.token, created_at=row.created_at)
