from __future__ import annotations

import uuid
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Iterator, List, Optional, Tuple

import psycopg
from psycopg import errors
from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool, PoolTimeout

from sessiongate.logging import get_logger
from sessiongate.storage.errors import (
    ReferentialIntegrityViolation,
    StoreUnavailable,
    UniqueConstraintViolation,
)
from sessiongate.storage.models import Role, Session, User, utc_now

_SCHEMA_STATEMENTS = (
    """
    CREATE TABLE IF NOT EXISTS app_user (
        id UUID PRIMARY KEY,
        username TEXT NOT NULL UNIQUE,
        password_hash TEXT NOT NULL,
        name TEXT NOT NULL,
        email TEXT,
        role TEXT NOT NULL CHECK (role IN ('ADMIN', 'DIRETOR', 'ANALISTA', 'INSPETOR')),
        active BOOLEAN NOT NULL DEFAULT TRUE,
        created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
        updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS auth_session (
        id UUID PRIMARY KEY,
        user_id UUID NOT NULL REFERENCES app_user (id) ON DELETE RESTRICT,
        token TEXT NOT NULL UNIQUE,
        expires_at TIMESTAMPTZ NOT NULL,
        created_at TIMESTAMPTZ NOT NULL DEFAULT now()
    )
    """,
    "CREATE INDEX IF NOT EXISTS auth_session_expires_at_idx ON auth_session (expires_at)",
    "CREATE INDEX IF NOT EXISTS auth_session_user_id_idx ON auth_session (user_id)",
)

_UPDATABLE_USER_FIELDS = ("username", "password_hash", "name", "email", "role", "active")


def _user_from_row(row: dict, prefix: str = "") -> User:
    return User(
        id=str(row[f"{prefix}id"]),
        username=row[f"{prefix}username"],
        password_hash=row[f"{prefix}password_hash"],
        name=row[f"{prefix}name"],
        email=row.get(f"{prefix}email"),
        role=Role(row[f"{prefix}role"]),
        active=bool(row.get(f"{prefix}active", True)),
        created_at=row.get(f"{prefix}created_at") or utc_now(),
        updated_at=row.get(f"{prefix}updated_at") or utc_now(),
    )


def _session_from_row(row: dict, prefix: str = "") -> Session:
    return Session(
        id=str(row[f"{prefix}id"]),
        user_id=str(row[f"{prefix}user_id"]),
        token=row[f"{prefix}token"],
        expires_at=row[f"{prefix}expires_at"],
        created_at=row.get(f"{prefix}created_at") or utc_now(),
    )


class PostgresStore:
    """Postgres-backed user and session store.

    There is deliberately no in-process session cache: every lookup goes to
    the database so that logout, deactivation and sweeps are visible to the
    very next request on any worker.
    """

    def __init__(self, dsn: str, *, min_size: int = 2, max_size: int = 10) -> None:
        self.dsn = dsn
        self.logger = get_logger(__name__)
        self.pool = ConnectionPool(
            self.dsn,
            min_size=min_size,
            max_size=max_size,
            kwargs={"row_factory": dict_row, "autocommit": False},
        )
        self._ensure_schema()

    @contextmanager
    def _connect(self, operation: str = "query") -> Iterator[psycopg.Connection]:
        try:
            with self.pool.connection() as conn:
                yield conn
        except (psycopg.OperationalError, PoolTimeout) as exc:
            self.logger.error(
                "postgres_unavailable",
                operation=operation,
                error_type=type(exc).__name__,
                error=str(exc),
            )
            raise StoreUnavailable("session store unavailable", operation=operation) from exc

    def _ensure_schema(self) -> None:
        """Create the user and session tables when missing."""

        with self._connect("ensure_schema") as conn:
            for statement in _SCHEMA_STATEMENTS:
                conn.execute(statement)

    def verify_connection(self) -> None:
        with self._connect("verify_connection") as conn:
            conn.execute("SELECT 1").fetchone()

    def close(self) -> None:
        self.pool.close()

    # users
    def create_user(
        self,
        username: str,
        password_hash: str,
        name: str,
        *,
        role: Role = Role.INSPETOR,
        email: Optional[str] = None,
        active: bool = True,
    ) -> User:
        user_id = str(uuid.uuid4())
        now = utc_now()
        role = Role(role)
        try:
            with self._connect("create_user") as conn:
                conn.execute(
                    """
                    INSERT INTO app_user (id, username, password_hash, name, email, role, active, created_at, updated_at)
                    VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
                    """,
                    (user_id, username, password_hash, name, email, role.value, active, now, now),
                )
        except errors.UniqueViolation:
            raise UniqueConstraintViolation("username already exists", {"field": "username"})
        return User(
            id=user_id,
            username=username,
            password_hash=password_hash,
            name=name,
            email=email,
            role=role,
            active=active,
            created_at=now,
            updated_at=now,
        )

    def get_user(self, user_id: str) -> Optional[User]:
        try:
            with self._connect("get_user") as conn:
                row = conn.execute(
                    "SELECT * FROM app_user WHERE id = %s", (user_id,)
                ).fetchone()
        except errors.InvalidTextRepresentation:
            # Not a UUID, so no such row
            return None
        return _user_from_row(row) if row else None

    def get_user_by_username(self, username: str) -> Optional[User]:
        with self._connect("get_user_by_username") as conn:
            row = conn.execute(
                "SELECT * FROM app_user WHERE username = %s", (username,)
            ).fetchone()
        return _user_from_row(row) if row else None

    def list_users(self, *, active: Optional[bool] = None) -> List[User]:
        with self._connect("list_users") as conn:
            if active is None:
                rows = conn.execute(
                    "SELECT * FROM app_user ORDER BY username"
                ).fetchall()
            else:
                rows = conn.execute(
                    "SELECT * FROM app_user WHERE active = %s ORDER BY username",
                    (active,),
                ).fetchall()
        return [_user_from_row(row) for row in rows]

    def update_user(self, user_id: str, **fields: Any) -> Optional[User]:
        unknown = set(fields) - set(_UPDATABLE_USER_FIELDS)
        if unknown:
            raise ValueError(f"unknown user fields: {', '.join(sorted(unknown))}")
        if "role" in fields:
            fields["role"] = Role(fields["role"]).value
        if not fields:
            return self.get_user(user_id)
        columns = [name for name in _UPDATABLE_USER_FIELDS if name in fields]
        assignments = ", ".join(f"{name} = %s" for name in columns)
        params = [fields[name] for name in columns] + [utc_now(), user_id]
        try:
            with self._connect("update_user") as conn:
                row = conn.execute(
                    f"UPDATE app_user SET {assignments}, updated_at = %s WHERE id = %s RETURNING *",
                    params,
                ).fetchone()
        except errors.UniqueViolation:
            raise UniqueConstraintViolation("username already exists", {"field": "username"})
        except errors.InvalidTextRepresentation:
            return None
        return _user_from_row(row) if row else None

    def delete_user(self, user_id: str) -> bool:
        try:
            with self._connect("delete_user") as conn:
                result = conn.execute("DELETE FROM app_user WHERE id = %s", (user_id,))
                return result.rowcount > 0
        except errors.ForeignKeyViolation:
            raise ReferentialIntegrityViolation(
                "user still owns sessions", {"user_id": user_id}
            )
        except errors.InvalidTextRepresentation:
            return False

    def count_user_sessions(self, user_id: str) -> int:
        try:
            with self._connect("count_user_sessions") as conn:
                row = conn.execute(
                    "SELECT count(*) AS total FROM auth_session WHERE user_id = %s",
                    (user_id,),
                ).fetchone()
        except errors.InvalidTextRepresentation:
            return 0
        return int(row["total"]) if row else 0

    # sessions
    def create_session(
        self, user_id: str, token: str, expires_at: datetime
    ) -> Session:
        sess = Session.new(user_id, token, expires_at)
        try:
            with self._connect("create_session") as conn:
                conn.execute(
                    """
                    INSERT INTO auth_session (id, user_id, token, expires_at, created_at)
                    VALUES (%s, %s, %s, %s, %s)
                    """,
                    (sess.id, sess.user_id, sess.token, sess.expires_at, sess.created_at),
                )
        except errors.UniqueViolation:
            raise UniqueConstraintViolation("session token already exists", {"field": "token"})
        except errors.ForeignKeyViolation:
            raise ReferentialIntegrityViolation("session user missing", {"user_id": user_id})
        return sess

    def fetch_session_with_user(self, token: str) -> Optional[Tuple[Session, User]]:
        with self._connect("fetch_session_with_user") as conn:
            row = conn.execute(
                """
                SELECT s.id AS s_id, s.user_id AS s_user_id, s.token AS s_token,
                       s.expires_at AS s_expires_at, s.created_at AS s_created_at,
                       u.id AS u_id, u.username AS u_username, u.password_hash AS u_password_hash,
                       u.name AS u_name, u.email AS u_email, u.role AS u_role,
                       u.active AS u_active, u.created_at AS u_created_at, u.updated_at AS u_updated_at
                FROM auth_session s
                JOIN app_user u ON u.id = s.user_id
                WHERE s.token = %s
                """,
                (token,),
            ).fetchone()
        if not row:
            return None
        return _session_from_row(row, "s_"), _user_from_row(row, "u_")

    def renew_session(self, session_id: str, expires_at: datetime) -> bool:
        # A plain UPDATE cannot resurrect a row deleted by a concurrent logout or sweep
        with self._connect("renew_session") as conn:
            result = conn.execute(
                "UPDATE auth_session SET expires_at = %s WHERE id = %s",
                (expires_at, session_id),
            )
            return result.rowcount > 0

    def delete_session_by_token(self, token: str) -> int:
        with self._connect("delete_session_by_token") as conn:
            result = conn.execute("DELETE FROM auth_session WHERE token = %s", (token,))
            return result.rowcount

    def sweep_expired_sessions(self, now: datetime) -> int:
        with self._connect("sweep_expired_sessions") as conn:
            result = conn.execute(
                "DELETE FROM auth_session WHERE expires_at < %s", (now,)
            )
            return result.rowcount
