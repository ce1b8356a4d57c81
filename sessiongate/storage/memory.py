from __future__ import annotations

import threading
import uuid
from dataclasses import replace
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from sessiongate.logging import get_logger, token_prefix
from sessiongate.storage.errors import (
    ReferentialIntegrityViolation,
    UniqueConstraintViolation,
)
from sessiongate.storage.models import Role, Session, User, utc_now

_UPDATABLE_USER_FIELDS = {"username", "password_hash", "name", "email", "role", "active"}


class MemoryStore:
    """In-process user and session store for tests and local development.

    Mirrors the constraints of the Postgres schema: unique usernames, unique
    session tokens, and sessions that block deletion of their owning user.
    Every read hands out a copy so callers never mutate stored rows.
    """

    def __init__(self) -> None:
        self.logger = get_logger(__name__)
        self.users: Dict[str, User] = {}
        self.sessions: Dict[str, Session] = {}
        self._user_ids_by_username: Dict[str, str] = {}
        self._session_ids_by_token: Dict[str, str] = {}
        # RLock so helpers can be called while the lock is already held
        self._data_lock = threading.RLock()

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
        with self._data_lock:
            if username in self._user_ids_by_username:
                raise UniqueConstraintViolation(
                    "username already exists", {"field": "username"}
                )
            now = utc_now()
            user = User(
                id=str(uuid.uuid4()),
                username=username,
                password_hash=password_hash,
                name=name,
                role=Role(role),
                email=email,
                active=active,
                created_at=now,
                updated_at=now,
            )
            self.users[user.id] = user
            self._user_ids_by_username[username] = user.id
            return replace(user)

    def get_user(self, user_id: str) -> Optional[User]:
        with self._data_lock:
            user = self.users.get(user_id)
            return replace(user) if user else None

    def get_user_by_username(self, username: str) -> Optional[User]:
        with self._data_lock:
            user_id = self._user_ids_by_username.get(username)
            if not user_id:
                return None
            return replace(self.users[user_id])

    def list_users(self, *, active: Optional[bool] = None) -> List[User]:
        with self._data_lock:
            users = [
                replace(u)
                for u in self.users.values()
                if active is None or u.active == active
            ]
        return sorted(users, key=lambda u: u.username)

    def update_user(self, user_id: str, **fields: Any) -> Optional[User]:
        unknown = set(fields) - _UPDATABLE_USER_FIELDS
        if unknown:
            raise ValueError(f"unknown user fields: {', '.join(sorted(unknown))}")
        with self._data_lock:
            user = self.users.get(user_id)
            if not user:
                return None
            new_username = fields.get("username")
            if new_username and new_username != user.username:
                if new_username in self._user_ids_by_username:
                    raise UniqueConstraintViolation(
                        "username already exists", {"field": "username"}
                    )
                self._user_ids_by_username.pop(user.username, None)
                self._user_ids_by_username[new_username] = user.id
            if "role" in fields:
                fields["role"] = Role(fields["role"])
            for key, value in fields.items():
                setattr(user, key, value)
            user.updated_at = utc_now()
            return replace(user)

    def delete_user(self, user_id: str) -> bool:
        with self._data_lock:
            user = self.users.get(user_id)
            if not user:
                return False
            if self.count_user_sessions(user_id):
                raise ReferentialIntegrityViolation(
                    "user still owns sessions", {"user_id": user_id}
                )
            self.users.pop(user_id, None)
            self._user_ids_by_username.pop(user.username, None)
            return True

    def count_user_sessions(self, user_id: str) -> int:
        with self._data_lock:
            return sum(1 for s in self.sessions.values() if s.user_id == user_id)

    # sessions
    def create_session(
        self, user_id: str, token: str, expires_at: datetime
    ) -> Session:
        with self._data_lock:
            if user_id not in self.users:
                raise ReferentialIntegrityViolation(
                    "session user missing", {"user_id": user_id}
                )
            if token in self._session_ids_by_token:
                raise UniqueConstraintViolation(
                    "session token already exists", {"field": "token"}
                )
            sess = Session.new(user_id, token, expires_at)
            self.sessions[sess.id] = sess
            self._session_ids_by_token[token] = sess.id
            return replace(sess)

    def fetch_session_with_user(self, token: str) -> Optional[Tuple[Session, User]]:
        with self._data_lock:
            session_id = self._session_ids_by_token.get(token)
            if not session_id:
                return None
            sess = self.sessions[session_id]
            user = self.users.get(sess.user_id)
            if not user:
                return None
            return replace(sess), replace(user)

    def renew_session(self, session_id: str, expires_at: datetime) -> bool:
        with self._data_lock:
            sess = self.sessions.get(session_id)
            if not sess:
                # Deleted concurrently; never resurrect
                return False
            sess.expires_at = expires_at
            return True

    def delete_session_by_token(self, token: str) -> int:
        with self._data_lock:
            session_id = self._session_ids_by_token.pop(token, None)
            if not session_id:
                return 0
            self.sessions.pop(session_id, None)
            self.logger.debug("session_deleted", token_prefix=token_prefix(token))
            return 1

    def sweep_expired_sessions(self, now: datetime) -> int:
        with self._data_lock:
            expired = [s for s in self.sessions.values() if s.expires_at < now]
            for sess in expired:
                self.sessions.pop(sess.id, None)
                self._session_ids_by_token.pop(sess.token, None)
            return len(expired)

    def verify_connection(self) -> None:
        return None
