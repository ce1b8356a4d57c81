from __future__ import annotations

from typing import Callable, List, Optional, Tuple

from sessiongate.logging import get_logger
from sessiongate.service import messages
from sessiongate.service.auth import AuthStore, hash_password
from sessiongate.service.errors import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from sessiongate.storage.errors import (
    ReferentialIntegrityViolation,
    UniqueConstraintViolation,
)
from sessiongate.storage.models import Role, User

logger = get_logger(__name__)

MIN_USERNAME_LENGTH = 3
MIN_PASSWORD_LENGTH = 6


def _clean_username(username: Optional[str]) -> str:
    username = (username or "").strip()
    if not username:
        raise ValidationError(messages.USERNAME_REQUIRED, detail={"field": "username"})
    if len(username) < MIN_USERNAME_LENGTH:
        raise ValidationError(messages.USERNAME_TOO_SHORT, detail={"field": "username"})
    return username


def _check_password(password: Optional[str]) -> str:
    if not password:
        raise ValidationError(messages.PASSWORD_REQUIRED, detail={"field": "password"})
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(messages.PASSWORD_TOO_SHORT, detail={"field": "password"})
    return password


def _clean_name(name: Optional[str]) -> str:
    name = (name or "").strip()
    if not name:
        raise ValidationError(messages.NAME_REQUIRED, detail={"field": "name"})
    return name


def _parse_role(role) -> Role:
    try:
        return Role(role)
    except ValueError:
        raise ValidationError(messages.INVALID_ROLE, detail={"field": "role"})


def _clean_email(email: Optional[str]) -> Optional[str]:
    email = (email or "").strip()
    return email or None


class UserService:
    """Administrative user management behind the MANAGE_USERS gate."""

    def __init__(
        self,
        store: AuthStore,
        *,
        hasher: Callable[[str], str] = hash_password,
    ) -> None:
        self.store = store
        self._hash = hasher

    def list_users(self, *, active: Optional[bool] = None) -> List[User]:
        return self.store.list_users(active=active)

    def get_user(self, user_id: str) -> User:
        user = self.store.get_user(user_id)
        if not user:
            raise NotFoundError(messages.USER_MISSING, detail={"user_id": user_id})
        return user

    def create_user(
        self,
        username: Optional[str],
        password: Optional[str],
        name: Optional[str],
        role,
        *,
        email: Optional[str] = None,
        active: bool = True,
    ) -> User:
        username = _clean_username(username)
        password = _check_password(password)
        name = _clean_name(name)
        parsed_role = _parse_role(role)
        try:
            user = self.store.create_user(
                username,
                self._hash(password),
                name,
                role=parsed_role,
                email=_clean_email(email),
                active=active,
            )
        except UniqueConstraintViolation:
            raise ConflictError(messages.DUPLICATE_USERNAME, detail={"field": "username"})
        logger.info("user_created", user_id=user.id, role=user.role.value)
        return user

    def update_user(
        self,
        user_id: str,
        username: Optional[str],
        name: Optional[str],
        role,
        *,
        email: Optional[str] = None,
        active: bool = True,
        password: Optional[str] = None,
    ) -> User:
        fields = {
            "username": _clean_username(username),
            "name": _clean_name(name),
            "role": _parse_role(role),
            "email": _clean_email(email),
            "active": active,
        }
        # Blank password on the edit form keeps the current one
        if password:
            fields["password_hash"] = self._hash(_check_password(password))
        self.get_user(user_id)
        try:
            user = self.store.update_user(user_id, **fields)
        except UniqueConstraintViolation:
            raise ConflictError(messages.DUPLICATE_USERNAME, detail={"field": "username"})
        if not user:
            raise NotFoundError(messages.USER_MISSING, detail={"user_id": user_id})
        logger.info(
            "user_updated",
            user_id=user_id,
            role=user.role.value,
            active=user.active,
            password_changed="password_hash" in fields,
        )
        return user

    def set_active(self, user_id: str, active: bool) -> User:
        user = self.store.update_user(user_id, active=active)
        if not user:
            raise NotFoundError(messages.USER_MISSING, detail={"user_id": user_id})
        logger.info("user_active_changed", user_id=user_id, active=active)
        return user

    def delete_user(self, user_id: str, *, acting_user_id: str) -> None:
        if user_id == acting_user_id:
            raise ForbiddenError(messages.SELF_DELETE, detail={"user_id": user_id})
        self.get_user(user_id)
        if self.store.count_user_sessions(user_id):
            raise ConflictError(messages.USER_HAS_SESSIONS, detail={"user_id": user_id})
        try:
            deleted = self.store.delete_user(user_id)
        except ReferentialIntegrityViolation:
            # A login landed between the count and the delete
            raise ConflictError(messages.USER_HAS_SESSIONS, detail={"user_id": user_id})
        if not deleted:
            raise NotFoundError(messages.USER_MISSING, detail={"user_id": user_id})
        logger.info("user_deleted", user_id=user_id, acting_user_id=acting_user_id)

    def ensure_user(
        self,
        username: str,
        password: str,
        name: str,
        role,
        *,
        email: Optional[str] = None,
    ) -> Tuple[User, bool]:
        """Create ``username`` unless it exists; returns the user and whether it was created.

        An existing account is left untouched, password included.
        """
        existing = self.store.get_user_by_username(username.strip())
        if existing:
            return existing, False
        return self.create_user(username, password, name, role, email=email), True

    def promote_to_admin(self, username: str) -> User:
        user = self.store.get_user_by_username(username.strip())
        if not user:
            raise NotFoundError(messages.USER_MISSING, detail={"username": username})
        if user.is_admin:
            return user
        promoted = self.store.update_user(user.id, role=Role.ADMIN)
        if not promoted:
            raise NotFoundError(messages.USER_MISSING, detail={"username": username})
        logger.info("user_promoted", user_id=user.id, previous_role=user.role.value)
        return promoted

    def promote_all_active(self) -> List[User]:
        promoted = []
        for user in self.store.list_users(active=True):
            if user.is_admin:
                continue
            updated = self.store.update_user(user.id, role=Role.ADMIN)
            if updated:
                promoted.append(updated)
        logger.info("users_promoted", count=len(promoted))
        return promoted
