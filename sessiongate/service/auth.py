from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Protocol, Tuple

from argon2 import PasswordHasher, Type
from argon2.exceptions import InvalidHash, VerificationError

from sessiongate.logging import get_logger, token_prefix
from sessiongate.service import messages
from sessiongate.service.outcome import Area, AreaPaths, MessageKind, Redirect
from sessiongate.service.tokens import CredentialCodec
from sessiongate.storage.errors import ConstraintViolation, StoreUnavailable
from sessiongate.storage.models import Role, Session, User, utc_now

logger = get_logger(__name__)

_pwd_hasher = PasswordHasher(type=Type.ID)


class AuthStore(Protocol):
    def create_user(
        self,
        username: str,
        password_hash: str,
        name: str,
        *,
        role: Role = Role.INSPETOR,
        email: Optional[str] = None,
        active: bool = True,
    ) -> User: ...

    def get_user(self, user_id: str) -> Optional[User]: ...

    def get_user_by_username(self, username: str) -> Optional[User]: ...

    def list_users(self, *, active: Optional[bool] = None) -> List[User]: ...

    def update_user(self, user_id: str, **fields) -> Optional[User]: ...

    def delete_user(self, user_id: str) -> bool: ...

    def count_user_sessions(self, user_id: str) -> int: ...

    def create_session(
        self, user_id: str, token: str, expires_at: datetime
    ) -> Session: ...

    def fetch_session_with_user(self, token: str) -> Optional[Tuple[Session, User]]: ...

    def renew_session(self, session_id: str, expires_at: datetime) -> bool: ...

    def delete_session_by_token(self, token: str) -> int: ...

    def sweep_expired_sessions(self, now: datetime) -> int: ...

    def verify_connection(self) -> None: ...


def hash_password(plain: str) -> str:
    return _pwd_hasher.hash(plain)


def verify_password(plain: str, password_hash: str) -> bool:
    try:
        return _pwd_hasher.verify(password_hash, plain)
    except (InvalidHash, VerificationError):
        return False


@dataclass(frozen=True)
class LoginResult:
    """Redirect to follow plus, on success, the cookie the browser must store."""

    redirect: Redirect
    token: Optional[str] = None
    max_age: Optional[int] = None
    user: Optional[User] = None

    @property
    def ok(self) -> bool:
        return self.token is not None


class AuthService:
    """Login and logout orchestration over the session store."""

    def __init__(
        self,
        store: AuthStore,
        codec: CredentialCodec,
        *,
        session_ttl_minutes: int = 15,
        paths: Optional[AreaPaths] = None,
        verify: Callable[[str, str], bool] = verify_password,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.store = store
        self.codec = codec
        self.session_window = timedelta(minutes=session_ttl_minutes)
        self.paths = paths or AreaPaths()
        self._verify = verify
        self._clock = clock

    def _reject(
        self,
        paths: AreaPaths,
        area: Area,
        message: str,
        *,
        reason: str,
        username: Optional[str] = None,
    ) -> LoginResult:
        logger.info("login_failed", area=area.value, reason=reason, username=username)
        return LoginResult(
            redirect=Redirect(paths.login(area), MessageKind.ERROR, message)
        )

    def login(
        self,
        username: Optional[str],
        password: Optional[str],
        *,
        area: Area = Area.GENERAL,
        paths: Optional[AreaPaths] = None,
    ) -> LoginResult:
        paths = paths or self.paths
        if not username or not password:
            return self._reject(paths, area, messages.MISSING_FIELDS, reason="missing_fields")
        username = username.strip()
        if not username:
            return self._reject(paths, area, messages.BLANK_USERNAME, reason="blank_username")
        if not password.strip():
            return self._reject(paths, area, messages.BLANK_PASSWORD, reason="blank_password")

        try:
            return self._login(username, password, area, paths)
        except (StoreUnavailable, ConstraintViolation) as exc:
            logger.error(
                "login_error",
                area=area.value,
                username=username,
                error_type=type(exc).__name__,
                error=str(exc),
            )
            return LoginResult(
                redirect=Redirect(
                    paths.login(area), MessageKind.ERROR, messages.LOGIN_FAILED
                )
            )

    def _login(
        self, username: str, password: str, area: Area, paths: AreaPaths
    ) -> LoginResult:
        user = self.store.get_user_by_username(username)
        if not user:
            return self._reject(paths, area, messages.USER_NOT_FOUND, reason="user_not_found", username=username)
        if not user.active:
            return self._reject(paths, area, messages.USER_INACTIVE, reason="user_inactive", username=username)
        # Admin login refuses non-admins before the password is even checked
        if area is Area.ADMIN and not user.is_admin:
            return self._reject(paths, area, messages.ADMIN_ONLY, reason="not_admin", username=username)
        if not self._verify(password, user.password_hash):
            return self._reject(paths, area, messages.WRONG_PASSWORD, reason="wrong_password", username=username)

        token = self.codec.issue(user.id)
        expires_at = self._clock() + self.session_window
        session = self.store.create_session(user.id, token, expires_at)
        logger.info(
            "login_succeeded",
            area=area.value,
            user_id=user.id,
            role=user.role.value,
            session_id=session.id,
        )
        return LoginResult(
            redirect=Redirect(
                paths.landing(area),
                MessageKind.SUCCESS,
                messages.welcome(user.name),
            ),
            token=token,
            max_age=int(self.session_window.total_seconds()),
            user=user,
        )

    def logout(
        self,
        token: Optional[str],
        *,
        area: Area = Area.GENERAL,
        paths: Optional[AreaPaths] = None,
    ) -> Redirect:
        paths = paths or self.paths
        if token:
            try:
                deleted = self.store.delete_session_by_token(token)
                logger.info("logout", area=area.value, token_prefix=token_prefix(token), deleted=deleted)
            except Exception as exc:
                logger.warning(
                    "logout_session_delete_failed",
                    token_prefix=token_prefix(token),
                    error_type=type(exc).__name__,
                    error=str(exc),
                )
        return Redirect(
            paths.login(area),
            MessageKind.INFO,
            messages.LOGOUT_DONE,
            clear_credential=True,
        )

    def sweep_expired_sessions(self) -> int:
        removed = self.store.sweep_expired_sessions(self._clock())
        logger.info("expired_sessions_swept", removed=removed)
        return removed
