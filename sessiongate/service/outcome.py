"""Values passed between the request pipeline steps.

Every step of the pipeline (guard, role gates, login-page check) maps an
``AuthRequest`` to an ``Outcome``: either ``Continue`` carrying the resolved
identity, or ``Redirect`` describing where the browser goes next and which
one-shot flash message it carries. The HTTP layer is the only place that
turns these values into responses.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Optional, Union
from urllib.parse import urlencode

from sessiongate.storage.models import Role, User


class Area(str, Enum):
    GENERAL = "general"
    ADMIN = "admin"


class MessageKind(str, Enum):
    """Query parameter names understood by the page templates."""

    ERROR = "error"
    WARNING = "warning"
    SUCCESS = "success"
    INFO = "info"
    EXPIRED = "expired"


class AuthFailure(str, Enum):
    MISSING_CREDENTIAL = "missing_credential"
    MALFORMED_CREDENTIAL = "malformed_credential"
    CREDENTIAL_EXPIRED = "credential_expired"
    SESSION_NOT_FOUND = "session_not_found"
    SESSION_EXPIRED = "session_expired"
    USER_INACTIVE = "user_inactive"
    ROLE_DENIED = "role_denied"
    ACCESS_DENIED = "access_denied"


GENERAL_LOGIN_PATH = "/auth/login"
DASHBOARD_PATH = "/dashboard"


@dataclass(frozen=True)
class AreaPaths:
    """Login and landing destinations for both areas under one admin prefix.

    ``mount`` is the prefix the app is served under (the ASGI ``root_path``).
    It is stripped before the area is decided and prepended to every
    destination, so classification and redirects agree under any mount.
    """

    admin_prefix: str = "/admin"
    mount: str = ""

    def under(self, mount: Optional[str]) -> "AreaPaths":
        return replace(self, mount=(mount or "").rstrip("/"))

    def url(self, path: str) -> str:
        return f"{self.mount}{path}"

    def _route_path(self, path: str) -> str:
        if self.mount and (path == self.mount or path.startswith(self.mount + "/")):
            return path[len(self.mount):] or "/"
        return path

    def area_for(self, path: str) -> Area:
        path = self._route_path(path)
        # Segment match: "/administrativo" is not the admin area
        if path == self.admin_prefix or path.startswith(self.admin_prefix + "/"):
            return Area.ADMIN
        return Area.GENERAL

    def login(self, area: Area) -> str:
        if area is Area.ADMIN:
            return self.url(f"{self.admin_prefix}/auth/login")
        return self.url(GENERAL_LOGIN_PATH)

    def landing(self, area: Area) -> str:
        if area is Area.ADMIN:
            return self.admin_base
        return self.dashboard

    @property
    def admin_base(self) -> str:
        return self.url(self.admin_prefix)

    @property
    def dashboard(self) -> str:
        return self.url(DASHBOARD_PATH)


@dataclass(frozen=True)
class AuthRequest:
    """Framework-neutral view of the parts of a request the pipeline reads.

    ``path`` is the full path as the client sent it, mount prefix included.
    """

    path: str
    cookie_token: Optional[str] = None
    authorization: Optional[str] = None

    def credential(self) -> Optional[str]:
        if self.cookie_token:
            return self.cookie_token
        if self.authorization:
            scheme, _, value = self.authorization.partition(" ")
            if scheme.lower() == "bearer" and value.strip():
                return value.strip()
        return None


@dataclass(frozen=True)
class Identity:
    user: User
    session_id: str
    token: str
    expires_at: datetime
    is_admin_area: bool = False

    @property
    def role(self) -> Role:
        return self.user.role


@dataclass(frozen=True)
class Continue:
    identity: Optional[Identity] = None
    clear_credential: bool = False


@dataclass(frozen=True)
class Redirect:
    location: str
    kind: Optional[MessageKind] = None
    message: Optional[str] = None
    clear_credential: bool = False
    reason: Optional[AuthFailure] = None

    def url(self) -> str:
        if self.kind is None or not self.message:
            return self.location
        return f"{self.location}?{urlencode({self.kind.value: self.message})}"


Outcome = Union[Continue, Redirect]


__all__ = [
    "Area",
    "AreaPaths",
    "AuthFailure",
    "AuthRequest",
    "Continue",
    "DASHBOARD_PATH",
    "GENERAL_LOGIN_PATH",
    "Identity",
    "MessageKind",
    "Outcome",
    "Redirect",
]
