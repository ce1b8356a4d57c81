from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Dict, FrozenSet, Optional, Tuple

from sessiongate.logging import get_logger
from sessiongate.service import messages
from sessiongate.service.outcome import (
    AreaPaths,
    AuthFailure,
    AuthRequest,
    Continue,
    Identity,
    MessageKind,
    Outcome,
    Redirect,
)
from sessiongate.storage.models import Role

logger = get_logger(__name__)

ROLE_LABELS: Dict[Role, str] = {
    Role.ADMIN: "Administrador",
    Role.DIRETOR: "Diretor",
    Role.ANALISTA: "Analista",
    Role.INSPETOR: "Inspetor",
}


class Permission(str, Enum):
    READ = "read"
    CREATE = "create"
    EDIT = "edit"
    DELETE = "delete"
    MANAGE_USERS = "manage_users"


# Enumerated per operation; no role inherits another's grants
PERMISSIONS: Dict[Permission, Tuple[Role, ...]] = {
    Permission.READ: (Role.ADMIN, Role.DIRETOR, Role.ANALISTA, Role.INSPETOR),
    Permission.CREATE: (Role.ADMIN, Role.DIRETOR, Role.ANALISTA),
    Permission.EDIT: (Role.ADMIN, Role.DIRETOR),
    Permission.DELETE: (Role.ADMIN,),
    Permission.MANAGE_USERS: (Role.ADMIN,),
}


@dataclass(frozen=True)
class RoleGate:
    """Pipeline step allowing only identities whose role is in ``allowed``.

    ``allowed`` keeps its declaration order so the denial message lists the
    roles the way the gate was written.
    """

    allowed: Tuple[Role, ...]
    paths: AreaPaths = field(default_factory=AreaPaths)

    @property
    def allowed_set(self) -> FrozenSet[Role]:
        return frozenset(self.allowed)

    def with_paths(self, paths: AreaPaths) -> "RoleGate":
        return replace(self, paths=paths)

    def allows(self, role: Role) -> bool:
        return role in self.allowed_set

    def __call__(self, request: AuthRequest, identity: Optional[Identity]) -> Outcome:
        if identity is None:
            area = self.paths.area_for(request.path)
            return Redirect(
                self.paths.login(area),
                MessageKind.ERROR,
                messages.ACCESS_DENIED,
                reason=AuthFailure.ACCESS_DENIED,
            )
        if not self.allows(identity.role):
            logger.info(
                "role_denied",
                user_id=identity.user.id,
                role=identity.role.value,
                allowed=[r.value for r in self.allowed],
                path=request.path,
            )
            return Redirect(
                self.paths.dashboard,
                MessageKind.ERROR,
                messages.role_denied(ROLE_LABELS[r] for r in self.allowed),
                reason=AuthFailure.ROLE_DENIED,
            )
        return Continue(identity)


def require_roles(*allowed: Role) -> RoleGate:
    if not allowed:
        raise ValueError("a role gate needs at least one role")
    ordered: Tuple[Role, ...] = tuple(dict.fromkeys(Role(r) for r in allowed))
    return RoleGate(ordered)


def require_permission(permission: Permission) -> RoleGate:
    return require_roles(*PERMISSIONS[Permission(permission)])


require_admin = require_roles(Role.ADMIN)
require_diretor = require_roles(Role.ADMIN, Role.DIRETOR)
require_analista = require_roles(Role.ADMIN, Role.DIRETOR, Role.ANALISTA)
require_read = require_permission(Permission.READ)
require_create = require_permission(Permission.CREATE)
require_edit = require_permission(Permission.EDIT)
require_delete = require_permission(Permission.DELETE)
require_manage_users = require_permission(Permission.MANAGE_USERS)
