from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Role(str, Enum):
    """Closed set of access levels a user can hold."""

    ADMIN = "ADMIN"
    DIRETOR = "DIRETOR"
    ANALISTA = "ANALISTA"
    INSPETOR = "INSPETOR"


@dataclass
class User:
    id: str
    username: str
    password_hash: str
    name: str
    role: Role = Role.INSPETOR
    email: Optional[str] = None
    active: bool = True
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    @property
    def is_admin(self) -> bool:
        return self.role is Role.ADMIN


@dataclass
class Session:
    id: str
    user_id: str
    token: str
    expires_at: datetime
    created_at: datetime = field(default_factory=utc_now)

    @classmethod
    def new(
        cls,
        user_id: str,
        token: str,
        expires_at: datetime | None = None,
        *,
        ttl_minutes: int = 15,
        now: datetime | None = None,
    ) -> "Session":
        created = now or utc_now()
        return cls(
            id=str(uuid.uuid4()),
            user_id=user_id,
            token=token,
            expires_at=expires_at or created + timedelta(minutes=ttl_minutes),
            created_at=created,
        )

    def is_live(self, now: datetime) -> bool:
        return self.expires_at > now
