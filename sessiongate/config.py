from __future__ import annotations

import os
from typing import Any

from dotenv import dotenv_values
from pydantic import BaseModel, ConfigDict, Field, field_validator

from sessiongate.logging import get_logger

logger = get_logger(__name__)

_MIN_SECRET_LENGTH = 16


def env_field(default: Any, env: str, **kwargs):
    extra = kwargs.pop("json_schema_extra", {}) or {}
    extra = {**extra, "env": env}
    return Field(default, json_schema_extra=extra, **kwargs)


class Settings(BaseModel):
    """Runtime settings for the session gate."""

    jwt_secret: str | None = env_field(
        None,
        "JWT_SECRET",
        validate_default=True,
        description="HMAC key for session tokens; the process refuses to start without it",
    )
    jwt_issuer: str = env_field("sessiongate", "JWT_ISSUER")
    jwt_audience: str = env_field("sessiongate-web", "JWT_AUDIENCE")
    token_ttl_minutes: int = env_field(
        15,
        "TOKEN_TTL_MINUTES",
        description="Lifetime of a signed token from issuance",
    )
    session_ttl_minutes: int = env_field(
        15,
        "SESSION_TTL_MINUTES",
        description="Sliding session window renewed on every authenticated request",
    )
    tls_enabled: bool = env_field(
        False,
        "TLS_ENABLED",
        description="Deployment is served over HTTPS; marks the token cookie Secure",
    )
    cookie_name: str = env_field("token", "TOKEN_COOKIE_NAME")
    admin_path_prefix: str = env_field("/admin", "ADMIN_PATH_PREFIX")
    database_url: str = env_field(
        "postgresql://localhost:5432/sessiongate", "DATABASE_URL"
    )
    use_memory_store: bool = env_field(False, "USE_MEMORY_STORE")
    session_sweep_interval_seconds: int = env_field(
        300,
        "SESSION_SWEEP_INTERVAL_SECONDS",
        description="Interval between background deletions of expired sessions; 0 disables",
    )
    test_mode: bool = env_field(
        False,
        "TEST_MODE",
        description="Allows runtime resets between tests",
    )

    model_config = ConfigDict(extra="ignore")

    @classmethod
    def from_env(cls) -> "Settings":
        env_file_values = dotenv_values(".env")
        merged: dict[str, str] = {}
        for name, field in cls.model_fields.items():
            extra = field.json_schema_extra or {}
            env_key = extra.get("env") if isinstance(extra, dict) else None
            env_name = env_key or name.upper()
            if env_name in os.environ:
                merged[name] = os.environ[env_name]
            elif env_name in env_file_values:
                merged[name] = env_file_values[env_name]
        return cls(**merged)

    @field_validator("jwt_secret")
    @classmethod
    def _require_jwt_secret(cls, value: str | None) -> str:
        if not value:
            logger.error("jwt_secret_missing")
            raise ValueError("JWT_SECRET must be set; refusing to sign tokens with a default key")
        if len(value) < _MIN_SECRET_LENGTH:
            raise ValueError(
                f"JWT_SECRET must be at least {_MIN_SECRET_LENGTH} characters"
            )
        return value

    @field_validator("token_ttl_minutes", "session_ttl_minutes")
    @classmethod
    def _positive_ttl(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("TTL must be a positive number of minutes")
        return value

    @field_validator("admin_path_prefix")
    @classmethod
    def _normalize_admin_prefix(cls, value: str) -> str:
        value = "/" + value.strip().strip("/")
        if value == "/":
            raise ValueError("ADMIN_PATH_PREFIX cannot be the site root")
        return value

    @property
    def session_max_age_seconds(self) -> int:
        return self.session_ttl_minutes * 60


def get_settings() -> Settings:
    global _settings_cache
    if _settings_cache is None:
        _settings_cache = Settings.from_env()
    return _settings_cache


_settings_cache: Settings | None = None


def reset_settings_cache() -> None:
    """Clear cached settings so future calls re-read the environment."""

    global _settings_cache
    _settings_cache = None
