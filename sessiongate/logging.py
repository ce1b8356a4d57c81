"""structlog setup shared by every sessiongate module.

Log lines are JSON by default, one event name plus keyword fields. Each line
carries the correlation id of the request that produced it. Credentials and
personal data never reach the output: values under sensitive keys are
replaced whole, and tokens are only ever logged through ``token_prefix``.
"""

from __future__ import annotations

import logging
import os
import uuid
from contextvars import ContextVar
from typing import Any, Dict, Optional

import structlog

REDACTED = "[redacted]"

_SENSITIVE_KEY_PARTS = ("password", "secret", "token", "authorization", "email", "cookie")
_FINGERPRINT_SUFFIX = "_prefix"
_TOKEN_PREFIX_LENGTH = 8

correlation_id_var: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)


def get_correlation_id() -> Optional[str]:
    return correlation_id_var.get()


def set_correlation_id(correlation_id: Optional[str] = None) -> str:
    """Bind ``correlation_id`` (or a fresh UUID) to the current request context."""
    cid = correlation_id or str(uuid.uuid4())
    correlation_id_var.set(cid)
    return cid


def _add_correlation_id(
    logger: Any, method_name: str, event_dict: Dict[str, Any]
) -> Dict[str, Any]:
    cid = get_correlation_id()
    if cid:
        event_dict["correlation_id"] = cid
    return event_dict


def _is_sensitive(key: str) -> bool:
    lowered = key.lower()
    # token_prefix fields already hold a short fingerprint
    if lowered.endswith(_FINGERPRINT_SUFFIX):
        return False
    return any(part in lowered for part in _SENSITIVE_KEY_PARTS)


def _redact_pii(
    logger: Any, method_name: str, event_dict: Dict[str, Any]
) -> Dict[str, Any]:
    """Replace the whole value of every sensitive key."""
    for key, value in event_dict.items():
        if value is not None and _is_sensitive(key):
            event_dict[key] = REDACTED
    return event_dict


def _env_flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def configure_logging(
    log_level: str = "INFO",
    json_output: bool = True,
    development_mode: bool = False,
) -> None:
    """Install the processor chain.

    Args:
        log_level: Minimum level (DEBUG, INFO, WARNING, ERROR)
        json_output: Render JSON lines; otherwise a console renderer is used
        development_mode: Force the colored console renderer
    """
    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        _add_correlation_id,
        _redact_pii,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]
    if development_mode or not json_output:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))
    else:
        processors += [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, log_level.upper(), logging.INFO)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


configure_logging(
    log_level=os.getenv("LOG_LEVEL", "INFO"),
    json_output=_env_flag("LOG_JSON", True),
    development_mode=_env_flag("LOG_DEV_MODE", False),
)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def token_prefix(token: Optional[str]) -> Optional[str]:
    """Short fingerprint of a credential, safe to log and useless to replay."""
    if not token:
        return None
    return token[:_TOKEN_PREFIX_LENGTH]
