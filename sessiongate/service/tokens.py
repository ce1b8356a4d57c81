from __future__ import annotations

import base64
import hashlib
import hmac
import json
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Callable, Optional

from sessiongate.config import Settings
from sessiongate.logging import get_logger
from sessiongate.storage.models import utc_now

logger = get_logger(__name__)


class TokenStatus(str, Enum):
    VALID = "valid"
    EXPIRED = "expired"
    MALFORMED = "malformed"


@dataclass(frozen=True)
class TokenCheck:
    status: TokenStatus
    user_id: Optional[str] = None
    expires_at: Optional[datetime] = None

    @property
    def valid(self) -> bool:
        return self.status is TokenStatus.VALID


_MALFORMED = TokenCheck(TokenStatus.MALFORMED)


class CredentialCodec:
    """Issues and verifies compact HS256 tokens bound to a user id.

    The codec is pure: its only inputs are the token, the signing key and the
    clock. Whether the token still maps to a live session is the guard's job.
    """

    def __init__(
        self,
        secret: str,
        *,
        issuer: str = "sessiongate",
        audience: str = "sessiongate-web",
        ttl_minutes: int = 15,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        if not secret:
            raise ValueError("signing secret is required")
        self._key = secret.encode()
        self.issuer = issuer
        self.audience = audience
        self.ttl = timedelta(minutes=ttl_minutes)
        self._clock = clock

    @classmethod
    def from_settings(
        cls, settings: Settings, *, clock: Callable[[], datetime] = utc_now
    ) -> "CredentialCodec":
        return cls(
            settings.jwt_secret,
            issuer=settings.jwt_issuer,
            audience=settings.jwt_audience,
            ttl_minutes=settings.token_ttl_minutes,
            clock=clock,
        )

    def issue(self, user_id: str) -> str:
        now = self._clock()
        payload = {
            "iss": self.issuer,
            "aud": self.audience,
            "sub": user_id,
            "iat": int(now.timestamp()),
            "exp": int((now + self.ttl).timestamp()),
            # Unique per issuance so two logins in the same second never collide
            "jti": uuid.uuid4().hex,
        }
        return self._encode_jwt(payload)

    def verify(self, token: str) -> TokenCheck:
        payload = self._decode_jwt(token)
        if payload is None:
            return _MALFORMED
        if payload.get("iss") != self.issuer:
            return _MALFORMED
        aud = payload.get("aud")
        if isinstance(aud, list):
            valid_aud = self.audience in aud
        else:
            valid_aud = aud == self.audience
        if not valid_aud:
            return _MALFORMED
        sub = payload.get("sub")
        if not sub or not isinstance(sub, str):
            return _MALFORMED
        try:
            exp_ts = float(payload["exp"])
        except (KeyError, TypeError, ValueError):
            return _MALFORMED
        if exp_ts <= self._clock().timestamp():
            return TokenCheck(TokenStatus.EXPIRED, user_id=sub)
        expires_at = datetime.fromtimestamp(exp_ts, tz=self._clock().tzinfo)
        return TokenCheck(TokenStatus.VALID, user_id=sub, expires_at=expires_at)

    def _encode_segment(self, data: bytes) -> str:
        return base64.urlsafe_b64encode(data).decode("utf-8").rstrip("=")

    def _decode_segment(self, segment: str) -> bytes:
        padding = "=" * ((4 - len(segment) % 4) % 4)
        return base64.urlsafe_b64decode(segment + padding)

    def _sign(self, signing_input: str) -> str:
        return self._encode_segment(
            hmac.new(self._key, signing_input.encode(), hashlib.sha256).digest()
        )

    def _encode_jwt(self, payload: dict[str, Any]) -> str:
        header = {"alg": "HS256", "typ": "JWT"}
        header_enc = self._encode_segment(
            json.dumps(header, separators=(",", ":")).encode()
        )
        payload_enc = self._encode_segment(
            json.dumps(payload, separators=(",", ":")).encode()
        )
        signing_input = f"{header_enc}.{payload_enc}"
        return f"{signing_input}.{self._sign(signing_input)}"

    def _decode_jwt(self, token: str) -> Optional[dict[str, Any]]:
        if not token or not token.isascii():
            return None
        try:
            header_b64, payload_b64, sig_b64 = token.split(".")
        except ValueError:
            return None

        # Reject anything but HS256 before touching the signature
        try:
            header = json.loads(self._decode_segment(header_b64))
        except (ValueError, TypeError):
            logger.warning("jwt_header_decode_failed")
            return None
        if not isinstance(header, dict) or header.get("alg") != "HS256":
            logger.warning("jwt_invalid_algorithm")
            return None

        expected_sig = self._sign(f"{header_b64}.{payload_b64}")
        if not hmac.compare_digest(expected_sig, sig_b64):
            return None
        try:
            payload = json.loads(self._decode_segment(payload_b64))
        except (ValueError, TypeError) as exc:
            logger.warning("jwt_payload_decode_failed", error=str(exc))
            return None
        if not isinstance(payload, dict):
            return None
        return payload
