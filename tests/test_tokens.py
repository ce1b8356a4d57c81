"""Unit tests for the credential codec.

Tests for:
- Issue/verify round trip
- Expiry at the token window boundary
- Tamper detection on every byte of a token
- Issuer, audience and algorithm checks
"""

import base64
import json

import pytest

from sessiongate.config import Settings
from sessiongate.service.tokens import CredentialCodec, TokenStatus

TEST_SECRET = "unit-test-signing-key-0123456789"


def _segment(data: dict) -> str:
    raw = json.dumps(data, separators=(",", ":")).encode()
    return base64.urlsafe_b64encode(raw).decode().rstrip("=")


class TestRoundTrip:
    def test_verify_returns_issued_user_id(self, codec):
        """A freshly issued token resolves to the user it was issued for."""
        token = codec.issue("user-42")
        check = codec.verify(token)

        assert check.status is TokenStatus.VALID
        assert check.valid
        assert check.user_id == "user-42"

    def test_tokens_are_unique_per_issue(self, codec):
        """Two tokens for the same user in the same instant still differ."""
        assert codec.issue("user-42") != codec.issue("user-42")

    def test_valid_until_window_elapses(self, codec, clock):
        token = codec.issue("user-42")
        clock.advance(minutes=14, seconds=59)

        assert codec.verify(token).status is TokenStatus.VALID

    def test_expired_at_window_boundary(self, codec, clock):
        """exp <= now counts as expired."""
        token = codec.issue("user-42")
        clock.advance(minutes=15)

        check = codec.verify(token)
        assert check.status is TokenStatus.EXPIRED
        assert check.user_id == "user-42"

    def test_custom_ttl(self, clock):
        codec = CredentialCodec(TEST_SECRET, ttl_minutes=1, clock=clock)
        token = codec.issue("u")
        clock.advance(seconds=61)

        assert codec.verify(token).status is TokenStatus.EXPIRED

    def test_from_settings_uses_configured_claims(self, clock):
        settings = Settings(
            jwt_secret=TEST_SECRET,
            jwt_issuer="issuer-x",
            jwt_audience="aud-y",
            token_ttl_minutes=5,
        )
        codec = CredentialCodec.from_settings(settings, clock=clock)
        token = codec.issue("u")
        payload_b64 = token.split(".")[1]
        payload = json.loads(base64.urlsafe_b64decode(payload_b64 + "=" * (-len(payload_b64) % 4)))

        assert payload["iss"] == "issuer-x"
        assert payload["aud"] == "aud-y"
        assert payload["exp"] - payload["iat"] == 300
        assert payload["jti"]


class TestTamper:
    def test_flipping_any_character_is_malformed(self, codec):
        """No single-character change can yield a valid token for anyone."""
        token = codec.issue("user-42")
        for index, char in enumerate(token):
            replacement = "A" if char != "A" else "B"
            tampered = token[:index] + replacement + token[index + 1:]
            check = codec.verify(tampered)
            assert check.status is TokenStatus.MALFORMED, index
            assert check.user_id is None

    def test_non_ascii_byte_is_malformed(self, codec):
        token = codec.issue("user-42")
        tampered = token[:-1] + "é"

        assert codec.verify(tampered).status is TokenStatus.MALFORMED

    @pytest.mark.parametrize("token", ["", "abc", "a.b", "a.b.c.d", "...", "not a token"])
    def test_garbage_is_malformed(self, codec, token):
        assert codec.verify(token).status is TokenStatus.MALFORMED

    def test_other_secret_is_malformed(self, codec, clock):
        other = CredentialCodec("another-secret-key-abcdefgh", clock=clock)

        assert codec.verify(other.issue("user-42")).status is TokenStatus.MALFORMED

    def test_wrong_audience_is_malformed(self, codec, clock):
        other = CredentialCodec(TEST_SECRET, audience="someone-else", clock=clock)

        assert codec.verify(other.issue("user-42")).status is TokenStatus.MALFORMED

    def test_wrong_issuer_is_malformed(self, codec, clock):
        other = CredentialCodec(TEST_SECRET, issuer="someone-else", clock=clock)

        assert codec.verify(other.issue("user-42")).status is TokenStatus.MALFORMED

    def test_alg_none_rejected(self, codec, clock):
        header = _segment({"alg": "none", "typ": "JWT"})
        payload = _segment({"sub": "admin", "exp": int(clock().timestamp()) + 600})

        assert codec.verify(f"{header}.{payload}.").status is TokenStatus.MALFORMED

    def test_missing_subject_is_malformed(self, codec, clock):
        token = codec._encode_jwt(
            {
                "iss": codec.issuer,
                "aud": codec.audience,
                "exp": int(clock().timestamp()) + 600,
            }
        )

        assert codec.verify(token).status is TokenStatus.MALFORMED

    def test_missing_exp_is_malformed(self, codec):
        token = codec._encode_jwt(
            {"iss": codec.issuer, "aud": codec.audience, "sub": "u"}
        )

        assert codec.verify(token).status is TokenStatus.MALFORMED


def test_empty_secret_rejected():
    with pytest.raises(ValueError):
        CredentialCodec("")
