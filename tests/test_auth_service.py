"""Unit tests for login/logout orchestration.

Tests for:
- Password hashing helpers
- Login validation order and messages per area
- Session creation on success
- Store failures during login and logout
"""

from datetime import timedelta

import pytest

from sessiongate.service import messages
from sessiongate.service.auth import AuthService, hash_password, verify_password
from sessiongate.service.outcome import Area, AuthRequest, Continue, MessageKind
from sessiongate.storage.errors import StoreUnavailable, UniqueConstraintViolation
from sessiongate.storage.models import Role

# Matches the make_user fixture default
PASSWORD = "senha-forte-123"


class TestPasswordHashing:
    def test_hash_is_argon2id_and_salted(self):
        first = hash_password("segredo")
        second = hash_password("segredo")

        assert first.startswith("$argon2id$")
        assert first != second

    def test_verify(self):
        digest = hash_password("segredo")

        assert verify_password("segredo", digest) is True
        assert verify_password("errado", digest) is False

    def test_verify_with_garbage_hash(self):
        assert verify_password("segredo", "not-a-hash") is False


class TestLoginValidation:
    @pytest.mark.parametrize(
        "username,password",
        [(None, "x"), ("x", None), ("", "x"), ("x", "")],
    )
    def test_missing_fields(self, auth_service, username, password):
        result = auth_service.login(username, password)

        assert not result.ok
        assert result.redirect.location == "/auth/login"
        assert result.redirect.kind is MessageKind.ERROR
        assert result.redirect.message == messages.MISSING_FIELDS

    def test_blank_username(self, auth_service):
        result = auth_service.login("   ", "x")

        assert result.redirect.message == messages.BLANK_USERNAME

    def test_blank_password(self, auth_service):
        result = auth_service.login("maria", "   ")

        assert result.redirect.message == messages.BLANK_PASSWORD

    def test_unknown_user(self, auth_service):
        result = auth_service.login("ninguem", "x")

        assert result.redirect.message == messages.USER_NOT_FOUND

    def test_username_is_trimmed_but_exact(self, auth_service, make_user):
        make_user("maria")

        assert auth_service.login("  maria  ", PASSWORD).ok
        assert auth_service.login("MARIA", PASSWORD).redirect.message == messages.USER_NOT_FOUND

    def test_inactive_user(self, auth_service, make_user):
        make_user("maria", active=False)

        result = auth_service.login("maria", PASSWORD)
        assert result.redirect.message == messages.USER_INACTIVE

    def test_wrong_password(self, auth_service, make_user):
        make_user("maria")

        result = auth_service.login("maria", "errada")
        assert result.redirect.message == messages.WRONG_PASSWORD
        assert result.token is None

    def test_admin_area_rejects_non_admin_before_password(self, memory_store, codec, clock, make_user):
        make_user("maria", role=Role.DIRETOR)
        checked = []

        def verify(plain, digest):
            checked.append(plain)
            return True

        service = AuthService(memory_store, codec, verify=verify, clock=clock)
        result = service.login("maria", "qualquer", area=Area.ADMIN)

        assert result.redirect.location == "/admin/auth/login"
        assert result.redirect.message == messages.ADMIN_ONLY
        assert checked == []

    def test_general_area_accepts_any_role(self, auth_service, make_user):
        make_user("maria", role=Role.INSPETOR)

        assert auth_service.login("maria", PASSWORD, area=Area.GENERAL).ok


class TestLoginSuccess:
    def test_creates_session_and_returns_cookie(self, auth_service, memory_store, codec, clock, make_user):
        user = make_user("maria", name="Maria Silva")

        result = auth_service.login("maria", PASSWORD)

        assert result.ok
        assert result.user.id == user.id
        assert result.max_age == 15 * 60
        assert result.redirect.location == "/dashboard"
        assert result.redirect.kind is MessageKind.SUCCESS
        assert result.redirect.message == "Login realizado com sucesso! Bem-vindo, Maria Silva"
        session = memory_store.fetch_session_with_user(result.token)[0]
        assert session.user_id == user.id
        assert session.expires_at == clock() + timedelta(minutes=15)
        assert codec.verify(result.token).user_id == user.id

    def test_admin_login_lands_on_admin(self, auth_service, make_user):
        make_user("root", role=Role.ADMIN)

        result = auth_service.login("root", PASSWORD, area=Area.ADMIN)
        assert result.redirect.location == "/admin"

    def test_each_login_gets_its_own_session(self, auth_service, memory_store, make_user):
        user = make_user("maria")

        first = auth_service.login("maria", PASSWORD)
        second = auth_service.login("maria", PASSWORD)

        assert first.token != second.token
        assert memory_store.count_user_sessions(user.id) == 2

    def test_login_token_passes_guard(self, auth_service, guard, make_user):
        make_user("maria")
        result = auth_service.login("maria", PASSWORD)

        outcome = guard.authenticate(AuthRequest(path="/dashboard", cookie_token=result.token))
        assert isinstance(outcome, Continue)


class TestLoginStoreErrors:
    def test_store_unavailable_is_generic_error(self, memory_store, codec, clock, make_user, monkeypatch):
        make_user("maria")

        def boom(*args, **kwargs):
            raise StoreUnavailable("down", operation="create_session")

        monkeypatch.setattr(memory_store, "create_session", boom)
        service = AuthService(memory_store, codec, clock=clock)
        result = service.login("maria", PASSWORD)

        assert not result.ok
        assert result.redirect.message == messages.LOGIN_FAILED

    def test_token_collision_is_generic_error(self, memory_store, codec, clock, make_user, monkeypatch):
        make_user("maria")

        def collide(*args, **kwargs):
            raise UniqueConstraintViolation("session token already exists", {"field": "token"})

        monkeypatch.setattr(memory_store, "create_session", collide)
        result = AuthService(memory_store, codec, clock=clock).login("maria", PASSWORD)

        assert result.redirect.message == messages.LOGIN_FAILED


class TestLogout:
    def test_logout_deletes_session(self, auth_service, memory_store, make_user):
        make_user("maria")
        token = auth_service.login("maria", PASSWORD).token

        redirect = auth_service.logout(token)

        assert memory_store.fetch_session_with_user(token) is None
        assert redirect.location == "/auth/login"
        assert redirect.kind is MessageKind.INFO
        assert redirect.message == messages.LOGOUT_DONE
        assert redirect.clear_credential is True

    def test_logout_twice_without_credential(self, auth_service, make_user):
        make_user("maria")
        token = auth_service.login("maria", PASSWORD).token

        first = auth_service.logout(token)
        second = auth_service.logout(None)

        assert first == second
        assert second.kind is MessageKind.INFO

    def test_admin_logout_destination(self, auth_service):
        assert auth_service.logout(None, area=Area.ADMIN).location == "/admin/auth/login"

    def test_logout_swallows_store_errors(self, memory_store, codec, clock, monkeypatch):
        def boom(token):
            raise StoreUnavailable("down")

        monkeypatch.setattr(memory_store, "delete_session_by_token", boom)
        redirect = AuthService(memory_store, codec, clock=clock).logout("tok")

        assert redirect.kind is MessageKind.INFO
        assert redirect.clear_credential is True


def test_sweep_uses_service_clock(auth_service, memory_store, clock, make_user):
    user = make_user("maria")
    memory_store.create_session(user.id, "old", clock() - timedelta(minutes=1))
    memory_store.create_session(user.id, "new", clock() + timedelta(minutes=1))

    assert auth_service.sweep_expired_sessions() == 1
    assert memory_store.fetch_session_with_user("new") is not None


def test_idle_session_expires_after_window(auth_service, guard, memory_store, clock, make_user):
    make_user("maria")
    token = auth_service.login("maria", PASSWORD).token

    clock.advance(minutes=16)
    outcome = guard.authenticate(AuthRequest(path="/dashboard", cookie_token=token))

    assert outcome.location == "/auth/login"
    assert outcome.kind is MessageKind.WARNING
    assert outcome.message == messages.SESSION_EXPIRED
    assert outcome.clear_credential is True
    assert memory_store.fetch_session_with_user(token) is None
