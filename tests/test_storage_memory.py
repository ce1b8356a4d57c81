import threading
from datetime import timedelta

import pytest

from sessiongate.storage.errors import (
    ReferentialIntegrityViolation,
    UniqueConstraintViolation,
)
from sessiongate.storage.memory import MemoryStore
from sessiongate.storage.models import Role, utc_now


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def user(store):
    return store.create_user("ana", "hash", "Ana", role=Role.ANALISTA)


class TestUsers:
    def test_duplicate_username_rejected(self, store, user):
        with pytest.raises(UniqueConstraintViolation):
            store.create_user("ana", "hash2", "Outra Ana")

    def test_username_lookup_is_exact(self, store, user):
        assert store.get_user_by_username("ana").id == user.id
        assert store.get_user_by_username("Ana") is None
        assert store.get_user_by_username(" ana") is None

    def test_reads_return_copies(self, store, user):
        fetched = store.get_user(user.id)
        fetched.name = "mutated"

        assert store.get_user(user.id).name == "Ana"

    def test_list_users_sorted_and_filtered(self, store, user):
        store.create_user("bruno", "h", "Bruno", active=False)
        store.create_user("aaron", "h", "Aaron")

        assert [u.username for u in store.list_users()] == ["aaron", "ana", "bruno"]
        assert [u.username for u in store.list_users(active=False)] == ["bruno"]
        assert [u.username for u in store.list_users(active=True)] == ["aaron", "ana"]

    def test_update_user_renames_and_reindexes(self, store, user):
        updated = store.update_user(user.id, username="ana.maria", role="DIRETOR")

        assert updated.username == "ana.maria"
        assert updated.role is Role.DIRETOR
        assert store.get_user_by_username("ana") is None
        assert store.get_user_by_username("ana.maria").id == user.id

    def test_update_user_rename_collision(self, store, user):
        store.create_user("bruno", "h", "Bruno")

        with pytest.raises(UniqueConstraintViolation):
            store.update_user(user.id, username="bruno")

    def test_update_unknown_field_rejected(self, store, user):
        with pytest.raises(ValueError):
            store.update_user(user.id, id="other")

    def test_update_missing_user_returns_none(self, store):
        assert store.update_user("missing", name="x") is None

    def test_delete_blocked_by_sessions(self, store, user):
        store.create_session(user.id, "tok", utc_now() + timedelta(minutes=15))

        with pytest.raises(ReferentialIntegrityViolation):
            store.delete_user(user.id)
        assert store.get_user(user.id) is not None

    def test_delete_user(self, store, user):
        assert store.delete_user(user.id) is True
        assert store.get_user(user.id) is None
        assert store.get_user_by_username("ana") is None
        assert store.delete_user(user.id) is False


class TestSessions:
    def test_create_and_fetch_with_user(self, store, user):
        expires = utc_now() + timedelta(minutes=15)
        session = store.create_session(user.id, "tok-1", expires)

        found = store.fetch_session_with_user("tok-1")
        assert found is not None
        fetched_session, fetched_user = found
        assert fetched_session.id == session.id
        assert fetched_session.expires_at == expires
        assert fetched_user.id == user.id
        assert store.fetch_session_with_user("other") is None

    def test_duplicate_token_rejected(self, store, user):
        expires = utc_now() + timedelta(minutes=15)
        store.create_session(user.id, "tok-1", expires)

        with pytest.raises(UniqueConstraintViolation):
            store.create_session(user.id, "tok-1", expires)

    def test_session_for_missing_user_rejected(self, store):
        with pytest.raises(ReferentialIntegrityViolation):
            store.create_session("nobody", "tok", utc_now())

    def test_renew_updates_only_expiry(self, store, user):
        session = store.create_session(user.id, "tok", utc_now())
        later = utc_now() + timedelta(minutes=30)

        assert store.renew_session(session.id, later) is True
        assert store.renew_session(session.id, later) is True
        renewed = store.fetch_session_with_user("tok")[0]
        assert renewed.expires_at == later
        assert renewed.created_at == session.created_at

    def test_renew_never_resurrects(self, store, user):
        session = store.create_session(user.id, "tok", utc_now())
        store.delete_session_by_token("tok")

        assert store.renew_session(session.id, utc_now() + timedelta(minutes=15)) is False
        assert store.fetch_session_with_user("tok") is None

    def test_delete_by_token_is_idempotent(self, store, user):
        store.create_session(user.id, "tok", utc_now())

        assert store.delete_session_by_token("tok") == 1
        assert store.delete_session_by_token("tok") == 0
        assert store.count_user_sessions(user.id) == 0

    def test_sweep_only_removes_expired(self, store, user):
        now = utc_now()
        store.create_session(user.id, "old", now - timedelta(seconds=1))
        store.create_session(user.id, "edge", now)
        store.create_session(user.id, "live", now + timedelta(minutes=5))

        assert store.sweep_expired_sessions(now) == 1
        assert store.sweep_expired_sessions(now) == 0
        assert store.fetch_session_with_user("old") is None
        assert store.fetch_session_with_user("edge") is not None
        assert store.fetch_session_with_user("live") is not None

    def test_concurrent_sweep_and_delete(self, store, user):
        now = utc_now()
        for i in range(200):
            store.create_session(user.id, f"tok-{i}", now - timedelta(minutes=1))
        removed = []

        def sweep():
            removed.append(store.sweep_expired_sessions(now))

        def delete():
            removed.append(sum(store.delete_session_by_token(f"tok-{i}") for i in range(200)))

        threads = [threading.Thread(target=sweep), threading.Thread(target=delete)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sum(removed) == 200
        assert store.count_user_sessions(user.id) == 0
