import os
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

# Configure before any import that might load settings or build the runtime
os.environ.setdefault("TEST_MODE", "true")
os.environ.setdefault("USE_MEMORY_STORE", "true")
os.environ.setdefault("JWT_SECRET", "test-secret-key-for-testing-only-do-not-use-in-production")
os.environ.setdefault("SESSION_SWEEP_INTERVAL_SECONDS", "0")

import pytest  # noqa: E402

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


from sessiongate.service.auth import AuthService, hash_password  # noqa: E402
from sessiongate.service.guard import SessionGuard  # noqa: E402
from sessiongate.service.runtime import reset_runtime_for_tests  # noqa: E402
from sessiongate.service.tokens import CredentialCodec  # noqa: E402
from sessiongate.service.users import UserService  # noqa: E402
from sessiongate.storage.memory import MemoryStore  # noqa: E402
from sessiongate.storage.models import Role  # noqa: E402

TEST_SECRET = "unit-test-signing-key-0123456789"
DEFAULT_PASSWORD = "senha-forte-123"


class FakeClock:
    """Callable clock that only moves when a test advances it."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 3, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture(autouse=True)
def reset_runtime_state():
    reset_runtime_for_tests()
    yield
    reset_runtime_for_tests()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def memory_store():
    return MemoryStore()


@pytest.fixture
def codec(clock):
    return CredentialCodec(TEST_SECRET, clock=clock)


@pytest.fixture
def guard(memory_store, codec, clock):
    return SessionGuard(memory_store, codec, clock=clock)


@pytest.fixture
def auth_service(memory_store, codec, clock):
    return AuthService(memory_store, codec, clock=clock)


@pytest.fixture
def user_service(memory_store):
    return UserService(memory_store)


@pytest.fixture
def make_user(memory_store):
    """Factory creating users straight in the store with a real argon2 hash."""

    def _make(username="maria", *, role=Role.INSPETOR, active=True, name=None, password=DEFAULT_PASSWORD):
        return memory_store.create_user(
            username,
            hash_password(password),
            name or username.title(),
            role=role,
            active=active,
        )

    return _make
