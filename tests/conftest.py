"""
Shared fixtures for login server tests.

Provides in-memory user and session repositories with the same interface as
the asyncpg repositories, a controllable clock, and an AuthService wired to
them with a cheap bcrypt cost.
"""

from base64 import b64encode
from typing import Dict, Optional

import pytest
from prometheus_client import CollectorRegistry

from login_server.src.config import Settings, clear_settings_cache
from login_server.src.environment import Environment
from login_server.src.exceptions import AccountExistsError
from login_server.src.models.auth import SessionDB, UserDB
from login_server.src.services.auth_service import AuthService
from shared.metrics import AuthMetrics

START_TIME = 1_700_000_000


def b64(text: str) -> str:
    """Base64 encode UTF-8 text the way clients send form fields."""
    return b64encode(text.encode("utf-8")).decode("ascii")


# ============================================================================
# IN-MEMORY REPOSITORIES (Test Doubles)
# ============================================================================


class InMemorySessionRepository:
    """Dictionary-backed SessionRepository."""

    def __init__(self):
        self.sessions: Dict[str, SessionDB] = {}

    async def create_session(self, session: SessionDB) -> SessionDB:
        self.sessions[session.session_id] = session
        return session

    async def get_session(self, session_id: str) -> Optional[SessionDB]:
        return self.sessions.get(session_id)

    async def delete_session(self, session_id: str) -> bool:
        return self.sessions.pop(session_id, None) is not None

    async def delete_expired_sessions(self, now: int) -> int:
        expired = [s.session_id for s in self.sessions.values() if s.expiry <= now]
        for session_id in expired:
            del self.sessions[session_id]
        return len(expired)


class InMemoryUserRepository:
    """Dictionary-backed UserRepository sharing a session store."""

    def __init__(self, session_repo: InMemorySessionRepository):
        self.users: Dict[str, UserDB] = {}
        self.session_repo = session_repo

    async def email_exists(self, email: str) -> bool:
        return any(user.email == email for user in self.users.values())

    async def create_user(self, user: UserDB, session: SessionDB) -> UserDB:
        if any(existing.email == user.email for existing in self.users.values()):
            raise AccountExistsError("Account already exists.")
        self.users[user.user_id] = user
        await self.session_repo.create_session(session)
        return user

    async def get_user_by_id(self, user_id: str) -> Optional[UserDB]:
        return self.users.get(user_id)

    async def get_user_by_email(self, email: str) -> Optional[UserDB]:
        for user in self.users.values():
            if user.email == email:
                return user
        return None


class FakeClock:
    """Callable returning a settable Unix timestamp."""

    def __init__(self, now: int = START_TIME):
        self.now = now

    def __call__(self) -> int:
        return self.now


# ============================================================================
# FIXTURES
# ============================================================================


@pytest.fixture(autouse=True)
def _reset_settings_cache():
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture
def environment() -> Environment:
    return Environment(
        database_host="localhost:5432",
        database_name="twinsight",
        database_username="twinsight",
        database_password="secret",
        password_pepper="test-pepper",
    )


@pytest.fixture
def settings() -> Settings:
    return Settings(
        environment="development",
        password_bcrypt_rounds=4,
        rate_limit_enabled=False,
        log_format="text",
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def metrics_registry() -> CollectorRegistry:
    return CollectorRegistry()


@pytest.fixture
def auth_metrics(metrics_registry) -> AuthMetrics:
    return AuthMetrics(registry=metrics_registry)


@pytest.fixture
def session_repo() -> InMemorySessionRepository:
    return InMemorySessionRepository()


@pytest.fixture
def user_repo(session_repo) -> InMemoryUserRepository:
    return InMemoryUserRepository(session_repo)


@pytest.fixture
def auth_service(user_repo, session_repo, environment, settings, auth_metrics, clock) -> AuthService:
    return AuthService(
        user_repo,
        session_repo,
        environment,
        settings=settings,
        metrics=auth_metrics,
        clock=clock,
    )
