"""
AiNote Backend — Test Configuration (conftest.py)
===================================================

What:  Shared pytest fixtures for the entire test suite.
How:   The store runs on SQLite through aiosqlite in a per-test temporary
       directory; the AI provider is replaced by FakeAdvisor, a real
       DependencyHandle whose suggest() is an AsyncMock.

Fixture Hierarchy:
    make_settings         Settings factory (no .env, no retry waits)
    store                 configured + connected SQLiteStoreHandle
    advisor               configured + connected FakeAdvisor
    workflow              NoteWorkflow over store + advisor
    make_client           builds an app from handles and yields an AsyncClient
"""

import os
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

# Keep the module-level Settings() in app.config away from real services
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.setdefault("GEMINI_API_KEY", "")

from app.config import Settings  # noqa: E402
from app.database import StoreHandle  # noqa: E402
from app.services.dependency_base import Dependency, DependencyHandle, FailureReason  # noqa: E402
from app.services.note_service import NoteWorkflow  # noqa: E402


# ══════════════════════════════════════════════════════════════════════════
# Test doubles
# ══════════════════════════════════════════════════════════════════════════


class SQLiteStoreHandle(StoreHandle):
    """StoreHandle pointed at a SQLite file instead of DB_HOST/DB_NAME."""

    def __init__(self, path) -> None:
        super().__init__()
        self.path = path

    def database_url(self):
        return f"sqlite+aiosqlite:///{self.path}"


class FakeAdvisor(DependencyHandle):
    """AI provider stand-in. ``suggest`` is an AsyncMock the test controls."""

    name = Dependency.AI_PROVIDER
    required_settings = ("gemini_api_key",)

    def __init__(self, open_error: Optional[BaseException] = None, reason=FailureReason.OTHER) -> None:
        super().__init__()
        self.open_error = open_error
        self.reason_for_error = reason
        self.suggest = AsyncMock(return_value="Consider learning about TCP congestion windows next.")

    async def _open(self) -> None:
        if self.open_error is not None:
            raise self.open_error

    def classify(self, exc: BaseException) -> FailureReason:
        return self.reason_for_error


class FakeStore(DependencyHandle):
    """Store stand-in that fails its first ``failures`` connection attempts."""

    name = Dependency.STORE
    required_settings = ("db_host", "db_user", "db_password", "db_name")

    def __init__(self, failures=0, error=None, reason=FailureReason.ENDPOINT_UNREACHABLE) -> None:
        super().__init__()
        self.failures = failures
        self.error = error or ConnectionRefusedError("connection refused")
        self.reason_for_error = reason
        self.closed = False

    async def _open(self) -> None:
        if self.failures > 0:
            self.failures -= 1
            raise self.error

    def classify(self, exc: BaseException) -> FailureReason:
        return self.reason_for_error

    async def _release(self) -> None:
        self.closed = True


DB_SETTINGS = {
    "db_host": "localhost",
    "db_user": "ainote",
    "db_password": "secret-password",
    "db_name": "ainote",
}


def build_settings(**overrides) -> Settings:
    values = dict(
        DB_SETTINGS,
        gemini_api_key="test-key-not-real",
        log_level="WARNING",
        startup_connect_attempts=1,
        startup_retry_min_wait=0,
        startup_retry_max_wait=0,
        retry_max_attempts=3,
        retry_min_wait=0,
        retry_max_wait=0,
        dependency_connect_timeout=5,
    )
    values.update(overrides)
    return Settings(_env_file=None, **values)


# ══════════════════════════════════════════════════════════════════════════
# Fixtures
# ══════════════════════════════════════════════════════════════════════════


@pytest.fixture
def make_settings():
    """Factory fixture: ``make_settings(db_host="", retry_max_attempts=1)``."""
    return build_settings


@pytest.fixture
def settings(make_settings):
    return make_settings()


@pytest_asyncio.fixture
async def store(tmp_path, settings) -> AsyncIterator[SQLiteStoreHandle]:
    handle = SQLiteStoreHandle(tmp_path / "notes.db")
    handle.configure(settings)
    await handle.connect()
    assert handle.is_ready()
    yield handle
    await handle.close()


@pytest_asyncio.fixture
async def advisor(settings) -> FakeAdvisor:
    handle = FakeAdvisor()
    handle.configure(settings)
    await handle.connect()
    return handle


@pytest.fixture
def workflow(store, advisor) -> NoteWorkflow:
    return NoteWorkflow(store=store, ai=advisor)


@pytest.fixture
def make_client():
    """
    Build an app from the given handles, run its lifespan and yield a client.

    Handles must be fresh (not yet configured); the lifespan configures and
    connects them.

    Usage:
        async with make_client(settings, [SQLiteStoreHandle(path), FakeAdvisor()]) as client:
            response = await client.get("/")
    """

    @asynccontextmanager
    async def factory(settings, handles, raise_app_exceptions=True):
        from app.main import create_app

        app = create_app(settings=settings, handles=handles)
        async with app.router.lifespan_context(app):
            # False lets tests read the 500 produced for an unexpected exception
            transport = ASGITransport(app=app, raise_app_exceptions=raise_app_exceptions)
            async with AsyncClient(transport=transport, base_url="http://test") as client:
                yield client

    return factory
