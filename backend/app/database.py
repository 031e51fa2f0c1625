"""
AiNote Backend — Relational Store Handle
==========================================

What:  The store DependencyHandle: async SQLAlchemy engine, session factory,
       schema bootstrap and connection-failure classification.
How:   StoreHandle._open() builds an async engine from DB_* settings, opens
       one connection and creates the notes table if it does not exist.
       Request code obtains sessions through StoreHandle.session(), which
       commits on success and rolls back on error.
Who:   Registered with ConnectionSupervisor at startup; used by NoteWorkflow.

Connection Pooling:
    pool_size / max_overflow come from settings (DB_POOL_SIZE, DB_MAX_OVERFLOW).
    pool_pre_ping validates pooled connections before use.
    pool_recycle=3600 recycles connections every hour.
    SQLite (tests) uses SQLAlchemy's default pool and ignores these.
"""

import errno
import logging
import socket
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional

from sqlalchemy.engine import URL, make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from app.services.dependency_base import (
    MASK,
    Dependency,
    DependencyHandle,
    FailureReason,
    iter_exception_chain,
)

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy ORM models."""
    pass


# ── Failure classification ────────────────────────────────────────────────

# MySQL server/client error numbers
_MYSQL_AUTH_ERRNOS = {1044, 1045}          # ER_DBACCESS_DENIED_ERROR, ER_ACCESS_DENIED_ERROR
_MYSQL_MISSING_DB_ERRNOS = {1049}          # ER_BAD_DB_ERROR
_MYSQL_UNREACHABLE_ERRNOS = {2002, 2003, 2005}  # socket, TCP, unknown host

_UNREACHABLE_OS_ERRNOS = {
    errno.ECONNREFUSED,
    errno.ECONNRESET,
    errno.EHOSTUNREACH,
    errno.ENETUNREACH,
    errno.ETIMEDOUT,
}


def _classify_one(exc: BaseException) -> FailureReason:
    # PostgreSQL: asyncpg exposes `sqlstate`, psycopg `pgcode`
    sqlstate = getattr(exc, "sqlstate", None) or getattr(exc, "pgcode", None)
    if isinstance(sqlstate, str):
        if sqlstate.startswith("28"):
            return FailureReason.AUTH_REJECTED
        if sqlstate == "3D000":
            return FailureReason.RESOURCE_ABSENT

    # MySQL drivers put the server error number in args[0]
    args = getattr(exc, "args", ())
    if args and isinstance(args[0], int) and not isinstance(exc, OSError):
        if args[0] in _MYSQL_AUTH_ERRNOS:
            return FailureReason.AUTH_REJECTED
        if args[0] in _MYSQL_MISSING_DB_ERRNOS:
            return FailureReason.RESOURCE_ABSENT
        if args[0] in _MYSQL_UNREACHABLE_ERRNOS:
            return FailureReason.ENDPOINT_UNREACHABLE

    if "unable to open database file" in str(exc):
        return FailureReason.RESOURCE_ABSENT

    if isinstance(exc, (socket.gaierror, ConnectionError, TimeoutError)):
        return FailureReason.ENDPOINT_UNREACHABLE
    if isinstance(exc, OSError) and (exc.errno in _UNREACHABLE_OS_ERRNOS or exc.errno is None):
        return FailureReason.ENDPOINT_UNREACHABLE

    return FailureReason.OTHER


_PRIORITY = (
    FailureReason.AUTH_REJECTED,
    FailureReason.RESOURCE_ABSENT,
    FailureReason.ENDPOINT_UNREACHABLE,
)


def classify_store_error(exc: BaseException) -> FailureReason:
    """
    Classify a store connection failure.

    Inspects the whole exception chain (SQLAlchemy wrapper, DBAPI adapter,
    driver exception) and returns the most specific reason found.
    """
    found = {_classify_one(e) for e in iter_exception_chain(exc)}
    for reason in _PRIORITY:
        if reason in found:
            return reason
    return FailureReason.OTHER


# ── Store handle ──────────────────────────────────────────────────────────

class StoreHandle(DependencyHandle):
    """
    The relational store.

    Required settings: DB_HOST, DB_USER, DB_PASSWORD, DB_NAME.
    Only one engine exists per handle; it is created by the successful
    connection attempt and disposed by close().
    """

    name = Dependency.STORE
    required_settings = ("db_host", "db_user", "db_password", "db_name")

    def __init__(self) -> None:
        super().__init__()
        self.engine: Optional[AsyncEngine] = None
        self._session_factory: Optional[async_sessionmaker[AsyncSession]] = None

    def database_url(self) -> URL:
        """Build the SQLAlchemy URL from DB_* settings."""
        s = self._settings
        return URL.create(
            drivername=s.db_driver,
            username=s.db_user,
            password=s.db_password,
            host=s.db_host,
            port=s.db_port,
            database=s.db_name,
        )

    def _engine_options(self, url: URL) -> Dict[str, Any]:
        options: Dict[str, Any] = {"echo": self._settings.log_level == "DEBUG"}
        if url.get_backend_name() != "sqlite":
            options.update(
                pool_size=self._settings.db_pool_size,
                max_overflow=self._settings.db_max_overflow,
                pool_pre_ping=self._settings.db_pool_pre_ping,
                pool_recycle=3600,
            )
        return options

    async def _open(self) -> None:
        # Imported here so every model is registered on Base.metadata
        from app.models import note  # noqa: F401

        url = make_url(self.database_url())
        engine = create_async_engine(url, **self._engine_options(url))
        try:
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        except BaseException:
            await engine.dispose()
            raise

        self.engine = engine
        self._session_factory = async_sessionmaker(
            engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    def classify(self, exc: BaseException) -> FailureReason:
        return classify_store_error(exc)

    def describe_target(self) -> Dict[str, Any]:
        s = self._settings
        if s is None:
            return {}
        return {
            "driver": s.db_driver,
            "host": s.db_host,
            "port": s.db_port,
            "user": s.db_user,
            "database": s.db_name,
            "password": MASK,
        }

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """
        Provide a transactional session.

        Commits when the block exits normally, rolls back and re-raises on
        any error, and always returns the connection to the pool.
        """
        if self._session_factory is None:
            raise RuntimeError("store is not connected")
        async with self._session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def _release(self) -> None:
        if self.engine is not None:
            await self.engine.dispose()
            logger.info("store engine disposed")
            self.engine = None
            self._session_factory = None
