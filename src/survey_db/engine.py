"""Async SQLAlchemy connection pool handle.

``DatabasePool`` is constructed explicitly at application startup, passed
to every component that talks to the database, and shut down with
:meth:`DatabasePool.dispose` on exit.  There is no module-level engine:
tests and tools can build as many independent pools as they need.

Checkouts are bounded.  When every connection is in use a caller waits
up to ``PoolSettings.timeout`` seconds and then gets
:class:`PoolExhaustedError` instead of an ever-growing pool.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy.exc import TimeoutError as SQLAlchemyPoolTimeout
from sqlalchemy.ext.asyncio import (
    AsyncConnection,
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from survey_db.config import PoolSettings, get_async_url, load_pool_settings

logger = logging.getLogger(__name__)


class PoolExhaustedError(RuntimeError):
    """No pooled connection became available within the checkout timeout.

    Transient: callers retry with backoff a bounded number of times and
    then surface a "try again" state to the user.
    """


class DatabasePool:
    """Owns one ``AsyncEngine`` and its session factory.

    Args:
        url: async database URL; defaults to :func:`get_async_url`
        settings: pool sizing; defaults to :func:`load_pool_settings`
    """

    def __init__(
        self,
        url: str | None = None,
        settings: PoolSettings | None = None,
    ) -> None:
        self._url = url or get_async_url()
        self._settings = settings or load_pool_settings()
        self._engine: AsyncEngine | None = create_async_engine(
            self._url,
            echo=False,
            pool_size=self._settings.size,
            max_overflow=self._settings.max_overflow,
            pool_timeout=self._settings.timeout,
            pool_pre_ping=True,
        )
        self._session_factory: async_sessionmaker[AsyncSession] | None = (
            async_sessionmaker(
                bind=self._engine,
                class_=AsyncSession,
                expire_on_commit=False,
            )
        )

    @property
    def engine(self) -> AsyncEngine:
        """The underlying engine.  Raises if the pool has been disposed."""
        if self._engine is None:
            raise RuntimeError("DatabasePool has been disposed")
        return self._engine

    @property
    def session_factory(self) -> async_sessionmaker[AsyncSession]:
        """Factory for ORM sessions bound to this pool."""
        if self._session_factory is None:
            raise RuntimeError("DatabasePool has been disposed")
        return self._session_factory

    @asynccontextmanager
    async def connect(self) -> AsyncIterator[AsyncConnection]:
        """Check out a connection inside a transaction.

        The transaction commits when the block exits normally and rolls
        back on error.  A checkout timeout is re-raised as
        :class:`PoolExhaustedError`.
        """
        try:
            async with self.engine.begin() as conn:
                yield conn
        except SQLAlchemyPoolTimeout as exc:
            logger.warning("Connection pool exhausted: %s", exc)
            raise PoolExhaustedError("No database connection available") from exc

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """Yield an ORM session; commit on success, rollback on error."""
        async with self.session_factory() as db:
            try:
                yield db
                await db.commit()
            except SQLAlchemyPoolTimeout as exc:
                await db.rollback()
                logger.warning("Connection pool exhausted: %s", exc)
                raise PoolExhaustedError("No database connection available") from exc
            except Exception:
                await db.rollback()
                raise

    async def dispose(self) -> None:
        """Dispose the connection pool (call on app shutdown)."""
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
            self._session_factory = None
            logger.info("Database pool disposed")
