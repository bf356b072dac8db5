"""Database Session Manager — async engine, request-scoped sessions and readiness checks.

Invariants:
    - A session that leaves session() with an exception is rolled back and closed
    - SQLAlchemy exceptions escaping a session surface as DatabaseError (core/errors.py),
      never as driver exceptions; domain errors pass through untouched
    - Pool sizing applies to server databases only; SQLite keeps its default pool

Design Decisions:
    - Module-level db_manager created by the FastAPI lifespan (init_db), read through
      the module by get_db and the readiness probe
    - expire_on_commit=False: the coordinator returns ORM rows after commit and the
      routes serialize them without another round-trip
    - Unique-index races are translated by the coordinator before they reach here;
      an IntegrityError at this layer is a genuine bug and is logged as such
"""

import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy import text
from sqlalchemy.exc import (
    DBAPIError, IntegrityError, OperationalError, SQLAlchemyError,
)
from sqlalchemy.ext.asyncio import (
    AsyncSession, async_sessionmaker, create_async_engine,
)

from swap_targeting.core.errors import DatabaseError

logger = logging.getLogger(__name__)

# Most specific first: (exception type, operation label, public summary)
_ERROR_MAP: tuple[tuple[type[SQLAlchemyError], str, str], ...] = (
    (IntegrityError, "commit", "Integrity constraint violated"),
    (OperationalError, "execute", "Connection or operational error"),
    (DBAPIError, "query", "Database driver error"),
    (SQLAlchemyError, "unknown", "Database operation failed"),
)


def _engine_kwargs(database_url: str, pool_size: int, max_overflow: int) -> dict:
    kwargs: dict = {"pool_pre_ping": True}
    if not database_url.startswith("sqlite"):
        kwargs.update(pool_size=pool_size, max_overflow=max_overflow, pool_recycle=3600)
    return kwargs


def _classify(exc: SQLAlchemyError) -> tuple[str, str]:
    for exc_type, operation, summary in _ERROR_MAP:
        if isinstance(exc, exc_type):
            return operation, summary
    return "unknown", "Database operation failed"


class DatabaseSessionManager:
    """Owns the async engine and hands out sessions with rollback-on-error."""

    def __init__(
        self, database_url: str, pool_size: int = 20, max_overflow: int = 10,
    ):
        self.engine = create_async_engine(
            database_url, **_engine_kwargs(database_url, pool_size, max_overflow),
        )
        self._session_factory = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        session = self._session_factory()
        try:
            yield session
        except SQLAlchemyError as e:
            await session.rollback()
            operation, summary = _classify(e)
            logger.error(
                f"Database {operation} failed: {e}",
                extra={"error_code": "DATABASE_ERROR", "action": operation},
            )
            raise DatabaseError(summary, operation) from e
        except BaseException:
            await session.rollback()
            raise
        finally:
            await session.close()

    async def health_check(self) -> bool:
        """SELECT 1 round-trip for the readiness probe."""
        started = time.perf_counter()
        try:
            async with self.session() as db:
                await db.execute(text("SELECT 1"))
        except Exception as e:
            logger.error(f"DB health check failed: {e}")
            return False
        logger.debug(
            "DB health check ok",
            extra={"execution_ms": round((time.perf_counter() - started) * 1000, 2)},
        )
        return True

    async def dispose(self) -> None:
        await self.engine.dispose()


db_manager: DatabaseSessionManager | None = None


def init_db(database_url: str, **kwargs) -> DatabaseSessionManager:
    global db_manager
    db_manager = DatabaseSessionManager(database_url, **kwargs)
    return db_manager


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency: one session per request."""
    if not db_manager:
        raise RuntimeError("Database not initialized")
    async with db_manager.session() as session:
        yield session
