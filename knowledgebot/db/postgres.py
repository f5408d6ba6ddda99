"""Async SQLAlchemy engine, session factory and the request session dependency.

The service targets PostgreSQL (asyncpg). ``create_engine_for`` only applies
connection-pool sizing to server databases, so the same models and
repositories also run on SQLite (aiosqlite) in the test suite.
"""

from collections.abc import AsyncGenerator

import structlog
from sqlalchemy.engine import make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from knowledgebot.core.config import settings
from knowledgebot.core.exceptions import DatabaseConnectionError

logger = structlog.get_logger(__name__)

_POOL_OPTIONS = {
    "pool_size": 20,
    "max_overflow": 10,
    "pool_pre_ping": True,
}


class Base(DeclarativeBase):
    """Declarative base shared by every ORM model."""


def create_engine_for(url: str) -> AsyncEngine:
    """Build an async engine; pool options apply to PostgreSQL only."""
    options = dict(_POOL_OPTIONS) if make_url(url).get_backend_name() == "postgresql" else {}
    return create_async_engine(url, echo=False, **options)


def session_factory_for(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Sessions keep loaded attributes after commit so results outlive the transaction."""
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


engine: AsyncEngine = create_engine_for(settings.postgres_url)
async_session_factory = session_factory_for(engine)


async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency: one session per request.

    The request's work is committed when the handler returns and rolled
    back if it raises. Driver failures surface as DatabaseConnectionError.
    """
    session = async_session_factory()
    try:
        yield session
        await session.commit()
    except SQLAlchemyError as e:
        await session.rollback()
        logger.error("database_session_failed", error=str(e))
        raise DatabaseConnectionError(f"Database operation failed: {e}") from e
    except Exception:
        await session.rollback()
        raise
    finally:
        await session.close()


async def close_postgres() -> None:
    """Dispose of the engine's connection pool on shutdown."""
    logger.info("database_shutdown")
    await engine.dispose()
