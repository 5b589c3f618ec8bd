"""Database session management."""

from collections.abc import AsyncGenerator
from functools import lru_cache
from typing import Annotated

import structlog
from fastapi import Depends
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm.exc import StaleDataError

from taskhub.config import get_settings
from taskhub.exceptions import ConflictError, StorageError

logger = structlog.get_logger()


@lru_cache
def get_engine() -> AsyncEngine:
    """Create the async engine on first use."""
    settings = get_settings()
    kwargs: dict = {"pool_pre_ping": True, "echo": settings.debug}
    if not settings.database_url.startswith("sqlite"):
        kwargs.update(
            pool_size=settings.database_pool_size,
            max_overflow=settings.database_max_overflow,
            pool_timeout=settings.database_pool_timeout,
        )
    return create_async_engine(settings.database_url, **kwargs)


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@lru_cache
def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the application engine.

    Event projections open their own sessions from this factory so that a
    failed notification or activity write never touches the request's
    transaction.
    """
    return build_session_factory(get_engine())


async def init_db() -> None:
    """Verify connectivity and create missing tables if configured to."""
    from taskhub.db.base import Base
    import taskhub.models  # noqa: F401  (register mappers)

    engine = get_engine()
    async with engine.begin() as conn:
        await conn.execute(text("SELECT 1"))
        if get_settings().auto_create_schema:
            await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    """Close database connection pool."""
    await get_engine().dispose()


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Get database session for dependency injection."""
    async with get_session_factory()() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


# Type alias for dependency injection
DBSession = Annotated[AsyncSession, Depends(get_db_session)]


async def commit_or_raise(db: AsyncSession, *, entity: str) -> None:
    """Commit, translating store failures into domain errors.

    The session is rolled back before raising so nothing half-applied
    survives.
    """
    try:
        await db.commit()
    except StaleDataError as exc:
        await db.rollback()
        logger.info("concurrent_modification", entity=entity, error=str(exc))
        raise ConflictError(f"{entity} was modified concurrently, reload and retry")
    except IntegrityError as exc:
        await db.rollback()
        logger.info("integrity_violation", entity=entity, error=str(exc.orig))
        raise ConflictError(f"{entity} violates a uniqueness constraint")
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.error("storage_failure", entity=entity, error=str(exc))
        raise StorageError(f"Failed to persist {entity}") from exc
