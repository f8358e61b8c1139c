"""Async SQLAlchemy engine and session management."""

import logging
from datetime import datetime, timezone
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from hrdesk.common.exceptions import AppException, StorageFailure
from hrdesk.config import settings

logger = logging.getLogger(__name__)

# Async engine for FastAPI
engine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.ENVIRONMENT == "development",
    pool_pre_ping=True,
)

# Async session factory
async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JSONType = sa.JSON().with_variant(JSONB(), "postgresql")


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive timestamps (SQLite drops the offset on read)."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""
    pass


async def flush_or_fail(db: AsyncSession, operation: str) -> None:
    """Flush pending changes, turning any driver error into StorageFailure.

    The session is left for the caller (``get_db``) to roll back.
    """
    try:
        await db.flush()
    except SQLAlchemyError as exc:
        logger.error("Storage failure during %s: %s", operation, exc)
        raise StorageFailure(operation) from exc


async def execute_or_fail(db: AsyncSession, stmt, operation: str) -> int:
    """Run a guarded UPDATE and return the number of rows it matched."""
    try:
        result = await db.execute(stmt)
    except SQLAlchemyError as exc:
        logger.error("Storage failure during %s: %s", operation, exc)
        raise StorageFailure(operation) from exc
    return result.rowcount


async def commit_or_fail(db: AsyncSession, operation: str) -> None:
    """Commit the current transaction, rolling back and raising StorageFailure on error."""
    try:
        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.error("Storage failure committing %s: %s", operation, exc)
        raise StorageFailure(operation) from exc


async def get_db() -> AsyncSession:
    """FastAPI dependency: yield an async database session."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except AppException:
            await session.rollback()
            raise
        except SQLAlchemyError as exc:
            await session.rollback()
            logger.error("Unhandled storage error: %s", exc)
            raise StorageFailure("request") from exc
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()
