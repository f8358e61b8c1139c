"""Named monotonic counters for externally visible identifiers.

Each series is one row in ``sequence_counters``; ``next_sequence_value``
increments and reads it in a single statement so concurrent writers never
observe the same value. Used for employee codes (one global series) and
ticket numbers (one series per calendar month).
"""

from __future__ import annotations

from datetime import datetime, timezone

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Mapped, mapped_column

from hrdesk.common.exceptions import StorageFailure
from hrdesk.database import Base


class SequenceCounter(Base):
    __tablename__ = "sequence_counters"

    name: Mapped[str] = mapped_column(sa.String(64), primary_key=True)
    value: Mapped[int] = mapped_column(sa.BigInteger, nullable=False, default=0)
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )

    def __repr__(self) -> str:
        return f"<SequenceCounter {self.name}={self.value}>"


def _upsert_for(dialect_name: str):
    if dialect_name == "sqlite":
        return sqlite_insert
    return pg_insert


async def next_sequence_value(db: AsyncSession, name: str) -> int:
    """Atomically increment the ``name`` series and return the new value (1-based)."""
    dialect_name = db.bind.dialect.name if db.bind is not None else "postgresql"
    insert = _upsert_for(dialect_name)
    now = datetime.now(timezone.utc)

    stmt = (
        insert(SequenceCounter)
        .values(name=name, value=1, updated_at=now)
        .on_conflict_do_update(
            index_elements=[SequenceCounter.name],
            set_={"value": SequenceCounter.value + 1, "updated_at": now},
        )
        .returning(SequenceCounter.value)
    )
    try:
        result = await db.execute(stmt)
    except SQLAlchemyError as exc:
        raise StorageFailure(f"{name} sequence") from exc
    return int(result.scalar_one())


async def peek_sequence_value(db: AsyncSession, name: str) -> int:
    """Return the last issued value of a series without advancing it (0 if unused)."""
    result = await db.execute(
        sa.select(SequenceCounter.value).where(SequenceCounter.name == name)
    )
    return int(result.scalar() or 0)
