"""Holiday ORM model."""

import uuid
from datetime import date, datetime, timezone
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from hrdesk.database import Base


class Holiday(Base):
    __tablename__ = "holidays"
    __table_args__ = (
        sa.UniqueConstraint("date", name="uq_holiday_date"),
        sa.UniqueConstraint("name", "year", name="uq_holiday_name_year"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    name: Mapped[str] = mapped_column(sa.String(150), nullable=False)
    date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    year: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(sa.Text)
    is_optional: Mapped[bool] = mapped_column(sa.Boolean, default=False)
    created_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("users.id"),
    )
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
    )

    def __repr__(self) -> str:
        return f"<Holiday {self.date.isoformat()} {self.name!r}>"
