"""Auth ORM model: User (the authenticated principal)."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from hrdesk.common.constants import STAFF_ROLES, UserRole, enum_values
from hrdesk.database import Base

if TYPE_CHECKING:
    from hrdesk.onboarding.models import Employee


class User(Base):
    """Login identity. HR and admin users need not have an Employee record."""

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    email: Mapped[str] = mapped_column(sa.String(255), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(sa.String(200), nullable=False)
    personal_email: Mapped[Optional[str]] = mapped_column(sa.String(255))
    role: Mapped[UserRole] = mapped_column(
        sa.Enum(UserRole, name="user_role", values_callable=enum_values),
        nullable=False,
        default=UserRole.employee,
    )
    is_active: Mapped[bool] = mapped_column(sa.Boolean, default=True)
    is_onboarded: Mapped[bool] = mapped_column(sa.Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    employee: Mapped[Optional[Employee]] = relationship(
        back_populates="user", uselist=False, foreign_keys="Employee.user_id",
    )

    @property
    def is_staff(self) -> bool:
        return self.role in STAFF_ROLES

    def __repr__(self) -> str:
        return f"<User {self.email!r} ({self.role.value})>"
