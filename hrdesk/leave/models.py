"""Leave ORM models: LeaveBalance, LeaveRequest, LeaveComment."""

from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from typing import TYPE_CHECKING, Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from hrdesk.common.constants import LeaveStatus, LeaveType, enum_values
from hrdesk.database import Base

if TYPE_CHECKING:
    from hrdesk.onboarding.models import Employee


class LeaveBalance(Base):
    """Allotted days per leave type. Taken days are derived, never stored."""

    __tablename__ = "leave_balances"
    __table_args__ = (
        sa.UniqueConstraint("employee_id", "leave_type", name="uq_leave_balance"),
        sa.CheckConstraint("allotted >= 0", name="ck_leave_balance_allotted"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    employee_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        sa.ForeignKey("employees.id", ondelete="CASCADE"),
        nullable=False,
    )
    leave_type: Mapped[LeaveType] = mapped_column(
        sa.Enum(LeaveType, name="leave_type", values_callable=enum_values),
        nullable=False,
    )
    allotted: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=0)
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    employee: Mapped[Employee] = relationship(back_populates="leave_balances")

    def __repr__(self) -> str:
        return f"<LeaveBalance {self.leave_type.value}={self.allotted}>"


class LeaveRequest(Base):
    __tablename__ = "leave_requests"
    __table_args__ = (
        sa.CheckConstraint("start_date <= end_date", name="ck_leave_request_dates"),
        sa.Index("ix_leave_requests_employee_status", "employee_id", "status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    employee_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("employees.id"), nullable=False,
    )
    leave_type: Mapped[LeaveType] = mapped_column(
        sa.Enum(LeaveType, name="leave_type", values_callable=enum_values),
        nullable=False,
    )
    start_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    end_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    # Chargeable business days, always computed server-side
    total_days: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    reason: Mapped[Optional[str]] = mapped_column(sa.Text)
    status: Mapped[LeaveStatus] = mapped_column(
        sa.Enum(LeaveStatus, name="leave_status", values_callable=enum_values),
        nullable=False,
        default=LeaveStatus.pending,
    )
    approver_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("users.id"),
    )
    decision_at: Mapped[Optional[datetime]] = mapped_column(
        sa.DateTime(timezone=True),
    )
    rejection_reason: Mapped[Optional[str]] = mapped_column(sa.Text)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(
        sa.DateTime(timezone=True),
    )
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    employee: Mapped[Employee] = relationship(back_populates="leave_requests")
    comments: Mapped[list[LeaveComment]] = relationship(
        back_populates="leave_request",
        order_by="LeaveComment.created_at",
    )

    def __repr__(self) -> str:
        return (
            f"<LeaveRequest {self.leave_type.value} {self.start_date}..{self.end_date} "
            f"{self.status.value}>"
        )


class LeaveComment(Base):
    __tablename__ = "leave_comments"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    leave_request_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        sa.ForeignKey("leave_requests.id", ondelete="CASCADE"),
        nullable=False,
    )
    author_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=False,
    )
    text: Mapped[str] = mapped_column(sa.Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    leave_request: Mapped[LeaveRequest] = relationship(back_populates="comments")
