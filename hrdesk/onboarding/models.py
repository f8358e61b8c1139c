"""Onboarding ORM models: Employee, OnboardingRecord, OnboardingTimelineEntry.

The Employee row is the source of truth for admission state. The
OnboardingRecord mirrors that state for auditing and owns an append-only
timeline; it can be rebuilt from the Employee if the two drift.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from typing import TYPE_CHECKING, Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from hrdesk.common.constants import (
    OnboardingRecordStatus,
    OnboardingStatus,
    TimelineAction,
    enum_values,
)
from hrdesk.database import Base, JSONType, as_utc

if TYPE_CHECKING:
    from hrdesk.auth.models import User
    from hrdesk.leave.models import LeaveBalance, LeaveRequest


# ═════════════════════════════════════════════════════════════════════
# Employee
# ═════════════════════════════════════════════════════════════════════


class Employee(Base):
    """Employee record created at invite time and completed by self-submission."""

    __tablename__ = "employees"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        sa.ForeignKey("users.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )
    # Assigned exactly once, on onboarding approval
    employee_code: Mapped[Optional[str]] = mapped_column(sa.String(20), unique=True)
    personal_email: Mapped[str] = mapped_column(sa.String(255), nullable=False)
    official_email: Mapped[str] = mapped_column(
        sa.String(255), unique=True, nullable=False,
    )

    # ── Self-submitted details ──────────────────────────────────────
    first_name: Mapped[Optional[str]] = mapped_column(sa.String(100))
    last_name: Mapped[Optional[str]] = mapped_column(sa.String(100))
    phone: Mapped[Optional[str]] = mapped_column(sa.String(20))
    date_of_birth: Mapped[Optional[date]] = mapped_column(sa.Date)
    gender: Mapped[Optional[str]] = mapped_column(sa.String(20))
    address: Mapped[Optional[dict]] = mapped_column(JSONType)
    emergency_contact: Mapped[Optional[dict]] = mapped_column(JSONType)
    department: Mapped[Optional[str]] = mapped_column(sa.String(100))
    designation: Mapped[Optional[str]] = mapped_column(sa.String(100))
    date_of_joining: Mapped[Optional[date]] = mapped_column(sa.Date)

    # ── Admission state ─────────────────────────────────────────────
    onboarding_status: Mapped[OnboardingStatus] = mapped_column(
        sa.Enum(OnboardingStatus, name="onboarding_status", values_callable=enum_values),
        nullable=False,
        default=OnboardingStatus.pending,
    )
    onboarding_submitted_at: Mapped[Optional[datetime]] = mapped_column(
        sa.DateTime(timezone=True),
    )
    onboarding_approved_at: Mapped[Optional[datetime]] = mapped_column(
        sa.DateTime(timezone=True),
    )
    onboarding_approved_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("users.id"),
    )
    onboarding_remarks: Mapped[Optional[str]] = mapped_column(sa.Text)

    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
    )

    # ── Relationships ───────────────────────────────────────────────
    user: Mapped[User] = relationship(
        back_populates="employee", foreign_keys=[user_id],
    )
    onboarding_record: Mapped[Optional[OnboardingRecord]] = relationship(
        back_populates="employee", uselist=False,
    )
    leave_balances: Mapped[list[LeaveBalance]] = relationship(
        back_populates="employee", cascade="all, delete-orphan",
    )
    leave_requests: Mapped[list[LeaveRequest]] = relationship(
        back_populates="employee",
    )

    @property
    def full_name(self) -> str:
        parts = [p for p in (self.first_name, self.last_name) if p]
        return " ".join(parts) or self.official_email

    @property
    def is_onboarded(self) -> bool:
        return self.onboarding_status == OnboardingStatus.approved

    def __repr__(self) -> str:
        return f"<Employee {self.employee_code or '-'} {self.official_email!r}>"


# ═════════════════════════════════════════════════════════════════════
# Onboarding record (advisory audit projection)
# ═════════════════════════════════════════════════════════════════════


class OnboardingRecord(Base):
    __tablename__ = "onboarding_records"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    employee_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        sa.ForeignKey("employees.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )
    initiated_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("users.id"),
    )
    personal_email: Mapped[str] = mapped_column(sa.String(255), nullable=False)
    official_email: Mapped[str] = mapped_column(sa.String(255), nullable=False)
    status: Mapped[OnboardingRecordStatus] = mapped_column(
        sa.Enum(
            OnboardingRecordStatus,
            name="onboarding_record_status",
            values_callable=enum_values,
        ),
        nullable=False,
        default=OnboardingRecordStatus.invited,
    )
    submitted_payload: Mapped[Optional[dict]] = mapped_column(JSONType)
    invitation_sent_at: Mapped[Optional[datetime]] = mapped_column(
        sa.DateTime(timezone=True),
    )
    details_submitted_at: Mapped[Optional[datetime]] = mapped_column(
        sa.DateTime(timezone=True),
    )
    reviewed_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("users.id"),
    )
    reviewed_at: Mapped[Optional[datetime]] = mapped_column(
        sa.DateTime(timezone=True),
    )
    review_comments: Mapped[Optional[str]] = mapped_column(sa.Text)
    expires_at: Mapped[Optional[datetime]] = mapped_column(
        sa.DateTime(timezone=True),
    )
    reminder_count: Mapped[int] = mapped_column(sa.Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    employee: Mapped[Employee] = relationship(back_populates="onboarding_record")
    timeline: Mapped[list[OnboardingTimelineEntry]] = relationship(
        back_populates="record",
        cascade="all, delete-orphan",
        order_by="OnboardingTimelineEntry.sequence",
    )

    @property
    def is_expired(self) -> bool:
        return is_invitation_expired(self)

    def __repr__(self) -> str:
        return f"<OnboardingRecord employee={self.employee_id} {self.status.value}>"


class OnboardingTimelineEntry(Base):
    """Append-only timeline row; never updated or deleted by the workflow."""

    __tablename__ = "onboarding_timeline"
    __table_args__ = (
        sa.UniqueConstraint("record_id", "sequence", name="uq_timeline_record_seq"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    record_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        sa.ForeignKey("onboarding_records.id", ondelete="CASCADE"),
        nullable=False,
    )
    sequence: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    action: Mapped[TimelineAction] = mapped_column(
        sa.Enum(TimelineAction, name="timeline_action", values_callable=enum_values),
        nullable=False,
    )
    actor_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("users.id"),
    )
    details: Mapped[Optional[str]] = mapped_column(sa.Text)
    timestamp: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    record: Mapped[OnboardingRecord] = relationship(back_populates="timeline")

    def __repr__(self) -> str:
        return f"<OnboardingTimelineEntry #{self.sequence} {self.action.value}>"


def is_invitation_expired(
    record: OnboardingRecord,
    now: Optional[datetime] = None,
) -> bool:
    """An invitation expires when its deadline passed before anything was submitted."""
    now = now or datetime.now(timezone.utc)
    expires_at = as_utc(record.expires_at)
    return (
        expires_at is not None
        and expires_at < now
        and record.status == OnboardingRecordStatus.invited
    )
