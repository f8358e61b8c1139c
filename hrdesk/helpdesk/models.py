"""Helpdesk ORM models: Ticket, TicketComment.

SQLAlchemy 2.0 async-compatible models.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from hrdesk.common.constants import (
    TicketCategory,
    TicketPriority,
    TicketStatus,
    enum_values,
)
from hrdesk.database import Base


class Ticket(Base):
    """Employee support ticket."""

    __tablename__ = "tickets"
    __table_args__ = (
        sa.CheckConstraint(
            "rating IS NULL OR (rating >= 1 AND rating <= 5)",
            name="ck_ticket_rating_range",
        ),
        sa.Index("ix_tickets_employee_id", "employee_id"),
        sa.Index("ix_tickets_status", "status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    # TKT-YYYYMM-####; uniqueness surfaces a counter collision as a write failure
    ticket_number: Mapped[str] = mapped_column(
        sa.String(20), unique=True, nullable=False,
    )
    employee_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("employees.id"), nullable=False,
    )
    category: Mapped[TicketCategory] = mapped_column(
        sa.Enum(TicketCategory, name="ticket_category", values_callable=enum_values),
        nullable=False,
    )
    priority: Mapped[TicketPriority] = mapped_column(
        sa.Enum(TicketPriority, name="ticket_priority", values_callable=enum_values),
        nullable=False,
        default=TicketPriority.medium,
    )
    status: Mapped[TicketStatus] = mapped_column(
        sa.Enum(TicketStatus, name="ticket_status", values_callable=enum_values),
        nullable=False,
        default=TicketStatus.open,
    )
    subject: Mapped[str] = mapped_column(sa.String(200), nullable=False)
    description: Mapped[str] = mapped_column(sa.Text, nullable=False)
    assigned_to: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("users.id"),
    )
    resolved_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("users.id"),
    )
    resolved_at: Mapped[Optional[datetime]] = mapped_column(
        sa.DateTime(timezone=True),
    )
    resolution: Mapped[Optional[str]] = mapped_column(sa.Text)
    rating: Mapped[Optional[int]] = mapped_column(sa.Integer)
    feedback: Mapped[Optional[str]] = mapped_column(sa.Text)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    comments: Mapped[list[TicketComment]] = relationship(
        back_populates="ticket", cascade="all, delete-orphan",
        order_by="TicketComment.created_at",
    )

    def __repr__(self) -> str:
        return f"<Ticket {self.ticket_number} '{self.subject[:30]}'>"


class TicketComment(Base):
    """Entry in a ticket's comment log. Internal entries are staff-only."""

    __tablename__ = "ticket_comments"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    ticket_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        sa.ForeignKey("tickets.id", ondelete="CASCADE"),
        nullable=False,
    )
    author_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=False,
    )
    text: Mapped[str] = mapped_column(sa.Text, nullable=False)
    is_internal: Mapped[bool] = mapped_column(sa.Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    ticket: Mapped[Ticket] = relationship(back_populates="comments")

    def __repr__(self) -> str:
        return f"<TicketComment ticket={self.ticket_id} internal={self.is_internal}>"
