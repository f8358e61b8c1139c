"""Helpdesk Pydantic v2 schemas: request/response validation."""

import uuid
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from hrdesk.common.constants import TicketCategory, TicketPriority, TicketStatus


# ═════════════════════════════════════════════════════════════════════
# Comments
# ═════════════════════════════════════════════════════════════════════


class CommentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    ticket_id: uuid.UUID
    author_id: uuid.UUID
    text: str
    is_internal: bool = False
    created_at: Optional[datetime] = None


class CommentCreate(BaseModel):
    text: str = Field(..., min_length=1, max_length=5000)
    is_internal: bool = False


# ═════════════════════════════════════════════════════════════════════
# Tickets
# ═════════════════════════════════════════════════════════════════════


class TicketOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    ticket_number: str
    employee_id: uuid.UUID
    category: TicketCategory
    priority: TicketPriority
    status: TicketStatus
    subject: str
    description: str
    assigned_to: Optional[uuid.UUID] = None
    resolved_by: Optional[uuid.UUID] = None
    resolved_at: Optional[datetime] = None
    resolution: Optional[str] = None
    rating: Optional[int] = None
    feedback: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class TicketDetailOut(TicketOut):
    """Ticket with the comments visible to the caller."""

    comments: List[CommentOut] = []


class TicketCreate(BaseModel):
    category: TicketCategory
    priority: Optional[TicketPriority] = None
    subject: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=1, max_length=5000)


class TicketStatusUpdate(BaseModel):
    status: Optional[TicketStatus] = None
    assigned_to: Optional[uuid.UUID] = None
    resolution: Optional[str] = Field(None, max_length=5000)


class TicketAssign(BaseModel):
    assignee_id: uuid.UUID


class TicketReopen(BaseModel):
    reason: str = Field(..., min_length=1, max_length=2000)


class TicketRating(BaseModel):
    rating: int
    feedback: Optional[str] = Field(None, max_length=2000)


# ═════════════════════════════════════════════════════════════════════
# Statistics
# ═════════════════════════════════════════════════════════════════════


class TicketStatsOut(BaseModel):
    total: int
    by_status: dict[str, int]
    by_category: dict[str, int]
    by_priority: dict[str, int]
    avg_resolution_hours: Optional[float] = None
    avg_rating: Optional[float] = None
    rated_count: int = 0
