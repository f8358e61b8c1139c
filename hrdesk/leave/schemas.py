"""Leave Pydantic v2 schemas: request / response validation.

Naming conventions:
  - *Create / *Request  → request bodies (write)
  - *Out                → response bodies (read)
"""

from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from hrdesk.common.constants import LeaveStatus, LeaveType


# ═════════════════════════════════════════════════════════════════════
# Leave Request
# ═════════════════════════════════════════════════════════════════════


class LeaveRequestCreate(BaseModel):
    """Payload for applying a leave request. ``total_days`` is never accepted."""

    leave_type: LeaveType
    start_date: date = Field(..., description="Leave start date (inclusive)")
    end_date: date = Field(..., description="Leave end date (inclusive)")
    reason: Optional[str] = Field(None, max_length=1000)


class LeaveStatusUpdate(BaseModel):
    """HR decision on a pending request."""

    status: LeaveStatus
    rejection_reason: Optional[str] = Field(None, max_length=1000)


class LeaveCommentCreate(BaseModel):
    text: str = Field(..., min_length=1, max_length=2000)


class LeaveCommentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    author_id: uuid.UUID
    text: str
    created_at: datetime


class LeaveRequestOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    employee_id: uuid.UUID
    leave_type: LeaveType
    start_date: date
    end_date: date
    total_days: int
    reason: Optional[str] = None
    status: LeaveStatus
    approver_id: Optional[uuid.UUID] = None
    decision_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class LeaveRequestDetailOut(LeaveRequestOut):
    """Single request with its comment log."""

    comments: list[LeaveCommentOut] = []


# ═════════════════════════════════════════════════════════════════════
# Balances
# ═════════════════════════════════════════════════════════════════════


class LeaveTypeSummary(BaseModel):
    leave_type: LeaveType
    balance: int
    taken: int
    available: int


class LeaveSummaryOut(BaseModel):
    """Per-type allotment, days taken this year, and what is left."""

    employee_id: uuid.UUID
    year: int
    types: list[LeaveTypeSummary]

    def for_type(self, leave_type: LeaveType) -> LeaveTypeSummary:
        return next(t for t in self.types if t.leave_type == leave_type)


class LeaveBalanceUpdate(BaseModel):
    leave_type: LeaveType
    allotted: int = Field(..., ge=0, le=365)


class LeaveBalanceOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    employee_id: uuid.UUID
    leave_type: LeaveType
    allotted: int


class LeaveStatsOut(BaseModel):
    """Organisation-wide request counts; ``approved_days`` sums chargeable days."""

    year: Optional[int] = None
    total: int
    by_status: dict[str, int]
    by_type: dict[str, int]
    approved_days: int
