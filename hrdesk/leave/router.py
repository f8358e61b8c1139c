"""Leave router: apply, decide, cancel, comment, summary and balances.

All endpoints require authentication. HR/admin-only endpoints enforce role checks.
"""


import uuid
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from hrdesk.auth.dependencies import get_current_employee, get_current_user, require_staff
from hrdesk.auth.models import User
from hrdesk.common.constants import LeaveStatus, LeaveType
from hrdesk.common.pagination import PaginationParams
from hrdesk.database import get_db
from hrdesk.leave.schemas import (
    LeaveBalanceOut,
    LeaveBalanceUpdate,
    LeaveCommentCreate,
    LeaveCommentOut,
    LeaveRequestCreate,
    LeaveRequestDetailOut,
    LeaveRequestOut,
    LeaveStatsOut,
    LeaveStatusUpdate,
    LeaveSummaryOut,
)
from hrdesk.leave.service import LeaveService
from hrdesk.onboarding.models import Employee

router = APIRouter(prefix="", tags=["leave"])


# ── POST /apply ─────────────────────────────────────────────────────

@router.post("/apply", response_model=LeaveRequestOut, status_code=201)
async def apply_leave(
    body: LeaveRequestCreate,
    employee: Employee = Depends(get_current_employee),
    db: AsyncSession = Depends(get_db),
):
    """Apply for leave. Validates dates, balance and overlap."""
    return await LeaveService.apply_leave(db, employee.id, body)


# ── GET / ───────────────────────────────────────────────────────────

@router.get("/")
async def list_leaves(
    status: Optional[LeaveStatus] = Query(None),
    leave_type: Optional[LeaveType] = Query(None),
    employee_id: Optional[uuid.UUID] = Query(None),
    from_date: Optional[date] = Query(None),
    to_date: Optional[date] = Query(None),
    pagination: PaginationParams = Depends(),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    page = await LeaveService.list_leaves(
        db,
        user,
        pagination,
        status=status,
        leave_type=leave_type,
        employee_id=employee_id,
        from_date=from_date,
        to_date=to_date,
    )
    return {
        "data": [LeaveRequestOut.model_validate(r) for r in page.data],
        "meta": page.meta,
    }


# ── GET /pending ────────────────────────────────────────────────────

@router.get("/pending", response_model=list[LeaveRequestOut])
async def pending_leaves(
    user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveService.get_pending_leaves(db)


# ── GET /stats ──────────────────────────────────────────────────────

@router.get("/stats", response_model=LeaveStatsOut)
async def leave_stats(
    year: Optional[int] = Query(None, ge=1970, le=2100),
    user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    """Request counts by status and type across all employees."""
    return await LeaveService.get_leave_stats(db, year)


# ── GET /summary ────────────────────────────────────────────────────

@router.get("/summary", response_model=LeaveSummaryOut)
async def my_summary(
    year: Optional[int] = Query(None, ge=1970, le=2100),
    employee: Employee = Depends(get_current_employee),
    db: AsyncSession = Depends(get_db),
):
    """Balance, taken and available days per leave type for the caller."""
    return await LeaveService.get_leave_summary(db, employee.id, year)


@router.get("/summary/{employee_id}", response_model=LeaveSummaryOut)
async def employee_summary(
    employee_id: uuid.UUID,
    year: Optional[int] = Query(None, ge=1970, le=2100),
    user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveService.get_leave_summary(db, employee_id, year)


# ── PUT /balances/{employee_id} ─────────────────────────────────────

@router.put("/balances/{employee_id}", response_model=LeaveBalanceOut)
async def set_balance(
    employee_id: uuid.UUID,
    body: LeaveBalanceUpdate,
    user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveService.set_leave_balance(
        db, employee_id, body.leave_type, body.allotted, user.id,
    )


# ── GET /{id} ───────────────────────────────────────────────────────

@router.get("/{request_id}", response_model=LeaveRequestDetailOut)
async def get_leave(
    request_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveService.get_leave(db, request_id, user)


# ── PUT /{id}/status ────────────────────────────────────────────────

@router.put("/{request_id}/status", response_model=LeaveRequestOut)
async def update_status(
    request_id: uuid.UUID,
    body: LeaveStatusUpdate,
    user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    """Approve or reject a pending leave request."""
    return await LeaveService.update_leave_status(
        db, request_id, body.status, user.id, body.rejection_reason,
    )


# ── PUT /{id}/cancel ────────────────────────────────────────────────

@router.put("/{request_id}/cancel", response_model=LeaveRequestOut)
async def cancel_leave(
    request_id: uuid.UUID,
    employee: Employee = Depends(get_current_employee),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveService.cancel_leave(db, request_id, employee.id)


# ── POST /{id}/comments ─────────────────────────────────────────────

@router.post("/{request_id}/comments", response_model=LeaveCommentOut, status_code=201)
async def add_comment(
    request_id: uuid.UUID,
    body: LeaveCommentCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveService.add_comment(db, request_id, user, body.text)
