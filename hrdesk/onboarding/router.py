"""Onboarding router: HR invites and reviews, employees submit their details."""


import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from hrdesk.auth.dependencies import get_current_employee, require_staff
from hrdesk.auth.models import User
from hrdesk.common.constants import OnboardingStatus
from hrdesk.common.pagination import PaginationParams
from hrdesk.common.rate_limit import INVITE_RATE_LIMIT, limiter
from hrdesk.database import get_db
from hrdesk.onboarding.models import Employee
from hrdesk.onboarding.schemas import (
    EmployeeOut,
    EmployeeUpdate,
    OnboardingDetailsSubmit,
    OnboardingInviteCreate,
    OnboardingInviteOut,
    OnboardingRecordOut,
    OnboardingReminder,
    OnboardingReview,
)
from hrdesk.onboarding.service import OnboardingService

router = APIRouter(prefix="", tags=["onboarding"])


# ── POST /invite ────────────────────────────────────────────────────

@router.post("/invite", response_model=OnboardingInviteOut, status_code=201)
@limiter.limit(INVITE_RATE_LIMIT)
async def invite(
    request: Request,
    body: OnboardingInviteCreate,
    user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    """Create the employee account and email temporary credentials."""
    employee, record = await OnboardingService.initiate_onboarding(db, body, user.id)
    return OnboardingInviteOut(
        employee=EmployeeOut.model_validate(employee),
        record_id=record.id,
    )


# ── Employee self-service ───────────────────────────────────────────

@router.get("/me", response_model=EmployeeOut)
async def my_profile(employee: Employee = Depends(get_current_employee)):
    return employee


@router.get("/me/status", response_model=OnboardingRecordOut)
async def my_status(
    employee: Employee = Depends(get_current_employee),
    db: AsyncSession = Depends(get_db),
):
    return await OnboardingService.get_onboarding_status(db, employee.id)


@router.post("/submit", response_model=EmployeeOut)
async def submit_details(
    body: OnboardingDetailsSubmit,
    employee: Employee = Depends(get_current_employee),
    db: AsyncSession = Depends(get_db),
):
    return await OnboardingService.submit_onboarding_details(db, employee.id, body)


# ── HR / admin ──────────────────────────────────────────────────────

@router.get("/pending", response_model=list[EmployeeOut])
async def pending_onboardings(
    user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    """Submitted onboardings awaiting review, oldest first."""
    return await OnboardingService.get_pending_onboardings(db)


@router.get("/employees")
async def list_employees(
    status: Optional[OnboardingStatus] = Query(None),
    department: Optional[str] = Query(None),
    search: Optional[str] = Query(None, max_length=100),
    pagination: PaginationParams = Depends(),
    user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    page = await OnboardingService.list_employees(
        db, pagination, status=status, department=department, search=search,
    )
    return {
        "data": [EmployeeOut.model_validate(e) for e in page.data],
        "meta": page.meta,
    }


@router.get("/{employee_id}", response_model=EmployeeOut)
async def get_employee(
    employee_id: uuid.UUID,
    user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    return await OnboardingService.get_employee(db, employee_id)


@router.put("/{employee_id}", response_model=EmployeeOut)
async def update_employee(
    employee_id: uuid.UUID,
    body: EmployeeUpdate,
    user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    """HR edit of profile fields; the employee code and onboarding state are kept."""
    return await OnboardingService.update_employee(db, employee_id, body, user.id)


@router.get("/{employee_id}/status", response_model=OnboardingRecordOut)
async def onboarding_status(
    employee_id: uuid.UUID,
    user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    return await OnboardingService.get_onboarding_status(db, employee_id)


@router.post("/{employee_id}/review", response_model=EmployeeOut)
async def review(
    employee_id: uuid.UUID,
    body: OnboardingReview,
    user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    return await OnboardingService.review_onboarding(
        db, employee_id, body.decision, user.id, body.comments,
    )


@router.post("/{employee_id}/reminder", response_model=OnboardingRecordOut)
async def send_reminder(
    employee_id: uuid.UUID,
    body: OnboardingReminder,
    user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    await OnboardingService.send_reminder(
        db, employee_id, user.id, body.temporary_password,
    )
    return await OnboardingService.get_onboarding_status(db, employee_id)


@router.post("/{employee_id}/reconcile", response_model=OnboardingRecordOut)
async def reconcile(
    employee_id: uuid.UUID,
    user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    await OnboardingService.reconcile_onboarding_record(db, employee_id, user.id)
    return await OnboardingService.get_onboarding_status(db, employee_id)
