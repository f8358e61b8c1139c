"""Helpdesk router: tickets, comments, ratings and statistics.

All endpoints require authentication. Assignment, status changes and
statistics are HR/admin only.
"""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from hrdesk.auth.dependencies import get_current_employee, get_current_user, require_staff
from hrdesk.auth.models import User
from hrdesk.common.constants import TicketCategory, TicketPriority, TicketStatus
from hrdesk.common.pagination import PaginationParams
from hrdesk.database import get_db
from hrdesk.helpdesk.schemas import (
    CommentCreate,
    CommentOut,
    TicketAssign,
    TicketCreate,
    TicketDetailOut,
    TicketOut,
    TicketRating,
    TicketReopen,
    TicketStatsOut,
    TicketStatusUpdate,
)
from hrdesk.helpdesk.service import TicketService
from hrdesk.onboarding.models import Employee

router = APIRouter()


@router.post("/", response_model=TicketOut, status_code=201)
async def create_ticket(
    body: TicketCreate,
    employee: Employee = Depends(get_current_employee),
    db: AsyncSession = Depends(get_db),
):
    return await TicketService.create_ticket(db, employee.id, body)


@router.get("/")
async def list_tickets(
    status: Optional[TicketStatus] = Query(None),
    category: Optional[TicketCategory] = Query(None),
    priority: Optional[TicketPriority] = Query(None),
    assigned_to: Optional[uuid.UUID] = Query(None),
    search: Optional[str] = Query(None, max_length=100),
    pagination: PaginationParams = Depends(),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    page = await TicketService.list_tickets(
        db,
        user,
        pagination,
        status=status,
        category=category,
        priority=priority,
        assigned_to=assigned_to,
        search=search,
    )
    return {
        "data": [TicketOut.model_validate(t) for t in page.data],
        "meta": page.meta,
    }


@router.get("/assigned", response_model=list[TicketOut])
async def my_assigned_tickets(
    status: Optional[TicketStatus] = Query(None),
    user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    return await TicketService.get_assigned_tickets(db, user.id, status)


@router.get("/stats", response_model=TicketStatsOut)
async def ticket_stats(
    user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    return await TicketService.get_ticket_stats(db)


@router.get("/{ticket_id}", response_model=TicketDetailOut)
async def get_ticket(
    ticket_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await TicketService.get_ticket(db, ticket_id, user)


@router.put("/{ticket_id}/assign", response_model=TicketOut)
async def assign_ticket(
    ticket_id: uuid.UUID,
    body: TicketAssign,
    user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    return await TicketService.assign_ticket(db, ticket_id, body.assignee_id, user.id)


@router.put("/{ticket_id}/status", response_model=TicketOut)
async def update_status(
    ticket_id: uuid.UUID,
    body: TicketStatusUpdate,
    user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    return await TicketService.update_ticket_status(
        db,
        ticket_id,
        user.id,
        status=body.status,
        assigned_to=body.assigned_to,
        resolution=body.resolution,
    )


@router.put("/{ticket_id}/reopen", response_model=TicketOut)
async def reopen_ticket(
    ticket_id: uuid.UUID,
    body: TicketReopen,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await TicketService.reopen_ticket(db, ticket_id, user, body.reason)


@router.put("/{ticket_id}/cancel", response_model=TicketOut)
async def cancel_ticket(
    ticket_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await TicketService.cancel_ticket(db, ticket_id, user)


@router.post("/{ticket_id}/rating", response_model=TicketOut)
async def rate_ticket(
    ticket_id: uuid.UUID,
    body: TicketRating,
    employee: Employee = Depends(get_current_employee),
    db: AsyncSession = Depends(get_db),
):
    return await TicketService.add_rating(
        db, ticket_id, employee.id, body.rating, body.feedback,
    )


@router.post("/{ticket_id}/comments", response_model=CommentOut, status_code=201)
async def add_comment(
    ticket_id: uuid.UUID,
    body: CommentCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await TicketService.add_comment(
        db, ticket_id, user, body.text, body.is_internal,
    )
