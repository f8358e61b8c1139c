"""Helpdesk service: ticket lifecycle, assignment, comments, ratings, stats."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from hrdesk.auth.models import User
from hrdesk.common.audit import create_audit_entry
from hrdesk.common.constants import (
    RESOLVED_TICKET_STATUSES,
    STAFF_ROLES,
    TERMINAL_TICKET_STATUSES,
    TICKET_NUMBER_PREFIX,
    TICKET_NUMBER_WIDTH,
    TICKET_SEQUENCE_PREFIX,
    TicketCategory,
    TicketPriority,
    TicketStatus,
)
from hrdesk.common.exceptions import (
    AlreadyRated,
    ForbiddenException,
    InvalidAssignee,
    InvalidTransition,
    NotFoundException,
    OnboardingIncomplete,
    ValidationException,
)
from hrdesk.common.pagination import PaginatedResponse, PaginationParams, paginate
from hrdesk.common.sequences import next_sequence_value
from hrdesk.config import settings
from hrdesk.database import as_utc, execute_or_fail, flush_or_fail
from hrdesk.helpdesk.models import Ticket, TicketComment
from hrdesk.helpdesk.schemas import (
    TicketCreate,
    TicketDetailOut,
    TicketStatsOut,
)
from hrdesk.notifications.service import (
    notify_ticket_assigned,
    notify_ticket_created,
    notify_ticket_updated,
)
from hrdesk.onboarding.models import Employee

logger = logging.getLogger(__name__)


def format_ticket_number(period: str, value: int) -> str:
    return f"{TICKET_NUMBER_PREFIX}-{period}-{value:0{TICKET_NUMBER_WIDTH}d}"


class TicketService:
    """Async ticket operations."""

    # ── Helpers ─────────────────────────────────────────────────────

    @staticmethod
    async def _get_ticket(
        db: AsyncSession,
        ticket_id: uuid.UUID,
        *,
        with_comments: bool = False,
    ) -> Ticket:
        stmt = select(Ticket).where(Ticket.id == ticket_id)
        if with_comments:
            stmt = stmt.options(selectinload(Ticket.comments)).execution_options(
                populate_existing=True,
            )
        result = await db.execute(stmt)
        ticket = result.scalars().first()
        if ticket is None:
            raise NotFoundException("Ticket", str(ticket_id))
        return ticket

    @staticmethod
    async def _get_owner(db: AsyncSession, ticket: Ticket) -> Optional[Employee]:
        result = await db.execute(select(Employee).where(Employee.id == ticket.employee_id))
        return result.scalars().first()

    @staticmethod
    async def _is_owner(db: AsyncSession, ticket: Ticket, user: User) -> bool:
        result = await db.execute(
            select(Employee.id).where(Employee.user_id == user.id)
        )
        return result.scalar() == ticket.employee_id

    @staticmethod
    async def _get_assignee(db: AsyncSession, user_id: uuid.UUID) -> User:
        """Assignees must be active HR or admin users."""
        result = await db.execute(select(User).where(User.id == user_id))
        assignee = result.scalars().first()
        if assignee is None or not assignee.is_active or assignee.role not in STAFF_ROLES:
            raise InvalidAssignee()
        return assignee

    @staticmethod
    async def _guarded_update(
        db: AsyncSession,
        ticket: Ticket,
        expected: TicketStatus,
        action: str,
        **values: Any,
    ) -> None:
        """Apply ``values`` only if the ticket is still in ``expected``."""
        values.setdefault("updated_at", datetime.now(timezone.utc))
        matched = await execute_or_fail(
            db,
            update(Ticket)
            .where(Ticket.id == ticket.id, Ticket.status == expected)
            .values(**values),
            f"ticket {action}",
        )
        if matched == 0:
            await db.refresh(ticket, attribute_names=["status"])
            raise InvalidTransition("ticket", ticket.status, action)

    # ── Create ──────────────────────────────────────────────────────

    @staticmethod
    async def create_ticket(
        db: AsyncSession,
        employee_id: uuid.UUID,
        data: TicketCreate,
    ) -> Ticket:
        """Open a ticket for an onboarded employee, numbered per calendar month."""
        result = await db.execute(select(Employee).where(Employee.id == employee_id))
        employee = result.scalars().first()
        if employee is None:
            raise NotFoundException("Employee", str(employee_id))
        if not employee.is_onboarded:
            raise OnboardingIncomplete("raise tickets")

        priority = data.priority or TicketPriority(settings.DEFAULT_TICKET_PRIORITY)
        period = datetime.now(timezone.utc).strftime("%Y%m")
        sequence = await next_sequence_value(db, f"{TICKET_SEQUENCE_PREFIX}:{period}")

        ticket = Ticket(
            ticket_number=format_ticket_number(period, sequence),
            employee_id=employee_id,
            category=data.category,
            priority=priority,
            status=TicketStatus.open,
            subject=data.subject,
            description=data.description,
        )
        db.add(ticket)
        await flush_or_fail(db, "ticket")

        await create_audit_entry(
            db,
            action="create",
            entity_type="ticket",
            entity_id=ticket.id,
            actor_id=employee.user_id,
            new_values={
                "ticket_number": ticket.ticket_number,
                "category": ticket.category.value,
                "priority": ticket.priority.value,
            },
        )
        logger.info("Ticket %s opened by employee %s", ticket.ticket_number, employee_id)

        await notify_ticket_created(ticket, employee)
        return ticket

    # ── Assignment and status ───────────────────────────────────────

    @staticmethod
    async def assign_ticket(
        db: AsyncSession,
        ticket_id: uuid.UUID,
        assignee_user_id: uuid.UUID,
        assigner_id: uuid.UUID,
    ) -> Ticket:
        """Assign to an HR/admin user and move the ticket to in-progress."""
        ticket = await TicketService._get_ticket(db, ticket_id)
        current = ticket.status
        if current in TERMINAL_TICKET_STATUSES:
            raise InvalidTransition("ticket", current, "assign")
        assignee = await TicketService._get_assignee(db, assignee_user_id)

        await TicketService._guarded_update(
            db, ticket, current, "assign",
            assigned_to=assignee.id,
            status=TicketStatus.in_progress,
        )
        db.add(
            TicketComment(
                ticket_id=ticket.id,
                author_id=assigner_id,
                text=f"Ticket assigned to {assignee.name}",
                is_internal=True,
            )
        )
        await flush_or_fail(db, "ticket comment")

        await create_audit_entry(
            db,
            action="assign",
            entity_type="ticket",
            entity_id=ticket.id,
            actor_id=assigner_id,
            old_values={"status": current.value},
            new_values={
                "status": TicketStatus.in_progress.value,
                "assigned_to": str(assignee.id),
            },
        )
        logger.info("Ticket %s assigned to %s", ticket.ticket_number, assignee.email)

        await notify_ticket_assigned(ticket, assignee.email)
        return ticket

    @staticmethod
    async def update_ticket_status(
        db: AsyncSession,
        ticket_id: uuid.UUID,
        updated_by: uuid.UUID,
        status: Optional[TicketStatus] = None,
        assigned_to: Optional[uuid.UUID] = None,
        resolution: Optional[str] = None,
    ) -> Ticket:
        """Change status and/or assignee of a non-terminal ticket.

        Moving to resolved or closed stamps resolver, time and resolution
        together. Terminal tickets only change through ``reopen_ticket``.
        """
        if status is None and assigned_to is None:
            raise ValidationException({"status": ["Nothing to update."]})
        resolving = status in RESOLVED_TICKET_STATUSES
        if resolution is not None and not resolving:
            raise ValidationException(
                {"resolution": ["A resolution can only be given when resolving or closing."]}
            )

        ticket = await TicketService._get_ticket(db, ticket_id)
        current = ticket.status
        if current in TERMINAL_TICKET_STATUSES:
            raise InvalidTransition("ticket", current, "update")

        values: dict[str, Any] = {}
        if assigned_to is not None:
            values["assigned_to"] = (await TicketService._get_assignee(db, assigned_to)).id
        if status is not None:
            values["status"] = status
            if resolving:
                values["resolved_by"] = updated_by
                values["resolved_at"] = datetime.now(timezone.utc)
                values["resolution"] = resolution

        await TicketService._guarded_update(db, ticket, current, "update", **values)

        await create_audit_entry(
            db,
            action="update_status",
            entity_type="ticket",
            entity_id=ticket.id,
            actor_id=updated_by,
            old_values={"status": current.value},
            new_values={
                "status": ticket.status.value,
                "assigned_to": str(ticket.assigned_to) if ticket.assigned_to else None,
                "resolution": ticket.resolution,
            },
        )
        logger.info("Ticket %s %s -> %s", ticket.ticket_number, current.value, ticket.status.value)

        if status is not None and status != current:
            owner = await TicketService._get_owner(db, ticket)
            if owner is not None:
                await notify_ticket_updated(ticket, owner)
        return ticket

    @staticmethod
    async def reopen_ticket(
        db: AsyncSession,
        ticket_id: uuid.UUID,
        actor: User,
        reason: str,
    ) -> Ticket:
        """Send a resolved or closed ticket back to ``open``.

        Resolution bookkeeping is cleared. A rating, once given, stays.
        """
        ticket = await TicketService._get_ticket(db, ticket_id)
        if not actor.is_staff and not await TicketService._is_owner(db, ticket, actor):
            raise ForbiddenException("You can only reopen your own tickets.")
        current = ticket.status
        if current not in RESOLVED_TICKET_STATUSES:
            raise InvalidTransition("ticket", current, "reopen")

        await TicketService._guarded_update(
            db, ticket, current, "reopen",
            status=TicketStatus.open,
            resolved_by=None,
            resolved_at=None,
            resolution=None,
        )
        db.add(
            TicketComment(
                ticket_id=ticket.id,
                author_id=actor.id,
                text=f"Ticket reopened: {reason}",
                is_internal=False,
            )
        )
        await flush_or_fail(db, "ticket comment")

        await create_audit_entry(
            db,
            action="reopen",
            entity_type="ticket",
            entity_id=ticket.id,
            actor_id=actor.id,
            old_values={"status": current.value},
            new_values={"status": TicketStatus.open.value, "reason": reason},
        )
        return ticket

    @staticmethod
    async def cancel_ticket(
        db: AsyncSession,
        ticket_id: uuid.UUID,
        actor: User,
    ) -> Ticket:
        ticket = await TicketService._get_ticket(db, ticket_id)
        if not actor.is_staff and not await TicketService._is_owner(db, ticket, actor):
            raise ForbiddenException("You can only cancel your own tickets.")
        current = ticket.status
        if current in TERMINAL_TICKET_STATUSES:
            raise InvalidTransition("ticket", current, "cancel")

        await TicketService._guarded_update(
            db, ticket, current, "cancel", status=TicketStatus.cancelled,
        )
        await create_audit_entry(
            db,
            action="cancel",
            entity_type="ticket",
            entity_id=ticket.id,
            actor_id=actor.id,
            old_values={"status": current.value},
            new_values={"status": TicketStatus.cancelled.value},
        )
        return ticket

    # ── Rating ──────────────────────────────────────────────────────

    @staticmethod
    async def add_rating(
        db: AsyncSession,
        ticket_id: uuid.UUID,
        employee_id: uuid.UUID,
        rating: int,
        feedback: Optional[str] = None,
    ) -> Ticket:
        """Rate a resolved/closed ticket once. Only its owner may rate it."""
        ticket = await TicketService._get_ticket(db, ticket_id)
        if ticket.employee_id != employee_id:
            raise ForbiddenException("You can only rate your own tickets.")
        if ticket.status not in RESOLVED_TICKET_STATUSES:
            raise InvalidTransition("ticket", ticket.status, "rate")
        low, high = settings.TICKET_RATING_MIN, settings.TICKET_RATING_MAX
        if isinstance(rating, bool) or not isinstance(rating, int) or not low <= rating <= high:
            raise ValidationException(
                {"rating": [f"Rating must be a whole number between {low} and {high}."]}
            )
        if ticket.rating is not None:
            raise AlreadyRated()

        matched = await execute_or_fail(
            db,
            update(Ticket)
            .where(
                Ticket.id == ticket.id,
                Ticket.rating.is_(None),
                Ticket.status.in_(list(RESOLVED_TICKET_STATUSES)),
            )
            .values(
                rating=rating,
                feedback=feedback,
                updated_at=datetime.now(timezone.utc),
            )
            .execution_options(synchronize_session="fetch"),
            "ticket rating",
        )
        if matched == 0:
            raise AlreadyRated()

        await create_audit_entry(
            db,
            action="rate",
            entity_type="ticket",
            entity_id=ticket.id,
            new_values={"rating": rating},
        )
        return ticket

    # ── Comments ────────────────────────────────────────────────────

    @staticmethod
    async def add_comment(
        db: AsyncSession,
        ticket_id: uuid.UUID,
        author: User,
        text: str,
        internal: bool = False,
    ) -> TicketComment:
        """Append to the comment log. Employee comments are never internal."""
        ticket = await TicketService._get_ticket(db, ticket_id)
        if not author.is_staff:
            if not await TicketService._is_owner(db, ticket, author):
                raise ForbiddenException("You can only comment on your own tickets.")
            internal = False

        comment = TicketComment(
            ticket_id=ticket.id,
            author_id=author.id,
            text=text,
            is_internal=internal,
        )
        db.add(comment)
        await flush_or_fail(db, "ticket comment")
        return comment

    # ── Reads ───────────────────────────────────────────────────────

    @staticmethod
    async def get_ticket(
        db: AsyncSession,
        ticket_id: uuid.UUID,
        viewer: User,
    ) -> TicketDetailOut:
        """Ticket with comments; internal comments are dropped for employees."""
        ticket = await TicketService._get_ticket(db, ticket_id, with_comments=True)
        if not viewer.is_staff and not await TicketService._is_owner(db, ticket, viewer):
            raise ForbiddenException("You can only view your own tickets.")

        out = TicketDetailOut.model_validate(ticket)
        if not viewer.is_staff:
            out.comments = [c for c in out.comments if not c.is_internal]
        return out

    @staticmethod
    async def list_tickets(
        db: AsyncSession,
        viewer: User,
        params: PaginationParams,
        *,
        status: Optional[TicketStatus] = None,
        category: Optional[TicketCategory] = None,
        priority: Optional[TicketPriority] = None,
        assigned_to: Optional[uuid.UUID] = None,
        search: Optional[str] = None,
    ) -> PaginatedResponse:
        """Paginated ticket list; employees only ever see their own tickets."""
        stmt = select(Ticket).order_by(Ticket.created_at.desc())

        if not viewer.is_staff:
            result = await db.execute(
                select(Employee.id).where(Employee.user_id == viewer.id)
            )
            own_id = result.scalar()
            if own_id is None:
                raise NotFoundException("Employee", f"user:{viewer.id}")
            stmt = stmt.where(Ticket.employee_id == own_id)

        if status is not None:
            stmt = stmt.where(Ticket.status == status)
        if category is not None:
            stmt = stmt.where(Ticket.category == category)
        if priority is not None:
            stmt = stmt.where(Ticket.priority == priority)
        if assigned_to is not None:
            stmt = stmt.where(Ticket.assigned_to == assigned_to)
        if search:
            pattern = f"%{search}%"
            stmt = stmt.where(
                or_(
                    Ticket.ticket_number.ilike(pattern),
                    Ticket.subject.ilike(pattern),
                    Ticket.description.ilike(pattern),
                )
            )

        return await paginate(db, stmt, params, model=Ticket)

    @staticmethod
    async def get_assigned_tickets(
        db: AsyncSession,
        user_id: uuid.UUID,
        status: Optional[TicketStatus] = None,
    ) -> list[Ticket]:
        stmt = (
            select(Ticket)
            .where(Ticket.assigned_to == user_id)
            .order_by(Ticket.created_at.desc())
        )
        if status is not None:
            stmt = stmt.where(Ticket.status == status)
        result = await db.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def get_ticket_stats(db: AsyncSession) -> TicketStatsOut:
        async def _counts(column) -> dict[str, int]:
            result = await db.execute(select(column, func.count()).group_by(column))
            return {row[0].value: row[1] for row in result.all()}

        by_status = await _counts(Ticket.status)
        by_category = await _counts(Ticket.category)
        by_priority = await _counts(Ticket.priority)

        resolved = await db.execute(
            select(Ticket.created_at, Ticket.resolved_at).where(
                Ticket.status.in_(list(RESOLVED_TICKET_STATUSES)),
                Ticket.resolved_at.is_not(None),
            )
        )
        durations = [
            (as_utc(resolved_at) - as_utc(created_at)).total_seconds() / 3600
            for created_at, resolved_at in resolved.all()
        ]

        rating_result = await db.execute(
            select(func.avg(Ticket.rating), func.count(Ticket.rating)).where(
                Ticket.rating.is_not(None),
            )
        )
        avg_rating, rated_count = rating_result.one()

        return TicketStatsOut(
            total=sum(by_status.values()),
            by_status=by_status,
            by_category=by_category,
            by_priority=by_priority,
            avg_resolution_hours=(
                round(sum(durations) / len(durations), 2) if durations else None
            ),
            avg_rating=round(float(avg_rating), 2) if avg_rating is not None else None,
            rated_count=rated_count or 0,
        )

